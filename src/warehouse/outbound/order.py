"""Order aggregate — a customer order moving through the warehouse.

State Machine:
    CREATED → VALIDATED → ALLOCATED | PARTIALLY_ALLOCATED → WAVED → PICKING
        → PACKED → SHIPPED → CLOSED
    PARTIALLY_ALLOCATED → ALLOCATED (top-up)
    any state before SHIPPED → CANCELLED

Transitions are only made through the methods below; an out-of-order
transition raises StateConflictError and leaves the order unchanged.
"""

import json
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.outbound.events import (
    OrderAllocated,
    OrderCancelled,
    OrderClosed,
    OrderLineShortPicked,
    OrderPacked,
    OrderPickingStarted,
    OrderReceived,
    OrderShipped,
    OrderValidated,
    OrderWaved,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    CREATED = "Created"
    VALIDATED = "Validated"
    ALLOCATED = "Allocated"
    PARTIALLY_ALLOCATED = "Partially_Allocated"
    WAVED = "Waved"
    PICKING = "Picking"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    CLOSED = "Closed"
    CANCELLED = "Cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.CREATED: {OrderStatus.VALIDATED, OrderStatus.CANCELLED},
    OrderStatus.VALIDATED: {OrderStatus.ALLOCATED, OrderStatus.PARTIALLY_ALLOCATED, OrderStatus.CANCELLED},
    OrderStatus.ALLOCATED: {OrderStatus.WAVED, OrderStatus.CANCELLED},
    OrderStatus.PARTIALLY_ALLOCATED: {OrderStatus.ALLOCATED, OrderStatus.WAVED, OrderStatus.CANCELLED},
    OrderStatus.WAVED: {OrderStatus.PICKING, OrderStatus.CANCELLED},
    OrderStatus.PICKING: {OrderStatus.PACKED, OrderStatus.CANCELLED},
    OrderStatus.PACKED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.CLOSED},
    OrderStatus.CLOSED: set(),  # terminal
    OrderStatus.CANCELLED: set(),  # terminal
}

ALLOCATED_STATUSES = {OrderStatus.ALLOCATED.value, OrderStatus.PARTIALLY_ALLOCATED.value}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@warehouse.value_object(part_of="Order")
class ShipTo:
    name = String(max_length=200)
    street = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=2)

    def as_destination(self) -> dict:
        return {"country": self.country, "state": self.state, "postal_code": self.postal_code}


@warehouse.value_object(part_of="Order")
class PackingInfo:
    packed_by = String(max_length=100)
    package_count = Integer(default=0)
    total_weight = Float(default=0.0)
    packages = Text()  # JSON list of package dicts
    packed_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@warehouse.entity(part_of="Order")
class OrderLine:
    sku = String(required=True, max_length=50)
    qty_requested = Integer(required=True)
    qty_allocated = Integer(default=0)
    qty_picked = Integer(default=0)
    qty_short = Integer(default=0)
    qty_packed = Integer(default=0)

    @property
    def unallocated(self) -> int:
        return self.qty_requested - self.qty_allocated


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@warehouse.aggregate
class Order:
    order_number = String(required=True, max_length=50)
    customer_name = String(max_length=200)
    priority = Integer(default=0)
    sla_deadline = DateTime()
    status = String(choices=OrderStatus, default=OrderStatus.CREATED.value)
    lines = HasMany(OrderLine)
    ship_to = ValueObject(ShipTo)
    wave_id = Identifier()
    shipment_id = Identifier()
    pick_complete = Boolean(default=False)
    packing_info = ValueObject(PackingInfo)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        lines: list[dict],
        now,
        priority: int = 0,
        sla_deadline=None,
        ship_to: dict | None = None,
        customer_name: str | None = None,
        order_number: str | None = None,
    ):
        """Create an order; lines for the same SKU are merged."""
        merged: dict[str, int] = {}
        for line in lines or []:
            if "sku" not in line or "quantity" not in line:
                raise ValidationError({"lines": ["Every line needs a sku and a quantity"]})
            merged[line["sku"]] = merged.get(line["sku"], 0) + line["quantity"]

        order = cls(
            order_number=order_number or f"ORD-{now:%Y%m%d%H%M%S%f}",
            customer_name=customer_name,
            priority=priority,
            sla_deadline=sla_deadline,
            status=OrderStatus.CREATED.value,
            ship_to=ShipTo(**ship_to) if ship_to else None,
            created_at=now,
            updated_at=now,
        )
        for sku, quantity in merged.items():
            order.add_lines(OrderLine(sku=sku, qty_requested=quantity))

        order.raise_(
            OrderReceived(
                order_id=str(order.id),
                order_number=order.order_number,
                priority=priority,
                sla_deadline=sla_deadline,
                lines=json.dumps([{"sku": s, "quantity": q} for s, q in merged.items()]),
                received_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise StateConflictError(
                {"status": [f"Order {self.id} cannot transition from {current.value} to {target_status.value}"]}
            )

    def line(self, line_id: str) -> OrderLine:
        for line in self.lines or []:
            if str(line.id) == str(line_id):
                return line
        raise ValidationError({"line_id": [f"Line {line_id} not found on order {self.id}"]})

    @property
    def units_requested(self) -> int:
        return sum(line.qty_requested for line in self.lines or [])

    @property
    def units_allocated(self) -> int:
        return sum(line.qty_allocated for line in self.lines or [])

    @property
    def is_fully_allocated(self) -> bool:
        return all(line.unallocated <= 0 for line in self.lines or [])

    @property
    def has_short_lines(self) -> bool:
        return any(line.qty_short > 0 or line.unallocated > 0 for line in self.lines or [])

    # -------------------------------------------------------------------
    # Intake
    # -------------------------------------------------------------------
    def validate(self, known_skus: set[str], now) -> None:
        self._assert_can_transition(OrderStatus.VALIDATED)

        errors = []
        if not self.lines:
            errors.append("Order has no lines")
        for line in self.lines or []:
            if line.sku not in known_skus:
                errors.append(f"Unknown SKU: {line.sku}")
            if line.qty_requested is None or line.qty_requested <= 0:
                errors.append(f"Quantity for {line.sku} must be positive")
        if self.sla_deadline is not None and self.sla_deadline < now:
            errors.append("SLA deadline is in the past")
        if errors:
            raise ValidationError({"lines": errors})

        self.status = OrderStatus.VALIDATED.value
        self.updated_at = now
        self.raise_(OrderValidated(order_id=str(self.id), validated_at=now))

    # -------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------
    def record_allocation(self, line_id: str, quantity: int) -> None:
        line = self.line(line_id)
        line.qty_allocated = line.qty_allocated + quantity

    def mark_allocated(self, now) -> None:
        target = OrderStatus.ALLOCATED if self.is_fully_allocated else OrderStatus.PARTIALLY_ALLOCATED
        if self.status != target.value:
            self._assert_can_transition(target)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderAllocated(
                order_id=str(self.id),
                status=target.value,
                units_requested=self.units_requested,
                units_allocated=self.units_allocated,
                allocated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Waves and picking
    # -------------------------------------------------------------------
    def admit_to_wave(self, wave_id: str, now) -> None:
        if self.wave_id:
            raise StateConflictError({"wave_id": [f"Order {self.id} is already in wave {self.wave_id}"]})
        if self.status not in ALLOCATED_STATUSES:
            raise StateConflictError(
                {"status": [f"Order {self.id} must be allocated to join a wave, not {self.status}"]}
            )
        self._assert_can_transition(OrderStatus.WAVED)

        self.status = OrderStatus.WAVED.value
        self.wave_id = wave_id
        self.updated_at = now
        self.raise_(OrderWaved(order_id=str(self.id), wave_id=wave_id, waved_at=now))

    def begin_picking(self, now) -> None:
        self._assert_can_transition(OrderStatus.PICKING)
        self.status = OrderStatus.PICKING.value
        self.updated_at = now
        self.raise_(OrderPickingStarted(order_id=str(self.id), wave_id=str(self.wave_id), started_at=now))

    def record_pick(self, line_id: str, picked: int, short: int, now) -> None:
        if self.status != OrderStatus.PICKING.value:
            raise StateConflictError({"status": [f"Order {self.id} is not being picked"]})

        line = self.line(line_id)
        line.qty_picked = line.qty_picked + picked
        line.qty_short = line.qty_short + short
        self.updated_at = now
        if short:
            self.raise_(
                OrderLineShortPicked(
                    order_id=str(self.id),
                    line_id=str(line.id),
                    sku=line.sku,
                    short_quantity=short,
                    recorded_at=now,
                )
            )

    def mark_pick_complete(self, now) -> None:
        if self.status != OrderStatus.PICKING.value:
            raise StateConflictError({"status": [f"Order {self.id} is not being picked"]})
        self.pick_complete = True
        self.updated_at = now

    # -------------------------------------------------------------------
    # Packing and shipping
    # -------------------------------------------------------------------
    def pack(self, packages: list[dict], packed_by: str | None, now) -> None:
        self._assert_can_transition(OrderStatus.PACKED)
        if not packages:
            raise ValidationError({"packages": ["At least one package is required"]})

        for line in self.lines or []:
            line.qty_packed = line.qty_picked
        total_weight = sum(float(p.get("weight") or 0.0) for p in packages)

        self.status = OrderStatus.PACKED.value
        self.packing_info = PackingInfo(
            packed_by=packed_by,
            package_count=len(packages),
            total_weight=total_weight,
            packages=json.dumps(packages),
            packed_at=now,
        )
        self.updated_at = now
        self.raise_(
            OrderPacked(
                order_id=str(self.id),
                package_count=len(packages),
                total_weight=total_weight,
                packed_at=now,
            )
        )

    @property
    def packages(self) -> list[dict]:
        if not self.packing_info or not self.packing_info.packages:
            return []
        return json.loads(self.packing_info.packages)

    def ship(self, shipment_id: str, now) -> None:
        self._assert_can_transition(OrderStatus.SHIPPED)
        self.status = OrderStatus.SHIPPED.value
        self.shipment_id = shipment_id
        self.updated_at = now
        self.raise_(OrderShipped(order_id=str(self.id), shipment_id=shipment_id, shipped_at=now))

    def close(self, now) -> None:
        self._assert_can_transition(OrderStatus.CLOSED)
        self.status = OrderStatus.CLOSED.value
        self.updated_at = now
        self.raise_(OrderClosed(order_id=str(self.id), closed_at=now))

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def ensure_cancellable(self) -> None:
        self._assert_can_transition(OrderStatus.CANCELLED)

    def cancel(self, reason: str | None, now) -> None:
        self.ensure_cancellable()
        previous = self.status
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.updated_at = now
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous,
                reason=reason,
                cancelled_at=now,
            )
        )
