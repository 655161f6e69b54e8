"""Wave aggregate — a batch of orders released to the floor together.

State Machine:
    PLANNED → PICKING → PICKED → COMPLETED
    PLANNED | PICKING | PICKED → CANCELLED (every member order removed)
    PLANNED | PICKING | PICKED → COMPLETED (every remaining member packed)
"""

import json
from enum import Enum

from protean.fields import DateTime, Float, Integer, String, Text, ValueObject

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.outbound.events import WaveOrderRemoved, WaveOrdersAdded, WavePlanned, WaveStatusChanged


class WaveStatus(Enum):
    PLANNED = "Planned"
    PICKING = "Picking"
    PICKED = "Picked"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


_VALID_TRANSITIONS = {
    WaveStatus.PLANNED: {WaveStatus.PICKING, WaveStatus.COMPLETED, WaveStatus.CANCELLED},
    WaveStatus.PICKING: {WaveStatus.PICKED, WaveStatus.COMPLETED, WaveStatus.CANCELLED},
    WaveStatus.PICKED: {WaveStatus.COMPLETED, WaveStatus.CANCELLED},
    WaveStatus.COMPLETED: set(),  # terminal
    WaveStatus.CANCELLED: set(),  # terminal
}

OPEN_STATUSES = {WaveStatus.PLANNED.value, WaveStatus.PICKING.value, WaveStatus.PICKED.value}

# Minutes per unit and per distinct SKU used for the pick-time estimate.
_MINUTES_PER_UNIT = 0.5
_MINUTES_PER_SKU = 2.0


@warehouse.value_object(part_of="Wave")
class WaveMetrics:
    order_count = Integer(default=0)
    line_count = Integer(default=0)
    unit_count = Integer(default=0)
    unique_skus = Integer(default=0)
    estimated_pick_minutes = Float(default=0.0)


@warehouse.aggregate
class Wave:
    wave_number = String(required=True, max_length=50)
    status = String(choices=WaveStatus, default=WaveStatus.PLANNED.value)
    order_ids = Text(default="[]")  # JSON list, admission order
    cutoff = DateTime()
    max_orders = Integer()
    max_lines = Integer()
    strategy = String(max_length=20, default="Standard")
    metrics = ValueObject(WaveMetrics)
    created_at = DateTime()
    picking_started_at = DateTime()
    completed_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def plan(cls, now, cutoff=None, max_orders=None, max_lines=None, strategy="Standard", wave_number=None):
        return cls(
            wave_number=wave_number or f"WAVE-{now:%Y%m%d%H%M%S%f}",
            status=WaveStatus.PLANNED.value,
            order_ids="[]",
            cutoff=cutoff,
            max_orders=max_orders,
            max_lines=max_lines,
            strategy=strategy,
            metrics=WaveMetrics(),
            created_at=now,
            updated_at=now,
        )

    @property
    def member_ids(self) -> list[str]:
        return json.loads(self.order_ids or "[]")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def _change_status(self, target: WaveStatus, now) -> None:
        current = WaveStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise StateConflictError(
                {"status": [f"Wave {self.id} cannot transition from {current.value} to {target.value}"]}
            )
        self.status = target.value
        self.updated_at = now
        self.raise_(
            WaveStatusChanged(
                wave_id=str(self.id),
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )

    def admit(self, order_ids: list[str], now, initial: bool = False) -> None:
        if self.status != WaveStatus.PLANNED.value:
            raise StateConflictError({"status": [f"Orders can only join a Planned wave, not {self.status}"]})
        members = self.member_ids
        members.extend(oid for oid in order_ids if oid not in members)
        self.order_ids = json.dumps(members)
        self.updated_at = now
        if initial:
            self.raise_(
                WavePlanned(
                    wave_id=str(self.id),
                    wave_number=self.wave_number,
                    order_ids=json.dumps(order_ids),
                    planned_at=now,
                )
            )
        else:
            self.raise_(WaveOrdersAdded(wave_id=str(self.id), order_ids=json.dumps(order_ids), added_at=now))

    def remove_order(self, order_id: str, now) -> None:
        members = self.member_ids
        if order_id not in members:
            return
        members.remove(order_id)
        self.order_ids = json.dumps(members)
        self.updated_at = now
        self.raise_(WaveOrderRemoved(wave_id=str(self.id), order_id=order_id, removed_at=now))

    def record_metrics(self, orders) -> None:
        lines = [line for order in orders for line in order.lines or []]
        units = sum(line.qty_allocated for line in lines)
        skus = {line.sku for line in lines}
        self.metrics = WaveMetrics(
            order_count=len(orders),
            line_count=len(lines),
            unit_count=units,
            unique_skus=len(skus),
            estimated_pick_minutes=units * _MINUTES_PER_UNIT + len(skus) * _MINUTES_PER_SKU,
        )

    def start_picking(self, now) -> None:
        if self.status == WaveStatus.PICKING.value:
            return
        self._change_status(WaveStatus.PICKING, now)
        self.picking_started_at = now

    def mark_picked(self, now) -> None:
        self._change_status(WaveStatus.PICKED, now)

    def complete(self, now) -> None:
        self._change_status(WaveStatus.COMPLETED, now)
        self.completed_at = now

    def cancel(self, now) -> None:
        self._change_status(WaveStatus.CANCELLED, now)
        self.completed_at = now
