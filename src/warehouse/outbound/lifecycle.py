"""Order lifecycle — intake, validation and every status change of an order.

All changes to an order happen under its per-order lock, so admission to a
wave is a compare-and-set: of two planners racing for the same order,
exactly one sees it Allocated and un-waved.
"""

import structlog
from protean.exceptions import ValidationError

from warehouse.errors import StateConflictError
from warehouse.outbound.order import Order, OrderStatus
from warehouse.outbound.pick_task import UNSTARTED_STATUSES
from warehouse.store import ORDERS, PICK_TASKS, SHIPMENTS

logger = structlog.get_logger(__name__)


class OrderLifecycle:
    def __init__(self, store, locks, clock, policy, allocation, catalogue):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.policy = policy
        self.allocation = allocation
        self.catalogue = catalogue

    def _order_lock(self, order_id):
        return self.locks.hold(("order", str(order_id)))

    def get_order(self, order_id: str) -> Order:
        return self.store.get(ORDERS, order_id)

    # -------------------------------------------------------------------
    # Intake
    # -------------------------------------------------------------------
    def create_order(self, lines: list[dict], **attrs) -> Order:
        order = Order.create(lines=lines, now=self.clock.now(), **attrs)
        self.store.add(ORDERS, order)
        logger.info("Order received", order_id=str(order.id), order_number=order.order_number)
        return order

    def validate_order(self, order_id: str) -> Order:
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            known = {line.sku for line in order.lines or [] if self.catalogue.find(line.sku) is not None}
            try:
                order.validate(known, self.clock.now())
            except ValidationError as exc:
                logger.warning("Order failed validation", order_id=str(order_id), errors=exc.messages)
                raise
            self.store.add(ORDERS, order)
        return order

    # -------------------------------------------------------------------
    # Waves and picking
    # -------------------------------------------------------------------
    def admit_to_wave(self, order_id: str, wave_id: str) -> Order:
        """Move an allocated, un-waved order into the wave, or raise StateConflictError."""
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            if order.status == OrderStatus.PARTIALLY_ALLOCATED.value and not self.policy.allow_short_ship:
                raise StateConflictError(
                    {"status": [f"Order {order_id} is partially allocated and short shipping is disabled"]}
                )
            order.admit_to_wave(str(wave_id), self.clock.now())
            self.store.add(ORDERS, order)
        return order

    def begin_picking(self, order_id: str) -> Order:
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            order.begin_picking(self.clock.now())
            self.store.add(ORDERS, order)
        return order

    def record_line_picks(self, order_id: str, picks: dict[str, tuple[int, int]]) -> Order:
        """Record (picked, short) units per order line from a completed pick task."""
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            now = self.clock.now()
            for line_id, (picked, short) in picks.items():
                order.record_pick(line_id, picked, short, now)
            self.store.add(ORDERS, order)

        shorts = {line_id: short for line_id, (_, short) in picks.items() if short}
        if shorts:
            logger.warning("Order lines short picked", order_id=str(order_id), short=shorts)
        return order

    def mark_pick_complete(self, order_id: str) -> Order:
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            order.mark_pick_complete(self.clock.now())
            self.store.add(ORDERS, order)
        return order

    # -------------------------------------------------------------------
    # Packing and shipping
    # -------------------------------------------------------------------
    def complete_packing(self, order_id: str, packages: list[dict], packed_by: str | None = None) -> Order:
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            if order.status != OrderStatus.PICKING.value:
                raise StateConflictError({"status": [f"Order {order_id} cannot be packed while {order.status}"]})

            open_tasks = [
                t for t in self.store.list(PICK_TASKS, wave_id=str(order.wave_id)) if not t.is_closed
            ]
            if open_tasks:
                raise StateConflictError(
                    {"pick_tasks": [f"{len(open_tasks)} pick task(s) of wave {order.wave_id} are still open"]}
                )
            if self.allocation.allocations_for(order_id, open_only=True):
                raise StateConflictError({"allocations": [f"Order {order_id} has allocations not yet picked"]})
            if order.has_short_lines and not self.policy.allow_short_ship:
                raise StateConflictError({"lines": [f"Order {order_id} is short and short shipping is disabled"]})

            order.pack(packages, packed_by, self.clock.now())
            self.store.add(ORDERS, order)

        logger.info("Order packed", order_id=str(order_id), packages=len(packages))
        return order

    def ship_order(self, order_id: str, shipment_id: str) -> Order:
        shipment = self.store.get(SHIPMENTS, shipment_id)
        if str(order_id) not in shipment.member_ids:
            raise StateConflictError({"shipment_id": [f"Shipment {shipment_id} does not include order {order_id}"]})

        with self._order_lock(order_id):
            order = self.get_order(order_id)
            if order.shipment_id and str(order.shipment_id) == str(shipment_id):
                return order
            order.ship(str(shipment_id), self.clock.now())
            self.store.add(ORDERS, order)

        logger.info("Order shipped", order_id=str(order_id), shipment_id=str(shipment_id))
        return order

    def close_order(self, order_id: str) -> Order:
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            if order.status == OrderStatus.CLOSED.value:
                return order
            order.close(self.clock.now())
            self.store.add(ORDERS, order)
        return order

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel_order(self, order_id: str, reason: str | None = None) -> Order:
        """Cancel an order that no picker has started on.

        Pending or assigned pick tasks covering the order are shrunk (or
        cancelled when nothing else is left on them) and its allocations are
        released. Membership of its wave is settled by the wave planner.
        """
        with self._order_lock(order_id):
            order = self.get_order(order_id)
            order.ensure_cancellable()
            allocations = self.allocation.allocations_for(order_id)
            allocation_ids = {str(a.id) for a in allocations}

            covering = []
            if order.wave_id:
                covering = [
                    str(t.id)
                    for t in self.store.list(PICK_TASKS, wave_id=str(order.wave_id))
                    if t.is_live and allocation_ids & set(t.covered_allocation_ids)
                ]

            with self.locks.hold(*[("task", task_id) for task_id in covering]):
                tasks = [self.store.get(PICK_TASKS, task_id) for task_id in covering]
                started = [t for t in tasks if t.is_live and t.status not in UNSTARTED_STATUSES]
                if started:
                    logger.warning(
                        "Cancellation rejected, picking under way",
                        order_id=str(order_id),
                        tasks=[str(t.id) for t in started],
                    )
                    raise StateConflictError(
                        {"status": [f"Order {order_id} has pick tasks in progress or completed"]}
                    )

                now = self.clock.now()
                for task in tasks:
                    if not task.is_live:
                        continue
                    covered = set(task.covered_allocation_ids)
                    task.withdraw([a for a in allocations if str(a.id) in covered], now)
                    self.store.add(PICK_TASKS, task)

                order = self.allocation.cancel_order(order_id, reason)

        return order
