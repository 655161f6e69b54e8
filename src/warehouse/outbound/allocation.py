"""Allocation engine — reserves ledger stock against order lines.

``allocate_order`` either reserves every unallocated unit of the order (or,
when the policy allows partial orders, at least some of every line) or
leaves stock and order exactly as it found them: reservations made during a
failed call are released before the error propagates.
"""

import structlog

from warehouse.errors import InsufficientStockError, StateConflictError
from warehouse.outbound.order import Order, OrderStatus
from warehouse.store import ORDERS

logger = structlog.get_logger(__name__)


class AllocationEngine:
    def __init__(self, store, ledger, locks, clock, policy):
        self.store = store
        self.ledger = ledger
        self.locks = locks
        self.clock = clock
        self.policy = policy

    def _order_lock(self, order_id):
        return self.locks.hold(("order", str(order_id)))

    def allocations_for(self, order_id: str, open_only: bool = False) -> list:
        return self.ledger.allocations_for(str(order_id), open_only=open_only)

    def allocate_order(self, order_id: str) -> list:
        """Reserve stock for every unallocated unit of the order.

        Returns the order's open allocations. Calling it again on an
        Allocated order changes nothing; on a Partially_Allocated order it
        tops up the short lines.
        """
        with self._order_lock(order_id):
            order = self.store.get(ORDERS, order_id)
            if order.status == OrderStatus.ALLOCATED.value:
                return self.allocations_for(order_id, open_only=True)
            if order.status not in (OrderStatus.VALIDATED.value, OrderStatus.PARTIALLY_ALLOCATED.value):
                raise StateConflictError(
                    {"status": [f"Order {order_id} cannot be allocated while {order.status}"]}
                )

            made = []
            try:
                for line in order.lines:
                    needed = line.unallocated
                    if needed <= 0:
                        continue
                    result = self.ledger.reserve(
                        line.sku,
                        needed,
                        order_id=str(order.id),
                        line_id=str(line.id),
                        partial=self.policy.allow_partial_orders,
                    )
                    made.extend(result.allocations)
                    if result.reserved == 0:
                        raise InsufficientStockError(line.sku, needed, 0)
                    order.record_allocation(str(line.id), result.reserved)

                order.mark_allocated(self.clock.now())
                self.store.add(ORDERS, order)
            except Exception as exc:
                self._roll_back(order_id, made)
                if isinstance(exc, InsufficientStockError):
                    logger.warning(
                        "Order allocation rolled back",
                        order_id=str(order_id),
                        sku=exc.sku,
                        requested=exc.requested,
                        available=exc.available,
                    )
                raise

        logger.info(
            "Order allocated",
            order_id=str(order_id),
            status=order.status,
            units_allocated=order.units_allocated,
            units_requested=order.units_requested,
        )
        return self.allocations_for(order_id, open_only=True)

    def _roll_back(self, order_id, allocations):
        for allocation in reversed(allocations):
            self.ledger.release(str(allocation.id))
        if allocations:
            logger.info("Reservations released", order_id=str(order_id), count=len(allocations))

    def allocate_inventory(
        self,
        sku: str,
        quantity: int,
        reference: str | None = None,
        exclude_locations=None,
        partial: bool = False,
    ):
        """Reserve stock outside any order, e.g. for a transfer or a hold.

        Records at ``exclude_locations`` are skipped.
        """
        return self.ledger.reserve(
            sku, quantity, order_id=reference, exclude_locations=exclude_locations, partial=partial
        )

    def release_allocations(self, order_id: str) -> int:
        """Release every open allocation of the order; returns the units released."""
        released = 0
        for allocation in self.allocations_for(order_id, open_only=True):
            released += allocation.outstanding
            self.ledger.release(str(allocation.id))
        return released

    def cancel_order(self, order_id: str, reason: str | None = None) -> Order:
        """Release all outstanding allocations of the order and cancel it."""
        with self._order_lock(order_id):
            order = self.store.get(ORDERS, order_id)
            order.ensure_cancellable()

            released = self.release_allocations(order_id)
            order.cancel(reason, self.clock.now())
            self.store.add(ORDERS, order)

        logger.info("Order cancelled", order_id=str(order_id), units_released=released, reason=reason)
        return order
