"""Packing station — packing slips and the Picking -> Packed step."""

import structlog

from warehouse.errors import StateConflictError
from warehouse.outbound.order import OrderStatus
from warehouse.outbound.packing_slip import PackingSlip, PackingSlipStatus
from warehouse.store import ORDERS, PACKING_SLIPS

logger = structlog.get_logger(__name__)


class PackingStation:
    def __init__(self, store, lifecycle, planner, locks, clock):
        self.store = store
        self.lifecycle = lifecycle
        self.planner = planner
        self.locks = locks
        self.clock = clock

    def _slip_lock(self, order_id):
        return self.locks.hold(("packing_slip", str(order_id)))

    def slip_for(self, order_id: str) -> PackingSlip | None:
        slips = self.store.list(PACKING_SLIPS, order_id=str(order_id))
        return slips[0] if slips else None

    def create_packing_slip(self, order_id: str) -> PackingSlip:
        """Create the packing slip of a fully picked order (once per order)."""
        with self._slip_lock(order_id):
            existing = self.slip_for(order_id)
            if existing is not None:
                return existing

            order = self.store.get(ORDERS, order_id)
            if order.status != OrderStatus.PICKING.value or not order.pick_complete:
                raise StateConflictError(
                    {"status": [f"Order {order_id} is not ready for packing ({order.status})"]}
                )
            slip = PackingSlip.for_order(order, self.clock.now())
            self.store.add(PACKING_SLIPS, slip)

        logger.info("Packing slip created", order_id=str(order_id), units=slip.units_to_pack)
        return slip

    def complete_packing_order(self, order_id: str, packages: list[dict], packed_by: str | None = None):
        """Pack the order, close its slip and let the wave complete when it was the last one."""
        order = self.lifecycle.complete_packing(order_id, packages, packed_by)

        with self._slip_lock(order_id):
            slip = self.slip_for(order_id)
            if slip is None:
                slip = PackingSlip.for_order(order, self.clock.now())
            if slip.status == PackingSlipStatus.OPEN.value:
                slip.mark_packed(packages, packed_by, self.clock.now())
                self.store.add(PACKING_SLIPS, slip)

        if order.wave_id:
            self.planner.on_order_packed(str(order.wave_id))
        return order
