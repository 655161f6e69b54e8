"""Returns service — return authorizations and inspection of returned goods.

Restockable units are booked into the returns location through the
inventory ledger, like any other stock adjustment. Return labels are bought
through the same carrier port as outbound labels.
"""

from datetime import timedelta

import structlog
from protean.exceptions import ValidationError

from warehouse.errors import LabelGenerationError, StateConflictError
from warehouse.outbound.order import OrderStatus
from warehouse.shipping.rma import ReturnAuthorization
from warehouse.store import ORDERS, RETURN_AUTHORIZATIONS, SHIPMENTS

logger = structlog.get_logger(__name__)

_RETURNABLE_STATUSES = {OrderStatus.SHIPPED.value, OrderStatus.CLOSED.value}


class ReturnsService:
    def __init__(self, store, ledger, directory, carrier_port, locks, clock, policy):
        self.store = store
        self.ledger = ledger
        self.directory = directory
        self.carrier_port = carrier_port
        self.locks = locks
        self.clock = clock
        self.policy = policy

    def get_return_authorization(self, rma_id: str) -> ReturnAuthorization:
        return self.store.get(RETURN_AUTHORIZATIONS, rma_id)

    def create_return_authorization(self, order_id: str, items: list[dict], reason: str, **attrs):
        order = self.store.get(ORDERS, order_id)
        if order.status not in _RETURNABLE_STATUSES:
            raise StateConflictError({"status": [f"Order {order_id} has not shipped ({order.status})"]})

        shipped = {line.sku: line.qty_packed for line in order.lines or []}
        errors = []
        for item in items or []:
            if item.get("sku") not in shipped:
                errors.append(f"{item.get('sku')} was not shipped on order {order.order_number}")
            elif not 0 < (item.get("quantity") or 0) <= shipped[item["sku"]]:
                errors.append(f"Return quantity for {item['sku']} must be between 1 and {shipped[item['sku']]}")
        if errors:
            raise ValidationError({"items": errors})

        now = self.clock.now()
        rma = ReturnAuthorization.authorize(
            str(order.id),
            items,
            reason,
            now,
            now + timedelta(days=self.policy.rma_window_days),
            shipment_id=order.shipment_id,
            customer_name=attrs.pop("customer_name", None) or order.customer_name,
            **attrs,
        )
        self.store.add(RETURN_AUTHORIZATIONS, rma)
        logger.info("Return authorized", rma_number=rma.rma_number, order_id=str(order_id))
        return rma

    def process_received_return(self, rma_id: str, items: list[dict], processed_by: str | None = None):
        """Inspect returned items, restock what can be resold and settle the refund.

        A return that arrives after its authorization expired is rejected.
        """
        with self.locks.hold(("rma", str(rma_id))):
            rma = self.get_return_authorization(rma_id)
            rma.ensure_open()
            now = self.clock.now()

            if rma.is_expired(now):
                rma.reject("Return authorization expired", now)
                self.store.add(RETURN_AUTHORIZATIONS, rma)
                logger.warning("Expired return rejected", rma_number=rma.rma_number)
                return rma

            results = [
                rma.assess(item["sku"], item["quantity"], item.get("condition", "unknown"), item.get("notes"))
                for item in items
            ]
            if any(r.restocked_quantity for r in results):
                self.directory.require(self.policy.returns_location)
            for result in results:
                if result.restocked_quantity:
                    self.ledger.adjust(
                        result.sku,
                        self.policy.returns_location,
                        None,
                        result.restocked_quantity,
                        reason="Customer return",
                        reference=rma.rma_number,
                    )

            rma.complete(results, processed_by, now)
            self.store.add(RETURN_AUTHORIZATIONS, rma)

        logger.info("Return processed", rma_number=rma.rma_number, refund=rma.actual_refund)
        return rma

    def generate_return_shipping_label(
        self, rma_id: str, carrier_code: str | None = None, service_level: str = "Standard"
    ) -> ReturnAuthorization:
        """Buy a prepaid label the customer uses to send the goods back.

        Defaults to the carrier that delivered the original shipment. An RMA
        that already has a label keeps it.
        """
        with self.locks.hold(("rma", str(rma_id))):
            rma = self.get_return_authorization(rma_id)
            rma.ensure_open()
            if rma.has_return_label:
                return rma

            if carrier_code is None and rma.shipment_id:
                carrier_code = self.store.get(SHIPMENTS, str(rma.shipment_id)).carrier_code
            if not carrier_code:
                raise ValidationError({"carrier_code": ["A carrier is required for a return label"]})

            label = self.carrier_port.create_label(rma.rma_number, carrier_code, service_level)
            if label.get("error"):
                logger.warning(
                    "Return label generation failed",
                    rma_number=rma.rma_number,
                    carrier=carrier_code,
                    error=label["error"],
                )
                raise LabelGenerationError({"carrier": [label["error"]]})

            rma.record_return_label(carrier_code, label["tracking_number"], label.get("label_url"), self.clock.now())
            self.store.add(RETURN_AUTHORIZATIONS, rma)

        logger.info("Return label issued", rma_number=rma.rma_number, tracking_number=rma.return_tracking_number)
        return rma
