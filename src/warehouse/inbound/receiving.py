"""Receiving service — purchase orders, ASNs and dock receipts.

Received units do not count as on-hand stock until their put-away task
completes; until then they are reported as in-transit.
"""

import structlog
from protean.exceptions import ValidationError

from warehouse.errors import NoCapacityError
from warehouse.inbound.asn import AdvanceShippingNotice
from warehouse.inbound.purchase_order import PurchaseOrder
from warehouse.inbound.receipt import QualityCheck, Receipt
from warehouse.stock.lot import QualityStatus
from warehouse.store import ASNS, PURCHASE_ORDERS, RECEIPTS

logger = structlog.get_logger(__name__)

_LOT_STATUS_BY_CHECK = {
    QualityCheck.PASSED.value: QualityStatus.APPROVED.value,
    QualityCheck.PENDING.value: QualityStatus.PENDING.value,
    QualityCheck.FAILED.value: QualityStatus.REJECTED.value,
}


class ReceivingService:
    def __init__(self, store, ledger, catalogue, assigner, locks, clock):
        self.store = store
        self.ledger = ledger
        self.catalogue = catalogue
        self.assigner = assigner
        self.locks = locks
        self.clock = clock

    def _receipt_lock(self, receipt_id):
        return self.locks.hold(("receipt", str(receipt_id)))

    # -------------------------------------------------------------------
    # Purchase orders and ASNs
    # -------------------------------------------------------------------
    def create_purchase_order(self, po_number: str, supplier_name: str, lines: list[dict], **attrs) -> PurchaseOrder:
        for line in lines or []:
            self.catalogue.require(line.get("sku"))
        po = PurchaseOrder.create(po_number, supplier_name, lines, self.clock.now(), **attrs)
        self.store.add(PURCHASE_ORDERS, po)
        logger.info("Purchase order created", po_number=po_number, lines=len(po.lines), total_value=po.total_value)
        return po

    def get_purchase_order(self, purchase_order_id: str) -> PurchaseOrder:
        return self.store.get(PURCHASE_ORDERS, purchase_order_id)

    def process_asn(self, asn_number: str, items: list[dict], purchase_order_id: str | None = None, **attrs):
        """Register an advance shipping notice; it confirms a pending purchase order."""
        now = self.clock.now()
        if purchase_order_id:
            with self.locks.hold(("purchase_order", str(purchase_order_id))):
                po = self.get_purchase_order(purchase_order_id)
                po.confirm(now)
                self.store.add(PURCHASE_ORDERS, po)

        asn = AdvanceShippingNotice.register(asn_number, items, now, purchase_order_id=purchase_order_id, **attrs)
        self.store.add(ASNS, asn)
        logger.info("ASN processed", asn_number=asn_number, purchase_order_id=purchase_order_id)
        return asn

    # -------------------------------------------------------------------
    # Receipts
    # -------------------------------------------------------------------
    def start_receiving(
        self,
        purchase_order_id: str | None = None,
        asn_id: str | None = None,
        expected_items: list[dict] | None = None,
        **attrs,
    ) -> Receipt:
        """Open a receipt; expected items default to the ASN's items."""
        now = self.clock.now()
        if asn_id:
            asn = self.store.get(ASNS, asn_id)
            asn.mark_arrived(now)
            self.store.add(ASNS, asn)
            purchase_order_id = purchase_order_id or asn.purchase_order_id
            if expected_items is None:
                expected_items = asn.expected_items

        receipt = Receipt.start(
            now,
            expected_items=expected_items,
            purchase_order_id=purchase_order_id,
            asn_id=asn_id,
            **attrs,
        )
        self.store.add(RECEIPTS, receipt)
        logger.info("Receiving started", receipt_id=str(receipt.id), dock_door=receipt.dock_door)
        return receipt

    def process_received_item(
        self,
        receipt_id: str,
        sku: str,
        quantity: int,
        lot_number: str | None = None,
        expiry_date=None,
        quality_check: str = QualityCheck.PENDING.value,
        **lot_attrs,
    ):
        """Record a received item, register its lot and route it to put-away.

        Items that failed their quality check are recorded but not put away.
        Returns the receipt line.
        """
        product = self.catalogue.require(sku)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError({"quantity": ["Received quantity must be a positive whole number"]})
        if product.lot_tracked and not lot_number:
            raise ValidationError({"lot_number": [f"{sku} is lot tracked; a lot number is required"]})
        if product.expiry_tracked and not expiry_date:
            raise ValidationError({"expiry_date": [f"{sku} is expiry tracked; an expiry date is required"]})

        with self._receipt_lock(receipt_id):
            receipt = self.store.get(RECEIPTS, receipt_id)
            if receipt.purchase_order_id:
                po = self.get_purchase_order(str(receipt.purchase_order_id))
                if po.line_for(sku) is None:
                    raise ValidationError({"sku": [f"{sku} is not on purchase order {po.po_number}"]})
            line = receipt.record_item(
                sku,
                quantity,
                self.clock.now(),
                lot_number=lot_number,
                expiry_date=expiry_date,
                quality_check=quality_check,
                damage_report=lot_attrs.pop("damage_report", None),
            )
            self.store.add(RECEIPTS, receipt)

            if lot_number:
                self._register_lot(sku, lot_number, quantity, expiry_date, quality_check, lot_attrs)
            if receipt.purchase_order_id:
                self._record_against_purchase_order(str(receipt.purchase_order_id), sku, quantity)

            if line.discrepancy_type:
                logger.warning(
                    "Receiving discrepancy",
                    receipt_id=str(receipt_id),
                    sku=sku,
                    expected=line.qty_expected,
                    received=quantity,
                    discrepancy=line.discrepancy_type,
                )

            if quality_check == QualityCheck.FAILED.value:
                logger.warning("Received item failed quality check", receipt_id=str(receipt_id), sku=sku)
                return line

            try:
                task = self.assigner.assign(str(receipt_id), str(line.id))
            except NoCapacityError:
                logger.error("Received item left at receiving", receipt_id=str(receipt_id), sku=sku)
                raise

        line.putaway_task_id = str(task.id)
        logger.info("Item received", receipt_id=str(receipt_id), sku=sku, quantity=quantity)
        return line

    def _register_lot(self, sku, lot_number, quantity, expiry_date, quality_check, lot_attrs):
        lot = self.ledger.get_lot(sku, lot_number)
        if lot is None:
            self.ledger.create_lot(
                sku,
                lot_number,
                expiry_date=expiry_date,
                quantity_received=quantity,
                quality_status=_LOT_STATUS_BY_CHECK[quality_check],
                **lot_attrs,
            )
        else:
            self.ledger.record_lot_receipt(lot, quantity)

    def _record_against_purchase_order(self, purchase_order_id, sku, quantity):
        with self.locks.hold(("purchase_order", purchase_order_id)):
            po = self.get_purchase_order(purchase_order_id)
            po.record_receipt(sku, quantity, self.clock.now())
            self.store.add(PURCHASE_ORDERS, po)

    def complete_receiving(self, receipt_id: str) -> Receipt:
        with self._receipt_lock(receipt_id):
            receipt = self.store.get(RECEIPTS, receipt_id)
            receipt.complete(self.clock.now())
            self.store.add(RECEIPTS, receipt)

            if receipt.asn_id:
                asn = self.store.get(ASNS, str(receipt.asn_id))
                asn.mark_received(self.clock.now())
                self.store.add(ASNS, asn)

        logger.info("Receiving completed", receipt_id=str(receipt_id), status=receipt.status)
        return receipt
