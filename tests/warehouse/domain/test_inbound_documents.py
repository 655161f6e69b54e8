"""Tests for purchase orders, ASNs and receipts."""

from datetime import UTC, datetime

import pytest
from protean.exceptions import ValidationError

from warehouse.errors import StateConflictError
from warehouse.inbound.asn import AdvanceShippingNotice, AsnStatus
from warehouse.inbound.events import ReceivingDiscrepancyRecorded
from warehouse.inbound.purchase_order import PurchaseOrder, PurchaseOrderStatus
from warehouse.inbound.receipt import DiscrepancyType, Receipt, ReceiptStatus

NOW = datetime(2024, 1, 15, 9, 0, tzinfo=UTC)


def _po():
    return PurchaseOrder.create(
        "PO-1",
        "Acme Supply",
        [
            {"sku": "SKU-1", "quantity": 10, "unit_cost": 2.5},
            {"sku": "SKU-2", "quantity": 4, "unit_cost": 10.0},
        ],
        NOW,
    )


class TestPurchaseOrder:
    def test_total_value(self):
        assert _po().total_value == 65.0

    def test_needs_lines(self):
        with pytest.raises(ValidationError):
            PurchaseOrder.create("PO-1", "Acme Supply", [], NOW)

    def test_receipts_move_status_forward(self):
        po = _po()
        po.confirm(NOW)
        assert po.status == PurchaseOrderStatus.CONFIRMED.value

        po.record_receipt("SKU-1", 10, NOW)
        assert po.status == PurchaseOrderStatus.PARTIALLY_RECEIVED.value

        po.record_receipt("SKU-2", 4, NOW)
        assert po.status == PurchaseOrderStatus.RECEIVED.value

    def test_receipt_for_sku_not_ordered_is_rejected(self):
        with pytest.raises(ValidationError):
            _po().record_receipt("SKU-9", 1, NOW)


class TestAsn:
    def test_arrival_and_receipt(self):
        asn = AdvanceShippingNotice.register("ASN-1", [{"sku": "SKU-1", "quantity": 10}], NOW)
        assert asn.expected_items == [{"sku": "SKU-1", "quantity": 10}]
        asn.mark_arrived(NOW)
        asn.mark_arrived(NOW)
        asn.mark_received(NOW)
        assert asn.status == AsnStatus.RECEIVED.value


class TestReceipt:
    def test_matching_quantity_has_no_discrepancy(self):
        receipt = Receipt.start(NOW, expected_items=[{"sku": "SKU-1", "quantity": 10}])
        line = receipt.record_item("SKU-1", 10, NOW)
        assert line.discrepancy_type is None
        receipt.complete(NOW)
        assert receipt.status == ReceiptStatus.COMPLETED.value

    def test_overage_is_recorded(self):
        receipt = Receipt.start(NOW, expected_items=[{"sku": "SKU-1", "quantity": 10}])
        line = receipt.record_item("SKU-1", 12, NOW)
        assert line.discrepancy_type == DiscrepancyType.OVERAGE.value
        assert line.discrepancy_quantity == 2
        assert isinstance(receipt._events[-1], ReceivingDiscrepancyRecorded)

    def test_unexpected_sku_gets_its_own_line(self):
        receipt = Receipt.start(NOW, expected_items=[{"sku": "SKU-1", "quantity": 10}])
        line = receipt.record_item("SKU-2", 3, NOW)
        assert line.sku == "SKU-2"
        assert line.discrepancy_type == DiscrepancyType.OVERAGE.value
        assert len(receipt.lines) == 2

    def test_missing_lines_become_shortages_on_completion(self):
        receipt = Receipt.start(NOW, expected_items=[{"sku": "SKU-1", "quantity": 10}])
        receipt.complete(NOW)
        assert receipt.status == ReceiptStatus.DISCREPANCY.value
        assert receipt.lines[0].discrepancy_type == DiscrepancyType.SHORTAGE.value
        assert receipt.lines[0].discrepancy_quantity == 10

    def test_unknown_quality_result_is_rejected(self):
        receipt = Receipt.start(NOW)
        with pytest.raises(ValidationError):
            receipt.record_item("SKU-1", 1, NOW, quality_check="Maybe")

    def test_completed_receipt_takes_no_more_items(self):
        receipt = Receipt.start(NOW)
        receipt.complete(NOW)
        with pytest.raises(StateConflictError):
            receipt.record_item("SKU-1", 1, NOW)
