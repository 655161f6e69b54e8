"""Application tests for purchase orders, ASNs, receipts and put-away."""

from datetime import date

import pytest
from protean.exceptions import ValidationError

from warehouse.errors import NoCapacityError, StateConflictError
from warehouse.inbound.asn import AsnStatus
from warehouse.inbound.purchase_order import PurchaseOrderStatus
from warehouse.inbound.receipt import DiscrepancyType, ReceiptStatus
from warehouse.stock.lot import QualityStatus
from warehouse.store import ASNS

EXPIRY = date(2024, 6, 30)


@pytest.fixture()
def inbound(floor):
    """A purchase order for 10 x SKU-1 and 4 x SKU-2 announced by an ASN."""
    po = floor.create_purchase_order(
        "PO-1",
        "Acme Supply",
        [{"sku": "SKU-1", "quantity": 10, "unit_cost": 2.5}, {"sku": "SKU-2", "quantity": 4, "unit_cost": 10.0}],
    )
    asn = floor.process_asn(
        "ASN-1",
        [{"sku": "SKU-1", "quantity": 10}, {"sku": "SKU-2", "quantity": 4}],
        purchase_order_id=str(po.id),
    )
    return po, asn


class TestPurchaseOrders:
    def test_unknown_sku_is_rejected(self, floor):
        with pytest.raises(ValidationError):
            floor.create_purchase_order("PO-9", "Acme Supply", [{"sku": "SKU-404", "quantity": 1}])

    def test_asn_confirms_the_purchase_order(self, floor, inbound):
        po, asn = inbound
        assert floor.get_purchase_order(str(po.id)).status == PurchaseOrderStatus.CONFIRMED.value
        assert asn.status == AsnStatus.IN_TRANSIT.value


class TestReceiving:
    def test_asn_items_become_expected_lines(self, floor, inbound):
        _, asn = inbound

        receipt = floor.start_receiving(asn_id=str(asn.id), dock_door="D1")

        assert sorted((line.sku, line.qty_expected) for line in receipt.lines) == [("SKU-1", 10), ("SKU-2", 4)]
        assert receipt.status == ReceiptStatus.IN_PROGRESS.value

    def test_received_stock_is_in_transit_until_put_away(self, floor, inbound):
        _, asn = inbound
        receipt = floor.start_receiving(asn_id=str(asn.id))

        line = floor.process_received_item(str(receipt.id), "SKU-1", 10)

        inventory = floor.get_inventory("SKU-1")
        assert (inventory["on_hand"], inventory["in_transit"]) == (0, 10)

        task = floor.get_put_away_task(str(line.putaway_task_id))
        assert task.destination_code == "B-01"
        floor.complete_put_away_task(str(task.id), completed_by="forklift-1")

        inventory = floor.get_inventory("SKU-1")
        assert (inventory["on_hand"], inventory["in_transit"]) == (10, 0)
        assert inventory["locations"][0]["location"] == "B-01"

    def test_pick_face_holding_the_sku_is_preferred(self, floor, stock):
        stock("SKU-1", "A-02", 10)
        receipt = floor.start_receiving()

        line = floor.process_received_item(str(receipt.id), "SKU-1", 20)

        assert floor.get_put_away_task(str(line.putaway_task_id)).destination_code == "A-02"

    def test_put_away_completes_once(self, floor):
        receipt = floor.start_receiving()
        line = floor.process_received_item(str(receipt.id), "SKU-1", 5)
        floor.complete_put_away_task(str(line.putaway_task_id))

        with pytest.raises(StateConflictError):
            floor.complete_put_away_task(str(line.putaway_task_id))

        assert floor.get_inventory("SKU-1")["on_hand"] == 5

    def test_short_put_away(self, floor):
        receipt = floor.start_receiving()
        line = floor.process_received_item(str(receipt.id), "SKU-1", 5)

        task = floor.complete_put_away_task(str(line.putaway_task_id), put_quantity=4)

        assert task.put_quantity == 4
        assert floor.get_inventory("SKU-1")["on_hand"] == 4

    def test_receipts_track_the_purchase_order(self, floor, inbound):
        po, asn = inbound
        receipt = floor.start_receiving(asn_id=str(asn.id))
        floor.process_received_item(str(receipt.id), "SKU-1", 10)
        assert floor.get_purchase_order(str(po.id)).status == PurchaseOrderStatus.PARTIALLY_RECEIVED.value

        floor.process_received_item(str(receipt.id), "SKU-2", 4)
        receipt = floor.complete_receiving(str(receipt.id))

        assert receipt.status == ReceiptStatus.COMPLETED.value
        assert floor.get_purchase_order(str(po.id)).status == PurchaseOrderStatus.RECEIVED.value

    def test_sku_not_on_purchase_order_is_rejected(self, floor, inbound):
        floor.create_product("SKU-3", "Gizmo")
        _, asn = inbound
        receipt = floor.start_receiving(asn_id=str(asn.id))

        with pytest.raises(ValidationError):
            floor.process_received_item(str(receipt.id), "SKU-3", 1)

    def test_quantity_must_be_positive(self, floor):
        receipt = floor.start_receiving()
        with pytest.raises(ValidationError):
            floor.process_received_item(str(receipt.id), "SKU-1", 0)

    def test_lot_tracked_products_need_a_lot(self, floor):
        floor.update_product("SKU-1", lot_tracked=True)
        receipt = floor.start_receiving()
        with pytest.raises(ValidationError):
            floor.process_received_item(str(receipt.id), "SKU-1", 5)


class TestDiscrepancies:
    def test_overage(self, floor, inbound):
        _, asn = inbound
        receipt = floor.start_receiving(asn_id=str(asn.id))

        line = floor.process_received_item(str(receipt.id), "SKU-1", 12)

        assert (line.discrepancy_type, line.discrepancy_quantity) == (DiscrepancyType.OVERAGE.value, 2)

    def test_missing_items_are_shortages(self, floor, inbound):
        _, asn = inbound
        receipt = floor.start_receiving(asn_id=str(asn.id))
        floor.process_received_item(str(receipt.id), "SKU-1", 10)

        receipt = floor.complete_receiving(str(receipt.id))

        assert receipt.status == ReceiptStatus.DISCREPANCY.value
        shortage = next(line for line in receipt.lines if line.sku == "SKU-2")
        assert (shortage.discrepancy_type, shortage.discrepancy_quantity) == (DiscrepancyType.SHORTAGE.value, 4)

    def test_completing_marks_the_asn_received(self, floor, inbound):
        _, asn = inbound
        receipt = floor.start_receiving(asn_id=str(asn.id))
        floor.complete_receiving(str(receipt.id))

        assert floor.store.get(ASNS, str(asn.id)).status == AsnStatus.RECEIVED.value

    def test_completed_receipt_cannot_complete_again(self, floor):
        receipt = floor.start_receiving()
        floor.complete_receiving(str(receipt.id))
        with pytest.raises(StateConflictError):
            floor.complete_receiving(str(receipt.id))


class TestLotsAndQuality:
    def test_passed_item_creates_an_approved_lot(self, floor):
        receipt = floor.start_receiving()

        floor.process_received_item(
            str(receipt.id), "SKU-1", 10, lot_number="L1", expiry_date=EXPIRY, quality_check="Passed"
        )

        lot = floor.get_lots_by_product("SKU-1")[0]
        assert (lot.lot_number, lot.quality_status, lot.quantity_received) == ("L1", "Approved", 10)

    def test_put_away_stock_carries_lot_expiry(self, floor):
        receipt = floor.start_receiving()
        line = floor.process_received_item(
            str(receipt.id), "SKU-1", 10, lot_number="L1", expiry_date=EXPIRY, quality_check="Passed"
        )

        floor.complete_put_away_task(str(line.putaway_task_id))

        row = floor.get_inventory("SKU-1")["locations"][0]
        assert (row["lot_number"], row["expiry_date"]) == ("L1", EXPIRY)

    def test_failed_item_is_rejected_and_not_put_away(self, floor):
        receipt = floor.start_receiving()

        line = floor.process_received_item(str(receipt.id), "SKU-1", 10, lot_number="L-BAD", quality_check="Failed")

        assert line.putaway_task_id is None
        assert floor.get_lots_by_product("SKU-1")[0].quality_status == QualityStatus.REJECTED.value
        assert floor.get_inventory("SKU-1")["in_transit"] == 0


class TestCapacity:
    def test_no_location_with_room(self, floor):
        receipt = floor.start_receiving()

        with pytest.raises(NoCapacityError):
            floor.process_received_item(str(receipt.id), "SKU-1", 600)

        line = floor.get_receipt(str(receipt.id)).lines[0]
        assert (line.qty_received, line.putaway_task_id) == (600, None)

    def test_retry_after_adding_space(self, floor):
        receipt = floor.start_receiving()
        with pytest.raises(NoCapacityError):
            floor.process_received_item(str(receipt.id), "SKU-1", 600)
        floor.create_location("B-02", "B", location_type="Bulk", capacity=1000)
        line_id = str(floor.get_receipt(str(receipt.id)).lines[0].id)

        task = floor.assign_put_away(str(receipt.id), line_id)

        assert task.destination_code == "B-02"
        assert floor.assign_put_away(str(receipt.id), line_id).id == task.id

    def test_routed_units_count_against_capacity(self, floor):
        first = floor.start_receiving()
        second = floor.start_receiving()
        floor.process_received_item(str(first.id), "SKU-1", 300)

        with pytest.raises(NoCapacityError):
            floor.process_received_item(str(second.id), "SKU-2", 300)
