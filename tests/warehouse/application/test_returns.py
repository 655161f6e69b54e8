"""Application tests for return authorizations and returned-goods inspection."""

import pytest
from protean.exceptions import ValidationError

from warehouse.errors import LabelGenerationError, StateConflictError
from warehouse.shipping.rma import RmaStatus


@pytest.fixture()
def shipped(floor, packed_order, carriers):
    shipment = floor.create_shipment([str(packed_order.id)], carrier_code="FAST")
    floor.generate_shipping_labels(str(shipment.id))
    return floor.get_order(str(packed_order.id))


@pytest.fixture()
def rma(floor, shipped):
    return floor.create_return_authorization(
        str(shipped.id),
        [{"sku": "SKU-1", "quantity": 2, "refund_amount": 30.0}],
        "not_needed",
    )


class TestAuthorization:
    def test_authorized_with_window(self, floor, shipped, rma, clock):
        assert rma.status == RmaStatus.AUTHORIZED.value
        assert rma.estimated_refund == 30.0
        assert str(rma.shipment_id) == str(shipped.shipment_id)
        assert (rma.expires_at - clock.now()).days == 30

    def test_unshipped_order_cannot_be_returned(self, floor, packed_order):
        with pytest.raises(StateConflictError):
            floor.create_return_authorization(str(packed_order.id), [{"sku": "SKU-1", "quantity": 1}], "other")

    def test_more_than_shipped_is_rejected(self, floor, shipped):
        with pytest.raises(ValidationError):
            floor.create_return_authorization(str(shipped.id), [{"sku": "SKU-1", "quantity": 3}], "other")

    def test_sku_not_on_order_is_rejected(self, floor, shipped):
        with pytest.raises(ValidationError):
            floor.create_return_authorization(str(shipped.id), [{"sku": "SKU-2", "quantity": 1}], "other")


class TestInspection:
    def test_resaleable_items_are_restocked(self, floor, rma):
        rma = floor.process_received_return(
            str(rma.id), [{"sku": "SKU-1", "quantity": 2, "condition": "new"}], processed_by="inspector-1"
        )

        assert rma.status == RmaStatus.COMPLETED.value
        assert rma.actual_refund == 30.0
        assert floor.get_inventory("SKU-1", "RETURNS")["on_hand"] == 2

    def test_damaged_items_are_refunded_in_part_and_not_restocked(self, floor, rma):
        rma = floor.process_received_return(str(rma.id), [{"sku": "SKU-1", "quantity": 2, "condition": "damaged"}])

        assert rma.actual_refund == 15.0
        assert floor.get_inventory("SKU-1", "RETURNS")["on_hand"] == 0

    def test_partial_return_is_prorated(self, floor, rma):
        rma = floor.process_received_return(str(rma.id), [{"sku": "SKU-1", "quantity": 1, "condition": "used"}])

        assert rma.actual_refund == 12.0

    def test_return_is_processed_once(self, floor, rma):
        floor.process_received_return(str(rma.id), [{"sku": "SKU-1", "quantity": 2, "condition": "new"}])
        with pytest.raises(StateConflictError):
            floor.process_received_return(str(rma.id), [{"sku": "SKU-1", "quantity": 2, "condition": "new"}])
        assert floor.get_inventory("SKU-1", "RETURNS")["on_hand"] == 2

    def test_expired_authorization_is_rejected(self, floor, rma, clock):
        clock.advance(days=31)

        rma = floor.process_received_return(str(rma.id), [{"sku": "SKU-1", "quantity": 2, "condition": "new"}])

        assert rma.status == RmaStatus.REJECTED.value
        assert rma.rejection_reason == "Return authorization expired"
        assert floor.get_inventory("SKU-1", "RETURNS")["on_hand"] == 0


class TestReturnLabel:
    def test_label_uses_the_original_carrier(self, floor, rma, carrier):
        rma = floor.generate_return_shipping_label(str(rma.id))

        assert rma.has_return_label
        assert rma.return_carrier_code == "FAST"
        assert rma.return_tracking_number == carrier.labels_created[-1]
        assert rma.return_label_url.endswith(f"{rma.return_tracking_number}.pdf")
        assert floor.get_return_authorization(str(rma.id)).return_tracking_number == rma.return_tracking_number

    def test_named_carrier(self, floor, rma):
        rma = floor.generate_return_shipping_label(str(rma.id), carrier_code="SLOW")
        assert rma.return_carrier_code == "SLOW"

    def test_second_request_keeps_the_first_label(self, floor, rma, carrier):
        first = floor.generate_return_shipping_label(str(rma.id))
        bought = len(carrier.labels_created)

        second = floor.generate_return_shipping_label(str(rma.id))

        assert second.return_tracking_number == first.return_tracking_number
        assert len(carrier.labels_created) == bought

    def test_refused_label_records_nothing(self, floor, rma, carrier):
        carrier.configure(should_succeed=False)

        with pytest.raises(LabelGenerationError):
            floor.generate_return_shipping_label(str(rma.id))

        assert not floor.get_return_authorization(str(rma.id)).has_return_label

    def test_processed_return_gets_no_label(self, floor, rma):
        floor.process_received_return(str(rma.id), [{"sku": "SKU-1", "quantity": 2, "condition": "new"}])
        with pytest.raises(StateConflictError):
            floor.generate_return_shipping_label(str(rma.id))
