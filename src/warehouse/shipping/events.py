"""Shipping domain events — carriers, shipments and returns."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from warehouse.domain import warehouse


# ---------------------------------------------------------------------------
# Carrier
# ---------------------------------------------------------------------------
@warehouse.event(part_of="Carrier")
class CarrierRegistered:
    __version__ = 1

    carrier_code = Identifier(required=True)
    name = String(required=True)
    on_time_rate = Float(required=True)
    transit_days = Integer(required=True)
    registered_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Shipment
# ---------------------------------------------------------------------------
@warehouse.event(part_of="Shipment")
class ShipmentCreated:
    __version__ = 1

    shipment_id = Identifier(required=True)
    shipment_number = String(required=True)
    order_ids = Text(required=True)  # JSON list
    carrier_code = String(required=True)
    service_level = String(required=True)
    package_count = Integer(required=True)
    estimated_cost = Float()
    created_at = DateTime(required=True)


@warehouse.event(part_of="Shipment")
class ShipmentManifested:
    """Labels were bought for every package of the shipment."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    tracking_numbers = Text(required=True)  # JSON list
    estimated_delivery = DateTime()
    manifested_at = DateTime(required=True)


@warehouse.event(part_of="Shipment")
class ShipmentTrackingUpdated:
    __version__ = 1

    shipment_id = Identifier(required=True)
    tracking_status = String(required=True)
    status = String(required=True)
    location = String()
    description = String()
    occurred_at = DateTime(required=True)


@warehouse.event(part_of="Shipment")
class ShipmentDelivered:
    __version__ = 1

    shipment_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON list
    delivered_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------
@warehouse.event(part_of="ReturnAuthorization")
class ReturnAuthorized:
    __version__ = 1

    rma_id = Identifier(required=True)
    rma_number = String(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    estimated_refund = Float(required=True)
    expires_at = DateTime(required=True)
    authorized_at = DateTime(required=True)


@warehouse.event(part_of="ReturnAuthorization")
class ReturnProcessed:
    __version__ = 1

    rma_id = Identifier(required=True)
    actual_refund = Float(required=True)
    units_restocked = Integer(required=True)
    processed_by = String()
    processed_at = DateTime(required=True)


@warehouse.event(part_of="ReturnAuthorization")
class ReturnRejected:
    __version__ = 1

    rma_id = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@warehouse.event(part_of="ReturnAuthorization")
class ReturnLabelIssued:
    """A prepaid label was bought for the customer to send the goods back."""

    __version__ = 1

    rma_id = Identifier(required=True)
    carrier_code = String(required=True)
    tracking_number = String(required=True)
    label_url = String()
    issued_at = DateTime(required=True)
