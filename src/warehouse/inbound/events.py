"""Inbound domain events — purchase orders, ASNs, receipts and put-away."""

from protean.fields import Date, DateTime, Float, Identifier, Integer, String

from warehouse.domain import warehouse


# ---------------------------------------------------------------------------
# Purchase order
# ---------------------------------------------------------------------------
@warehouse.event(part_of="PurchaseOrder")
class PurchaseOrderCreated:
    __version__ = 1

    purchase_order_id = Identifier(required=True)
    po_number = String(required=True)
    supplier_name = String(required=True)
    line_count = Integer(required=True)
    total_value = Float(required=True)
    created_at = DateTime(required=True)


@warehouse.event(part_of="PurchaseOrder")
class PurchaseOrderConfirmed:
    __version__ = 1

    purchase_order_id = Identifier(required=True)
    confirmed_at = DateTime(required=True)


@warehouse.event(part_of="PurchaseOrder")
class PurchaseOrderReceiptRecorded:
    """Units of a purchase order line arrived at the dock."""

    __version__ = 1

    purchase_order_id = Identifier(required=True)
    sku = String(required=True)
    quantity = Integer(required=True)
    status = String(required=True)
    recorded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# ASN
# ---------------------------------------------------------------------------
@warehouse.event(part_of="AdvanceShippingNotice")
class AsnRegistered:
    __version__ = 1

    asn_id = Identifier(required=True)
    asn_number = String(required=True)
    purchase_order_id = Identifier()
    expected_arrival = DateTime()
    registered_at = DateTime(required=True)


@warehouse.event(part_of="AdvanceShippingNotice")
class AsnStatusChanged:
    __version__ = 1

    asn_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Receipt
# ---------------------------------------------------------------------------
@warehouse.event(part_of="Receipt")
class ReceivingStarted:
    __version__ = 1

    receipt_id = Identifier(required=True)
    purchase_order_id = Identifier()
    asn_id = Identifier()
    dock_door = String()
    started_at = DateTime(required=True)


@warehouse.event(part_of="Receipt")
class ItemReceived:
    __version__ = 1

    receipt_id = Identifier(required=True)
    line_id = Identifier(required=True)
    sku = String(required=True)
    quantity = Integer(required=True)
    lot_number = String()
    expiry_date = Date()
    quality_check = String(required=True)
    received_at = DateTime(required=True)


@warehouse.event(part_of="Receipt")
class ReceivingDiscrepancyRecorded:
    """Received quantity differs from the expected quantity."""

    __version__ = 1

    receipt_id = Identifier(required=True)
    line_id = Identifier(required=True)
    sku = String(required=True)
    expected_quantity = Integer(required=True)
    received_quantity = Integer(required=True)
    discrepancy_type = String(required=True)
    recorded_at = DateTime(required=True)


@warehouse.event(part_of="Receipt")
class ReceivingCompleted:
    __version__ = 1

    receipt_id = Identifier(required=True)
    status = String(required=True)
    units_received = Integer(required=True)
    completed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Put-away
# ---------------------------------------------------------------------------
@warehouse.event(part_of="PutAwayTask")
class PutAwayTaskCreated:
    __version__ = 1

    task_id = Identifier(required=True)
    receipt_id = Identifier(required=True)
    sku = String(required=True)
    quantity = Integer(required=True)
    from_location = String(required=True)
    destination_code = String(required=True)
    created_at = DateTime(required=True)


@warehouse.event(part_of="PutAwayTask")
class PutAwayTaskCompleted:
    __version__ = 1

    task_id = Identifier(required=True)
    sku = String(required=True)
    destination_code = String(required=True)
    put_quantity = Integer(required=True)
    completed_by = String()
    completed_at = DateTime(required=True)
