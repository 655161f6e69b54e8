"""Stock domain events — immutable facts about ledger movements and lots.

All events are past tense, versioned, and carry the resulting on-hand and
allocated figures of the record they touched.
"""

from protean.fields import Date, DateTime, Identifier, Integer, String

from warehouse.domain import warehouse


@warehouse.event(part_of="InventoryRecord")
class StockAdjusted:
    """On-hand quantity of a (sku, location, lot) record changed."""

    __version__ = 1

    record_id = Identifier(required=True)
    sku = Identifier(required=True)
    location_code = Identifier(required=True)
    lot_number = String()
    delta = Integer(required=True)
    on_hand = Integer(required=True)
    allocated = Integer(required=True)
    reason = String(required=True)
    reference = String()
    adjusted_at = DateTime(required=True)


@warehouse.event(part_of="InventoryRecord")
class StockReserved:
    """Units of a record were reserved for an allocation."""

    __version__ = 1

    record_id = Identifier(required=True)
    sku = Identifier(required=True)
    allocation_id = Identifier(required=True)
    order_id = Identifier()
    quantity = Integer(required=True)
    on_hand = Integer(required=True)
    allocated = Integer(required=True)
    reserved_at = DateTime(required=True)


@warehouse.event(part_of="InventoryRecord")
class StockCommitted:
    """Reserved units left the building: allocated and on-hand both decreased."""

    __version__ = 1

    record_id = Identifier(required=True)
    sku = Identifier(required=True)
    allocation_id = Identifier(required=True)
    quantity = Integer(required=True)
    on_hand = Integer(required=True)
    allocated = Integer(required=True)
    committed_at = DateTime(required=True)


@warehouse.event(part_of="InventoryRecord")
class StockReleased:
    """Reserved units were returned to available stock."""

    __version__ = 1

    record_id = Identifier(required=True)
    sku = Identifier(required=True)
    allocation_id = Identifier(required=True)
    quantity = Integer(required=True)
    on_hand = Integer(required=True)
    allocated = Integer(required=True)
    released_at = DateTime(required=True)


@warehouse.event(part_of="Lot")
class LotCreated:
    """A lot of a product was registered."""

    __version__ = 1

    sku = Identifier(required=True)
    lot_number = String(required=True)
    expiry_date = Date()
    quality_status = String(required=True)
    created_at = DateTime(required=True)


@warehouse.event(part_of="Lot")
class LotQualityStatusChanged:
    """A lot passed, failed or was pulled into quarantine."""

    __version__ = 1

    sku = Identifier(required=True)
    lot_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)
