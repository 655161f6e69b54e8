"""StockMovement aggregate — append-only log of every ledger mutation."""

from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from warehouse.domain import warehouse


class MovementKind(Enum):
    ADJUST = "Adjust"
    RESERVE = "Reserve"
    COMMIT = "Commit"
    RELEASE = "Release"


@warehouse.aggregate
class StockMovement:
    sku = Identifier(required=True)
    location_code = Identifier(required=True)
    lot_number = String(max_length=50)
    kind = String(required=True, choices=MovementKind)
    quantity = Integer(required=True)
    on_hand_before = Integer(required=True)
    on_hand_after = Integer(required=True)
    allocated_before = Integer(required=True)
    allocated_after = Integer(required=True)
    reason = String(max_length=200)
    reference = String(max_length=100)
    occurred_at = DateTime(required=True)
