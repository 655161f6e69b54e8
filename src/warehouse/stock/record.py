"""InventoryRecord aggregate — stock of one SKU, in one lot, at one location.

Stock Level Model:
    on_hand:    Physical count at the location
    allocated:  Reserved for allocations (not yet picked)
    available:  on_hand - allocated

Records are created on the first receipt of a (sku, location, lot) triple and
are never deleted, only zeroed. The set of records for a SKU is the complete
breakdown of its on-hand stock.
"""

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, Identifier, Integer, String

from warehouse.domain import warehouse
from warehouse.errors import NegativeStockError
from warehouse.stock.events import StockAdjusted, StockCommitted, StockReleased, StockReserved


def record_key(sku: str, location_code: str, lot_number: str | None) -> str:
    return f"{sku}|{location_code}|{lot_number or ''}"


@warehouse.aggregate
class InventoryRecord:
    id = Identifier(identifier=True)
    sku = Identifier(required=True)
    location_code = Identifier(required=True)
    lot_number = String(max_length=50)
    on_hand = Integer(default=0)
    allocated = Integer(default=0)
    expiry_date = Date()
    received_on = DateTime()
    updated_at = DateTime()

    @invariant.post
    def quantities_cannot_be_negative(self):
        if (self.on_hand or 0) < 0 or (self.allocated or 0) < 0:
            raise ValidationError({"on_hand": ["Stock quantities cannot be negative"]})

    @invariant.post
    def allocated_cannot_exceed_on_hand(self):
        if (self.allocated or 0) > (self.on_hand or 0):
            raise ValidationError({"allocated": ["Allocated quantity cannot exceed on-hand quantity"]})

    @property
    def available(self) -> int:
        return self.on_hand - self.allocated

    @classmethod
    def open(cls, sku, location_code, lot_number, now, expiry_date=None):
        return cls(
            id=record_key(sku, location_code, lot_number),
            sku=sku,
            location_code=location_code,
            lot_number=lot_number,
            on_hand=0,
            allocated=0,
            expiry_date=expiry_date,
            received_on=now,
            updated_at=now,
        )

    def adjust(self, delta: int, reason: str, now, reference: str | None = None) -> None:
        new_on_hand = self.on_hand + delta
        if new_on_hand < self.allocated:
            raise NegativeStockError(
                {
                    "on_hand": [
                        f"Adjusting {self.id} by {delta} leaves {new_on_hand} on hand "
                        f"against {self.allocated} allocated"
                    ]
                }
            )

        self.on_hand = new_on_hand
        self.updated_at = now
        self.raise_(
            StockAdjusted(
                record_id=str(self.id),
                sku=self.sku,
                location_code=self.location_code,
                lot_number=self.lot_number,
                delta=delta,
                on_hand=self.on_hand,
                allocated=self.allocated,
                reason=reason,
                reference=reference,
                adjusted_at=now,
            )
        )

    def reserve(self, quantity: int, allocation_id: str, order_id: str | None, now) -> None:
        if quantity <= 0 or quantity > self.available:
            raise ValidationError({"quantity": [f"Cannot reserve {quantity} of {self.available} available"]})

        self.allocated = self.allocated + quantity
        self.updated_at = now
        self.raise_(
            StockReserved(
                record_id=str(self.id),
                sku=self.sku,
                allocation_id=allocation_id,
                order_id=order_id,
                quantity=quantity,
                on_hand=self.on_hand,
                allocated=self.allocated,
                reserved_at=now,
            )
        )

    def commit(self, quantity: int, allocation_id: str, now) -> None:
        if quantity <= 0 or quantity > self.allocated:
            raise NegativeStockError({"allocated": [f"Cannot commit {quantity} of {self.allocated} allocated"]})

        with atomic_change(self):
            self.allocated = self.allocated - quantity
            self.on_hand = self.on_hand - quantity
            self.updated_at = now
        self.raise_(
            StockCommitted(
                record_id=str(self.id),
                sku=self.sku,
                allocation_id=allocation_id,
                quantity=quantity,
                on_hand=self.on_hand,
                allocated=self.allocated,
                committed_at=now,
            )
        )

    def release(self, quantity: int, allocation_id: str, now) -> None:
        if quantity <= 0 or quantity > self.allocated:
            raise NegativeStockError({"allocated": [f"Cannot release {quantity} of {self.allocated} allocated"]})

        self.allocated = self.allocated - quantity
        self.updated_at = now
        self.raise_(
            StockReleased(
                record_id=str(self.id),
                sku=self.sku,
                allocation_id=allocation_id,
                quantity=quantity,
                on_hand=self.on_hand,
                allocated=self.allocated,
                released_at=now,
            )
        )
