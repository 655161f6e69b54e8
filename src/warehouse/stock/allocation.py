"""Allocation aggregate — a reservation of units in one inventory record.

An allocation is created by ``InventoryLedger.reserve`` and consumed exactly
once: every reserved unit ends up either committed (picked) or released.
Partial commits and releases accumulate until nothing is outstanding.

    RESERVED → COMMITTED   (at least one unit committed)
    RESERVED → RELEASED    (every unit released)
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError


class AllocationStatus(Enum):
    RESERVED = "Reserved"
    COMMITTED = "Committed"
    RELEASED = "Released"


@warehouse.aggregate
class Allocation:
    order_id = Identifier()  # order id, or a caller reference for ad-hoc reservations
    line_id = Identifier()
    sku = Identifier(required=True)
    location_code = Identifier(required=True)
    lot_number = String(max_length=50)
    record_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    committed = Integer(default=0)
    released = Integer(default=0)
    status = String(choices=AllocationStatus, default=AllocationStatus.RESERVED.value)
    created_at = DateTime()
    closed_at = DateTime()

    @property
    def outstanding(self) -> int:
        return self.quantity - (self.committed or 0) - (self.released or 0)

    @property
    def is_open(self) -> bool:
        return self.status == AllocationStatus.RESERVED.value

    def _take(self, quantity: int | None, action: str) -> int:
        if not self.is_open:
            raise StateConflictError(
                {"allocation": [f"Cannot {action} allocation {self.id}: it is already {self.status}"]}
            )
        quantity = self.outstanding if quantity is None else quantity
        if quantity <= 0:
            raise ValidationError({"quantity": [f"Quantity to {action} must be positive"]})
        if quantity > self.outstanding:
            raise StateConflictError(
                {"allocation": [f"Cannot {action} {quantity} of allocation {self.id}: {self.outstanding} outstanding"]}
            )
        return quantity

    def _close_if_consumed(self, now) -> None:
        if self.outstanding == 0:
            self.status = (
                AllocationStatus.COMMITTED.value if self.committed else AllocationStatus.RELEASED.value
            )
            self.closed_at = now

    def commit(self, quantity: int | None, now) -> int:
        quantity = self._take(quantity, "commit")
        self.committed = (self.committed or 0) + quantity
        self._close_if_consumed(now)
        return quantity

    def release(self, quantity: int | None, now) -> int:
        quantity = self._take(quantity, "release")
        self.released = (self.released or 0) + quantity
        self._close_if_consumed(now)
        return quantity
