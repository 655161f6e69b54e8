"""Lot aggregate — a batch of one product with shared expiry and quality status."""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, Identifier, Integer, String

from warehouse.domain import warehouse
from warehouse.stock.events import LotCreated, LotQualityStatusChanged


class QualityStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    QUARANTINE = "Quarantine"


# Stock in these lots is never handed out by reservations.
BLOCKED_QUALITY_STATUSES = {QualityStatus.REJECTED.value, QualityStatus.QUARANTINE.value}


def lot_key(sku: str, lot_number: str) -> str:
    return f"{sku}:{lot_number}"


@warehouse.aggregate
class Lot:
    id = Identifier(identifier=True)
    sku = Identifier(required=True)
    lot_number = String(required=True, max_length=50)
    batch_number = String(max_length=50)
    manufacturing_date = Date()
    expiry_date = Date()
    received_on = DateTime()
    supplier = String(max_length=200)
    quantity_received = Integer(default=0, min_value=0)
    quality_status = String(choices=QualityStatus, default=QualityStatus.PENDING.value)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(
        cls,
        sku: str,
        lot_number: str,
        now,
        expiry_date=None,
        manufacturing_date=None,
        batch_number: str | None = None,
        supplier: str | None = None,
        quantity_received: int = 0,
        quality_status: str = QualityStatus.PENDING.value,
    ):
        if not lot_number:
            raise ValidationError({"lot_number": ["Lot number is required"]})
        if expiry_date and manufacturing_date and expiry_date <= manufacturing_date:
            raise ValidationError({"expiry_date": ["Expiry date must be after the manufacturing date"]})

        lot = cls(
            id=lot_key(sku, lot_number),
            sku=sku,
            lot_number=lot_number,
            batch_number=batch_number,
            manufacturing_date=manufacturing_date,
            expiry_date=expiry_date,
            received_on=now,
            supplier=supplier,
            quantity_received=quantity_received,
            quality_status=quality_status,
            created_at=now,
            updated_at=now,
        )
        lot.raise_(
            LotCreated(
                sku=sku,
                lot_number=lot_number,
                expiry_date=expiry_date,
                quality_status=lot.quality_status,
                created_at=now,
            )
        )
        return lot

    @property
    def is_blocked(self) -> bool:
        return self.quality_status in BLOCKED_QUALITY_STATUSES

    def record_receipt(self, quantity: int, now) -> None:
        self.quantity_received = (self.quantity_received or 0) + quantity
        self.updated_at = now

    def change_quality_status(self, status: str, now) -> None:
        if status not in {s.value for s in QualityStatus}:
            raise ValidationError({"quality_status": [f"Unknown quality status: {status}"]})
        previous = self.quality_status
        if previous == status:
            return
        self.quality_status = status
        self.updated_at = now
        self.raise_(
            LotQualityStatusChanged(
                sku=self.sku,
                lot_number=self.lot_number,
                previous_status=previous,
                new_status=status,
                changed_at=now,
            )
        )
