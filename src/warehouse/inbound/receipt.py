"""Receipt aggregate — one receiving session at a dock door.

Each received item becomes a line. A line whose received quantity differs
from what was expected carries an Overage or Shortage discrepancy.
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, HasMany, Identifier, Integer, String

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.inbound.events import (
    ItemReceived,
    ReceivingCompleted,
    ReceivingDiscrepancyRecorded,
    ReceivingStarted,
)


class ReceiptStatus(Enum):
    IN_PROGRESS = "In_Progress"
    COMPLETED = "Completed"
    DISCREPANCY = "Discrepancy"


class QualityCheck(Enum):
    PASSED = "Passed"
    PENDING = "Pending"
    FAILED = "Failed"


class DiscrepancyType(Enum):
    OVERAGE = "Overage"
    SHORTAGE = "Shortage"


@warehouse.entity(part_of="Receipt")
class ReceiptLine:
    sku = String(required=True, max_length=50)
    qty_expected = Integer(default=0)
    qty_received = Integer(default=0)
    lot_number = String(max_length=50)
    expiry_date = Date()
    quality_check = String(choices=QualityCheck, default=QualityCheck.PENDING.value)
    damage_report = String(max_length=500)
    discrepancy_type = String(choices=DiscrepancyType)
    discrepancy_quantity = Integer(default=0)
    putaway_task_id = Identifier()
    received_at = DateTime()

    @property
    def is_received(self) -> bool:
        return self.received_at is not None


@warehouse.aggregate
class Receipt:
    purchase_order_id = Identifier()
    asn_id = Identifier()
    received_by = String(max_length=100)
    dock_door = String(max_length=20)
    receiving_mode = String(max_length=20, default="standard")
    lines = HasMany(ReceiptLine)
    status = String(choices=ReceiptStatus, default=ReceiptStatus.IN_PROGRESS.value)
    started_at = DateTime()
    completed_at = DateTime()

    @classmethod
    def start(cls, now, expected_items=None, **attrs):
        receipt = cls(status=ReceiptStatus.IN_PROGRESS.value, started_at=now, **attrs)
        for item in expected_items or []:
            receipt.add_lines(ReceiptLine(sku=item["sku"], qty_expected=item["quantity"]))
        receipt.raise_(
            ReceivingStarted(
                receipt_id=str(receipt.id),
                purchase_order_id=receipt.purchase_order_id,
                asn_id=receipt.asn_id,
                dock_door=receipt.dock_door,
                started_at=now,
            )
        )
        return receipt

    def line(self, line_id: str) -> ReceiptLine:
        for line in self.lines or []:
            if str(line.id) == str(line_id):
                return line
        raise ValidationError({"line_id": [f"Line {line_id} not found on receipt {self.id}"]})

    def _open_line_for(self, sku):
        for line in self.lines or []:
            if line.sku == sku and not line.is_received:
                return line
        line = ReceiptLine(sku=sku, qty_expected=0)
        self.add_lines(line)
        return line

    def record_item(
        self,
        sku: str,
        quantity: int,
        now,
        lot_number: str | None = None,
        expiry_date=None,
        quality_check: str = QualityCheck.PENDING.value,
        damage_report: str | None = None,
    ) -> ReceiptLine:
        if self.status != ReceiptStatus.IN_PROGRESS.value:
            raise StateConflictError({"status": [f"Receipt {self.id} is {self.status}"]})
        if quality_check not in {q.value for q in QualityCheck}:
            raise ValidationError({"quality_check": [f"Unknown quality check result: {quality_check}"]})

        line = self._open_line_for(sku)
        line.qty_received = quantity
        line.lot_number = lot_number
        line.expiry_date = expiry_date
        line.quality_check = quality_check
        line.damage_report = damage_report
        line.received_at = now

        difference = quantity - line.qty_expected
        self.raise_(
            ItemReceived(
                receipt_id=str(self.id),
                line_id=str(line.id),
                sku=sku,
                quantity=quantity,
                lot_number=lot_number,
                expiry_date=expiry_date,
                quality_check=quality_check,
                received_at=now,
            )
        )
        if difference:
            line.discrepancy_type = (DiscrepancyType.OVERAGE if difference > 0 else DiscrepancyType.SHORTAGE).value
            line.discrepancy_quantity = abs(difference)
            self.raise_(
                ReceivingDiscrepancyRecorded(
                    receipt_id=str(self.id),
                    line_id=str(line.id),
                    sku=sku,
                    expected_quantity=line.qty_expected,
                    received_quantity=quantity,
                    discrepancy_type=line.discrepancy_type,
                    recorded_at=now,
                )
            )
        return line

    def attach_putaway_task(self, line_id: str, task_id: str) -> None:
        self.line(line_id).putaway_task_id = task_id

    @property
    def has_discrepancies(self) -> bool:
        return any(line.discrepancy_type for line in self.lines or [])

    def complete(self, now) -> None:
        if self.status != ReceiptStatus.IN_PROGRESS.value:
            raise StateConflictError({"status": [f"Receipt {self.id} is already {self.status}"]})

        # Expected lines that never arrived are shortages of their whole quantity
        for line in self.lines or []:
            if not line.is_received and line.qty_expected:
                line.discrepancy_type = DiscrepancyType.SHORTAGE.value
                line.discrepancy_quantity = line.qty_expected

        self.status = (ReceiptStatus.DISCREPANCY if self.has_discrepancies else ReceiptStatus.COMPLETED).value
        self.completed_at = now
        self.raise_(
            ReceivingCompleted(
                receipt_id=str(self.id),
                status=self.status,
                units_received=sum(line.qty_received for line in self.lines or []),
                completed_at=now,
            )
        )
