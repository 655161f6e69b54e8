"""PutAwayTask aggregate — move received stock from the dock to its destination."""

import json
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, Identifier, Integer, String, Text

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.inbound.events import PutAwayTaskCompleted, PutAwayTaskCreated


class PutAwayTaskStatus(Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"


@warehouse.aggregate
class PutAwayTask:
    receipt_id = Identifier(required=True)
    receipt_line_id = Identifier(required=True)
    sku = String(required=True, max_length=50)
    lot_number = String(max_length=50)
    expiry_date = Date()
    quantity = Integer(required=True, min_value=1)
    from_location = String(required=True, max_length=50)
    destination_code = String(required=True, max_length=50)
    candidates = Text(default="[]")  # JSON list of location codes, best first
    status = String(choices=PutAwayTaskStatus, default=PutAwayTaskStatus.PENDING.value)
    put_quantity = Integer(default=0)
    completed_by = String(max_length=100)
    created_at = DateTime()
    completed_at = DateTime()

    @classmethod
    def create(cls, receipt_id, line, from_location, candidates, now):
        task = cls(
            receipt_id=receipt_id,
            receipt_line_id=str(line.id),
            sku=line.sku,
            lot_number=line.lot_number,
            expiry_date=line.expiry_date,
            quantity=line.qty_received,
            from_location=from_location,
            destination_code=candidates[0],
            candidates=json.dumps(candidates),
            status=PutAwayTaskStatus.PENDING.value,
            created_at=now,
        )
        task.raise_(
            PutAwayTaskCreated(
                task_id=str(task.id),
                receipt_id=str(receipt_id),
                sku=task.sku,
                quantity=task.quantity,
                from_location=from_location,
                destination_code=task.destination_code,
                created_at=now,
            )
        )
        return task

    @property
    def candidate_codes(self) -> list[str]:
        return json.loads(self.candidates or "[]")

    def ensure_pending(self) -> None:
        if self.status != PutAwayTaskStatus.PENDING.value:
            raise StateConflictError({"status": [f"Put-away task {self.id} is already {self.status}"]})

    def complete(self, put_quantity: int, completed_by: str | None, now) -> None:
        self.ensure_pending()
        if put_quantity <= 0 or put_quantity > self.quantity:
            raise ValidationError({"put_qty": [f"Put quantity must be between 1 and {self.quantity}"]})

        self.status = PutAwayTaskStatus.COMPLETED.value
        self.put_quantity = put_quantity
        self.completed_by = completed_by
        self.completed_at = now
        self.raise_(
            PutAwayTaskCompleted(
                task_id=str(self.id),
                sku=self.sku,
                destination_code=self.destination_code,
                put_quantity=put_quantity,
                completed_by=completed_by,
                completed_at=now,
            )
        )
