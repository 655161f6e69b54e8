"""PickTask aggregate — one trip to one location for one SKU within a wave.

A task covers every reserved allocation of its wave at that (location, SKU),
so there is exactly one live task per consolidation group.

State Machine:
    PENDING → ASSIGNED → IN_PROGRESS → COMPLETED
    PENDING | ASSIGNED | IN_PROGRESS → CANCELLED
"""

import json
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.outbound.events import (
    PickTaskAssigned,
    PickTaskCancelled,
    PickTaskCompleted,
    PickTaskCreated,
    PickTaskReduced,
    PickTaskStarted,
)


class PickTaskStatus(Enum):
    PENDING = "Pending"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In_Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


_VALID_TRANSITIONS = {
    PickTaskStatus.PENDING: {PickTaskStatus.ASSIGNED, PickTaskStatus.CANCELLED},
    PickTaskStatus.ASSIGNED: {PickTaskStatus.IN_PROGRESS, PickTaskStatus.CANCELLED},
    PickTaskStatus.IN_PROGRESS: {PickTaskStatus.COMPLETED, PickTaskStatus.CANCELLED},
    PickTaskStatus.COMPLETED: set(),  # terminal
    PickTaskStatus.CANCELLED: set(),  # terminal
}

UNSTARTED_STATUSES = {PickTaskStatus.PENDING.value, PickTaskStatus.ASSIGNED.value}
CLOSED_STATUSES = {PickTaskStatus.COMPLETED.value, PickTaskStatus.CANCELLED.value}


@warehouse.aggregate
class PickTask:
    wave_id = Identifier(required=True)
    sku = String(required=True, max_length=50)
    location_code = String(required=True, max_length=50)
    quantity = Integer(required=True, min_value=0)
    picked_quantity = Integer(default=0)
    short_quantity = Integer(default=0)
    allocation_ids = Text(default="[]")  # JSON list, commit order
    sequence = Integer(default=0)
    assignee = String(max_length=100)
    status = String(choices=PickTaskStatus, default=PickTaskStatus.PENDING.value)
    created_at = DateTime()
    assigned_at = DateTime()
    started_at = DateTime()
    completed_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, wave_id, sku, location_code, allocations, sequence, now):
        task = cls(
            wave_id=wave_id,
            sku=sku,
            location_code=location_code,
            quantity=sum(a.outstanding for a in allocations),
            allocation_ids=json.dumps([str(a.id) for a in allocations]),
            sequence=sequence,
            status=PickTaskStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        task.raise_(
            PickTaskCreated(
                task_id=str(task.id),
                wave_id=str(wave_id),
                sku=sku,
                location_code=location_code,
                quantity=task.quantity,
                sequence=sequence,
                created_at=now,
            )
        )
        return task

    @property
    def covered_allocation_ids(self) -> list[str]:
        return json.loads(self.allocation_ids or "[]")

    @property
    def is_live(self) -> bool:
        return self.status != PickTaskStatus.CANCELLED.value

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    def _assert_can_transition(self, target: PickTaskStatus) -> None:
        current = PickTaskStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise StateConflictError(
                {"status": [f"Pick task {self.id} cannot transition from {current.value} to {target.value}"]}
            )

    def assign(self, worker_id: str, now) -> None:
        if not worker_id:
            raise ValidationError({"worker_id": ["Worker is required"]})
        self._assert_can_transition(PickTaskStatus.ASSIGNED)
        self.status = PickTaskStatus.ASSIGNED.value
        self.assignee = worker_id
        self.assigned_at = now
        self.updated_at = now
        self.raise_(PickTaskAssigned(task_id=str(self.id), assignee=worker_id, assigned_at=now))

    def start(self, now) -> None:
        self._assert_can_transition(PickTaskStatus.IN_PROGRESS)
        self.status = PickTaskStatus.IN_PROGRESS.value
        self.started_at = now
        self.updated_at = now
        self.raise_(PickTaskStarted(task_id=str(self.id), started_at=now))

    def complete(self, picked: int, now) -> None:
        self._assert_can_transition(PickTaskStatus.COMPLETED)
        if picked < 0 or picked > self.quantity:
            raise ValidationError({"actual_qty": [f"Picked quantity must be between 0 and {self.quantity}"]})

        self.status = PickTaskStatus.COMPLETED.value
        self.picked_quantity = picked
        self.short_quantity = self.quantity - picked
        self.completed_at = now
        self.updated_at = now
        self.raise_(
            PickTaskCompleted(
                task_id=str(self.id),
                wave_id=str(self.wave_id),
                quantity=self.quantity,
                picked_quantity=picked,
                short_quantity=self.short_quantity,
                completed_at=now,
            )
        )

    def cancel(self, reason: str | None, now) -> None:
        self._assert_can_transition(PickTaskStatus.CANCELLED)
        self.status = PickTaskStatus.CANCELLED.value
        self.updated_at = now
        self.raise_(PickTaskCancelled(task_id=str(self.id), reason=reason, cancelled_at=now))

    def extend(self, allocations, now) -> None:
        """Cover more allocations of the same (location, SKU) group."""
        if self.status not in UNSTARTED_STATUSES:
            raise StateConflictError({"status": [f"Pick task {self.id} has already started"]})
        ids = self.covered_allocation_ids + [str(a.id) for a in allocations]
        self.allocation_ids = json.dumps(ids)
        self.quantity = self.quantity + sum(a.outstanding for a in allocations)
        self.updated_at = now

    def withdraw(self, allocations, now) -> None:
        """Stop covering allocations of a cancelled order; cancels the task when nothing is left."""
        if self.status not in UNSTARTED_STATUSES:
            raise StateConflictError({"status": [f"Pick task {self.id} has already started"]})

        withdrawn = {str(a.id) for a in allocations}
        previous = self.quantity
        self.allocation_ids = json.dumps([aid for aid in self.covered_allocation_ids if aid not in withdrawn])
        self.quantity = previous - sum(a.outstanding for a in allocations)
        self.updated_at = now
        if not self.covered_allocation_ids:
            self.cancel("Order cancelled", now)
        else:
            self.raise_(
                PickTaskReduced(
                    task_id=str(self.id),
                    previous_quantity=previous,
                    new_quantity=self.quantity,
                    reduced_at=now,
                )
            )
