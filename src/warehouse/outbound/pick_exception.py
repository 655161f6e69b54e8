"""PickException aggregate — a discrepancy found at a pick location.

Short picks raise one automatically; pickers can also report one against a
task (damaged stock, wrong item in the slot).

State Machine:
    OPEN → INVESTIGATING → RESOLVED
    OPEN → RESOLVED
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from warehouse.domain import warehouse
from warehouse.errors import StateConflictError
from warehouse.outbound.events import PickExceptionReported, PickExceptionStatusChanged


class PickExceptionStatus(Enum):
    OPEN = "Open"
    INVESTIGATING = "Investigating"
    RESOLVED = "Resolved"


_VALID_TRANSITIONS = {
    PickExceptionStatus.OPEN: {PickExceptionStatus.INVESTIGATING, PickExceptionStatus.RESOLVED},
    PickExceptionStatus.INVESTIGATING: {PickExceptionStatus.RESOLVED},
    PickExceptionStatus.RESOLVED: set(),  # terminal
}


@warehouse.aggregate
class PickException:
    task_id = Identifier(required=True)
    wave_id = Identifier(required=True)
    sku = String(required=True, max_length=50)
    location_code = String(required=True, max_length=50)
    shortfall = Integer(default=0, min_value=0)
    reason = String(required=True, max_length=500)
    reported_by = String(max_length=100)
    status = String(choices=PickExceptionStatus, default=PickExceptionStatus.OPEN.value)
    resolution = String(max_length=500)
    created_at = DateTime()
    resolved_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def report(cls, task, reason: str, shortfall: int, reported_by: str | None, now):
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["Reason is required"]})
        if shortfall < 0:
            raise ValidationError({"shortfall": ["Shortfall cannot be negative"]})

        exception = cls(
            task_id=str(task.id),
            wave_id=str(task.wave_id),
            sku=task.sku,
            location_code=task.location_code,
            shortfall=shortfall,
            reason=reason.strip(),
            reported_by=reported_by,
            status=PickExceptionStatus.OPEN.value,
            created_at=now,
            updated_at=now,
        )
        exception.raise_(
            PickExceptionReported(
                exception_id=str(exception.id),
                task_id=str(task.id),
                wave_id=str(task.wave_id),
                sku=task.sku,
                location_code=task.location_code,
                shortfall=shortfall,
                reason=exception.reason,
                reported_by=reported_by,
                reported_at=now,
            )
        )
        return exception

    def _change_status(self, target: PickExceptionStatus, now, resolution: str | None = None) -> None:
        current = PickExceptionStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise StateConflictError(
                {"status": [f"Pick exception {self.id} cannot transition from {current.value} to {target.value}"]}
            )
        self.status = target.value
        self.updated_at = now
        self.raise_(
            PickExceptionStatusChanged(
                exception_id=str(self.id),
                previous_status=current.value,
                new_status=target.value,
                resolution=resolution,
                changed_at=now,
            )
        )

    def investigate(self, now) -> None:
        self._change_status(PickExceptionStatus.INVESTIGATING, now)

    def resolve(self, resolution: str, now) -> None:
        if not resolution:
            raise ValidationError({"resolution": ["Resolution is required"]})
        self._change_status(PickExceptionStatus.RESOLVED, now, resolution)
        self.resolution = resolution
        self.resolved_at = now
