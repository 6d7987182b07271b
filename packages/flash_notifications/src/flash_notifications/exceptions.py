from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from .schemas import OperationOutcome


class NotificationSchedulerError(Exception):
    """Base class for all flash_notifications errors."""

    kind: ClassVar[str] = "error"

    def __init__(self, message: str, schedule_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.schedule_id = schedule_id

    def to_outcome(self) -> OperationOutcome:
        """Structured form used where exceptions must not propagate."""
        from .schemas import OperationOutcome

        return OperationOutcome(
            kind=self.kind,
            message=self.message,
            schedule_id=self.schedule_id,
        )


class ScheduleValidationError(NotificationSchedulerError, ValueError):
    """Raised when a spec is malformed or has no future occurrence."""

    kind = "validation"


class PersistenceError(NotificationSchedulerError):
    """Raised when the schedule store cannot be read or written."""

    kind = "persistence"


class BackendError(NotificationSchedulerError):
    """Raised when the alarm backend fails to arm or disarm a wake-up."""

    kind = "backend"


class SinkError(NotificationSchedulerError):
    """Raised when a notification could not be displayed at fire time."""

    kind = "sink"
