from .backends import AlarmBackend, AsyncioAlarmBackend
from .calculator import OccurrenceCalculator, compute_next, create_trigger
from .config import NotificationSettings, notification_settings
from .coordinator import ScheduleCoordinator
from .events import Event, EventListener, EventManager, NotificationEvent
from .exceptions import (
    BackendError,
    NotificationSchedulerError,
    PersistenceError,
    ScheduleValidationError,
    SinkError,
)
from .ids import normalize_notification_id, schedule_id_for
from .query import PaginatedResponse, ScheduleQueryService
from .schemas import (
    BatchScheduleResult,
    FireOutcome,
    IntervalUnit,
    OperationOutcome,
    Pagination,
    RecoveryReport,
    RegistrationRequest,
    ScheduleFilters,
    ScheduleRecord,
    ScheduleSpec,
    ScheduleSpecUpdate,
    ScheduleStatistics,
    ScheduleType,
    WeekDay,
)
from .sinks import CallbackNotificationSink, LoggingNotificationSink, NotificationSink
from .stores import MemoryScheduleStore, SQLAlchemyScheduleStore, ScheduleStore, create_store

__all__ = [
    "AlarmBackend",
    "AsyncioAlarmBackend",
    "BackendError",
    "BatchScheduleResult",
    "CallbackNotificationSink",
    "Event",
    "EventListener",
    "EventManager",
    "FireOutcome",
    "IntervalUnit",
    "LoggingNotificationSink",
    "MemoryScheduleStore",
    "NotificationEvent",
    "NotificationSchedulerError",
    "NotificationSettings",
    "NotificationSink",
    "OccurrenceCalculator",
    "OperationOutcome",
    "PaginatedResponse",
    "Pagination",
    "PersistenceError",
    "RecoveryReport",
    "RegistrationRequest",
    "SQLAlchemyScheduleStore",
    "ScheduleCoordinator",
    "ScheduleFilters",
    "ScheduleQueryService",
    "ScheduleRecord",
    "ScheduleSpec",
    "ScheduleSpecUpdate",
    "ScheduleStatistics",
    "ScheduleStore",
    "ScheduleType",
    "ScheduleValidationError",
    "SinkError",
    "WeekDay",
    "compute_next",
    "create_store",
    "create_trigger",
    "normalize_notification_id",
    "notification_settings",
    "schedule_id_for",
]
