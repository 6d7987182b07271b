"""Event definitions and listener interfaces."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from .schemas import FireOutcome, OperationOutcome, ScheduleRecord

logger = logging.getLogger(__name__)


class NotificationEvent(Enum):
    """Types of events emitted by the coordinator."""

    SCHEDULED = "SCHEDULED"
    UPDATED = "UPDATED"
    CANCELLED = "CANCELLED"
    ALL_CANCELLED = "ALL_CANCELLED"

    FIRED = "FIRED"
    RETIRED = "RETIRED"
    RECOVERED = "RECOVERED"

    ERROR = "ERROR"


@dataclass
class Event:
    """
    A notification lifecycle event.

    Attributes:
        type: The category of the event.
        timestamp: When the event occurred.
        schedule_id: Schedule the event concerns (optional).
        record: Record state after the change (optional).
        outcome: Fire result or error report (optional).
        payload: Extra data, e.g. the cancelled count or a recovery report.
    """

    type: NotificationEvent
    timestamp: datetime
    schedule_id: str | None = None
    record: ScheduleRecord | None = None
    outcome: FireOutcome | OperationOutcome | None = None
    payload: Any | None = None


class EventListener(ABC):
    """
    Receives lifecycle events of notification schedules.

    Typical listeners mirror schedules into a host UI, count deliveries or
    forward ``ERROR`` events to monitoring.
    """

    @abstractmethod
    async def on_event(self, event: Event) -> None: ...


class EventManager:
    """
    Fans coordinator events out to listeners.

    Events are dispatched after the change they describe has been stored,
    so a listener always sees committed state. A listener may subscribe to
    a subset of event types. A failing listener is logged and skipped; it
    can neither undo the change nor keep other listeners from seeing it.

    Examples:
        >>> manager = EventManager()
        >>> manager.add_listener(alerts, types={NotificationEvent.ERROR})
        >>> manager.add_listener(audit)  # every event
    """

    def __init__(self) -> None:
        # None means every event type
        self._listeners: dict[EventListener, frozenset[NotificationEvent] | None] = {}

    def add_listener(
        self,
        listener: EventListener,
        types: Iterable[NotificationEvent] | None = None,
    ) -> None:
        """
        Subscribe ``listener``. Adding it again replaces its subscription.

        Args:
            listener: Receiver of events.
            types: Event types to deliver; None (default) for all of them.
        """
        self._listeners[listener] = frozenset(types) if types is not None else None

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.pop(listener, None)

    def _subscribers(self, event_type: NotificationEvent) -> list[EventListener]:
        return [
            listener
            for listener, types in self._listeners.items()
            if types is None or event_type in types
        ]

    async def dispatch(self, event: Event) -> None:
        """Deliver ``event`` to its subscribers concurrently."""
        listeners = self._subscribers(event.type)
        if not listeners:
            return
        await asyncio.gather(
            *(self._safe_notify(listener, event) for listener in listeners),
            return_exceptions=True,
        )

    async def _safe_notify(self, listener: EventListener, event: Event) -> None:
        try:
            await listener.on_event(event)
        except Exception:
            logger.exception(
                "Event listener %r failed on %s for %s",
                listener,
                event.type.value,
                event.schedule_id or "all schedules",
            )
