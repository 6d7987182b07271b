"""Abstract base class for alarm backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from datetime import datetime

AlarmCallback = Callable[[str], Awaitable[Any]]


class AlarmBackend(ABC):
    """
    Interface for the platform facility that wakes the process up.

    A backend holds at most one pending wake-up per schedule id. When a
    wake-up is due it invokes the bound callback with the schedule id; the
    callback decides what firing means.

    Examples:
        >>> class MyBackend(AlarmBackend):
        ...     async def arm(self, schedule_id, at): return schedule_id
        ...     async def disarm(self, token): pass
    """

    def __init__(self) -> None:
        self._callback: AlarmCallback | None = None

    def bind(self, callback: AlarmCallback) -> None:
        """Set the coroutine function invoked with the schedule id at wake-up."""
        self._callback = callback

    @abstractmethod
    async def arm(self, schedule_id: str, at: datetime) -> str:
        """
        Request a wake-up for ``schedule_id`` at ``at``.

        Arming an id that already has a pending wake-up replaces it.

        Returns:
            An opaque token accepted by :meth:`disarm`.

        Raises:
            BackendError: If the wake-up could not be registered.
        """
        ...

    @abstractmethod
    async def disarm(self, token: str) -> None:
        """Cancel a pending wake-up. Unknown tokens are ignored."""
        ...

    async def shutdown(self) -> None:
        """Cancel every pending wake-up. No-op by default."""
        return None
