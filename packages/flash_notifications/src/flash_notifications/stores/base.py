from __future__ import annotations

import asyncio
import inspect
import weakref
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Callable, Union

from ..schemas import ScheduleStatistics

if TYPE_CHECKING:
    from datetime import datetime

    from ..schemas import Pagination, ScheduleFilters, ScheduleRecord

UpdateFn = Callable[
    ["ScheduleRecord"], Union["ScheduleRecord", Awaitable["ScheduleRecord"]]
]


class ScheduleStore(ABC):
    """
    Interface for durable schedule storage.

    Backends implement the raw primitives (``_read``, ``_write``,
    ``_delete``, ``_delete_all``, ``list_all``). The public mutators wrap
    them in a per-id ``asyncio.Lock`` so that writes to one id are
    serialised while different ids never wait on each other.
    """

    def __init__(self) -> None:
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def initialize(self) -> None:
        """Prepare the backend (create tables, open files). No-op by default."""
        return None

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None

    # --- Raw primitives ---

    @abstractmethod
    async def _read(self, schedule_id: str) -> ScheduleRecord | None: ...

    @abstractmethod
    async def _write(self, record: ScheduleRecord) -> None: ...

    @abstractmethod
    async def _delete(self, schedule_id: str) -> bool: ...

    @abstractmethod
    async def _delete_all(self) -> int: ...

    @abstractmethod
    async def list_all(self) -> list[ScheduleRecord]:
        """Returns every stored record, in no particular order."""
        ...

    # --- Public API ---

    def _lock_for(self, schedule_id: str) -> asyncio.Lock:
        lock = self._locks.get(schedule_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[schedule_id] = lock
        return lock

    async def put(self, record: ScheduleRecord) -> None:
        """Inserts a record, replacing any record with the same id."""
        async with self._lock_for(record.schedule_id):
            await self._write(record)

    async def get(self, schedule_id: str) -> ScheduleRecord | None:
        """Retrieves a record by id."""
        return await self._read(schedule_id)

    async def remove(self, schedule_id: str) -> bool:
        """Removes a record. Returns True if it existed."""
        async with self._lock_for(schedule_id):
            return await self._delete(schedule_id)

    async def pop(
        self,
        schedule_id: str,
        predicate: Callable[[ScheduleRecord], bool] | None = None,
    ) -> ScheduleRecord | None:
        """
        Atomically remove a record and return what was removed.

        With a ``predicate`` the record is only removed if it still
        satisfies it once the id is locked.
        """
        async with self._lock_for(schedule_id):
            record = await self._read(schedule_id)
            if record is None:
                return None
            if predicate is not None and not predicate(record):
                return None
            await self._delete(schedule_id)
            return record

    async def clear(self) -> int:
        """
        Removes every record in one bulk delete. Returns how many were removed.

        Per-id locks are not taken; use ``pop`` per id where a concurrent
        ``update`` must not write a removed record back.
        """
        return await self._delete_all()

    async def update(self, schedule_id: str, fn: UpdateFn) -> ScheduleRecord | None:
        """
        Atomically read, transform and write one record.

        ``fn`` receives the current record and returns its replacement; it
        may be a coroutine function. The id stays locked for the whole
        read-modify-write, so concurrent updates to the same id never lose
        each other's changes.

        Args:
            schedule_id: Record to update.
            fn: Transformation to apply.

        Returns:
            The stored replacement, or None if the id is unknown (``fn`` is
            not called).
        """
        async with self._lock_for(schedule_id):
            current = await self._read(schedule_id)
            if current is None:
                return None

            result = fn(current)
            if inspect.isawaitable(result):
                result = await result

            if result.schedule_id != schedule_id:
                msg = f"Update of '{schedule_id}' returned record '{result.schedule_id}'"
                raise ValueError(msg)

            await self._write(result)
            return result

    async def query(
        self,
        filters: ScheduleFilters,
        pagination: Pagination | None = None,
    ) -> list[ScheduleRecord]:
        """
        Returns the records matching every set filter.

        Evaluated by a full scan of ``list_all()``; pagination drops
        ``offset`` matches and then takes ``limit``.
        """
        matches = [record for record in await self.list_all() if filters.matches(record)]
        if pagination is not None:
            matches = pagination.apply(matches)
        return matches

    async def statistics(self, now: datetime) -> ScheduleStatistics:
        """Counts records by state in a single scan."""
        stats = ScheduleStatistics()
        for record in await self.list_all():
            stats.total += 1
            if record.active:
                stats.active += 1
            if record.is_expired(now):
                stats.expired += 1
            if record.is_recurring:
                stats.recurring += 1
            else:
                stats.one_time += 1
        return stats
