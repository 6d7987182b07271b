from __future__ import annotations

from ..schemas import ScheduleRecord
from .base import ScheduleStore


class MemoryScheduleStore(ScheduleStore):
    """
    In-memory schedule store implementation.

    Records live in a Python dictionary and are lost when the process
    stops. Useful for tests and for hosts that rebuild their schedules on
    every start.

    Examples:
        >>> store = MemoryScheduleStore()
        >>> await store.put(record)
        >>> retrieved = await store.get(record.schedule_id)
    """

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, ScheduleRecord] = {}

    async def _read(self, schedule_id: str) -> ScheduleRecord | None:
        return self._records.get(schedule_id)

    async def _write(self, record: ScheduleRecord) -> None:
        self._records[record.schedule_id] = record

    async def _delete(self, schedule_id: str) -> bool:
        return self._records.pop(schedule_id, None) is not None

    async def _delete_all(self) -> int:
        count = len(self._records)
        self._records.clear()
        return count

    async def list_all(self) -> list[ScheduleRecord]:
        return list(self._records.values())
