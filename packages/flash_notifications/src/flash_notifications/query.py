"""
Read-side queries over stored schedules.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Generic, Literal, TypeAlias, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .config import notification_settings
from .schemas import Pagination, ScheduleFilters, ScheduleRecord, ScheduleStatistics

if TYPE_CHECKING:
    from .stores.base import ScheduleStore

T = TypeVar("T", bound="BaseModel")

SortField: TypeAlias = Literal["created_at", "next_occurrence", "trigger_count", "updated_at"]
SortDirection: TypeAlias = Literal["asc", "desc"]


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Generic paginated response model.

    Example:
        >>> page = PaginatedResponse[ScheduleRecord](items=[], total=0, limit=20)
        >>> page.model_dump()
        {'items': [], 'total': 0, 'limit': 20, 'offset': 0}
    """

    model_config = ConfigDict(from_attributes=True)

    items: list[T] = Field(..., description="List of items in current page")
    total: int = Field(..., description="Total number of matches before pagination")
    limit: int | None = Field(default=None, description="Maximum items per page")
    offset: int = Field(default=0, description="Number of items to skip")


def _sort_key(field: SortField) -> Callable[[ScheduleRecord], Any]:
    if field == "trigger_count":
        return lambda record: record.trigger_count
    if field not in ("created_at", "next_occurrence", "updated_at"):
        msg = f"Cannot sort schedules by '{field}'"
        raise ValueError(msg)
    return lambda record: getattr(record, field)


class ScheduleQueryService:
    """
    Filtering, sorting and paging over a schedule store.

    Examples:
        >>> service = ScheduleQueryService(store)
        >>> page = await service.list(
        ...     ScheduleFilters(is_active=True, is_recurring=True),
        ...     Pagination(limit=20),
        ...     sort_by="next_occurrence",
        ... )
        >>> page.total
        42
    """

    def __init__(self, store: ScheduleStore, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def list(
        self,
        filters: ScheduleFilters | None = None,
        pagination: Pagination | None = None,
        sort_by: SortField | None = None,
        sort_order: SortDirection = "asc",
    ) -> PaginatedResponse[ScheduleRecord]:
        """
        List matching records.

        Without ``sort_by`` records keep the store's order. Records lacking
        the sort value (no next occurrence) always come last. Without
        ``pagination`` the first ``DEFAULT_QUERY_LIMIT`` matches are returned;
        pass ``Pagination()`` for all of them.
        """
        matches = await self.store.query(filters or ScheduleFilters())

        if sort_by is not None:
            key = _sort_key(sort_by)
            present = [r for r in matches if key(r) is not None]
            missing = [r for r in matches if key(r) is None]
            present.sort(key=key, reverse=sort_order == "desc")
            matches = present + missing

        if pagination is None:
            pagination = Pagination(limit=notification_settings.DEFAULT_QUERY_LIMIT)
        return PaginatedResponse[ScheduleRecord](
            items=pagination.apply(matches),
            total=len(matches),
            limit=pagination.limit,
            offset=pagination.offset,
        )

    async def count(self, filters: ScheduleFilters | None = None) -> int:
        return len(await self.store.query(filters or ScheduleFilters()))

    async def get(self, schedule_id: str) -> ScheduleRecord | None:
        return await self.store.get(schedule_id)

    async def statistics(self) -> ScheduleStatistics:
        return await self.store.statistics(self._clock())
