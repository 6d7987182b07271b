"""WeeklyTrigger - Fires on selected weekdays."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ..schemas import WeekDay
from ..timeutils import from_local, to_local
from .base import Trigger

if TYPE_CHECKING:
    from ..schemas import ScheduleSpec

# Today plus the seven following days: the same weekday one week later is
# still reachable when today's slot has already passed.
SCAN_DAYS = 8


class WeeklyTrigger(Trigger):
    """
    Fires at the anchor's time of day on each selected weekday.

    With no weekdays selected the anchor's own weekday is used.

    Examples:
        >>> # Mon/Wed/Fri at 14:45, asked on a Tuesday morning -> Wednesday
        >>> spec = ScheduleSpec.weekly(
        ...     datetime(2026, 1, 5, 14, 45), tz="UTC",
        ...     week_days={"mon", "wed", "fri"},
        ... )
        >>> WeeklyTrigger(spec).next_fire_time(datetime(2026, 1, 6, 8, 0, tzinfo=timezone.utc))
        datetime.datetime(2026, 1, 7, 14, 45, tzinfo=datetime.timezone.utc)
    """

    def __init__(self, spec: ScheduleSpec):
        super().__init__(spec)
        self.week_days = spec.week_days or frozenset(
            {WeekDay.from_date(self.local_anchor.date())}
        )

    def next_fire_time(self, after: datetime) -> datetime | None:
        start = to_local(after, self.zone).date()
        wall = self.local_anchor.time()

        for offset in range(SCAN_DAYS):
            day = start + timedelta(days=offset)
            if WeekDay.from_date(day) not in self.week_days:
                continue
            candidate = from_local(day, wall, self.zone)
            if candidate > after:
                return candidate
        return None
