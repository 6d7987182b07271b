"""Daily, Monthly and Yearly triggers - fire at a preserved wall-clock time."""

from __future__ import annotations

from datetime import datetime, timedelta

from ..timeutils import clamped_date, from_local, shift_month, to_local
from .base import Trigger


class DailyTrigger(Trigger):
    """
    Fires every day at the anchor's time of day.

    Examples:
        >>> # Anchor 09:00, asked at 10:00 the same day -> 09:00 tomorrow
        >>> trigger = DailyTrigger(ScheduleSpec.daily(datetime(2026, 1, 5, 9, 0), tz="UTC"))
        >>> trigger.next_fire_time(datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc))
        datetime.datetime(2026, 1, 6, 9, 0, tzinfo=datetime.timezone.utc)
    """

    def next_fire_time(self, after: datetime) -> datetime | None:
        day = to_local(after, self.zone).date()
        wall = self.local_anchor.time()

        candidate = from_local(day, wall, self.zone)
        if candidate <= after:
            candidate = from_local(day + timedelta(days=1), wall, self.zone)
        return candidate


class MonthlyTrigger(Trigger):
    """
    Fires every month on the anchor's day of month and time of day.

    Days past the end of a short month are clipped to its last day
    (anchor on the 31st fires on 30 April and 28/29 February). The clip is
    recomputed from the anchor every time, so the schedule returns to the
    31st in long months.
    """

    def next_fire_time(self, after: datetime) -> datetime | None:
        local_after = to_local(after, self.zone)
        year, month = local_after.year, local_after.month

        candidate = self._project(year, month)
        if candidate <= after:
            candidate = self._project(*shift_month(year, month, 1))
        return candidate

    def _project(self, year: int, month: int) -> datetime:
        day = clamped_date(year, month, self.local_anchor.day)
        return from_local(day, self.local_anchor.time(), self.zone)


class YearlyTrigger(Trigger):
    """
    Fires every year on the anchor's month, day and time of day.

    A 29 February anchor fires on 28 February in common years.
    """

    def next_fire_time(self, after: datetime) -> datetime | None:
        year = to_local(after, self.zone).year

        candidate = self._project(year)
        if candidate <= after:
            candidate = self._project(year + 1)
        return candidate

    def _project(self, year: int) -> datetime:
        day = clamped_date(year, self.local_anchor.month, self.local_anchor.day)
        return from_local(day, self.local_anchor.time(), self.zone)
