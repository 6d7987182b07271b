"""IntervalTrigger - Fires every N minutes, hours, days, weeks or months."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ..schemas import IntervalUnit
from ..timeutils import clamped_date, from_local, month_index, shift_month, to_local
from .base import Trigger

_FIXED_STEPS = {
    IntervalUnit.MINUTE: timedelta(minutes=1),
    IntervalUnit.HOUR: timedelta(hours=1),
}
_DAY_STEPS = {
    IntervalUnit.DAY: 1,
    IntervalUnit.WEEK: 7,
}


class IntervalTrigger(Trigger):
    """
    Trigger for custom-interval schedules.

    Occurrences are ``anchor + n * step`` for n >= 0. The first one after a
    given instant is found in closed form, so a one-minute schedule that sat
    idle for a year costs the same as one that fired a minute ago.

    Minute and hour steps are exact durations. Day, week and month steps
    move the wall clock in the schedule's zone, keeping the time of day
    across DST changes; month steps clip the anchor day like MonthlyTrigger.

    Examples:
        >>> # Every 2 hours from T0, asked at T0 + 5h10m -> T0 + 6h
        >>> t0 = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)
        >>> trigger = IntervalTrigger(ScheduleSpec.custom(t0, 2, "hours"))
        >>> trigger.next_fire_time(t0 + timedelta(hours=5, minutes=10)) == t0 + timedelta(hours=6)
        True
    """

    def next_fire_time(self, after: datetime) -> datetime | None:
        interval = self.spec.interval
        unit = self.spec.interval_unit
        # Unrecognised units load from storage as raw strings
        if not interval or not isinstance(unit, IntervalUnit):
            return None

        if unit in _FIXED_STEPS:
            return self._next_fixed(after, _FIXED_STEPS[unit] * interval)
        if unit in _DAY_STEPS:
            return self._next_days(after, _DAY_STEPS[unit] * interval)
        return self._next_months(after, interval)

    def _next_fixed(self, after: datetime, step: timedelta) -> datetime:
        anchor = self.spec.anchor.astimezone(timezone.utc)
        if after < anchor:
            return anchor
        steps = (after - anchor) // step + 1
        return anchor + step * steps

    def _next_days(self, after: datetime, step_days: int) -> datetime:
        start = self.local_anchor.date()
        wall = self.local_anchor.time()
        elapsed = (to_local(after, self.zone).date() - start).days
        n = max(0, elapsed // step_days)

        candidate = from_local(start + timedelta(days=n * step_days), wall, self.zone)
        while candidate <= after:
            n += 1
            candidate = from_local(start + timedelta(days=n * step_days), wall, self.zone)
        return candidate

    def _next_months(self, after: datetime, step_months: int) -> datetime:
        elapsed = month_index(to_local(after, self.zone)) - month_index(self.local_anchor)
        n = max(0, elapsed // step_months)

        candidate = self._project_months(n * step_months)
        while candidate <= after:
            n += 1
            candidate = self._project_months(n * step_months)
        return candidate

    def _project_months(self, months: int) -> datetime:
        year, month = shift_month(self.local_anchor.year, self.local_anchor.month, months)
        day = clamped_date(year, month, self.local_anchor.day)
        return from_local(day, self.local_anchor.time(), self.zone)
