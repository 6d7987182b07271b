"""DateTrigger - Fires once at the anchor."""

from __future__ import annotations

from datetime import datetime, timezone

from . import base


class DateTrigger(base.Trigger):
    """
    Trigger for one-time schedules.

    Examples:
        >>> run_at = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
        >>> trigger = DateTrigger(ScheduleSpec.one_time(run_at))
        >>> trigger.next_fire_time(run_at)  # never the instant itself
    """

    def next_fire_time(self, after: datetime) -> datetime | None:
        # Stale anchors are skipped rather than fired late
        if self.spec.anchor <= after:
            return None
        return self.spec.anchor.astimezone(timezone.utc)
