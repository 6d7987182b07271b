"""
Occurrence calculation entry point.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Final, Type

from .schemas import ScheduleSpec, ScheduleType
from .triggers import (
    DailyTrigger,
    DateTrigger,
    IntervalTrigger,
    MonthlyTrigger,
    Trigger,
    WeeklyTrigger,
    YearlyTrigger,
)

logger = logging.getLogger(__name__)

# Recurring searches start just before the anchor when asked about an
# earlier instant, so the anchor itself is the first possible occurrence.
_BEFORE_ANCHOR: Final[timedelta] = timedelta(microseconds=1)


_TRIGGER_REGISTRY: Dict[ScheduleType, Type[Trigger]] = {
    ScheduleType.ONE_TIME: DateTrigger,
    ScheduleType.DAILY: DailyTrigger,
    ScheduleType.WEEKLY: WeeklyTrigger,
    ScheduleType.MONTHLY: MonthlyTrigger,
    ScheduleType.YEARLY: YearlyTrigger,
    ScheduleType.CUSTOM: IntervalTrigger,
}


def create_trigger(spec: ScheduleSpec) -> Trigger:
    """
    Create the Trigger implementation for a schedule spec.

    Raises:
        TypeError: If the schedule type has no registered trigger.

    Examples:
        >>> trigger = create_trigger(ScheduleSpec.daily(datetime(2026, 1, 1, 9), tz="UTC"))
        >>> isinstance(trigger, DailyTrigger)
        True
    """
    trigger_cls = _TRIGGER_REGISTRY.get(spec.schedule_type)
    if not trigger_cls:
        msg = f"Unsupported schedule type: {spec.schedule_type!r}"
        raise TypeError(msg)
    return trigger_cls(spec)


class OccurrenceCalculator:
    """
    Computes the next valid fire instant of a schedule.

    The calculation is pure and total: a spec with no further occurrence,
    or one too malformed to evaluate, yields None instead of raising.
    Occurrence caps are not applied here; the caller tracks the trigger
    count and retires the schedule itself.

    Examples:
        >>> calc = OccurrenceCalculator()
        >>> spec = ScheduleSpec.custom(datetime(2026, 1, 1, tzinfo=timezone.utc), 2, "hour")
        >>> calc.compute_next(spec, datetime(2026, 1, 1, 5, 10, tzinfo=timezone.utc))
        datetime.datetime(2026, 1, 1, 6, 0, tzinfo=datetime.timezone.utc)
    """

    def compute_next(self, spec: ScheduleSpec, after: datetime) -> datetime | None:
        """
        Return the first occurrence of ``spec`` strictly after ``after``.

        Args:
            spec: Schedule definition.
            after: Reference instant, normally the current wall-clock time.
                Naive values are taken as UTC.

        Returns:
            A UTC instant, or None when the schedule is inactive, past its
            end date, or has no further occurrence.
        """
        if not spec.active:
            return None

        if after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)

        if spec.end_date is not None and after >= spec.end_date:
            return None

        reference = after
        if spec.is_recurring and after < spec.anchor:
            reference = spec.anchor - _BEFORE_ANCHOR

        try:
            candidate = create_trigger(spec).next_fire_time(reference)
        except (ArithmeticError, TypeError, ValueError):
            # Out-of-range dates and malformed specs count as exhausted
            logger.warning(
                "Could not compute next occurrence for %r", spec, exc_info=True
            )
            return None

        if candidate is None or candidate <= after:
            return None
        if spec.end_date is not None and candidate > spec.end_date:
            return None
        return candidate


_default_calculator = OccurrenceCalculator()


def compute_next(spec: ScheduleSpec, after: datetime) -> datetime | None:
    """Module-level shortcut for ``OccurrenceCalculator().compute_next``."""
    return _default_calculator.compute_next(spec, after)
