"""
Pure timezone projection helpers.

Every calculation goes epoch -> wall clock -> epoch through these functions;
no calendar object is ever mutated in place.

Wall times that fall into a DST gap resolve with the offset in force before
the transition (``fold=0``), so 02:30 on a spring-forward night in New York
becomes 03:30 EDT. Ambiguous wall times take their first occurrence.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timezone, tzinfo
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schemas import ScheduleSpec


def effective_zone(spec: ScheduleSpec) -> tzinfo:
    """
    Zone that occurrences of ``spec`` are projected through.

    With ``adjust_for_dst`` disabled the anchor's UTC offset is frozen, so the
    schedule keeps a fixed distance from UTC all year round.
    """
    if spec.adjust_for_dst:
        return spec.tz
    offset = spec.anchor.astimezone(spec.tz).utcoffset()
    return timezone(offset) if offset is not None else timezone.utc


def to_local(instant: datetime, zone: tzinfo) -> datetime:
    return instant.astimezone(zone)


def from_local(day: date, wall: time, zone: tzinfo) -> datetime:
    """Resolve a wall-clock date and time in ``zone`` to a UTC instant."""
    local = datetime.combine(day, wall.replace(tzinfo=None, fold=0), tzinfo=zone)
    return local.astimezone(timezone.utc)


def clamped_date(year: int, month: int, day: int) -> date:
    """
    Build a date, clipping the day to the month's length.

    >>> clamped_date(2026, 2, 31)
    datetime.date(2026, 2, 28)
    """
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    """
    Move a (year, month) pair by a signed number of months.

    >>> shift_month(2025, 11, 3)
    (2026, 2)
    """
    total = year * 12 + (month - 1) + months
    return total // 12, total % 12 + 1


def month_index(value: date | datetime) -> int:
    return value.year * 12 + (value.month - 1)
