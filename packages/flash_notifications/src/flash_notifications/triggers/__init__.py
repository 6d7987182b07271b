"""
Occurrence triggers.

One trigger class per schedule type. Each computes the first occurrence
strictly after an instant from nothing but its spec: no I/O, no clock reads,
no shared mutable calendars.
"""

from .base import Trigger
from .calendar import DailyTrigger, MonthlyTrigger, YearlyTrigger
from .date import DateTrigger
from .interval import IntervalTrigger
from .weekly import WeeklyTrigger

__all__ = [
    "Trigger",
    "DateTrigger",
    "DailyTrigger",
    "WeeklyTrigger",
    "MonthlyTrigger",
    "YearlyTrigger",
    "IntervalTrigger",
]
