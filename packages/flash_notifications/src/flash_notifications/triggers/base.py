from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

from ..timeutils import effective_zone, to_local

if TYPE_CHECKING:
    from ..schemas import ScheduleSpec


class Trigger(ABC):
    """
    Abstract base class for occurrence triggers.

    A trigger is built from one ScheduleSpec and answers a single question:
    what is the first occurrence strictly after a given instant. Triggers
    hold no state besides the spec, so the same inputs always give the same
    answer.
    """

    def __init__(self, spec: ScheduleSpec):
        self.spec = spec
        self.zone = effective_zone(spec)
        self.local_anchor = to_local(spec.anchor, self.zone)

    @abstractmethod
    def next_fire_time(self, after: datetime) -> datetime | None: ...

    def __eq__(self, other: object) -> bool:
        if isinstance(other, self.__class__):
            return self.__dict__ == other.__dict__
        return False

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.spec))

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(anchor={self.local_anchor.isoformat()}, "
            f"zone={self.zone})"
        )
