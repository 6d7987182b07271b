"""Pydantic schemas/data contracts for notification schedules."""

from __future__ import annotations

import zoneinfo
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
    model_validator,
)

from .config import notification_settings


def validate_timezone(v: Any) -> Any:
    """Ensure the value is an IANA timezone, converting names to ZoneInfo."""
    if v is None:
        return ZoneInfo(notification_settings.DEFAULT_TIMEZONE)
    if isinstance(v, zoneinfo.ZoneInfo):
        return v
    if v is timezone.utc:
        return ZoneInfo("UTC")
    if isinstance(v, str):
        try:
            return zoneinfo.ZoneInfo(v)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as z:
            msg = f"Invalid timezone name: {v}"
            raise ValueError(msg) from z
    msg = f"Invalid timezone type: {type(v).__name__}"
    raise ValueError(msg)


# Any here because pydantic cannot build a core schema for ZoneInfo; the
# BeforeValidator does the actual type enforcement and conversion.
TzType = Annotated[Any, BeforeValidator(validate_timezone)]


def _normalize_token(value: Any) -> str:
    return str(value).strip().replace("_", "").replace("-", "").replace(" ", "").lower()


class ScheduleType(str, Enum):
    """Recurrence pattern of a schedule. Values are the persisted names."""

    ONE_TIME = "oneTime"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"

    @classmethod
    def _missing_(cls, value: object) -> ScheduleType | None:
        key = _normalize_token(value)
        for member in cls:
            if member.value.lower() == key:
                return member
        return None

    @property
    def is_recurring(self) -> bool:
        return self is not ScheduleType.ONE_TIME

    @property
    def description(self) -> str:
        if self is ScheduleType.ONE_TIME:
            return "One-time notification"
        return f"{self.value.capitalize()} recurring notification"


class WeekDay(str, Enum):
    """Day of the week for weekly schedules."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def _missing_(cls, value: object) -> WeekDay | None:
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_iso_number(value) if 1 <= value <= 7 else None
        key = _normalize_token(value)
        for member in cls:
            if member.value == key or member.value[:3] == key:
                return member
        return None

    @property
    def iso_number(self) -> int:
        """1 = Monday ... 7 = Sunday."""
        return list(WeekDay).index(self) + 1

    @property
    def short_name(self) -> str:
        return self.value[:3].capitalize()

    @classmethod
    def from_iso_number(cls, number: int) -> WeekDay:
        if not 1 <= number <= 7:
            msg = f"Invalid weekday number: {number}. Must be 1-7."
            raise ValueError(msg)
        return list(cls)[number - 1]

    @classmethod
    def from_date(cls, value: date) -> WeekDay:
        return cls.from_iso_number(value.isoweekday())


class IntervalUnit(str, Enum):
    """Step unit of a custom interval schedule."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def _missing_(cls, value: object) -> IntervalUnit | None:
        key = _normalize_token(value)
        for member in cls:
            if key in (member.value, f"{member.value}s"):
                return member
        return None


class ScheduleSpec(BaseModel):
    """
    Immutable definition of when a notification fires.

    The anchor is the reference instant. Its wall-clock fields in ``tz`` are
    what recurring schedules preserve: the time of day for every type, plus
    the day of month (Monthly) and month and day (Yearly). A naive anchor is
    read as wall-clock time in ``tz``.

    Examples:
        >>> from zoneinfo import ZoneInfo
        >>> spec = ScheduleSpec.daily(datetime(2026, 1, 5, 9, 0), tz="Europe/Berlin")
        >>> spec.is_recurring
        True

        >>> ScheduleSpec.weekly(
        ...     datetime(2026, 1, 5, 14, 45, tzinfo=ZoneInfo("UTC")),
        ...     week_days={WeekDay.MONDAY, WeekDay.FRIDAY},
        ... )
    """

    model_config = ConfigDict(frozen=True)

    schedule_type: ScheduleType
    # Declared before the datetimes so their validators can localize naive input
    tz: TzType = Field(default=None, validate_default=True)
    anchor: datetime
    week_days: frozenset[WeekDay] = frozenset()
    interval: int | None = Field(default=None, gt=0)
    interval_unit: IntervalUnit | str | None = None
    end_date: datetime | None = None
    max_occurrences: int | None = Field(default=None, gt=0)
    adjust_for_dst: bool = True
    active: bool = True

    @field_validator("anchor", "end_date")
    @classmethod
    def localize_naive(cls, v: datetime | None, info: ValidationInfo) -> datetime | None:
        if v is None or v.tzinfo is not None:
            return v
        zone = info.data.get("tz")
        if zone is None:
            msg = f"{info.field_name} must be timezone-aware or come with a valid tz"
            raise ValueError(msg)
        return v.replace(tzinfo=zone)

    @field_validator("anchor", "end_date")
    @classmethod
    def truncate_to_millis(cls, v: datetime | None) -> datetime | None:
        # Stored documents carry epoch milliseconds
        if v is None or not v.microsecond % 1000:
            return v
        return v.replace(microsecond=v.microsecond - v.microsecond % 1000)

    @field_validator("interval_unit", mode="before")
    @classmethod
    def normalize_unit(cls, v: Any) -> Any:
        if v is None or isinstance(v, IntervalUnit):
            return v
        try:
            return IntervalUnit(v)
        except ValueError:
            # Kept raw: a unit from a newer writer must still load.
            return str(v)

    @field_serializer("tz")
    def serialize_timezone(self, v: Any) -> str:
        return v.key

    @model_validator(mode="after")
    def validate_variant(self) -> ScheduleSpec:
        if self.schedule_type is ScheduleType.CUSTOM and (
            self.interval is None or self.interval_unit is None
        ):
            msg = "custom schedules require interval and interval_unit"
            raise ValueError(msg)
        return self

    # --- Factories ---

    @classmethod
    def one_time(cls, anchor: datetime, **kwargs: Any) -> ScheduleSpec:
        return cls(schedule_type=ScheduleType.ONE_TIME, anchor=anchor, **kwargs)

    @classmethod
    def daily(cls, anchor: datetime, **kwargs: Any) -> ScheduleSpec:
        return cls(schedule_type=ScheduleType.DAILY, anchor=anchor, **kwargs)

    @classmethod
    def weekly(
        cls, anchor: datetime, week_days: Any = frozenset(), **kwargs: Any
    ) -> ScheduleSpec:
        return cls(
            schedule_type=ScheduleType.WEEKLY,
            anchor=anchor,
            week_days=frozenset(week_days),
            **kwargs,
        )

    @classmethod
    def monthly(cls, anchor: datetime, **kwargs: Any) -> ScheduleSpec:
        return cls(schedule_type=ScheduleType.MONTHLY, anchor=anchor, **kwargs)

    @classmethod
    def yearly(cls, anchor: datetime, **kwargs: Any) -> ScheduleSpec:
        return cls(schedule_type=ScheduleType.YEARLY, anchor=anchor, **kwargs)

    @classmethod
    def custom(
        cls,
        anchor: datetime,
        interval: int,
        interval_unit: IntervalUnit | str,
        **kwargs: Any,
    ) -> ScheduleSpec:
        return cls(
            schedule_type=ScheduleType.CUSTOM,
            anchor=anchor,
            interval=interval,
            interval_unit=interval_unit,
            **kwargs,
        )

    # --- Derived state ---

    @property
    def is_recurring(self) -> bool:
        return self.schedule_type.is_recurring

    @property
    def is_one_time(self) -> bool:
        return self.schedule_type is ScheduleType.ONE_TIME

    @property
    def has_end_condition(self) -> bool:
        return self.end_date is not None or self.max_occurrences is not None

    def is_exhausted(self, trigger_count: int, now: datetime) -> bool:
        """True once the end date has passed or the occurrence cap is reached."""
        if self.end_date is not None and now > self.end_date:
            return True
        return self.max_occurrences is not None and trigger_count >= self.max_occurrences

    def merge(self, update: ScheduleSpecUpdate) -> ScheduleSpec:
        """Return a new, re-validated spec with the update's set fields applied."""
        data = self.model_dump()
        data.update(update.model_dump(exclude_unset=True))
        return ScheduleSpec.model_validate(data)


class ScheduleSpecUpdate(BaseModel):
    """Partial spec update. Only fields explicitly set are merged."""

    model_config = ConfigDict(extra="forbid")

    schedule_type: ScheduleType | None = None
    tz: TzType = None
    anchor: datetime | None = None
    week_days: frozenset[WeekDay] | None = None
    interval: int | None = Field(default=None, gt=0)
    interval_unit: IntervalUnit | str | None = None
    end_date: datetime | None = None
    max_occurrences: int | None = Field(default=None, gt=0)
    adjust_for_dst: bool | None = None
    active: bool | None = None

    @field_serializer("tz")
    def serialize_timezone(self, v: Any) -> str | None:
        return v.key if v is not None else None


class ScheduleRecord(BaseModel):
    """The stored, mutable-over-time state of one registered notification."""

    schedule_id: str
    notification_id: str
    spec: ScheduleSpec
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    trigger_count: int = Field(default=0, ge=0)
    next_occurrence: datetime | None = None
    backend_token: str | None = None
    last_triggered_at: datetime | None = None

    @property
    def active(self) -> bool:
        return self.spec.active

    @property
    def schedule_type(self) -> ScheduleType:
        return self.spec.schedule_type

    @property
    def is_recurring(self) -> bool:
        return self.spec.is_recurring

    def is_expired(self, now: datetime) -> bool:
        if not self.active or self.next_occurrence is None:
            return True
        return self.spec.is_exhausted(self.trigger_count, now)

    def retire(self, now: datetime) -> ScheduleRecord:
        """Copy of this record made permanently inactive."""
        return self.model_copy(
            update={
                "spec": self.spec.model_copy(update={"active": False}),
                "next_occurrence": None,
                "backend_token": None,
                "updated_at": now,
            },
        )


class ScheduleFilters(BaseModel):
    """
    Filters for listing schedules. All set filters are ANDed.

    ``scheduled_after``/``scheduled_before`` compare the anchor instant,
    ``created_after``/``created_before`` the record creation time. All
    comparisons are strict.
    """

    is_active: bool | None = None
    is_recurring: bool | None = None
    schedule_type: ScheduleType | None = None
    scheduled_after: datetime | None = None
    scheduled_before: datetime | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None

    @field_validator(
        "scheduled_after", "scheduled_before", "created_after", "created_before"
    )
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def matches(self, record: ScheduleRecord) -> bool:
        if self.is_active is not None and record.active != self.is_active:
            return False
        if self.is_recurring is not None and record.is_recurring != self.is_recurring:
            return False
        if self.schedule_type is not None and record.schedule_type is not self.schedule_type:
            return False
        anchor = record.spec.anchor
        if self.scheduled_after is not None and not anchor > self.scheduled_after:
            return False
        if self.scheduled_before is not None and not anchor < self.scheduled_before:
            return False
        if self.created_after is not None and not record.created_at > self.created_after:
            return False
        if self.created_before is not None and not record.created_at < self.created_before:
            return False
        return True


class Pagination(BaseModel):
    """
    Drop-then-take pagination.

    >>> Pagination(offset=10, limit=5).apply(list(range(20)))
    [10, 11, 12, 13, 14]
    """

    limit: int | None = None
    offset: int = 0

    @model_validator(mode="after")
    def _validate_bounds(self) -> Pagination:
        if self.limit is not None:
            self.limit = max(1, min(self.limit, notification_settings.MAX_QUERY_LIMIT))
        self.offset = max(0, self.offset)
        return self

    def apply(self, items: list[Any]) -> list[Any]:
        if self.offset:
            items = items[self.offset :]
        if self.limit is not None:
            items = items[: self.limit]
        return items


class ScheduleStatistics(BaseModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    recurring: int = 0
    one_time: int = 0


class OperationOutcome(BaseModel):
    """Structured error report (kind + message)."""

    kind: str
    message: str
    schedule_id: str | None = None


class FireOutcome(BaseModel):
    """Result of handling one alarm callback."""

    schedule_id: str
    status: Literal["rearmed", "retired", "skipped", "failed"]
    fired_at: datetime
    trigger_count: int | None = None
    next_occurrence: datetime | None = None
    errors: list[OperationOutcome] = Field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.status in ("rearmed", "retired")


class RecoveryReport(BaseModel):
    """What recover_on_restart did to each stored record."""

    rearmed: list[str] = Field(default_factory=list)
    retired: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[OperationOutcome] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.rearmed) + len(self.retired) + len(self.skipped) + len(self.failed)


class RegistrationRequest(BaseModel):
    """One entry of a batch registration."""

    notification_id: int | str
    spec: ScheduleSpec
    payload: dict[str, Any] = Field(default_factory=dict)


class BatchScheduleResult(BaseModel):
    successful: list[str] = Field(default_factory=list)
    failed: list[OperationOutcome] = Field(default_factory=list)
    total: int = 0

    @property
    def is_complete_success(self) -> bool:
        return not self.failed and len(self.successful) == self.total

    @property
    def is_partial_success(self) -> bool:
        return bool(self.successful) and bool(self.failed)

    @property
    def is_complete_failure(self) -> bool:
        return not self.successful and bool(self.failed)
