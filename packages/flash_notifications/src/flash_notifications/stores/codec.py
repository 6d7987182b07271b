"""
JSON document codec for schedule records.

Documents use camelCase keys and epoch-millisecond instants, so records
written by other notification runtimes load unchanged. Decoding is additive:
unknown keys are ignored and missing keys fall back to defaults, which lets
an older reader open a newer document and vice versa.

Document layout::

    {
        "schemaVersion": 1,
        "scheduleId": "notification-7",
        "notificationId": "7",
        "scheduleType": "weekly",
        "anchor": {"epochMs": 1767619800000, "timeZone": "Europe/Berlin"},
        "weekDays": ["monday", "friday"],
        "interval": null,
        "intervalUnit": null,
        "endDate": null,
        "maxOccurrences": null,
        "adjustForDST": true,
        "isActive": true,
        "createdAt": 1767000000000,
        "updatedAt": 1767000000000,
        "triggerCount": 0,
        "nextOccurrence": 1767619800000,
        "lastTriggeredAt": null,
        "backendToken": "notification-7",
        "payload": {"title": "Stretch"}
    }
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Final, Mapping

from pydantic import ValidationError

from ..exceptions import PersistenceError
from ..schemas import ScheduleRecord, ScheduleSpec, WeekDay

logger = logging.getLogger(__name__)

SCHEMA_VERSION: Final[int] = 1

_EPOCH: Final[datetime] = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND: Final[timedelta] = timedelta(milliseconds=1)


def to_epoch_ms(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _MILLISECOND


def from_epoch_ms(value: Any) -> datetime | None:
    if value is None:
        return None
    return _EPOCH + timedelta(milliseconds=int(value))


def encode_record(record: ScheduleRecord) -> dict[str, Any]:
    """Convert a record into its JSON-safe document form."""
    spec = record.spec
    unit = spec.interval_unit
    return {
        "schemaVersion": SCHEMA_VERSION,
        "scheduleId": record.schedule_id,
        "notificationId": record.notification_id,
        "scheduleType": spec.schedule_type.value,
        "anchor": {
            "epochMs": to_epoch_ms(spec.anchor),
            "timeZone": spec.tz.key,
        },
        "weekDays": sorted(
            (day.value for day in spec.week_days),
            key=lambda name: WeekDay(name).iso_number,
        ),
        "interval": spec.interval,
        "intervalUnit": getattr(unit, "value", unit),
        "endDate": to_epoch_ms(spec.end_date),
        "maxOccurrences": spec.max_occurrences,
        "adjustForDST": spec.adjust_for_dst,
        "isActive": spec.active,
        "createdAt": to_epoch_ms(record.created_at),
        "updatedAt": to_epoch_ms(record.updated_at),
        "triggerCount": record.trigger_count,
        "nextOccurrence": to_epoch_ms(record.next_occurrence),
        "lastTriggeredAt": to_epoch_ms(record.last_triggered_at),
        "backendToken": record.backend_token,
        "payload": record.payload,
    }


def _decode_week_days(values: Any) -> frozenset[WeekDay]:
    days = set()
    for value in values or ():
        try:
            days.add(WeekDay(value))
        except ValueError:
            logger.debug("Ignoring unknown weekday %r", value)
    return frozenset(days)


def _decode_anchor(document: Mapping[str, Any]) -> tuple[datetime | None, str | None]:
    anchor = document.get("anchor")
    if isinstance(anchor, Mapping):
        return from_epoch_ms(anchor.get("epochMs")), anchor.get("timeZone")
    # Flat layout written by older clients
    return from_epoch_ms(document.get("scheduledTime")), document.get("timeZone")


def decode_record(document: Mapping[str, Any]) -> ScheduleRecord:
    """
    Rebuild a record from a stored document.

    Raises:
        PersistenceError: If required keys are missing or hold values that
            do not form a valid schedule.
    """
    schedule_id = document.get("scheduleId")
    try:
        anchor, zone = _decode_anchor(document)
        if anchor is None:
            raise ValueError("document has no anchor instant")
        spec = ScheduleSpec(
            schedule_type=document.get("scheduleType", "oneTime"),
            tz=zone or "UTC",
            anchor=anchor,
            week_days=_decode_week_days(document.get("weekDays")),
            interval=document.get("interval"),
            interval_unit=document.get("intervalUnit"),
            end_date=from_epoch_ms(document.get("endDate")),
            max_occurrences=document.get("maxOccurrences"),
            adjust_for_dst=document.get("adjustForDST", True),
            active=document.get("isActive", True),
        )
        created_at = from_epoch_ms(document.get("createdAt") or 0)
        return ScheduleRecord(
            schedule_id=schedule_id,
            notification_id=str(document.get("notificationId", schedule_id)),
            spec=spec,
            payload=document.get("payload") or {},
            created_at=created_at,
            updated_at=from_epoch_ms(document.get("updatedAt") or 0),
            trigger_count=document.get("triggerCount") or 0,
            next_occurrence=from_epoch_ms(document.get("nextOccurrence")),
            backend_token=document.get("backendToken"),
            last_triggered_at=from_epoch_ms(document.get("lastTriggeredAt")),
        )
    except (TypeError, ValueError, ValidationError) as e:
        msg = f"Undecodable schedule document: {e}"
        raise PersistenceError(msg, schedule_id=schedule_id) from e


def dumps(record: ScheduleRecord) -> str:
    try:
        return json.dumps(encode_record(record), separators=(",", ":"))
    except (TypeError, ValueError) as e:
        msg = f"Schedule is not JSON-serializable: {e}"
        raise PersistenceError(msg, schedule_id=record.schedule_id) from e


def loads(text: str | bytes) -> ScheduleRecord:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        msg = f"Schedule document is not valid JSON: {e}"
        raise PersistenceError(msg) from e
    if not isinstance(document, Mapping):
        raise PersistenceError("Schedule document must be a JSON object")
    return decode_record(document)
