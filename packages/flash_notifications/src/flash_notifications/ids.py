"""Canonical schedule identifiers.

Callers identify notifications by whatever their platform hands them: an
``int`` from one side, a ``str`` from the other. Both are coerced here, once,
into a single ``str`` so nothing past the coordinator boundary ever compares
ids of mixed types.
"""

from __future__ import annotations

from typing import Final, TypeAlias

from .exceptions import ScheduleValidationError

ScheduleId: TypeAlias = str
NotificationId: TypeAlias = int | str

SCHEDULE_ID_PREFIX: Final[str] = "notification-"
MAX_ID_LENGTH: Final[int] = 255


def normalize_notification_id(value: NotificationId) -> str:
    """
    Coerce a caller's logical notification id to its string form.

    Integers and integer-looking strings collapse to the same value, so
    ``7``, ``"7"`` and ``" 007 "`` are one notification.

    Raises:
        ScheduleValidationError: If the value is empty, a bool, or of an
            unsupported type.

    Examples:
        >>> normalize_notification_id(7)
        '7'
        >>> normalize_notification_id(" 007 ")
        '7'
        >>> normalize_notification_id("daily-water")
        'daily-water'
    """
    # bool is an int subclass; True must not become notification 1
    if isinstance(value, bool):
        msg = "Notification id must be an int or str, got bool"
        raise ScheduleValidationError(msg)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ScheduleValidationError("Notification id cannot be empty")
        if text.lstrip("-").isdigit():
            return str(int(text))
        return text
    msg = f"Notification id must be an int or str, got {type(value).__name__}"
    raise ScheduleValidationError(msg)


def schedule_id_for(notification_id: NotificationId) -> ScheduleId:
    """
    Derive the canonical schedule id for a logical notification id.

    The mapping is deterministic, so re-registering the same notification
    overwrites its record instead of creating a second one.

    >>> schedule_id_for(42) == schedule_id_for("42")
    True
    """
    schedule_id = f"{SCHEDULE_ID_PREFIX}{normalize_notification_id(notification_id)}"
    if len(schedule_id) > MAX_ID_LENGTH:
        msg = f"Schedule id must be 1-{MAX_ID_LENGTH} characters, got {len(schedule_id)}"
        raise ScheduleValidationError(msg)
    return schedule_id
