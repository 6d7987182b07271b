from .asyncio_backend import AsyncioAlarmBackend
from .base import AlarmBackend, AlarmCallback

__all__ = ["AlarmBackend", "AlarmCallback", "AsyncioAlarmBackend"]
