from sqlalchemy.ext.asyncio import create_async_engine

from ..config import notification_settings
from .base import ScheduleStore
from .memory import MemoryScheduleStore
from .sql_alchemy import SQLAlchemyScheduleStore

MEMORY_URL = "memory://"


def create_store(database_url: str | None = None, *, echo: bool | None = None) -> ScheduleStore:
    """
    Build a store from a database URL.

    ``None`` falls back to ``DATABASE_URL`` from the settings; an empty URL
    or ``memory://`` gives the in-memory store. Any other value is handed to
    SQLAlchemy, e.g. ``sqlite+aiosqlite:///schedules.db``.

    The caller still awaits ``store.initialize()`` before use.
    """
    if database_url is None:
        if not notification_settings.is_persistent():
            return MemoryScheduleStore()
        database_url = notification_settings.DATABASE_URL

    if not database_url or database_url == MEMORY_URL:
        return MemoryScheduleStore()

    engine = create_async_engine(
        database_url, echo=notification_settings.DB_ECHO if echo is None else echo
    )
    return SQLAlchemyScheduleStore(engine, dispose_engine=True)


__all__ = [
    "MEMORY_URL",
    "MemoryScheduleStore",
    "SQLAlchemyScheduleStore",
    "ScheduleStore",
    "create_store",
]
