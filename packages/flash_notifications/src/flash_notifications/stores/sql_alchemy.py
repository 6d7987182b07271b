"""SQLAlchemy-based schedule store implementation."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import DateTime, String, Text, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..exceptions import PersistenceError
from ..schemas import ScheduleRecord
from . import codec
from .base import ScheduleStore

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc)


class ScheduledNotification(Base):
    """
    SQLAlchemy model for storing notification schedules.

    The JSON ``document`` is the source of truth; the other columns mirror
    a few of its fields so they can be indexed and inspected with plain SQL.
    """

    __tablename__ = "flash_notification_schedules"

    schedule_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    notification_id: Mapped[str] = mapped_column(String(255), index=True)
    schedule_type: Mapped[str] = mapped_column(String(50), index=True)
    active: Mapped[bool] = mapped_column(default=True, index=True)
    next_occurrence: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    document: Mapped[str] = mapped_column(Text)

    @classmethod
    def from_record(cls, record: ScheduleRecord) -> ScheduledNotification:
        """Creates a database model from a ScheduleRecord."""
        model = cls(schedule_id=record.schedule_id)
        model.apply(record)
        return model

    def apply(self, record: ScheduleRecord) -> None:
        """Overwrites every column with the state of ``record``."""
        self.notification_id = record.notification_id
        self.schedule_type = record.schedule_type.value
        self.active = record.active
        self.next_occurrence = _utc(record.next_occurrence)
        self.created_at = _utc(record.created_at)
        self.updated_at = _utc(record.updated_at)
        self.document = codec.dumps(record)

    def to_record(self) -> ScheduleRecord:
        """Converts this database model back into a ScheduleRecord."""
        return codec.loads(self.document)


@contextmanager
def _translate_errors(action: str, schedule_id: str | None = None) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        msg = f"Failed to {action}: {e}"
        raise PersistenceError(msg, schedule_id=schedule_id) from e


class SQLAlchemyScheduleStore(ScheduleStore):
    """
    SQLAlchemy-based persistent schedule store.

    Each record is one row holding its JSON document. Requires an
    asyncio-compatible engine (e.g., aiosqlite, asyncpg). Database failures
    surface as :class:`PersistenceError`.

    Examples:
        >>> from sqlalchemy.ext.asyncio import create_async_engine
        >>> engine = create_async_engine("sqlite+aiosqlite:///schedules.db")
        >>> store = SQLAlchemyScheduleStore(engine)
        >>> await store.initialize()  # Create tables
    """

    def __init__(self, engine: AsyncEngine, *, dispose_engine: bool = False) -> None:
        super().__init__()
        self._engine = engine
        self._dispose_engine = dispose_engine
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def initialize(self) -> None:
        """
        Creates the necessary database tables if they don't exist.

        Also initializes the session factory. This must be called before
        performing any operations.
        """
        with _translate_errors("create schedule tables"):
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    async def close(self) -> None:
        """Disposes the engine when this store created it."""
        if self._dispose_engine:
            await self._engine.dispose()

    def _get_session(self) -> AsyncSession:
        """Helper to create a new async session."""
        if self._session_factory is not None:
            return self._session_factory()
        msg = "Store not initialized. Call initialize() first."
        raise RuntimeError(msg)

    async def _read(self, schedule_id: str) -> ScheduleRecord | None:
        with _translate_errors("read schedule", schedule_id):
            async with self._get_session() as session:
                model = await session.get(ScheduledNotification, schedule_id)
                if model is None:
                    return None
                return model.to_record()

    async def _write(self, record: ScheduleRecord) -> None:
        with _translate_errors("write schedule", record.schedule_id):
            async with self._get_session() as session:
                model = await session.get(ScheduledNotification, record.schedule_id)
                if model is None:
                    session.add(ScheduledNotification.from_record(record))
                else:
                    model.apply(record)
                await session.commit()

    async def _delete(self, schedule_id: str) -> bool:
        with _translate_errors("remove schedule", schedule_id):
            async with self._get_session() as session:
                model = await session.get(ScheduledNotification, schedule_id)
                if model is None:
                    return False
                await session.delete(model)
                await session.commit()
                return True

    async def _delete_all(self) -> int:
        with _translate_errors("clear schedules"):
            async with self._get_session() as session:
                result = await session.execute(delete(ScheduledNotification))
                await session.commit()
                return result.rowcount or 0

    async def list_all(self) -> list[ScheduleRecord]:
        """
        Returns all stored records.

        Rows whose document cannot be decoded are logged and left out, so
        one corrupt row does not hide the rest of the table.
        """
        with _translate_errors("list schedules"):
            async with self._get_session() as session:
                result = await session.execute(select(ScheduledNotification))
                models = result.scalars().all()

        records = []
        for model in models:
            try:
                records.append(model.to_record())
            except PersistenceError:
                logger.exception(f"Skipping unreadable schedule row '{model.schedule_id}'")
        return records
