from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from conftest import T0, make_record
from flash_notifications.exceptions import PersistenceError
from flash_notifications.schemas import (
    IntervalUnit,
    Pagination,
    ScheduleFilters,
    ScheduleSpec,
    WeekDay,
)
from flash_notifications.stores import MemoryScheduleStore, create_store
from flash_notifications.stores.sql_alchemy import (
    ScheduledNotification,
    SQLAlchemyScheduleStore,
)

# Apply asyncio marker to all tests in this module
pytestmark = pytest.mark.asyncio


# --- Fixtures ---


@pytest.fixture
def database_url(tmp_path):
    # File-backed so a second engine can reopen it like a restarted process
    return f"sqlite+aiosqlite:///{tmp_path / 'schedules.db'}"


@pytest_asyncio.fixture
async def engine(database_url):
    engine = create_async_engine(database_url)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(engine) -> SQLAlchemyScheduleStore:
    store = SQLAlchemyScheduleStore(engine)
    await store.initialize()
    return store


@pytest.fixture
def weekly_record():
    spec = ScheduleSpec.weekly(
        datetime(2026, 1, 5, 14, 45),
        tz="Europe/Berlin",
        week_days={WeekDay.MONDAY, WeekDay.FRIDAY},
        end_date=datetime(2026, 6, 30, 23, 59),
        max_occurrences=40,
    )
    return make_record(
        spec=spec,
        trigger_count=3,
        backend_token="token-7",
        last_triggered_at=T0 - timedelta(days=1),
        payload={"title": "Stretch", "audio": "chime.mp3", "tags": ["health"]},
    )


# --- CRUD ---


async def test_put_and_get_round_trip(store, weekly_record):
    await store.put(weekly_record)
    restored = await store.get(weekly_record.schedule_id)

    assert restored == weekly_record
    assert restored.spec == weekly_record.spec
    assert restored.trigger_count == 3
    assert restored.payload["tags"] == ["health"]


async def test_custom_spec_round_trip(store):
    spec = ScheduleSpec.custom(datetime(2026, 1, 5, 9, 0), 90, IntervalUnit.MINUTE, tz="UTC")
    record = make_record(spec=spec)
    await store.put(record)

    assert (await store.get(record.schedule_id)).spec == spec


async def test_get_missing(store):
    assert await store.get("notification-404") is None


async def test_put_overwrites_row(store, weekly_record):
    await store.put(weekly_record)
    await store.put(weekly_record.retire(T0))

    restored = await store.get(weekly_record.schedule_id)
    assert restored.active is False
    assert len(await store.list_all()) == 1


async def test_indexed_columns_mirror_record(store, weekly_record):
    await store.put(weekly_record)

    async with store._get_session() as session:
        row = await session.get(ScheduledNotification, weekly_record.schedule_id)

    assert row.schedule_type == "weekly"
    assert row.active is True
    assert row.notification_id == "1"
    assert '"scheduleType":"weekly"' in row.document


async def test_remove(store, weekly_record):
    await store.put(weekly_record)
    assert await store.remove(weekly_record.schedule_id) is True
    assert await store.remove(weekly_record.schedule_id) is False
    assert await store.get(weekly_record.schedule_id) is None


async def test_clear(store):
    for i in range(3):
        await store.put(make_record(f"notification-{i}"))
    assert await store.clear() == 3
    assert await store.list_all() == []


async def test_update_is_persisted(store, weekly_record):
    await store.put(weekly_record)
    await store.update(
        weekly_record.schedule_id,
        lambda r: r.model_copy(update={"trigger_count": r.trigger_count + 1}),
    )
    assert (await store.get(weekly_record.schedule_id)).trigger_count == 4


async def test_query_and_statistics(store):
    await store.put(make_record("notification-1"))
    await store.put(make_record("notification-2").retire(T0))

    active = await store.query(ScheduleFilters(is_active=True))
    assert [r.schedule_id for r in active] == ["notification-1"]
    assert len(await store.query(ScheduleFilters(), Pagination(limit=1))) == 1

    stats = await store.statistics(T0)
    assert stats.total == 2
    assert stats.expired == 1


# --- Durability ---


async def test_records_survive_reopen(database_url, weekly_record):
    first_engine = create_async_engine(database_url)
    first = SQLAlchemyScheduleStore(first_engine)
    await first.initialize()
    await first.put(weekly_record)
    await first_engine.dispose()

    second_engine = create_async_engine(database_url)
    second = SQLAlchemyScheduleStore(second_engine)
    await second.initialize()
    try:
        assert await second.get(weekly_record.schedule_id) == weekly_record
    finally:
        await second_engine.dispose()


async def test_unreadable_row_is_skipped_in_listing(store, weekly_record):
    await store.put(weekly_record)
    async with store._get_session() as session:
        session.add(
            ScheduledNotification(
                schedule_id="notification-broken",
                notification_id="broken",
                schedule_type="daily",
                active=True,
                created_at=T0,
                updated_at=T0,
                document="{not json",
            )
        )
        await session.commit()

    records = await store.list_all()
    assert [r.schedule_id for r in records] == [weekly_record.schedule_id]

    with pytest.raises(PersistenceError):
        await store.get("notification-broken")


async def test_rows_written_elsewhere_load_with_defaults(store):
    async with store._get_session() as session:
        session.add(
            ScheduledNotification(
                schedule_id="notification-legacy",
                notification_id="legacy",
                schedule_type="daily",
                active=True,
                created_at=T0,
                updated_at=T0,
                document=(
                    '{"scheduleId":"notification-legacy","scheduleType":"daily",'
                    '"scheduledTime":1767603600000,"timeZone":"UTC","priority":"high"}'
                ),
            )
        )
        await session.commit()

    record = await store.get("notification-legacy")
    assert record.spec.anchor == datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
    assert record.active is True
    assert record.trigger_count == 0
    assert record.payload == {}


# --- Errors ---


async def test_uninitialized_store_raises(engine):
    store = SQLAlchemyScheduleStore(engine)
    with pytest.raises(RuntimeError, match="not initialized"):
        await store.get("notification-1")


async def test_database_errors_become_persistence_errors(tmp_path):
    missing_dir = tmp_path / "missing" / "schedules.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{missing_dir}")
    store = SQLAlchemyScheduleStore(engine)
    try:
        with pytest.raises(PersistenceError, match="create schedule tables"):
            await store.initialize()
    finally:
        await engine.dispose()


async def test_missing_table_becomes_persistence_error(engine):
    store = SQLAlchemyScheduleStore(engine)
    await store.initialize()
    async with engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE flash_notification_schedules")

    with pytest.raises(PersistenceError) as exc_info:
        await store.get("notification-1")
    assert exc_info.value.schedule_id == "notification-1"


async def test_unserializable_payload_is_not_stored(store, weekly_record):
    record = weekly_record.model_copy(update={"payload": {"blob": b"\x00\x01"}})

    with pytest.raises(PersistenceError, match="not JSON-serializable"):
        await store.put(record)
    assert await store.get(record.schedule_id) is None


# --- Factory ---


async def test_create_store_defaults_to_memory():
    assert isinstance(create_store(""), MemoryScheduleStore)
    assert isinstance(create_store("memory://"), MemoryScheduleStore)


async def test_create_store_from_url(database_url):
    store = create_store(database_url)
    assert isinstance(store, SQLAlchemyScheduleStore)
    await store.initialize()
    try:
        await store.put(make_record())
        conn = await store._engine.connect()
        rows = (await conn.execute(select(ScheduledNotification.schedule_id))).all()
        await conn.close()
        assert [r[0] for r in rows] == ["notification-1"]
    finally:
        await store.close()


async def test_create_store_follows_settings(database_url, monkeypatch):
    from flash_notifications.config import notification_settings

    monkeypatch.setattr(notification_settings, "DATABASE_URL", None)
    assert isinstance(create_store(), MemoryScheduleStore)

    monkeypatch.setattr(notification_settings, "DATABASE_URL", database_url)
    store = create_store()
    assert isinstance(store, SQLAlchemyScheduleStore)
    await store.close()
