import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio

from conftest import T0, make_record
from flash_notifications.schemas import (
    Pagination,
    ScheduleFilters,
    ScheduleSpec,
    ScheduleType,
)
from flash_notifications.stores.memory import MemoryScheduleStore

pytestmark = pytest.mark.asyncio


@pytest.fixture
def store():
    return MemoryScheduleStore()


async def test_put_and_get(store):
    record = make_record()
    await store.put(record)

    assert await store.get("notification-1") == record
    assert await store.get("notification-404") is None


async def test_put_overwrites(store):
    await store.put(make_record())
    await store.put(make_record(trigger_count=4))

    assert (await store.get("notification-1")).trigger_count == 4
    assert len(await store.list_all()) == 1


async def test_remove(store):
    await store.put(make_record())
    assert await store.remove("notification-1") is True
    assert await store.get("notification-1") is None
    assert await store.remove("notification-1") is False


async def test_clear_returns_count(store):
    for i in range(3):
        await store.put(make_record(f"notification-{i}"))
    assert await store.clear() == 3
    assert await store.list_all() == []


class TestUpdate:
    async def test_missing_id_does_not_call_fn(self, store):
        calls = []
        result = await store.update("notification-404", lambda r: calls.append(r) or r)
        assert result is None
        assert calls == []

    async def test_sync_fn(self, store):
        await store.put(make_record())
        updated = await store.update(
            "notification-1", lambda r: r.model_copy(update={"trigger_count": 9})
        )
        assert updated.trigger_count == 9
        assert (await store.get("notification-1")).trigger_count == 9

    async def test_async_fn(self, store):
        await store.put(make_record())

        async def bump(record):
            await asyncio.sleep(0)
            return record.model_copy(update={"trigger_count": record.trigger_count + 1})

        updated = await store.update("notification-1", bump)
        assert updated.trigger_count == 1

    async def test_concurrent_updates_lose_nothing(self, store):
        await store.put(make_record())

        async def bump(record):
            # Yield mid-update so other updates get a chance to interleave
            await asyncio.sleep(0)
            return record.model_copy(update={"trigger_count": record.trigger_count + 1})

        await asyncio.gather(*(store.update("notification-1", bump) for _ in range(50)))
        assert (await store.get("notification-1")).trigger_count == 50

    async def test_distinct_ids_do_not_block(self, store):
        await store.put(make_record("notification-a"))
        await store.put(make_record("notification-b"))
        release = asyncio.Event()

        async def wait_for_release(record):
            await release.wait()
            return record

        slow = asyncio.create_task(store.update("notification-a", wait_for_release))
        await asyncio.sleep(0)

        # Completes while notification-a is still locked
        result = await asyncio.wait_for(
            store.update("notification-b", lambda r: r.model_copy(update={"trigger_count": 1})),
            timeout=1,
        )
        assert result.trigger_count == 1
        assert not slow.done()

        release.set()
        await slow

    async def test_fn_errors_propagate_and_leave_record(self, store):
        record = make_record()
        await store.put(record)

        def boom(_):
            msg = "nope"
            raise RuntimeError(msg)

        with pytest.raises(RuntimeError):
            await store.update("notification-1", boom)
        assert await store.get("notification-1") == record

    async def test_fn_may_not_change_id(self, store):
        await store.put(make_record())
        with pytest.raises(ValueError, match="returned record"):
            await store.update(
                "notification-1", lambda r: r.model_copy(update={"schedule_id": "other"})
            )


class TestPop:
    async def test_pop_returns_removed_record(self, store):
        record = make_record()
        await store.put(record)
        assert await store.pop("notification-1") == record
        assert await store.get("notification-1") is None
        assert await store.pop("notification-1") is None

    async def test_pop_with_failing_predicate_keeps_record(self, store):
        await store.put(make_record())
        assert await store.pop("notification-1", predicate=lambda r: not r.active) is None
        assert await store.get("notification-1") is not None


class TestQuery:
    @pytest_asyncio.fixture
    async def populated(self, store):
        await store.put(make_record("notification-1"))
        await store.put(make_record("notification-2").retire(T0))
        await store.put(
            make_record(
                "notification-3",
                spec=ScheduleSpec.one_time(T0 + timedelta(days=3)),
                created_at=T0 + timedelta(hours=1),
            )
        )
        await store.put(
            make_record(
                "notification-4",
                spec=ScheduleSpec.weekly(T0 + timedelta(days=1)),
                created_at=T0 + timedelta(hours=2),
            )
        )
        return store

    async def test_no_filters_returns_all(self, populated):
        assert len(await populated.query(ScheduleFilters())) == 4

    async def test_active_filter(self, populated):
        ids = {r.schedule_id for r in await populated.query(ScheduleFilters(is_active=False))}
        assert ids == {"notification-2"}

    async def test_recurring_filter(self, populated):
        ids = {r.schedule_id for r in await populated.query(ScheduleFilters(is_recurring=False))}
        assert ids == {"notification-3"}

    async def test_type_filter(self, populated):
        result = await populated.query(ScheduleFilters(schedule_type=ScheduleType.WEEKLY))
        assert [r.schedule_id for r in result] == ["notification-4"]

    async def test_scheduled_window(self, populated):
        result = await populated.query(
            ScheduleFilters(scheduled_after=T0 + timedelta(hours=12))
        )
        assert {r.schedule_id for r in result} == {"notification-3", "notification-4"}

    async def test_created_window(self, populated):
        result = await populated.query(ScheduleFilters(created_after=T0))
        assert {r.schedule_id for r in result} == {"notification-3", "notification-4"}

    async def test_pagination(self, populated):
        everything = await populated.query(ScheduleFilters())
        page = await populated.query(ScheduleFilters(), Pagination(offset=1, limit=2))
        assert page == everything[1:3]

    async def test_statistics(self, populated):
        stats = await populated.statistics(T0)
        assert stats.total == 4
        assert stats.active == 3
        assert stats.expired == 1
        assert stats.recurring == 3
        assert stats.one_time == 1
