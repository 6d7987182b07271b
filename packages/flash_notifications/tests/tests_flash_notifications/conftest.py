import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from flash_notifications.backends.base import AlarmBackend
from flash_notifications.coordinator import ScheduleCoordinator
from flash_notifications.events import Event, EventListener, NotificationEvent
from flash_notifications.exceptions import BackendError
from flash_notifications.schemas import ScheduleRecord, ScheduleSpec
from flash_notifications.sinks import NotificationSink
from flash_notifications.stores.memory import MemoryScheduleStore

# Monday
T0 = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


class FakeAlarmBackend(AlarmBackend):
    """Records arm/disarm calls instead of sleeping."""

    def __init__(self):
        super().__init__()
        self.armed: dict[str, datetime] = {}
        self.tokens: dict[str, str] = {}
        self.arm_calls: list[tuple[str, datetime]] = []
        self.disarmed: list[str] = []
        self.fail_arm = False
        self.fail_disarm = False
        self.shut_down = False

    async def arm(self, schedule_id: str, at: datetime) -> str:
        self.arm_calls.append((schedule_id, at))
        if self.fail_arm:
            raise BackendError("arm refused", schedule_id=schedule_id)
        token = f"token-{schedule_id}-{len(self.arm_calls)}"
        self.armed[schedule_id] = at
        self.tokens[schedule_id] = token
        return token

    async def disarm(self, token: str) -> None:
        if self.fail_disarm:
            raise BackendError("disarm refused")
        self.disarmed.append(token)
        for schedule_id, current in list(self.tokens.items()):
            if current == token:
                del self.tokens[schedule_id]
                self.armed.pop(schedule_id, None)

    async def shutdown(self) -> None:
        self.shut_down = True

    async def trigger(self, schedule_id: str):
        """Simulate the wake-up arriving."""
        return await self._callback(schedule_id)


class RecordingSink(NotificationSink):
    def __init__(self):
        self.displayed: list[dict] = []

    async def display(self, payload: dict) -> None:
        self.displayed.append(payload)


class FailingSink(NotificationSink):
    async def display(self, payload: dict) -> None:
        msg = "Display unavailable"
        raise RuntimeError(msg)


class EventCollector(EventListener):
    """Captures events for assertions."""

    def __init__(self):
        self.events: list[Event] = []

    async def on_event(self, event: Event) -> None:
        self.events.append(event)

    def by_type(self, event_type: NotificationEvent) -> list[Event]:
        return [e for e in self.events if e.type == event_type]

    def count(self, event_type: NotificationEvent) -> int:
        return len(self.by_type(event_type))

    def first(self, event_type: NotificationEvent) -> Event | None:
        events = self.by_type(event_type)
        return events[0] if events else None


async def drain(coordinator: ScheduleCoordinator) -> None:
    """Wait for background sink deliveries."""
    while coordinator._deliveries:
        await asyncio.gather(*list(coordinator._deliveries), return_exceptions=True)
        await asyncio.sleep(0)


def make_record(
    schedule_id: str = "notification-1",
    spec: ScheduleSpec | None = None,
    **overrides,
) -> ScheduleRecord:
    spec = spec or ScheduleSpec.daily(datetime(2026, 1, 5, 9, 0), tz="UTC")
    data = {
        "schedule_id": schedule_id,
        "notification_id": schedule_id.removeprefix("notification-"),
        "spec": spec,
        "payload": {"title": "Stretch"},
        "created_at": T0,
        "updated_at": T0,
        "next_occurrence": datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return ScheduleRecord(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeAlarmBackend()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def store():
    return MemoryScheduleStore()


@pytest.fixture
def collector():
    return EventCollector()


@pytest_asyncio.fixture
async def coordinator(store, backend, sink, clock, collector):
    coord = ScheduleCoordinator(store=store, backend=backend, sink=sink, clock=clock)
    coord.events.add_listener(collector)
    yield coord
    await coord.shutdown(wait=False)
