from datetime import datetime, timezone

import pytest
from conftest import make_record
from flash_notifications.events import Event, EventListener, EventManager, NotificationEvent
from flash_notifications.schemas import FireOutcome


class MockListener(EventListener):
    """A concrete implementation of EventListener for testing."""

    def __init__(self):
        self.received_events = []
        self.call_count = 0

    async def on_event(self, event: Event) -> None:
        self.call_count += 1
        self.received_events.append(event)


class FailingListener(EventListener):
    """A listener that consistently raises an exception."""

    async def on_event(self, event: Event) -> None:
        assert event is not None

        msg = "Simulated listener failure"
        raise ValueError(msg)


def test_event_initialization():
    """Verify that the Event dataclass stores fields correctly using real schemas."""
    now = datetime.now(timezone.utc)
    record = make_record("notification-123")

    outcome = FireOutcome(
        schedule_id="notification-123",
        status="rearmed",
        fired_at=now,
        trigger_count=1,
        next_occurrence=record.next_occurrence,
    )

    event = Event(
        type=NotificationEvent.FIRED,
        timestamp=now,
        schedule_id="notification-123",
        record=record,
        outcome=outcome,
        payload={"meta": "data"},
    )

    assert event.type == NotificationEvent.FIRED
    assert event.timestamp == now
    assert event.schedule_id == "notification-123"
    assert event.record.payload == {"title": "Stretch"}
    assert event.outcome.status == "rearmed"
    assert event.outcome.delivered is True
    assert event.payload == {"meta": "data"}


def test_event_defaults():
    event = Event(type=NotificationEvent.ALL_CANCELLED, timestamp=datetime.now(timezone.utc))
    assert event.schedule_id is None
    assert event.record is None
    assert event.outcome is None
    assert event.payload is None


@pytest.mark.asyncio
async def test_event_manager_add_remove_listener():
    """Test the registration and unregistration of listeners."""
    manager = EventManager()
    listener = MockListener()

    manager.add_listener(listener)
    assert listener in manager._listeners

    # Adding again replaces rather than duplicates
    manager.add_listener(listener)
    assert len(manager._listeners) == 1

    manager.remove_listener(listener)
    assert listener not in manager._listeners

    # Removing twice is harmless
    manager.remove_listener(listener)


@pytest.mark.asyncio
async def test_event_manager_dispatch_without_listeners():
    manager = EventManager()
    await manager.dispatch(
        Event(type=NotificationEvent.RECOVERED, timestamp=datetime.now(timezone.utc))
    )


@pytest.mark.asyncio
async def test_event_manager_dispatch_to_multiple_listeners():
    """Verify that dispatch sends the event to all registered listeners."""
    manager = EventManager()
    listeners = [MockListener() for _ in range(3)]
    for listener in listeners:
        manager.add_listener(listener)

    event = Event(type=NotificationEvent.SCHEDULED, timestamp=datetime.now(timezone.utc))
    await manager.dispatch(event)

    for listener in listeners:
        assert listener.call_count == 1
        assert listener.received_events[0] == event


@pytest.mark.asyncio
async def test_event_manager_error_isolation(caplog):
    """
    Ensure that a failing listener does not prevent other listeners
    from receiving events or crash the dispatch process.
    """
    manager = EventManager()
    failing_listener = FailingListener()
    success_listener = MockListener()

    manager.add_listener(failing_listener)
    manager.add_listener(success_listener)

    event = Event(type=NotificationEvent.ERROR, timestamp=datetime.now(timezone.utc))

    # This should not raise an exception
    await manager.dispatch(event)

    assert success_listener.call_count == 1
    assert "Event listener" in caplog.text
    assert "failed on ERROR" in caplog.text


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_coordinator(coordinator, store):
    coordinator.events.add_listener(FailingListener())

    schedule_id = await coordinator.register(1, make_record().spec)

    assert await store.get(schedule_id) is not None


@pytest.mark.asyncio
async def test_listener_receives_only_subscribed_types():
    manager = EventManager()
    errors_only = MockListener()
    everything = MockListener()
    manager.add_listener(errors_only, types={NotificationEvent.ERROR})
    manager.add_listener(everything)

    now = datetime.now(timezone.utc)
    await manager.dispatch(Event(type=NotificationEvent.FIRED, timestamp=now))
    await manager.dispatch(Event(type=NotificationEvent.ERROR, timestamp=now))

    assert [e.type for e in errors_only.received_events] == [NotificationEvent.ERROR]
    assert everything.call_count == 2


@pytest.mark.asyncio
async def test_adding_listener_again_replaces_subscription():
    manager = EventManager()
    listener = MockListener()
    manager.add_listener(listener, types={NotificationEvent.ERROR})
    manager.add_listener(listener, types=[NotificationEvent.FIRED])

    now = datetime.now(timezone.utc)
    await manager.dispatch(Event(type=NotificationEvent.ERROR, timestamp=now))
    await manager.dispatch(Event(type=NotificationEvent.FIRED, timestamp=now))

    assert [e.type for e in listener.received_events] == [NotificationEvent.FIRED]
