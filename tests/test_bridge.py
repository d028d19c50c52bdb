from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from drivertrack.bridge import DeliveryBridge
from drivertrack.config import TrackerConfig
from drivertrack.exceptions import InvalidIdentityError, PermissionDeniedError, UnknownCommandError
from drivertrack.location import ManualPositionSource
from drivertrack.models.events import LocationEvent
from drivertrack.models.sample import Sample
from drivertrack.state.store import LocalStateStore
from drivertrack.tracker import Tracker


def _bridge(
    source: ManualPositionSource | None = None,
    store: LocalStateStore | None = None,
    poll_interval: float = 5.0,
) -> tuple[DeliveryBridge, Tracker, ManualPositionSource, LocalStateStore]:
    config = TrackerConfig(project_id="demo")
    source = source or ManualPositionSource()
    store = store or LocalStateStore()
    tracker = Tracker(config, source, store)
    return DeliveryBridge(tracker, store, poll_interval=poll_interval), tracker, source, store


async def _wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
async def test_get_last_location_returns_pending_sample_once() -> None:
    bridge, tracker, source, _store = _bridge()

    assert await bridge.handle({"method": "startTracking", "arguments": {"username": "alice"}}) == "Service started"
    source.push(Sample(latitude=12.0, longitude=77.0))
    await tracker.flush()

    first = await bridge.handle({"method": "getLastLocation"})
    second = await bridge.handle({"method": "getLastLocation"})

    assert first == {"lat": 12.0, "lng": 77.0, "identity": "alice", "updated": True}
    assert second is None
    await bridge.handle({"method": "stopTracking"})


@pytest.mark.asyncio
async def test_get_last_location_before_any_sample_is_none() -> None:
    bridge, _tracker, _source, _store = _bridge()

    assert await bridge.handle({"method": "getLastLocation"}) is None


@pytest.mark.asyncio
async def test_lifecycle_commands() -> None:
    bridge, tracker, _source, _store = _bridge()

    assert await bridge.handle({"method": "isTracking"}) is False
    await bridge.handle({"method": "startTracking", "arguments": {"identity": "alice"}})
    assert await bridge.handle({"method": "isTracking"}) is True

    ack = await bridge.handle({"method": "updateIdentity", "arguments": {"username": "bob"}})
    assert ack == "Identity updated"
    assert tracker.identity == "bob"

    assert await bridge.handle({"method": "stopTracking"}) == "Service stopped"
    assert await bridge.handle({"method": "isTracking"}) is False


@pytest.mark.asyncio
async def test_stop_tracking_without_start_acknowledges() -> None:
    bridge, _tracker, _source, _store = _bridge()

    assert await bridge.handle({"method": "stopTracking"}) == "Service stopped"


@pytest.mark.asyncio
async def test_lifecycle_errors_reach_the_caller() -> None:
    bridge, tracker, _source, _store = _bridge(ManualPositionSource(permission_granted=False))

    with pytest.raises(InvalidIdentityError):
        await bridge.handle({"method": "startTracking", "arguments": {"username": ""}})
    with pytest.raises(InvalidIdentityError):
        await bridge.handle({"method": "startTracking"})
    with pytest.raises(PermissionDeniedError):
        await bridge.handle({"method": "startTracking", "arguments": {"username": "alice"}})
    with pytest.raises(UnknownCommandError):
        await bridge.handle({"method": "reboot"})

    assert not tracker.is_tracking


@pytest.mark.asyncio
async def test_subscription_receives_one_event_per_drained_sample() -> None:
    bridge, tracker, source, store = _bridge()
    await tracker.start("alice")
    subscription = bridge.subscribe()

    source.push(Sample(latitude=1.0, longitude=1.0))
    await tracker.flush()
    first = await asyncio.wait_for(subscription.__anext__(), 1.0)
    source.push(Sample(latitude=2.0, longitude=2.0))
    await tracker.flush()
    second = await asyncio.wait_for(subscription.__anext__(), 1.0)

    assert first == LocationEvent(lat=1.0, lng=1.0, identity="alice")
    assert second == LocationEvent(lat=2.0, lng=2.0, identity="alice")
    # The stream drained the store, so the command path sees nothing new.
    assert store.snapshot().dirty is False
    assert bridge.get_last_location() is None

    subscription.unsubscribe()
    await tracker.stop()


@pytest.mark.asyncio
async def test_subscribe_delivers_sample_persisted_before_subscription() -> None:
    store = LocalStateStore()
    store.put("alice", Sample(latitude=3.0, longitude=4.0, captured_at=datetime(2026, 1, 1, tzinfo=UTC)))
    bridge, _tracker, _source, _store = _bridge(store=store)

    subscription = bridge.subscribe()
    event = await asyncio.wait_for(subscription.__anext__(), 1.0)

    assert event == LocationEvent(lat=3.0, lng=4.0, identity="alice")
    await bridge.close()


@pytest.mark.asyncio
async def test_pump_polls_store_on_interval() -> None:
    store = LocalStateStore()
    bridge, _tracker, _source, _store = _bridge(store=store, poll_interval=0.02)
    subscription = bridge.subscribe()
    await asyncio.sleep(0.01)

    # Written behind the tracker's back: only the periodic re-check sees it.
    store.put("alice", Sample(latitude=5.0, longitude=6.0))
    event = await asyncio.wait_for(subscription.__anext__(), 1.0)

    assert event.lat == 5.0
    await bridge.close()


@pytest.mark.asyncio
async def test_every_subscriber_gets_the_event() -> None:
    bridge, tracker, source, _store = _bridge()
    await tracker.start("alice")
    first_sub = bridge.subscribe()
    second_sub = bridge.subscribe()

    source.push(Sample(latitude=1.0, longitude=1.0))
    await tracker.flush()

    a = await asyncio.wait_for(first_sub.__anext__(), 1.0)
    b = await asyncio.wait_for(second_sub.__anext__(), 1.0)
    assert a == b
    await bridge.close()
    await tracker.stop()


@pytest.mark.asyncio
async def test_unsubscribe_ends_stream_and_stops_pump() -> None:
    bridge, _tracker, _source, _store = _bridge()
    subscription = bridge.subscribe()
    assert bridge.pumping

    received: list[LocationEvent] = []

    async def consume() -> None:
        async for event in subscription:
            received.append(event)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    subscription.unsubscribe()
    await asyncio.wait_for(consumer, 1.0)

    assert received == []
    assert subscription.closed
    assert bridge.subscriber_count == 0
    await _wait_for(lambda: not bridge.pumping)


@pytest.mark.asyncio
async def test_samples_without_subscribers_stay_pending() -> None:
    bridge, tracker, source, store = _bridge()
    await tracker.start("alice")
    subscription = bridge.subscribe()
    subscription.unsubscribe()

    source.push(Sample(latitude=1.0, longitude=1.0))
    await tracker.flush()
    await asyncio.sleep(0.01)

    assert store.snapshot().dirty is True
    assert bridge.pump_once() is None
    await tracker.stop()


@pytest.mark.asyncio
async def test_close_ends_all_subscriptions() -> None:
    bridge, _tracker, _source, _store = _bridge()

    async with bridge.subscribe() as subscription:
        await bridge.close()
        with pytest.raises(StopAsyncIteration):
            await subscription.__anext__()

    assert not bridge.pumping


@pytest.mark.asyncio
async def test_start_command_during_stop_command_ends_active() -> None:
    bridge, tracker, source, _store = _bridge()
    await bridge.handle({"method": "startTracking", "arguments": {"username": "alice"}})

    stopping = asyncio.create_task(bridge.handle({"method": "stopTracking"}))
    await asyncio.sleep(0)
    ack = await bridge.handle({"method": "startTracking", "arguments": {"username": "bob"}})

    assert await stopping == "Service stopped"
    assert ack == "Service started"
    assert tracker.is_tracking
    assert tracker.identity == "bob"
    assert source.subscriber_count == 1
    await bridge.handle({"method": "stopTracking"})
