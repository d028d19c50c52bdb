"""Delivery bridge between the tracker and the UI layer.

Commands come in as method-channel style calls and map onto tracker and
store operations.  New samples go out as :class:`LocationEvent` objects
on subscriber streams.

The store's ``dirty`` flag is the delivery contract: a sample is handed
out at most once, either by ``getLastLocation`` or by the event pump,
never both.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from drivertrack._constants import ACK_IDENTITY_UPDATED, ACK_STARTED, ACK_STOPPED
from drivertrack.exceptions import StateStoreError
from drivertrack.models.commands import (
    BridgeCommand,
    GetLastLocation,
    IsTracking,
    StartTracking,
    StopTracking,
    UpdateIdentity,
    parse_command,
)
from drivertrack.models.events import LastLocation, LocationEvent
from drivertrack.models.sample import Sample
from drivertrack.state.store import LocalStateStore
from drivertrack.tracker import Tracker

_logger = logging.getLogger(__name__)


class Subscription:
    """Unbounded async stream of :class:`LocationEvent`.

    Iterate with ``async for``; the stream ends after :meth:`unsubscribe`
    (or bridge shutdown) once already queued events are consumed.
    """

    def __init__(self, bridge: DeliveryBridge) -> None:
        self._bridge = bridge
        self._queue: asyncio.Queue[LocationEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> LocationEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.unsubscribe()

    def _deliver(self, event: LocationEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def _end(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def unsubscribe(self) -> None:
        """End the stream and release the bridge pump if this was the last subscriber."""
        self._bridge._remove(self)

    async def aclose(self) -> None:
        self.unsubscribe()


class DeliveryBridge:
    """Command handler and event source for the UI layer."""

    def __init__(self, tracker: Tracker, store: LocalStateStore, *, poll_interval: float = 5.0) -> None:
        self._tracker = tracker
        self._store = store
        self._poll_interval = poll_interval
        self._subscribers: list[Subscription] = []
        self._wakeup: asyncio.Event | None = None
        self._pump: asyncio.Task[None] | None = None
        self._remove_listener = tracker.add_listener(self._on_sample_persisted)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def pumping(self) -> bool:
        return self._pump is not None and not self._pump.done()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def handle(self, call: Mapping[str, Any]) -> Any:
        """Handle a ``{"method": ..., "arguments": {...}}`` call.

        Returns plain values (``str`` acks, ``bool``, ``dict`` or ``None``).
        Lifecycle errors propagate to the caller.
        """
        result = await self.dispatch(parse_command(call))
        if isinstance(result, LastLocation):
            return result.model_dump()
        return result

    async def dispatch(self, command: BridgeCommand) -> Any:
        if isinstance(command, StartTracking):
            await self._tracker.start(command.identity)
            return ACK_STARTED
        if isinstance(command, StopTracking):
            await self._tracker.stop()
            return ACK_STOPPED
        if isinstance(command, IsTracking):
            return self._tracker.is_tracking
        if isinstance(command, GetLastLocation):
            return self.get_last_location()
        if isinstance(command, UpdateIdentity):
            await self._tracker.update_identity(command.identity)
            return ACK_IDENTITY_UPDATED
        raise TypeError(f"Unsupported command: {command!r}")

    def get_last_location(self) -> LastLocation | None:
        """Drain the pending sample, or ``None`` when nothing new arrived since the last read."""
        snapshot = self._store.take_if_dirty()
        if snapshot is None or snapshot.last_sample is None:
            return None
        sample = snapshot.last_sample
        return LastLocation(
            lat=sample.latitude,
            lng=sample.longitude,
            identity=snapshot.identity or "",
            updated=True,
        )

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    def subscribe(self) -> Subscription:
        """Open a new event stream.  Must be called on the event loop."""
        loop = asyncio.get_running_loop()
        subscription = Subscription(self)
        self._subscribers.append(subscription)
        if self._pump is None:
            wakeup = asyncio.Event()
            self._wakeup = wakeup
            self._pump = loop.create_task(self._run_pump(wakeup))
        # Deliver anything persisted before this subscriber arrived.
        assert self._wakeup is not None  # noqa: S101
        self._wakeup.set()
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscription._end()
        self._subscribers = [sub for sub in self._subscribers if sub is not subscription]
        if not self._subscribers:
            self._stop_pump()

    def _stop_pump(self) -> None:
        pump = self._pump
        self._pump = None
        self._wakeup = None
        if pump is not None:
            pump.cancel()

    def _on_sample_persisted(self, _identity: str, _sample: Sample) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    async def _run_pump(self, wakeup: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=self._poll_interval)
            except TimeoutError:
                pass
            wakeup.clear()
            try:
                self.pump_once()
            except StateStoreError:
                _logger.error("Bridge drain failed", exc_info=True)

    def pump_once(self) -> LocationEvent | None:
        """Drain one pending sample and fan it out to every subscriber."""
        if not self._subscribers:
            return None
        snapshot = self._store.take_if_dirty()
        if snapshot is None or snapshot.last_sample is None:
            return None
        event = LocationEvent.from_sample(snapshot.identity or "", snapshot.last_sample)
        for subscription in list(self._subscribers):
            subscription._deliver(event)
        _logger.debug("Delivered sample to %d subscriber(s)", len(self._subscribers))
        return event

    async def close(self) -> None:
        """End every subscription and detach from the tracker."""
        pump = self._pump
        for subscription in list(self._subscribers):
            subscription._end()
        self._subscribers = []
        self._stop_pump()
        self._remove_listener()
        if pump is not None:
            await asyncio.gather(pump, return_exceptions=True)
