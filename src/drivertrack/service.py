"""High-level async facade wiring the tracker, store, sync and bridge."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from drivertrack.bridge import DeliveryBridge, Subscription
from drivertrack.config import TrackerConfig
from drivertrack.exceptions import TrackerError
from drivertrack.keepalive import KeepAlive, LockFileKeepAlive, NullKeepAlive
from drivertrack.location.source import PositionSource
from drivertrack.models.events import LastLocation
from drivertrack.relay import MqttEventRelay
from drivertrack.state.store import LocalStateStore
from drivertrack.sync.firestore import DocumentTransport, FirestoreTransport
from drivertrack.sync.upstream import SyncDispatcher, SyncErrorCallback, UpstreamSync
from drivertrack.tracker import Tracker

_logger = logging.getLogger(__name__)


class TrackingService:
    """Driver location relay.

    Usage::

        async with TrackingService(config, source) as service:
            await service.start_tracking("driver-42")
            async for event in service.subscribe():
                ...
    """

    def __init__(
        self,
        config: TrackerConfig,
        source: PositionSource,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: DocumentTransport | None = None,
        keepalive: KeepAlive | None = None,
        on_sync_error: SyncErrorCallback | None = None,
        relay: MqttEventRelay | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._external_session = session is not None
        self._http_session = session
        self._transport_override = transport
        self._keepalive = keepalive
        self._on_sync_error = on_sync_error
        self._relay_override = relay
        self._store = LocalStateStore(config.state_path)
        self._dispatcher: SyncDispatcher | None = None
        self._tracker: Tracker | None = None
        self._bridge: DeliveryBridge | None = None
        self._relay: MqttEventRelay | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TrackingService:
        transport = self._transport_override
        if transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = FirestoreTransport(self._config, self._http_session)

        keepalive = self._keepalive
        if keepalive is None:
            if self._config.keepalive_lock_path:
                keepalive = LockFileKeepAlive(self._config.keepalive_lock_path)
            else:
                keepalive = NullKeepAlive()

        self._dispatcher = SyncDispatcher(UpstreamSync(self._config, transport), on_error=self._on_sync_error)
        self._tracker = Tracker(
            self._config,
            self._source,
            self._store,
            dispatcher=self._dispatcher,
            keepalive=keepalive,
        )
        self._bridge = DeliveryBridge(self._tracker, self._store, poll_interval=self._config.bridge_poll_interval)

        relay = self._relay_override
        if relay is None and self._config.mqtt_enabled:
            relay = MqttEventRelay(self._config, self._bridge)
        if relay is not None:
            try:
                await relay.start()
            except OSError:
                _logger.warning("MQTT relay unavailable, continuing without it", exc_info=True)
            else:
                self._relay = relay
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._tracker is not None:
            await self._tracker.stop()
        if self._relay is not None:
            await self._relay.stop()
            self._relay = None
        if self._bridge is not None:
            await self._bridge.close()
        if self._dispatcher is not None:
            drained = await self._dispatcher.drain(self._config.sync_shutdown_timeout)
            if not drained:
                _logger.warning("Dropping %d unfinished upstream write(s)", self._dispatcher.pending)
                await self._dispatcher.cancel()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def store(self) -> LocalStateStore:
        return self._store

    @property
    def tracker(self) -> Tracker:
        if self._tracker is None:
            raise TrackerError("Service not initialized. Use 'async with TrackingService(...) as service:'")
        return self._tracker

    @property
    def bridge(self) -> DeliveryBridge:
        if self._bridge is None:
            raise TrackerError("Service not initialized. Use 'async with TrackingService(...) as service:'")
        return self._bridge

    @property
    def dispatcher(self) -> SyncDispatcher:
        if self._dispatcher is None:
            raise TrackerError("Service not initialized. Use 'async with TrackingService(...) as service:'")
        return self._dispatcher

    # ------------------------------------------------------------------
    # Command interface
    # ------------------------------------------------------------------

    async def start_tracking(self, identity: str) -> None:
        await self.tracker.start(identity)

    async def stop_tracking(self) -> None:
        await self.tracker.stop()

    def is_tracking(self) -> bool:
        return self.tracker.is_tracking

    async def update_identity(self, identity: str) -> None:
        await self.tracker.update_identity(identity)

    def get_last_location(self) -> LastLocation | None:
        return self.bridge.get_last_location()

    def subscribe(self) -> Subscription:
        return self.bridge.subscribe()
