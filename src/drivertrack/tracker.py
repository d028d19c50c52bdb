"""Sampling loop.

Owns the subscription to the position source and the per-process
:class:`~drivertrack.models.TrackingSession`.  State machine::

    IDLE --start(id)--> ACTIVE(id)
    ACTIVE(id) --start(id)--> ACTIVE(id)      (no-op)
    ACTIVE(a) --start(b)--> ACTIVE(b)         (identity swap, subscription kept)
    ACTIVE(id) --stop--> IDLE
    IDLE --stop--> IDLE                       (no-op)

Samples reach the loop through a thread-safe callback that feeds an
``asyncio.Queue``; a single consumer task processes them in emission
order.  Every sample is persisted and forwarded, stationary or not.
Start, stop and identity changes are serialized, so a command issued
while a stop is in flight sees the idle state.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from drivertrack._redact import mask_identity
from drivertrack.config import TrackerConfig
from drivertrack.exceptions import (
    InvalidIdentityError,
    PermissionDeniedError,
    ResourceAcquisitionError,
    StateStoreError,
    TrackerError,
)
from drivertrack.keepalive import KeepAlive, NullKeepAlive
from drivertrack.location.source import LocationRequest, PositionSource, SampleCallback, SourceSubscription
from drivertrack.models.sample import Sample
from drivertrack.models.session import Motion, TrackingSession
from drivertrack.state.policy import classify_motion, next_streak
from drivertrack.state.store import LocalStateStore
from drivertrack.sync.upstream import SyncDispatcher

_logger = logging.getLogger(__name__)

SampleListener = Callable[[str, Sample], None]


def validate_identity(identity: str | None) -> str:
    """Return the stripped identity or raise :class:`InvalidIdentityError`."""
    if not isinstance(identity, str) or not identity.strip():
        raise InvalidIdentityError("identity must be a non-empty string")
    value = identity.strip()
    # Identities are Firestore document ids.
    if "/" in value:
        raise InvalidIdentityError(f"identity must not contain '/': {value!r}")
    return value


class Tracker:
    """Position sampling loop.

    Usage::

        tracker = Tracker(config, source, store, dispatcher=dispatcher)
        await tracker.start("driver-42")
        ...
        await tracker.stop()
    """

    def __init__(
        self,
        config: TrackerConfig,
        source: PositionSource,
        store: LocalStateStore,
        *,
        dispatcher: SyncDispatcher | None = None,
        keepalive: KeepAlive | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._store = store
        self._dispatcher = dispatcher
        self._keepalive: KeepAlive = keepalive if keepalive is not None else NullKeepAlive()
        self._request = LocationRequest.from_config(config)
        self._session = TrackingSession()
        self._subscription: SourceSubscription | None = None
        self._queue: asyncio.Queue[Sample] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._listeners: list[SampleListener] = []
        # Serializes start, stop and identity changes.
        self._lifecycle = asyncio.Lock()
        # Bumped on every start/stop so callbacks from an old subscription are dropped.
        self._generation = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_tracking(self) -> bool:
        return self._session.active

    @property
    def identity(self) -> str | None:
        return self._session.identity if self._session.active else None

    @property
    def session(self) -> TrackingSession:
        """Copy of the current session."""
        return self._session.model_copy(deep=True)

    @property
    def request(self) -> LocationRequest:
        return self._request

    def add_listener(self, listener: SampleListener) -> Callable[[], None]:
        """Call *listener(identity, sample)* after every persisted sample.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, identity: str) -> None:
        """Start tracking *identity*.

        Raises
        ------
        InvalidIdentityError
            *identity* is empty.  Nothing changes.
        PermissionDeniedError
            The position source is unavailable.  The tracker stays idle.
        ResourceAcquisitionError
            The keep-alive token could not be acquired.  The tracker stays idle.
        """
        identity = validate_identity(identity)
        async with self._lifecycle:
            self._start(identity)

    def _start(self, identity: str) -> None:
        if self._session.active:
            if identity == self._session.identity:
                _logger.debug("start(%s) ignored: already tracking", mask_identity(identity))
                return
            self._swap_identity(identity)
            return

        if not self._source.is_available():
            raise PermissionDeniedError("Position source unavailable (location permission missing)")

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Sample] = asyncio.Queue()
        generation = self._generation + 1

        with contextlib.ExitStack() as stack:
            try:
                self._keepalive.acquire()
            except ResourceAcquisitionError:
                raise
            except Exception as exc:
                raise ResourceAcquisitionError(f"Keep-alive acquisition failed: {exc}") from exc
            stack.callback(self._keepalive.release)

            try:
                subscription = self._source.subscribe(self._request, self._make_callback(loop, queue, generation))
            except PermissionError as exc:
                raise PermissionDeniedError(f"Position source refused subscription: {exc}") from exc
            stack.callback(subscription.cancel)

            consumer = loop.create_task(self._consume(queue))
            stack.callback(consumer.cancel)

            self._session.identity = identity
            self._session.active = True
            self._session.last_sample = None
            self._session.stationary_streak = 0
            self._session.last_motion = None
            stack.pop_all()

        self._generation = generation
        self._subscription = subscription
        self._queue = queue
        self._consumer = consumer
        _logger.info(
            "Tracking started for %s (interval=%ss distance_filter=%sm)",
            mask_identity(identity),
            self._request.interval,
            self._request.distance_filter,
        )

    def _swap_identity(self, identity: str) -> None:
        previous = self._session.identity
        self._session.identity = identity
        try:
            self._store.set_identity(identity)
        except StateStoreError:
            _logger.error("Could not persist identity swap", exc_info=True)
        _logger.info("Tracking identity swapped %s -> %s", mask_identity(previous), mask_identity(identity))

    async def update_identity(self, identity: str) -> None:
        """Change the tracked identity.

        While active this is the identity swap transition; while idle it is
        acknowledged without changing state.
        """
        identity = validate_identity(identity)
        async with self._lifecycle:
            self._update_identity(identity)

    def _update_identity(self, identity: str) -> None:
        if not self._session.active:
            _logger.debug("update_identity(%s) while idle: nothing to re-arm", mask_identity(identity))
            return
        if identity != self._session.identity:
            self._swap_identity(identity)

    async def stop(self) -> None:
        """Stop tracking.  Safe to call at any time; never raises.

        The source subscription is cancelled before this returns, so no
        sample is processed afterwards.  In-flight upstream writes are not
        awaited.
        """
        async with self._lifecycle:
            await self._stop()

    async def _stop(self) -> None:
        was_active = self._session.active
        subscription = self._subscription
        consumer = self._consumer
        self._generation += 1
        self._subscription = None
        self._consumer = None
        self._queue = None

        try:
            try:
                if subscription is not None:
                    subscription.cancel()
            except Exception:
                _logger.warning("Position source unsubscribe failed", exc_info=True)
            if consumer is not None:
                consumer.cancel()
                await asyncio.gather(consumer, return_exceptions=True)
            try:
                self._keepalive.release()
            except Exception:
                _logger.warning("Keep-alive release failed", exc_info=True)
        finally:
            self._session.reset()

        if not was_active:
            return
        try:
            self._store.clear()
        except StateStoreError:
            _logger.error("Could not clear tracker state on stop", exc_info=True)
        _logger.info("Tracking stopped")

    # ------------------------------------------------------------------
    # Sample flow
    # ------------------------------------------------------------------

    def _make_callback(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[Sample],
        generation: int,
    ) -> SampleCallback:
        def on_sample(sample: Sample) -> None:
            try:
                loop.call_soon_threadsafe(self._enqueue, queue, generation, sample)
            except RuntimeError:
                _logger.debug("Dropping sample: event loop closed")

        return on_sample

    def _enqueue(self, queue: asyncio.Queue[Sample], generation: int, sample: Sample) -> None:
        if generation != self._generation:
            return
        queue.put_nowait(sample)

    async def _consume(self, queue: asyncio.Queue[Sample]) -> None:
        while True:
            sample = await queue.get()
            try:
                self.process(sample)
            except TrackerError:
                _logger.error("Sample processing failed", exc_info=True)
            finally:
                queue.task_done()

    def process(self, sample: Sample) -> Motion:
        """Apply one sample to the session, persist it and forward it.

        Must run on the event loop thread.  Raises :class:`TrackerError`
        when the tracker is idle.
        """
        session = self._session
        if not session.active:
            raise TrackerError("Cannot process samples while idle")

        motion = classify_motion(session.last_sample, sample, self._config.stationary_epsilon)
        session.stationary_streak = next_streak(session.stationary_streak, motion)
        session.last_motion = motion
        session.last_sample = sample
        identity = session.identity

        _logger.debug(
            "Sample for %s motion=%s streak=%d accuracy=%.1fm",
            mask_identity(identity),
            motion,
            session.stationary_streak,
            sample.accuracy,
        )

        persisted = True
        try:
            self._store.put(identity, sample)
        except StateStoreError:
            persisted = False
            _logger.error("Could not persist sample", exc_info=True)

        if persisted:
            for listener in list(self._listeners):
                try:
                    listener(identity, sample)
                except Exception:
                    _logger.exception("Sample listener raised")

        if self._dispatcher is not None:
            self._dispatcher.submit(identity, sample)
        return motion

    async def flush(self) -> None:
        """Wait until every sample delivered so far has been processed."""
        queue = self._queue
        # Let pending call_soon_threadsafe hand-offs reach the queue.
        await asyncio.sleep(0)
        if queue is not None:
            await queue.join()
