"""Concrete position sources.

:class:`ManualPositionSource` is fed by platform code (or tests) through
:meth:`~ManualPositionSource.push`.  :class:`ReplayPositionSource` replays a
recorded track at the requested cadence, which is handy for simulations.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from drivertrack.location.source import LocationRequest, SampleCallback
from drivertrack.models.sample import Sample

_logger = logging.getLogger(__name__)


def _as_sample(fix: Sample | Mapping[str, Any]) -> Sample:
    if isinstance(fix, Sample):
        return fix
    return Sample.from_fix(fix)


class _CallbackSubscription:
    def __init__(self, owner: ManualPositionSource, callback: SampleCallback) -> None:
        self._owner = owner
        self.callback = callback

    def cancel(self) -> None:
        self._owner._remove(self)


class ManualPositionSource:
    """Source driven by explicit :meth:`push` calls.

    Thread-safe: platform threads may push while the tracker subscribes
    or cancels.
    """

    def __init__(self, *, permission_granted: bool = True) -> None:
        self.permission_granted = permission_granted
        self.last_request: LocationRequest | None = None
        self._lock = threading.Lock()
        self._subscriptions: list[_CallbackSubscription] = []

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def is_available(self) -> bool:
        return self.permission_granted

    def subscribe(self, request: LocationRequest, callback: SampleCallback) -> _CallbackSubscription:
        if not self.permission_granted:
            raise PermissionError("location permission not granted")
        subscription = _CallbackSubscription(self, callback)
        with self._lock:
            self.last_request = request
            self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: _CallbackSubscription) -> None:
        with self._lock:
            self._subscriptions = [sub for sub in self._subscriptions if sub is not subscription]

    def push(self, fix: Sample | Mapping[str, Any]) -> Sample:
        """Deliver one fix to every current subscriber."""
        sample = _as_sample(fix)
        with self._lock:
            callbacks = [sub.callback for sub in self._subscriptions]
        for callback in callbacks:
            callback(sample)
        return sample


class _ReplaySubscription:
    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()


class ReplayPositionSource:
    """Replay recorded fixes, one per ``request.interval`` seconds.

    ``speedup`` divides the interval.  Must be subscribed from a running
    event loop.
    """

    def __init__(self, fixes: Iterable[Sample | Mapping[str, Any]], *, speedup: float = 1.0) -> None:
        if speedup <= 0:
            raise ValueError(f"speedup must be positive, got {speedup}")
        self._samples = [_as_sample(fix) for fix in fixes]
        self._speedup = speedup

    def is_available(self) -> bool:
        return True

    def subscribe(self, request: LocationRequest, callback: SampleCallback) -> _ReplaySubscription:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(request, callback))
        return _ReplaySubscription(task)

    async def _run(self, request: LocationRequest, callback: SampleCallback) -> None:
        delay = request.interval / self._speedup
        for index, sample in enumerate(self._samples):
            if index:
                await asyncio.sleep(delay)
            callback(sample)
        _logger.debug("Replay finished after %d fixes", len(self._samples))
