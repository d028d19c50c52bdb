"""Push accepted samples to Firestore.

Each sample produces two independent writes:

* the mutable latest record ``{collection}/{identity}``, written as an
  update that requires the document to exist and, failing that, as a
  create-or-merge with the identical field set;
* an immutable history entry ``{collection}/{identity}/{history}/{epoch_ms}``.

:class:`SyncDispatcher` runs both as detached tasks so the sampling loop
never waits on the network.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from drivertrack._constants import RECORD_FIELDS
from drivertrack._redact import mask_identity
from drivertrack.config import TrackerConfig
from drivertrack.exceptions import RemoteWriteError
from drivertrack.models.records import LocationRecord, server_time_transform
from drivertrack.models.sample import Sample
from drivertrack.sync.firestore import DocumentTransport

_logger = logging.getLogger(__name__)

SyncErrorCallback = Callable[[str, Sample, BaseException], None]


class UpstreamSync:
    """Builds and commits the Firestore writes for one sample."""

    def __init__(self, config: TrackerConfig, transport: DocumentTransport) -> None:
        self._config = config
        self._transport = transport

    def _record(self, sample: Sample) -> LocationRecord:
        return LocationRecord.from_sample(sample, status=self._config.status, on_duty=self._config.on_duty)

    def _latest_write(self, identity: str, sample: Sample, *, must_exist: bool) -> dict[str, Any]:
        write: dict[str, Any] = {
            "update": {
                "name": self._transport.document_name(self._config.collection, identity),
                "fields": self._record(sample).to_fields(),
            },
            "updateMask": {"fieldPaths": list(RECORD_FIELDS)},
            "updateTransforms": [server_time_transform()],
        }
        if must_exist:
            write["currentDocument"] = {"exists": True}
        return write

    def _history_write(self, identity: str, sample: Sample) -> dict[str, Any]:
        return {
            "update": {
                "name": self._transport.document_name(
                    self._config.collection,
                    identity,
                    self._config.history_collection,
                    str(sample.epoch_ms),
                ),
                "fields": self._record(sample).to_fields(),
            },
            "updateTransforms": [server_time_transform()],
        }

    async def publish_latest(self, identity: str, sample: Sample) -> None:
        """Update the latest record, creating it when it was never provisioned.

        Raises :class:`RemoteWriteError` when the fallback write fails too.
        """
        try:
            await self._transport.commit([self._latest_write(identity, sample, must_exist=True)])
            return
        except RemoteWriteError as exc:
            _logger.debug(
                "Latest record update failed for %s (status=%s), retrying as merge",
                mask_identity(identity),
                exc.status_code,
            )
        await self._transport.commit([self._latest_write(identity, sample, must_exist=False)])

    async def append_history(self, identity: str, sample: Sample) -> None:
        """Write the history entry keyed by the sample's capture time."""
        await self._transport.commit([self._history_write(identity, sample)])


class SyncDispatcher:
    """Fire-and-forget runner for :class:`UpstreamSync`.

    Writes for the same identity are serialized in submission order, so
    the latest record is last-write-wins even when the network reorders
    requests.  Failures are logged and handed to ``on_error``; they never
    propagate to the submitter.
    """

    def __init__(self, sync: UpstreamSync, *, on_error: SyncErrorCallback | None = None) -> None:
        self._sync = sync
        self._on_error = on_error
        self._tasks: set[asyncio.Task[None]] = set()
        # identity -> (lock, number of unfinished tasks using it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def tracked_identities(self) -> int:
        """Identities with unfinished writes."""
        return len(self._locks)

    def submit(self, identity: str, sample: Sample) -> asyncio.Task[None]:
        """Schedule both writes for *sample*; must be called on the event loop."""
        lock, users = self._locks.get(identity, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[identity] = (lock, users + 1)
        task = asyncio.get_running_loop().create_task(self._run(lock, identity, sample))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda _task: self._release_lock(identity))
        return task

    def _release_lock(self, identity: str) -> None:
        lock, users = self._locks[identity]
        if users <= 1:
            del self._locks[identity]
        else:
            self._locks[identity] = (lock, users - 1)

    async def _run(self, lock: asyncio.Lock, identity: str, sample: Sample) -> None:
        async with lock:
            results = await asyncio.gather(
                self._sync.publish_latest(identity, sample),
                self._sync.append_history(identity, sample),
                return_exceptions=True,
            )
        for operation, result in zip(("publish_latest", "append_history"), results):
            if isinstance(result, Exception):
                self._report(operation, identity, sample, result)
            elif isinstance(result, BaseException):
                raise result

    def _report(self, operation: str, identity: str, sample: Sample, exc: Exception) -> None:
        if isinstance(exc, RemoteWriteError):
            _logger.warning("%s failed for %s: %s", operation, mask_identity(identity), exc)
        else:
            _logger.error("%s crashed for %s", operation, mask_identity(identity), exc_info=exc)
        if self._on_error is None:
            return
        try:
            self._on_error(identity, sample, exc)
        except Exception:
            _logger.exception("Sync error callback raised")

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight writes.  Returns ``False`` if *timeout* expired."""
        tasks = set(self._tasks)
        if not tasks:
            return True
        _done, still_pending = await asyncio.wait(tasks, timeout=timeout)
        return not still_pending

    async def cancel(self) -> None:
        """Drop in-flight writes."""
        tasks = set(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
