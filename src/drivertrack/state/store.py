"""Durable single-slot store for the last known sample.

The sampling loop writes into it; the delivery bridge is the only
consumer and drains it with :meth:`LocalStateStore.take_if_dirty`.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from drivertrack._constants import (
    KEY_ACCURACY,
    KEY_CAPTURED_AT,
    KEY_DIRTY,
    KEY_IDENTITY,
    KEY_LATITUDE,
    KEY_LONGITUDE,
)
from drivertrack.exceptions import StateStoreError
from drivertrack.models.sample import Sample
from drivertrack.models.snapshot import PersistedSnapshot

_logger = logging.getLogger(__name__)


def _encode(snapshot: PersistedSnapshot) -> dict[str, Any]:
    """Persisted layout: four scalar fields plus optional sample extras."""
    data: dict[str, Any] = {KEY_DIRTY: snapshot.dirty}
    if snapshot.identity is not None:
        data[KEY_IDENTITY] = snapshot.identity
    sample = snapshot.last_sample
    if sample is not None:
        data[KEY_LATITUDE] = str(sample.latitude)
        data[KEY_LONGITUDE] = str(sample.longitude)
        data[KEY_ACCURACY] = sample.accuracy
        data[KEY_CAPTURED_AT] = sample.epoch_ms
    return data


def _decode(data: dict[str, Any]) -> PersistedSnapshot:
    identity = data.get(KEY_IDENTITY)
    lat = data.get(KEY_LATITUDE)
    lng = data.get(KEY_LONGITUDE)

    sample: Sample | None = None
    if lat is not None and lng is not None:
        fix: dict[str, Any] = {"latitude": float(lat), "longitude": float(lng)}
        if data.get(KEY_ACCURACY) is not None:
            fix["accuracy"] = data[KEY_ACCURACY]
        if data.get(KEY_CAPTURED_AT) is not None:
            fix["captured_at"] = data[KEY_CAPTURED_AT]
        sample = Sample.from_fix(fix)

    dirty = bool(data.get(KEY_DIRTY, False)) and sample is not None
    return PersistedSnapshot(
        identity=identity if isinstance(identity, str) and identity else None,
        last_sample=sample,
        dirty=dirty,
    )


class LocalStateStore:
    """Persistent key-value slot holding the last identity and sample.

    Every mutation is flushed to disk before returning (temp file,
    ``fsync``, atomic rename) so the state survives process death.
    With ``path=None`` the store is memory-only.

    All operations take one lock, which makes the drain an atomic
    check-and-clear.

    Flushes are synchronous and block the calling thread.  For :meth:`put`
    that is the event loop thread: one fsync per sample.
    """

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._snapshot = self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> PersistedSnapshot:
        if self._path is None or not self._path.exists():
            return PersistedSnapshot()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("state file is not a JSON object")
            snapshot = _decode(data)
        except (OSError, ValueError, ValidationError):
            _logger.warning("Discarding unreadable tracker state at %s", self._path, exc_info=True)
            return PersistedSnapshot()
        _logger.debug("Restored tracker state dirty=%s", snapshot.dirty)
        return snapshot

    def _flush(self, snapshot: PersistedSnapshot) -> None:
        if self._path is None:
            return
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(_encode(snapshot), handle, separators=(",", ":"))
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise StateStoreError(f"Could not write tracker state to {self._path}: {exc}") from exc

    def _commit(self, snapshot: PersistedSnapshot) -> None:
        # Flush first: in-memory state never runs ahead of the disk.
        self._flush(snapshot)
        self._snapshot = snapshot

    def put(self, identity: str, sample: Sample) -> None:
        """Overwrite the slot with *sample* and mark it undelivered."""
        with self._lock:
            self._commit(PersistedSnapshot(identity=identity, last_sample=sample, dirty=True))

    def set_identity(self, identity: str) -> None:
        """Replace the stored identity without touching the sample or flag."""
        with self._lock:
            current = self._snapshot
            self._commit(current.model_copy(update={"identity": identity}))

    def take_if_dirty(self) -> PersistedSnapshot | None:
        """Drain the pending sample.

        Returns the snapshot and clears ``dirty`` only when it was set;
        returns ``None`` otherwise.
        """
        with self._lock:
            current = self._snapshot
            if not current.dirty:
                return None
            self._commit(current.model_copy(update={"dirty": False}))
            return current

    def snapshot(self) -> PersistedSnapshot:
        """Current state without draining."""
        with self._lock:
            return self._snapshot

    def clear(self) -> None:
        """Erase identity, sample and flag."""
        with self._lock:
            self._commit(PersistedSnapshot())

