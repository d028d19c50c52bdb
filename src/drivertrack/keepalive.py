"""Keep-alive tokens.

The tracker holds a keep-alive token for as long as it is active, the
same way a mobile foreground service holds a wake lock.  Acquisition
failures raise :class:`~drivertrack.exceptions.ResourceAcquisitionError`.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path
from typing import Protocol

from drivertrack.exceptions import ResourceAcquisitionError

_logger = logging.getLogger(__name__)


class KeepAlive(Protocol):
    def acquire(self) -> None: ...

    def release(self) -> None: ...

    @property
    def held(self) -> bool: ...


class NullKeepAlive:
    """Token that only tracks whether it is held."""

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        self._held = True

    def release(self) -> None:
        self._held = False


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class LockFileKeepAlive:
    """Exclusive PID lock file.

    A lock owned by a live process makes :meth:`acquire` fail; a lock left
    behind by a dead process is reclaimed.  :meth:`release` is idempotent.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        if self._held:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._create()
        except FileExistsError:
            owner = self._read_owner()
            if owner is not None and owner != os.getpid() and _pid_alive(owner):
                raise ResourceAcquisitionError(f"Keep-alive lock {self._path} held by pid {owner}") from None
            _logger.debug("Reclaiming stale keep-alive lock %s (pid=%s)", self._path, owner)
            try:
                self._path.unlink(missing_ok=True)
                self._create()
            except OSError as exc:
                raise ResourceAcquisitionError(f"Could not reclaim keep-alive lock {self._path}: {exc}") from exc
        except OSError as exc:
            raise ResourceAcquisitionError(f"Could not create keep-alive lock {self._path}: {exc}") from exc
        self._held = True

    def _create(self) -> None:
        fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        with os.fdopen(fd, "w", encoding="ascii") as handle:
            handle.write(str(os.getpid()))

    def _read_owner(self) -> int | None:
        try:
            return int(self._path.read_text(encoding="ascii").strip())
        except (OSError, ValueError):
            return None

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        with contextlib.suppress(FileNotFoundError):
            self._path.unlink()
