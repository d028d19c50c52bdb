"""Custom exception hierarchy for drivertrack."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for all drivertrack errors."""


class TrackerConfigError(TrackerError):
    """Invalid or missing configuration."""


class InvalidIdentityError(TrackerError, ValueError):
    """Tracking was requested with an empty identity."""


class PermissionDeniedError(TrackerError):
    """The position source capability is unavailable.

    Raised by ``start`` when location permission is missing or has been
    revoked.  The tracker stays idle.
    """


class ResourceAcquisitionError(TrackerError):
    """The keep-alive token could not be acquired.

    Fatal to ``start``: anything acquired before the failure is released
    and the tracker stays idle.
    """


class StateStoreError(TrackerError):
    """The local durable state could not be written."""


class RemoteWriteError(TrackerError):
    """A Firestore write failed (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        document: str = "",
    ) -> None:
        self.status_code = status_code
        self.document = document
        super().__init__(message)


class UnknownCommandError(TrackerError):
    """The delivery bridge received a method it does not implement."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Unknown bridge method: {method!r}")
