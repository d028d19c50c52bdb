"""Position source interface."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from typing import Protocol

from drivertrack.config import TrackerConfig
from drivertrack.models.sample import Sample

SampleCallback = Callable[[Sample], None]


@dataclasses.dataclass(frozen=True)
class LocationRequest:
    """Cadence and filtering a source is asked to honour.

    Parameters
    ----------
    interval : float
        Desired seconds between fixes.
    min_interval : float
        Fastest acceptable seconds between fixes.
    distance_filter : float
        Minimum displacement in metres between fixes; ``0`` emits on
        every interval regardless of movement.
    high_accuracy : bool
        Prefer precise fixes over power saving.
    """

    interval: float = 15.0
    min_interval: float = 5.0
    distance_filter: float = 0.0
    high_accuracy: bool = True

    @classmethod
    def from_config(cls, config: TrackerConfig) -> LocationRequest:
        return cls(
            interval=config.sampling_interval,
            min_interval=config.min_update_interval,
            distance_filter=config.distance_filter,
        )


class SourceSubscription(Protocol):
    """Handle returned by :meth:`PositionSource.subscribe`."""

    def cancel(self) -> None:
        """Stop delivery.  After it returns the callback is never invoked again."""
        ...


class PositionSource(Protocol):
    """Structural interface for GPS providers.

    ``callback`` may be invoked from any thread.
    """

    def is_available(self) -> bool:
        """Whether location permission is granted and the provider is usable."""
        ...

    def subscribe(self, request: LocationRequest, callback: SampleCallback) -> SourceSubscription:
        """Start delivering samples.

        Raises :class:`PermissionError` when permission is lost between the
        availability check and the subscription.
        """
        ...
