"""Position source capability.

The tracker never talks to a GPS receiver directly; it is handed a
:class:`PositionSource` that emits :class:`~drivertrack.models.Sample`
objects at the cadence described by a :class:`LocationRequest`.
"""

from drivertrack.location.providers import ManualPositionSource, ReplayPositionSource
from drivertrack.location.source import LocationRequest, PositionSource, SampleCallback, SourceSubscription

__all__ = [
    "LocationRequest",
    "ManualPositionSource",
    "PositionSource",
    "ReplayPositionSource",
    "SampleCallback",
    "SourceSubscription",
]
