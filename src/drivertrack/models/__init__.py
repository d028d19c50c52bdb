"""Data models for drivertrack."""

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
from drivertrack.models.records import LocationRecord
from drivertrack.models.sample import Sample
from drivertrack.models.session import Motion, TrackingSession
from drivertrack.models.snapshot import PersistedSnapshot

__all__ = [
    "BridgeCommand",
    "GetLastLocation",
    "IsTracking",
    "LastLocation",
    "LocationEvent",
    "LocationRecord",
    "Motion",
    "PersistedSnapshot",
    "Sample",
    "StartTracking",
    "StopTracking",
    "TrackingSession",
    "UpdateIdentity",
    "parse_command",
]
