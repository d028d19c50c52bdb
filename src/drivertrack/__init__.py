"""drivertrack - Async driver location relay to Firestore and a UI bridge."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("drivertrack")
except PackageNotFoundError:
    __version__ = "0+local"
from drivertrack.bridge import DeliveryBridge, Subscription
from drivertrack.config import TrackerConfig
from drivertrack.exceptions import (
    InvalidIdentityError,
    PermissionDeniedError,
    RemoteWriteError,
    ResourceAcquisitionError,
    StateStoreError,
    TrackerConfigError,
    TrackerError,
    UnknownCommandError,
)
from drivertrack.keepalive import LockFileKeepAlive, NullKeepAlive
from drivertrack.location import LocationRequest, ManualPositionSource, PositionSource, ReplayPositionSource
from drivertrack.models import (
    LastLocation,
    LocationEvent,
    Motion,
    PersistedSnapshot,
    Sample,
    TrackingSession,
)
from drivertrack.relay import MqttEventRelay
from drivertrack.service import TrackingService
from drivertrack.state.store import LocalStateStore
from drivertrack.sync import FirestoreTransport, SyncDispatcher, UpstreamSync
from drivertrack.tracker import Tracker

__all__ = [
    "__version__",
    "DeliveryBridge",
    "FirestoreTransport",
    "InvalidIdentityError",
    "LastLocation",
    "LocalStateStore",
    "LocationEvent",
    "LocationRequest",
    "LockFileKeepAlive",
    "ManualPositionSource",
    "Motion",
    "MqttEventRelay",
    "NullKeepAlive",
    "PermissionDeniedError",
    "PersistedSnapshot",
    "PositionSource",
    "RemoteWriteError",
    "ReplayPositionSource",
    "ResourceAcquisitionError",
    "Sample",
    "StateStoreError",
    "Subscription",
    "SyncDispatcher",
    "Tracker",
    "TrackerConfig",
    "TrackerConfigError",
    "TrackerError",
    "TrackingSession",
    "UnknownCommandError",
    "UpstreamSync",
]
