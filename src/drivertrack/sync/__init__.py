"""Upstream sync to Cloud Firestore."""

from drivertrack.sync.firestore import DocumentTransport, FirestoreTransport
from drivertrack.sync.upstream import SyncDispatcher, SyncErrorCallback, UpstreamSync

__all__ = [
    "DocumentTransport",
    "FirestoreTransport",
    "SyncDispatcher",
    "SyncErrorCallback",
    "UpstreamSync",
]
