from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from drivertrack.config import TrackerConfig
from drivertrack.exceptions import RemoteWriteError, TrackerError
from drivertrack.location import ManualPositionSource, ReplayPositionSource
from drivertrack.models.sample import Sample
from drivertrack.service import TrackingService

_DOCS = "projects/demo/databases/(default)/documents"


@dataclass
class FakeFirestore:
    documents: dict[str, dict[str, Any]] = field(default_factory=dict)
    unavailable: bool = False

    def document_name(self, *segments: str) -> str:
        return "/".join((_DOCS, *segments))

    async def commit(self, writes: Any) -> dict[str, Any]:
        for write in writes:
            name = write["update"]["name"]
            if self.unavailable:
                raise RemoteWriteError("UNAVAILABLE", status_code=503, document=name)
            if write.get("currentDocument", {}).get("exists") and name not in self.documents:
                raise RemoteWriteError("NOT_FOUND", status_code=404, document=name)
            document = self.documents.setdefault(name, {})
            document.update(write["update"]["fields"])
            document["lastUpdate"] = "REQUEST_TIME"
        return {"writeResults": [{}]}


def _config(tmp_path: Path, **overrides: Any) -> TrackerConfig:
    return TrackerConfig(
        project_id="demo",
        state_path=str(tmp_path / "state.json"),
        keepalive_lock_path=str(tmp_path / "tracker.lock"),
        **overrides,
    )


@pytest.mark.asyncio
async def test_end_to_end_sample_reaches_firestore_and_ui(tmp_path: Path) -> None:
    firestore = FakeFirestore()
    source = ManualPositionSource()

    async with TrackingService(_config(tmp_path), source, transport=firestore) as service:
        await service.start_tracking("alice")
        assert (tmp_path / "tracker.lock").exists()

        source.push({"lat": 12.0, "lng": 77.0, "acc": 5.0, "time": 1767225600000})
        await service.tracker.flush()
        await service.dispatcher.drain()

        last = service.get_last_location()
        assert last is not None
        assert (last.lat, last.lng, last.identity, last.updated) == (12.0, 77.0, "alice", True)
        assert service.get_last_location() is None

        latest = firestore.documents[f"{_DOCS}/drivers/alice"]
        assert latest["latitude"] == {"doubleValue": 12.0}
        assert latest["lastUpdate"] == "REQUEST_TIME"
        assert f"{_DOCS}/drivers/alice/locations/1767225600000" in firestore.documents

    assert not (tmp_path / "tracker.lock").exists()


@pytest.mark.asyncio
async def test_sync_errors_reach_observability_callback(tmp_path: Path) -> None:
    errors: list[str] = []
    source = ManualPositionSource()

    async with TrackingService(
        _config(tmp_path),
        source,
        transport=FakeFirestore(unavailable=True),
        on_sync_error=lambda identity, _sample, exc: errors.append(f"{identity}:{type(exc).__name__}"),
    ) as service:
        await service.start_tracking("alice")
        source.push(Sample(latitude=1.0, longitude=1.0))
        await service.tracker.flush()
        await service.dispatcher.drain()

        assert service.is_tracking()

    assert errors == ["alice:RemoteWriteError", "alice:RemoteWriteError"]


@pytest.mark.asyncio
async def test_exit_stops_tracking_and_clears_state(tmp_path: Path) -> None:
    source = ManualPositionSource()

    async with TrackingService(_config(tmp_path), source, transport=FakeFirestore()) as service:
        await service.start_tracking("alice")
        source.push(Sample(latitude=1.0, longitude=1.0))
        await service.tracker.flush()
        tracker = service.tracker

    assert not tracker.is_tracking
    assert source.subscriber_count == 0
    assert service.store.snapshot().is_empty


@pytest.mark.asyncio
async def test_replay_source_drives_subscription(tmp_path: Path) -> None:
    fixes = [{"lat": 10.0, "lng": 20.0}, {"lat": 10.5, "lng": 20.5}]
    source = ReplayPositionSource(fixes, speedup=1000.0)

    async with TrackingService(_config(tmp_path), source, transport=FakeFirestore()) as service:
        subscription = service.subscribe()
        await service.start_tracking("alice")

        events = []
        async for event in subscription:
            events.append(event)
            if event.lat == 10.5:
                break

    assert events[-1].identity == "alice"
    assert events[-1].lat == 10.5


@pytest.mark.asyncio
async def test_update_identity_through_service(tmp_path: Path) -> None:
    source = ManualPositionSource()

    async with TrackingService(_config(tmp_path), source, transport=FakeFirestore()) as service:
        await service.start_tracking("alice")
        await service.update_identity("bob")
        source.push(Sample(latitude=1.0, longitude=1.0))
        await service.tracker.flush()

        last = service.get_last_location()
        assert last is not None
        assert last.identity == "bob"
        await service.stop_tracking()
        assert not service.is_tracking()


def test_accessors_require_context() -> None:
    service = TrackingService(TrackerConfig(project_id="demo"), ManualPositionSource())

    with pytest.raises(TrackerError):
        _ = service.tracker
    with pytest.raises(TrackerError):
        _ = service.bridge


@pytest.mark.asyncio
async def test_relay_connection_failure_does_not_block_service(tmp_path: Path) -> None:
    class _UnreachableRelay:
        async def start(self) -> None:
            raise ConnectionRefusedError("broker down")

        async def stop(self) -> None:
            raise AssertionError("never started")

    async with TrackingService(
        _config(tmp_path),
        ManualPositionSource(),
        transport=FakeFirestore(),
        relay=_UnreachableRelay(),  # type: ignore[arg-type]
    ) as service:
        await service.start_tracking("alice")
        assert service.is_tracking()

    await asyncio.sleep(0)
