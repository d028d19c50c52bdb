from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from drivertrack.exceptions import InvalidIdentityError, UnknownCommandError
from drivertrack.models.commands import GetLastLocation, StartTracking, UpdateIdentity, parse_command
from drivertrack.models.records import LocationRecord, encode_value
from drivertrack.models.sample import Sample
from drivertrack.models.snapshot import PersistedSnapshot


def test_sample_from_fix_accepts_platform_aliases() -> None:
    sample = Sample.from_fix({"lat": 12.5, "lng": 77.25, "acc": 4.0, "time": 1767225600000})

    assert sample.latitude == 12.5
    assert sample.longitude == 77.25
    assert sample.accuracy == 4.0
    assert sample.captured_at == datetime(2026, 1, 1, tzinfo=UTC)


def test_sample_timestamp_seconds_and_milliseconds_agree() -> None:
    in_seconds = Sample.from_fix({"latitude": 1.0, "longitude": 2.0, "timestamp": 1767225600})
    in_millis = Sample.from_fix({"latitude": 1.0, "longitude": 2.0, "timestamp": 1767225600000})

    assert in_seconds.captured_at == in_millis.captured_at
    assert in_millis.epoch_ms == 1767225600000


def test_epoch_ms_is_exact_for_millisecond_timestamps() -> None:
    for millis in (1767225600001, 1767225600123, 1767225600999, 1767225601005):
        assert Sample.from_fix({"lat": 1.0, "lng": 2.0, "time": millis}).epoch_ms == millis
        assert Sample.from_fix({"lat": 1.0, "lng": 2.0, "time": str(millis)}).epoch_ms == millis


def test_sample_naive_datetime_is_treated_as_utc() -> None:
    sample = Sample(latitude=0.0, longitude=0.0, captured_at=datetime(2026, 1, 1))

    assert sample.captured_at.tzinfo is not None
    assert sample.epoch_ms == 1767225600000


def test_sample_defaults_capture_time_to_now() -> None:
    before = datetime.now(UTC)
    sample = Sample.from_fix({"lat": 1.0, "lon": 2.0, "time": None})

    assert sample.captured_at >= before
    assert sample.accuracy == 0.0


@pytest.mark.parametrize("fix", [{"lat": 91.0, "lng": 0.0}, {"lat": 0.0, "lng": -181.0}, {"lat": 0.0, "lng": 0.0, "acc": -1}])
def test_sample_rejects_out_of_range_values(fix: dict[str, float]) -> None:
    with pytest.raises(ValidationError):
        Sample.from_fix(fix)


def test_sample_is_immutable() -> None:
    sample = Sample(latitude=1.0, longitude=2.0)

    with pytest.raises(ValidationError):
        sample.latitude = 3.0  # type: ignore[misc]


def test_is_near_uses_per_axis_epsilon() -> None:
    base = Sample(latitude=12.0, longitude=77.0)

    assert base.is_near(Sample(latitude=12.000005, longitude=77.000005), 1e-5)
    assert not base.is_near(Sample(latitude=12.0, longitude=77.00002), 1e-5)


def test_location_record_fields_use_firestore_value_encoding() -> None:
    sample = Sample(latitude=12.0, longitude=77.0, accuracy=3.5)
    record = LocationRecord.from_sample(sample, status="active", on_duty=True)

    assert record.to_fields() == {
        "latitude": {"doubleValue": 12.0},
        "longitude": {"doubleValue": 77.0},
        "accuracy": {"doubleValue": 3.5},
        "status": {"stringValue": "active"},
        "isOnDuty": {"booleanValue": True},
    }


def test_encode_value_handles_ints_and_rejects_unknown_types() -> None:
    assert encode_value(5) == {"integerValue": "5"}
    assert encode_value(None) == {"nullValue": None}
    with pytest.raises(TypeError):
        encode_value([1, 2])


def test_dirty_snapshot_requires_sample() -> None:
    with pytest.raises(ValidationError):
        PersistedSnapshot(identity="alice", last_sample=None, dirty=True)


def test_parse_command_accepts_username_alias() -> None:
    command = parse_command({"method": "startTracking", "arguments": {"username": "alice"}})

    assert isinstance(command, StartTracking)
    assert command.identity == "alice"


def test_parse_command_without_arguments() -> None:
    assert isinstance(parse_command({"method": "getLastLocation"}), GetLastLocation)
    command = parse_command({"method": "updateIdentity", "arguments": {"identity": "bob"}})
    assert isinstance(command, UpdateIdentity)
    assert command.identity == "bob"


def test_parse_command_unknown_method() -> None:
    with pytest.raises(UnknownCommandError) as exc_info:
        parse_command({"method": "teleport"})

    assert exc_info.value.method == "teleport"


def test_parse_command_rejects_non_string_identity() -> None:
    with pytest.raises(InvalidIdentityError):
        parse_command({"method": "startTracking", "arguments": {"username": {"nested": True}}})
