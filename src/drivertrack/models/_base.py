"""Shared pydantic helpers for drivertrack models.

Position fixes arrive from platform bridges with inconsistent key
names and timestamp units.  :data:`EpochTimestamp` coerces epoch
seconds **or** milliseconds (and ISO strings) into timezone-aware UTC
datetimes so every model sees one representation.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Annotated, Any

from pydantic import BeforeValidator, ConfigDict

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

FROZEN_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="ignore",
    populate_by_name=True,
)


def parse_epoch_timestamp(value: Any) -> datetime | None:
    """Convert an epoch timestamp (seconds **or** milliseconds) to a UTC datetime.

    Naive datetimes are assumed to be UTC.  ISO-8601 strings are parsed.
    Returns ``None`` when the value is ``None``.
    """
    if value is None:
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text) if text.isdigit() else float(text)
        except ValueError:
            return parse_epoch_timestamp(datetime.fromisoformat(text))
    if isinstance(value, int) and not isinstance(value, bool):
        # Integer epochs convert exactly.
        if value >= _MS_THRESHOLD:
            return EPOCH + timedelta(milliseconds=value)
        return EPOCH + timedelta(seconds=value)
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


EpochTimestamp = Annotated[datetime, BeforeValidator(parse_epoch_timestamp)]
"""Annotated type that coerces epoch ints (seconds or ms) to UTC datetimes."""


def utcnow() -> datetime:
    return datetime.now(UTC)
