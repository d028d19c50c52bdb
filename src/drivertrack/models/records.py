"""Remote record models and their Firestore REST encoding.

Firestore's REST API wraps every field value in a typed envelope
(``{"doubleValue": 1.5}``, ``{"stringValue": "x"}``, ...).  Both the
latest record and each history entry share one field set; ``lastUpdate``
is never sent as a value, it is assigned by a ``REQUEST_TIME`` server
transform.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from drivertrack._constants import (
    FIELD_ACCURACY,
    FIELD_LAST_UPDATE,
    FIELD_LATITUDE,
    FIELD_LONGITUDE,
    FIELD_ON_DUTY,
    FIELD_STATUS,
    RECORD_FIELDS,
)
from drivertrack.models.sample import Sample


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python scalar as a Firestore REST ``Value``."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        # int64 values are JSON strings in the REST encoding.
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    raise TypeError(f"Unsupported Firestore value type: {type(value).__name__}")


class LocationRecord(BaseModel):
    """Field set written to both ``LatestRecord`` and ``HistoryEntry`` documents."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float
    longitude: float
    accuracy: float
    status: str
    is_on_duty: bool

    @classmethod
    def from_sample(cls, sample: Sample, *, status: str, on_duty: bool) -> LocationRecord:
        return cls(
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy=sample.accuracy,
            status=status,
            is_on_duty=on_duty,
        )

    def to_fields(self) -> dict[str, dict[str, Any]]:
        """Firestore ``fields`` map (without the server-assigned ``lastUpdate``)."""
        values: dict[str, Any] = {
            FIELD_LATITUDE: self.latitude,
            FIELD_LONGITUDE: self.longitude,
            FIELD_ACCURACY: float(self.accuracy),
            FIELD_STATUS: self.status,
            FIELD_ON_DUTY: self.is_on_duty,
        }
        return {name: encode_value(values[name]) for name in RECORD_FIELDS}


def server_time_transform() -> dict[str, str]:
    """Field transform setting ``lastUpdate`` to the commit time."""
    return {"fieldPath": FIELD_LAST_UPDATE, "setToServerValue": "REQUEST_TIME"}
