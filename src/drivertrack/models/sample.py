"""Position sample model."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from drivertrack.models._base import EPOCH, FROZEN_MODEL_CONFIG, EpochTimestamp, utcnow


class Sample(BaseModel):
    """One GPS fix with accuracy and capture time.

    Parameters
    ----------
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    accuracy : float
        Horizontal accuracy radius in metres.
    captured_at : datetime
        Capture time (UTC).  Defaults to *now*.
    """

    model_config = FROZEN_MODEL_CONFIG

    latitude: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(
        ...,
        ge=-180,
        le=180,
        validation_alias=AliasChoices("longitude", "lng", "lon"),
    )
    accuracy: float = Field(default=0.0, ge=0, validation_alias=AliasChoices("accuracy", "acc"))
    captured_at: EpochTimestamp = Field(
        default_factory=utcnow,
        validation_alias=AliasChoices("captured_at", "capturedAt", "time", "timestamp"),
    )

    @classmethod
    def from_fix(cls, fix: Mapping[str, Any]) -> Sample:
        """Build a sample from a platform location fix dict."""
        values = {key: value for key, value in fix.items() if value is not None}
        return cls.model_validate(values)

    @property
    def epoch_ms(self) -> int:
        """Capture time as epoch milliseconds (history document key)."""
        return (self.captured_at - EPOCH) // timedelta(milliseconds=1)

    def is_near(self, other: Sample, epsilon: float) -> bool:
        """Whether *other* lies within *epsilon* degrees on both axes."""
        return abs(self.latitude - other.latitude) <= epsilon and abs(self.longitude - other.longitude) <= epsilon
