"""Payloads handed to the UI layer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from drivertrack.models.sample import Sample


class LocationEvent(BaseModel):
    """Pushed to bridge subscribers, one per drained sample."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    identity: str

    @classmethod
    def from_sample(cls, identity: str, sample: Sample) -> LocationEvent:
        return cls(lat=sample.latitude, lng=sample.longitude, identity=identity)


class LastLocation(BaseModel):
    """Result of ``getLastLocation`` when a new sample was pending."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    identity: str
    updated: bool = True
