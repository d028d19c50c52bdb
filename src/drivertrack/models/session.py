"""Tracking session state owned by the sampling loop."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from drivertrack.models.sample import Sample


class Motion(StrEnum):
    STATIONARY = "stationary"
    MOVING = "moving"


class TrackingSession(BaseModel):
    """Mutable per-process tracking session.

    Only the tracker mutates it; callers receive copies.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    identity: str = ""
    active: bool = False
    last_sample: Sample | None = None
    stationary_streak: int = Field(default=0, ge=0)
    last_motion: Motion | None = None

    def reset(self) -> None:
        self.identity = ""
        self.active = False
        self.last_sample = None
        self.stationary_streak = 0
        self.last_motion = None
