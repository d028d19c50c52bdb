"""Local persisted snapshot model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

from drivertrack.models.sample import Sample


class PersistedSnapshot(BaseModel):
    """Single-slot durable state: last identity, last sample, delivery flag.

    ``dirty`` marks a sample the delivery bridge has not handed out yet.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    identity: str | None = None
    last_sample: Sample | None = None
    dirty: bool = False

    @model_validator(mode="after")
    def _dirty_requires_sample(self) -> PersistedSnapshot:
        if self.dirty and self.last_sample is None:
            raise ValueError("dirty snapshot must carry a sample")
        return self

    @property
    def is_empty(self) -> bool:
        return self.identity is None and self.last_sample is None
