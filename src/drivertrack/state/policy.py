"""Motion classification policy.

Classification is observability only: it never decides whether a sample
is persisted or forwarded.
"""

from __future__ import annotations

from drivertrack.models.sample import Sample
from drivertrack.models.session import Motion


def classify_motion(previous: Sample | None, current: Sample, epsilon: float) -> Motion:
    """Classify *current* relative to *previous*.

    A first sample has no observed displacement and counts as stationary.
    """
    if previous is None:
        return Motion.STATIONARY
    if current.is_near(previous, epsilon):
        return Motion.STATIONARY
    return Motion.MOVING


def next_streak(streak: int, motion: Motion) -> int:
    """Stationary streak after observing *motion*."""
    if motion is Motion.STATIONARY:
        return streak + 1
    return 0
