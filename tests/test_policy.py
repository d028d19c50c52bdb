from __future__ import annotations

from drivertrack.models.sample import Sample
from drivertrack.models.session import Motion
from drivertrack.state.policy import classify_motion, next_streak


def test_first_sample_counts_as_stationary() -> None:
    assert classify_motion(None, Sample(latitude=1.0, longitude=1.0), 1e-5) is Motion.STATIONARY


def test_displacement_beyond_epsilon_is_moving() -> None:
    previous = Sample(latitude=12.0, longitude=77.0)

    assert classify_motion(previous, Sample(latitude=12.0001, longitude=77.0), 1e-5) is Motion.MOVING
    assert classify_motion(previous, Sample(latitude=12.000001, longitude=77.0), 1e-5) is Motion.STATIONARY


def test_streak_increments_and_resets() -> None:
    streak = 0
    for motion in (Motion.STATIONARY, Motion.STATIONARY, Motion.STATIONARY):
        streak = next_streak(streak, motion)
    assert streak == 3

    assert next_streak(streak, Motion.MOVING) == 0
