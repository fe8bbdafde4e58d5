from __future__ import annotations

import logging
import math
import threading

import numpy as np
import pytest

from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.localization.pose_estimator import PoseEstimator, PoseEstimatorConfig, steady_state_gain
from swerve_core.types import Pose2D, WheelPosition

DT = 0.02


def wheels_at(distance: float, angle: float = 0.0) -> list[WheelPosition]:
    return [WheelPosition(distance, angle) for _ in range(4)]


def drive_straight(estimator: PoseEstimator, steps: int, speed: float = 1.0, gyro: float = 0.0) -> None:
    """Feed odometry for driving along the robot x axis from t=DT onward."""
    for k in range(1, steps + 1):
        estimator.update(k * DT, gyro, wheels_at(speed * k * DT))


def test_steady_state_gain_closed_form() -> None:
    gain = steady_state_gain((0.1, 0.0, 1.0), (0.1, 1.0, 0.0))
    assert np.isclose(gain[0], 0.5)
    assert gain[1] == 0.0
    assert gain[2] == 1.0


def test_startup_returns_seed_without_fabricating_motion(estimator: PoseEstimator) -> None:
    state = estimator.update(0.0, 0.0, wheels_at(0.0))
    assert state.pose == Pose2D(0.0, 0.0, 0.0)
    assert estimator.buffered_timestamps() == [0.0]


def test_wheel_count_mismatch_fails_fast(estimator: PoseEstimator) -> None:
    with pytest.raises(ValueError):
        estimator.update(0.02, 0.0, [WheelPosition(0.0, 0.0)] * 3)
    with pytest.raises(ValueError):
        estimator.update(0.02, 0.0, [WheelPosition(0.0, 0.0)] * 5)
    with pytest.raises(ValueError):
        estimator.reset_position(0.0, [WheelPosition(0.0, 0.0)] * 2, Pose2D(), 1.0)


def test_straight_line_odometry(estimator: PoseEstimator) -> None:
    drive_straight(estimator, 10)
    state = estimator.get_estimated_position()
    assert np.allclose(state.pose.as_array(), [0.2, 0.0, 0.0], atol=1e-9)
    assert np.isclose(state.velocity.x, 1.0)
    assert np.isclose(state.velocity.y, 0.0)
    assert state.acceleration.as_array().tolist() == [0.0, 0.0, 0.0]


def test_gyro_overrides_wheel_rotation(estimator: PoseEstimator) -> None:
    state = estimator.update(DT, 0.1, wheels_at(0.0))
    assert np.isclose(state.pose.heading, 0.1)
    assert np.isclose(state.velocity.theta, 0.1 / DT)
    assert np.isclose(estimator.get_sampled_rotation(DT), 0.1)


def test_vision_with_zero_gain_leaves_estimate(estimator: PoseEstimator) -> None:
    estimator.set_std_devs((0.0, 0.0, 0.0), (1.0, 1.0, 1.0))
    drive_straight(estimator, 10)
    before = estimator.get_estimated_position()

    estimator.add_vision_measurement(Pose2D(5.0, 5.0, 1.0), 5 * DT)

    after = estimator.get_estimated_position()
    assert np.allclose(after.pose.as_array(), before.pose.as_array(), atol=1e-12)
    assert np.isclose(estimator.gyro_offset, 0.0)


def test_vision_with_unit_gain_replays_forward(estimator: PoseEstimator) -> None:
    estimator.set_std_devs((1.0, 1.0, 1.0), (0.0, 0.0, 0.0))
    drive_straight(estimator, 10)

    vision = Pose2D(0.5, 0.3, 0.2)
    estimator.add_vision_measurement(vision, 5 * DT)

    corrected = estimator.get_sampled_rotation(5 * DT)
    assert np.isclose(corrected, 0.2)
    assert np.isclose(estimator.gyro_offset, 0.2)

    # five later records replayed from their stored wheel and gyro readings
    latest = estimator.get_estimated_position().pose
    expected = [0.5 + 0.1 * math.cos(0.2), 0.3 + 0.1 * math.sin(0.2), 0.2]
    assert np.allclose(latest.as_array(), expected, atol=1e-9)
    assert estimator.buffered_timestamps()[-1] == pytest.approx(10 * DT)


def test_vision_overload_updates_gain(estimator: PoseEstimator) -> None:
    drive_straight(estimator, 5)
    estimator.add_vision_measurement(Pose2D(1.0, 0.0, 0.0), 5 * DT, (1.0, 1.0, 1.0), (0.0, 0.0, 0.0))
    assert np.allclose(estimator.vision_gain, [1.0, 1.0, 1.0])
    assert np.isclose(estimator.get_estimated_position().pose.x, 1.0)
    with pytest.raises(ValueError):
        estimator.add_vision_measurement(Pose2D(), 5 * DT, (1.0, 1.0, 1.0))


def test_stale_vision_is_dropped(estimator: PoseEstimator, caplog: pytest.LogCaptureFixture) -> None:
    estimator.set_std_devs((1.0, 1.0, 1.0), (0.0, 0.0, 0.0))
    drive_straight(estimator, 150)
    before = estimator.get_estimated_position()

    with caplog.at_level(logging.WARNING, logger="swerve_core.localization.pose_estimator"):
        estimator.add_vision_measurement(Pose2D(9.0, 9.0, 0.0), 1.0)

    assert estimator.get_estimated_position() == before
    assert "Dropping vision measurement" in caplog.text


def test_future_vision_clamps_to_latest_record(estimator: PoseEstimator) -> None:
    estimator.set_std_devs((1.0, 1.0, 1.0), (0.0, 0.0, 0.0))
    drive_straight(estimator, 3)
    estimator.add_vision_measurement(Pose2D(2.0, 1.0, 0.0), 10.0)
    state = estimator.get_estimated_position()
    assert np.allclose(state.pose.as_array(), [2.0, 1.0, 0.0], atol=1e-9)
    assert estimator.buffered_timestamps()[-1] == pytest.approx(3 * DT)


def test_acceleration_estimate_when_enabled(kinodynamics: SwerveKinodynamics) -> None:
    estimator = PoseEstimator(
        kinodynamics=kinodynamics,
        gyro_angle=0.0,
        wheel_positions=wheels_at(0.0),
        config=PoseEstimatorConfig(estimate_acceleration=True),
    )
    accel = 2.0
    for k in range(1, 11):
        t = k * DT
        estimator.update(t, 0.0, wheels_at(0.5 * accel * t * t))
    state = estimator.get_estimated_position()
    assert np.isclose(state.acceleration.x, accel, rtol=1e-6)
    assert np.isclose(state.acceleration.y, 0.0, atol=1e-9)


def test_acceleration_zero_when_disabled(estimator: PoseEstimator) -> None:
    for k in range(1, 11):
        t = k * DT
        estimator.update(t, 0.0, wheels_at(t * t))
    assert estimator.get_estimated_position().acceleration.x == 0.0


def test_reset_position_clears_history(estimator: PoseEstimator) -> None:
    drive_straight(estimator, 10)
    estimator.reset_position(1.0, wheels_at(0.2), Pose2D(3.0, 4.0, 0.5), 1.0)
    assert estimator.buffered_timestamps() == [1.0]
    assert np.isclose(estimator.gyro_offset, -0.5)
    state = estimator.update(1.0 + DT, 1.0, wheels_at(0.2 + DT))
    assert np.allclose(state.pose.as_array(), [3.0 + DT * math.cos(0.5), 4.0 + DT * math.sin(0.5), 0.5])


def test_concurrent_vision_keeps_buffer_ordered(estimator: PoseEstimator) -> None:
    errors: list[BaseException] = []

    def vision_worker() -> None:
        try:
            for k in range(50):
                estimator.add_vision_measurement(Pose2D(0.01 * k, 0.0, 0.0), max(0.0, (k - 2) * DT))
        except BaseException as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    worker = threading.Thread(target=vision_worker)
    worker.start()
    drive_straight(estimator, 100)
    worker.join()

    assert not errors
    keys = estimator.buffered_timestamps()
    assert keys == sorted(keys)
    assert keys[-1] == pytest.approx(100 * DT)
