import math

import numpy as np

from swerve_core.types import (
    FieldRelativeVelocity,
    ModuleState,
    OdometryRecord,
    Pose2D,
    RobotRelativeVelocity,
    SwerveState,
    Twist2D,
    WheelPosition,
)


def test_exp_straight_line_follows_heading() -> None:
    pose = Pose2D(0.0, 0.0, math.pi / 2).exp(Twist2D(1.0, 0.0, 0.0))
    assert np.allclose(pose.as_array(), [0.0, 1.0, math.pi / 2], atol=1e-12)


def test_exp_quarter_circle() -> None:
    pose = Pose2D().exp(Twist2D(math.pi / 2, 0.0, math.pi / 2))
    assert np.allclose(pose.as_array(), [1.0, 1.0, math.pi / 2], atol=1e-12)


def test_log_inverts_exp() -> None:
    start = Pose2D(1.0, 2.0, 0.3)
    end = Pose2D(2.5, -1.0, 1.2)
    recovered = start.exp(start.log(end))
    assert np.allclose(recovered.as_array(), end.as_array(), atol=1e-9)


def test_heading_stays_continuous() -> None:
    pose = Pose2D(0.0, 0.0, 3.0).exp(Twist2D(0.0, 0.0, 0.5))
    assert np.isclose(pose.heading, 3.5)


def test_pose_interpolation_uses_shortest_arc() -> None:
    mid = Pose2D(0.0, 0.0, 3.0).interpolate(Pose2D(0.0, 0.0, -3.0), 0.5)
    assert np.isclose(mid.heading, np.pi)
    assert np.isclose(mid.x, 0.0) and np.isclose(mid.y, 0.0)


def test_velocity_angle_is_undefined_at_rest() -> None:
    assert FieldRelativeVelocity(0.0, 0.0, 1.0).angle() is None
    assert np.isclose(FieldRelativeVelocity(0.0, 2.0, 0.0).angle(), math.pi / 2)


def test_velocity_clamp_preserves_course() -> None:
    clamped = FieldRelativeVelocity(3.0, 4.0, 7.0).clamp(1.0, 2.0)
    assert np.isclose(clamped.norm(), 1.0)
    assert np.isclose(clamped.x / clamped.y, 0.75)
    assert clamped.theta == 2.0


def test_field_and_robot_velocity_conversion() -> None:
    robot = FieldRelativeVelocity(1.0, 0.0, 0.5).to_robot_relative(math.pi / 2)
    assert np.allclose(robot.as_array(), [0.0, -1.0, 0.5], atol=1e-12)
    field = RobotRelativeVelocity(0.0, -1.0, 0.5).to_field_relative(math.pi / 2)
    assert np.allclose(field.as_array(), [1.0, 0.0, 0.5], atol=1e-12)


def test_velocity_arithmetic() -> None:
    a = FieldRelativeVelocity(1.0, 2.0, 3.0)
    b = FieldRelativeVelocity(0.5, 0.5, 0.5)
    assert a.plus(b) == FieldRelativeVelocity(1.5, 2.5, 3.5)
    assert a.minus(b) == FieldRelativeVelocity(0.5, 1.5, 2.5)
    assert a.times(2.0, 0.0) == FieldRelativeVelocity(2.0, 4.0, 0.0)
    assert a.dot(b) == 1.5


def test_module_optimize_reverses_instead_of_half_turn() -> None:
    state = ModuleState(1.0, math.pi).optimize(0.0)
    assert state.speed == -1.0
    assert np.isclose(state.angle, 0.0)


def test_module_optimize_stays_continuous() -> None:
    state = ModuleState(1.0, 0.5).optimize(2 * math.pi)
    assert state.speed == 1.0
    assert np.isclose(state.angle, 2 * math.pi + 0.5)


def test_record_interpolation_blends_inputs() -> None:
    start = OdometryRecord(SwerveState(Pose2D(0.0, 0.0, 0.0)), 0.0, (WheelPosition(0.0, 0.0),))
    end = OdometryRecord(SwerveState(Pose2D(2.0, 0.0, 0.0)), 1.0, (WheelPosition(4.0, 1.0),))
    mid = start.interpolate(end, 0.5)
    assert np.isclose(mid.state.pose.x, 1.0)
    assert np.isclose(mid.gyro_angle, 0.5)
    assert np.isclose(mid.wheel_positions[0].distance, 2.0)
    assert np.isclose(mid.wheel_positions[0].angle, 0.5)
