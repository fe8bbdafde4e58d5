from __future__ import annotations

import math

import numpy as np
import pytest

from swerve_core.controller import HolonomicDriveController, PIDController, cartesian_pid, theta_pid
from swerve_core.types import FieldRelativeVelocity, Pose2D, SwerveState


def test_proportional_output() -> None:
    pid = PIDController(kp=2.0)
    assert np.isclose(pid.calculate(0.0, 1.0), 2.0)
    assert pid.setpoint == 1.0
    assert pid.position_error == 1.0


def test_integrator_is_clamped() -> None:
    pid = PIDController(kp=0.0, ki=1.0, min_integral=-0.1, max_integral=0.1)
    for _ in range(20):
        output = pid.calculate(0.0, 10.0)
    assert np.isclose(output, 0.1)
    for _ in range(20):
        output = pid.calculate(0.0, -10.0)
    assert np.isclose(output, -0.1)


def test_derivative_uses_error_change() -> None:
    pid = PIDController(kp=0.0, kd=1.0, period=0.5)
    pid.calculate(0.0, 1.0)
    assert np.isclose(pid.calculate(0.5, 1.0), -1.0)


def test_continuous_input_takes_short_way() -> None:
    pid = theta_pid()
    output = pid.calculate(3.0, -3.0)
    assert np.isclose(pid.position_error, 2.0 * math.pi - 6.0)
    assert np.isclose(output, 2.0 * (2.0 * math.pi - 6.0))


def test_at_setpoint_requires_measurement() -> None:
    pid = cartesian_pid()
    assert not pid.at_setpoint()
    pid.calculate(0.0, 0.005)
    assert pid.at_setpoint()
    pid.calculate(0.0, 0.5)
    assert not pid.at_setpoint()
    pid.reset()
    assert not pid.at_setpoint()


def test_holonomic_adds_feedforward_and_feedback() -> None:
    controller = HolonomicDriveController()
    reference = SwerveState(pose=Pose2D(1.0, 0.0, 0.0), velocity=FieldRelativeVelocity(0.5, 0.0, 0.0))
    command = controller.calculate(Pose2D(), reference)
    # kp * 1 m + ki * (1 m * 0.02 s) + feed-forward
    assert np.isclose(command.x, 3.52)
    assert np.isclose(command.y, 0.0)
    assert np.isclose(command.theta, 0.0)
    assert controller.error() == Pose2D(1.0, 0.0, 0.0)
    assert not controller.at_reference()


def test_holonomic_wraps_heading() -> None:
    controller = HolonomicDriveController()
    reference = SwerveState(pose=Pose2D(0.0, 0.0, 2.0 * math.pi + 0.1))
    command = controller.calculate(Pose2D(0.0, 0.0, -0.1), reference)
    assert np.isclose(command.theta, 0.4)


def test_holonomic_tolerance_and_reset() -> None:
    controller = HolonomicDriveController.with_tolerance(0.1, math.inf, 0.1, math.inf)
    reference = SwerveState(pose=Pose2D(0.05, -0.05, 0.05))
    controller.calculate(Pose2D(), reference)
    assert controller.at_reference()
    controller.reset()
    assert not controller.at_reference()
    assert controller.error() == Pose2D()


def test_default_controllers_bound_their_integrators() -> None:
    cartesian = cartesian_pid()
    assert (cartesian.min_integral, cartesian.max_integral) == (-0.1, 0.1)
    assert cartesian.position_tolerance == 0.01
    theta = theta_pid()
    assert (theta.min_integral, theta.max_integral) == (-0.01, 0.01)
    assert theta.continuous


def test_integrator_range_must_not_be_empty() -> None:
    pid = PIDController(kp=1.0, ki=1.0)
    pid.set_integrator_range(-0.5, 0.5)
    for _ in range(100):
        pid.calculate(0.0, 10.0)
    assert np.isclose(pid.calculate(0.0, 0.0), 0.5)
    with pytest.raises(ValueError):
        pid.set_integrator_range(1.0, -1.0)
