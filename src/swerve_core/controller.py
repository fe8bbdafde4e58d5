r"""Trajectory-following feedback for a holonomic drivetrain.

The holonomic controller sums a per-axis feed-forward velocity from the
reference state with three independent PID corrections:

.. math::
   u_x = \dot x_{ref} + \mathrm{PID}_x(x_{ref} - x), \quad
   u_y = \dot y_{ref} + \mathrm{PID}_y(y_{ref} - y), \quad
   u_\theta = \dot\theta_{ref} + \mathrm{PID}_\theta(\theta_{ref} - \theta)

It does not coordinate axes or limit its output; the setpoint generator
downstream does that.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from swerve_core.math_utils import wrap_angle
from swerve_core.types import FieldRelativeVelocity, Pose2D, SwerveState

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PIDController:
    """Discrete PID controller with optional continuous (wrapping) input.

    Parameters
    ----------
    kp, ki, kd:
        Gains.
    period:
        Loop period in seconds, used for the integral and derivative terms.
    """

    kp: float
    ki: float = 0.0
    kd: float = 0.0
    period: float = 0.02
    min_integral: float = -1.0
    max_integral: float = 1.0
    position_tolerance: float = 0.05
    velocity_tolerance: float = math.inf
    continuous: bool = False
    min_input: float = 0.0
    max_input: float = 0.0

    setpoint: float = field(init=False, default=0.0)
    position_error: float = field(init=False, default=0.0)
    velocity_error: float = field(init=False, default=0.0)
    _previous_error: float = field(init=False, default=0.0, repr=False)
    _total_error: float = field(init=False, default=0.0, repr=False)
    _have_measurement: bool = field(init=False, default=False, repr=False)

    def __post_init__(self) -> None:
        if self.period <= 0.0:
            raise ValueError(f"Controller period must be positive, got {self.period}")

    def set_integrator_range(self, minimum: float, maximum: float) -> None:
        """Clamp the integral contribution to ``[minimum, maximum]``."""
        if minimum > maximum:
            raise ValueError(f"Integrator range is empty: [{minimum}, {maximum}]")
        self.min_integral = minimum
        self.max_integral = maximum

    def set_tolerance(self, position: float, velocity: float = math.inf) -> None:
        self.position_tolerance = position
        self.velocity_tolerance = velocity

    def enable_continuous_input(self, minimum: float, maximum: float) -> None:
        self.continuous = True
        self.min_input = minimum
        self.max_input = maximum

    def calculate(self, measurement: float, setpoint: float) -> float:
        """Return the control output and record the errors."""
        self.setpoint = setpoint
        self._have_measurement = True
        self._previous_error = self.position_error

        if self.continuous:
            bound = 0.5 * (self.max_input - self.min_input)
            error = setpoint - measurement
            self.position_error = (error + bound) % (2.0 * bound) - bound
        else:
            self.position_error = setpoint - measurement
        self.velocity_error = (self.position_error - self._previous_error) / self.period

        if self.ki != 0.0:
            total = self._total_error + self.position_error * self.period
            self._total_error = min(max(total, self.min_integral / self.ki), self.max_integral / self.ki)

        return self.kp * self.position_error + self.ki * self._total_error + self.kd * self.velocity_error

    def at_setpoint(self) -> bool:
        return (
            self._have_measurement
            and abs(self.position_error) < self.position_tolerance
            and abs(self.velocity_error) < self.velocity_tolerance
        )

    def reset(self) -> None:
        self.position_error = 0.0
        self.velocity_error = 0.0
        self._previous_error = 0.0
        self._total_error = 0.0
        self._have_measurement = False


def cartesian_pid() -> PIDController:
    """Default translation controller, 1 cm tolerance."""
    pid = PIDController(kp=3.0, ki=1.0, kd=0.0)
    pid.set_integrator_range(-0.1, 0.1)
    pid.set_tolerance(0.01)
    return pid


def theta_pid() -> PIDController:
    """Default heading controller with wrapping input."""
    pid = PIDController(kp=2.0, ki=0.0, kd=0.0)
    pid.set_integrator_range(-0.01, 0.01)
    pid.set_tolerance(0.01)
    pid.enable_continuous_input(-math.pi, math.pi)
    return pid


@dataclass(slots=True)
class HolonomicDriveController:
    """Feed-forward plus independent per-axis PID feedback."""

    x_controller: PIDController = field(default_factory=cartesian_pid)
    y_controller: PIDController = field(default_factory=cartesian_pid)
    theta_controller: PIDController = field(default_factory=theta_pid)

    @classmethod
    def with_tolerance(
        cls,
        cartesian_position: float,
        cartesian_velocity: float,
        rotation_position: float,
        rotation_velocity: float,
    ) -> "HolonomicDriveController":
        x = cartesian_pid()
        x.set_tolerance(cartesian_position, cartesian_velocity)
        y = cartesian_pid()
        y.set_tolerance(cartesian_position, cartesian_velocity)
        theta = theta_pid()
        theta.set_tolerance(rotation_position, rotation_velocity)
        return cls(x, y, theta)

    def calculate(self, current_pose: Pose2D, desired: SwerveState) -> FieldRelativeVelocity:
        """Field-relative velocity command for tracking ``desired``."""
        reference = desired.pose
        feedforward = desired.velocity
        x_fb = self.x_controller.calculate(current_pose.x, reference.x)
        y_fb = self.y_controller.calculate(current_pose.y, reference.y)
        theta_fb = self.theta_controller.calculate(wrap_angle(current_pose.heading), wrap_angle(reference.heading))
        logger.debug(
            "Controller ff=(%.3f, %.3f, %.3f) fb=(%.3f, %.3f, %.3f)",
            feedforward.x,
            feedforward.y,
            feedforward.theta,
            x_fb,
            y_fb,
            theta_fb,
        )
        return FieldRelativeVelocity(feedforward.x + x_fb, feedforward.y + y_fb, feedforward.theta + theta_fb)

    def at_reference(self) -> bool:
        """True when all three axes are within tolerance."""
        return self.x_controller.at_setpoint() and self.y_controller.at_setpoint() and self.theta_controller.at_setpoint()

    def error(self) -> Pose2D:
        """Latest per-axis position error as a pose offset."""
        return Pose2D(
            self.x_controller.position_error,
            self.y_controller.position_error,
            self.theta_controller.position_error,
        )

    def reset(self) -> None:
        self.x_controller.reset()
        self.y_controller.reset()
        self.theta_controller.reset()
