r"""Static description of the drivetrain: geometry and physical limits.

Module order is front-left, front-right, rear-left, rear-right. With track
width :math:`w`, wheelbase :math:`l` and front offset :math:`f` (distance from
the centre of rotation to the front axle) the module positions are

.. math::
   (f, w/2),\ (f, -w/2),\ (f - l, w/2),\ (f - l, -w/2)

The tip-over limit on translational acceleration follows from the track width
and centre-of-gravity height :math:`h`:

.. math::
   a_{capsize} = g \frac{w / 2}{h}
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from swerve_core.math_utils import angle_difference
from swerve_core.models.kinematics import SwerveDriveKinematics
from swerve_core.models.torque import TorqueModel
from swerve_core.types import ModuleState, RobotRelativeVelocity

GRAVITY = 9.8


def stall_acceleration_from_torque(
    torque_model: TorqueModel,
    current_limit_amps: float,
    gear_ratio: float,
    wheel_radius_m: float,
    mass_kg: float,
    n_modules: int = 4,
) -> float:
    """Current-limited chassis acceleration at zero speed.

    Parameters
    ----------
    torque_model:
        Drive motor constants.
    current_limit_amps:
        Stator current limit per drive motor.
    gear_ratio:
        Motor turns per wheel turn.
    wheel_radius_m:
        Wheel radius in meters.
    mass_kg:
        Robot mass in kilograms.
    n_modules:
        Number of driven modules sharing the load.
    """
    if wheel_radius_m <= 0.0 or mass_kg <= 0.0:
        raise ValueError("Wheel radius and mass must be positive")
    motor_torque = torque_model.torque_at_current(current_limit_amps)
    wheel_force = motor_torque * gear_ratio / wheel_radius_m
    return n_modules * wheel_force / mass_kg


@dataclass(frozen=True, slots=True)
class SwerveKinodynamics:
    """Immutable chassis geometry and limits.

    Attributes
    ----------
    max_drive_velocity:
        Wheel speed ceiling in m/s.
    stall_acceleration:
        Current-limited acceleration at zero speed, m/s^2. Available
        acceleration falls linearly with speed because of back-EMF.
    max_drive_acceleration:
        Traction-limited acceleration in m/s^2.
    max_drive_deceleration:
        Braking limit in m/s^2, not affected by back-EMF.
    max_steering_velocity:
        Steering slew limit in rad/s.
    track_width, wheelbase, front_offset:
        Geometry in meters, see the module docstring.
    vcg:
        Centre of gravity height in meters.
    """

    max_drive_velocity: float
    stall_acceleration: float
    max_drive_acceleration: float
    max_drive_deceleration: float
    max_steering_velocity: float
    track_width: float = 0.5
    wheelbase: float = 0.5
    front_offset: float = 0.25
    vcg: float = 0.3
    kinematics: SwerveDriveKinematics = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for name in (
            "max_drive_velocity",
            "stall_acceleration",
            "max_drive_acceleration",
            "max_drive_deceleration",
            "max_steering_velocity",
            "track_width",
            "wheelbase",
            "vcg",
        ):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        object.__setattr__(self, "kinematics", SwerveDriveKinematics(self.module_positions))

    @property
    def module_positions(self) -> np.ndarray:
        half_track = 0.5 * self.track_width
        rear = self.front_offset - self.wheelbase
        return np.array(
            [
                [self.front_offset, half_track],
                [self.front_offset, -half_track],
                [rear, half_track],
                [rear, -half_track],
            ],
            dtype=float,
        )

    @property
    def num_modules(self) -> int:
        return self.kinematics.num_modules

    @property
    def drive_radius(self) -> float:
        """Distance from the centre of rotation to the farthest module."""
        return float(np.max(np.hypot(self.module_positions[:, 0], self.module_positions[:, 1])))

    @property
    def max_angular_velocity(self) -> float:
        """Yaw rate with every wheel at the speed ceiling."""
        return self.max_drive_velocity / self.drive_radius

    @property
    def max_capsize_acceleration(self) -> float:
        return GRAVITY * 0.5 * self.track_width / self.vcg

    def min_accel(self, speed: float) -> float:
        """Available drive acceleration at ``speed``.

        The smaller of the traction limit and the back-EMF limited stall
        acceleration, never negative.
        """
        fraction = 1.0 - abs(speed) / self.max_drive_velocity
        return max(0.0, min(self.max_drive_acceleration, self.stall_acceleration * fraction))

    def to_module_states(
        self,
        velocity: RobotRelativeVelocity,
        previous_angles: Sequence[float] | None = None,
    ) -> list[ModuleState]:
        return self.kinematics.to_module_states(velocity, previous_angles)

    def to_chassis_velocity(self, states: Sequence[ModuleState]) -> RobotRelativeVelocity:
        return self.kinematics.to_chassis_velocity(states)

    def transition_feasible(
        self,
        previous: Sequence[ModuleState],
        current: Sequence[ModuleState],
        dt: float,
        tol: float = 1e-6,
    ) -> bool:
        """Check that every module can go from ``previous`` to ``current`` in ``dt``.

        Checks the steering slew limit, the acceleration and deceleration
        limits and the speed ceiling. A module already above the ceiling only
        needs to be slowing down.
        """
        if len(previous) != len(current):
            raise ValueError(f"Module count mismatch: {len(previous)} vs {len(current)}")
        max_turn = self.max_steering_velocity * dt + tol
        for prev, cur in zip(previous, current):
            if not math.isfinite(cur.speed) or not math.isfinite(cur.angle):
                return False
            if abs(angle_difference(cur.angle, prev.angle)) > max_turn:
                return False
            prev_speed = abs(prev.speed)
            cur_speed = abs(cur.speed)
            if cur_speed > self.max_drive_velocity + tol and cur_speed > prev_speed:
                return False
            if prev.speed * cur.speed >= 0.0:
                delta = cur_speed - prev_speed
                if delta > self.min_accel(prev_speed) * dt + tol:
                    return False
                if -delta > self.max_drive_deceleration * dt + tol:
                    return False
            else:
                # Reversing: brake to zero, then accelerate from rest.
                if prev_speed > self.max_drive_deceleration * dt + tol:
                    return False
                if cur_speed > self.min_accel(0.0) * dt + tol:
                    return False
        return True

    @classmethod
    def default(cls) -> "SwerveKinodynamics":
        return cls(
            max_drive_velocity=5.0,
            stall_acceleration=20.0,
            max_drive_acceleration=10.0,
            max_drive_deceleration=10.0,
            max_steering_velocity=13.0,
            vcg=0.3,
        )

    @classmethod
    def limiting(cls) -> "SwerveKinodynamics":
        """Slow steering and moderate braking, for limit tests."""
        return cls(
            max_drive_velocity=5.0,
            stall_acceleration=27.5,
            max_drive_acceleration=10.0,
            max_drive_deceleration=5.0,
            max_steering_velocity=7.0,
            vcg=0.3,
        )

    @classmethod
    def high_capsize(cls) -> "SwerveKinodynamics":
        """Very low centre of gravity, so tip-over never binds."""
        return cls(
            max_drive_velocity=5.0,
            stall_acceleration=20.0,
            max_drive_acceleration=10.0,
            max_drive_deceleration=10.0,
            max_steering_velocity=5.0,
            vcg=0.001,
        )

    @classmethod
    def low_capsize(cls) -> "SwerveKinodynamics":
        """Tall robot, tip-over dominates."""
        return cls(
            max_drive_velocity=5.0,
            stall_acceleration=20.0,
            max_drive_acceleration=10.0,
            max_drive_deceleration=10.0,
            max_steering_velocity=5.0,
            vcg=2.0,
        )

    @classmethod
    def decel_case(cls) -> "SwerveKinodynamics":
        """Weak drive with strong brakes."""
        return cls(
            max_drive_velocity=1.0,
            stall_acceleration=1.0,
            max_drive_acceleration=1.0,
            max_drive_deceleration=10.0,
            max_steering_velocity=5.0,
            vcg=0.3,
        )

    @classmethod
    def high_decel_and_capsize(cls) -> "SwerveKinodynamics":
        return cls(
            max_drive_velocity=5.0,
            stall_acceleration=20.0,
            max_drive_acceleration=10.0,
            max_drive_deceleration=300.0,
            max_steering_velocity=5.0,
            vcg=0.001,
        )
