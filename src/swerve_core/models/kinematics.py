r"""Swerve drive kinematics.

Each module ``i`` mounted at :math:`(x_i, y_i)` in the robot frame sees the
wheel velocity

.. math::
   \begin{bmatrix} v_{ix} \\ v_{iy} \end{bmatrix}
   = \begin{bmatrix} 1 & 0 & -y_i \\ 0 & 1 & x_i \end{bmatrix}
     \begin{bmatrix} v_x \\ v_y \\ \omega \end{bmatrix}

Stacking all modules gives the inverse kinematics matrix :math:`A`. Forward
kinematics (module states or wheel deltas to chassis motion) uses the
least-squares pseudo-inverse :math:`A^+`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from swerve_core.types import ModuleState, RobotRelativeVelocity, Twist2D, WheelPosition

# Below this module speed the steering angle is undefined and the previous one is held.
STOPPED_SPEED = 1e-6


@dataclass(slots=True)
class SwerveDriveKinematics:
    """Inverse and forward kinematics for an ``N``-module swerve chassis.

    Parameters
    ----------
    module_positions:
        ``(N, 2)`` array of module locations in meters, robot frame, x forward
        and y left.
    """

    module_positions: np.ndarray
    _inverse: np.ndarray = field(init=False, repr=False)
    _forward: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.module_positions = np.asarray(self.module_positions, dtype=float).reshape(-1, 2)
        n = self.module_positions.shape[0]
        if n < 2:
            raise ValueError(f"Swerve kinematics needs at least two modules, got {n}")
        inverse = np.zeros((2 * n, 3), dtype=float)
        for i, (mx, my) in enumerate(self.module_positions):
            inverse[2 * i] = [1.0, 0.0, -my]
            inverse[2 * i + 1] = [0.0, 1.0, mx]
        self._inverse = inverse
        self._forward = np.linalg.pinv(inverse)

    @property
    def num_modules(self) -> int:
        return int(self.module_positions.shape[0])

    def module_velocities(self, velocity: RobotRelativeVelocity) -> np.ndarray:
        """Return the ``(N, 2)`` robot-frame wheel velocity vectors."""
        return (self._inverse @ velocity.as_array()).reshape(-1, 2)

    def to_module_states(
        self,
        velocity: RobotRelativeVelocity,
        previous_angles: Sequence[float] | None = None,
    ) -> list[ModuleState]:
        """Inverse kinematics.

        A module whose speed is effectively zero keeps its entry from
        ``previous_angles`` (or zero when none are given) instead of snapping
        to an arbitrary angle.
        """
        wheel = self.module_velocities(velocity)
        states: list[ModuleState] = []
        for i, (vx, vy) in enumerate(wheel):
            speed = math.hypot(vx, vy)
            if speed < STOPPED_SPEED:
                angle = 0.0 if previous_angles is None else float(previous_angles[i])
                states.append(ModuleState(speed=0.0, angle=angle))
            else:
                states.append(ModuleState(speed=float(speed), angle=math.atan2(vy, vx)))
        return states

    def to_chassis_velocity(self, states: Sequence[ModuleState]) -> RobotRelativeVelocity:
        """Forward kinematics, least squares over all modules."""
        self._check_count(len(states))
        wheel = np.empty(2 * len(states), dtype=float)
        for i, state in enumerate(states):
            wheel[2 * i] = state.speed * math.cos(state.angle)
            wheel[2 * i + 1] = state.speed * math.sin(state.angle)
        vx, vy, omega = self._forward @ wheel
        return RobotRelativeVelocity(float(vx), float(vy), float(omega))

    def to_twist(self, start: Sequence[WheelPosition], end: Sequence[WheelPosition]) -> Twist2D:
        """Robot-frame twist implied by the wheel motion between two samples.

        Each module is treated as travelling its distance delta along its
        final steering angle.
        """
        self._check_count(len(start))
        self._check_count(len(end))
        wheel = np.empty(2 * len(end), dtype=float)
        for i, (a, b) in enumerate(zip(start, end)):
            delta = b.distance - a.distance
            wheel[2 * i] = delta * math.cos(b.angle)
            wheel[2 * i + 1] = delta * math.sin(b.angle)
        dx, dy, dtheta = self._forward @ wheel
        return Twist2D(float(dx), float(dy), float(dtheta))

    @staticmethod
    def desaturate(states: Sequence[ModuleState], max_speed: float) -> list[ModuleState]:
        """Scale all module speeds together so none exceeds ``max_speed``."""
        peak = max((abs(s.speed) for s in states), default=0.0)
        if peak <= max_speed or peak == 0.0:
            return list(states)
        ratio = max_speed / peak
        return [ModuleState(s.speed * ratio, s.angle) for s in states]

    def _check_count(self, count: int) -> None:
        if count != self.num_modules:
            raise ValueError(f"Expected {self.num_modules} module entries, got {count}")
