r"""Feasibility projection of desired chassis velocities.

Every tick the generator moves from the previous commanded chassis velocity
:math:`v_0` toward the desired one :math:`v_d` by the largest fraction
:math:`s \in [0, 1]` that keeps every module within its limits:

.. math::
   v = v_0 + s (v_d - v_0)

The robot turns by :math:`\omega_0 dt` during the tick, so :math:`v_0` is the
previous velocity re-expressed in the rotated robot frame. Each module's
wheel velocity is affine in :math:`s`, so every limit reduces to a closed-form
bound on :math:`s`:

- steering: the wheel axis may turn at most :math:`\omega_{steer} dt` from the
  previous module angle. A module at rest may not move until it has steered
  to its target axis.
- drive: the wheel speed may grow by at most :math:`a(|p|) dt` (back-EMF
  limited) and shrink by at most :math:`a_{decel} dt`, measured from the
  previous module speed.
- tip-over: the translational velocity change is at most
  :math:`a_{capsize} dt`.

The minimum bound is applied to the chassis so all modules stay kinematically
consistent. The resulting module states are checked once more and ``s`` is
halved until they are feasible. When the modules cannot follow the frame
rotation the projection is repeated without it, and as a last resort every
module holds its angle and brakes, so an infeasible command is never emitted.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.math_utils import angle_difference, cross2
from swerve_core.models.kinematics import STOPPED_SPEED
from swerve_core.types import ModuleState, RobotRelativeVelocity

logger = logging.getLogger(__name__)

_TOLERANCE = 1e-9


@dataclass(frozen=True, slots=True)
class SwerveSetpoint:
    """Chassis velocity and module states commanded on one tick."""

    velocity: RobotRelativeVelocity
    module_states: tuple[ModuleState, ...]

    @classmethod
    def at_rest(cls, angles: Sequence[float] = (0.0, 0.0, 0.0, 0.0)) -> "SwerveSetpoint":
        """Stationary setpoint with the modules held at ``angles``."""
        return cls(RobotRelativeVelocity(), tuple(ModuleState(0.0, float(a)) for a in angles))

    @property
    def angles(self) -> list[float]:
        return [state.angle for state in self.module_states]


@dataclass(slots=True)
class SwerveSetpointGenerator:
    """Turn desired chassis velocities into reachable setpoints.

    :meth:`generate_setpoint` is a pure function of the previous setpoint.
    :meth:`step` carries the previous setpoint between ticks; call
    :meth:`reseed` whenever the drivetrain is re-enabled so a stale setpoint
    does not produce a jump.

    Parameters
    ----------
    kinodynamics:
        Drivetrain limits.
    max_iterations:
        Number of times ``s`` is halved when the final feasibility check
        fails.
    reseed_stopped_speed:
        Measured wheel speeds (m/s) below this are treated as stopped when
        reseeding.
    """

    kinodynamics: SwerveKinodynamics
    max_iterations: int = 8
    reseed_stopped_speed: float = 0.05
    _previous: SwerveSetpoint = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._previous = SwerveSetpoint.at_rest([0.0] * self.kinodynamics.num_modules)

    @property
    def previous(self) -> SwerveSetpoint:
        return self._previous

    def reseed(self, module_states: Sequence[ModuleState]) -> SwerveSetpoint:
        """Restart from measured module states.

        The measurements are rarely kinematically consistent, so the chassis
        velocity is fit to them and the module states are rebuilt from that
        velocity, keeping the measured angles wherever a module is stopped.
        """
        states = tuple(module_states)
        limits = self.kinodynamics
        if len(states) != limits.num_modules:
            raise ValueError(f"Expected {limits.num_modules} module states, got {len(states)}")
        angles = [state.angle for state in states]
        if all(abs(state.speed) < self.reseed_stopped_speed for state in states):
            self._previous = SwerveSetpoint.at_rest(angles)
        else:
            velocity = limits.to_chassis_velocity(states)
            rebuilt = limits.to_module_states(velocity, angles)
            self._previous = SwerveSetpoint(
                velocity, tuple(state.optimize(angle) for state, angle in zip(rebuilt, angles))
            )
        logger.debug("Setpoint generator reseeded at (%.3f, %.3f, %.3f)", *self._previous.velocity.as_array())
        return self._previous

    def step(self, desired: RobotRelativeVelocity, dt: float) -> SwerveSetpoint:
        """Generate from the stored previous setpoint and remember the result."""
        self._previous = self.generate_setpoint(self._previous, desired, dt)
        return self._previous

    def generate_setpoint(
        self,
        previous: SwerveSetpoint,
        desired: RobotRelativeVelocity,
        dt: float,
    ) -> SwerveSetpoint:
        """Nearest setpoint to ``desired`` reachable from ``previous`` within ``dt``.

        Raises
        ------
        ValueError
            For a non-finite desired velocity, a non-positive ``dt`` or a
            previous setpoint with the wrong number of modules.
        """
        if not desired.is_finite():
            raise ValueError(f"Desired chassis velocity must be finite, got {desired}")
        if not dt > 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        limits = self.kinodynamics
        if len(previous.module_states) != limits.num_modules:
            raise ValueError(
                f"Previous setpoint has {len(previous.module_states)} modules, expected {limits.num_modules}"
            )

        desired = self._desaturate(desired)
        setpoint = self._project(previous, self._shift_frame(previous.velocity, dt), desired, dt)
        if setpoint is None:
            logger.debug("Modules cannot follow the chassis rotation, projecting without it")
            setpoint = self._project(previous, previous.velocity, desired, dt)
        if setpoint is None:
            logger.warning("No feasible setpoint found, holding module angles and braking")
            setpoint = self._hold(previous, dt)
        return setpoint

    def _project(
        self,
        previous: SwerveSetpoint,
        start: RobotRelativeVelocity,
        desired: RobotRelativeVelocity,
        dt: float,
    ) -> SwerveSetpoint | None:
        limits = self.kinodynamics
        kinematics = limits.kinematics
        prev_angles = previous.angles
        prev_speeds = [abs(state.speed) for state in previous.module_states]

        start_wheel = kinematics.module_velocities(start)
        desired_wheel = kinematics.module_velocities(desired)
        start_speeds = np.hypot(start_wheel[:, 0], start_wheel[:, 1])
        desired_speeds = np.hypot(desired_wheel[:, 0], desired_wheel[:, 1])
        start_stopped = bool(np.all(start_speeds < STOPPED_SPEED))
        desired_stopped = bool(np.all(desired_speeds < STOPPED_SPEED))

        if not start_stopped and not desired_stopped and self._all_modules_reverse(start_wheel, desired_wheel):
            logger.debug("All modules reversing, braking toward zero first")
            desired = RobotRelativeVelocity()
            desired_wheel = kinematics.module_velocities(desired)
            desired_speeds = np.zeros(limits.num_modules)

        delta = desired.as_array() - start.as_array()
        delta_wheel = desired_wheel - start_wheel
        max_turn = limits.max_steering_velocity * dt

        min_s = 1.0
        overrides: dict[int, float] = {}

        for i in range(limits.num_modules):
            p = start_wheel[i]
            if start_speeds[i] < STOPPED_SPEED:
                if desired_speeds[i] < STOPPED_SPEED:
                    overrides[i] = prev_angles[i]
                    continue
                target = math.atan2(desired_wheel[i, 1], desired_wheel[i, 0])
                rotation = angle_difference(target, prev_angles[i])
                if abs(rotation) > math.pi / 2.0:
                    rotation = angle_difference(target + math.pi, prev_angles[i])
                if abs(rotation) <= max_turn:
                    overrides[i] = prev_angles[i] + rotation
                else:
                    overrides[i] = prev_angles[i] + math.copysign(max_turn, rotation)
                    min_s = 0.0
                continue
            q = p + min_s * delta_wheel[i]
            min_s = min(min_s, self._steering_limit(prev_angles[i], p, q, max_turn) * min_s)

        for i in range(limits.num_modules):
            if min_s <= 0.0:
                break
            p = start_wheel[i]
            q = p + min_s * delta_wheel[i]
            min_s = min(min_s, self._drive_limit(p, q, prev_speeds[i], dt) * min_s)

        translation = math.hypot(delta[0], delta[1])
        if translation > _TOLERANCE:
            min_s = min(min_s, limits.max_capsize_acceleration * dt / translation)

        min_s = min(max(min_s, 0.0), 1.0)
        logger.debug("Setpoint scale s=%.4f", min_s)

        s = min_s
        for _ in range(self.max_iterations + 1):
            candidate = self._build(previous, start.as_array() + s * delta, overrides)
            if limits.transition_feasible(previous.module_states, candidate.module_states, dt):
                if s < min_s:
                    logger.debug("Feasibility check reduced s from %.4f to %.4f", min_s, s)
                return candidate
            s *= 0.5
        return None

    def _hold(self, previous: SwerveSetpoint, dt: float) -> SwerveSetpoint:
        """Keep every module angle and slow each wheel at the braking limit."""
        limits = self.kinodynamics
        braking = limits.max_drive_deceleration * dt
        states = tuple(
            ModuleState(math.copysign(max(abs(state.speed) - braking, 0.0), state.speed), state.angle)
            for state in previous.module_states
        )
        return SwerveSetpoint(limits.to_chassis_velocity(states), states)

    def _desaturate(self, desired: RobotRelativeVelocity) -> RobotRelativeVelocity:
        wheel = self.kinodynamics.kinematics.module_velocities(desired)
        peak = float(np.max(np.hypot(wheel[:, 0], wheel[:, 1])))
        ceiling = self.kinodynamics.max_drive_velocity
        if peak <= ceiling:
            return desired
        ratio = ceiling / peak
        return RobotRelativeVelocity(desired.vx * ratio, desired.vy * ratio, desired.omega * ratio)

    @staticmethod
    def _shift_frame(velocity: RobotRelativeVelocity, dt: float) -> RobotRelativeVelocity:
        """Express ``velocity`` in the robot frame one tick later."""
        heading = -velocity.omega * dt
        cos_h = math.cos(heading)
        sin_h = math.sin(heading)
        return RobotRelativeVelocity(
            velocity.vx * cos_h - velocity.vy * sin_h,
            velocity.vx * sin_h + velocity.vy * cos_h,
            velocity.omega,
        )

    @staticmethod
    def _all_modules_reverse(prev_wheel: np.ndarray, desired_wheel: np.ndarray) -> bool:
        for p, d in zip(prev_wheel, desired_wheel):
            if math.hypot(*p) < STOPPED_SPEED or math.hypot(*d) < STOPPED_SPEED:
                return False
            turn = math.atan2(cross2(p, d), float(np.dot(p, d)))
            if abs(turn) <= math.pi / 2.0:
                return False
        return True

    @staticmethod
    def _steering_limit(angle: float, p: np.ndarray, q: np.ndarray, max_turn: float) -> float:
        """Fraction of the way from ``p`` to ``q`` before the wheel axis turns ``max_turn`` from ``angle``.

        The axis is direction modulo pi since a module can reverse its drive
        instead of steering.
        """
        if math.hypot(*q) < STOPPED_SPEED:
            return 1.0
        turn = angle_difference(math.atan2(q[1], q[0]), angle)
        if abs(turn) > math.pi / 2.0:
            turn -= math.copysign(math.pi, turn)
        if abs(turn) <= max_turn:
            return 1.0
        heading = angle + math.copysign(max_turn, turn)
        w = np.array([math.cos(heading), math.sin(heading)])
        denominator = cross2(q - p, w)
        if abs(denominator) < _TOLERANCE:
            return 0.0
        u = -cross2(p, w) / denominator
        return min(max(u, 0.0), 1.0)

    def _drive_limit(self, p: np.ndarray, q: np.ndarray, speed: float, dt: float) -> float:
        """Fraction of the way from ``p`` to ``q`` within the drive speed band around ``speed``.

        Solves ``|p + u (q - p)| = limit`` for the upper (acceleration) and
        lower (deceleration) speed limits.
        """
        limits = self.kinodynamics
        step = q - p
        a = float(np.dot(step, step))
        if a < _TOLERANCE:
            return 1.0
        b = 2.0 * float(np.dot(p, step))
        c = float(np.dot(p, p))
        u = 1.0

        upper = speed + dt * limits.min_accel(speed)
        if math.hypot(*q) > upper + _TOLERANCE:
            disc = b * b - 4.0 * a * (c - upper * upper)
            root = (-b + math.sqrt(max(disc, 0.0))) / (2.0 * a)
            u = min(u, max(root, 0.0))

        lower = speed - dt * limits.max_drive_deceleration
        if lower > 0.0:
            disc = b * b - 4.0 * a * (c - lower * lower)
            if disc >= 0.0:
                root = (-b - math.sqrt(disc)) / (2.0 * a)
                if 0.0 <= root <= 1.0:
                    u = min(u, root)
        return u

    def _build(
        self,
        previous: SwerveSetpoint,
        chassis: np.ndarray,
        overrides: dict[int, float],
    ) -> SwerveSetpoint:
        prev_angles = previous.angles
        velocity = RobotRelativeVelocity(float(chassis[0]), float(chassis[1]), float(chassis[2]))
        states = self.kinodynamics.to_module_states(velocity, prev_angles)
        result: list[ModuleState] = []
        for i, state in enumerate(states):
            if i in overrides:
                angle = overrides[i]
                speed = state.speed
                if abs(angle_difference(state.angle, angle)) > math.pi / 2.0:
                    speed = -speed
                state = ModuleState(speed, angle)
            result.append(state.optimize(prev_angles[i]))
        return SwerveSetpoint(velocity, tuple(result))
