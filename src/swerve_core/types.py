r"""Common typed dataclasses used across swerve_core.

Poses, velocities and module commands are small immutable values. Field-relative
and robot-relative velocities are distinct types so they are never mixed by
accident; converting between them always needs the robot heading.

SE(2) integration
-----------------
A twist :math:`\xi=[dx, dy, d\theta]` expressed in the robot frame is applied
to a pose with the exponential map

.. math::
   \begin{bmatrix} t_x \\ t_y \end{bmatrix}
   = \begin{bmatrix} s & -c \\ c & s \end{bmatrix}
     \begin{bmatrix} dx \\ dy \end{bmatrix},
   \quad s = \frac{\sin d\theta}{d\theta},
   \quad c = \frac{1 - \cos d\theta}{d\theta}

and :meth:`Pose2D.log` is its inverse. Headings are continuous and are never
wrapped by these operations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

import numpy as np

from swerve_core.math_utils import angle_difference, interpolate, interpolate_angle

if TYPE_CHECKING:
    from swerve_core.trajectory import TimedPose

_SMALL_ANGLE = 1e-9
ANGLE_EPSILON = 1e-6


@dataclass(frozen=True, slots=True)
class Twist2D:
    """Incremental rigid-body motion in the robot frame."""

    dx: float = 0.0
    dy: float = 0.0
    dtheta: float = 0.0

    def as_array(self) -> np.ndarray:
        """Return ``[dx, dy, dtheta]`` as a numpy array."""
        return np.array([self.dx, self.dy, self.dtheta], dtype=float)

    def scaled(self, gains: Sequence[float] | np.ndarray) -> "Twist2D":
        """Multiply each component by its own gain."""
        kx, ky, kt = (float(k) for k in gains)
        return Twist2D(self.dx * kx, self.dy * ky, self.dtheta * kt)


@dataclass(frozen=True, slots=True)
class Pose2D:
    """2D robot pose in the field frame.

    Attributes
    ----------
    x, y:
        Position in meters.
    heading:
        Continuous heading in radians, not wrapped.
    """

    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0

    def as_array(self) -> np.ndarray:
        """Return ``[x, y, heading]`` as a numpy array."""
        return np.array([self.x, self.y, self.heading], dtype=float)

    def exp(self, twist: Twist2D) -> "Pose2D":
        """Integrate a robot-frame twist onto this pose."""
        dtheta = twist.dtheta
        if abs(dtheta) < _SMALL_ANGLE:
            s = 1.0 - dtheta * dtheta / 6.0
            c = 0.5 * dtheta
        else:
            s = math.sin(dtheta) / dtheta
            c = (1.0 - math.cos(dtheta)) / dtheta
        tx = twist.dx * s - twist.dy * c
        ty = twist.dx * c + twist.dy * s
        cos_h = math.cos(self.heading)
        sin_h = math.sin(self.heading)
        return Pose2D(
            x=self.x + tx * cos_h - ty * sin_h,
            y=self.y + tx * sin_h + ty * cos_h,
            heading=self.heading + dtheta,
        )

    def log(self, end: "Pose2D") -> Twist2D:
        """Return the twist that takes this pose onto ``end`` along the shortest arc."""
        cos_h = math.cos(self.heading)
        sin_h = math.sin(self.heading)
        ex = end.x - self.x
        ey = end.y - self.y
        tx = ex * cos_h + ey * sin_h
        ty = -ex * sin_h + ey * cos_h
        dtheta = angle_difference(end.heading, self.heading)

        half = 0.5 * dtheta
        cos_minus_one = math.cos(dtheta) - 1.0
        if abs(cos_minus_one) < _SMALL_ANGLE:
            h = 1.0 - dtheta * dtheta / 12.0
        else:
            h = -(half * math.sin(dtheta)) / cos_minus_one
        return Twist2D(dx=tx * h + ty * half, dy=ty * h - tx * half, dtheta=dtheta)

    def interpolate(self, end: "Pose2D", t: float) -> "Pose2D":
        """SE(2) interpolation, continuous with this pose's heading."""
        if t <= 0.0:
            return self
        if t >= 1.0:
            return end
        twist = self.log(end)
        return self.exp(Twist2D(twist.dx * t, twist.dy * t, twist.dtheta * t))

    def distance(self, other: "Pose2D") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True, slots=True)
class RobotRelativeVelocity:
    """Chassis velocity in the robot frame: ``vx``, ``vy`` in m/s and ``omega`` in rad/s."""

    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.vx, self.vy, self.omega], dtype=float)

    def to_field_relative(self, heading: float) -> "FieldRelativeVelocity":
        """Rotate into the field frame given the robot heading."""
        cos_h = math.cos(heading)
        sin_h = math.sin(heading)
        return FieldRelativeVelocity(
            x=self.vx * cos_h - self.vy * sin_h,
            y=self.vx * sin_h + self.vy * cos_h,
            theta=self.omega,
        )

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.vx, self.vy, self.omega))


@dataclass(frozen=True, slots=True)
class FieldRelativeVelocity:
    """Chassis velocity in the field frame.

    ``x`` and ``y`` are m/s, ``theta`` is the heading rate in rad/s.
    """

    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.theta], dtype=float)

    def norm(self) -> float:
        """Translational speed."""
        return math.hypot(self.x, self.y)

    def angle(self) -> float | None:
        """Course of the translation, or ``None`` when (nearly) stationary."""
        if abs(self.x) < ANGLE_EPSILON and abs(self.y) < ANGLE_EPSILON:
            return None
        return math.atan2(self.y, self.x)

    def plus(self, other: "FieldRelativeVelocity") -> "FieldRelativeVelocity":
        return FieldRelativeVelocity(self.x + other.x, self.y + other.y, self.theta + other.theta)

    def minus(self, other: "FieldRelativeVelocity") -> "FieldRelativeVelocity":
        return FieldRelativeVelocity(self.x - other.x, self.y - other.y, self.theta - other.theta)

    def times(self, cartesian: float, angular: float | None = None) -> "FieldRelativeVelocity":
        """Scale translation by ``cartesian`` and rotation by ``angular`` (defaults to ``cartesian``)."""
        angular = cartesian if angular is None else angular
        return FieldRelativeVelocity(self.x * cartesian, self.y * cartesian, self.theta * angular)

    def dot(self, other: "FieldRelativeVelocity") -> float:
        """Dot product of the translational parts."""
        return self.x * other.x + self.y * other.y

    def clamp(self, max_velocity: float, max_omega: float) -> "FieldRelativeVelocity":
        """Limit translational speed and heading rate, preserving the course."""
        norm = self.norm()
        ratio = 1.0
        if norm > 1e-3 and norm > max_velocity:
            ratio = max_velocity / norm
        return FieldRelativeVelocity(
            ratio * self.x,
            ratio * self.y,
            min(max(self.theta, -max_omega), max_omega),
        )

    def to_robot_relative(self, heading: float) -> RobotRelativeVelocity:
        """Rotate into the robot frame given the robot heading."""
        cos_h = math.cos(heading)
        sin_h = math.sin(heading)
        return RobotRelativeVelocity(
            vx=self.x * cos_h + self.y * sin_h,
            vy=-self.x * sin_h + self.y * cos_h,
            omega=self.theta,
        )


@dataclass(frozen=True, slots=True)
class FieldRelativeAcceleration:
    """Chassis acceleration in the field frame (m/s^2, m/s^2, rad/s^2)."""

    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.theta], dtype=float)

    def norm(self) -> float:
        return math.hypot(self.x, self.y)


@dataclass(frozen=True, slots=True)
class ModuleState:
    """Commanded or measured state of one swerve module.

    Attributes
    ----------
    speed:
        Wheel surface speed in m/s, signed.
    angle:
        Steering angle in radians.
    """

    speed: float = 0.0
    angle: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.speed, self.angle], dtype=float)

    def optimize(self, current_angle: float) -> "ModuleState":
        """Reverse the wheel instead of rotating more than a quarter turn.

        The returned angle is expressed near ``current_angle`` so consecutive
        commands stay continuous.
        """
        delta = angle_difference(self.angle, current_angle)
        if abs(delta) > math.pi / 2.0:
            flipped = angle_difference(self.angle + math.pi, current_angle)
            return ModuleState(speed=-self.speed, angle=current_angle + flipped)
        return ModuleState(speed=self.speed, angle=current_angle + delta)


@dataclass(frozen=True, slots=True)
class WheelPosition:
    """Cumulative drive distance (m) and steering angle (rad) of one module."""

    distance: float = 0.0
    angle: float = 0.0

    def interpolate(self, end: "WheelPosition", t: float) -> "WheelPosition":
        return WheelPosition(
            distance=interpolate(self.distance, end.distance, t),
            angle=interpolate_angle(self.angle, end.angle, t),
        )


@dataclass(frozen=True, slots=True)
class SwerveState:
    """Fused estimate: pose, field-relative velocity and acceleration."""

    pose: Pose2D = field(default_factory=Pose2D)
    velocity: FieldRelativeVelocity = field(default_factory=FieldRelativeVelocity)
    acceleration: FieldRelativeAcceleration = field(default_factory=FieldRelativeAcceleration)

    def interpolate(self, end: "SwerveState", t: float) -> "SwerveState":
        """Shortest-arc pose interpolation with linear velocity and acceleration."""
        v0, v1 = self.velocity.as_array(), end.velocity.as_array()
        a0, a1 = self.acceleration.as_array(), end.acceleration.as_array()
        t = min(max(t, 0.0), 1.0)
        velocity = v0 + (v1 - v0) * t
        acceleration = a0 + (a1 - a0) * t
        return SwerveState(
            pose=self.pose.interpolate(end.pose, t),
            velocity=FieldRelativeVelocity(*(float(v) for v in velocity)),
            acceleration=FieldRelativeAcceleration(*(float(a) for a in acceleration)),
        )

    @classmethod
    def from_timed_pose(cls, timed_pose: "TimedPose") -> "SwerveState":
        """Field-relative reference state for one trajectory sample.

        The path tangent gives the course; heading rate follows from the
        per-meter heading rate and the signed speed.
        """
        point = timed_pose.point
        speed = timed_pose.velocity
        course = point.course if point.course is not None else 0.0
        cos_c = math.cos(course)
        sin_c = math.sin(course)
        accel = timed_pose.acceleration
        centripetal = speed * speed * point.curvature
        return cls(
            pose=point.pose,
            velocity=FieldRelativeVelocity(
                speed * cos_c,
                speed * sin_c,
                speed * point.heading_rate,
            ),
            acceleration=FieldRelativeAcceleration(
                accel * cos_c - centripetal * sin_c,
                accel * sin_c + centripetal * cos_c,
                accel * point.heading_rate,
            ),
        )


@dataclass(frozen=True, slots=True)
class OdometryRecord:
    """One buffered sample: the fused state plus the raw inputs that produced it.

    Keeping the gyro reading and wheel positions lets a vision correction
    replay later odometry without re-reading sensors.
    """

    state: SwerveState
    gyro_angle: float
    wheel_positions: tuple[WheelPosition, ...]

    def interpolate(self, end: "OdometryRecord", t: float) -> "OdometryRecord":
        if t <= 0.0:
            return self
        if t >= 1.0:
            return end
        wheels = tuple(a.interpolate(b, t) for a, b in zip(self.wheel_positions, end.wheel_positions))
        return OdometryRecord(
            state=self.state.interpolate(end.state, t),
            gyro_angle=interpolate(self.gyro_angle, end.gyro_angle, t),
            wheel_positions=wheels,
        )
