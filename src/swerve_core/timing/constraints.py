"""Timing constraints: velocity ceilings and acceleration bands along a path.

Constraints are stateless policy objects sharing one capability interface.
They compose by intersection with :func:`intersect`, never by inheritance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Protocol

from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.types import Pose2D, RobotRelativeVelocity


@dataclass(frozen=True, slots=True)
class PathPoint:
    """One sample of a geometric path.

    Attributes
    ----------
    pose:
        Field pose; the heading is where the robot faces, independent of the
        direction of travel.
    course:
        Direction of travel in the field frame, or ``None`` where the path has
        no defined tangent (for example a pure spin).
    heading_rate:
        Heading change per meter travelled, rad/m.
    curvature:
        Path curvature in 1/m.
    """

    pose: Pose2D
    course: float | None = None
    heading_rate: float = 0.0
    curvature: float = 0.0


@dataclass(frozen=True, slots=True)
class MinMaxAcceleration:
    """Admissible longitudinal acceleration band in m/s^2."""

    min_acceleration: float = -math.inf
    max_acceleration: float = math.inf

    @property
    def valid(self) -> bool:
        return self.min_acceleration <= self.max_acceleration

    def intersect(self, other: "MinMaxAcceleration") -> "MinMaxAcceleration":
        return MinMaxAcceleration(
            max(self.min_acceleration, other.min_acceleration),
            min(self.max_acceleration, other.max_acceleration),
        )


NO_LIMITS = MinMaxAcceleration()


class TimingConstraint(Protocol):
    """Velocity ceiling and acceleration band at a path point."""

    def max_velocity(self, point: PathPoint) -> float: ...

    def min_max_acceleration(self, point: PathPoint, velocity: float) -> MinMaxAcceleration: ...


@dataclass(frozen=True, slots=True)
class ConstantConstraint:
    """Flat velocity and symmetric acceleration cap."""

    max_velocity_limit: float
    max_acceleration_limit: float

    def max_velocity(self, point: PathPoint) -> float:
        return self.max_velocity_limit

    def min_max_acceleration(self, point: PathPoint, velocity: float) -> MinMaxAcceleration:
        return MinMaxAcceleration(-self.max_acceleration_limit, self.max_acceleration_limit)


@dataclass(frozen=True, slots=True)
class SwerveDriveDynamicsConstraint:
    """Drivetrain-aware limits.

    The ceiling is the path speed at which the fastest module reaches the
    drive speed limit, given the heading rate per meter. The acceleration band
    is the back-EMF limited acceleration on top and the full braking limit
    below.
    """

    kinodynamics: SwerveKinodynamics

    def max_velocity(self, point: PathPoint) -> float:
        """Path speed at which the fastest module reaches the drive limit.

        Where the path has no course the robot only spins, so the ceiling
        comes from the heading rate alone, and a point with neither course
        nor heading rate is unconstrained (``math.inf``).
        """
        # Chassis velocity for one meter per second of path speed.
        if point.course is None:
            spatial = RobotRelativeVelocity(0.0, 0.0, point.heading_rate)
        else:
            course_local = point.course - point.pose.heading
            spatial = RobotRelativeVelocity(math.cos(course_local), math.sin(course_local), point.heading_rate)
        states = self.kinodynamics.to_module_states(spatial)
        ceiling = math.inf
        for state in states:
            if abs(state.speed) > 0.0:
                ceiling = min(ceiling, self.kinodynamics.max_drive_velocity / abs(state.speed))
        return ceiling

    def min_max_acceleration(self, point: PathPoint, velocity: float) -> MinMaxAcceleration:
        return MinMaxAcceleration(
            -self.kinodynamics.max_drive_deceleration,
            self.kinodynamics.min_accel(velocity),
        )


@dataclass(frozen=True, slots=True)
class CentripetalAccelerationConstraint:
    """Cap lateral acceleration ``v^2 * |curvature|`` on curved sections."""

    max_centripetal_acceleration: float

    def max_velocity(self, point: PathPoint) -> float:
        if abs(point.curvature) < 1e-12:
            return math.inf
        return math.sqrt(self.max_centripetal_acceleration / abs(point.curvature))

    def min_max_acceleration(self, point: PathPoint, velocity: float) -> MinMaxAcceleration:
        return NO_LIMITS


def intersect(constraints: Iterable[TimingConstraint], point: PathPoint, velocity: float) -> MinMaxAcceleration:
    """Common acceleration band of all constraints at ``velocity``."""
    band = NO_LIMITS
    for constraint in constraints:
        band = band.intersect(constraint.min_max_acceleration(point, velocity))
    return band


def max_velocity(constraints: Iterable[TimingConstraint], point: PathPoint) -> float:
    """Smallest velocity ceiling across all constraints."""
    return min((constraint.max_velocity(point) for constraint in constraints), default=math.inf)
