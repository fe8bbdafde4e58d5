"""Time-parameterized trajectories and sampling."""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from swerve_core.math_utils import interpolate, interpolate_angle
from swerve_core.timing.constraints import PathPoint
from swerve_core.types import Pose2D

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TimedPose:
    """Path point with its arrival time, signed speed and acceleration.

    ``acceleration`` is the constant acceleration held from this sample to the
    next one.
    """

    point: PathPoint
    time: float
    velocity: float
    acceleration: float = 0.0

    @property
    def pose(self) -> Pose2D:
        return self.point.pose


def interpolate_point(start: PathPoint, end: PathPoint, t: float) -> PathPoint:
    """Blend two path points; translation linear, angles along the shortest arc."""
    if start.course is None or end.course is None:
        course = start.course if t < 0.5 else end.course
    else:
        course = interpolate_angle(start.course, end.course, t)
    pose = Pose2D(
        interpolate(start.pose.x, end.pose.x, t),
        interpolate(start.pose.y, end.pose.y, t),
        interpolate_angle(start.pose.heading, end.pose.heading, t),
    )
    return PathPoint(
        pose=pose,
        course=course,
        heading_rate=interpolate(start.heading_rate, end.heading_rate, t),
        curvature=interpolate(start.curvature, end.curvature, t),
    )


@dataclass(frozen=True, slots=True)
class Trajectory:
    """Immutable sequence of timed poses."""

    points: tuple[TimedPose, ...]
    _times: tuple[float, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError("Trajectory needs at least one point")
        object.__setattr__(self, "points", tuple(self.points))
        object.__setattr__(self, "_times", tuple(p.time for p in self.points))

    @classmethod
    def from_iterable(cls, points: Iterable[TimedPose]) -> "Trajectory":
        """Build from any iterable of timed poses, such as a generator."""
        return cls(points=tuple(points))

    def __len__(self) -> int:
        return len(self.points)

    @property
    def duration(self) -> float:
        return self.points[-1].time - self.points[0].time

    @property
    def start_time(self) -> float:
        return self.points[0].time

    @property
    def end_time(self) -> float:
        return self.points[-1].time

    def sample(self, time: float) -> TimedPose:
        """Sample at ``time`` assuming constant acceleration between points.

        Times outside the trajectory clamp to its ends.
        """
        if time <= self.start_time:
            return self.points[0]
        if time >= self.end_time:
            if time > self.end_time + 1e-9:
                logger.warning("Sampling trajectory at t=%.3f past its end t=%.3f", time, self.end_time)
            return self.points[-1]

        index = bisect.bisect_right(self._times, time) - 1
        start = self.points[index]
        end = self.points[index + 1]
        tau = time - start.time
        span = end.time - start.time
        velocity = start.velocity + start.acceleration * tau
        travelled = start.velocity * tau + 0.5 * start.acceleration * tau * tau
        length = start.pose.distance(end.pose)
        if length > 1e-12:
            fraction = travelled / length
        elif span > 0.0:
            fraction = tau / span
        else:
            fraction = 1.0
        return TimedPose(
            point=interpolate_point(start.point, end.point, fraction),
            time=time,
            velocity=velocity,
            acceleration=start.acceleration,
        )


@dataclass(slots=True)
class TrajectoryTimeIterator:
    """Walk a trajectory forward in time."""

    trajectory: Trajectory
    _time: float = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._time = self.trajectory.start_time

    @property
    def time(self) -> float:
        return self._time

    @property
    def is_done(self) -> bool:
        return self._time >= self.trajectory.end_time

    @property
    def current(self) -> TimedPose:
        return self.trajectory.sample(self._time)

    def advance(self, dt: float) -> TimedPose:
        """Move forward by ``dt`` (clamped to the end) and return the new sample."""
        self._time = min(self._time + dt, self.trajectory.end_time)
        return self.trajectory.sample(self._time)

    def preview(self, dt: float) -> TimedPose:
        """Sample ``dt`` ahead without moving."""
        return self.trajectory.sample(min(self._time + dt, self.trajectory.end_time))


def straight_line_path(start: Pose2D, end: Pose2D, num_points: int = 11) -> list[PathPoint]:
    """Evenly spaced points from ``start`` to ``end``, heading blended along the way."""
    if num_points < 2:
        raise ValueError(f"A path needs at least two points, got {num_points}")
    length = start.distance(end)
    course = math.atan2(end.y - start.y, end.x - start.x) if length > 1e-12 else None
    heading_change = end.heading - start.heading
    heading_rate = heading_change / length if length > 1e-12 else 0.0
    points: list[PathPoint] = []
    for i in range(num_points):
        t = i / (num_points - 1)
        pose = Pose2D(
            interpolate(start.x, end.x, t),
            interpolate(start.y, end.y, t),
            start.heading + heading_change * t,
        )
        points.append(PathPoint(pose=pose, course=course, heading_rate=heading_rate, curvature=0.0))
    return points


def path_length(points: Sequence[PathPoint]) -> float:
    return sum(a.pose.distance(b.pose) for a, b in zip(points[:-1], points[1:]))
