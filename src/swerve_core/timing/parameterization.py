r"""Time parameterization of a geometric path against timing constraints.

Given path points :math:`x_i` separated by arc length :math:`\Delta s_i`, the
velocity profile is the pointwise minimum of

- the constraint ceiling :math:`\bar v_i`,
- a forward sweep :math:`v_i = \sqrt{v_{i-1}^2 + 2 a^{max}_{i-1} \Delta s}`,
- a backward sweep :math:`v_i = \sqrt{v_{i+1}^2 - 2 a^{min}_{i+1} \Delta s}`,

so the profile is reachable from both ends. Segment times follow from constant
acceleration, :math:`\Delta t = 2 \Delta s / (v_i + v_{i+1})`.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from swerve_core.timing.constraints import (
    MinMaxAcceleration,
    PathPoint,
    TimingConstraint,
    intersect,
    max_velocity,
)
from swerve_core.trajectory import TimedPose, Trajectory

logger = logging.getLogger(__name__)


def _band(
    constraints: Sequence[TimingConstraint],
    point: PathPoint,
    velocity: float,
    index: int,
) -> MinMaxAcceleration:
    band = intersect(constraints, point, velocity)
    if not band.valid:
        logger.warning(
            "Infeasible acceleration band [%.3f, %.3f] at point %d",
            band.min_acceleration,
            band.max_acceleration,
            index,
        )
        raise ValueError(f"Constraints admit no acceleration at path point {index}")
    return band


def time_parameterize(
    path: Sequence[PathPoint],
    constraints: Sequence[TimingConstraint],
    start_velocity: float = 0.0,
    end_velocity: float = 0.0,
) -> Trajectory:
    """Build the fastest trajectory along ``path`` that satisfies every constraint.

    Parameters
    ----------
    path:
        Geometric path samples, in order.
    constraints:
        Constraints applied at every sample.
    start_velocity, end_velocity:
        Boundary speeds in m/s, reduced to the ceilings if necessary.

    Returns
    -------
    Trajectory
        Timed poses starting at ``t = 0``.
    """
    if len(path) < 2:
        raise ValueError(f"Need at least two path points, got {len(path)}")

    distances = [a.pose.distance(b.pose) for a, b in zip(path[:-1], path[1:])]
    ceilings = [max_velocity(constraints, point) for point in path]

    velocities = [0.0] * len(path)
    velocities[0] = min(start_velocity, ceilings[0])
    for i in range(1, len(path)):
        band = _band(constraints, path[i - 1], velocities[i - 1], i - 1)
        reachable = velocities[i - 1] ** 2 + 2.0 * band.max_acceleration * distances[i - 1]
        velocities[i] = min(ceilings[i], math.sqrt(max(reachable, 0.0)))

    velocities[-1] = min(velocities[-1], end_velocity)
    for i in range(len(path) - 2, -1, -1):
        band = _band(constraints, path[i + 1], velocities[i + 1], i + 1)
        reachable = velocities[i + 1] ** 2 - 2.0 * band.min_acceleration * distances[i]
        velocities[i] = min(velocities[i], math.sqrt(max(reachable, 0.0)))

    timed: list[TimedPose] = []
    time = 0.0
    for i, point in enumerate(path):
        acceleration = 0.0
        if i < len(path) - 1:
            ds = distances[i]
            v0, v1 = velocities[i], velocities[i + 1]
            if ds > 0.0:
                acceleration = (v1 * v1 - v0 * v0) / (2.0 * ds)
        timed.append(TimedPose(point=point, time=time, velocity=velocities[i], acceleration=acceleration))
        if i < len(path) - 1:
            ds = distances[i]
            speed_sum = velocities[i] + velocities[i + 1]
            if ds > 0.0 and speed_sum <= 0.0:
                raise ValueError(f"Zero velocity on segment {i} makes the path untraversable")
            time += 2.0 * ds / speed_sum if ds > 0.0 else 0.0

    logger.debug("Time-parameterized %d points, duration %.3f s", len(timed), time)
    return Trajectory.from_iterable(timed)
