"""Math helpers used by kinematics, estimation, and setpoint generation."""

from __future__ import annotations

import math

import numpy as np


def wrap_angle(angle_rad: float) -> float:
    """Wrap angle to ``[-pi, pi)``."""
    return (angle_rad + np.pi) % (2.0 * np.pi) - np.pi


def angle_difference(target_rad: float, reference_rad: float) -> float:
    """Shortest signed rotation taking ``reference_rad`` onto ``target_rad``.

    Unlike :func:`wrap_angle` the result lies in ``(-pi, pi]``; an exact half
    turn is reported as ``+pi``.
    """
    diff = math.remainder(target_rad - reference_rad, 2.0 * math.pi)
    if diff == -math.pi:
        return math.pi
    return diff


def interpolate(start: float, end: float, t: float) -> float:
    """Linear interpolation, ``t`` is clamped to ``[0, 1]``."""
    t = min(max(t, 0.0), 1.0)
    return start + (end - start) * t


def interpolate_angle(start_rad: float, end_rad: float, t: float) -> float:
    """Shortest-arc interpolation between two continuous angles.

    The result stays continuous with ``start_rad`` (no wrapping is applied).
    """
    t = min(max(t, 0.0), 1.0)
    return start_rad + angle_difference(end_rad, start_rad) * t


def cross2(a: np.ndarray, b: np.ndarray) -> float:
    """z-component of the 2D cross product ``a x b``."""
    return float(a[0] * b[1] - a[1] * b[0])
