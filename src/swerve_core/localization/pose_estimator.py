r"""Odometry and vision fusion for a swerve drivetrain.

Odometry
--------
Each :meth:`PoseEstimator.update` integrates the wheel motion since the latest
earlier buffered record. The wheel deltas give a robot-frame twist through the
forward kinematics; its rotation is replaced by the gyro delta, since wheel slip
corrupts rotation more than translation:

.. math::
   \theta_k = \theta^{gyro}_k + \theta_{offset}, \quad
   p_k = \operatorname{exp}(p_{k-1}, [dx, dy, \theta_k - \theta_{k-1}])

Vision
------
A vision pose :math:`z` at time :math:`t` is blended into the buffered pose
:math:`\hat p_t` with a per-axis steady-state gain

.. math::
   k = \frac{q}{q + \sqrt{q r}}, \quad
   \hat p_t' = \operatorname{exp}(\hat p_t, k \odot \operatorname{log}(\hat p_t, z))

where :math:`q` and :math:`r` are the state and vision variances. Every
odometry record after :math:`t` is then replayed from its stored gyro and wheel
readings so the correction carries forward.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.localization.buffer import TimeInterpolatableBuffer
from swerve_core.types import (
    FieldRelativeAcceleration,
    FieldRelativeVelocity,
    OdometryRecord,
    Pose2D,
    SwerveState,
    Twist2D,
    WheelPosition,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PoseEstimatorConfig:
    """Tunable estimator parameters.

    Parameters
    ----------
    horizon:
        Seconds of history kept for interpolation and replay.
    velocity_dt:
        Minimum gap in seconds between the two records used for acceleration.
    estimate_acceleration:
        If ``False`` acceleration is reported as zero and only the latest
        prior record is used.
    state_std_devs:
        Standard deviations ``[x, y, heading]`` of the odometry state.
    vision_std_devs:
        Standard deviations ``[x, y, heading]`` of vision measurements.
    """

    horizon: float = 1.5
    velocity_dt: float = 0.02
    estimate_acceleration: bool = False
    state_std_devs: tuple[float, float, float] = (0.1, 0.1, 0.1)
    vision_std_devs: tuple[float, float, float] = (0.9, 0.9, 0.9)


def steady_state_gain(state_std_devs: Sequence[float], vision_std_devs: Sequence[float]) -> np.ndarray:
    """Closed-form per-axis Kalman gain for a directly observed random walk."""
    q = np.square(np.asarray(state_std_devs, dtype=float))
    r = np.square(np.asarray(vision_std_devs, dtype=float))
    if q.shape != (3,) or r.shape != (3,):
        raise ValueError("Standard deviations must have three entries: x, y, heading")
    gain = np.zeros(3, dtype=float)
    for axis in range(3):
        if q[axis] == 0.0:
            continue
        gain[axis] = q[axis] / (q[axis] + math.sqrt(q[axis] * r[axis]))
    return gain


@dataclass(slots=True)
class PoseEstimator:
    """Buffered pose/velocity/acceleration estimator.

    ``update`` is called from the control loop. ``add_vision_measurement`` may
    be called from any thread; a reentrant lock serializes all buffer access.

    Parameters
    ----------
    kinodynamics:
        Drivetrain description supplying the kinematics and module count.
    gyro_angle:
        Continuous gyro reading at ``timestamp``.
    wheel_positions:
        Module positions at ``timestamp``.
    initial_pose:
        Field pose at ``timestamp``.
    timestamp:
        Time of the seed record in seconds.
    config:
        Estimator parameters.
    """

    kinodynamics: SwerveKinodynamics
    gyro_angle: float
    wheel_positions: Sequence[WheelPosition]
    initial_pose: Pose2D = field(default_factory=Pose2D)
    timestamp: float = 0.0
    config: PoseEstimatorConfig = field(default_factory=PoseEstimatorConfig)

    _buffer: TimeInterpolatableBuffer[OdometryRecord] = field(init=False, repr=False)
    _gyro_offset: float = field(init=False, repr=False)
    _vision_gain: np.ndarray = field(init=False, repr=False)
    _lock: threading.RLock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lock = threading.RLock()
        wheels = self._check_length(self.wheel_positions)
        self._buffer = TimeInterpolatableBuffer(
            horizon=self.config.horizon,
            initial_time=self.timestamp,
            initial_value=OdometryRecord(SwerveState(pose=self.initial_pose), float(self.gyro_angle), wheels),
        )
        self._gyro_offset = self.initial_pose.heading - float(self.gyro_angle)
        self.set_std_devs(self.config.state_std_devs, self.config.vision_std_devs)

    @property
    def gyro_offset(self) -> float:
        return self._gyro_offset

    @property
    def vision_gain(self) -> np.ndarray:
        return self._vision_gain.copy()

    def set_std_devs(self, state_std_devs: Sequence[float], vision_std_devs: Sequence[float]) -> None:
        """Recompute the vision gain from new noise levels."""
        gain = steady_state_gain(state_std_devs, vision_std_devs)
        with self._lock:
            self._vision_gain = gain

    def get_estimated_position(self) -> SwerveState:
        """Latest fused state."""
        with self._lock:
            return self._buffer.last_entry()[1].state

    def get_sampled_rotation(self, timestamp: float) -> float:
        """Estimated heading at ``timestamp``, clamped to the recorded range."""
        with self._lock:
            return self._buffer.get(timestamp).state.pose.heading

    def buffered_timestamps(self) -> list[float]:
        with self._lock:
            return [key for key, _ in self._buffer.tail(self._buffer.first_key(), inclusive=True)]

    def reset_position(
        self,
        gyro_angle: float,
        wheel_positions: Sequence[WheelPosition],
        pose: Pose2D,
        timestamp: float,
    ) -> None:
        """Discard history and restart from ``pose`` at ``timestamp``."""
        wheels = self._check_length(wheel_positions)
        with self._lock:
            self._gyro_offset = pose.heading - float(gyro_angle)
            self._buffer.reset(timestamp, OdometryRecord(SwerveState(pose=pose), float(gyro_angle), wheels))
        logger.info("Pose estimator reset to (%.3f, %.3f, %.3f) at t=%.3f", pose.x, pose.y, pose.heading, timestamp)

    def update(
        self,
        timestamp: float,
        gyro_angle: float,
        wheel_positions: Sequence[WheelPosition],
    ) -> SwerveState:
        """Integrate one odometry sample and return the state at ``timestamp``.

        Raises
        ------
        ValueError
            If the number of wheel positions differs from the module count.
        """
        wheels = self._check_length(wheel_positions)
        with self._lock:
            pair = self._buffer.consistent_pair(timestamp, self.config.velocity_dt)
            if not pair:
                # Nothing earlier to integrate from; the buffer always has a ceiling here.
                entry = self._buffer.ceiling_entry(timestamp)
                return entry[1].state

            basis_time, basis = pair[0]
            t1 = timestamp - basis_time
            previous = basis.state.pose

            twist = self.kinodynamics.kinematics.to_twist(basis.wheel_positions, wheels)
            heading = float(gyro_angle) + self._gyro_offset
            integrated = previous.exp(
                Twist2D(dx=twist.dx, dy=twist.dy, dtheta=heading - previous.heading)
            )
            new_pose = Pose2D(integrated.x, integrated.y, heading)

            velocity = FieldRelativeVelocity(
                (new_pose.x - previous.x) / t1,
                (new_pose.y - previous.y) / t1,
                (new_pose.heading - previous.heading) / t1,
            )
            acceleration = FieldRelativeAcceleration()
            if self.config.estimate_acceleration and len(pair) > 1:
                earlier_time, earlier = pair[1]
                t0 = basis_time - earlier_time
                earlier_pose = earlier.state.pose
                prior = np.array(
                    [
                        previous.x - earlier_pose.x,
                        previous.y - earlier_pose.y,
                        previous.heading - earlier_pose.heading,
                    ]
                ) / t0
                accel = (velocity.as_array() - prior) / (0.5 * (t0 + t1))
                acceleration = FieldRelativeAcceleration(*(float(a) for a in accel))

            state = SwerveState(new_pose, velocity, acceleration)
            self._buffer.put(timestamp, OdometryRecord(state, float(gyro_angle), wheels))
        logger.debug("Odometry update t=%.3f dt=%.4f pose=(%.3f, %.3f, %.3f)", timestamp, t1, *new_pose.as_array())
        return state

    def add_vision_measurement(
        self,
        pose: Pose2D,
        timestamp: float,
        state_std_devs: Sequence[float] | None = None,
        vision_std_devs: Sequence[float] | None = None,
    ) -> None:
        """Blend a vision pose measured at ``timestamp`` into the history.

        When both standard deviation vectors are given the gain is updated
        first. Measurements older than the buffer horizon are dropped.
        """
        if state_std_devs is not None and vision_std_devs is not None:
            self.set_std_devs(state_std_devs, vision_std_devs)
        elif state_std_devs is not None or vision_std_devs is not None:
            raise ValueError("Pass both state and vision standard deviations, or neither")

        with self._lock:
            latest = self._buffer.last_key()
            if latest - self.config.horizon > timestamp:
                logger.warning(
                    "Dropping vision measurement at t=%.3f, older than buffer horizon (latest t=%.3f)",
                    timestamp,
                    latest,
                )
                return
            timestamp = min(timestamp, latest)

            sample = self._buffer.get(timestamp)
            twist = sample.state.pose.log(pose).scaled(self._vision_gain)
            corrected = sample.state.pose.exp(twist)
            self._gyro_offset = corrected.heading - sample.gyro_angle
            logger.debug("Gyro offset after vision correction: %.5f rad", self._gyro_offset)

            self._buffer.put(
                timestamp,
                OdometryRecord(
                    SwerveState(corrected, sample.state.velocity, sample.state.acceleration),
                    sample.gyro_angle,
                    sample.wheel_positions,
                ),
            )
            replay = self._buffer.tail(timestamp, inclusive=False)
            for entry_time, record in replay:
                self.update(entry_time, record.gyro_angle, record.wheel_positions)
        logger.debug("Replayed %d odometry records after vision at t=%.3f", len(replay), timestamp)

    def _check_length(self, wheel_positions: Sequence[WheelPosition]) -> tuple[WheelPosition, ...]:
        wheels = tuple(wheel_positions)
        if len(wheels) != self.kinodynamics.num_modules:
            raise ValueError(f"Wrong module count: expected {self.kinodynamics.num_modules}, got {len(wheels)}")
        return wheels
