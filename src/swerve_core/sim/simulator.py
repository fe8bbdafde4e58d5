"""Simulated swerve drivetrain for deterministic estimator and loop tests.

The simulator provides:
- ideal module tracking of the commanded states
- cumulative wheel distances with optional noise
- a continuous gyro with noise and constant drift
- a bounded history of true poses for simulated vision
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.types import ModuleState, Pose2D, Twist2D, WheelPosition


@dataclass(slots=True)
class SimConfig:
    """Configuration for :class:`SimulatedSwerveDrive`.

    Attributes
    ----------
    dt:
        Fixed simulation timestep in seconds.
    gyro_noise_std:
        Standard deviation of white gyro noise in radians.
    gyro_drift:
        Constant gyro drift in rad/s.
    wheel_noise_std:
        Standard deviation of per-step wheel distance noise in meters.
    history_seconds:
        How much true-pose history is retained for delayed measurements.
    """

    dt: float = 0.02
    gyro_noise_std: float = 0.0
    gyro_drift: float = 0.0
    wheel_noise_std: float = 0.0
    history_seconds: float = 2.0


@dataclass(slots=True)
class SimulatedSwerveDrive:
    """Generate odometry and ground truth for a commanded swerve drivetrain."""

    kinodynamics: SwerveKinodynamics
    config: SimConfig = field(default_factory=SimConfig)
    seed: int | None = None
    initial_pose: Pose2D = field(default_factory=Pose2D)

    _rng: np.random.Generator = field(init=False, repr=False)
    _time_s: float = field(init=False, repr=False)
    _true_pose: Pose2D = field(init=False, repr=False)
    _commanded: tuple[ModuleState, ...] = field(init=False, repr=False)
    _distances: np.ndarray = field(init=False, repr=False)
    _gyro_noise: float = field(init=False, repr=False)
    _history: deque = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.config.dt <= 0.0:
            raise ValueError(f"Simulation timestep must be positive, got {self.config.dt}")
        self.reset(self.seed)

    def reset(self, seed: int | None = None) -> None:
        """Reset simulator state and random generator.

        Parameters
        ----------
        seed:
            If provided, use this seed. Otherwise the constructor seed is used.
        """
        seed_to_use = self.seed if seed is None else seed
        self._rng = np.random.default_rng(seed_to_use)
        self._time_s = 0.0
        self._true_pose = self.initial_pose
        self._commanded = tuple(ModuleState() for _ in range(self.kinodynamics.num_modules))
        self._distances = np.zeros(self.kinodynamics.num_modules, dtype=float)
        self._gyro_noise = 0.0
        maxlen = int(self.config.history_seconds / self.config.dt) + 2
        self._history = deque([(0.0, self._true_pose)], maxlen=maxlen)

    @property
    def time(self) -> float:
        return self._time_s

    @property
    def true_pose(self) -> Pose2D:
        return self._true_pose

    def set_module_states(self, states: Sequence[ModuleState]) -> None:
        """Command the modules; the next :meth:`step` tracks them exactly."""
        states = tuple(states)
        if len(states) != self.kinodynamics.num_modules:
            raise ValueError(f"Expected {self.kinodynamics.num_modules} module states, got {len(states)}")
        for state in states:
            if not np.isfinite(state.speed) or not np.isfinite(state.angle):
                raise ValueError(f"Module state must be finite, got {state}")
        self._commanded = states

    def stop(self) -> None:
        self._commanded = tuple(ModuleState(0.0, s.angle) for s in self._commanded)

    def module_states(self) -> list[ModuleState]:
        return list(self._commanded)

    def gyro_angle(self) -> float:
        """Continuous gyro reading: true heading plus drift and noise.

        The initial heading is the gyro zero.
        """
        drift = self.config.gyro_drift * self._time_s
        return self._true_pose.heading - self.initial_pose.heading + drift + self._gyro_noise

    def wheel_positions(self) -> list[WheelPosition]:
        return [WheelPosition(float(d), s.angle) for d, s in zip(self._distances, self._commanded)]

    def step(self) -> Pose2D:
        """Advance one timestep and return the true pose."""
        dt = self.config.dt
        velocity = self.kinodynamics.to_chassis_velocity(self._commanded)
        twist = Twist2D(velocity.vx * dt, velocity.vy * dt, velocity.omega * dt)
        self._true_pose = self._true_pose.exp(twist)

        travelled = np.array([s.speed * dt for s in self._commanded], dtype=float)
        if self.config.wheel_noise_std > 0.0:
            travelled += self._rng.normal(0.0, self.config.wheel_noise_std, size=travelled.size)
        self._distances += travelled
        if self.config.gyro_noise_std > 0.0:
            self._gyro_noise = float(self._rng.normal(0.0, self.config.gyro_noise_std))

        self._time_s += dt
        self._history.append((self._time_s, self._true_pose))
        return self._true_pose

    def run(self, steps: int) -> list[Pose2D]:
        """Hold the current command for ``steps`` timesteps."""
        return [self.step() for _ in range(steps)]

    def pose_at(self, time_s: float) -> Pose2D:
        """True pose at ``time_s`` from the retained history, clamped to its range."""
        history = self._history
        if time_s <= history[0][0]:
            return history[0][1]
        for (t0, p0), (t1, p1) in zip(history, list(history)[1:]):
            if t0 <= time_s <= t1:
                return p0.interpolate(p1, (time_s - t0) / (t1 - t0))
        return history[-1][1]
