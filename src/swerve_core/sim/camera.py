"""Simulated camera producing delayed, noisy field poses."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from swerve_core.sim.simulator import SimulatedSwerveDrive
from swerve_core.types import Pose2D


@dataclass(frozen=True, slots=True)
class VisionMeasurement:
    """Field pose observed at ``timestamp`` (the capture time, not delivery time)."""

    pose: Pose2D
    timestamp: float


@dataclass(slots=True)
class CameraConfig:
    """Configuration for :class:`SimulatedCamera`.

    Attributes
    ----------
    period:
        Seconds between frames.
    latency:
        Delay between capture and delivery in seconds.
    noise_std:
        Standard deviation ``[x, y, heading]`` of pose noise.
    dropout_prob:
        Probability of losing a frame.
    """

    period: float = 0.1
    latency: float = 0.05
    noise_std: tuple[float, float, float] = (0.02, 0.02, 0.01)
    dropout_prob: float = 0.0


@dataclass(slots=True)
class SimulatedCamera:
    """Poll once per control tick; frames are delivered ``latency`` after capture."""

    drive: SimulatedSwerveDrive
    config: CameraConfig = field(default_factory=CameraConfig)
    seed: int | None = None

    _rng: np.random.Generator = field(init=False, repr=False)
    _next_capture: float = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.config.period <= 0.0:
            raise ValueError(f"Camera period must be positive, got {self.config.period}")
        self.reset(self.seed)

    def reset(self, seed: int | None = None) -> None:
        seed_to_use = self.seed if seed is None else seed
        self._rng = np.random.default_rng(seed_to_use)
        self._next_capture = self.config.period

    def poll(self) -> list[VisionMeasurement]:
        """Frames whose delivery time has passed since the last poll."""
        now = self.drive.time
        frames: list[VisionMeasurement] = []
        while self._next_capture + self.config.latency <= now + 1e-12:
            capture = self._next_capture
            self._next_capture += self.config.period
            if self._rng.random() < self.config.dropout_prob:
                continue
            truth = self.drive.pose_at(capture)
            noise = self._rng.normal(0.0, self.config.noise_std, size=3)
            pose = Pose2D(truth.x + noise[0], truth.y + noise[1], truth.heading + noise[2])
            frames.append(VisionMeasurement(pose=pose, timestamp=capture))
        return frames
