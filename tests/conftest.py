from __future__ import annotations

import pytest

from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.localization.pose_estimator import PoseEstimator, PoseEstimatorConfig
from swerve_core.sim.simulator import SimConfig, SimulatedSwerveDrive
from swerve_core.types import Pose2D, WheelPosition


@pytest.fixture
def kinodynamics() -> SwerveKinodynamics:
    return SwerveKinodynamics.default()


@pytest.fixture
def zero_wheels() -> list[WheelPosition]:
    return [WheelPosition(0.0, 0.0) for _ in range(4)]


@pytest.fixture
def estimator(kinodynamics: SwerveKinodynamics, zero_wheels: list[WheelPosition]) -> PoseEstimator:
    """Estimator seeded at the origin at t=0."""
    return PoseEstimator(
        kinodynamics=kinodynamics,
        gyro_angle=0.0,
        wheel_positions=zero_wheels,
        initial_pose=Pose2D(0.0, 0.0, 0.0),
        timestamp=0.0,
        config=PoseEstimatorConfig(),
    )


@pytest.fixture
def deterministic_drive(kinodynamics: SwerveKinodynamics) -> SimulatedSwerveDrive:
    """Noise-free simulated drivetrain for loop regression tests."""
    return SimulatedSwerveDrive(kinodynamics=kinodynamics, config=SimConfig(dt=0.02), seed=7)
