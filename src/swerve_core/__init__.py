r"""swerve_core package.

State estimation and motion constraints for four-module swerve drivetrains.
"""

from .controller import HolonomicDriveController, PIDController
from .drive_loop import SwerveDriveLoop, TrajectoryFollower
from .kinodynamics import SwerveKinodynamics
from .localization.pose_estimator import PoseEstimator, PoseEstimatorConfig
from .swerve.setpoint_generator import SwerveSetpoint, SwerveSetpointGenerator
from .types import (
    FieldRelativeAcceleration,
    FieldRelativeVelocity,
    ModuleState,
    Pose2D,
    RobotRelativeVelocity,
    SwerveState,
    Twist2D,
    WheelPosition,
)

__all__ = [
    "FieldRelativeAcceleration",
    "FieldRelativeVelocity",
    "HolonomicDriveController",
    "ModuleState",
    "PIDController",
    "Pose2D",
    "PoseEstimator",
    "PoseEstimatorConfig",
    "RobotRelativeVelocity",
    "SwerveDriveLoop",
    "SwerveKinodynamics",
    "SwerveSetpoint",
    "SwerveSetpointGenerator",
    "SwerveState",
    "TrajectoryFollower",
    "Twist2D",
    "WheelPosition",
]
