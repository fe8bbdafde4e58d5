r"""Run an end-to-end swerve demo: trajectory following with delayed vision."""

from __future__ import annotations

import logging

import numpy as np

from swerve_core.drive_loop import SwerveDriveLoop, TrajectoryFollower
from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.localization.pose_estimator import PoseEstimator, PoseEstimatorConfig
from swerve_core.sim.camera import CameraConfig, SimulatedCamera
from swerve_core.sim.simulator import SimConfig, SimulatedSwerveDrive
from swerve_core.timing.constraints import CentripetalAccelerationConstraint, SwerveDriveDynamicsConstraint
from swerve_core.timing.parameterization import time_parameterize
from swerve_core.trajectory import straight_line_path
from swerve_core.types import Pose2D


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    limits = SwerveKinodynamics.default()
    sim = SimulatedSwerveDrive(
        kinodynamics=limits,
        config=SimConfig(dt=0.02, gyro_noise_std=0.002, gyro_drift=0.01, wheel_noise_std=0.0005),
        seed=42,
    )
    camera = SimulatedCamera(drive=sim, config=CameraConfig(period=0.1, latency=0.06), seed=7)
    estimator = PoseEstimator(
        kinodynamics=limits,
        gyro_angle=sim.gyro_angle(),
        wheel_positions=sim.wheel_positions(),
        initial_pose=sim.true_pose,
        timestamp=sim.time,
        config=PoseEstimatorConfig(vision_std_devs=(0.3, 0.3, 0.3)),
    )
    loop = SwerveDriveLoop(kinodynamics=limits, drivetrain=sim, estimator=estimator, period=sim.config.dt)

    path = straight_line_path(Pose2D(0.0, 0.0, 0.0), Pose2D(4.0, 2.0, np.pi / 2.0), num_points=41)
    trajectory = time_parameterize(
        path,
        [SwerveDriveDynamicsConstraint(limits), CentripetalAccelerationConstraint(limits.max_capsize_acceleration)],
    )
    print(f"Trajectory: {len(trajectory)} points, {trajectory.duration:.2f} s")

    follower = TrajectoryFollower(loop=loop, trajectory=trajectory)
    loop.enable()
    errors: list[float] = []
    for _ in range(int((trajectory.duration + 2.0) / sim.config.dt)):
        follower.tick(sim.time)
        sim.step()
        for frame in camera.poll():
            loop.submit_vision(frame.pose, frame.timestamp)
        estimate = estimator.get_estimated_position().pose
        errors.append(estimate.distance(sim.true_pose))
        if follower.is_done and loop.controller.at_reference():
            break
    loop.tick(sim.time)
    loop.disable()

    final = sim.true_pose
    print(f"Final true pose: ({final.x:.3f}, {final.y:.3f}, {final.heading:.3f})")
    print(f"Mean estimate error: {np.mean(errors):.4f} m, max {np.max(errors):.4f} m")


if __name__ == "__main__":
    main()
