from __future__ import annotations

import math

import numpy as np
import pytest

from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.sim.camera import CameraConfig, SimulatedCamera
from swerve_core.sim.simulator import SimConfig, SimulatedSwerveDrive
from swerve_core.types import ModuleState, Pose2D, RobotRelativeVelocity


def drive_forward(drive: SimulatedSwerveDrive, speed: float = 1.0) -> None:
    drive.set_module_states([ModuleState(speed, 0.0)] * 4)


def test_straight_drive_tracks_command(deterministic_drive: SimulatedSwerveDrive) -> None:
    drive_forward(deterministic_drive)
    deterministic_drive.run(50)
    assert np.isclose(deterministic_drive.time, 1.0)
    assert np.allclose(deterministic_drive.true_pose.as_array(), [1.0, 0.0, 0.0], atol=1e-9)
    for position in deterministic_drive.wheel_positions():
        assert np.isclose(position.distance, 1.0)
        assert position.angle == 0.0


def test_rotation_moves_gyro(deterministic_drive: SimulatedSwerveDrive, kinodynamics: SwerveKinodynamics) -> None:
    deterministic_drive.set_module_states(kinodynamics.to_module_states(RobotRelativeVelocity(0.0, 0.0, 1.0)))
    deterministic_drive.run(25)
    assert np.isclose(deterministic_drive.gyro_angle(), 0.5)
    assert np.allclose(deterministic_drive.true_pose.as_array(), [0.0, 0.0, 0.5], atol=1e-9)


def test_gyro_zero_is_initial_heading(kinodynamics: SwerveKinodynamics) -> None:
    drive = SimulatedSwerveDrive(kinodynamics, SimConfig(gyro_drift=0.1), initial_pose=Pose2D(1.0, 2.0, 1.0))
    assert drive.gyro_angle() == 0.0
    drive.run(50)
    assert np.isclose(drive.gyro_angle(), 0.1)
    assert drive.true_pose == Pose2D(1.0, 2.0, 1.0)


def test_reset_is_reproducible(kinodynamics: SwerveKinodynamics) -> None:
    config = SimConfig(gyro_noise_std=0.01, wheel_noise_std=0.001)
    drive = SimulatedSwerveDrive(kinodynamics, config, seed=3)
    drive_forward(drive)
    drive.run(10)
    first = ([p.distance for p in drive.wheel_positions()], drive.gyro_angle())

    drive.reset(seed=3)
    drive_forward(drive)
    drive.run(10)
    second = ([p.distance for p in drive.wheel_positions()], drive.gyro_angle())
    assert first == second
    assert drive.time == pytest.approx(0.2)


def test_rejects_bad_commands(deterministic_drive: SimulatedSwerveDrive) -> None:
    with pytest.raises(ValueError):
        deterministic_drive.set_module_states([ModuleState(1.0, 0.0)] * 3)
    with pytest.raises(ValueError):
        deterministic_drive.set_module_states([ModuleState(math.nan, 0.0)] * 4)


def test_stop_keeps_module_angles(deterministic_drive: SimulatedSwerveDrive) -> None:
    deterministic_drive.set_module_states([ModuleState(1.0, 0.3)] * 4)
    deterministic_drive.stop()
    assert deterministic_drive.module_states() == [ModuleState(0.0, 0.3)] * 4


def test_pose_history_interpolates(deterministic_drive: SimulatedSwerveDrive) -> None:
    drive_forward(deterministic_drive)
    deterministic_drive.run(50)
    assert np.isclose(deterministic_drive.pose_at(0.51).x, 0.51)
    assert deterministic_drive.pose_at(-1.0) == Pose2D()
    assert deterministic_drive.pose_at(10.0) == deterministic_drive.true_pose


def test_camera_delivers_after_latency(deterministic_drive: SimulatedSwerveDrive) -> None:
    camera = SimulatedCamera(deterministic_drive, CameraConfig(period=0.1, latency=0.05, noise_std=(0.0, 0.0, 0.0)))
    drive_forward(deterministic_drive)
    deterministic_drive.run(7)
    assert camera.poll() == []
    deterministic_drive.step()
    frames = camera.poll()
    assert len(frames) == 1
    assert np.isclose(frames[0].timestamp, 0.1)
    assert np.isclose(frames[0].pose.x, 0.1)
    assert camera.poll() == []


def test_camera_dropout(deterministic_drive: SimulatedSwerveDrive) -> None:
    camera = SimulatedCamera(deterministic_drive, CameraConfig(dropout_prob=1.0), seed=0)
    deterministic_drive.run(100)
    assert camera.poll() == []
