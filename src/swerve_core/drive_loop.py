"""Explicit fixed-order control loop for the drivetrain.

One call to :meth:`SwerveDriveLoop.tick` runs, in order:

1. apply queued vision measurements to the estimator,
2. read the fused estimate,
3. compute the desired field-relative velocity (controller or direct request),
4. convert it to robot-relative using the estimated heading,
5. project it onto a feasible setpoint,
6. validate and actuate the module states,
7. read odometry and update the estimator.

Only :meth:`SwerveDriveLoop.submit_vision` may be called from other threads.
"""

from __future__ import annotations

import logging
import math
import queue
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from swerve_core.controller import HolonomicDriveController
from swerve_core.kinodynamics import SwerveKinodynamics
from swerve_core.localization.pose_estimator import PoseEstimator
from swerve_core.swerve.setpoint_generator import SwerveSetpoint, SwerveSetpointGenerator
from swerve_core.trajectory import Trajectory, TrajectoryTimeIterator
from swerve_core.types import FieldRelativeVelocity, ModuleState, Pose2D, SwerveState, WheelPosition

logger = logging.getLogger(__name__)


class Drivetrain(Protocol):
    """Actuation and sensing collaborator."""

    def set_module_states(self, states: Sequence[ModuleState]) -> None: ...

    def stop(self) -> None: ...

    def module_states(self) -> list[ModuleState]: ...

    def gyro_angle(self) -> float: ...

    def wheel_positions(self) -> list[WheelPosition]: ...


def check_module_states(states: Sequence[ModuleState]) -> tuple[ModuleState, ...]:
    """Reject module commands with a NaN or infinite speed or angle."""
    states = tuple(states)
    for index, state in enumerate(states):
        if not math.isfinite(state.speed) or not math.isfinite(state.angle):
            raise ValueError(f"Module {index} command is not finite: {state}")
    return states


@dataclass(slots=True)
class SwerveDriveLoop:
    """Synchronous per-tick driver wiring estimator, controller and generator.

    Parameters
    ----------
    kinodynamics:
        Drivetrain limits.
    drivetrain:
        Hardware or simulated modules.
    estimator:
        Pose estimator owned by this loop.
    controller:
        Feedback controller used when a reference state is given.
    period:
        Tick duration in seconds.
    """

    kinodynamics: SwerveKinodynamics
    drivetrain: Drivetrain
    estimator: PoseEstimator
    controller: HolonomicDriveController = field(default_factory=HolonomicDriveController)
    period: float = 0.02

    generator: SwerveSetpointGenerator = field(init=False)
    _vision: queue.SimpleQueue = field(init=False, repr=False)
    _enabled: bool = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.period <= 0.0:
            raise ValueError(f"Loop period must be positive, got {self.period}")
        self.generator = SwerveSetpointGenerator(self.kinodynamics)
        self._vision = queue.SimpleQueue()
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        """Start actuating, seeded from the measured module states."""
        self.generator.reseed(self.drivetrain.module_states())
        self.controller.reset()
        self._enabled = True
        logger.info("Drive loop enabled")

    def disable(self) -> None:
        self.drivetrain.stop()
        self._enabled = False
        logger.info("Drive loop disabled")

    def submit_vision(self, pose: Pose2D, timestamp: float) -> None:
        """Queue a vision measurement; safe from any thread."""
        self._vision.put((pose, timestamp))

    def tick(
        self,
        now: float,
        reference: SwerveState | None = None,
        velocity: FieldRelativeVelocity | None = None,
    ) -> SwerveSetpoint | None:
        """Run one control period.

        Parameters
        ----------
        now:
            Timestamp of this tick, on the same clock as odometry and vision.
        reference:
            Trajectory sample to track. Takes precedence over ``velocity``.
        velocity:
            Direct field-relative request, used when no reference is given.
            Zero when both are omitted.

        Returns
        -------
        SwerveSetpoint | None
            The setpoint sent to the modules, or ``None`` while disabled.
        """
        self._drain_vision()
        estimate = self.estimator.get_estimated_position()

        setpoint: SwerveSetpoint | None = None
        if self._enabled:
            if reference is not None:
                desired = self.controller.calculate(estimate.pose, reference)
            else:
                desired = velocity if velocity is not None else FieldRelativeVelocity()
            robot_relative = desired.to_robot_relative(estimate.pose.heading)
            setpoint = self.generator.step(robot_relative, self.period)
            self.drivetrain.set_module_states(check_module_states(setpoint.module_states))

        self._update_odometry(now)
        return setpoint

    def steer_at_rest(self, now: float, angles: Sequence[float]) -> bool:
        """Turn the stationary modules toward ``angles`` at the steering limit.

        Runs the same tick order with zero velocity. Returns ``True`` once
        every module is aligned, counting a reversed wheel as aligned.
        """
        self._drain_vision()
        if len(angles) != self.kinodynamics.num_modules:
            raise ValueError(f"Expected {self.kinodynamics.num_modules} angles, got {len(angles)}")

        max_turn = self.kinodynamics.max_steering_velocity * self.period
        aligned = True
        states: list[ModuleState] = []
        for current, target in zip(self.generator.previous.module_states, angles):
            turn = ModuleState(0.0, target).optimize(current.angle).angle - current.angle
            if abs(turn) > max_turn:
                aligned = False
                turn = math.copysign(max_turn, turn)
            states.append(ModuleState(0.0, current.angle + turn))

        if self._enabled:
            self.drivetrain.set_module_states(check_module_states(states))
            self.generator.reseed(states)
        self._update_odometry(now)
        return aligned

    def _drain_vision(self) -> None:
        count = 0
        while True:
            try:
                pose, timestamp = self._vision.get_nowait()
            except queue.Empty:
                break
            self.estimator.add_vision_measurement(pose, timestamp)
            count += 1
        if count:
            logger.debug("Applied %d vision measurements", count)

    def _update_odometry(self, now: float) -> None:
        self.estimator.update(now, self.drivetrain.gyro_angle(), self.drivetrain.wheel_positions())


@dataclass(slots=True)
class TrajectoryFollower:
    """Follow a trajectory with the loop, aligning the wheels first.

    Until the modules point along the first motion of the trajectory, time
    does not advance and the robot steers in place.
    """

    loop: SwerveDriveLoop
    trajectory: Trajectory
    _iterator: TrajectoryTimeIterator = field(init=False, repr=False)
    _aligned: bool = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._iterator = TrajectoryTimeIterator(self.trajectory)
        self._aligned = False

    @property
    def aligned(self) -> bool:
        return self._aligned

    @property
    def is_done(self) -> bool:
        return self._aligned and self._iterator.is_done

    def initial_module_angles(self, heading: float) -> list[float] | None:
        """Module angles for the first motion along the trajectory, or ``None`` if it never moves."""
        sample = self._iterator.preview(self.loop.period)
        start = SwerveState.from_timed_pose(sample)
        if start.velocity.angle() is None and start.velocity.theta == 0.0:
            return None
        robot_relative = start.velocity.to_robot_relative(heading)
        states = self.loop.kinodynamics.to_module_states(robot_relative, self.loop.generator.previous.angles)
        return [state.angle for state in states]

    def tick(self, now: float) -> SwerveSetpoint | None:
        if not self._aligned:
            heading = self.loop.estimator.get_estimated_position().pose.heading
            angles = self.initial_module_angles(heading)
            if angles is not None:
                self._aligned = self.loop.steer_at_rest(now, angles)
                if self._aligned:
                    logger.debug("Modules aligned at t=%.3f, starting trajectory", now)
                return None
            self._aligned = True
        sample = self._iterator.advance(self.loop.period)
        return self.loop.tick(now, reference=SwerveState.from_timed_pose(sample))
