"""Temporal interpolation of 3D frames onto the 2D trajectory.

3D frames are buffered until the next accepted robot pose arrives. They
are then placed between the two most recent accepted poses according to
their timestamp, and the camera extrinsics are composed on top.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .poses import Pose2D, Pose3D
from .rawlog import SensorFrame
from .trajectory import RobotPose

logger = logging.getLogger(__name__)


def interpolation_factor(t: float, t1: float, t2: float) -> float:
    """Position of t within [t1, t2] (0 at t1, 1 at t2)."""
    return (t - t1) / (t2 - t1)


def interpolate_robot_pose(p1: Pose2D, p2: Pose2D, factor: float) -> Pose2D:
    """Robot pose a fraction of the way from p1 to p2.

    The relative motion p1^-1 * p2 is scaled component-wise and composed
    onto p1, so the position moves linearly from p1 to p2.
    """
    delta = p1.inverse().compose(p2)
    return p1.compose(delta.scaled(factor))


def interpolate_pose(p1: RobotPose, p2: RobotPose, t: float, local_pose: Pose3D) -> Pose3D:
    """World pose of a sensor captured at time t between two robot poses."""
    factor = interpolation_factor(t, p1.timestamp, p2.timestamp)
    robot = interpolate_robot_pose(p1.pose, p2.pose, factor)
    return Pose3D.from_pose2d(robot).compose(local_pose)


@dataclass
class TemporalPoseInterpolator:
    """Buffer 3D frames and assign them a world pose once bracketed.

    Frames whose timestamp falls outside the bracketing interval are not
    extrapolated: they are discarded and counted.
    """

    poses: List[RobotPose] = field(default_factory=list)
    pending: List[SensorFrame] = field(default_factory=list)

    located_count: int = 0
    dropped_count: int = 0  # dropped with a rejected scan interval
    unbracketed_count: int = 0  # timestamp outside [t1, t2]

    def buffer(self, frame: SensorFrame) -> None:
        self.pending.append(frame)

    def drop_pending(self) -> int:
        """Discard the frames buffered since the last accepted pose."""
        n = len(self.pending)
        if n:
            logger.info(f"Dropping {n} buffered 3D frames of a rejected scan interval")
        self.dropped_count += n
        self.pending.clear()
        return n

    def add_pose(self, robot_pose: RobotPose) -> List[SensorFrame]:
        """Register an accepted robot pose and locate the pending frames.

        Returns:
            Frames that received a world pose, in buffering order
        """
        self.poses.append(robot_pose)
        if len(self.poses) < 2 or not self.pending:
            return []

        p1, p2 = self.poses[-2], self.poses[-1]
        located = []
        for frame in self.pending:
            factor = interpolation_factor(frame.timestamp, p1.timestamp, p2.timestamp)
            if not 0.0 <= factor <= 1.0:
                self.unbracketed_count += 1
                logger.warning(
                    f"Frame {frame.index} ({frame.sensor_id}) at t={frame.timestamp:.3f} is "
                    f"outside [{p1.timestamp:.3f}, {p2.timestamp:.3f}]; discarded"
                )
                continue
            frame.pose = interpolate_pose(p1, p2, frame.timestamp, frame.local_pose)
            located.append(frame)

        self.pending.clear()
        self.located_count += len(located)
        return located

    def flush(self) -> int:
        """Drop frames still waiting for trajectory context at the end of a run."""
        n = len(self.pending)
        if n:
            logger.debug(f"{n} 3D frames left without a bracketing pose")
        self.pending.clear()
        return n
