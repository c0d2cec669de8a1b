"""Sequential 2D trajectory estimation.

Each 2D scan is aligned against the static reference map, seeded with the
last accepted robot pose. Accepted poses form a timestamped trajectory
that the 3D frames are later interpolated onto.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .config import TrajectoryConfig
from .poses import Pose2D
from .rawlog import ScanFrame, TrajectoryLog
from .scan_matcher import ScanMatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RobotPose:
    """Accepted robot pose at a scan timestamp."""
    timestamp: float
    pose: Pose2D
    goodness: float  # 0-100


@dataclass
class TrajectoryEstimator:
    """Align scans against a reference map and keep the accepted poses.

    The initial guess for every alignment is the last accepted pose, so a
    rejected scan never moves it.
    """

    reference_map: np.ndarray
    matcher: ScanMatcher = field(default_factory=ScanMatcher)
    goodness_threshold: float = 80.0
    initial_guess: Pose2D = field(default_factory=Pose2D)
    log: Optional[TrajectoryLog] = None

    poses: List[RobotPose] = field(default_factory=list)
    goodness_history: List[float] = field(default_factory=list)
    rejected_count: int = 0

    @classmethod
    def from_config(
        cls,
        reference_map: np.ndarray,
        config: TrajectoryConfig,
        log: Optional[TrajectoryLog] = None
    ) -> 'TrajectoryEstimator':
        return cls(
            reference_map=reference_map,
            matcher=ScanMatcher.from_config(config),
            goodness_threshold=config.goodness_threshold,
            initial_guess=config.initial_pose,
            log=log,
        )

    @property
    def accepted_count(self) -> int:
        return len(self.poses)

    @property
    def mean_goodness(self) -> float:
        if not self.goodness_history:
            return 0.0
        return float(np.mean(self.goodness_history))

    def process(self, scan: ScanFrame) -> Optional[RobotPose]:
        """Estimate the robot pose for a scan.

        Returns:
            The accepted RobotPose, or None if the scan was rejected
        """
        result = self.matcher.align(scan.points, self.reference_map, self.initial_guess)
        self.goodness_history.append(result.goodness)

        if result.goodness <= self.goodness_threshold:
            self.rejected_count += 1
            logger.info(
                f"Scan {scan.index} at t={scan.timestamp:.3f} rejected: "
                f"goodness {result.goodness:.1f}% <= {self.goodness_threshold:.1f}%"
            )
            return None

        if self.poses and scan.timestamp <= self.poses[-1].timestamp:
            self.rejected_count += 1
            logger.warning(
                f"Scan {scan.index} at t={scan.timestamp:.3f} is not newer than the last "
                f"accepted pose (t={self.poses[-1].timestamp:.3f}); rejected"
            )
            return None

        robot_pose = RobotPose(timestamp=scan.timestamp, pose=result.pose, goodness=result.goodness)
        self.poses.append(robot_pose)
        self.initial_guess = result.pose
        if self.log is not None:
            self.log.append(result.pose)

        logger.debug(
            f"Scan {scan.index} accepted: ({result.pose.x:.3f}, {result.pose.y:.3f}, "
            f"{result.pose.theta:.3f}) goodness {result.goodness:.1f}%"
        )
        return robot_pose
