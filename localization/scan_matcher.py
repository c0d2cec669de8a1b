"""Point-set alignment backends.

This module wraps Open3D registration behind one capability::

    align(source, target, initial_guess) -> RegistrationResult

Backends:
1. ScanMatcher: 2D scan against a 2D map (point-to-point ICP on z=0)
2. IcpAligner: classic point-to-point ICP on 3D clouds
3. GicpAligner: generalized ICP on 3D clouds

Quality is reported on a 0-100 scale (100 x Open3D fitness, the share of
source points with a correspondence within the distance threshold).
"""
from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Iterator, Protocol

import numpy as np
import open3d as o3d

from .config import RefineMethod, RegistrationConfig, TrajectoryConfig
from .poses import Pose2D, Pose3D

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    """Result of a 3D registration call."""
    transform: Pose3D  # Transform from source to target frame
    quality: float  # 0-100
    iterations: int = 0  # Open3D does not report it
    rmse: float = 0.0
    correspondence_count: int = 0


@dataclass
class ScanMatchResult:
    """Result of a 2D scan-to-map registration."""
    pose: Pose2D  # Scan pose in the map frame
    goodness: float  # 0-100
    iterations: int = 0
    rmse: float = 0.0
    correspondence_count: int = 0


class Aligner(Protocol):
    """Pairwise 3D alignment capability."""

    def align(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_guess: Pose3D | None = None
    ) -> RegistrationResult:
        ...


def points_to_pcd(points: np.ndarray) -> 'o3d.geometry.PointCloud':
    """Convert 2D or 3D points to an Open3D point cloud (2D gets z=0)."""
    points = np.asarray(points, dtype=float)
    if points.ndim == 2 and points.shape[1] == 2:
        points_3d = np.zeros((len(points), 3))
        points_3d[:, :2] = points
        points = points_3d

    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(points.reshape(-1, 3))
    return pcd


@contextlib.contextmanager
def scoped_cloud(points: np.ndarray) -> Iterator['o3d.geometry.PointCloud']:
    """Temporary Open3D cloud for a single alignment call."""
    pcd = points_to_pcd(points)
    try:
        yield pcd
    finally:
        pcd.clear()


def _log_result(name: str, quality: float, rmse: float, elapsed: float, n_src: int, n_tgt: int):
    logger.debug(
        f"{name} run in {elapsed * 1000:.2f}ms on {n_src}/{n_tgt} points, "
        f"{quality:.1f}% goodness, rmse {rmse:.4f}"
    )


@dataclass
class ScanMatcher:
    """Scan-to-map registration using ICP.

    Parameters:
        max_correspondence_distance: Maximum point-to-point distance for correspondence
        max_iterations: Maximum ICP iterations
    """

    max_correspondence_distance: float = 0.75  # meters
    max_iterations: int = 800

    @classmethod
    def from_config(cls, config: TrajectoryConfig) -> 'ScanMatcher':
        return cls(
            max_correspondence_distance=config.max_correspondence_distance,
            max_iterations=config.max_iterations,
        )

    def align(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_guess: Pose2D | None = None
    ) -> ScanMatchResult:
        """Align a scan (source) against the reference map (target).

        Args:
            source: Nx2 scan points in the scanner frame
            target: Mx2 reference map points
            initial_guess: Initial scan pose in the map frame

        Returns:
            ScanMatchResult with the scan pose and its goodness
        """
        if initial_guess is None:
            initial_guess = Pose2D()

        if len(source) == 0 or len(target) == 0:
            return ScanMatchResult(pose=initial_guess, goodness=0.0, rmse=float('inf'))

        # Build initial transformation matrix (3D)
        T_init = np.eye(4)
        T_init[:2, :2] = initial_guess.to_matrix()[:2, :2]
        T_init[:2, 3] = [initial_guess.x, initial_guess.y]

        start = time.perf_counter()
        with scoped_cloud(source) as source_pcd, scoped_cloud(target) as target_pcd:
            result = o3d.pipelines.registration.registration_icp(
                source_pcd,
                target_pcd,
                self.max_correspondence_distance,
                T_init,
                o3d.pipelines.registration.TransformationEstimationPointToPoint(),
                o3d.pipelines.registration.ICPConvergenceCriteria(
                    max_iteration=self.max_iterations
                )
            )

        # Extract 2D transform from result
        T = np.asarray(result.transformation)
        theta = np.arctan2(T[1, 0], T[0, 0])
        goodness = 100.0 * float(result.fitness)
        _log_result("ICP2D", goodness, result.inlier_rmse, time.perf_counter() - start,
                    len(source), len(target))

        return ScanMatchResult(
            pose=Pose2D(x=float(T[0, 3]), y=float(T[1, 3]), theta=float(theta)),
            goodness=goodness,
            rmse=float(result.inlier_rmse),
            correspondence_count=len(result.correspondence_set)
        )


@dataclass
class IcpAligner:
    """Classic point-to-point ICP."""

    max_correspondence_distance: float = 0.40
    max_iterations: int = 100

    name = "ICP"

    def _estimation(self):
        return o3d.pipelines.registration.TransformationEstimationPointToPoint()

    def _criteria(self):
        return o3d.pipelines.registration.ICPConvergenceCriteria(
            max_iteration=self.max_iterations
        )

    def _register(self, source_pcd, target_pcd, T_init):
        return o3d.pipelines.registration.registration_icp(
            source_pcd,
            target_pcd,
            self.max_correspondence_distance,
            T_init,
            self._estimation(),
            self._criteria()
        )

    def align(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_guess: Pose3D | None = None
    ) -> RegistrationResult:
        """Align source cloud (Nx3) onto target cloud (Mx3)."""
        if initial_guess is None:
            initial_guess = Pose3D()

        if len(source) == 0 or len(target) == 0:
            return RegistrationResult(transform=initial_guess, quality=0.0, rmse=float('inf'))

        start = time.perf_counter()
        with scoped_cloud(source) as source_pcd, scoped_cloud(target) as target_pcd:
            result = self._register(source_pcd, target_pcd, initial_guess.to_matrix())

        quality = 100.0 * float(result.fitness)
        _log_result(self.name, quality, result.inlier_rmse, time.perf_counter() - start,
                    len(source), len(target))

        return RegistrationResult(
            transform=Pose3D.from_matrix(np.asarray(result.transformation)),
            quality=quality,
            rmse=float(result.inlier_rmse),
            correspondence_count=len(result.correspondence_set)
        )


@dataclass
class GicpAligner(IcpAligner):
    """Generalized (plane-to-plane) ICP."""

    max_correspondence_distance: float = 0.2
    max_iterations: int = 20
    epsilon: float = 1e-5

    name = "GICP"

    def _criteria(self):
        return o3d.pipelines.registration.ICPConvergenceCriteria(
            relative_fitness=self.epsilon,
            relative_rmse=self.epsilon,
            max_iteration=self.max_iterations
        )

    def _register(self, source_pcd, target_pcd, T_init):
        return o3d.pipelines.registration.registration_generalized_icp(
            source_pcd,
            target_pcd,
            self.max_correspondence_distance,
            T_init,
            o3d.pipelines.registration.TransformationEstimationForGeneralizedICP(),
            self._criteria()
        )


def make_aligner(method: RefineMethod, config: RegistrationConfig) -> Aligner | None:
    """Build the alignment backend selected for the run."""
    if method == RefineMethod.ICP:
        return IcpAligner(
            max_correspondence_distance=config.icp_max_correspondence_distance,
            max_iterations=config.icp_max_iterations,
        )
    if method == RefineMethod.GICP:
        return GicpAligner(
            max_correspondence_distance=config.gicp_max_correspondence_distance,
            max_iterations=config.gicp_max_iterations,
            epsilon=config.gicp_epsilon,
        )
    return None
