"""Planar and spatial rigid poses.

Pose2D is the robot pose estimated from the 2D scanner; Pose3D is the
6-DOF pose of a 3D camera (yaw, pitch, roll as Z-Y-X intrinsic Euler
angles). Both compose left to right: ``a.compose(b)`` is ``a * b``.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation


def wrap_angle(angle: float) -> float:
    """Normalize angle to [-pi, pi]."""
    return math.atan2(math.sin(angle), math.cos(angle))


@dataclass(frozen=True)
class Pose2D:
    """2D pose (position + orientation)."""
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0  # radians, CCW from +X axis

    def to_matrix(self) -> np.ndarray:
        """Convert to 3x3 homogeneous transformation matrix."""
        c, s = np.cos(self.theta), np.sin(self.theta)
        return np.array([
            [c, -s, self.x],
            [s,  c, self.y],
            [0,  0, 1]
        ])

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> 'Pose2D':
        """Create from 3x3 homogeneous transformation matrix."""
        theta = np.arctan2(T[1, 0], T[0, 0])
        return cls(x=float(T[0, 2]), y=float(T[1, 2]), theta=float(theta))

    def compose(self, other: 'Pose2D') -> 'Pose2D':
        """Compose two poses: self * other."""
        return Pose2D.from_matrix(self.to_matrix() @ other.to_matrix())

    def inverse(self) -> 'Pose2D':
        """Return the inverse pose."""
        return Pose2D.from_matrix(np.linalg.inv(self.to_matrix()))

    def scaled(self, factor: float) -> 'Pose2D':
        """Scale every component (used for interpolation of a delta)."""
        return Pose2D(x=self.x * factor, y=self.y * factor, theta=self.theta * factor)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Transform Nx2 points by this pose."""
        if len(points) == 0:
            return points
        c, s = np.cos(self.theta), np.sin(self.theta)
        R = np.array([[c, -s], [s, c]])
        return (R @ points.T).T + np.array([self.x, self.y])


@dataclass(frozen=True)
class Pose3D:
    """6-DOF pose. Angles in radians."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0

    @property
    def rotation(self) -> Rotation:
        return Rotation.from_euler("ZYX", [self.yaw, self.pitch, self.roll])

    def to_matrix(self) -> np.ndarray:
        """Convert to 4x4 homogeneous transformation matrix."""
        T = np.eye(4)
        T[:3, :3] = self.rotation.as_matrix()
        T[:3, 3] = [self.x, self.y, self.z]
        return T

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> 'Pose3D':
        """Create from 4x4 homogeneous transformation matrix."""
        T = np.asarray(T, dtype=float)
        yaw, pitch, roll = Rotation.from_matrix(T[:3, :3]).as_euler("ZYX")
        return cls(
            x=float(T[0, 3]), y=float(T[1, 3]), z=float(T[2, 3]),
            yaw=float(yaw), pitch=float(pitch), roll=float(roll)
        )

    @classmethod
    def from_pose2d(cls, pose: Pose2D) -> 'Pose3D':
        """Lift a planar pose onto the z=0 plane."""
        return cls(x=pose.x, y=pose.y, yaw=pose.theta)

    @classmethod
    def from_list(cls, values) -> 'Pose3D':
        """Create from [x, y, z, yaw, pitch, roll]."""
        x, y, z, yaw, pitch, roll = (float(v) for v in values)
        return cls(x=x, y=y, z=z, yaw=yaw, pitch=pitch, roll=roll)

    @classmethod
    def from_degrees(cls, x=0.0, y=0.0, z=0.0, yaw=0.0, pitch=0.0, roll=0.0) -> 'Pose3D':
        return cls(
            x=x, y=y, z=z,
            yaw=math.radians(yaw), pitch=math.radians(pitch), roll=math.radians(roll)
        )

    def as_list(self) -> list[float]:
        return [self.x, self.y, self.z, self.yaw, self.pitch, self.roll]

    def compose(self, other: 'Pose3D') -> 'Pose3D':
        """Compose two poses: self * other."""
        return Pose3D.from_matrix(self.to_matrix() @ other.to_matrix())

    def inverse(self) -> 'Pose3D':
        """Return the inverse pose."""
        return Pose3D.from_matrix(np.linalg.inv(self.to_matrix()))

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Transform Nx3 points by this pose."""
        if len(points) == 0:
            return np.zeros((0, 3))
        T = self.to_matrix()
        return points @ T[:3, :3].T + T[:3, 3]

    def distance_xy(self, other: 'Pose3D') -> float:
        """Planar Euclidean distance between the two positions."""
        return math.hypot(self.x - other.x, self.y - other.y)


IDENTITY_3D = Pose3D()
