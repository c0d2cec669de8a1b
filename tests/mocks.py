"""Scripted alignment backends and data helpers for testing.

The pipeline accepts any object with an ``align`` method for both the 2D
scan matcher and the 3D aligner. The scripted versions below replay
pre-recorded results so stage logic can be tested without Open3D.

Usage:
    from tests.mocks import ScriptedScanMatcher, ScriptedAligner
    matcher = ScriptedScanMatcher([(Pose2D(0, 0, 0), 95.0)])
    aligner = ScriptedAligner([(Pose3D(x=0.1), 99.0)])
"""

import json
from typing import List, Optional, Tuple

import numpy as np

from localization.poses import Pose2D, Pose3D
from localization.rawlog import SensorFrame
from localization.scan_matcher import RegistrationResult, ScanMatchResult


# ============================================================================
# Scripted Backends
# ============================================================================

class ScriptedScanMatcher:
    """2D scan matcher returning pre-recorded (pose, goodness) results in order."""

    def __init__(self, results: List[Tuple[Pose2D, float]]):
        self.results = list(results)
        self.guesses: List[Optional[Pose2D]] = []

    def align(self, source, target, initial_guess=None) -> ScanMatchResult:
        self.guesses.append(initial_guess)
        pose, goodness = self.results.pop(0)
        return ScanMatchResult(pose=pose, goodness=goodness)


class ScriptedAligner:
    """3D aligner returning pre-recorded (transform, quality) results in order.

    Once the script is exhausted it keeps returning identity at 100%.
    """

    def __init__(self, results: List[Tuple[Pose3D, float]] = ()):
        self.results = list(results)
        self.calls: List[Tuple[np.ndarray, np.ndarray]] = []

    def align(self, source, target, initial_guess=None) -> RegistrationResult:
        self.calls.append((np.asarray(source).copy(), np.asarray(target).copy()))
        if self.results:
            transform, quality = self.results.pop(0)
        else:
            transform, quality = Pose3D(), 100.0
        return RegistrationResult(transform=transform, quality=quality)


# ============================================================================
# Data Helpers
# ============================================================================

def make_cloud(n: int = 200, seed: int = 0, offset=(0.0, 0.0, 0.0), scale: float = 1.0) -> np.ndarray:
    """Random 3D cloud inside a box."""
    rng = np.random.default_rng(seed)
    return rng.uniform(-scale, scale, size=(n, 3)) + np.asarray(offset)


def make_frame(
    sensor_id: str = "RGBD_1",
    timestamp: float = 0.0,
    points: Optional[np.ndarray] = None,
    pose: Optional[Pose3D] = None,
    index: int = -1
) -> SensorFrame:
    """SensorFrame with a given world pose."""
    if points is None:
        points = make_cloud(50)
    pose = pose or Pose3D()
    return SensorFrame(
        sensor_id=sensor_id,
        timestamp=timestamp,
        points=np.asarray(points, dtype=float),
        local_pose=Pose3D(),
        pose=pose,
        index=index,
    )


def write_rawlog(path, records: List[dict]):
    """Write raw JSON records one per line."""
    with open(path, "w") as f:
        for record in records:
            f.write(json.dumps(record))
            f.write("\n")
    return path


def scan_record(timestamp: float) -> dict:
    return {"sensor": "HOKUYO1", "timestamp": timestamp, "points": [[1.0, 0.0], [0.0, 1.0]]}


def cloud_record(sensor: str, timestamp: float, n: int = 20, seed: int = 0) -> dict:
    return {"sensor": sensor, "timestamp": timestamp, "points": make_cloud(n, seed=seed).tolist()}
