"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def room_map(tmp_path):
    """2D map of a 4 m x 4 m square room."""
    side = np.linspace(-2.0, 2.0, 81)
    points = np.vstack([
        np.column_stack([side, np.full_like(side, -2.0)]),
        np.column_stack([side, np.full_like(side, 2.0)]),
        np.column_stack([np.full_like(side, -2.0), side]),
        np.column_stack([np.full_like(side, 2.0), side]),
    ])
    path = tmp_path / "map.txt"
    np.savetxt(path, points)
    return path


@pytest.fixture
def simple_session(tmp_path):
    """Two scans bracketing one 3D frame at t=0.5."""
    from tests.mocks import write_rawlog
    records = [
        {"sensor": "HOKUYO1", "timestamp": 0.0, "points": [[1.0, 0.0], [0.0, 1.0]]},
        {"sensor": "RGBD_1", "timestamp": 0.5, "points": [[1.0, 0.0, 0.0], [1.0, 0.5, 0.2]],
         "intensity": [0.1, 0.2], "camera_serial": "A123"},
        {"sensor": "HOKUYO1", "timestamp": 1.0, "points": [[1.0, 0.0], [0.0, 1.0]]},
    ]
    return write_rawlog(tmp_path / "session.jsonl", records)


@pytest.fixture
def two_scan_matcher():
    """Scan poses (0,0,0) at 95% then (1,0,0) at 90%."""
    from localization.poses import Pose2D
    from tests.mocks import ScriptedScanMatcher
    return ScriptedScanMatcher([
        (Pose2D(0.0, 0.0, 0.0), 95.0),
        (Pose2D(1.0, 0.0, 0.0), 90.0),
    ])


@pytest.fixture
def located_frame():
    """A 3D frame already placed in the world."""
    from localization.poses import Pose3D
    from tests.mocks import make_frame
    return make_frame(pose=Pose3D(x=1.0, yaw=0.5))
