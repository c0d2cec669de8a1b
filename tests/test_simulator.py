import json
import math
import os
import tempfile

import numpy as np
import pytest

from localization.config import RefineMethod, load_config
from localization.pipeline import LocalizationPipeline
from localization.rawlog import ScanFrame, SensorFrame, read_stream
from simulation.generate_synthetic import Room, SyntheticSession, make_session


def test_make_session_creates_files():
    td = tempfile.mkdtemp(prefix="rig_test_")
    summary = make_session(td, duration=0.5, points_per_scan=90)
    # basic assertions
    assert os.path.exists(os.path.join(td, "rawlog.jsonl"))
    assert os.path.exists(os.path.join(td, "map.txt"))
    assert os.path.exists(os.path.join(td, "config.json"))
    assert os.path.exists(os.path.join(td, "ground_truth.json"))
    assert summary["scans"] == 6
    assert summary["frames"] == 6 + 5 * 4


def test_stream_is_time_ordered(tmp_path):
    SyntheticSession(duration=0.3).generate_session(tmp_path)
    frames = list(read_stream(tmp_path / "rawlog.jsonl"))
    timestamps = [f.timestamp for f in frames]
    assert timestamps == sorted(timestamps)
    assert isinstance(frames[0], ScanFrame)
    assert all(f.points.shape[1] == 3 for f in frames if isinstance(f, SensorFrame))


def test_scan_ranges_match_room():
    session = SyntheticSession(room=Room.rectangle(width=4.0, height=4.0))
    session.scanner.range_noise_stddev = 0.0
    points = np.array(session.generate_scan((0.0, 0.0, 0.0)))
    ranges = np.linalg.norm(points, axis=1)
    assert ranges.min() == pytest.approx(2.0, abs=1e-6)
    assert ranges.max() == pytest.approx(2.0 * math.sqrt(2), abs=0.1)


def test_turning_path():
    session = SyntheticSession(speed=1.0, turn_rate=math.pi / 2, start=(0.0, 0.0, 0.0))
    x, y, heading = session.robot_pose(1.0)
    assert heading == pytest.approx(math.pi / 2)
    assert x == pytest.approx(2 / math.pi)
    assert y == pytest.approx(2 / math.pi)


def test_config_loads(tmp_path):
    SyntheticSession(duration=0.2).generate_session(tmp_path)
    config = load_config(str(tmp_path / "config.json"))
    assert config.camera_labels == ["RGBD_1", "RGBD_2", "RGBD_3", "RGBD_4"]
    assert config.trajectory.initial_x == -2.0


def test_pipeline_on_synthetic_session(tmp_path):
    SyntheticSession(duration=1.0).generate_session(tmp_path)
    config = load_config(str(tmp_path / "config.json"))

    result = LocalizationPipeline(config=config).run(
        tmp_path / "rawlog.jsonl", tmp_path / "map.txt", tmp_path / "out.jsonl"
    )

    assert result.success
    assert result.scans_rejected == 0
    assert result.frames_located == 40

    with open(tmp_path / "ground_truth.json") as f:
        truth = json.load(f)
    speed = 0.5
    x0 = truth["poses"][0]["x"]
    for frame in read_stream(tmp_path / "out.jsonl"):
        if isinstance(frame, SensorFrame):
            assert frame.pose.x == pytest.approx(x0 + speed * frame.timestamp, abs=0.05)
            assert frame.pose.z == pytest.approx(1.0)


def test_pipeline_with_icp_refinement(tmp_path):
    SyntheticSession(duration=1.0).generate_session(tmp_path)
    config = load_config(str(tmp_path / "config.json")).with_toggles(refine_3d=RefineMethod.ICP)

    result = LocalizationPipeline(config=config).run(
        tmp_path / "rawlog.jsonl", tmp_path / "map.txt", tmp_path / "out.jsonl"
    )

    assert result.success
    assert result.sets_total == 10
    assert result.registrations + result.fallbacks >= 9
