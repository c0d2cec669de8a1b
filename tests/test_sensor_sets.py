"""Tests for sensor-set aggregation and the key-pose filter."""
import math

import pytest

from localization.config import KeyPoseConfig
from localization.poses import Pose3D
from localization.sensor_sets import KeyPoseFilter, SensorSet, SensorSetAggregator
from tests.mocks import make_frame

LABELS = ["RGBD_1", "RGBD_2", "RGBD_3"]


def make_set(set_index, poses, labels=LABELS):
    frames = [
        make_frame(sensor_id=label, pose=pose, index=set_index * 10 + i)
        for i, (label, pose) in enumerate(zip(labels, poses))
    ]
    return SensorSet(set_index=set_index, frames=frames)


class TestSensorSetAggregator:

    def test_emits_when_all_slots_filled(self):
        agg = SensorSetAggregator(LABELS)
        assert agg.add(make_frame("RGBD_2", index=0)) is None
        assert agg.add(make_frame("RGBD_1", index=1)) is None
        sensor_set = agg.add(make_frame("RGBD_3", index=2))

        assert sensor_set is not None
        assert sensor_set.set_index == 0
        assert sensor_set.sensor_ids == LABELS
        assert sensor_set.indices == [1, 0, 2]
        assert agg.filled == 0

    def test_set_indices_increase(self):
        agg = SensorSetAggregator(["RGBD_1"])
        first = agg.add(make_frame("RGBD_1"))
        second = agg.add(make_frame("RGBD_1"))
        assert (first.set_index, second.set_index) == (0, 1)

    def test_newer_frame_replaces_slot(self):
        agg = SensorSetAggregator(["RGBD_1", "RGBD_2"])
        agg.add(make_frame("RGBD_1", index=0))
        agg.add(make_frame("RGBD_1", index=1))
        sensor_set = agg.add(make_frame("RGBD_2", index=2))
        assert sensor_set.indices == [1, 2]

    def test_unknown_sensor_ignored(self):
        agg = SensorSetAggregator(["RGBD_1"])
        assert agg.add(make_frame("RGBD_9")) is None
        assert agg.filled == 0

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            SensorSetAggregator(["RGBD_1", "RGBD_1"])

    def test_empty_ids_rejected(self):
        with pytest.raises(ValueError):
            SensorSetAggregator([])

    def test_frame_for_and_point_count(self):
        sensor_set = make_set(0, [Pose3D()] * 3)
        assert sensor_set.frame_for("RGBD_2").sensor_id == "RGBD_2"
        assert sensor_set.point_count() == 150
        with pytest.raises(KeyError):
            sensor_set.frame_for("RGBD_9")


class TestKeyPoseFilter:

    def test_thresholds_from_config(self):
        f = KeyPoseFilter.from_config(KeyPoseConfig(distance_threshold=0.5, angle_threshold_deg=10.0))
        assert f.distance_threshold == 0.5
        assert f.angle_threshold == pytest.approx(math.radians(10.0))

    def test_defaults_match_config(self):
        f = KeyPoseFilter()
        config = KeyPoseConfig()
        assert f.distance_threshold == config.distance_threshold
        assert f.angle_threshold == config.angle_threshold

    def test_first_set_is_seed(self):
        f = KeyPoseFilter()
        assert f.check(make_set(0, [Pose3D()] * 3)) is True
        assert f.rejected_count == 0

    def test_small_motion_rejected(self):
        f = KeyPoseFilter()
        f.check(make_set(0, [Pose3D()] * 3))
        redundant = make_set(1, [Pose3D(x=0.1)] * 3)

        assert f.check(redundant) is False
        assert f.rejected_count == 1
        assert f.rejected_indices == redundant.indices

    def test_distance_or_angle_per_sensor(self):
        f = KeyPoseFilter()
        assert f.is_key_pose(Pose3D(x=0.31), Pose3D()) is True
        assert f.is_key_pose(Pose3D(yaw=math.radians(21.0)), Pose3D()) is True
        assert f.is_key_pose(Pose3D(x=0.29, yaw=math.radians(19.5)), Pose3D()) is False

    def test_yaw_difference_wraps(self):
        f = KeyPoseFilter()
        a = Pose3D(yaw=math.radians(179.0))
        b = Pose3D(yaw=math.radians(-179.0))
        assert f.is_key_pose(a, b) is False

    def test_all_sensors_must_move(self):
        f = KeyPoseFilter()
        f.check(make_set(0, [Pose3D()] * 3))
        partial = make_set(1, [Pose3D(x=1.0), Pose3D(x=1.0), Pose3D(x=0.1)])
        assert f.check(partial) is False

    def test_all_sensors_moved_accepted(self):
        f = KeyPoseFilter()
        f.check(make_set(0, [Pose3D()] * 3))
        moved = make_set(1, [Pose3D(x=0.5), Pose3D(yaw=math.radians(30.0)), Pose3D(y=-0.4)])
        assert f.check(moved) is True
        assert f.last_accepted is moved

    def test_compares_against_last_accepted(self):
        f = KeyPoseFilter()
        f.check(make_set(0, [Pose3D()] * 3))
        f.check(make_set(1, [Pose3D(x=0.2)] * 3))  # rejected
        # 0.4 from the seed, 0.2 from the rejected set
        assert f.check(make_set(2, [Pose3D(x=0.4)] * 3)) is True
