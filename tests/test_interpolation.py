"""Tests for temporal interpolation of 3D frames onto the trajectory."""
import math

import pytest

from localization.interpolation import (
    TemporalPoseInterpolator, interpolate_pose, interpolate_robot_pose, interpolation_factor
)
from localization.poses import Pose2D, Pose3D
from localization.trajectory import RobotPose
from tests.mocks import make_frame


@pytest.fixture
def p1():
    return RobotPose(timestamp=0.0, pose=Pose2D(0.0, 0.0, 0.0), goodness=95.0)


@pytest.fixture
def p2():
    return RobotPose(timestamp=1.0, pose=Pose2D(1.0, 0.0, 0.0), goodness=90.0)


class TestInterpolatePose:

    def test_factor(self):
        assert interpolation_factor(1.5, 1.0, 3.0) == pytest.approx(0.25)

    def test_midpoint(self, p1, p2):
        pose = interpolate_pose(p1, p2, 0.5, Pose3D())
        assert pose.x == pytest.approx(0.5)
        assert pose.y == pytest.approx(0.0)
        assert pose.yaw == pytest.approx(0.0)

    def test_boundaries(self, p1, p2):
        local = Pose3D(x=0.1, z=1.0, yaw=0.2)
        at_t1 = interpolate_pose(p1, p2, 0.0, local)
        at_t2 = interpolate_pose(p1, p2, 1.0, local)
        expected_t1 = Pose3D.from_pose2d(p1.pose).compose(local)
        expected_t2 = Pose3D.from_pose2d(p2.pose).compose(local)
        assert at_t1.as_list() == pytest.approx(expected_t1.as_list())
        assert at_t2.as_list() == pytest.approx(expected_t2.as_list())

    def test_linear_in_position_for_pure_translation(self):
        a = Pose2D(1.0, 2.0, 0.3)
        b = Pose2D(3.0, 6.0, 0.3)
        for f in (0.1, 0.4, 0.9):
            pose = interpolate_robot_pose(a, b, f)
            assert pose.x == pytest.approx(1.0 + 2.0 * f)
            assert pose.y == pytest.approx(2.0 + 4.0 * f)
            assert pose.theta == pytest.approx(0.3)

    def test_heading_interpolates(self):
        a = Pose2D(0.0, 0.0, 0.0)
        b = Pose2D(0.0, 0.0, math.pi / 2)
        pose = interpolate_robot_pose(a, b, 0.5)
        assert pose.theta == pytest.approx(math.pi / 4)

    def test_extrinsics_applied_after_robot_pose(self, p1, p2):
        p2 = RobotPose(timestamp=1.0, pose=Pose2D(0.0, 0.0, math.pi / 2), goodness=90.0)
        pose = interpolate_pose(p1, p2, 1.0, Pose3D(x=1.0, z=0.5))
        assert pose.x == pytest.approx(0.0, abs=1e-9)
        assert pose.y == pytest.approx(1.0)
        assert pose.z == pytest.approx(0.5)


class TestTemporalPoseInterpolator:

    def test_single_pose_keeps_frames_buffered(self, p1):
        interp = TemporalPoseInterpolator()
        interp.buffer(make_frame(timestamp=-0.5))
        assert interp.add_pose(p1) == []
        assert len(interp.pending) == 1

    def test_locates_bracketed_frames(self, p1, p2):
        interp = TemporalPoseInterpolator()
        interp.add_pose(p1)
        frame = make_frame(timestamp=0.5)
        interp.buffer(frame)

        located = interp.add_pose(p2)

        assert located == [frame]
        assert frame.pose.x == pytest.approx(0.5)
        assert interp.pending == []
        assert interp.located_count == 1

    def test_frame_before_first_pose_is_discarded(self, p1, p2):
        interp = TemporalPoseInterpolator()
        interp.buffer(make_frame(timestamp=-0.5))
        interp.add_pose(p1)
        located = interp.add_pose(p2)

        assert located == []
        assert interp.unbracketed_count == 1
        assert interp.pending == []

    def test_frame_after_interval_is_discarded(self, p1, p2):
        interp = TemporalPoseInterpolator()
        interp.add_pose(p1)
        interp.buffer(make_frame(timestamp=1.2))
        assert interp.add_pose(p2) == []
        assert interp.unbracketed_count == 1

    def test_drop_pending(self, p1, p2):
        interp = TemporalPoseInterpolator()
        interp.add_pose(p1)
        interp.buffer(make_frame(timestamp=0.3))
        interp.buffer(make_frame(timestamp=0.6))

        assert interp.drop_pending() == 2
        assert interp.add_pose(p2) == []
        assert interp.dropped_count == 2

    def test_flush(self, p1):
        interp = TemporalPoseInterpolator()
        interp.add_pose(p1)
        interp.buffer(make_frame(timestamp=0.5))
        assert interp.flush() == 1
        assert interp.pending == []

    def test_uses_last_two_poses(self, p1, p2):
        interp = TemporalPoseInterpolator()
        interp.add_pose(p1)
        interp.add_pose(p2)
        frame = make_frame(timestamp=1.5)
        interp.buffer(frame)
        interp.add_pose(RobotPose(timestamp=2.0, pose=Pose2D(3.0, 0.0, 0.0), goodness=99.0))
        assert frame.pose.x == pytest.approx(2.0)
