"""Grouping of synchronized camera frames into sensor sets.

A set holds exactly one frame per configured camera. Sets are emitted as
soon as every camera slot is filled. The key-pose filter drops sets that
add no new viewpoint: a set is kept only if every camera moved far enough
(in position or yaw) since the last kept set.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .config import KeyPoseConfig
from .poses import Pose3D, wrap_angle
from .rawlog import SensorFrame

logger = logging.getLogger(__name__)


@dataclass
class SensorSet:
    """One frame per camera, ordered as the configured camera labels."""
    set_index: int
    frames: List[SensorFrame]

    @property
    def indices(self) -> List[int]:
        """Positions of the frames in the input stream."""
        return [f.index for f in self.frames]

    @property
    def sensor_ids(self) -> List[str]:
        return [f.sensor_id for f in self.frames]

    def frame_for(self, sensor_id: str) -> SensorFrame:
        for f in self.frames:
            if f.sensor_id == sensor_id:
                return f
        raise KeyError(sensor_id)

    def point_count(self) -> int:
        return sum(len(f.cloud) for f in self.frames)


@dataclass
class SensorSetAggregator:
    """Fill one slot per camera and emit complete sets."""

    sensor_ids: Sequence[str]
    _slots: Dict[str, Optional[SensorFrame]] = field(default_factory=dict)
    _next_index: int = 0

    def __post_init__(self):
        if len(set(self.sensor_ids)) != len(self.sensor_ids):
            raise ValueError(f"Duplicate sensor ids: {list(self.sensor_ids)}")
        if not self.sensor_ids:
            raise ValueError("At least one sensor id is required")
        self._slots = {sid: None for sid in self.sensor_ids}

    @property
    def filled(self) -> int:
        return sum(1 for f in self._slots.values() if f is not None)

    def add(self, frame: SensorFrame) -> Optional[SensorSet]:
        """Add a frame; return the completed set, if this frame completed one."""
        if frame.sensor_id not in self._slots:
            logger.debug(f"Ignoring frame {frame.index} from unconfigured sensor {frame.sensor_id}")
            return None

        self._slots[frame.sensor_id] = frame
        if self.filled < len(self.sensor_ids):
            return None

        sensor_set = SensorSet(
            set_index=self._next_index,
            frames=[self._slots[sid] for sid in self.sensor_ids]
        )
        self._next_index += 1
        self._slots = {sid: None for sid in self.sensor_ids}
        return sensor_set


@dataclass
class KeyPoseFilter:
    """Reject sets that are redundant with the last accepted set."""

    distance_threshold: float = 0.3
    angle_threshold: float = math.radians(20.0)

    last_accepted: Optional[SensorSet] = None
    rejected_indices: List[int] = field(default_factory=list)
    rejected_count: int = 0

    @classmethod
    def from_config(cls, config: KeyPoseConfig) -> 'KeyPoseFilter':
        return cls(
            distance_threshold=config.distance_threshold,
            angle_threshold=config.angle_threshold,
        )

    def is_key_pose(self, pose: Pose3D, last_pose: Pose3D) -> bool:
        """True if the sensor moved beyond either threshold."""
        dist = pose.distance_xy(last_pose)
        angle = abs(wrap_angle(pose.yaw - last_pose.yaw))
        return dist > self.distance_threshold or angle > self.angle_threshold

    def accepts(self, sensor_set: SensorSet, previous: SensorSet) -> bool:
        """Every sensor must have moved for the set to be a key pose."""
        return all(
            self.is_key_pose(frame.pose, previous.frame_for(frame.sensor_id).pose)
            for frame in sensor_set.frames
        )

    def check(self, sensor_set: SensorSet) -> bool:
        """Decide on a set and remember it if accepted.

        The first set is always accepted as the seed.
        """
        if self.last_accepted is None or self.accepts(sensor_set, self.last_accepted):
            self.last_accepted = sensor_set
            return True

        self.rejected_count += 1
        self.rejected_indices.extend(sensor_set.indices)
        logger.info(f"Set {sensor_set.set_index} is not a key pose, moving to the next one")
        return False
