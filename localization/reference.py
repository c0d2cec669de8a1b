"""Reference model that new sensor sets are registered against."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .config import MemoryMode
from .overlap import Hull, OverlapSelector, hull_of
from .sensor_sets import SensorSet

logger = logging.getLogger(__name__)


@dataclass
class ReferenceEntry:
    """World-frame points of one accepted set."""
    set_index: int
    points: np.ndarray
    _hull: Optional[Hull] = None
    _hull_done: bool = False

    @property
    def hull(self) -> Optional[Hull]:
        if not self._hull_done:
            self._hull = hull_of(self.points)
            self._hull_done = True
        return self._hull


@dataclass
class ReferenceAccumulator:
    """Owns the reference point cloud.

    In replace mode the model is the last accepted set only. In accumulate
    mode every accepted set is appended and nothing is ever removed; the
    overlap selector may restrict which entries are used as a target.
    """

    mode: MemoryMode = MemoryMode.REPLACE
    stride: int = 1  # subsampling of the target in accumulate mode

    entries: List[ReferenceEntry] = field(default_factory=list)
    last_set: Optional[SensorSet] = None

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def point_count(self) -> int:
        return sum(len(e.points) for e in self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def add(self, sensor_set: SensorSet) -> None:
        """Add an accepted set with its final poses."""
        points = np.vstack([f.world_points() for f in sensor_set.frames]) \
            if sensor_set.frames else np.zeros((0, 3))
        entry = ReferenceEntry(set_index=sensor_set.set_index, points=points)

        if self.mode == MemoryMode.ACCUMULATE:
            self.entries.append(entry)
        else:
            self.entries = [entry]
        self.last_set = sensor_set
        logger.debug(
            f"Reference holds {self.entry_count} sets, {self.point_count} points"
        )

    def target_points(
        self,
        source_points: Optional[np.ndarray] = None,
        overlap: Optional[OverlapSelector] = None
    ) -> np.ndarray:
        """Points to register against.

        Args:
            source_points: World-frame points of the cloud to be registered
            overlap: If given, only entries overlapping the source are used
        """
        entries = self.entries
        if overlap is not None and source_points is not None:
            entries = overlap.select(entries, source_points)
        if not entries:
            return np.zeros((0, 3))

        points = np.vstack([e.points for e in entries])
        if self.mode == MemoryMode.ACCUMULATE and self.stride > 1:
            points = points[::self.stride]
        return points
