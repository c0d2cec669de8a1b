"""3D pairwise registration with a quality gate.

The registration engine decides what to align against what and how to
use the result. A result below the quality threshold is not applied;
the last accepted transform of the same chain (or the identity) is
applied instead, so one bad alignment cannot drag the trajectory away.

Chains:
- replace mode registers each set jointly; all sets share one chain
- accumulate mode registers every camera frame on its own against the
  accumulated reference; each camera is its own chain
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .config import MemoryMode, RegistrationConfig
from .overlap import OverlapSelector
from .poses import IDENTITY_3D, Pose3D
from .rawlog import SensorFrame
from .reference import ReferenceAccumulator
from .scan_matcher import Aligner, RegistrationResult
from .sensor_sets import SensorSet

logger = logging.getLogger(__name__)

SET_CHAIN = "set"


@dataclass
class RegistrationOutcome:
    """What was done with one registration call."""
    chain: str
    result: RegistrationResult
    applied: Pose3D  # transform composed onto the frame poses
    fallback: bool
    skipped: bool = False  # too few points to align


@dataclass
class PairwiseRegistrationEngine:
    """Align sensor sets against the reference model.

    Parameters:
        aligner: Alignment backend, fixed for the run
        quality_threshold: Results below this quality fall back
        min_source_points: Smaller source clouds are not aligned
        mode: Joint (replace) or per-camera (accumulate) registration
    """

    aligner: Aligner
    quality_threshold: float = 96.0
    min_source_points: int = 100
    mode: MemoryMode = MemoryMode.REPLACE

    last_accepted: Dict[str, Pose3D] = field(default_factory=dict)
    qualities: List[float] = field(default_factory=list)
    fallback_count: int = 0
    call_count: int = 0

    @classmethod
    def from_config(
        cls,
        aligner: Aligner,
        config: RegistrationConfig,
        mode: MemoryMode
    ) -> 'PairwiseRegistrationEngine':
        return cls(
            aligner=aligner,
            quality_threshold=config.quality_threshold,
            min_source_points=config.min_source_points,
            mode=mode,
        )

    @property
    def mean_quality(self) -> float:
        if not self.qualities:
            return 0.0
        return float(np.mean(self.qualities))

    def fallback_transform(self, chain: str) -> Pose3D:
        """Last accepted transform of the chain, or identity."""
        return self.last_accepted.get(chain, IDENTITY_3D)

    def register(
        self,
        frames: Sequence[SensorFrame],
        target: np.ndarray,
        chain: str = SET_CHAIN,
        initial_guess: Optional[Pose3D] = None
    ) -> RegistrationOutcome:
        """Register frames jointly against a target cloud and update their poses."""
        source = np.vstack([f.world_points() for f in frames]) if frames else np.zeros((0, 3))

        skipped = len(source) < self.min_source_points or len(target) == 0
        if skipped:
            logger.warning(
                f"Not aligning {chain}: {len(source)} source / {len(target)} target points"
            )
            result = RegistrationResult(transform=IDENTITY_3D, quality=0.0)
        else:
            result = self.aligner.align(source, target, initial_guess or IDENTITY_3D)
            self.call_count += 1
            self.qualities.append(result.quality)

        fallback = result.quality < self.quality_threshold
        if fallback:
            applied = self.fallback_transform(chain)
            self.fallback_count += 1
            if not skipped:
                logger.warning(
                    f"Registration of {chain} below quality gate "
                    f"({result.quality:.1f}% < {self.quality_threshold:.1f}%), using fallback"
                )
        else:
            applied = result.transform
            logger.debug(f"Registration of {chain} accepted with {result.quality:.1f}% goodness")

        for frame in frames:
            frame.pose = applied.compose(frame.pose)
        self.last_accepted[chain] = applied

        return RegistrationOutcome(
            chain=chain, result=result, applied=applied, fallback=fallback, skipped=skipped
        )

    def register_set(
        self,
        sensor_set: SensorSet,
        reference: ReferenceAccumulator,
        overlap: Optional[OverlapSelector] = None
    ) -> List[RegistrationOutcome]:
        """Register a set against the reference model.

        The reference is not updated here; the caller adds the set once
        every camera has been registered.
        """
        if self.mode == MemoryMode.ACCUMULATE:
            outcomes = []
            for frame in sensor_set.frames:
                target = reference.target_points(frame.world_points(), overlap)
                outcomes.append(self.register([frame], target, chain=frame.sensor_id))
            return outcomes

        source = np.vstack([f.world_points() for f in sensor_set.frames])
        target = reference.target_points(source, overlap)
        return [self.register(sensor_set.frames, target, chain=SET_CHAIN)]
