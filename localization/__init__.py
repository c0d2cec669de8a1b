"""Rig localization package.

This package recovers world poses for the 3D cameras of a sensor rig from
a recorded session, fusing a 2D scan-matched trajectory with 3D pairwise
registration.

Modules:
- pipeline: Main processing orchestration and CLI
- trajectory: 2D trajectory estimation against a reference map
- interpolation: Placement of 3D frames on the trajectory
- sensor_sets: Camera set aggregation and key-pose filtering
- registration: 3D registration with quality gate and fallback
- reference: Reference model accumulation
- overlap: Convex-hull overlap selection
- scan_matcher: Open3D alignment backends
- smoothing: Bilateral smoothing of 3D clouds
- rawlog: Frame stream I/O
"""

from .config import RunConfig, Toggles, RefineMethod, MemoryMode, SensorConfig, load_config
from .errors import LocalizationError, ConfigurationError, StreamError
from .poses import Pose2D, Pose3D
from .rawlog import ScanFrame, SensorFrame, read_stream, write_stream, load_reference_map
from .scan_matcher import ScanMatcher, IcpAligner, GicpAligner, RegistrationResult, make_aligner
from .trajectory import TrajectoryEstimator, RobotPose
from .interpolation import TemporalPoseInterpolator, interpolate_pose
from .sensor_sets import SensorSet, SensorSetAggregator, KeyPoseFilter
from .overlap import OverlapSelector, hull_of, overlaps
from .reference import ReferenceAccumulator
from .registration import PairwiseRegistrationEngine, RegistrationOutcome
from .pipeline import LocalizationPipeline, RunSummary, main

__all__ = [
    # Configuration
    "RunConfig",
    "Toggles",
    "RefineMethod",
    "MemoryMode",
    "SensorConfig",
    "load_config",
    # Errors
    "LocalizationError",
    "ConfigurationError",
    "StreamError",
    # Poses
    "Pose2D",
    "Pose3D",
    # Stream
    "ScanFrame",
    "SensorFrame",
    "read_stream",
    "write_stream",
    "load_reference_map",
    # Alignment
    "ScanMatcher",
    "IcpAligner",
    "GicpAligner",
    "RegistrationResult",
    "make_aligner",
    # Stages
    "TrajectoryEstimator",
    "RobotPose",
    "TemporalPoseInterpolator",
    "interpolate_pose",
    "SensorSet",
    "SensorSetAggregator",
    "KeyPoseFilter",
    "OverlapSelector",
    "hull_of",
    "overlaps",
    "ReferenceAccumulator",
    "PairwiseRegistrationEngine",
    "RegistrationOutcome",
    # Pipeline
    "LocalizationPipeline",
    "RunSummary",
    "main",
]
