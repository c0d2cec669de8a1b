"""Localization pipeline for multi-camera rig recordings.

This module implements the complete offline pass:
1. Estimate the robot trajectory by aligning 2D scans against a map
2. Interpolate every 3D camera frame onto that trajectory
3. Optionally smooth the 3D clouds used for registration
4. Group camera frames into sets, dropping redundant (non key-pose) sets
5. Refine set poses with 3D pairwise registration (ICP or GICP)
6. Save the located frames as a new rawlog

Usage:
    python -m localization.pipeline session.jsonl map.txt --enable-icp3d --enable-memory

Fatal problems (missing files, unreadable streams) abort the run without
writing an output stream. Low-quality registrations and redundant sets
are handled locally and reported in the summary.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

import numpy as np

from .config import MemoryMode, RefineMethod, RunConfig, Toggles, load_config
from .errors import ConfigurationError, LocalizationError
from .interpolation import TemporalPoseInterpolator
from .overlap import OverlapSelector
from .rawlog import (
    Frame, ScanFrame, SensorFrame, TrajectoryLog,
    load_reference_map, read_stream, write_stream
)
from .reference import ReferenceAccumulator
from .registration import PairwiseRegistrationEngine, RegistrationOutcome
from .scan_matcher import Aligner, ScanMatcher, make_aligner
from .sensor_sets import KeyPoseFilter, SensorSet, SensorSetAggregator
from .smoothing import smooth_frames
from .trajectory import RobotPose, TrajectoryEstimator

logger = logging.getLogger(__name__)

ProgressHook = Callable[[SensorSet, List[RegistrationOutcome]], None]


@dataclass
class RunSummary:
    """Result of a localization run."""

    success: bool
    input_path: str
    output_path: str
    trajectory_path: str = ""

    # Stream
    num_frames: int = 0
    num_scans: int = 0
    num_3d_frames: int = 0
    frames_written: int = 0

    # Trajectory
    scans_accepted: int = 0
    scans_rejected: int = 0
    mean_scan_goodness: float = 0.0
    frames_located: int = 0
    frames_dropped: int = 0  # buffered during a rejected scan interval
    frames_unbracketed: int = 0
    frames_pending_at_end: int = 0

    # Sets and registration
    sets_total: int = 0
    sets_redundant: int = 0
    registrations: int = 0
    fallbacks: int = 0
    mean_quality: float = 0.0

    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    # Timing
    time_trajectory_sec: float = 0.0
    time_smoothing_sec: float = 0.0
    time_registration_sec: float = 0.0
    processing_time_sec: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        def convert_value(v):
            """Convert numpy types to Python native types."""
            if isinstance(v, (np.bool_, np.integer)):
                return int(v)
            elif isinstance(v, np.floating):
                return float(v)
            elif isinstance(v, dict):
                return {k: convert_value(vv) for k, vv in v.items()}
            elif isinstance(v, list):
                return [convert_value(vv) for vv in v]
            return v

        return convert_value(asdict(self))


@dataclass
class PipelineState:
    """Data threaded through the pipeline stages."""

    frames: List[Frame] = field(default_factory=list)  # input order
    located: List[SensorFrame] = field(default_factory=list)  # frames with a world pose
    camera_labels: List[str] = field(default_factory=list)
    robot_poses: List[RobotPose] = field(default_factory=list)
    rejected_indices: Set[int] = field(default_factory=set)

    @property
    def located_indices(self) -> Set[int]:
        return {f.index for f in self.located}

    def output_frames(self) -> List[Frame]:
        """Frames to re-emit: scans, and located frames of kept sets."""
        located = self.located_indices
        return [
            f for f in self.frames
            if isinstance(f, ScanFrame)
            or (f.index in located and f.index not in self.rejected_indices)
        ]


def default_output_path(input_path: Path | str, toggles: Toggles) -> Path:
    """Output rawlog name derived from the input name and the enabled stages."""
    path = Path(input_path)
    name = path.name
    compressed = name.endswith(".gz")
    if compressed:
        name = name[:-3]
    base = Path(name)
    tag = "_located"
    if toggles.refine_3d == RefineMethod.ICP:
        tag += "-ICP"
    elif toggles.refine_3d == RefineMethod.GICP:
        tag += "-GICP"
    if toggles.refine_3d != RefineMethod.OFF and toggles.accumulate_memory == MemoryMode.ACCUMULATE:
        tag += "-memory"
    if toggles.smooth_clouds:
        tag += "-smoothed"
    out = base.stem + tag + (base.suffix or ".jsonl")
    if compressed:
        out += ".gz"
    return path.with_name(out)


def default_trajectory_path(input_path: Path | str) -> Path:
    path = Path(input_path)
    stem = path.name.split(".")[0]
    return path.with_name(f"{stem}_trajectory.txt")


@dataclass
class LocalizationPipeline:
    """Offline localization of a recorded rig session.

    Parameters:
        config: Immutable run configuration
        aligner: 3D alignment backend (default: built from the configuration)
        scan_matcher: 2D scan matcher (default: built from the configuration)
        progress_hook: Called after every processed set; the place to
            persist per-set progress
    """

    config: RunConfig = field(default_factory=RunConfig)
    aligner: Optional[Aligner] = None
    scan_matcher: Optional[ScanMatcher] = None
    progress_hook: Optional[ProgressHook] = None

    state: PipelineState = field(default_factory=PipelineState)
    result: RunSummary = field(default_factory=lambda: RunSummary(
        success=False, input_path="", output_path=""
    ))

    def estimate_trajectory(self, rawlog_path: Path | str, map_path: Path | str,
                            log: Optional[TrajectoryLog] = None) -> None:
        """Read the stream, estimate robot poses and locate the 3D frames.

        Accepted robot poses are appended to ``log``; the caller commits it.
        """
        toggles = self.config.toggles
        start = time.perf_counter()

        estimator = None
        if toggles.use_2d_guess:
            reference_map = load_reference_map(map_path)
            logger.info(f"Loaded reference map with {len(reference_map)} points")
            estimator = TrajectoryEstimator.from_config(reference_map, self.config.trajectory, log)
            if self.scan_matcher is not None:
                estimator.matcher = self.scan_matcher
        interpolator = TemporalPoseInterpolator()

        discovered: List[str] = []
        for frame in read_stream(rawlog_path, self.config.scanner.label):
            self.state.frames.append(frame)
            if len(self.state.frames) % 1000 == 0:
                logger.info(f"  {len(self.state.frames)} frames read")

            if isinstance(frame, ScanFrame):
                self.result.num_scans += 1
                if estimator is None:
                    continue
                robot_pose = estimator.process(frame)
                if robot_pose is None:
                    interpolator.drop_pending()
                    continue
                self.state.robot_poses.append(robot_pose)
                self.state.located.extend(interpolator.add_pose(robot_pose))
                continue

            self.result.num_3d_frames += 1
            if frame.sensor_id not in discovered:
                discovered.append(frame.sensor_id)
            camera = self.config.camera(frame.sensor_id)
            if camera is not None:
                frame.local_pose = camera.pose
                frame.pose = camera.pose

            if estimator is not None:
                interpolator.buffer(frame)
            else:
                self.state.located.append(frame)

        self.state.camera_labels = self.config.camera_labels or discovered
        self.result.num_frames = len(self.state.frames)
        self.result.frames_located = len(self.state.located)
        self.result.frames_pending_at_end = interpolator.flush()
        self.result.frames_dropped = interpolator.dropped_count
        self.result.frames_unbracketed = interpolator.unbracketed_count
        if estimator is not None:
            self.result.scans_accepted = estimator.accepted_count
            self.result.scans_rejected = estimator.rejected_count
            self.result.mean_scan_goodness = estimator.mean_goodness
        if self.result.frames_pending_at_end:
            self.result.warnings.append(
                f"{self.result.frames_pending_at_end} 3D frames had no bracketing scan pose and were dropped"
            )
        if self.result.frames_unbracketed:
            self.result.warnings.append(
                f"{self.result.frames_unbracketed} 3D frames fell outside their scan interval and were dropped"
            )
        self.result.time_trajectory_sec = time.perf_counter() - start

    def smooth(self) -> None:
        """Smooth the registration clouds of the located frames."""
        start = time.perf_counter()
        cfg = self.config.smoothing
        n = smooth_frames(self.state.located, sigma_s=cfg.sigma_s, sigma_r=cfg.sigma_r, radius=cfg.radius)
        self.result.time_smoothing_sec = time.perf_counter() - start
        logger.info(f"  Smoothed {n} point clouds")

    def refine(self) -> None:
        """Group frames into sets, filter key poses and register."""
        toggles = self.config.toggles
        if not self.state.camera_labels:
            self.result.warnings.append("No 3D frames to group into sets")
            return

        start = time.perf_counter()
        aggregator = SensorSetAggregator(self.state.camera_labels)
        key_filter = KeyPoseFilter.from_config(self.config.key_poses) if toggles.use_key_poses else None

        engine = None
        reference = None
        overlap = None
        if toggles.refine_3d != RefineMethod.OFF:
            aligner = self.aligner or make_aligner(toggles.refine_3d, self.config.registration)
            engine = PairwiseRegistrationEngine.from_config(
                aligner, self.config.registration, toggles.accumulate_memory
            )
            reference = ReferenceAccumulator(
                mode=toggles.accumulate_memory, stride=self.config.registration.reference_stride
            )
            if toggles.use_overlap_filter:
                overlap = OverlapSelector()

        n_sets_approx = len(self.state.located) / len(self.state.camera_labels)
        seeded = False
        for frame in self.state.located:
            sensor_set = aggregator.add(frame)
            if sensor_set is None:
                continue

            self.result.sets_total += 1
            logger.info(f"Working set {sensor_set.set_index} of approx. {n_sets_approx:.0f}")

            if key_filter is not None and not key_filter.check(sensor_set):
                self.result.sets_redundant += 1
                self.state.rejected_indices.update(sensor_set.indices)
                continue

            outcomes: List[RegistrationOutcome] = []
            if engine is not None:
                if seeded:
                    if not toggles.use_2d_guess:
                        # No trajectory: start from the previous set's refined poses
                        for f in sensor_set.frames:
                            f.pose = reference.last_set.frame_for(f.sensor_id).pose
                    outcomes = engine.register_set(sensor_set, reference, overlap)
                reference.add(sensor_set)
            seeded = True

            if self.progress_hook is not None:
                self.progress_hook(sensor_set, outcomes)

        if engine is not None:
            self.result.registrations = engine.call_count
            self.result.fallbacks = engine.fallback_count
            self.result.mean_quality = engine.mean_quality
            if engine.fallback_count:
                self.result.warnings.append(
                    f"{engine.fallback_count} registrations fell back to the last accepted transform"
                )
        self.result.time_registration_sec = time.perf_counter() - start

    def export(self, output_path: Path | str) -> None:
        frames = self.state.output_frames()
        write_stream(output_path, frames)
        self.result.frames_written = len(frames)

    def run(
        self,
        rawlog_path: Path | str,
        map_path: Path | str,
        output_path: Optional[Path | str] = None,
        trajectory_path: Optional[Path | str] = None
    ) -> RunSummary:
        """Run the complete localization pipeline.

        Args:
            rawlog_path: Input rawlog
            map_path: 2D reference map
            output_path: Output rawlog (default: derived from the input name)
            trajectory_path: Trajectory log (default: derived from the input name)

        Returns:
            RunSummary with processing outcomes
        """
        start_time = time.perf_counter()
        toggles = self.config.toggles
        output_path = Path(output_path) if output_path else default_output_path(rawlog_path, toggles)
        trajectory_path = Path(trajectory_path) if trajectory_path else default_trajectory_path(rawlog_path)

        self.state = PipelineState()
        self.result = RunSummary(
            success=False,
            input_path=str(rawlog_path),
            output_path=str(output_path),
            trajectory_path=str(trajectory_path) if toggles.use_2d_guess else "",
        )

        try:
            if not Path(rawlog_path).exists():
                raise ConfigurationError(f"Rawlog not found: {rawlog_path}")
            log = TrajectoryLog(trajectory_path if toggles.use_2d_guess else None)
            with log:
                logger.info(f"Working with {rawlog_path}")
                if toggles.use_2d_guess:
                    logger.info("Computing initial poses with ICP2D...")
                self.estimate_trajectory(rawlog_path, map_path, log)
                logger.info(
                    f"  {self.result.scans_accepted} scans accepted, {self.result.scans_rejected} rejected, "
                    f"{self.result.frames_located} 3D frames located"
                )

                if toggles.smooth_clouds:
                    logger.info("Smoothing point clouds...")
                    self.smooth()

                if toggles.refine_3d != RefineMethod.OFF or toggles.use_key_poses:
                    logger.info(f"Refining sensor poses using {toggles.refine_3d.value.upper()}...")
                    self.refine()
                    logger.info(
                        f"  {self.result.sets_total} sets, {self.result.sets_redundant} redundant, "
                        f"{self.result.fallbacks} fallbacks, mean goodness {self.result.mean_quality:.1f}%"
                    )

                logger.info(f"Saving frames to {output_path}...")
                self.export(output_path)
        except LocalizationError as e:
            logger.error(str(e))
            self.result.errors.append(str(e))
            return self.result
        except OSError as e:
            logger.error(f"I/O error: {e}")
            self.result.errors.append(f"I/O error: {e}")
            return self.result

        self.result.processing_time_sec = time.perf_counter() - start_time
        self.result.success = len(self.result.errors) == 0
        return self.result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rig-localize",
        description="Locate the 3D cameras of a rig recording using a 2D map and 3D registration",
    )
    parser.add_argument("rawlog", nargs="?", help="Input rawlog (JSON lines, optionally .gz)")
    parser.add_argument("map", nargs="?", help="2D reference map (x y per line)")
    parser.add_argument("--config", "-c", help="JSON configuration file")
    parser.add_argument("--output", "-o", help="Output rawlog path")
    parser.add_argument("--trajectory", help="Trajectory log path")
    parser.add_argument("--disable-icp2d", action="store_true",
                        help="Do not use the 2D trajectory as initial guess")
    method = parser.add_mutually_exclusive_group()
    method.add_argument("--enable-icp3d", action="store_true",
                        help="Refine camera poses with ICP")
    method.add_argument("--enable-gicp3d", action="store_true",
                        help="Refine camera poses with generalized ICP")
    parser.add_argument("--enable-memory", action="store_true",
                        help="Accumulate registered clouds as reference")
    parser.add_argument("--enable-key-poses", action="store_true",
                        help="Only keep key poses")
    parser.add_argument("--enable-overlapping", action="store_true",
                        help="Only register against overlapping clouds")
    parser.add_argument("--enable-smoothing", action="store_true",
                        help="Smooth 3D clouds before registration")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose output")
    return parser


def apply_flags(config: RunConfig, args: argparse.Namespace) -> RunConfig:
    """Turn on the toggles requested on the command line."""
    changes: Dict[str, Any] = {}
    if args.disable_icp2d:
        changes["use_2d_guess"] = False
    if args.enable_icp3d:
        changes["refine_3d"] = RefineMethod.ICP
    if args.enable_gicp3d:
        changes["refine_3d"] = RefineMethod.GICP
    if args.enable_memory:
        changes["accumulate_memory"] = MemoryMode.ACCUMULATE
    if args.enable_key_poses:
        changes["use_key_poses"] = True
    if args.enable_overlapping:
        changes["use_overlap_filter"] = True
    if args.enable_smoothing:
        changes["smooth_clouds"] = True
    return config.with_toggles(**changes) if changes else config


def print_summary(result: RunSummary) -> None:
    print("\n" + "=" * 60)
    print("LOCALIZATION SUMMARY")
    print("=" * 60)
    print(f"Status: {'SUCCESS' if result.success else 'FAILED'}")
    print(f"Frames: {result.num_frames} ({result.num_scans} scans, {result.num_3d_frames} 3D)")
    print(f"Scans accepted: {result.scans_accepted}, rejected: {result.scans_rejected}")
    print(f"3D frames located: {result.frames_located}, written: {result.frames_written}")
    print(f"Sets: {result.sets_total}, redundant: {result.sets_redundant}")
    print(f"Registrations: {result.registrations}, fallbacks: {result.fallbacks}, "
          f"mean goodness: {result.mean_quality:.1f}%")
    print(f"Time: trajectory {result.time_trajectory_sec:.2f}s, "
          f"smoothing {result.time_smoothing_sec:.2f}s, "
          f"registration {result.time_registration_sec:.2f}s, "
          f"total {result.processing_time_sec:.2f}s")

    if result.warnings:
        print(f"\nWarnings ({len(result.warnings)}):")
        for w in result.warnings:
            print(f"  - {w}")

    if result.errors:
        print(f"\nErrors ({len(result.errors)}):")
        for e in result.errors:
            print(f"  - {e}")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.rawlog is None or args.map is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    try:
        config = apply_flags(load_config(args.config), args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    pipeline = LocalizationPipeline(config=config)
    result = pipeline.run(args.rawlog, args.map, args.output, args.trajectory)
    print_summary(result)

    if not result.success:
        for e in result.errors:
            print(f"Error: {e}", file=sys.stderr)
        return 1
    if args.verbose:
        print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
