"""Run configuration for the localization pipeline.

The configuration is an immutable value built once per run (from defaults,
an optional JSON file and command-line toggles) and handed to every
component that needs it.
"""
from __future__ import annotations

import dataclasses
import json
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import ConfigurationError
from .poses import Pose2D, Pose3D


class RefineMethod(str, Enum):
    """3D refinement backend."""
    OFF = "off"
    ICP = "icp"
    GICP = "gicp"


class MemoryMode(str, Enum):
    """Reference model lifecycle."""
    REPLACE = "replace"
    ACCUMULATE = "accumulate"


@dataclass(frozen=True)
class Toggles:
    """Capability toggles."""
    use_2d_guess: bool = True
    refine_3d: RefineMethod = RefineMethod.OFF
    accumulate_memory: MemoryMode = MemoryMode.REPLACE
    use_key_poses: bool = False
    use_overlap_filter: bool = False
    smooth_clouds: bool = False


@dataclass(frozen=True)
class TrajectoryConfig:
    """2D scan matching against the reference map."""
    goodness_threshold: float = 80.0  # accept if goodness > threshold
    max_correspondence_distance: float = 0.75  # meters
    max_iterations: int = 800
    initial_x: float = 0.0
    initial_y: float = 0.0
    initial_yaw_deg: float = 0.0

    @property
    def initial_pose(self) -> Pose2D:
        return Pose2D(
            x=self.initial_x, y=self.initial_y, theta=math.radians(self.initial_yaw_deg)
        )


@dataclass(frozen=True)
class RegistrationConfig:
    """3D pairwise registration and quality gate."""
    quality_threshold: float = 96.0  # fallback if quality < threshold
    icp_max_correspondence_distance: float = 0.40
    icp_max_iterations: int = 100
    gicp_max_correspondence_distance: float = 0.2
    gicp_max_iterations: int = 20
    gicp_epsilon: float = 1e-5
    min_source_points: int = 100
    reference_stride: int = 2  # subsampling of the accumulated reference


@dataclass(frozen=True)
class KeyPoseConfig:
    """Redundancy filter thresholds."""
    distance_threshold: float = 0.3  # meters
    angle_threshold_deg: float = 20.0

    @property
    def angle_threshold(self) -> float:
        return math.radians(self.angle_threshold_deg)


@dataclass(frozen=True)
class SmoothingConfig:
    """Bilateral smoothing of 3D clouds."""
    sigma_s: float = 0.05  # spatial sigma, meters
    sigma_r: float = 0.05  # range sigma, meters
    radius: float = 0.1  # neighbourhood radius, meters


@dataclass(frozen=True)
class SensorConfig:
    """Extrinsic pose of a sensor on the rig. Angles in degrees."""
    label: str
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0

    @property
    def pose(self) -> Pose3D:
        return Pose3D.from_degrees(
            x=self.x, y=self.y, z=self.z, yaw=self.yaw, pitch=self.pitch, roll=self.roll
        )


@dataclass(frozen=True)
class RunConfig:
    """Complete configuration of a localization run."""
    toggles: Toggles = field(default_factory=Toggles)
    trajectory: TrajectoryConfig = field(default_factory=TrajectoryConfig)
    registration: RegistrationConfig = field(default_factory=RegistrationConfig)
    key_poses: KeyPoseConfig = field(default_factory=KeyPoseConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    scanner: SensorConfig = field(default_factory=lambda: SensorConfig(label="HOKUYO1"))
    # Empty means: discover camera labels from the stream
    cameras: tuple[SensorConfig, ...] = ()

    @property
    def camera_labels(self) -> list[str]:
        return [c.label for c in self.cameras]

    def camera(self, label: str) -> Optional[SensorConfig]:
        for c in self.cameras:
            if c.label == label:
                return c
        return None

    def with_toggles(self, **changes) -> "RunConfig":
        """Return a copy with some toggles changed."""
        return dataclasses.replace(self, toggles=dataclasses.replace(self.toggles, **changes))

    @classmethod
    def from_dict(cls, data: dict) -> "RunConfig":
        """Build a configuration from a parsed JSON document."""
        try:
            toggles = _section(Toggles, data.get("toggles", {}))
            toggles = dataclasses.replace(
                toggles,
                refine_3d=RefineMethod(toggles.refine_3d),
                accumulate_memory=MemoryMode(toggles.accumulate_memory),
            )
            sensors = data.get("sensors", {})
            scanner = SensorConfig(**{"label": "HOKUYO1", **sensors.get("scanner", {})})
            cameras = tuple(SensorConfig(**c) for c in sensors.get("cameras", []))
            config = cls(
                toggles=toggles,
                trajectory=_section(TrajectoryConfig, data.get("trajectory", {})),
                registration=_section(RegistrationConfig, data.get("registration", {})),
                key_poses=_section(KeyPoseConfig, data.get("key_poses", {})),
                smoothing=_section(SmoothingConfig, data.get("smoothing", {})),
                scanner=scanner,
                cameras=cameras,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        labels = config.camera_labels
        if len(set(labels)) != len(labels):
            raise ConfigurationError(f"Duplicate camera labels: {labels}")
        if config.scanner.label in labels:
            raise ConfigurationError(
                f"Scanner label {config.scanner.label} is also used by a camera"
            )
        return config

    @classmethod
    def from_file(cls, path: str) -> "RunConfig":
        """Load configuration from JSON file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Malformed configuration {path}: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        d = dataclasses.asdict(self)
        d["toggles"]["refine_3d"] = self.toggles.refine_3d.value
        d["toggles"]["accumulate_memory"] = self.toggles.accumulate_memory.value
        d["sensors"] = {"scanner": d.pop("scanner"), "cameras": list(d.pop("cameras"))}
        return d

    def save(self, path: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


def _section(cls, values: dict):
    """Instantiate a config section, ignoring unknown keys."""
    names = {f.name for f in dataclasses.fields(cls)}
    return cls(**{k: v for k, v in values.items() if k in names})


def load_config(path: Optional[str] = None) -> RunConfig:
    """Load configuration from file or return defaults."""
    if path is None:
        return RunConfig()
    if not os.path.exists(path):
        raise ConfigurationError(f"Configuration file not found: {path}")
    return RunConfig.from_file(path)
