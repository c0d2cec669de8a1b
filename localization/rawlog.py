"""Rawlog stream I/O.

A rawlog is a JSON-lines file (gzip-compressed when the name ends in
``.gz``) holding one sensor frame per line, in acquisition order::

    {"sensor": "HOKUYO1", "timestamp": 12.5, "points": [[x, y], ...]}
    {"sensor": "RGBD_1", "timestamp": 12.53, "points": [[x, y, z], ...],
     "intensity": [...], "pose": [x, y, z, yaw, pitch, roll]}

Points are expressed in the sensor frame. Keys not listed above are kept
in ``extras`` and written back unchanged.
"""
from __future__ import annotations

import contextlib
import gzip
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import numpy as np

from .errors import ConfigurationError, StreamError
from .poses import Pose2D, Pose3D

logger = logging.getLogger(__name__)

_KNOWN_KEYS = {"sensor", "timestamp", "points", "intensity", "pose"}


@dataclass
class ScanFrame:
    """2D range scan from the planar scanner."""
    sensor_id: str
    timestamp: float
    points: np.ndarray  # Nx2, scanner frame
    index: int = -1  # position in the input stream
    extras: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SensorFrame:
    """3D range/intensity frame from one camera of the rig."""
    sensor_id: str
    timestamp: float
    points: np.ndarray  # Nx3, sensor frame
    intensity: Optional[np.ndarray] = None
    local_pose: Pose3D = field(default_factory=Pose3D)  # sensor on robot
    pose: Pose3D = field(default_factory=Pose3D)  # sensor in world
    index: int = -1
    smoothed: Optional[np.ndarray] = None  # registration-only copy of points
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def cloud(self) -> np.ndarray:
        """Points used for registration, in the sensor frame."""
        return self.smoothed if self.smoothed is not None else self.points

    def world_points(self) -> np.ndarray:
        """Registration cloud expressed in the world frame."""
        return self.pose.transform_points(self.cloud)


Frame = Union[ScanFrame, SensorFrame]


def _open(path: Path, mode: str, compressed: Optional[bool] = None):
    if compressed is None:
        compressed = path.suffix == ".gz"
    if compressed:
        return gzip.open(path, mode + "t", encoding="utf-8")
    return open(path, mode, encoding="utf-8")


def _point_array(values, width: int) -> np.ndarray:
    points = np.asarray(values, dtype=float)
    if points.size == 0:
        return np.zeros((0, width))
    if points.ndim != 2 or points.shape[1] != width:
        raise ValueError(f"expected {width} coordinates per point, got shape {points.shape}")
    return points


def parse_record(record: dict, index: int, scanner_label: str) -> Frame:
    """Convert one decoded JSON record into a frame."""
    try:
        sensor = str(record["sensor"])
        timestamp = float(record["timestamp"])
        if sensor == scanner_label:
            points = _point_array(record.get("points", []), 2)
        else:
            points = _point_array(record.get("points", []), 3)
            intensity = record.get("intensity")
            if intensity is not None:
                intensity = np.asarray(intensity, dtype=float)
            pose = Pose3D.from_list(record["pose"]) if "pose" in record else Pose3D()
    except (KeyError, TypeError, ValueError) as e:
        raise StreamError(f"Malformed frame at line {index + 1}: {e}") from e

    extras = {k: v for k, v in record.items() if k not in _KNOWN_KEYS}

    if sensor == scanner_label:
        return ScanFrame(
            sensor_id=sensor, timestamp=timestamp, points=points, index=index, extras=extras
        )

    return SensorFrame(
        sensor_id=sensor,
        timestamp=timestamp,
        points=points,
        intensity=intensity,
        local_pose=pose,
        pose=pose,
        index=index,
        extras=extras,
    )


def read_stream(path: Path | str, scanner_label: str = "HOKUYO1") -> Iterator[Frame]:
    """Iterate over the frames of a rawlog file in stored order."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Rawlog not found: {path}")

    try:
        with _open(path, "r") as f:
            index = 0
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as e:
                    raise StreamError(f"{path}: invalid JSON at frame {index}: {e}") from e
                yield parse_record(record, index, scanner_label)
                index += 1
    except StreamError:
        raise
    except OSError as e:
        raise StreamError(f"Cannot read rawlog {path}: {e}") from e


def frame_to_record(frame: Frame) -> dict:
    """Convert a frame back into a JSON-serializable record."""
    record: Dict[str, Any] = {
        "sensor": frame.sensor_id,
        "timestamp": frame.timestamp,
        "points": np.asarray(frame.points).tolist(),
    }
    if isinstance(frame, SensorFrame):
        if frame.intensity is not None:
            record["intensity"] = np.asarray(frame.intensity).tolist()
        record["pose"] = frame.pose.as_list()
    record.update(frame.extras)
    return record


def write_stream(path: Path | str, frames: List[Frame]) -> Path:
    """Write frames atomically.

    The stream is written to a temporary file in the destination directory
    and moved into place only once complete, so a failure never leaves a
    partial output file behind.
    """
    path = Path(path)
    directory = path.parent if str(path.parent) else Path(".")
    try:
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=directory)
        os.close(fd)
    except OSError as e:
        raise StreamError(f"Cannot create output {path}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with _open(tmp_path, "w", compressed=path.suffix == ".gz") as f:
            for frame in frames:
                f.write(json.dumps(frame_to_record(frame)))
                f.write("\n")
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise StreamError(f"Cannot save output {path}: {e}") from e
    except BaseException:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise

    logger.info(f"Saved {len(frames)} frames to {path}")
    return path


def load_reference_map(path: Path | str) -> np.ndarray:
    """Load a 2D point map (``x y`` per line).

    Returns:
        Nx2 numpy array of (x, y) points
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Reference map not found: {path}")
    try:
        points = np.loadtxt(path, ndmin=2, usecols=(0, 1))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read reference map {path}: {e}") from e
    points = points[np.all(np.isfinite(points), axis=1)]
    if len(points) == 0:
        raise ConfigurationError(f"Reference map {path} has no points")
    return points


class TrajectoryLog:
    """Text log of accepted 2D poses, one ``x y yaw`` row each.

    Rows go to a temporary file next to the destination. ``commit`` moves
    it into place; ``discard`` removes it. Used as a context manager, the
    log is committed on a clean exit and discarded when an exception
    escapes, so a failed run leaves no partial log.
    """

    def __init__(self, path: Path | str | None):
        self.path = Path(path) if path is not None else None
        self._file = None
        self._tmp_path: Optional[Path] = None

    def open(self) -> "TrajectoryLog":
        if self.path is not None:
            directory = self.path.parent if str(self.path.parent) else Path(".")
            try:
                directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
                self._file = os.fdopen(fd, "w")
            except OSError as e:
                raise StreamError(f"Cannot open trajectory log {self.path}: {e}") from e
            self._tmp_path = Path(tmp_name)
        return self

    def append(self, pose: Pose2D) -> None:
        if self._file is None:
            return
        self._file.write(f"{pose.x:.6f} {pose.y:.6f} {pose.theta:.6f}\n")

    def commit(self) -> None:
        if self._file is None:
            return
        self._file.close()
        self._file = None
        try:
            os.replace(self._tmp_path, self.path)
        except OSError as e:
            self.discard()
            raise StreamError(f"Cannot save trajectory log {self.path}: {e}") from e
        self._tmp_path = None
        logger.info(f"Saved trajectory log to {self.path}")

    def discard(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._tmp_path is not None:
            with contextlib.suppress(OSError):
                self._tmp_path.unlink()
            self._tmp_path = None

    def __enter__(self) -> "TrajectoryLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.discard()


def load_trajectory(path: Path | str) -> List[Pose2D]:
    """Read a trajectory log back into poses."""
    data = np.loadtxt(path, ndmin=2)
    if data.size == 0:
        return []
    return [Pose2D(x=float(x), y=float(y), theta=float(t)) for x, y, t in data]
