"""Synthetic rig session generator.

This module generates synthetic rig recordings for development, testing,
and CI purposes. The generated data can be processed by the full
localization pipeline.

Features:
- Configurable room geometry (walls, obstacles)
- Robot driving a straight or turning path at constant speed
- 2D planar scans and 3D camera clouds with range noise
- Matching 2D reference map, rig configuration and ground truth

Usage:
    python -m simulation.generate_synthetic --out sessions/synthetic --duration 4
"""
from __future__ import annotations

import argparse
import json
import math
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


@dataclass
class Wall:
    """A wall segment defined by two endpoints."""
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)

    def ray_intersection(self, ox: float, oy: float, dx: float, dy: float) -> Optional[float]:
        """Find intersection distance from ray origin to wall.

        Args:
            ox, oy: Ray origin
            dx, dy: Ray direction (normalized)

        Returns:
            Distance to intersection, or None if no intersection
        """
        # Wall vector
        wx = self.x2 - self.x1
        wy = self.y2 - self.y1

        # Solve: origin + t*dir = wall_start + s*wall_dir
        denom = dx * wy - dy * wx

        if abs(denom) < 1e-9:
            return None  # Parallel

        t = ((self.x1 - ox) * wy - (self.y1 - oy) * wx) / denom
        s = ((self.x1 - ox) * dy - (self.y1 - oy) * dx) / denom

        if t > 0 and 0 <= s <= 1:
            return t

        return None


@dataclass
class Room:
    """Room geometry for simulation."""
    walls: List[Wall] = field(default_factory=list)

    @classmethod
    def rectangle(cls, width: float = 10.0, height: float = 8.0, center: Tuple[float, float] = (0, 0)) -> 'Room':
        """Create a rectangular room."""
        cx, cy = center
        hw, hh = width / 2, height / 2

        walls = [
            Wall(cx - hw, cy - hh, cx + hw, cy - hh),  # Bottom
            Wall(cx + hw, cy - hh, cx + hw, cy + hh),  # Right
            Wall(cx + hw, cy + hh, cx - hw, cy + hh),  # Top
            Wall(cx - hw, cy + hh, cx - hw, cy - hh),  # Left
        ]

        return cls(walls=walls)

    def add_obstacle(self, cx: float, cy: float, size: float = 1.0) -> None:
        """Add a square obstacle (pillar/furniture)."""
        hs = size / 2
        self.walls.extend([
            Wall(cx - hs, cy - hs, cx + hs, cy - hs),
            Wall(cx + hs, cy - hs, cx + hs, cy + hs),
            Wall(cx + hs, cy + hs, cx - hs, cy + hs),
            Wall(cx - hs, cy + hs, cx - hs, cy - hs),
        ])

    def cast_ray(self, ox: float, oy: float, angle_rad: float, max_range: float = 50.0) -> float:
        """Cast a ray and return distance to nearest wall."""
        dx = math.cos(angle_rad)
        dy = math.sin(angle_rad)

        min_dist = max_range

        for wall in self.walls:
            dist = wall.ray_intersection(ox, oy, dx, dy)
            if dist is not None and dist < min_dist:
                min_dist = dist

        return min_dist

    def sample_map(self, spacing: float = 0.05) -> np.ndarray:
        """Points along every wall, as a 2D reference map."""
        points = []
        for wall in self.walls:
            n = max(2, int(wall.length / spacing) + 1)
            for s in np.linspace(0.0, 1.0, n):
                points.append([wall.x1 + s * (wall.x2 - wall.x1), wall.y1 + s * (wall.y2 - wall.y1)])
        return np.array(points)


@dataclass
class ScannerConfig:
    """2D scanner simulation parameters."""
    label: str = "HOKUYO1"
    points_per_scan: int = 360
    scan_range_min: float = 0.15  # meters
    scan_range_max: float = 30.0  # meters
    range_noise_stddev: float = 0.01  # meters
    rate_hz: float = 10.0


@dataclass
class CameraConfig:
    """3D camera simulation parameters (mounted on the rig)."""
    label: str
    yaw_deg: float
    x: float = 0.0
    y: float = 0.0
    z: float = 1.0
    columns: int = 32
    rows: int = 12
    fov_h_deg: float = 58.0
    fov_v_deg: float = 45.0
    range_max: float = 8.0
    range_noise_stddev: float = 0.005


def default_cameras() -> List[CameraConfig]:
    """Four cameras looking front, left, back and right."""
    return [
        CameraConfig(label=f"RGBD_{i + 1}", yaw_deg=yaw)
        for i, yaw in enumerate((0.0, 90.0, 180.0, 270.0))
    ]


@dataclass
class SyntheticSession:
    """Generator for synthetic sessions."""

    room: Room = field(default_factory=Room.rectangle)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    cameras: List[CameraConfig] = field(default_factory=default_cameras)

    # Motion
    duration: float = 3.0  # seconds
    speed: float = 0.5  # m/s along the robot heading
    turn_rate: float = 0.0  # rad/s
    start: Tuple[float, float, float] = (-2.0, 0.0, 0.0)  # x, y, heading
    seed: Optional[int] = 0

    def robot_pose(self, t: float) -> Tuple[float, float, float]:
        """Ground-truth robot pose at time t."""
        x0, y0, h0 = self.start
        if abs(self.turn_rate) < 1e-9:
            return (x0 + self.speed * t * math.cos(h0), y0 + self.speed * t * math.sin(h0), h0)
        r = self.speed / self.turn_rate
        h = h0 + self.turn_rate * t
        return (x0 + r * (math.sin(h) - math.sin(h0)), y0 - r * (math.cos(h) - math.cos(h0)), h)

    def generate_scan(self, pose: Tuple[float, float, float]) -> List[List[float]]:
        """Scan points in the scanner frame."""
        x, y, heading = pose
        cfg = self.scanner
        points = []
        for i in range(cfg.points_per_scan):
            angle = 2 * math.pi * i / cfg.points_per_scan
            distance = self.room.cast_ray(x, y, heading + angle, cfg.scan_range_max)
            if distance < cfg.scan_range_min or distance >= cfg.scan_range_max:
                continue
            distance += random.gauss(0, cfg.range_noise_stddev)
            points.append([distance * math.cos(angle), distance * math.sin(angle)])
        return points

    def generate_cloud(self, pose: Tuple[float, float, float], camera: CameraConfig) -> List[List[float]]:
        """Camera points (walls seen as vertical surfaces) in the camera frame."""
        x, y, heading = pose
        c, s = math.cos(heading), math.sin(heading)
        cam_x = x + c * camera.x - s * camera.y
        cam_y = y + s * camera.x + c * camera.y
        cam_heading = heading + math.radians(camera.yaw_deg)

        points = []
        half_h = math.radians(camera.fov_h_deg) / 2
        half_v = math.radians(camera.fov_v_deg) / 2
        for col in range(camera.columns):
            a = -half_h + 2 * half_h * col / max(1, camera.columns - 1)
            distance = self.room.cast_ray(cam_x, cam_y, cam_heading + a, camera.range_max)
            if distance >= camera.range_max:
                continue
            for row in range(camera.rows):
                phi = -half_v + 2 * half_v * row / max(1, camera.rows - 1)
                d = distance + random.gauss(0, camera.range_noise_stddev)
                points.append([d * math.cos(a), d * math.sin(a), d * math.tan(phi)])
        return points

    def rig_config(self) -> Dict[str, Any]:
        """Configuration document matching the simulated rig."""
        x0, y0, h0 = self.start
        return {
            "trajectory": {
                "initial_x": x0,
                "initial_y": y0,
                "initial_yaw_deg": math.degrees(h0),
            },
            "sensors": {
                "scanner": {"label": self.scanner.label},
                "cameras": [
                    {"label": cam.label, "x": cam.x, "y": cam.y, "z": cam.z, "yaw": cam.yaw_deg}
                    for cam in self.cameras
                ],
            }
        }

    def generate_session(self, output_dir: Path | str) -> Dict[str, Any]:
        """Generate a complete session.

        Writes ``rawlog.jsonl``, ``map.txt``, ``config.json`` and
        ``ground_truth.json`` into the output directory.

        Returns:
            Summary dictionary
        """
        if self.seed is not None:
            random.seed(self.seed)

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        np.savetxt(output_dir / "map.txt", self.room.sample_map(), fmt="%.6f")
        with open(output_dir / "config.json", "w") as f:
            json.dump(self.rig_config(), f, indent=2)

        period = 1.0 / self.scanner.rate_hz
        n_scans = int(round(self.duration / period)) + 1
        n_cams = len(self.cameras)

        records = []
        truth = []
        for k in range(n_scans):
            t = k * period
            pose = self.robot_pose(t)
            records.append({
                "sensor": self.scanner.label,
                "timestamp": round(t, 6),
                "points": self.generate_scan(pose),
            })
            truth.append({"timestamp": round(t, 6), "x": pose[0], "y": pose[1], "heading": pose[2]})

            if k == n_scans - 1:
                break
            # Cameras fire one after another inside the scan interval
            for j, camera in enumerate(self.cameras):
                tc = t + period * (j + 1) / (n_cams + 1)
                records.append({
                    "sensor": camera.label,
                    "timestamp": round(tc, 6),
                    "points": self.generate_cloud(self.robot_pose(tc), camera),
                })

        with open(output_dir / "rawlog.jsonl", "w") as f:
            for record in records:
                f.write(json.dumps(record))
                f.write("\n")

        with open(output_dir / "ground_truth.json", "w") as f:
            json.dump({
                "poses": truth,
                "walls": [{"x1": w.x1, "y1": w.y1, "x2": w.x2, "y2": w.y2} for w in self.room.walls],
            }, f, indent=2)

        summary = {
            "status": "ok",
            "session_dir": str(output_dir),
            "scans": n_scans,
            "frames": len(records),
            "cameras": n_cams,
            "walls": len(self.room.walls),
        }

        print(json.dumps(summary))
        return summary


def make_session(outdir: str, duration: float = 3.0, points_per_scan: int = 360) -> Dict[str, Any]:
    """Generate a default session in outdir."""
    session = SyntheticSession(duration=duration)
    session.scanner.points_per_scan = points_per_scan
    return session.generate_session(outdir)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Generate synthetic rig session for testing"
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output session directory"
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=3.0,
        help="Recording duration in seconds (default: 3.0)"
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=0.5,
        help="Robot speed in m/s (default: 0.5)"
    )
    parser.add_argument(
        "--turn-rate",
        type=float,
        default=0.0,
        help="Robot turn rate in deg/s (default: 0)"
    )
    parser.add_argument(
        "--obstacle",
        action="store_true",
        help="Add a pillar in the room"
    )
    parser.add_argument(
        "--noise",
        type=float,
        default=0.01,
        help="Scanner range noise stddev in meters (default: 0.01)"
    )

    args = parser.parse_args()

    room = Room.rectangle()
    if args.obstacle:
        room.add_obstacle(1.5, 2.0, size=0.8)

    session = SyntheticSession(
        room=room,
        duration=args.duration,
        speed=args.speed,
        turn_rate=math.radians(args.turn_rate),
    )
    session.scanner.range_noise_stddev = args.noise
    session.generate_session(args.out)
