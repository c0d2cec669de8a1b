"""Edge-preserving smoothing of 3D camera clouds.

Bilateral filter on an unorganized cloud: every point is moved along its
viewing ray to a weighted mean range of its neighbours. Weights combine a
spatial Gaussian (distance to the neighbour) and a range Gaussian
(difference in range), so depth discontinuities are not blurred.
"""
from __future__ import annotations

import numpy as np
from scipy.spatial import cKDTree


def smooth_points(
    points: np.ndarray,
    sigma_s: float = 0.05,
    sigma_r: float = 0.05,
    radius: float = 0.1
) -> np.ndarray:
    """Return a smoothed copy of an Nx3 cloud expressed in the sensor frame."""
    points = np.asarray(points, dtype=float)
    if len(points) < 2:
        return points.copy()

    ranges = np.linalg.norm(points, axis=1)
    valid = ranges > 0
    directions = np.zeros_like(points)
    directions[valid] = points[valid] / ranges[valid, None]

    tree = cKDTree(points)
    neighbourhoods = tree.query_ball_point(points, r=radius)

    smoothed_ranges = ranges.copy()
    for i, neighbours in enumerate(neighbourhoods):
        if not valid[i] or len(neighbours) < 2:
            continue
        idx = np.asarray(neighbours)
        d_space = np.linalg.norm(points[idx] - points[i], axis=1)
        d_range = ranges[idx] - ranges[i]
        w = np.exp(-0.5 * (d_space / sigma_s) ** 2) * np.exp(-0.5 * (d_range / sigma_r) ** 2)
        smoothed_ranges[i] = np.sum(w * ranges[idx]) / np.sum(w)

    return directions * smoothed_ranges[:, None] + np.where(valid[:, None], 0.0, points)


def smooth_frames(frames, sigma_s: float, sigma_r: float, radius: float) -> int:
    """Attach a smoothed registration cloud to each frame."""
    for frame in frames:
        frame.smoothed = smooth_points(frame.points, sigma_s=sigma_s, sigma_r=sigma_r, radius=radius)
    return len(frames)
