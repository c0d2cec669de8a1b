"""Convex-hull overlap test between point clouds.

Two clouds overlap when some point of one lies inside the 3D convex hull
of the other. The test is run in both directions because a hull may
contain part of the other cloud without any of its own points falling
inside the other hull.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, TypeVar

import numpy as np
from scipy.spatial import ConvexHull, Delaunay, QhullError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Hull:
    """Convex hull of a cloud with a point-location structure."""
    vertices: np.ndarray  # hull vertices, Kx3
    triangulation: Delaunay

    def contains(self, points: np.ndarray) -> np.ndarray:
        """Boolean mask of points inside (or on) the hull."""
        if len(points) == 0:
            return np.zeros(0, dtype=bool)
        return self.triangulation.find_simplex(points) >= 0


def hull_of(points: np.ndarray) -> Optional[Hull]:
    """3D convex hull of a cloud, or None if the cloud is degenerate."""
    points = np.asarray(points, dtype=float)
    if len(points) < 4:
        return None
    try:
        # QJ joggles the input so flat clouds still yield a 3D hull
        hull = ConvexHull(points, qhull_options="QJ")
        vertices = points[hull.vertices]
        return Hull(vertices=vertices, triangulation=Delaunay(vertices, qhull_options="QJ"))
    except (QhullError, ValueError) as e:
        logger.debug(f"No hull for {len(points)} points: {e}")
        return None


def overlaps(
    points_a: np.ndarray,
    hull_a: Optional[Hull],
    points_b: np.ndarray,
    hull_b: Optional[Hull]
) -> bool:
    """Symmetric overlap test between clouds A and B."""
    if hull_b is not None and hull_b.contains(points_a).any():
        return True
    if hull_a is not None and hull_a.contains(points_b).any():
        return True
    return False


@dataclass
class OverlapSelector:
    """Keep only reference entries that overlap the cloud being registered.

    Entries must expose ``points`` (Nx3, world frame) and ``hull``.
    """

    selected_count: int = 0
    excluded_count: int = 0

    def select(self, entries: Sequence[T], source_points: np.ndarray) -> List[T]:
        source_hull = hull_of(source_points)
        kept = [
            entry for entry in entries
            if overlaps(entry.points, entry.hull, source_points, source_hull)
        ]
        self.selected_count += len(kept)
        self.excluded_count += len(entries) - len(kept)
        if len(kept) < len(entries):
            logger.debug(f"Overlap filter kept {len(kept)} of {len(entries)} reference sets")
        return kept
