"""Tests for the convex-hull overlap test."""
from dataclasses import dataclass

import numpy as np

from localization.overlap import OverlapSelector, hull_of, overlaps
from tests.mocks import make_cloud


@dataclass
class Entry:
    points: np.ndarray

    @property
    def hull(self):
        return hull_of(self.points)


class TestHull:

    def test_contains(self):
        hull = hull_of(make_cloud(100, scale=1.0))
        mask = hull.contains(np.array([[0.0, 0.0, 0.0], [5.0, 5.0, 5.0]]))
        np.testing.assert_array_equal(mask, [True, False])

    def test_too_few_points(self):
        assert hull_of(np.zeros((3, 3))) is None

    def test_flat_cloud_still_has_hull(self):
        points = make_cloud(50)
        points[:, 2] = 0.0
        assert hull_of(points) is not None

    def test_empty_query(self):
        hull = hull_of(make_cloud(20))
        assert hull.contains(np.zeros((0, 3))).shape == (0,)


class TestOverlaps:

    def test_overlapping_clouds(self):
        a = make_cloud(100, seed=1)
        b = make_cloud(100, seed=2, offset=(0.5, 0.0, 0.0))
        assert overlaps(a, hull_of(a), b, hull_of(b))
        assert overlaps(b, hull_of(b), a, hull_of(a))

    def test_disjoint_clouds(self):
        a = make_cloud(100, seed=1)
        b = make_cloud(100, seed=2, offset=(10.0, 0.0, 0.0))
        assert not overlaps(a, hull_of(a), b, hull_of(b))
        assert not overlaps(b, hull_of(b), a, hull_of(a))

    def test_symmetric_when_only_one_hull_contains(self):
        big = make_cloud(200, seed=1, scale=5.0)
        # Small cloud inside the big one; none of the big points are inside the small hull
        small = make_cloud(50, seed=2, scale=0.01)
        assert overlaps(big, hull_of(big), small, hull_of(small))
        assert overlaps(small, hull_of(small), big, hull_of(big))

    def test_degenerate_hulls(self):
        a = np.zeros((2, 3))
        b = make_cloud(10)
        assert not overlaps(a, None, b, None)


class TestOverlapSelector:

    def test_select(self):
        near = Entry(make_cloud(100, seed=1))
        far = Entry(make_cloud(100, seed=2, offset=(20.0, 0.0, 0.0)))
        selector = OverlapSelector()

        kept = selector.select([near, far], make_cloud(100, seed=3, offset=(0.3, 0.0, 0.0)))

        assert kept == [near]
        assert selector.selected_count == 1
        assert selector.excluded_count == 1

    def test_select_none(self):
        selector = OverlapSelector()
        kept = selector.select([Entry(make_cloud(50))], make_cloud(50, offset=(9.0, 9.0, 9.0)))
        assert kept == []
