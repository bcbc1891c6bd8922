"""Unit tests for distance, H3 cell cover and nearby ranking."""

import h3

from ridehail.domain.geo import (
    cell_for,
    cells_within,
    haversine_km,
    rank_by_distance,
    ring_size,
)
from tests.helpers import CENTER, DROPOFF, FAR, NEAR


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(19.0, -99.0, 19.0, -99.0) == 0.0

    def test_known_distance(self):
        # Zócalo -> Ángel de la Independencia ~3.7 km
        d = haversine_km(*CENTER, *DROPOFF)
        assert 3.0 < d < 4.5

    def test_symmetric(self):
        d1 = haversine_km(19.0, -99.0, 20.0, -98.0)
        d2 = haversine_km(20.0, -98.0, 19.0, -99.0)
        assert abs(d1 - d2) < 1e-6


class TestCells:
    def test_returns_valid_cell(self):
        cell = cell_for(*CENTER, 8)
        assert h3.is_valid_cell(cell)
        assert h3.get_resolution(cell) == 8

    def test_nearby_points_same_cell(self):
        assert cell_for(19.43260, -99.13320, 8) == cell_for(19.43265, -99.13325, 8)

    def test_ring_size_grows_with_radius(self):
        assert ring_size(1.0, 8) < ring_size(5.0, 8)
        assert ring_size(0.01, 8) >= 1

    def test_cover_contains_points_inside_radius(self):
        cells = set(cells_within(*CENTER, 3.0, 8))
        assert cell_for(*CENTER, 8) in cells
        assert cell_for(*NEAR, 8) in cells
        # ~2.9 km due west
        assert cell_for(19.4326, -99.1607, 8) in cells

    def test_cover_excludes_far_points(self):
        cells = set(cells_within(*CENTER, 3.0, 8))
        assert cell_for(*FAR, 8) not in cells


class TestRankByDistance:
    def test_filters_and_sorts(self):
        candidates = [
            ("far", *FAR),
            ("dropoff", *DROPOFF),
            ("near", *NEAR),
        ]
        ranked = rank_by_distance(*CENTER, candidates, radius_km=5.0)
        assert [item for item, _ in ranked] == ["near", "dropoff"]
        assert ranked[0][1] < ranked[1][1]

    def test_empty(self):
        assert rank_by_distance(*CENTER, [], radius_km=5.0) == []
