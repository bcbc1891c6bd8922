"""
Geospatial helpers for the nearby-driver query
==============================================

1. **Spatial bucketing** -- each driver position is stored with its H3 cell
   (resolution 8 by default, ~0.46 km edge).
2. **Candidate cells** -- a search disk of radius *r* around a point is
   covered by ``grid_disk(center, k)`` where ``k`` is derived from the mean
   hexagon edge length.  The database filters drivers by ``h3_cell IN (...)``.
3. **Exact filter** -- candidates are re-checked with the Haversine distance
   and sorted nearest first.

Complexity
----------
Let D = drivers in the candidate cells.

* Cell cover:  O(k^2)      -- ``3k(k+1) + 1`` cells
* Ranking:     O(D log D)

Great-circle distance stands in for road distance; a routing-service client
could replace ``haversine_km`` without touching callers.
"""

from __future__ import annotations

import math
from typing import Iterable, TypeVar

import h3

EARTH_RADIUS_KM = 6_371.0

T = TypeVar("T")


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def cell_for(lat: float, lng: float, resolution: int = 8) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def ring_size(radius_km: float, resolution: int = 8) -> int:
    """Number of rings needed so ``grid_disk`` covers *radius_km*."""
    edge_km = h3.average_hexagon_edge_length(resolution, unit="km")
    # Adjacent centres are sqrt(3) * edge apart; one extra ring covers a
    # search origin sitting on the border of its own cell.
    return max(1, math.ceil(radius_km / (math.sqrt(3) * edge_km)) + 1)


def cells_within(
    lat: float, lng: float, radius_km: float, resolution: int = 8
) -> list[str]:
    """Return the H3 cells covering a disk of *radius_km* around a point."""
    center = cell_for(lat, lng, resolution)
    return list(h3.grid_disk(center, ring_size(radius_km, resolution)))


def rank_by_distance(
    lat: float,
    lng: float,
    candidates: Iterable[tuple[T, float, float]],
    radius_km: float,
) -> list[tuple[T, float]]:
    """
    Filter ``(item, lat, lng)`` candidates to *radius_km* and sort them
    nearest first.  Returns ``(item, distance_km)`` pairs.
    """
    ranked: list[tuple[T, float]] = []
    for item, c_lat, c_lng in candidates:
        distance = haversine_km(lat, lng, c_lat, c_lng)
        if distance <= radius_km:
            ranked.append((item, distance))
    ranked.sort(key=lambda pair: pair[1])
    return ranked
