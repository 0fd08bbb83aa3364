"""Geospatial helper functions."""

from __future__ import annotations

import bisect
import math
from typing import Sequence

EARTH_RADIUS_M = 6_371_000.0
EARTH_RADIUS_KM = EARTH_RADIUS_M / 1000

LonLat = tuple[float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_m(a: LonLat, b: LonLat) -> float:
    """Great-circle distance in metres between two ``(lon, lat)`` positions.

    Raises ``ValueError`` for non-finite input instead of returning NaN.
    """

    lon1, lat1 = a
    lon2, lat2 = b
    if not all(math.isfinite(value) for value in (lon1, lat1, lon2, lat2)):
        raise ValueError(f"Non-finite coordinate in distance({a!r}, {b!r})")
    return haversine_km(lat1, lon1, lat2, lon2) * 1000


def polyline_length_m(points: Sequence[LonLat]) -> float:
    """Sum of great-circle distances over consecutive pairs; 0 for fewer than two points."""

    if len(points) < 2:
        return 0.0
    return sum(haversine_m(points[index - 1], points[index]) for index in range(1, len(points)))


def cumulative_lengths_m(points: Sequence[LonLat]) -> list[float]:
    """Path distance from the first point to each point; ``[0.0]`` for a single point."""

    totals = [0.0] if points else []
    for index in range(1, len(points)):
        totals.append(totals[-1] + haversine_m(points[index - 1], points[index]))
    return totals


def ensure_finite_points(points: Sequence[Sequence[float]]) -> list[LonLat]:
    """Validate and normalise a polyline into ``(lon, lat)`` float tuples."""

    normalised: list[LonLat] = []
    for index, point in enumerate(points):
        if len(point) < 2:
            raise ValueError(f"Point {index} must contain longitude and latitude, got {point!r}")
        lon, lat = float(point[0]), float(point[1])
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise ValueError(f"Point {index} has a non-finite coordinate: {point!r}")
        normalised.append((lon, lat))
    return normalised


def interpolate_along(
    points: Sequence[LonLat],
    fraction: float,
    cumulative: Sequence[float] | None = None,
) -> LonLat:
    """Return the position at ``fraction`` of the polyline's great-circle length.

    Within a single edge the position is interpolated linearly in lon/lat,
    which is accurate at the short edge lengths a hand-drawn route uses.

    Pass ``cumulative`` from :func:`cumulative_lengths_m` when sampling the
    same polyline repeatedly; each lookup is then a bisection.
    """

    if not points:
        raise ValueError("Cannot interpolate along an empty polyline.")
    if len(points) == 1 or fraction <= 0:
        return points[0]
    if fraction >= 1:
        return points[-1]

    totals = cumulative if cumulative is not None else cumulative_lengths_m(points)
    if len(totals) != len(points):
        raise ValueError("Cumulative lengths do not match the polyline.")
    total = totals[-1]
    if total == 0:
        return points[0]

    target = total * fraction
    if target <= 0:
        return points[0]
    # First vertex reached at or past the target; zero-length edges are never selected.
    index = bisect.bisect_left(totals, target)
    start = totals[index - 1]
    ratio = (target - start) / (totals[index] - start)
    (lon1, lat1), (lon2, lat2) = points[index - 1], points[index]
    return (lon1 + (lon2 - lon1) * ratio, lat1 + (lat2 - lat1) * ratio)
