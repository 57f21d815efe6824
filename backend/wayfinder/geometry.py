from __future__ import annotations

import math
from collections.abc import Sequence
from typing import NamedTuple

EARTH_RADIUS_M = 6_371_000.0

# Guards the projection denominator for zero-length segments.
_MIN_SEGMENT_NORM = 1e-12


class Coordinate(NamedTuple):
    lat: float
    lng: float


class Projection(NamedTuple):
    t: float
    point: Coordinate


class SegmentHit(NamedTuple):
    t: float
    point: Coordinate
    distance_m: float


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lng2 - lng1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates, in meters."""
    return haversine_m(a.lat, a.lng, b.lat, b.lng)


def project_onto_segment(a: Coordinate, b: Coordinate, p: Coordinate) -> Projection:
    """Project ``p`` onto the infinite line through ``a`` and ``b``.

    lng/lat are treated as planar x/y, which is accurate enough over the few
    hundred meters a cemetery spans. ``t`` is not clamped: values below 0 or
    above 1 fall before ``a`` or past ``b``.
    """
    vx = b.lng - a.lng
    vy = b.lat - a.lat
    wx = p.lng - a.lng
    wy = p.lat - a.lat
    denom = (vx * vx + vy * vy) or _MIN_SEGMENT_NORM
    t = (wx * vx + wy * vy) / denom
    return Projection(t=t, point=Coordinate(lat=a.lat + t * vy, lng=a.lng + t * vx))


def closest_point_on_segment(a: Coordinate, b: Coordinate, p: Coordinate) -> SegmentHit:
    """Clamped projection of ``p`` onto segment ``a``-``b``.

    Endpoints are returned exactly (not recomputed) when the projection
    clamps, so callers can compare them against polyline vertices.
    """
    t = project_onto_segment(a, b, p).t
    if t <= 0.0:
        t = 0.0
        point = a
    elif t >= 1.0:
        t = 1.0
        point = b
    else:
        point = Coordinate(lat=a.lat + (b.lat - a.lat) * t, lng=a.lng + (b.lng - a.lng) * t)
    return SegmentHit(t=t, point=point, distance_m=distance_m(point, p))


def polyline_length_m(points: Sequence[Coordinate]) -> float:
    total = 0.0
    for prev, cur in zip(points, points[1:]):
        total += distance_m(prev, cur)
    return total


def cumulative_lengths_m(points: Sequence[Coordinate]) -> list[float]:
    """Along-route distance at each vertex, starting at 0.0."""
    out: list[float] = [0.0] * len(points)
    for idx in range(1, len(points)):
        out[idx] = out[idx - 1] + distance_m(points[idx - 1], points[idx])
    return out
