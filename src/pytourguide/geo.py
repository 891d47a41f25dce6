"""Great-circle geometry helpers.

All functions are pure and operate on :class:`~pytourguide.models.Coordinate`
values. Distances are metres, bearings are degrees clockwise from north.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from pytourguide._constants import COMPASS_POINTS
from pytourguide.models.poi import Coordinate

EARTH_RADIUS_M = 6_371_000.0


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two coordinates."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lon - a.lon)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Clamp: rounding can push h a hair above 1 for antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from *a* to *b*, in ``[0, 360)``."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_lambda = math.radians(b.lon - a.lon)

    y = math.sin(d_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def destination_point(origin: Coordinate, bearing_deg: float, distance_m: float) -> Coordinate:
    """Point reached travelling *distance_m* from *origin* on *bearing_deg*."""
    delta = distance_m / EARTH_RADIUS_M
    theta = math.radians(bearing_deg)
    phi1 = math.radians(origin.lat)
    lambda1 = math.radians(origin.lon)

    sin_phi2 = math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    phi2 = math.asin(max(-1.0, min(1.0, sin_phi2)))
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    lon = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
    return Coordinate(lat=math.degrees(phi2), lon=lon)


def bearing_to_compass(bearing_deg: float) -> str:
    """Map a bearing to one of eight compass directions ("north", ...)."""
    index = round((bearing_deg % 360.0) / 45.0) % len(COMPASS_POINTS)
    return COMPASS_POINTS[index]


def interpolate(a: Coordinate, b: Coordinate, fraction: float) -> Coordinate:
    """Linear interpolation in lat/lon space (fine at walking scale)."""
    return Coordinate(
        lat=a.lat + (b.lat - a.lat) * fraction,
        lon=a.lon + (b.lon - a.lon) * fraction,
    )


def path_length(coords: Sequence[Coordinate]) -> float:
    return sum(distance(coords[i], coords[i + 1]) for i in range(len(coords) - 1))


def _distance_to_leg(p: Coordinate, a: Coordinate, b: Coordinate) -> tuple[float, float]:
    """Distance from *p* to the leg a-b and the projection parameter ``t``.

    Uses a local equirectangular frame centred on *a*; accurate to well
    under a metre for legs of a few hundred metres.
    """
    cos_lat = math.cos(math.radians(a.lat))
    bx = math.radians(b.lon - a.lon) * cos_lat * EARTH_RADIUS_M
    by = math.radians(b.lat - a.lat) * EARTH_RADIUS_M
    px = math.radians(p.lon - a.lon) * cos_lat * EARTH_RADIUS_M
    py = math.radians(p.lat - a.lat) * EARTH_RADIUS_M

    leg_sq = bx * bx + by * by
    if leg_sq == 0.0:
        return distance(p, a), 0.0
    t = max(0.0, min(1.0, (px * bx + py * by) / leg_sq))
    return math.hypot(px - t * bx, py - t * by), t


def distance_to_path(position: Coordinate, coords: Sequence[Coordinate]) -> tuple[float, int]:
    """Distance from *position* to a polyline and the index of its nearest vertex.

    Returns ``(inf, -1)`` for an empty path.
    """
    if not coords:
        return math.inf, -1
    if len(coords) == 1:
        return distance(position, coords[0]), 0

    best_distance = math.inf
    best_index = 0
    for i in range(len(coords) - 1):
        d, t = _distance_to_leg(position, coords[i], coords[i + 1])
        if d < best_distance:
            best_distance = d
            best_index = i if t < 0.5 else i + 1
    return best_distance, best_index


def closest_point(position: Coordinate, coords: Sequence[Coordinate]) -> tuple[int, float]:
    """Index of and distance to the nearest vertex of *coords*."""
    best_index = -1
    best_distance = math.inf
    for i, coord in enumerate(coords):
        d = distance(position, coord)
        if d < best_distance:
            best_distance = d
            best_index = i
    return best_index, best_distance
