"""Synthetic walking routes used when the routing API is unavailable."""

from __future__ import annotations

import math
import random

from pytourguide import geo
from pytourguide._cache import cache_key
from pytourguide.models.poi import Coordinate
from pytourguide.models.route import (
    Instruction,
    InstructionType,
    RouteEndpoint,
    RouteFailure,
    RouteSegment,
    RouteSource,
)

MIN_WAYPOINT_LEGS = 2
MAX_WAYPOINT_LEGS = 8


def _rng_for(start: Coordinate, end: Coordinate, seed: int) -> random.Random:
    # Seeded per endpoint pair: the same request always yields the same route.
    return random.Random(f"{seed}:{cache_key(start, end)}")


def synthesize_waypoints(
    start: Coordinate,
    end: Coordinate,
    *,
    spacing: float = 200.0,
    jitter: float = 15.0,
    seed: int = 0,
) -> list[Coordinate]:
    """Straight-line path with one waypoint per *spacing* metres.

    Intermediate points are pushed sideways by up to *jitter* metres so the
    path does not look ruler-drawn on a map. Start and end are exact.
    """
    total = geo.distance(start, end)
    legs = max(MIN_WAYPOINT_LEGS, min(MAX_WAYPOINT_LEGS, math.floor(total / spacing) if spacing > 0 else 0))
    # Never push a waypoint further sideways than a tenth of its leg.
    max_offset = min(jitter, total / legs * 0.1)
    heading = geo.bearing(start, end)
    rng = _rng_for(start, end, seed)

    waypoints = [start]
    for i in range(1, legs):
        point = geo.interpolate(start, end, i / legs)
        offset = (rng.random() - 0.5) * 2 * max_offset
        if offset:
            point = geo.destination_point(point, heading + 90.0, offset)
        waypoints.append(point)
    waypoints.append(end)
    return waypoints


def synthesize_segment(
    start: RouteEndpoint,
    end: RouteEndpoint,
    failure: RouteFailure,
    *,
    walking_speed: float = 1.4,
    spacing: float = 200.0,
    jitter: float = 15.0,
    seed: int = 0,
) -> RouteSegment:
    """Build a fallback segment with depart/continue/arrive instructions."""
    total = geo.distance(start.coordinates, end.coordinates)
    waypoints = synthesize_waypoints(
        start.coordinates,
        end.coordinates,
        spacing=spacing,
        jitter=jitter,
        seed=seed,
    )
    direction = geo.bearing_to_compass(geo.bearing(start.coordinates, end.coordinates))
    destination = end.name or "your destination"

    instructions = [
        Instruction(
            type=InstructionType.DEPART,
            text=f"Head {direction}",
            distance_meters=round(total * 0.1),
            location=start.coordinates,
        ),
        Instruction(
            type=InstructionType.CONTINUE,
            text=f"Continue {direction} towards {destination}",
            distance_meters=round(total * 0.7),
            location=waypoints[len(waypoints) // 2],
        ),
        Instruction(
            type=InstructionType.ARRIVE,
            text=f"You have arrived at {destination}",
            distance_meters=0.0,
            location=end.coordinates,
        ),
    ]

    return RouteSegment(
        start=start,
        end=end,
        geometry=waypoints,
        instructions=instructions,
        distance_meters=total,
        duration_seconds=round(total / walking_speed),
        source=RouteSource.FALLBACK,
        failure=failure,
    )
