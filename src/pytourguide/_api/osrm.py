"""OSRM route service request building and response parsing.

Endpoint:
  - GET /route/v1/{profile}/{lon},{lat};{lon},{lat}

Response shape (abridged)::

    {"code": "Ok",
     "routes": [{"distance": 812.3, "duration": 584.9,
                 "geometry": {"type": "LineString", "coordinates": [[lon, lat], ...]},
                 "legs": [{"steps": [{"distance": 40.1, "name": "Rue Diderot",
                                      "maneuver": {"type": "depart", "modifier": "left",
                                                   "bearing_after": 93, "location": [lon, lat]}},
                                     ...]}]}]}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pytourguide import geo
from pytourguide.exceptions import RoutingFailureKind, RoutingResponseError
from pytourguide.models.poi import Coordinate
from pytourguide.models.route import (
    Instruction,
    InstructionType,
    RouteEndpoint,
    RouteSegment,
    RouteSource,
)

_logger = logging.getLogger(__name__)

ROUTE_QUERY: dict[str, str] = {
    "steps": "true",
    "geometries": "geojson",
    "overview": "full",
    "alternatives": "false",
}

_NO_ROUTE_CODES = frozenset({"NoRoute", "NoSegment", "NoMatch"})

_MANEUVER_TYPES: dict[str, InstructionType] = {
    "depart": InstructionType.DEPART,
    "arrive": InstructionType.ARRIVE,
    "turn": InstructionType.TURN,
    "continue": InstructionType.CONTINUE,
    "new name": InstructionType.NEW_NAME,
    "merge": InstructionType.MERGE,
    "fork": InstructionType.FORK,
    "end of road": InstructionType.END_OF_ROAD,
    "roundabout": InstructionType.ROUNDABOUT,
    "rotary": InstructionType.ROUNDABOUT,
    "roundabout turn": InstructionType.ROUNDABOUT,
    "exit roundabout": InstructionType.ROUNDABOUT,
    "exit rotary": InstructionType.ROUNDABOUT,
}


def _safe_float(value: Any) -> float | None:
    """Convert a value to float, returning None on failure."""
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (ValueError, TypeError):
        return None
    if result != result:  # NaN check
        return None
    return result


def build_route_path(profile: str, start: Coordinate, end: Coordinate) -> str:
    """Path of a two-point route request (OSRM wants ``lon,lat``)."""
    return f"/route/v1/{profile}/{start.lon:.6f},{start.lat:.6f};{end.lon:.6f},{end.lat:.6f}"


def _instruction_text(
    kind: InstructionType,
    modifier: str | None,
    way_name: str | None,
    maneuver: Mapping[str, Any],
    destination: str,
) -> str:
    onto = f" onto {way_name}" if way_name else ""
    if kind == InstructionType.DEPART:
        heading = _safe_float(maneuver.get("bearing_after"))
        direction = geo.bearing_to_compass(heading) if heading is not None else "out"
        return f"Head {direction}" + (f" on {way_name}" if way_name else "")
    if kind == InstructionType.ARRIVE:
        return f"You have arrived at {destination}"
    if kind == InstructionType.TURN:
        if modifier == "uturn":
            return "Make a U-turn" + onto
        if modifier == "straight":
            return "Go straight" + onto
        return f"Turn {modifier or 'ahead'}" + onto
    if kind == InstructionType.ROUNDABOUT:
        exit_number = maneuver.get("exit")
        text = "Enter the roundabout"
        if exit_number:
            text += f" and take exit {exit_number}"
        return text + onto
    if kind == InstructionType.FORK:
        return f"Keep {modifier or 'straight'} at the fork" + onto
    if kind == InstructionType.MERGE:
        return f"Merge {modifier or ''}".rstrip() + onto
    if kind == InstructionType.END_OF_ROAD:
        return f"At the end of the road, turn {modifier or 'ahead'}" + onto
    if modifier and modifier != "straight":
        return f"Continue {modifier}" + onto
    return "Continue" + (onto or " straight")


def _parse_step(step: Any, destination: str) -> Instruction | None:
    if not isinstance(step, Mapping):
        return None
    maneuver = step.get("maneuver")
    if not isinstance(maneuver, Mapping):
        return None
    location = maneuver.get("location")
    if not isinstance(location, (list, tuple)):
        return None

    raw_type = str(maneuver.get("type") or "")
    kind = _MANEUVER_TYPES.get(raw_type, InstructionType.OTHER)
    modifier = maneuver.get("modifier") or None
    way_name = step.get("name") or None
    try:
        return Instruction(
            type=kind,
            text=_instruction_text(kind, modifier, way_name, maneuver, destination),
            distance_meters=max(0.0, _safe_float(step.get("distance")) or 0.0),
            location=Coordinate.from_lon_lat(location),
            way_name=way_name,
            modifier=modifier,
        )
    except (ValueError, TypeError):
        _logger.debug("Skipping unparsable step: %s", step, exc_info=True)
        return None


def _default_instructions(geometry: list[Coordinate], destination: str) -> list[Instruction]:
    direction = geo.bearing_to_compass(geo.bearing(geometry[0], geometry[1]))
    return [
        Instruction(type=InstructionType.DEPART, text=f"Head {direction}", location=geometry[0]),
        Instruction(type=InstructionType.ARRIVE, text=f"You have arrived at {destination}", location=geometry[-1]),
    ]


def parse_route_response(
    body: Any,
    start: RouteEndpoint,
    end: RouteEndpoint,
    *,
    endpoint: str = "",
) -> RouteSegment:
    """Convert an OSRM route response into a live :class:`RouteSegment`.

    Raises :class:`RoutingResponseError` when the body does not describe a
    usable route.
    """
    if not isinstance(body, Mapping):
        raise RoutingResponseError("Routing response is not a JSON object", endpoint=endpoint)

    code = body.get("code")
    if code is not None and code != "Ok":
        kind = RoutingFailureKind.NOT_FOUND if code in _NO_ROUTE_CODES else RoutingFailureKind.UNKNOWN
        raise RoutingResponseError(
            f"Routing API returned {code}: {body.get('message', '')}".rstrip(": "),
            kind=kind,
            endpoint=endpoint,
        )

    routes = body.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], Mapping):
        raise RoutingResponseError(
            "Routing response has no route",
            kind=RoutingFailureKind.NOT_FOUND,
            endpoint=endpoint,
        )
    route = routes[0]

    geometry_obj = route.get("geometry")
    raw_coords = geometry_obj.get("coordinates") if isinstance(geometry_obj, Mapping) else None
    if not isinstance(raw_coords, list):
        raise RoutingResponseError("Route geometry is missing or not GeoJSON", endpoint=endpoint)
    try:
        geometry = [Coordinate.from_lon_lat(pair) for pair in raw_coords]
    except (ValueError, TypeError) as exc:
        raise RoutingResponseError(f"Route geometry is malformed: {exc}", endpoint=endpoint) from exc
    if len(geometry) < 2:
        raise RoutingResponseError("Route geometry has fewer than two points", endpoint=endpoint)

    distance = _safe_float(route.get("distance"))
    duration = _safe_float(route.get("duration"))
    if distance is None or duration is None:
        raise RoutingResponseError("Route distance or duration is missing", endpoint=endpoint)

    destination = end.name or "your destination"
    instructions: list[Instruction] = []
    legs = route.get("legs")
    for leg in legs if isinstance(legs, list) else []:
        steps = leg.get("steps") if isinstance(leg, Mapping) else None
        for step in steps if isinstance(steps, list) else []:
            instruction = _parse_step(step, destination)
            if instruction is not None:
                instructions.append(instruction)
    if not instructions:
        instructions = _default_instructions(geometry, destination)

    try:
        return RouteSegment(
            start=start,
            end=end,
            geometry=geometry,
            instructions=instructions,
            distance_meters=max(0.0, distance),
            duration_seconds=max(0.0, duration),
            source=RouteSource.LIVE,
        )
    except ValidationError as exc:
        raise RoutingResponseError(f"Route failed validation: {exc}", endpoint=endpoint) from exc
