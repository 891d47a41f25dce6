from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from pytourguide.exceptions import RoutingFailureKind
from pytourguide.models import (
    POI,
    Coordinate,
    GuidanceState,
    Instruction,
    InstructionType,
    Route,
    RouteEndpoint,
    RouteFailure,
    RouteSegment,
    RouteSource,
    load_pois,
)


def _segment(start: Coordinate, end: Coordinate, *, source: RouteSource = RouteSource.LIVE) -> RouteSegment:
    return RouteSegment(
        start=RouteEndpoint(coordinates=start),
        end=RouteEndpoint(coordinates=end),
        geometry=[start, end],
        distance_meters=100.0,
        duration_seconds=70.0,
        source=source,
        failure=RouteFailure(kind=RoutingFailureKind.TIMEOUT) if source == RouteSource.FALLBACK else None,
    )


A = Coordinate.of(47.86, 5.330)
B = Coordinate.of(47.86, 5.335)
C = Coordinate.of(47.86, 5.340)


def test_poi_accepts_flat_coordinates_and_numeric_id() -> None:
    poi = POI.model_validate({"id": 7, "name": " Tower ", "lat": 47.86, "lng": 5.33})

    assert poi.id == "7"
    assert poi.name == "Tower"
    assert poi.coordinates == A


@pytest.mark.parametrize(
    "payload",
    [
        {"id": "x", "name": "   ", "lat": 47.86, "lon": 5.33},
        {"id": "", "name": "Tower", "lat": 47.86, "lon": 5.33},
        {"id": True, "name": "Tower", "lat": 47.86, "lon": 5.33},
        {"id": "x", "name": "Tower", "lat": 95.0, "lon": 5.33},
        {"id": "x", "name": "Tower", "lat": 47.86, "lon": 5.33, "colour": "red"},
    ],
)
def test_poi_rejects_invalid_payloads(payload: dict) -> None:
    with pytest.raises(ValidationError):
        POI.model_validate(payload)


def test_load_pois_sorts_by_order(tmp_path: Path) -> None:
    path = tmp_path / "pois.json"
    path.write_text(
        json.dumps(
            {
                "pois": [
                    {"id": "b", "name": "Second", "lat": 47.86, "lon": 5.335, "order": 2},
                    {"id": "a", "name": "First", "lat": 47.86, "lon": 5.330, "order": 1, "proximityRadius": 15},
                ]
            }
        ),
        encoding="utf-8",
    )

    pois = load_pois(path)

    assert [poi.id for poi in pois] == ["a", "b"]
    assert pois[0].radius_or(30.0) == 15
    assert pois[1].radius_or(30.0) == 30.0


def test_route_rejects_gaps_between_segments() -> None:
    with pytest.raises(ValidationError, match="not contiguous"):
        Route.from_segments([_segment(A, B), _segment(C, A)])


def test_route_from_segments_derives_provider_and_failure() -> None:
    live = Route.from_segments([_segment(A, B), _segment(B, C)])
    mixed = Route.from_segments([_segment(A, B), _segment(B, C, source=RouteSource.FALLBACK)])

    assert live.provider == RouteSource.LIVE
    assert live.failure is None
    assert live.total_distance == 200.0
    assert mixed.provider == RouteSource.FALLBACK
    assert mixed.fallback_segments == 1
    assert mixed.failure is not None
    assert mixed.failure.kind == RoutingFailureKind.TIMEOUT
    assert mixed.is_synthetic


def test_route_coordinates_skip_join_points() -> None:
    route = Route.from_segments([_segment(A, B), _segment(B, C)])

    assert route.coordinates() == [A, B, C]
    assert route.start.coordinates == A
    assert route.end.coordinates == C


def test_unknown_instruction_type_maps_to_other() -> None:
    instruction = Instruction.model_validate({"type": "rotary", "text": "Take the rotary", "location": A})

    assert instruction.type == InstructionType.OTHER


def test_json_dump_uses_camel_case() -> None:
    dumped = Route.from_segments([_segment(A, B)]).to_json_dict()

    assert "totalDistance" in dumped
    assert "distanceMeters" in dumped["segments"][0]
    assert Route.model_validate(dumped).segments[0].geometry == [A, B]


def test_guidance_state_target_wraps_around() -> None:
    pois = [POI(id=str(i), name=f"Stop {i}", coordinates=A) for i in range(3)]
    state = GuidanceState(tour_sequence=pois, tour_step=4)

    assert not state.is_active
    assert state.target_poi == pois[1]
    assert GuidanceState().target_poi is None
