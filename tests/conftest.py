from __future__ import annotations

import math
from typing import Any

import pytest

from pytourguide import geo
from pytourguide.config import TourGuideConfig
from pytourguide.models.poi import POI, Coordinate


class FakeOsrmTransport:
    """Answers every request with a dense straight line (about one point per 10 m)."""

    def __init__(self, spacing: float = 10.0) -> None:
        self._spacing = spacing
        self.calls: list[tuple[Coordinate, Coordinate]] = []

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> dict[str, Any]:
        self.calls.append((start, end))
        distance = geo.distance(start, end)
        count = max(1, math.ceil(distance / self._spacing))
        coords = [geo.interpolate(start, end, i / count) for i in range(count + 1)]
        return {
            "code": "Ok",
            "routes": [
                {
                    "distance": distance,
                    "duration": distance / 1.4,
                    "geometry": {"type": "LineString", "coordinates": [[c.lon, c.lat] for c in coords]},
                    "legs": [
                        {
                            "steps": [
                                {
                                    "distance": distance,
                                    "name": "Rue Diderot",
                                    "maneuver": {
                                        "type": "depart",
                                        "bearing_after": geo.bearing(start, end),
                                        "location": [start.lon, start.lat],
                                    },
                                },
                                {
                                    "distance": 0,
                                    "name": "",
                                    "maneuver": {"type": "arrive", "location": [end.lon, end.lat]},
                                },
                            ]
                        }
                    ],
                }
            ],
        }


@pytest.fixture
def config() -> TourGuideConfig:
    return TourGuideConfig(min_request_interval=0.0)


@pytest.fixture
def fake_transport() -> FakeOsrmTransport:
    return FakeOsrmTransport()


@pytest.fixture
def pois() -> list[POI]:
    # Three stops roughly 373 m apart along one parallel.
    return [
        POI(id="cathedral", name="Cathedral", coordinates=Coordinate.of(47.86, 5.330), order=1),
        POI(id="market", name="Covered Market", coordinates=Coordinate.of(47.86, 5.335), order=2),
        POI(id="ramparts", name="Ramparts", coordinates=Coordinate.of(47.86, 5.340), order=3),
    ]
