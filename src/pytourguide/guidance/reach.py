"""POI reached heuristics.

This module intentionally contains no state; the coordinator owns the
confirmation flow and the re-entrancy guard.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from pytourguide import geo
from pytourguide.config import ReachRadii
from pytourguide.models.poi import POI, Coordinate


class ReachMethod(StrEnum):
    DIRECT = "direct"
    ROUTE_END = "route_end"
    EXTENDED = "extended"


class ReachDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    poi: POI
    method: ReachMethod
    distance: float
    route_end_distance: float | None = None

    @property
    def requires_confirmation(self) -> bool:
        return self.method != ReachMethod.DIRECT


def evaluate_poi_reach(
    position: Coordinate,
    poi: POI,
    radii: ReachRadii,
    *,
    route_end: Coordinate | None = None,
) -> ReachDecision | None:
    """Decide whether *position* counts as having reached *poi*.

    Signals, strongest first:

    - within the POI radius (or ``radii.direct``): reached, no confirmation;
    - within ``radii.route_end`` of where the calculated route ends and no
      further than ``radii.route_end_safety`` from the POI: the POI itself
      may be unreachable on foot, ask the user;
    - within ``radii.extended`` of the POI: ask the user.
    """
    distance = geo.distance(position, poi.coordinates)
    if distance <= poi.radius_or(radii.direct):
        return ReachDecision(poi=poi, method=ReachMethod.DIRECT, distance=distance)

    if route_end is not None:
        end_distance = geo.distance(position, route_end)
        if end_distance <= radii.route_end and distance <= radii.route_end_safety:
            return ReachDecision(
                poi=poi,
                method=ReachMethod.ROUTE_END,
                distance=distance,
                route_end_distance=end_distance,
            )

    if distance <= radii.extended:
        return ReachDecision(poi=poi, method=ReachMethod.EXTENDED, distance=distance)
    return None
