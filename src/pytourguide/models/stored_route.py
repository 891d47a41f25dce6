"""Persisted tour routes."""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import Field

from pytourguide._constants import POI_MATCH_TOLERANCE_DEG
from pytourguide.models._base import AwareDatetime, TourGuideModel, utcnow
from pytourguide.models.poi import POI
from pytourguide.models.route import Route, RouteSource


class POIFingerprint(TourGuideModel):
    """Identity of one POI at the time a route was calculated."""

    id: str
    lat: float
    lon: float

    @classmethod
    def from_poi(cls, poi: POI) -> POIFingerprint:
        return cls(id=poi.id, lat=poi.coordinates.lat, lon=poi.coordinates.lon)

    def matches(self, poi: POI, tolerance: float = POI_MATCH_TOLERANCE_DEG) -> bool:
        return (
            self.id == poi.id
            and abs(self.lat - poi.coordinates.lat) < tolerance
            and abs(self.lon - poi.coordinates.lon) < tolerance
        )


def fingerprint_matches(fingerprint: Sequence[POIFingerprint], pois: Sequence[POI]) -> bool:
    """True when *fingerprint* describes exactly *pois*, in order."""
    if len(fingerprint) != len(pois):
        return False
    return all(fp.matches(poi) for fp, poi in zip(fingerprint, pois, strict=True))


class RouteMetadata(TourGuideModel):
    """Index entry for a stored route; readable without loading the route."""

    route_id: str
    version: str
    created_at: AwareDatetime
    poi_fingerprint: list[POIFingerprint] = Field(default_factory=list)
    poi_count: int = Field(default=0, ge=0)
    total_distance: float = Field(default=0.0, ge=0)
    total_duration: float = Field(default=0.0, ge=0)
    segment_count: int = Field(default=0, ge=0)
    provider: RouteSource = RouteSource.LIVE
    fallback_segments: int = Field(default=0, ge=0)


class StoredRoute(TourGuideModel):
    id: str
    version: str
    created_at: AwareDatetime = Field(default_factory=utcnow)
    route: Route
    metadata: RouteMetadata
