"""Data models for pytourguide."""

from pytourguide.models._base import TourGuideModel
from pytourguide.models.guidance import GuidanceMode, GuidanceState, StartStrategy
from pytourguide.models.poi import POI, Coordinate, load_pois, sort_pois
from pytourguide.models.progress import TourProgress, TourSummary
from pytourguide.models.route import (
    Instruction,
    InstructionType,
    Route,
    RouteEndpoint,
    RouteFailure,
    RouteSegment,
    RouteSource,
)
from pytourguide.models.stored_route import POIFingerprint, RouteMetadata, StoredRoute, fingerprint_matches

__all__ = [
    "Coordinate",
    "GuidanceMode",
    "GuidanceState",
    "Instruction",
    "InstructionType",
    "POI",
    "POIFingerprint",
    "Route",
    "RouteEndpoint",
    "RouteFailure",
    "RouteMetadata",
    "RouteSegment",
    "RouteSource",
    "StartStrategy",
    "StoredRoute",
    "TourGuideModel",
    "TourProgress",
    "TourSummary",
    "fingerprint_matches",
    "load_pois",
    "sort_pois",
]
