"""Route persistence and stored-route resolution."""

from pytourguide.storage.backends import JsonFileBackend, KeyValueBackend, MemoryBackend
from pytourguide.storage.resolver import (
    ClosestRoutePoint,
    OnRouteCheck,
    RouteUpdateReason,
    RouteUpdateStatus,
    StoredRouteResolver,
    TourRouteOptions,
    TourRouteResult,
)
from pytourguide.storage.store import RouteStore, StoreStats, is_version_compatible, validate_route

__all__ = [
    "ClosestRoutePoint",
    "JsonFileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "OnRouteCheck",
    "RouteStore",
    "RouteUpdateReason",
    "RouteUpdateStatus",
    "StoreStats",
    "StoredRouteResolver",
    "TourRouteOptions",
    "TourRouteResult",
    "is_version_compatible",
    "validate_route",
]
