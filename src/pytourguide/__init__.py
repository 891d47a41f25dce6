"""pytourguide - Async pedestrian guidance for POI walking tours."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytourguide")
except PackageNotFoundError:
    __version__ = "0+local"
from pytourguide.client import TourGuideClient
from pytourguide.config import ReachRadii, TourGuideConfig
from pytourguide.exceptions import (
    InvalidStoredRouteError,
    NoRouteAvailableError,
    RouteCalculationInProgressError,
    RouteStorageError,
    RouteVersionIncompatibleError,
    RoutingApiRejectedError,
    RoutingError,
    RoutingFailureKind,
    RoutingNetworkError,
    RoutingResponseError,
    RoutingTimeoutError,
    TourGuideConfigError,
    TourGuideError,
)
from pytourguide.guidance import (
    EventChannel,
    GuidanceCoordinator,
    GuidanceEvent,
    GuidanceEventType,
    GuidanceRequest,
    NavigationEngine,
    StartResult,
    TourProgressTracker,
)
from pytourguide.models import (
    POI,
    Coordinate,
    GuidanceMode,
    GuidanceState,
    Instruction,
    InstructionType,
    Route,
    RouteEndpoint,
    RouteSegment,
    RouteSource,
    StartStrategy,
    StoredRoute,
    TourProgress,
    load_pois,
)
from pytourguide.provider import RouteProvider
from pytourguide.session import GuidanceSession
from pytourguide.simulation import simulate_walk
from pytourguide.storage import JsonFileBackend, MemoryBackend, RouteStore, StoredRouteResolver

__all__ = [
    "POI",
    "Coordinate",
    "EventChannel",
    "GuidanceCoordinator",
    "GuidanceEvent",
    "GuidanceEventType",
    "GuidanceMode",
    "GuidanceRequest",
    "GuidanceSession",
    "GuidanceState",
    "Instruction",
    "InstructionType",
    "InvalidStoredRouteError",
    "JsonFileBackend",
    "MemoryBackend",
    "NavigationEngine",
    "NoRouteAvailableError",
    "ReachRadii",
    "Route",
    "RouteCalculationInProgressError",
    "RouteEndpoint",
    "RouteProvider",
    "RouteSegment",
    "RouteSource",
    "RouteStorageError",
    "RouteStore",
    "RouteVersionIncompatibleError",
    "RoutingApiRejectedError",
    "RoutingError",
    "RoutingFailureKind",
    "RoutingNetworkError",
    "RoutingResponseError",
    "RoutingTimeoutError",
    "StartResult",
    "StartStrategy",
    "StoredRoute",
    "StoredRouteResolver",
    "TourGuideClient",
    "TourGuideConfig",
    "TourGuideConfigError",
    "TourGuideError",
    "TourProgress",
    "TourProgressTracker",
    "__version__",
    "load_pois",
    "simulate_walk",
]
