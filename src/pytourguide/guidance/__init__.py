"""Turn-by-turn navigation, guidance modes and tour progress."""

from pytourguide.guidance.coordinator import GuidanceCoordinator, GuidanceRequest, StartResult
from pytourguide.guidance.events import EventChannel, GuidanceEvent, GuidanceEventType, GuidanceListener
from pytourguide.guidance.navigation import NavigationEngine, NavigationSnapshot, NavigationStatus, NavigationUpdate
from pytourguide.guidance.progress import TourProgressTracker
from pytourguide.guidance.reach import ReachDecision, ReachMethod, evaluate_poi_reach

__all__ = [
    "EventChannel",
    "GuidanceCoordinator",
    "GuidanceEvent",
    "GuidanceEventType",
    "GuidanceListener",
    "GuidanceRequest",
    "NavigationEngine",
    "NavigationSnapshot",
    "NavigationStatus",
    "NavigationUpdate",
    "ReachDecision",
    "ReachMethod",
    "StartResult",
    "TourProgressTracker",
    "evaluate_poi_reach",
]
