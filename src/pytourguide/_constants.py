"""Internal constants shared across the library."""

from datetime import timedelta

OSRM_BASE_URL = "https://router.project-osrm.org"
USER_AGENT = "pytourguide/1.0 (+https://github.com/pytourguide/pytourguide)"

#: Mean walking speed used for synthetic duration estimates.
WALKING_SPEED_MPS = 1.4

# ------------------------------------------------------------------
# Persisted route layout
# ------------------------------------------------------------------

ROUTE_FORMAT_VERSION = "1.0.0"
ROUTE_KEY_PREFIX = "route:"
ROUTE_INDEX_KEY = "route-index"
ROUTE_VERSION_KEY = "route-version"
TOUR_PROGRESS_KEY = "tour-progress"

#: Stored POI fingerprints match when coordinates differ by less than this.
POI_MATCH_TOLERANCE_DEG = 1e-5

#: Stored tour routes older than this are flagged for recalculation.
ROUTE_MAX_AGE = timedelta(days=7)

#: Tolerance for segment contiguity (end of one == start of next).
SEGMENT_JOIN_TOLERANCE_M = 1.0

# ------------------------------------------------------------------
# Compass
# ------------------------------------------------------------------

COMPASS_POINTS: tuple[str, ...] = (
    "north",
    "northeast",
    "east",
    "southeast",
    "south",
    "southwest",
    "west",
    "northwest",
)
