"""Client configuration for pytourguide."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from pytourguide._constants import OSRM_BASE_URL, WALKING_SPEED_MPS
from pytourguide.exceptions import TourGuideConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: type[float] | type[int]) -> Any:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise TourGuideConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class ReachRadii:
    """Distances used to decide that the user reached a POI.

    The values were tuned in the field; keep them adjustable.

    Parameters
    ----------
    direct : float
        Auto-confirm when this close to the POI itself. A POI's own
        ``proximity_radius`` takes precedence.
    route_end : float
        Ask for confirmation when this close to the end of the calculated
        route (the POI may be inside a building the route cannot enter) ...
    route_end_safety : float
        ... as long as the POI is no further away than this.
    extended : float
        Last resort: ask for confirmation when this close to the POI.
    """

    direct: float = 30.0
    route_end: float = 20.0
    route_end_safety: float = 200.0
    extended: float = 120.0


@dataclasses.dataclass(frozen=True)
class TourGuideConfig:
    """Engine configuration.

    Parameters
    ----------
    routing_base_url : str
        Base URL of an OSRM-compatible routing server.
    routing_profile : str
        OSRM profile segment of the request path.
    routing_api_key : str or None
        Sent as ``Authorization`` header when set (hosted OSRM gateways).
    request_timeout : float
        Seconds before an outbound routing request counts as failed.
    min_request_interval : float
        Minimum spacing in seconds between outbound routing requests.
    cache_size : int
        Maximum number of cached routes (FIFO eviction).
    cache_precision : int
        Decimal places of the coordinates forming a cache key.
    walking_speed : float
        Metres per second for synthetic duration estimates.
    fallback_seed : int
        Seed for the lateral jitter of synthesized fallback routes.
    fallback_waypoint_spacing : float
        Roughly one synthetic waypoint per this many metres.
    fallback_jitter : float
        Maximum lateral offset in metres of a synthetic waypoint.
    reroute_threshold : float
        Deviation in metres from the active segment that triggers a reroute.
    instruction_announce_distance : float
        Announce an instruction when this close to its location.
    deviation_threshold : float
        Distance from the main tour route that switches to back-on-track.
    return_threshold : float
        Distance from the main tour route that ends back-on-track.
    rejoin_lookahead : int
        Route coordinates past the closest one considered as reconnection point.
    rejoin_slack : float
        Extra metres accepted for a reconnection point further along the route.
    approach_alert_distance : float
        One-time "approaching" alert distance for tour progress.
    poi_advance_delay : float
        Seconds between reaching a POI and announcing the next one.
    route_max_age_days : float
        Stored routes older than this are reported as needing an update.
    prefer_stored : bool
        Start tours from a matching stored route when one exists.
    storage_path : str or None
        JSON file used as persistent key-value backend. In-memory when unset.
    reach : ReachRadii
        POI reached heuristics.
    """

    routing_base_url: str = OSRM_BASE_URL
    routing_profile: str = "foot"
    routing_api_key: str | None = None
    request_timeout: float = 10.0
    min_request_interval: float = 1.0
    cache_size: int = 100
    cache_precision: int = 5
    walking_speed: float = WALKING_SPEED_MPS
    fallback_seed: int = 0
    fallback_waypoint_spacing: float = 200.0
    fallback_jitter: float = 15.0
    reroute_threshold: float = 50.0
    instruction_announce_distance: float = 100.0
    deviation_threshold: float = 50.0
    return_threshold: float = 30.0
    rejoin_lookahead: int = 10
    rejoin_slack: float = 200.0
    approach_alert_distance: float = 100.0
    poi_advance_delay: float = 0.0
    route_max_age_days: float = 7.0
    prefer_stored: bool = True
    storage_path: str | None = None
    reach: ReachRadii = dataclasses.field(default_factory=ReachRadii)

    def __post_init__(self) -> None:
        if self.cache_size < 1:
            raise TourGuideConfigError("cache_size must be at least 1")
        if self.request_timeout <= 0:
            raise TourGuideConfigError("request_timeout must be positive")
        if self.min_request_interval < 0:
            raise TourGuideConfigError("min_request_interval must not be negative")
        if self.walking_speed <= 0:
            raise TourGuideConfigError("walking_speed must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> TourGuideConfig:
        """Create configuration from environment variables.

        Reads optional ``TOURGUIDE_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TourGuideConfig
            Populated configuration.
        """
        env = os.environ

        reach_kwargs: dict[str, float] = {}
        _ENV_REACH_MAP = {
            "TOURGUIDE_REACH_DIRECT": "direct",
            "TOURGUIDE_REACH_ROUTE_END": "route_end",
            "TOURGUIDE_REACH_ROUTE_END_SAFETY": "route_end_safety",
            "TOURGUIDE_REACH_EXTENDED": "extended",
        }
        for env_key, field_name in _ENV_REACH_MAP.items():
            val = _env_number(env, env_key, float)
            if val is not None:
                reach_kwargs[field_name] = val

        reach_overrides = overrides.pop("reach", None)
        if isinstance(reach_overrides, dict):
            reach_kwargs.update(reach_overrides)
        elif isinstance(reach_overrides, ReachRadii):
            reach_kwargs = dataclasses.asdict(reach_overrides)

        config_kwargs: dict[str, Any] = {"reach": ReachRadii(**reach_kwargs)}

        _ENV_STR_MAP = {
            "TOURGUIDE_ROUTING_BASE_URL": "routing_base_url",
            "TOURGUIDE_ROUTING_PROFILE": "routing_profile",
            "TOURGUIDE_ROUTING_API_KEY": "routing_api_key",
            "TOURGUIDE_STORAGE_PATH": "storage_path",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMBER_MAP: dict[str, tuple[str, type[float] | type[int]]] = {
            "TOURGUIDE_REQUEST_TIMEOUT": ("request_timeout", float),
            "TOURGUIDE_MIN_REQUEST_INTERVAL": ("min_request_interval", float),
            "TOURGUIDE_CACHE_SIZE": ("cache_size", int),
            "TOURGUIDE_FALLBACK_SEED": ("fallback_seed", int),
            "TOURGUIDE_REROUTE_THRESHOLD": ("reroute_threshold", float),
            "TOURGUIDE_INSTRUCTION_ANNOUNCE_DISTANCE": ("instruction_announce_distance", float),
            "TOURGUIDE_DEVIATION_THRESHOLD": ("deviation_threshold", float),
            "TOURGUIDE_RETURN_THRESHOLD": ("return_threshold", float),
            "TOURGUIDE_POI_ADVANCE_DELAY": ("poi_advance_delay", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMBER_MAP.items():
            val = _env_number(env, env_key, cast)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        if "prefer_stored" not in overrides:
            config_kwargs["prefer_stored"] = _env_bool(env.get("TOURGUIDE_PREFER_STORED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

    @property
    def offline(self) -> bool:
        """True when no routing server is configured (fallback only)."""
        return not self.routing_base_url
