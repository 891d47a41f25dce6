"""Pedestrian route calculation with caching, rate limiting and fallback."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field

from pytourguide import geo
from pytourguide._api.osrm import parse_route_response
from pytourguide._cache import RouteCache
from pytourguide._fallback import synthesize_segment
from pytourguide._rate_limit import RateLimiter
from pytourguide._transport import RoutingTransport
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import NoRouteAvailableError, RoutingError, RoutingFailureKind
from pytourguide.models.poi import POI, Coordinate
from pytourguide.models.route import Route, RouteEndpoint, RouteFailure, RouteSegment

_logger = logging.getLogger(__name__)

Waypoint = RouteEndpoint | POI | Coordinate


class RerouteCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    needed: bool
    deviation_meters: float
    closest_index: int = -1


class AvailabilityReport(BaseModel):
    """Outcome of probing every consecutive POI pair against the routing API."""

    model_config = ConfigDict(frozen=True)

    total_pairs: int
    live_pairs: int
    fallback_pairs: int
    failures: list[RouteFailure] = Field(default_factory=list)

    @property
    def fully_available(self) -> bool:
        return self.total_pairs > 0 and self.live_pairs == self.total_pairs


def _route_coordinates(route: Route | RouteSegment | Sequence[Coordinate]) -> Sequence[Coordinate]:
    if isinstance(route, Route):
        return route.coordinates()
    if isinstance(route, RouteSegment):
        return route.geometry
    return route


class RouteProvider:
    """Computes walking routes between coordinates.

    Every call returns a usable route. When the routing API fails (network,
    HTTP status, timeout, malformed body) or no transport is configured, a
    synthetic route is returned instead, marked ``fallback`` and carrying
    the failure reason.

    Parameters
    ----------
    transport : RoutingTransport or None
        Routing API client. ``None`` means fallback-only operation.
    config : TourGuideConfig
        Timeouts, cache size and fallback tuning.
    cache : RouteCache, optional
        Injected cache; one sized from *config* is created otherwise.
    rate_limiter : RateLimiter, optional
        Gate shared with other providers talking to the same API.
    """

    def __init__(
        self,
        transport: RoutingTransport | None,
        config: TourGuideConfig | None = None,
        *,
        cache: RouteCache | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._transport = transport
        self._config = config or TourGuideConfig()
        self._cache = cache or RouteCache(self._config.cache_size, precision=self._config.cache_precision)
        self._rate_limiter = rate_limiter or RateLimiter(self._config.min_request_interval)
        self._inflight: dict[str, asyncio.Future[RouteSegment]] = {}

    @property
    def config(self) -> TourGuideConfig:
        return self._config

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()
        _logger.debug("Route cache cleared")

    # ------------------------------------------------------------------
    # Route calculation
    # ------------------------------------------------------------------

    async def calculate_route(self, start: Waypoint, end: Waypoint) -> Route:
        """Single-segment walking route from *start* to *end*."""
        segment = await self.calculate_segment(start, end)
        return Route.from_segments([segment])

    async def calculate_tour_route(self, pois: Sequence[POI]) -> Route:
        """Route visiting *pois* in the given order.

        Segments are calculated one after another; each may independently
        fall back. Raises :class:`NoRouteAvailableError` for fewer than two
        POIs.
        """
        if len(pois) < 2:
            raise NoRouteAvailableError(f"A tour route needs at least two POIs, got {len(pois)}")

        segments: list[RouteSegment] = []
        for i in range(len(pois) - 1):
            segments.append(await self.calculate_segment(pois[i], pois[i + 1]))

        route = Route.from_segments(segments)
        _logger.info(
            "Tour route calculated: %d segments, %.0f m, %d synthetic",
            len(segments),
            route.total_distance,
            route.fallback_segments,
        )
        return route

    async def calculate_segment(self, start: Waypoint, end: Waypoint) -> RouteSegment:
        start_ep = RouteEndpoint.coerce(start)
        end_ep = RouteEndpoint.coerce(end)
        key = self._cache.key(start_ep.coordinates, end_ep.coordinates)

        cached = self._cache.get(key)
        if cached is not None:
            _logger.debug("Route cache hit for %s", key)
            return self._with_endpoints(cached, start_ep, end_ep)

        pending = self._inflight.get(key)
        if pending is not None:
            try:
                shared = await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The request we joined was cancelled by its owner; start our own.
                return await self.calculate_segment(start_ep, end_ep)
            return self._with_endpoints(shared, start_ep, end_ep)

        future: asyncio.Future[RouteSegment] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            segment = await self._fetch_segment(key, start_ep, end_ep)
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(segment)
        finally:
            self._inflight.pop(key, None)
        return segment

    async def _fetch_segment(self, key: str, start: RouteEndpoint, end: RouteEndpoint) -> RouteSegment:
        if self._transport is None:
            failure = RouteFailure(kind=RoutingFailureKind.UNKNOWN, message="No routing transport configured")
            return self._fallback(start, end, failure)

        try:
            await self._rate_limiter.acquire()
            body = await asyncio.wait_for(
                self._transport.fetch_route(start.coordinates, end.coordinates),
                timeout=self._config.request_timeout,
            )
            segment = parse_route_response(body, start, end)
        except TimeoutError:
            failure = RouteFailure(
                kind=RoutingFailureKind.TIMEOUT,
                message=f"No answer within {self._config.request_timeout}s",
            )
        except RoutingError as exc:
            failure = RouteFailure(kind=exc.kind, message=str(exc))
        except OSError as exc:
            failure = RouteFailure(kind=RoutingFailureKind.NETWORK, message=str(exc))
        except Exception as exc:  # noqa: BLE001
            _logger.debug("Routing transport raised unexpectedly", exc_info=True)
            failure = RouteFailure(kind=RoutingFailureKind.UNKNOWN, message=repr(exc))
        else:
            self._cache.put(key, segment)
            return segment

        _logger.warning(
            "Routing API unavailable (%s: %s); synthesizing fallback route",
            failure.kind,
            failure.message,
        )
        return self._fallback(start, end, failure)

    def _fallback(self, start: RouteEndpoint, end: RouteEndpoint, failure: RouteFailure) -> RouteSegment:
        return synthesize_segment(
            start,
            end,
            failure,
            walking_speed=self._config.walking_speed,
            spacing=self._config.fallback_waypoint_spacing,
            jitter=self._config.fallback_jitter,
            seed=self._config.fallback_seed,
        )

    @staticmethod
    def _with_endpoints(segment: RouteSegment, start: RouteEndpoint, end: RouteEndpoint) -> RouteSegment:
        if segment.start == start and segment.end == end:
            return segment
        return segment.model_copy(update={"start": start, "end": end})

    # ------------------------------------------------------------------
    # Deviation and availability
    # ------------------------------------------------------------------

    def check_reroute_needed(
        self,
        position: Coordinate,
        route: Route | RouteSegment | Sequence[Coordinate],
        threshold: float | None = None,
    ) -> RerouteCheck:
        """Compare *position* against the closest point of *route*."""
        limit = self._config.reroute_threshold if threshold is None else threshold
        deviation, index = geo.distance_to_path(position, _route_coordinates(route))
        if math.isinf(deviation):
            return RerouteCheck(needed=False, deviation_meters=deviation, closest_index=-1)
        return RerouteCheck(needed=deviation > limit, deviation_meters=deviation, closest_index=index)

    async def assess_availability(self, pois: Sequence[POI]) -> AvailabilityReport:
        """Probe every consecutive POI pair; live results stay cached."""
        live = 0
        failures: list[RouteFailure] = []
        pairs = max(0, len(pois) - 1)
        for i in range(pairs):
            segment = await self.calculate_segment(pois[i], pois[i + 1])
            if segment.is_fallback:
                if segment.failure is not None:
                    failures.append(segment.failure)
            else:
                live += 1
        report = AvailabilityReport(
            total_pairs=pairs,
            live_pairs=live,
            fallback_pairs=pairs - live,
            failures=failures,
        )
        _logger.info("Routing availability: %d/%d pairs live", live, pairs)
        return report
