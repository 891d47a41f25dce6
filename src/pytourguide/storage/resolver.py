"""Choose between a stored tour route and a freshly calculated one."""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import math
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from pytourguide import geo
from pytourguide._constants import ROUTE_MAX_AGE
from pytourguide.exceptions import NoRouteAvailableError, RouteCalculationInProgressError
from pytourguide.models._base import utcnow
from pytourguide.models.poi import POI, Coordinate, sort_pois
from pytourguide.models.route import Route, RouteSource
from pytourguide.models.stored_route import StoredRoute, fingerprint_matches
from pytourguide.provider import RouteProvider
from pytourguide.storage.store import RouteStore

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class TourRouteOptions:
    """How :meth:`StoredRouteResolver.get_tour_route` may obtain a route.

    Parameters
    ----------
    prefer_stored : bool
        Look for a matching stored route first.
    fallback_to_live : bool
        Calculate a route when nothing suitable is stored.
    route_id : str or None
        Use this stored route if it exists, before any fingerprint matching.
    """

    prefer_stored: bool = True
    fallback_to_live: bool = True
    route_id: str | None = None


class TourRouteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: RouteSource
    route: Route
    route_id: str | None = None


class OnRouteCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    on_route: bool
    distance: float
    closest_index: int
    progress_fraction: float


class ClosestRoutePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    coordinates: Coordinate
    index: int
    distance: float


class RouteUpdateReason(StrEnum):
    MISSING = "missing"
    POI_COUNT_CHANGED = "poi_count_changed"
    POI_DATA_CHANGED = "poi_data_changed"
    STALE = "stale"


class RouteUpdateStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    needs_update: bool
    reason: RouteUpdateReason | None = None
    age: timedelta | None = None


def tour_fingerprint_hash(pois: Sequence[POI]) -> str:
    """Short stable hash of POI ids and coordinates."""
    digest = hashlib.sha1(usedforsecurity=False)
    for poi in pois:
        digest.update(f"{poi.id}:{poi.coordinates.lat:.5f}:{poi.coordinates.lon:.5f};".encode())
    return digest.hexdigest()[:10]


class StoredRouteResolver:
    """Serves tour routes for a fixed POI set.

    Keeps the most recently resolved route and its flattened coordinates
    for on-route checks.
    """

    def __init__(
        self,
        store: RouteStore,
        provider: RouteProvider,
        pois: Sequence[POI],
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._provider = provider
        self._pois = sort_pois(pois)
        self._current: Route | None = None
        self._current_id: str | None = None
        self._coordinates: list[Coordinate] = []
        self._clock = clock
        self._calculating = False

    @property
    def pois(self) -> list[POI]:
        return list(self._pois)

    @property
    def current_route(self) -> Route | None:
        return self._current

    @property
    def current_route_id(self) -> str | None:
        return self._current_id

    @property
    def route_coordinates(self) -> list[Coordinate]:
        return list(self._coordinates)

    def _set_current(self, route: Route, route_id: str | None) -> None:
        self._current = route
        self._current_id = route_id
        self._coordinates = route.coordinates()

    def clear_current_route(self) -> None:
        self._current = None
        self._current_id = None
        self._coordinates = []

    # ------------------------------------------------------------------
    # Route selection
    # ------------------------------------------------------------------

    async def find_best_stored_route(
        self,
        pois: Sequence[POI] | None = None,
        *,
        allow_count_match: bool = True,
    ) -> str | None:
        """Id of the stored route that best matches *pois*.

        An exact fingerprint match wins; otherwise (if *allow_count_match*)
        the newest route for the same number of POIs.
        """
        wanted = list(pois) if pois is not None else self._pois
        candidates = await self._store.list()
        for meta in candidates:
            if fingerprint_matches(meta.poi_fingerprint, wanted):
                _logger.debug("Exact stored route match: %s", meta.route_id)
                return meta.route_id
        same_count = [meta for meta in candidates if meta.poi_count == len(wanted)]
        if allow_count_match and same_count:
            best = max(same_count, key=lambda meta: meta.created_at)
            _logger.debug("Using newest stored route with %d POIs: %s", len(wanted), best.route_id)
            return best.route_id
        return None

    async def _load_stored(
        self,
        options: TourRouteOptions,
        pois: Sequence[POI],
        *,
        partial: bool,
    ) -> StoredRoute | None:
        if options.route_id is not None:
            stored = await self._store.get(options.route_id)
            if stored is not None:
                return stored
            _logger.info("Requested stored route %s is unavailable", options.route_id)
        # A partial tour only reuses a route stored for exactly those POIs.
        route_id = await self.find_best_stored_route(pois, allow_count_match=not partial)
        if route_id is None:
            return None
        return await self._store.get(route_id)

    async def get_tour_route(
        self,
        options: TourRouteOptions | None = None,
        pois: Sequence[POI] | None = None,
    ) -> TourRouteResult:
        """Stored route if preferred and available, else a live calculation.

        *pois* narrows the tour to a partial, already ordered sequence.
        Raises :class:`NoRouteAvailableError` when nothing is stored and live
        calculation is disabled.
        """
        opts = options or TourRouteOptions()
        sequence = list(pois) if pois is not None else self._pois

        if opts.prefer_stored:
            stored = await self._load_stored(opts, sequence, partial=pois is not None)
            if stored is not None:
                # Segment sources and failures survive; only the top-level provider changes.
                route = stored.route.model_copy(update={"provider": RouteSource.STORED})
                self._set_current(route, stored.id)
                _logger.info("Using stored tour route %s", stored.id)
                return TourRouteResult(source=RouteSource.STORED, route=route, route_id=stored.id)

        if not opts.fallback_to_live:
            raise NoRouteAvailableError("No stored tour route available and live calculation is disabled")

        route = await self._provider.calculate_tour_route(sequence)
        self._set_current(route, None)
        # FALLBACK when any segment had to be synthesized.
        return TourRouteResult(source=route.provider, route=route)

    # ------------------------------------------------------------------
    # Position checks
    # ------------------------------------------------------------------

    def is_on_route(self, position: Coordinate, threshold: float = 50.0) -> OnRouteCheck:
        if not self._coordinates:
            return OnRouteCheck(on_route=False, distance=math.inf, closest_index=-1, progress_fraction=0.0)
        distance, index = geo.distance_to_path(position, self._coordinates)
        last = len(self._coordinates) - 1
        return OnRouteCheck(
            on_route=distance <= threshold,
            distance=distance,
            closest_index=index,
            progress_fraction=index / last if last else 1.0,
        )

    def closest_route_point(self, position: Coordinate) -> ClosestRoutePoint | None:
        if not self._coordinates:
            return None
        index, distance = geo.closest_point(position, self._coordinates)
        return ClosestRoutePoint(coordinates=self._coordinates[index], index=index, distance=distance)

    # ------------------------------------------------------------------
    # Pre-calculation
    # ------------------------------------------------------------------

    async def precalculate_and_store(self, route_id: str | None = None) -> StoredRoute:
        """Calculate the full tour route and persist it.

        Raises :class:`RouteCalculationInProgressError` if a pre-calculation
        is already running.
        """
        if self._calculating:
            raise RouteCalculationInProgressError("Tour route calculation already in progress")
        self._calculating = True
        try:
            route = await self._provider.calculate_tour_route(self._pois)
            if route_id is None:
                stamp = int(self._clock().timestamp())
                route_id = f"tour_{tour_fingerprint_hash(self._pois)}_{stamp}"
            if not await self._store.store(route_id, route, self._pois):
                raise NoRouteAvailableError(f"Calculated route {route_id} could not be stored")
            stored = await self._store.get(route_id)
            if stored is None:
                raise NoRouteAvailableError(f"Stored route {route_id} could not be read back")
            return stored
        finally:
            self._calculating = False

    async def route_update_status(self, route_id: str, *, max_age: timedelta = ROUTE_MAX_AGE) -> RouteUpdateStatus:
        """Whether a stored route should be recalculated for the current POIs."""
        stored = await self._store.get(route_id)
        if stored is None:
            return RouteUpdateStatus(needs_update=True, reason=RouteUpdateReason.MISSING)

        meta = stored.metadata
        age = self._clock() - stored.created_at
        if meta.poi_count != len(self._pois):
            return RouteUpdateStatus(needs_update=True, reason=RouteUpdateReason.POI_COUNT_CHANGED, age=age)
        if not fingerprint_matches(meta.poi_fingerprint, self._pois):
            return RouteUpdateStatus(needs_update=True, reason=RouteUpdateReason.POI_DATA_CHANGED, age=age)
        if age > max_age:
            return RouteUpdateStatus(needs_update=True, reason=RouteUpdateReason.STALE, age=age)
        return RouteUpdateStatus(needs_update=False, age=age)
