"""High-level async client wiring routing, storage and guidance together."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import timedelta
from typing import Any

import aiohttp

from pytourguide._transport import OsrmTransport, RoutingTransport
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import TourGuideError
from pytourguide.guidance.coordinator import GuidanceCoordinator, GuidanceRequest, StartResult
from pytourguide.guidance.events import EventChannel, GuidanceListener
from pytourguide.guidance.progress import TourProgressTracker
from pytourguide.models.guidance import GuidanceMode, GuidanceState, StartStrategy
from pytourguide.models.poi import POI, Coordinate
from pytourguide.models.stored_route import StoredRoute
from pytourguide.provider import AvailabilityReport, RouteProvider
from pytourguide.session import GuidanceSession
from pytourguide.storage.backends import JsonFileBackend, KeyValueBackend, MemoryBackend
from pytourguide.storage.resolver import RouteUpdateStatus, StoredRouteResolver
from pytourguide.storage.store import RouteStore

_logger = logging.getLogger(__name__)


class TourGuideClient:
    """Async client for guided POI tours.

    Usage::

        async with TourGuideClient(config, pois) as client:
            client.subscribe(print)
            await client.start_tour(position=here)
            await client.update_position(here)

    Parameters
    ----------
    config : TourGuideConfig
        Engine configuration. An empty ``routing_base_url`` runs offline
        (fallback routes only).
    pois : sequence of POI
        The tour's points of interest.
    session : aiohttp.ClientSession, optional
        Injected HTTP session; the client creates and closes its own otherwise.
    backend : KeyValueBackend, optional
        Route and progress storage. Defaults to a JSON file when
        ``config.storage_path`` is set, else memory.
    transport : RoutingTransport, optional
        Injected routing transport (tests). Takes precedence over *session*.
    """

    def __init__(
        self,
        config: TourGuideConfig,
        pois: Sequence[POI],
        *,
        session: aiohttp.ClientSession | None = None,
        backend: KeyValueBackend | None = None,
        transport: RoutingTransport | None = None,
    ) -> None:
        self._config = config
        self._pois = list(pois)
        self._external_session = session is not None
        self._http_session = session
        self._injected_transport = transport
        if backend is None:
            backend = JsonFileBackend(config.storage_path) if config.storage_path else MemoryBackend()
        self._backend = backend
        self._events = EventChannel()
        self._provider: RouteProvider | None = None
        self._resolver: StoredRouteResolver | None = None
        self._coordinator: GuidanceCoordinator | None = None
        self._tracker: TourProgressTracker | None = None
        self._store = RouteStore(backend)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TourGuideClient:
        transport = self._injected_transport
        if transport is None and not self._config.offline:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = OsrmTransport(self._config, self._http_session)
        if transport is None:
            _logger.info("No routing API configured; using fallback routes only")

        self._provider = RouteProvider(transport, self._config)
        self._resolver = StoredRouteResolver(self._store, self._provider, self._pois)
        self._coordinator = GuidanceCoordinator(
            self._provider,
            self._resolver,
            config=self._config,
            events=self._events,
        )
        self._tracker = TourProgressTracker(self._pois, self._backend, config=self._config, events=self._events)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._coordinator is not None:
            await self._coordinator.stop(reason="client closed")
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._provider = None
        self._resolver = None
        self._coordinator = None
        self._tracker = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_coordinator(self) -> GuidanceCoordinator:
        if self._coordinator is None:
            raise TourGuideError("Client not initialized. Use 'async with TourGuideClient(...) as client:'")
        return self._coordinator

    def _require_resolver(self) -> StoredRouteResolver:
        if self._resolver is None:
            raise TourGuideError("Client not initialized. Use 'async with TourGuideClient(...) as client:'")
        return self._resolver

    def _require_provider(self) -> RouteProvider:
        if self._provider is None:
            raise TourGuideError("Client not initialized. Use 'async with TourGuideClient(...) as client:'")
        return self._provider

    def _require_tracker(self) -> TourProgressTracker:
        if self._tracker is None:
            raise TourGuideError("Client not initialized. Use 'async with TourGuideClient(...) as client:'")
        return self._tracker

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> TourGuideConfig:
        return self._config

    @property
    def store(self) -> RouteStore:
        return self._store

    @property
    def coordinator(self) -> GuidanceCoordinator:
        return self._require_coordinator()

    @property
    def tracker(self) -> TourProgressTracker:
        return self._require_tracker()

    @property
    def state(self) -> GuidanceState:
        return self._require_coordinator().state

    def subscribe(self, listener: GuidanceListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    # ------------------------------------------------------------------
    # Guidance
    # ------------------------------------------------------------------

    async def start_tour(
        self,
        *,
        position: Coordinate | None = None,
        start_poi_id: str | None = None,
        strategy: StartStrategy = StartStrategy.FIRST,
        prefer_stored: bool | None = None,
    ) -> StartResult:
        """Start a guided tour over all POIs."""
        result = await self._require_coordinator().start(
            GuidanceRequest(
                mode=GuidanceMode.GUIDED_TOUR,
                start_poi_id=start_poi_id,
                start_strategy=strategy,
                position=position,
                prefer_stored=self._config.prefer_stored if prefer_stored is None else prefer_stored,
            )
        )
        if result.ok:
            self._require_tracker().start_tour()
        return result

    async def start_back_on_track(self, position: Coordinate, target_poi: POI | None = None) -> StartResult:
        return await self._require_coordinator().start(
            GuidanceRequest(mode=GuidanceMode.BACK_ON_TRACK, position=position, target_poi=target_poi)
        )

    async def stop(self, reason: str = "stopped") -> None:
        await self._require_coordinator().stop(reason=reason)

    async def update_position(self, position: Coordinate) -> GuidanceState:
        """Feed one position to guidance and tour progress."""
        state = await self._require_coordinator().update_position(position)
        self._require_tracker().check_proximity(position)
        return state

    async def confirm_poi_reached(self) -> bool:
        return await self._require_coordinator().confirm_poi_reached()

    def decline_poi_reached(self) -> bool:
        return self._require_coordinator().decline_poi_reached()

    def open_session(self, *, max_pending: int = 0) -> GuidanceSession:
        """Queue-backed position feed; use as ``async with client.open_session() as s``."""
        return GuidanceSession(self._require_coordinator(), self._require_tracker(), max_pending=max_pending)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    async def precalculate_tour_route(self, route_id: str | None = None) -> StoredRoute:
        """Calculate the full tour route now and persist it for later tours."""
        return await self._require_resolver().precalculate_and_store(route_id)

    async def route_update_status(self, route_id: str) -> RouteUpdateStatus:
        return await self._require_resolver().route_update_status(
            route_id,
            max_age=timedelta(days=self._config.route_max_age_days),
        )

    async def check_routing_availability(self) -> AvailabilityReport:
        return await self._require_provider().assess_availability(self._pois)
