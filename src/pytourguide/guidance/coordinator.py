"""Guided-tour / back-on-track state machine.

::

    NONE ──start──▶ GUIDED_TOUR ──deviation──▶ BACK_ON_TRACK
      ▲                 │   ▲                       │
      └──stop/complete──┘   └──────returned─────────┘

The coordinator owns :class:`~pytourguide.models.GuidanceState`. Position
updates are processed one at a time; ``stop()`` invalidates anything still
in flight and cancels scheduled announcements.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pytourguide import geo
from pytourguide._scheduler import TaskScheduler
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import NoRouteAvailableError, TourGuideError
from pytourguide.guidance.events import EventChannel, GuidanceEventType, GuidanceListener
from pytourguide.guidance.navigation import NavigationEngine, NavigationSnapshot
from pytourguide.guidance.reach import ReachDecision, ReachMethod, evaluate_poi_reach
from pytourguide.models.guidance import GuidanceMode, GuidanceState, StartStrategy
from pytourguide.models.poi import POI, Coordinate
from pytourguide.models.route import Route, RouteEndpoint, RouteSource
from pytourguide.provider import RouteProvider
from pytourguide.storage.resolver import StoredRouteResolver, TourRouteOptions

_logger = logging.getLogger(__name__)


class GuidanceRequest(BaseModel):
    """What to start.

    ``poi_sequence`` defaults to every known POI in tour order. The tour
    begins at ``start_poi_id`` (or ``target_poi``), else at the POI picked
    by ``start_strategy``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: GuidanceMode = GuidanceMode.GUIDED_TOUR
    poi_sequence: list[POI] = Field(default_factory=list)
    target_poi: POI | None = None
    start_poi_id: str | None = None
    start_strategy: StartStrategy = StartStrategy.FIRST
    position: Coordinate | None = None
    prefer_stored: bool = True
    fallback_to_live: bool = True
    route_id: str | None = None

    @field_validator("mode")
    @classmethod
    def _not_none(cls, value: GuidanceMode) -> GuidanceMode:
        if value == GuidanceMode.NONE:
            raise ValueError("mode must be guided-tour or back-on-track")
        return value


class StartResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    mode: GuidanceMode
    reason: str | None = None
    route_source: RouteSource | None = None


class GuidanceCoordinator:
    """Top-level guidance state machine.

    Parameters
    ----------
    provider : RouteProvider
        Used for back-on-track correction routes.
    resolver : StoredRouteResolver
        Supplies the main tour route (stored when possible).
    config : TourGuideConfig, optional
        Thresholds; defaults to the provider's configuration.
    events : EventChannel, optional
        Channel shared with the navigation engine and progress tracker.
    navigation : NavigationEngine, optional
        Injected engine (tests); one is created otherwise.
    scheduler : TaskScheduler, optional
        Owner of delayed announcements.
    """

    def __init__(
        self,
        provider: RouteProvider,
        resolver: StoredRouteResolver,
        *,
        config: TourGuideConfig | None = None,
        events: EventChannel | None = None,
        navigation: NavigationEngine | None = None,
        scheduler: TaskScheduler | None = None,
    ) -> None:
        self._provider = provider
        self._resolver = resolver
        self._config = config or provider.config
        self._events = events or EventChannel()
        self._navigation = navigation or NavigationEngine(provider, events=self._events, config=self._config)
        self._scheduler = scheduler or TaskScheduler()
        self._state = GuidanceState()
        self._main_coords: list[Coordinate] = []
        self._main_snapshot: NavigationSnapshot | None = None
        self._pending: ReachDecision | None = None
        self._processing_reach = False
        self._update_lock = asyncio.Lock()
        self._generation = 0

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> GuidanceState:
        """Snapshot of the current state (safe to keep)."""
        return self._state.model_copy(update={"tour_sequence": list(self._state.tour_sequence)})

    @property
    def mode(self) -> GuidanceMode:
        return self._state.mode

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def navigation(self) -> NavigationEngine:
        return self._navigation

    @property
    def pending_confirmation(self) -> ReachDecision | None:
        return self._pending

    def subscribe(self, listener: GuidanceListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    async def start(self, request: GuidanceRequest) -> StartResult:
        """Start guidance, stopping whatever was active first.

        Never raises for missing routes; failure is reported in the result.
        """
        if self._state.is_active:
            await self.stop(reason="restart")

        try:
            if request.mode == GuidanceMode.GUIDED_TOUR:
                return await self._start_guided_tour(request)
            return await self._start_back_on_track(request)
        except NoRouteAvailableError as exc:
            _logger.warning("Guidance start failed: %s", exc)
            self._reset()
            self._events.publish(GuidanceEventType.GUIDANCE_ERROR, reason=str(exc), mode=request.mode)
            return StartResult(ok=False, mode=GuidanceMode.NONE, reason=str(exc))

    async def stop(self, reason: str = "stopped") -> None:
        """Stop guidance; nothing scheduled or in flight fires afterwards."""
        was_active = self._state.is_active
        self._reset()
        if was_active:
            _logger.info("Guidance stopped (%s)", reason)
            self._events.publish(GuidanceEventType.GUIDANCE_STOPPED, reason=reason)

    async def close(self) -> None:
        """Stop guidance and drop all event subscribers."""
        await self.stop(reason="closed")
        self._events.close()

    def _reset(self) -> None:
        self._generation += 1
        self._scheduler.cancel_all()
        self._navigation.stop()
        self._state = GuidanceState()
        self._main_coords = []
        self._main_snapshot = None
        self._pending = None
        self._processing_reach = False

    def _tour_sequence(self, request: GuidanceRequest) -> list[POI]:
        pois = list(request.poi_sequence) or self._resolver.pois
        if not pois:
            raise NoRouteAvailableError("No POIs to guide through")

        start_id = request.start_poi_id
        if start_id is None and request.target_poi is not None and request.mode == GuidanceMode.GUIDED_TOUR:
            start_id = request.target_poi.id

        start_index = 0
        if start_id is not None:
            ids = [poi.id for poi in pois]
            if start_id not in ids:
                raise NoRouteAvailableError(f"Start POI {start_id!r} is not part of the tour")
            start_index = ids.index(start_id)
        elif request.start_strategy == StartStrategy.CLOSEST and request.position is not None:
            position = request.position
            start_index = min(range(len(pois)), key=lambda i: geo.distance(position, pois[i].coordinates))

        # Rotate so the starting POI is step 0; wrapping back to 0 then means a full circuit.
        return pois[start_index:] + pois[:start_index]

    async def _load_main_route(self, request: GuidanceRequest, sequence: list[POI]) -> tuple[Route, RouteSource]:
        options = TourRouteOptions(
            prefer_stored=request.prefer_stored,
            fallback_to_live=request.fallback_to_live,
            route_id=request.route_id,
        )
        partial = None if sequence == self._resolver.pois else sequence
        result = await self._resolver.get_tour_route(options, pois=partial)
        return result.route, result.source

    def _install_main_route(self, route: Route, sequence: list[POI], step: int) -> None:
        self._main_coords = route.coordinates()
        self._state.main_route = route
        self._state.active_route = route
        self._state.tour_sequence = sequence
        self._state.tour_step = step
        self._navigation.start(route, reroute=False, complete_at_end=False)
        self._sync_segment()

    async def _start_guided_tour(self, request: GuidanceRequest) -> StartResult:
        sequence = self._tour_sequence(request)
        route, source = await self._load_main_route(request, sequence)

        self._install_main_route(route, sequence, 0)
        self._state.mode = GuidanceMode.GUIDED_TOUR
        self._sync_indices()

        _logger.info("Guided tour started at %s (%d POIs, %s route)", sequence[0].name, len(sequence), source)
        self._events.publish(GuidanceEventType.GUIDANCE_STARTED, mode=GuidanceMode.GUIDED_TOUR, route_source=source)
        self._events.publish(
            GuidanceEventType.TOUR_STARTED,
            poi_count=len(sequence),
            start_poi=sequence[0],
            route=route,
        )
        return StartResult(ok=True, mode=GuidanceMode.GUIDED_TOUR, route_source=source)

    async def _start_back_on_track(self, request: GuidanceRequest) -> StartResult:
        position = request.position
        if position is None:
            raise NoRouteAvailableError("Back-on-track guidance needs the current position")

        sequence = self._tour_sequence(request)
        route, source = await self._load_main_route(request, sequence)

        if request.target_poi is not None and request.target_poi.id in [poi.id for poi in sequence]:
            step = [poi.id for poi in sequence].index(request.target_poi.id)
        else:
            step = self._step_for_position(route, position, len(sequence))
        self._install_main_route(route, sequence, step)

        distance, _ = geo.distance_to_path(position, self._main_coords)
        await self._enter_back_on_track(position, distance, detected=False)

        self._events.publish(GuidanceEventType.GUIDANCE_STARTED, mode=GuidanceMode.BACK_ON_TRACK, route_source=source)
        return StartResult(ok=True, mode=GuidanceMode.BACK_ON_TRACK, route_source=source)

    @staticmethod
    def _step_for_position(route: Route, position: Coordinate, poi_count: int) -> int:
        """Tour step whose segment passes closest to *position*."""
        best_segment = min(
            range(len(route.segments)),
            key=lambda i: geo.distance_to_path(position, route.segments[i].geometry)[0],
        )
        return min(best_segment + 1, poi_count - 1)

    # ------------------------------------------------------------------
    # Position updates
    # ------------------------------------------------------------------

    async def update_position(self, position: Coordinate) -> GuidanceState:
        """Process one position; updates are handled strictly in arrival order."""
        async with self._update_lock:
            if not self._state.is_active:
                return self.state
            generation = self._generation
            try:
                await self._process_position(position, generation)
            except TourGuideError as exc:
                _logger.warning("Guidance update failed: %s", exc)
                self._events.publish(GuidanceEventType.GUIDANCE_ERROR, reason=str(exc))
            return self.state

    async def _process_position(self, position: Coordinate, generation: int) -> None:
        main_distance, _ = geo.distance_to_path(position, self._main_coords)
        self._expire_pending_confirmation(position)

        if self._state.mode == GuidanceMode.GUIDED_TOUR:
            if not self._processing_reach and main_distance > self._config.deviation_threshold:
                await self._enter_back_on_track(position, main_distance, detected=True)
                if generation != self._generation:
                    return
        elif self._state.mode == GuidanceMode.BACK_ON_TRACK and main_distance <= self._config.return_threshold:
            self._return_to_main_route(main_distance)

        update = await self._navigation.update_position(position)
        if generation != self._generation:
            return
        if self._state.mode == GuidanceMode.BACK_ON_TRACK and update.completed:
            self._return_to_main_route(main_distance)
        self._sync_indices()

        await self._check_poi_reached(position)
        if generation != self._generation:
            return

        self._events.publish(
            GuidanceEventType.POSITION_UPDATED,
            position=position,
            mode=self._state.mode,
            distance_to_route=main_distance,
            navigation=self._navigation.status(position),
        )

    async def _enter_back_on_track(self, position: Coordinate, distance: float, *, detected: bool) -> None:
        generation = self._generation
        if detected:
            _logger.info("Deviation of %.0f m from the tour route", distance)
            self._events.publish(GuidanceEventType.DEVIATION_DETECTED, distance=distance, position=position)

        self._main_snapshot = self._navigation.snapshot()
        rejoin = self._reconnection_point(position)
        correction = await self._provider.calculate_route(
            position,
            RouteEndpoint(coordinates=rejoin, name="the tour route"),
        )
        if generation != self._generation:
            _logger.debug("Discarding correction route; guidance was stopped")
            return

        self._navigation.start(correction, reroute=True)
        self._state.mode = GuidanceMode.BACK_ON_TRACK
        self._state.active_route = correction
        self._state.is_deviated = True
        self._sync_indices()
        self._events.publish(
            GuidanceEventType.BACK_ON_TRACK_STARTED,
            route=correction,
            rejoin_point=rejoin,
            provider=correction.provider,
        )

    def _reconnection_point(self, position: Coordinate) -> Coordinate:
        """Closest main-route point, or a slightly further one ahead on the route."""
        coords = self._main_coords
        index, closest = geo.closest_point(position, coords)
        best = index
        for ahead in range(index + 1, min(len(coords), index + 1 + self._config.rejoin_lookahead)):
            if geo.distance(position, coords[ahead]) < closest + self._config.rejoin_slack:
                best = ahead
        return coords[best]

    def _return_to_main_route(self, distance: float) -> None:
        if self._main_snapshot is not None:
            self._navigation.restore(self._main_snapshot)
        elif self._state.main_route is not None:
            self._navigation.start(self._state.main_route, reroute=False, complete_at_end=False)
        self._main_snapshot = None
        self._sync_segment()

        self._state.mode = GuidanceMode.GUIDED_TOUR
        self._state.active_route = self._state.main_route
        self._state.is_deviated = False
        self._sync_indices()
        _logger.info("Back on the tour route (%.0f m)", distance)
        self._events.publish(GuidanceEventType.RETURNED_TO_MAIN_ROUTE, distance=distance)

    def _sync_segment(self) -> None:
        # Segment i of the main route leads from tour POI i to POI i + 1.
        self._navigation.advance_to_segment(max(0, self._state.tour_step - 1))

    def _sync_indices(self) -> None:
        self._state.current_segment_index = self._navigation.segment_index
        self._state.current_instruction_index = self._navigation.instruction_index

    # ------------------------------------------------------------------
    # POI reached
    # ------------------------------------------------------------------

    def _route_end_for_step(self, step: int) -> Coordinate | None:
        route = self._state.main_route
        if route is None:
            return None
        if step == 0:
            return route.segments[0].geometry[0]
        if step - 1 < len(route.segments):
            return route.segments[step - 1].geometry[-1]
        return None

    async def _check_poi_reached(self, position: Coordinate) -> None:
        target = self._state.target_poi
        if self._processing_reach or target is None:
            return
        decision = evaluate_poi_reach(
            position,
            target,
            self._config.reach,
            route_end=self._route_end_for_step(self._state.tour_step),
        )
        if decision is None:
            return

        self._processing_reach = True
        if decision.requires_confirmation:
            self._pending = decision
            self._state.awaiting_confirmation = True
            _logger.info(
                "Possibly reached %s (%s, %.0f m); asking for confirmation",
                target.name,
                decision.method,
                decision.distance,
            )
            self._events.publish(
                GuidanceEventType.POI_CONFIRMATION_REQUIRED,
                poi=target,
                method=decision.method,
                distance=decision.distance,
            )
            return
        await self._complete_poi(decision)

    def _expire_pending_confirmation(self, position: Coordinate) -> None:
        """Drop an unanswered prompt once the visitor has walked away from its POI."""
        decision = self._pending
        target = self._state.target_poi
        if decision is None or target is None:
            return
        radii = self._config.reach
        limit = radii.route_end_safety if decision.method == ReachMethod.ROUTE_END else radii.extended
        distance = geo.distance(position, target.coordinates)
        if distance <= limit:
            return
        _logger.info("Confirmation for %s expired (%.0f m away)", target.name, distance)
        self.decline_poi_reached()
        self._events.publish(GuidanceEventType.POI_CONFIRMATION_EXPIRED, poi=target, distance=distance)

    async def confirm_poi_reached(self) -> bool:
        """Accept the pending confirmation; returns False if none is pending."""
        async with self._update_lock:
            decision = self._pending
            if decision is None:
                return False
            await self._complete_poi(decision)
            return True

    def decline_poi_reached(self) -> bool:
        """Reject the pending confirmation and keep guiding to the same POI."""
        if self._pending is None:
            return False
        self._pending = None
        self._processing_reach = False
        self._state.awaiting_confirmation = False
        return True

    async def _complete_poi(self, decision: ReachDecision) -> None:
        sequence = self._state.tour_sequence
        step = self._state.tour_step
        self._pending = None
        self._state.awaiting_confirmation = False

        _logger.info("Reached %s (step %d/%d, %s)", decision.poi.name, step + 1, len(sequence), decision.method)
        self._events.publish(
            GuidanceEventType.POI_REACHED,
            poi=decision.poi,
            method=decision.method,
            distance=decision.distance,
            tour_step=step,
        )

        next_step = (step + 1) % len(sequence)
        self._state.tour_step = next_step
        if next_step == 0:
            self._events.publish(GuidanceEventType.TOUR_COMPLETED, poi_count=len(sequence))
            await self.stop(reason="tour completed")
            return

        self._sync_segment()
        self._sync_indices()
        next_poi = sequence[next_step]
        generation = self._generation

        def _announce_next() -> None:
            if generation == self._generation:
                self._events.publish(GuidanceEventType.NEXT_POI_NAVIGATION, poi=next_poi, tour_step=next_step)

        if self._config.poi_advance_delay > 0:
            self._scheduler.call_later(self._config.poi_advance_delay, _announce_next, name=f"next-poi-{next_poi.id}")
        else:
            _announce_next()
        self._processing_reach = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def distance_to_main_route(self, position: Coordinate) -> float:
        if not self._main_coords:
            return math.inf
        return geo.distance_to_path(position, self._main_coords)[0]

    def remaining_pois(self) -> Sequence[POI]:
        sequence = self._state.tour_sequence
        return sequence[self._state.tour_step :] if sequence else []
