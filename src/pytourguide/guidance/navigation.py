"""Turn-by-turn state for one active route."""

from __future__ import annotations

import dataclasses
import logging

from pydantic import BaseModel, ConfigDict

from pytourguide import geo
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import TourGuideError
from pytourguide.guidance.events import EventChannel, GuidanceEventType
from pytourguide.models.poi import Coordinate
from pytourguide.models.route import Instruction, Route, RouteSegment
from pytourguide.provider import RouteProvider

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class NavigationSnapshot:
    """Saved engine state; restoring it resumes without recalculation."""

    route: Route
    segment_index: int
    instruction_index: int
    announced: frozenset[str]
    reroute: bool
    complete_at_end: bool = True


class NavigationUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    announced: Instruction | None = None
    rerouted: bool = False
    segment_changed: bool = False
    completed: bool = False
    deviation_meters: float | None = None


class NavigationStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    active: bool
    segment_index: int = 0
    instruction_index: int = 0
    segment_count: int = 0
    remaining_distance: float = 0.0
    remaining_duration: float = 0.0
    next_instruction: Instruction | None = None


class NavigationEngine:
    """Follows a :class:`Route` segment by segment, instruction by instruction.

    On each position update the engine

    1. reroutes (if enabled) when the user is further than
       ``reroute_threshold`` from the current segment, replacing that
       segment with a fresh one from the user's position to its end;
    2. announces the next instruction once the user is within
       ``instruction_announce_distance`` of its location;
    3. moves to the next segment once all instructions of the current one
       are consumed, and completes after the last segment.
    """

    def __init__(
        self,
        provider: RouteProvider,
        *,
        events: EventChannel | None = None,
        config: TourGuideConfig | None = None,
    ) -> None:
        self._provider = provider
        self._events = events or EventChannel()
        self._config = config or provider.config
        self._route: Route | None = None
        self._segment_index = 0
        self._instruction_index = 0
        self._announced: set[str] = set()
        self._reroute_enabled = True
        self._complete_at_end = True
        self._rerouting = False
        # Bumped on start/stop; results of awaits that straddle a bump are stale.
        self._generation = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._route is not None

    @property
    def route(self) -> Route | None:
        return self._route

    @property
    def segment_index(self) -> int:
        return self._segment_index

    @property
    def instruction_index(self) -> int:
        return self._instruction_index

    @property
    def current_segment(self) -> RouteSegment | None:
        if self._route is None or self._segment_index >= len(self._route.segments):
            return None
        return self._route.segments[self._segment_index]

    def start(self, route: Route, *, reroute: bool = True, complete_at_end: bool = True) -> None:
        """Follow *route*.

        With *complete_at_end* unset the engine holds on the last segment after
        its final instruction; the caller decides when the route is done.
        """
        self._generation += 1
        self._route = route
        self._segment_index = 0
        self._instruction_index = 0
        self._announced = set()
        self._reroute_enabled = reroute
        self._complete_at_end = complete_at_end
        self._rerouting = False
        self._events.publish(
            GuidanceEventType.NAVIGATION_STARTED,
            segments=len(route.segments),
            provider=route.provider,
            total_distance=route.total_distance,
        )

    def stop(self) -> None:
        """Clear all state; an in-flight reroute result will be discarded."""
        was_active = self.is_active
        self._clear()
        if was_active:
            self._events.publish(GuidanceEventType.NAVIGATION_STOPPED)

    def _clear(self) -> None:
        self._generation += 1
        self._route = None
        self._segment_index = 0
        self._instruction_index = 0
        self._announced = set()
        self._rerouting = False

    def snapshot(self) -> NavigationSnapshot | None:
        if self._route is None:
            return None
        return NavigationSnapshot(
            route=self._route,
            segment_index=self._segment_index,
            instruction_index=self._instruction_index,
            announced=frozenset(self._announced),
            reroute=self._reroute_enabled,
            complete_at_end=self._complete_at_end,
        )

    def restore(self, snapshot: NavigationSnapshot) -> None:
        self._generation += 1
        self._route = snapshot.route
        self._segment_index = snapshot.segment_index
        self._instruction_index = snapshot.instruction_index
        self._announced = set(snapshot.announced)
        self._reroute_enabled = snapshot.reroute
        self._complete_at_end = snapshot.complete_at_end
        self._rerouting = False

    def advance_to_segment(self, index: int) -> bool:
        """Jump forward to segment *index* (never backwards)."""
        if self._route is None or index <= self._segment_index or index >= len(self._route.segments):
            return False
        self._segment_index = index
        self._instruction_index = 0
        return True

    # ------------------------------------------------------------------
    # Position updates
    # ------------------------------------------------------------------

    async def update_position(self, position: Coordinate) -> NavigationUpdate:
        segment = self.current_segment
        if segment is None:
            return NavigationUpdate()

        rerouted = False
        deviation: float | None = None
        if self._reroute_enabled and not self._rerouting:
            check = self._provider.check_reroute_needed(position, segment, self._config.reroute_threshold)
            deviation = check.deviation_meters
            if check.needed:
                rerouted = await self._reroute(position, check.deviation_meters)
                if not self.is_active:
                    return NavigationUpdate(rerouted=rerouted, deviation_meters=deviation)

        announced = self._announce_next(position)

        segment_changed = False
        completed = False
        segment = self.current_segment
        if segment is not None and self._instruction_index >= len(segment.instructions):
            before = self._segment_index
            completed = self._advance_segment()
            segment_changed = not completed and self._segment_index != before

        return NavigationUpdate(
            announced=announced,
            rerouted=rerouted,
            segment_changed=segment_changed,
            completed=completed,
            deviation_meters=deviation,
        )

    async def _reroute(self, position: Coordinate, deviation: float) -> bool:
        route = self._route
        segment = self.current_segment
        if route is None or segment is None:
            return False

        generation = self._generation
        self._rerouting = True
        self._events.publish(GuidanceEventType.REROUTE_STARTED, deviation_meters=deviation)
        _logger.info("Off route by %.0f m, recalculating to %s", deviation, segment.end.name or segment.end.coordinates)
        try:
            fresh = await self._provider.calculate_segment(position, segment.end)
        except TourGuideError as exc:
            _logger.warning("Reroute failed: %s", exc)
            self._events.publish(GuidanceEventType.REROUTE_FAILED, reason=str(exc))
            return False
        finally:
            self._rerouting = False

        if generation != self._generation:
            _logger.debug("Discarding reroute result; navigation was stopped or restarted")
            return False

        remaining = route.segments[self._segment_index + 1 :]
        self._route = Route.from_segments([fresh, *remaining])
        self._segment_index = 0
        self._instruction_index = 0
        self._announced = set()
        self._events.publish(
            GuidanceEventType.REROUTE_COMPLETED,
            provider=fresh.source,
            failure=fresh.failure,
            distance=fresh.distance_meters,
        )
        return True

    def _announce_next(self, position: Coordinate) -> Instruction | None:
        segment = self.current_segment
        if segment is None or self._instruction_index >= len(segment.instructions):
            return None

        instruction = segment.instructions[self._instruction_index]
        distance = geo.distance(position, instruction.location)
        if distance > self._config.instruction_announce_distance:
            return None

        key = f"{self._segment_index}-{self._instruction_index}"
        announced: Instruction | None = None
        if key not in self._announced:
            self._announced.add(key)
            announced = instruction
            self._events.publish(
                GuidanceEventType.INSTRUCTION_UPDATED,
                instruction=instruction,
                segment_index=self._segment_index,
                instruction_index=self._instruction_index,
                distance=distance,
            )
        self._instruction_index += 1
        return announced

    def _advance_segment(self) -> bool:
        """Move to the next segment; returns True when navigation completed."""
        assert self._route is not None  # noqa: S101
        if self._segment_index + 1 < len(self._route.segments):
            self._segment_index += 1
            self._instruction_index = 0
            _logger.debug("Advanced to segment %d/%d", self._segment_index + 1, len(self._route.segments))
            return False
        if not self._complete_at_end:
            return False

        _logger.info("Navigation completed")
        self._clear()
        self._events.publish(GuidanceEventType.NAVIGATION_COMPLETED)
        return True

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self, position: Coordinate | None = None) -> NavigationStatus:
        """Progress summary; with *position*, the current segment is measured from it."""
        route = self._route
        segment = self.current_segment
        if route is None or segment is None:
            return NavigationStatus(active=False)

        current_distance = segment.distance_meters
        if position is not None:
            offset, index = geo.distance_to_path(position, segment.geometry)
            current_distance = min(segment.distance_meters, offset + geo.path_length(segment.geometry[index:]))
        ratio = current_distance / segment.distance_meters if segment.distance_meters > 0 else 0.0

        later = route.segments[self._segment_index + 1 :]
        next_instruction = (
            segment.instructions[self._instruction_index]
            if self._instruction_index < len(segment.instructions)
            else None
        )
        return NavigationStatus(
            active=True,
            segment_index=self._segment_index,
            instruction_index=self._instruction_index,
            segment_count=len(route.segments),
            remaining_distance=current_distance + sum(seg.distance_meters for seg in later),
            remaining_duration=segment.duration_seconds * ratio + sum(seg.duration_seconds for seg in later),
            next_instruction=next_instruction,
        )
