"""Which tour POIs the user has discovered."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from pytourguide import geo
from pytourguide._constants import TOUR_PROGRESS_KEY
from pytourguide.config import TourGuideConfig
from pytourguide.guidance.events import EventChannel, GuidanceEventType
from pytourguide.models._base import utcnow
from pytourguide.models.poi import POI, Coordinate, sort_pois
from pytourguide.models.progress import TourProgress, TourSummary
from pytourguide.storage.backends import KeyValueBackend

_logger = logging.getLogger(__name__)


class TourProgressTracker:
    """Discovers POIs by proximity and persists the visited set.

    Independent of guidance: a user wandering without an active tour still
    discovers POIs. Discovery is monotonic until :meth:`reset`.

    Parameters
    ----------
    pois : sequence of POI
        Every POI of the tour.
    backend : KeyValueBackend
        Persistent storage; progress lives under one key.
    config : TourGuideConfig, optional
        Approach alert distance and default discovery radius.
    events : EventChannel, optional
        Receives ``POI_APPROACHED``, ``POI_DISCOVERED`` and ``TOUR_RESET``.
    clock : callable, optional
        Source of timezone-aware timestamps.
    """

    def __init__(
        self,
        pois: Sequence[POI],
        backend: KeyValueBackend,
        *,
        config: TourGuideConfig | None = None,
        events: EventChannel | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._pois = sort_pois(pois)
        self._backend = backend
        self._config = config or TourGuideConfig()
        self._events = events or EventChannel()
        self._clock = clock
        self._approached: set[str] = set()
        self._progress = self._restore()

    @property
    def progress(self) -> TourProgress:
        return self._progress.model_copy(deep=True)

    @property
    def pois(self) -> list[POI]:
        return list(self._pois)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _restore(self) -> TourProgress:
        try:
            raw: Any = self._backend.get(TOUR_PROGRESS_KEY)
        except Exception:  # noqa: BLE001
            _logger.warning("Could not read tour progress", exc_info=True)
            return TourProgress()
        if raw is None:
            return TourProgress()
        try:
            progress = TourProgress.model_validate(raw)
        except ValidationError:
            _logger.warning("Discarding unreadable tour progress", exc_info=True)
            return TourProgress()
        # Keep discovery order, drop duplicates.
        progress.visited_poi_ids = list(dict.fromkeys(progress.visited_poi_ids))
        return progress

    def _persist(self) -> None:
        try:
            self._backend.set(TOUR_PROGRESS_KEY, self._progress.model_dump(mode="json", by_alias=True))
        except Exception:  # noqa: BLE001
            _logger.warning("Could not persist tour progress", exc_info=True)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def start_tour(self) -> None:
        """Record the tour start time (only the first call counts)."""
        if self._progress.start_time is None:
            self._progress.start_time = self._clock()
            self._persist()

    def is_visited(self, poi_id: str) -> bool:
        return poi_id in self._progress.visited_poi_ids

    def check_proximity(self, position: Coordinate) -> list[POI]:
        """Raise approach alerts and discover POIs near *position*.

        Returns the POIs discovered by this call.
        """
        discovered: list[POI] = []
        for poi in self._pois:
            if self.is_visited(poi.id):
                continue
            radius = poi.radius_or(self._config.reach.direct)
            distance = geo.distance(position, poi.coordinates)
            if distance <= radius:
                if self._mark_visited(poi, distance):
                    discovered.append(poi)
            elif distance <= self._config.approach_alert_distance and poi.id not in self._approached:
                self._approached.add(poi.id)
                self._events.publish(GuidanceEventType.POI_APPROACHED, poi=poi, distance=distance)
        return discovered

    def discover(self, poi_id: str) -> bool:
        """Mark a POI visited without being there (e.g. simulated discovery)."""
        for poi in self._pois:
            if poi.id == poi_id:
                return self._mark_visited(poi, None)
        raise KeyError(poi_id)

    def _mark_visited(self, poi: POI, distance: float | None) -> bool:
        if self.is_visited(poi.id):
            return False
        now = self._clock()
        self._progress.visited_poi_ids.append(poi.id)
        self._progress.last_visit_time = now
        if self._progress.start_time is None:
            self._progress.start_time = now
        self._persist()
        _logger.info("Discovered %s (%d/%d)", poi.name, len(self._progress.visited_poi_ids), len(self._pois))
        self._events.publish(GuidanceEventType.POI_DISCOVERED, poi=poi, distance=distance)
        return True

    def next_poi(self) -> POI | None:
        """First POI in tour order that has not been visited."""
        for poi in self._pois:
            if not self.is_visited(poi.id):
                return poi
        return None

    def summary(self) -> TourSummary:
        known = {poi.id for poi in self._pois}
        visited = sum(1 for poi_id in self._progress.visited_poi_ids if poi_id in known)
        total = len(self._pois)
        return TourSummary(
            total=total,
            visited=visited,
            percentage=round(visited / total * 100, 1) if total else 0.0,
            is_complete=total > 0 and visited == total,
        )

    def reset(self) -> None:
        """Forget all progress, including the persisted copy."""
        self._progress = TourProgress()
        self._approached.clear()
        try:
            self._backend.remove(TOUR_PROGRESS_KEY)
        except Exception:  # noqa: BLE001
            _logger.warning("Could not remove persisted tour progress", exc_info=True)
        self._events.publish(GuidanceEventType.TOUR_RESET)
