"""Guidance events and the channel that delivers them.

Every state change the presentation layer may care about (map, audio,
notifications) is published as a :class:`GuidanceEvent`. Listeners are
plain callables; the channel lives as long as its coordinator and drops
all listeners on close.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_logger = logging.getLogger(__name__)


class GuidanceEventType(StrEnum):
    GUIDANCE_STARTED = "guidance_started"
    GUIDANCE_STOPPED = "guidance_stopped"
    GUIDANCE_ERROR = "guidance_error"
    TOUR_STARTED = "tour_started"
    TOUR_COMPLETED = "tour_completed"
    TOUR_RESET = "tour_reset"
    POSITION_UPDATED = "position_updated"
    INSTRUCTION_UPDATED = "instruction_updated"
    NAVIGATION_STARTED = "navigation_started"
    NAVIGATION_COMPLETED = "navigation_completed"
    NAVIGATION_STOPPED = "navigation_stopped"
    REROUTE_STARTED = "reroute_started"
    REROUTE_COMPLETED = "reroute_completed"
    REROUTE_FAILED = "reroute_failed"
    DEVIATION_DETECTED = "deviation_detected"
    BACK_ON_TRACK_STARTED = "back_on_track_started"
    RETURNED_TO_MAIN_ROUTE = "returned_to_main_route"
    POI_APPROACHED = "poi_approached"
    POI_DISCOVERED = "poi_discovered"
    POI_CONFIRMATION_REQUIRED = "poi_confirmation_required"
    POI_CONFIRMATION_EXPIRED = "poi_confirmation_expired"
    POI_REACHED = "poi_reached"
    NEXT_POI_NAVIGATION = "next_poi_navigation"


class GuidanceEvent(BaseModel):
    """A single notification for the presentation layer."""

    model_config = ConfigDict(frozen=True)

    type: GuidanceEventType
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


GuidanceListener = Callable[[GuidanceEvent], None]


class EventChannel:
    """Synchronous publish/subscribe channel.

    A failing listener is logged and skipped; it never breaks guidance or
    starves the remaining listeners.
    """

    def __init__(self) -> None:
        self._listeners: list[GuidanceListener] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: GuidanceListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        if self._closed:
            raise RuntimeError("Event channel is closed")
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event_type: GuidanceEventType, **data: Any) -> GuidanceEvent:
        event = GuidanceEvent(type=event_type, data=data)
        self.emit(event)
        return event

    def emit(self, event: GuidanceEvent) -> None:
        if self._closed:
            return
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                _logger.warning("Guidance listener failed for %s", event.type, exc_info=True)

    def close(self) -> None:
        self._listeners.clear()
        self._closed = True
