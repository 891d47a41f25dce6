"""Guidance state exposed to callers."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pytourguide.models.poi import POI
from pytourguide.models.route import Route


class GuidanceMode(StrEnum):
    NONE = "none"
    GUIDED_TOUR = "guided-tour"
    BACK_ON_TRACK = "back-on-track"


class StartStrategy(StrEnum):
    """How a guided tour picks its first POI."""

    FIRST = "first"
    CLOSEST = "closest"


class GuidanceState(BaseModel):
    """Coordinator state.

    ``mode`` is a single field, so two modes can never be active at once.
    ``active_route`` is what the navigation engine follows (the main route
    in guided-tour mode, the correction route in back-on-track mode).
    """

    model_config = ConfigDict(extra="forbid")

    mode: GuidanceMode = GuidanceMode.NONE
    active_route: Route | None = None
    main_route: Route | None = None
    current_segment_index: int = 0
    current_instruction_index: int = 0
    is_deviated: bool = False
    tour_step: int = 0
    tour_sequence: list[POI] = Field(default_factory=list)
    awaiting_confirmation: bool = False

    @property
    def is_active(self) -> bool:
        return self.mode != GuidanceMode.NONE

    @property
    def target_poi(self) -> POI | None:
        if not self.tour_sequence:
            return None
        return self.tour_sequence[self.tour_step % len(self.tour_sequence)]
