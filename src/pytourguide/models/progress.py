"""Tour progress bookkeeping."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pytourguide.models._base import AwareDatetime


class TourProgress(BaseModel):
    """Visited POIs of the current tour.

    Mutable and owned by :class:`~pytourguide.guidance.progress.TourProgressTracker`.
    ``visited_poi_ids`` keeps discovery order; ids are never duplicated.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, alias_generator=to_camel)

    visited_poi_ids: list[str] = Field(default_factory=list)
    start_time: AwareDatetime | None = None
    last_visit_time: AwareDatetime | None = None


class TourSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    visited: int
    percentage: float
    is_complete: bool
