"""Route, segment and instruction models."""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum

from pydantic import Field, model_validator

from pytourguide import geo
from pytourguide._constants import SEGMENT_JOIN_TOLERANCE_M
from pytourguide.exceptions import RoutingFailureKind
from pytourguide.models._base import TourGuideModel
from pytourguide.models.poi import POI, Coordinate


class RouteSource(StrEnum):
    """Where route data came from.

    ``FALLBACK`` routes are synthetic; consumers must be able to tell them
    apart from authoritative data at every layer.
    """

    LIVE = "live"
    FALLBACK = "fallback"
    STORED = "stored"


class InstructionType(StrEnum):
    DEPART = "depart"
    ARRIVE = "arrive"
    TURN = "turn"
    CONTINUE = "continue"
    NEW_NAME = "new-name"
    MERGE = "merge"
    FORK = "fork"
    END_OF_ROAD = "end-of-road"
    ROUNDABOUT = "roundabout"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> InstructionType:
        return cls.OTHER


class RouteFailure(TourGuideModel):
    """Why a route (or segment) had to be synthesized."""

    kind: RoutingFailureKind
    message: str = ""


class Instruction(TourGuideModel):
    type: InstructionType
    text: str
    distance_meters: float = Field(default=0.0, ge=0)
    location: Coordinate
    way_name: str | None = None
    modifier: str | None = None


class RouteEndpoint(TourGuideModel):
    """Start or end of a segment: a POI or a free position."""

    coordinates: Coordinate
    poi_id: str | None = None
    name: str | None = None

    @classmethod
    def from_poi(cls, poi: POI) -> RouteEndpoint:
        return cls(coordinates=poi.coordinates, poi_id=poi.id, name=poi.name)

    @classmethod
    def coerce(cls, value: RouteEndpoint | POI | Coordinate) -> RouteEndpoint:
        if isinstance(value, RouteEndpoint):
            return value
        if isinstance(value, POI):
            return cls.from_poi(value)
        return cls(coordinates=value)


class RouteSegment(TourGuideModel):
    start: RouteEndpoint
    end: RouteEndpoint
    geometry: list[Coordinate] = Field(..., min_length=2)
    instructions: list[Instruction] = Field(default_factory=list)
    distance_meters: float = Field(..., ge=0)
    duration_seconds: float = Field(..., ge=0)
    source: RouteSource = RouteSource.LIVE
    failure: RouteFailure | None = None

    @property
    def is_fallback(self) -> bool:
        return self.source == RouteSource.FALLBACK


class Route(TourGuideModel):
    """Ordered, contiguous list of segments."""

    segments: list[RouteSegment] = Field(..., min_length=1)
    total_distance: float = Field(..., ge=0)
    total_duration: float = Field(..., ge=0)
    provider: RouteSource
    failure: RouteFailure | None = None

    @model_validator(mode="after")
    def _check_contiguous(self) -> Route:
        for i in range(len(self.segments) - 1):
            gap = geo.distance(self.segments[i].end.coordinates, self.segments[i + 1].start.coordinates)
            if gap > SEGMENT_JOIN_TOLERANCE_M:
                raise ValueError(f"segments {i} and {i + 1} are not contiguous ({gap:.1f} m apart)")
        return self

    @classmethod
    def from_segments(
        cls,
        segments: Sequence[RouteSegment],
        *,
        provider: RouteSource | None = None,
    ) -> Route:
        """Build a route, deriving totals, provider and failure from segments.

        Any synthetic segment makes the whole route ``FALLBACK`` (unless a
        provider is given explicitly); the first segment failure is kept.
        """
        failure = next((seg.failure for seg in segments if seg.failure is not None), None)
        if provider is None:
            provider = RouteSource.FALLBACK if any(seg.is_fallback for seg in segments) else RouteSource.LIVE
        return cls(
            segments=list(segments),
            total_distance=sum(seg.distance_meters for seg in segments),
            total_duration=sum(seg.duration_seconds for seg in segments),
            provider=provider,
            failure=failure,
        )

    @property
    def start(self) -> RouteEndpoint:
        return self.segments[0].start

    @property
    def end(self) -> RouteEndpoint:
        return self.segments[-1].end

    @property
    def fallback_segments(self) -> int:
        return sum(1 for seg in self.segments if seg.is_fallback)

    @property
    def is_synthetic(self) -> bool:
        return self.provider == RouteSource.FALLBACK or self.fallback_segments > 0

    def coordinates(self) -> list[Coordinate]:
        """Flatten segment geometries, dropping duplicated join points."""
        flat: list[Coordinate] = []
        for seg in self.segments:
            for coord in seg.geometry:
                if flat and flat[-1] == coord:
                    continue
                flat.append(coord)
        return flat

    def instructions(self) -> list[Instruction]:
        return [instr for seg in self.segments for instr in seg.instructions]
