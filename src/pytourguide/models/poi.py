"""Coordinates and points of interest."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator

from pytourguide.models._base import TourGuideModel


class Coordinate(TourGuideModel):
    """WGS84 position in decimal degrees."""

    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)

    @classmethod
    def of(cls, lat: float, lon: float) -> Coordinate:
        return cls(lat=lat, lon=lon)

    @classmethod
    def from_lon_lat(cls, pair: Sequence[Any]) -> Coordinate:
        """Build from a GeoJSON ``[lon, lat]`` pair."""
        if len(pair) < 2:
            raise ValueError(f"expected [lon, lat], got {pair!r}")
        return cls(lat=float(pair[1]), lon=float(pair[0]))

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lon)

    def __str__(self) -> str:
        return f"{self.lat:.6f},{self.lon:.6f}"


class POI(TourGuideModel):
    """A fixed tour stop.

    ``order`` defines the canonical tour sequence. ``proximity_radius`` is
    the discovery/auto-confirm radius in metres; when unset the configured
    default applies.
    """

    id: str
    name: str
    coordinates: Coordinate
    order: int = 0
    proximity_radius: float | None = Field(default=None, gt=0)
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_coordinates(cls, values: Any) -> Any:
        """Accept flat ``lat``/``lon`` (or ``lng``) keys next to the POI fields."""
        if not isinstance(values, dict) or "coordinates" in values:
            return values
        working = dict(values)
        lat = working.pop("lat", None)
        lon = working.pop("lon", working.pop("lng", None))
        if lat is not None and lon is not None:
            working["coordinates"] = {"lat": lat, "lon": lon}
        return working

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if isinstance(value, bool) or value is None:
            raise ValueError("id must be a string or integer")
        text = str(value).strip()
        if not text:
            raise ValueError("id must be non-empty")
        return text

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("name must be non-empty")
        return name

    def radius_or(self, default: float) -> float:
        return self.proximity_radius if self.proximity_radius is not None else default


def sort_pois(pois: Iterable[POI]) -> list[POI]:
    """Return POIs in canonical tour order (stable for equal ``order``)."""
    return sorted(pois, key=lambda poi: poi.order)


def load_pois(path: str | Path) -> list[POI]:
    """Load POIs from a JSON file holding a list (or ``{"pois": [...]}``)."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("pois", [])
    if not isinstance(raw, list):
        raise ValueError(f"{path}: expected a list of POIs")
    return sort_pois(POI.model_validate(item) for item in raw)
