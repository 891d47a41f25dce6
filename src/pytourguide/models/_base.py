"""Base model for pytourguide data types.

Every persisted/reference model inherits from :class:`TourGuideModel`:

* frozen, so routes and POIs are shared between components as is;
* ``alias_generator=to_camel`` so the JSON written to storage uses
  camelCase keys while Python code uses snake_case fields;
* ``extra="forbid"`` so malformed stored data fails validation instead of
  being silently accepted.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _ensure_tz_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


AwareDatetime = Annotated[datetime, AfterValidator(_ensure_tz_aware)]
"""Datetime that is always timezone-aware (naive values are taken as UTC)."""


def utcnow() -> datetime:
    return datetime.now(UTC)


class TourGuideModel(BaseModel):
    """Immutable base for reference data."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self) -> dict:
        """Dump with camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)
