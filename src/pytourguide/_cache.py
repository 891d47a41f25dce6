"""Bounded route cache keyed by rounded start/end coordinates."""

from __future__ import annotations

from collections.abc import Iterator

from pytourguide.models.poi import Coordinate
from pytourguide.models.route import RouteSegment


def cache_key(start: Coordinate, end: Coordinate, precision: int = 5) -> str:
    """Key for a start/end pair; nearby positions share an entry."""
    return f"{start.lat:.{precision}f},{start.lon:.{precision}f}->{end.lat:.{precision}f},{end.lon:.{precision}f}"


class RouteCache:
    """FIFO-evicting cache of calculated segments.

    Only geometry, instructions and totals are reused; callers rebuild the
    endpoints so a cached segment can serve a POI and a plain coordinate
    that round to the same key.
    """

    def __init__(self, max_entries: int = 100, *, precision: int = 5) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._precision = precision
        self._entries: dict[str, RouteSegment] = {}

    def key(self, start: Coordinate, end: Coordinate) -> str:
        return cache_key(start, end, self._precision)

    def get(self, key: str) -> RouteSegment | None:
        return self._entries.get(key)

    def put(self, key: str, segment: RouteSegment) -> None:
        if key in self._entries:
            self._entries[key] = segment
            return
        while len(self._entries) >= self._max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = segment

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
