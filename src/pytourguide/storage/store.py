"""Persistent storage of calculated tour routes.

Layout in the key-value backend:

* ``route:{id}``     full :class:`StoredRoute` JSON
* ``route-index``    ``{id: RouteMetadata}`` for listing without loading routes
* ``route-version``  format version of the last write

Reads never raise: backend failures, undecodable data and routes written by
an incompatible major version are logged and reported as absent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from pytourguide._constants import (
    ROUTE_FORMAT_VERSION,
    ROUTE_INDEX_KEY,
    ROUTE_KEY_PREFIX,
    ROUTE_VERSION_KEY,
)
from pytourguide.exceptions import (
    InvalidStoredRouteError,
    RouteStorageError,
    RouteVersionIncompatibleError,
)
from pytourguide.models._base import utcnow
from pytourguide.models.poi import POI
from pytourguide.models.route import Route
from pytourguide.models.stored_route import POIFingerprint, RouteMetadata, StoredRoute
from pytourguide.storage.backends import KeyValueBackend

_logger = logging.getLogger(__name__)


def major_version(version: Any) -> int | None:
    """Major component of a ``major.minor.patch`` string, or None if unparsable."""
    if not isinstance(version, str):
        return None
    head = version.strip().split(".", 1)[0]
    return int(head) if head.isdigit() else None


def is_version_compatible(version: Any, current: str = ROUTE_FORMAT_VERSION) -> bool:
    major = major_version(version)
    return major is not None and major == major_version(current)


def validate_route(route: Route, *, route_id: str = "") -> None:
    """Raise :class:`InvalidStoredRouteError` unless *route* is storable."""
    segments = getattr(route, "segments", None)
    if not segments:
        raise InvalidStoredRouteError("Route has no segments", route_id=route_id)
    for i, segment in enumerate(segments):
        if not getattr(segment, "geometry", None):
            raise InvalidStoredRouteError(f"Segment {i} has no geometry", route_id=route_id)


class StoreStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    route_count: int
    total_distance: float
    average_distance: float
    average_duration: float
    oldest: datetime | None = None
    newest: datetime | None = None


class RouteStore:
    """Versioned, validated route persistence on a :class:`KeyValueBackend`.

    Writes are serialized by one lock; the backend itself is assumed to be
    fast and local (file or memory).
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        version: str = ROUTE_FORMAT_VERSION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if major_version(version) is None:
            raise ValueError(f"version must look like 'major.minor.patch', got {version!r}")
        self._backend = backend
        self._version = version
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def version(self) -> str:
        return self._version

    @staticmethod
    def route_key(route_id: str) -> str:
        return f"{ROUTE_KEY_PREFIX}{route_id}"

    # ------------------------------------------------------------------
    # Backend access (failures degrade to a miss)
    # ------------------------------------------------------------------

    def _backend_get(self, key: str) -> Any | None:
        try:
            return self._backend.get(key)
        except Exception:  # noqa: BLE001
            _logger.warning("Route storage read failed for %s", key, exc_info=True)
            return None

    def _backend_set(self, key: str, value: Any) -> bool:
        try:
            self._backend.set(key, value)
        except Exception:  # noqa: BLE001
            _logger.warning("Route storage write failed for %s", key, exc_info=True)
            return False
        return True

    def _backend_remove(self, key: str) -> bool:
        try:
            self._backend.remove(key)
        except Exception:  # noqa: BLE001
            _logger.warning("Route storage delete failed for %s", key, exc_info=True)
            return False
        return True

    def _write_route(self, route_id: str, stored: StoredRoute, metadata: RouteMetadata) -> bool:
        """Write the route record and its index entry; undo the record if the index write fails."""
        key = self.route_key(route_id)
        previous = self._backend_get(key)
        if not self._backend_set(key, stored.to_json_dict()):
            return False
        index = self._read_index()
        index[route_id] = metadata
        if self._write_index(index):
            return True
        if previous is None:
            self._backend_remove(key)
        else:
            self._backend_set(key, previous)
        return False

    def _read_index(self) -> dict[str, RouteMetadata]:
        raw = self._backend_get(ROUTE_INDEX_KEY)
        if not isinstance(raw, Mapping):
            return {}
        index: dict[str, RouteMetadata] = {}
        for route_id, entry in raw.items():
            try:
                index[str(route_id)] = RouteMetadata.model_validate(entry)
            except ValidationError:
                _logger.debug("Dropping unreadable index entry %s", route_id)
        return index

    def _write_index(self, index: Mapping[str, RouteMetadata]) -> bool:
        return self._backend_set(
            ROUTE_INDEX_KEY,
            {route_id: meta.to_json_dict() for route_id, meta in index.items()},
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def store(
        self,
        route_id: str,
        route: Route,
        pois: Sequence[POI] = (),
        *,
        created_at: datetime | None = None,
    ) -> bool:
        """Persist *route* under *route_id*.

        Returns ``False`` (and stores nothing) when the route fails
        validation or the backend rejects the write.
        """
        try:
            validate_route(route, route_id=route_id)
        except InvalidStoredRouteError as exc:
            _logger.warning("Refusing to store route %s: %s", route_id, exc)
            return False

        now = created_at or self._clock()
        metadata = RouteMetadata(
            route_id=route_id,
            version=self._version,
            created_at=now,
            poi_fingerprint=[POIFingerprint.from_poi(poi) for poi in pois],
            poi_count=len(pois),
            total_distance=route.total_distance,
            total_duration=route.total_duration,
            segment_count=len(route.segments),
            provider=route.provider,
            fallback_segments=route.fallback_segments,
        )
        stored = StoredRoute(id=route_id, version=self._version, created_at=now, route=route, metadata=metadata)

        async with self._lock:
            if not self._write_route(route_id, stored, metadata):
                return False
            self._backend_set(ROUTE_VERSION_KEY, self._version)

        _logger.info(
            "Stored route %s (%d segments, %.0f m, %d POIs)",
            route_id,
            metadata.segment_count,
            metadata.total_distance,
            metadata.poi_count,
        )
        return True

    def _load(self, route_id: str) -> StoredRoute | None:
        raw = self._backend_get(self.route_key(route_id))
        if raw is None:
            return None
        if not isinstance(raw, Mapping):
            raise InvalidStoredRouteError("Stored route is not an object", route_id=route_id)

        version = raw.get("version")
        if not is_version_compatible(version, self._version):
            raise RouteVersionIncompatibleError(
                f"Stored route version {version!r} is incompatible with {self._version}",
                route_id=route_id,
                version=str(version),
            )

        try:
            stored = StoredRoute.model_validate(raw)
        except ValidationError as exc:
            raise InvalidStoredRouteError(f"Stored route failed validation: {exc}", route_id=route_id) from exc
        validate_route(stored.route, route_id=route_id)
        return stored

    async def get(self, route_id: str) -> StoredRoute | None:
        """Stored route, or ``None`` if missing, invalid or incompatible."""
        try:
            return self._load(route_id)
        except RouteStorageError as exc:
            _logger.warning("Ignoring stored route %s: %s", route_id, exc)
            return None

    async def has(self, route_id: str) -> bool:
        meta = self._read_index().get(route_id)
        if meta is None or not is_version_compatible(meta.version, self._version):
            return False
        return self._backend_get(self.route_key(route_id)) is not None

    async def list(self) -> list[RouteMetadata]:
        """Metadata of all compatible routes, newest first."""
        entries = [meta for meta in self._read_index().values() if is_version_compatible(meta.version, self._version)]
        return sorted(entries, key=lambda meta: meta.created_at, reverse=True)

    async def delete(self, route_id: str) -> bool:
        async with self._lock:
            removed = self._backend_remove(self.route_key(route_id))
            index = self._read_index()
            if index.pop(route_id, None) is not None:
                removed = self._write_index(index) and removed
        if removed:
            _logger.info("Deleted stored route %s", route_id)
        return removed

    async def clear_all(self) -> int:
        """Remove every stored route, the index and the version marker."""
        async with self._lock:
            try:
                keys = self._backend.keys_with_prefix(ROUTE_KEY_PREFIX)
            except Exception:  # noqa: BLE001
                _logger.warning("Could not enumerate stored routes", exc_info=True)
                keys = [self.route_key(route_id) for route_id in self._read_index()]
            removed = sum(1 for key in keys if self._backend_remove(key))
            self._backend_remove(ROUTE_INDEX_KEY)
            self._backend_remove(ROUTE_VERSION_KEY)
        _logger.info("Cleared %d stored routes", removed)
        return removed

    async def stats(self) -> StoreStats:
        entries = await self.list()
        if not entries:
            return StoreStats(route_count=0, total_distance=0.0, average_distance=0.0, average_duration=0.0)
        total_distance = sum(meta.total_distance for meta in entries)
        total_duration = sum(meta.total_duration for meta in entries)
        created = [meta.created_at for meta in entries]
        return StoreStats(
            route_count=len(entries),
            total_distance=total_distance,
            average_distance=total_distance / len(entries),
            average_duration=total_duration / len(entries),
            oldest=min(created),
            newest=max(created),
        )

    # ------------------------------------------------------------------
    # Backup / restore
    # ------------------------------------------------------------------

    async def export_backup(self) -> dict[str, Any]:
        """All compatible, readable routes as one JSON-compatible document."""
        routes: dict[str, Any] = {}
        for meta in await self.list():
            stored = await self.get(meta.route_id)
            if stored is not None:
                routes[meta.route_id] = stored.to_json_dict()
        return {
            "version": self._version,
            "exportedAt": self._clock().isoformat(),
            "routes": routes,
        }

    async def import_backup(self, backup: Mapping[str, Any], *, overwrite: bool = False) -> int:
        """Restore routes from :meth:`export_backup` output.

        Entries that fail validation or carry an incompatible version are
        skipped. Existing ids are kept unless *overwrite* is set.
        """
        routes = backup.get("routes")
        if not isinstance(routes, Mapping):
            raise InvalidStoredRouteError("Backup has no 'routes' object")

        restored = 0
        for route_id, raw in routes.items():
            if not overwrite and await self.has(route_id):
                continue
            if not isinstance(raw, Mapping) or not is_version_compatible(raw.get("version"), self._version):
                _logger.warning("Skipping incompatible backup entry %s", route_id)
                continue
            try:
                stored = StoredRoute.model_validate(raw)
            except ValidationError:
                _logger.warning("Skipping invalid backup entry %s", route_id, exc_info=True)
                continue

            async with self._lock:
                if not self._write_route(route_id, stored, stored.metadata):
                    continue
                self._backend_set(ROUTE_VERSION_KEY, self._version)
            restored += 1

        _logger.info("Restored %d routes from backup", restored)
        return restored
