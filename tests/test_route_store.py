from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from pytourguide._constants import ROUTE_INDEX_KEY, ROUTE_VERSION_KEY
from pytourguide.config import TourGuideConfig
from pytourguide.models.poi import POI
from pytourguide.models.route import Route
from pytourguide.provider import RouteProvider
from pytourguide.storage.backends import JsonFileBackend, MemoryBackend
from pytourguide.storage.store import RouteStore, is_version_compatible


def _dt(day: int = 1) -> datetime:
    return datetime(2026, 3, day, 9, 0, tzinfo=UTC)


class _BrokenBackend(MemoryBackend):
    def set(self, key: str, value: Any) -> None:
        raise OSError("disk full")

    def get(self, key: str) -> Any | None:
        raise OSError("disk gone")


class _IndexFailingBackend(MemoryBackend):
    """Route records can be written, the index cannot (while `fail_index` is set)."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_index = True

    def set(self, key: str, value: Any) -> None:
        if self.fail_index and key == ROUTE_INDEX_KEY:
            raise OSError("index is read-only")
        super().set(key, value)


async def _tour_route(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> Route:
    return await RouteProvider(fake_transport, config).calculate_tour_route(pois)


@pytest.mark.parametrize(
    ("version", "compatible"),
    [("1.0.0", True), ("1.4.2", True), ("0.9.0", False), ("2.0.0", False), ("garbage", False), (None, False)],
)
def test_version_compatibility(version: Any, compatible: bool) -> None:
    assert is_version_compatible(version, "1.0.0") is compatible


@pytest.mark.asyncio
async def test_store_and_get_round_trip(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    backend = MemoryBackend()
    store = RouteStore(backend, clock=_dt)
    route = await _tour_route(fake_transport, config, pois)

    assert await store.store("langres", route, pois)

    stored = await store.get("langres")
    assert stored is not None
    assert stored.route == route
    assert stored.created_at == _dt()
    assert stored.metadata.poi_count == 3
    assert [fp.id for fp in stored.metadata.poi_fingerprint] == ["cathedral", "market", "ramparts"]
    assert backend.get(ROUTE_VERSION_KEY) == "1.0.0"
    assert "langres" in backend.get(ROUTE_INDEX_KEY)
    assert await store.has("langres")


@pytest.mark.asyncio
async def test_routes_from_older_major_version_are_ignored(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    backend = MemoryBackend()
    route = await _tour_route(fake_transport, config, pois)
    old = RouteStore(backend, version="0.9.0", clock=_dt)
    assert await old.store("legacy", route, pois)

    current = RouteStore(backend, version="1.0.0", clock=_dt)

    assert await current.get("legacy") is None
    assert not await current.has("legacy")
    assert await current.list() == []


@pytest.mark.asyncio
async def test_invalid_stored_data_reads_as_missing(pois: list[POI]) -> None:
    backend = MemoryBackend()
    store = RouteStore(backend)
    backend.set(RouteStore.route_key("broken"), {"id": "broken", "version": "1.0.0", "route": {"segments": []}})
    backend.set(RouteStore.route_key("scalar"), "not a route")

    assert await store.get("broken") is None
    assert await store.get("scalar") is None
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_store_rejects_route_without_geometry(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    store = RouteStore(MemoryBackend())
    route = await _tour_route(fake_transport, config, pois)
    hollow = route.model_construct(**{**dict(route), "segments": []})

    assert not await store.store("hollow", hollow, pois)
    assert await store.list() == []


@pytest.mark.asyncio
async def test_backend_failures_degrade_to_false_and_none(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    store = RouteStore(_BrokenBackend())
    route = await _tour_route(fake_transport, config, pois)

    assert not await store.store("x", route, pois)
    assert await store.get("x") is None
    assert await store.list() == []


@pytest.mark.asyncio
async def test_list_is_newest_first_and_stats(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    store = RouteStore(MemoryBackend())
    route = await _tour_route(fake_transport, config, pois)
    await store.store("old", route, pois, created_at=_dt(1))
    await store.store("new", route, pois, created_at=_dt(5))

    assert [meta.route_id for meta in await store.list()] == ["new", "old"]

    stats = await store.stats()
    assert stats.route_count == 2
    assert stats.total_distance == pytest.approx(2 * route.total_distance)
    assert stats.average_distance == pytest.approx(route.total_distance)
    assert stats.oldest == _dt(1)
    assert stats.newest == _dt(5)


@pytest.mark.asyncio
async def test_delete_and_clear_all(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    backend = MemoryBackend()
    store = RouteStore(backend)
    route = await _tour_route(fake_transport, config, pois)
    for name in ("a", "b", "c"):
        await store.store(name, route, pois)

    assert await store.delete("a")
    assert not await store.has("a")
    assert await store.clear_all() == 2
    assert await store.list() == []
    assert len(backend) == 0


@pytest.mark.asyncio
async def test_backup_export_and_import(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    source = RouteStore(MemoryBackend(), clock=_dt)
    route = await _tour_route(fake_transport, config, pois)
    await source.store("a", route, pois)
    await source.store("b", route, pois)

    backup = await source.export_backup()
    assert backup["version"] == "1.0.0"
    assert set(backup["routes"]) == {"a", "b"}

    backup["routes"]["c"] = {**backup["routes"]["a"], "id": "c", "version": "0.1.0"}
    target = RouteStore(MemoryBackend())
    assert await target.import_backup(backup) == 2
    assert await target.get("a") == await source.get("a")
    assert await target.get("c") is None
    # Existing ids are kept unless overwrite is requested.
    assert await target.import_backup(backup) == 0
    assert await target.import_backup(backup, overwrite=True) == 2


@pytest.mark.asyncio
async def test_json_file_backend_persists_across_instances(
    tmp_path: Path, fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    path = tmp_path / "state" / "routes.json"
    route = await _tour_route(fake_transport, config, pois)
    assert await RouteStore(JsonFileBackend(path), clock=_dt).store("persisted", route, pois)

    reopened = RouteStore(JsonFileBackend(path))
    stored = await reopened.get("persisted")

    assert path.exists()
    assert stored is not None
    assert stored.route.total_distance == pytest.approx(route.total_distance)
    assert stored.created_at == _dt()
    assert stored.created_at + timedelta(days=1) > _dt()


@pytest.mark.asyncio
async def test_failed_index_write_leaves_no_route_behind(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    backend = _IndexFailingBackend()
    store = RouteStore(backend, clock=_dt)
    route = await _tour_route(fake_transport, config, pois)

    assert not await store.store("langres", route, pois)

    assert await store.get("langres") is None
    assert not await store.has("langres")
    assert await store.list() == []
    assert backend.get(RouteStore.route_key("langres")) is None


@pytest.mark.asyncio
async def test_failed_overwrite_keeps_previous_route(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    backend = _IndexFailingBackend()
    backend.fail_index = False
    route = await _tour_route(fake_transport, config, pois)
    assert await RouteStore(backend, clock=_dt).store("langres", route, pois)

    backend.fail_index = True
    assert not await RouteStore(backend, clock=lambda: _dt(5)).store("langres", route, pois)

    stored = await RouteStore(backend).get("langres")
    assert stored is not None
    assert stored.created_at == _dt()


@pytest.mark.asyncio
async def test_import_with_failing_index_restores_nothing(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    source = RouteStore(MemoryBackend(), clock=_dt)
    await source.store("a", await _tour_route(fake_transport, config, pois), pois)
    backup = await source.export_backup()

    target = RouteStore(_IndexFailingBackend())

    assert await target.import_backup(backup) == 0
    assert await target.get("a") is None
