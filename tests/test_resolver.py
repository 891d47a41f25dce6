from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pytourguide import geo
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import NoRouteAvailableError, RouteCalculationInProgressError
from pytourguide.models.poi import POI, Coordinate
from pytourguide.models.route import RouteSource
from pytourguide.provider import RouteProvider
from pytourguide.storage.backends import MemoryBackend
from pytourguide.storage.resolver import RouteUpdateReason, StoredRouteResolver, TourRouteOptions
from pytourguide.storage.store import RouteStore

CREATED = datetime(2026, 5, 1, 8, 0, tzinfo=UTC)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _resolver(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI], clock: _Clock | None = None
) -> StoredRouteResolver:
    clock = clock or _Clock(CREATED)
    store = RouteStore(MemoryBackend(), clock=clock)
    return StoredRouteResolver(store, RouteProvider(fake_transport, config), pois, clock=clock)


@pytest.mark.asyncio
async def test_live_route_when_nothing_is_stored(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    resolver = _resolver(fake_transport, config, pois)

    result = await resolver.get_tour_route()

    assert result.source == RouteSource.LIVE
    assert result.route_id is None
    assert resolver.current_route == result.route
    assert len(fake_transport.calls) == 2


@pytest.mark.asyncio
async def test_precalculated_route_is_reused_without_network(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    resolver = _resolver(fake_transport, config, pois)
    stored = await resolver.precalculate_and_store()
    calls = len(fake_transport.calls)

    result = await resolver.get_tour_route()

    assert stored.id.startswith("tour_")
    assert stored.id.endswith(str(int(CREATED.timestamp())))
    assert result.source == RouteSource.STORED
    assert result.route_id == stored.id
    assert result.route.provider == RouteSource.STORED
    assert [s.source for s in result.route.segments] == [RouteSource.LIVE, RouteSource.LIVE]
    assert len(fake_transport.calls) == calls


@pytest.mark.asyncio
async def test_prefer_stored_false_calculates_live(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    resolver = _resolver(fake_transport, config, pois)
    await resolver.precalculate_and_store("tour")
    resolver._provider.clear_cache()  # noqa: SLF001

    result = await resolver.get_tour_route(TourRouteOptions(prefer_stored=False))

    assert result.source == RouteSource.LIVE
    assert len(fake_transport.calls) == 4


@pytest.mark.asyncio
async def test_no_live_fallback_raises(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    resolver = _resolver(fake_transport, config, pois)

    with pytest.raises(NoRouteAvailableError):
        await resolver.get_tour_route(TourRouteOptions(fallback_to_live=False))


@pytest.mark.asyncio
async def test_explicit_route_id_wins(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    resolver = _resolver(fake_transport, config, pois)
    await resolver.precalculate_and_store("first")
    await resolver.precalculate_and_store("second")

    result = await resolver.get_tour_route(TourRouteOptions(route_id="first"))

    assert result.route_id == "first"


@pytest.mark.asyncio
async def test_count_match_for_full_tour_but_exact_match_for_partial(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    resolver = _resolver(fake_transport, config, pois)
    await resolver.precalculate_and_store("tour")

    moved = [pois[0], pois[1].model_copy(update={"coordinates": Coordinate.of(47.861, 5.335)}), pois[2]]
    assert await resolver.find_best_stored_route(moved) == "tour"
    assert await resolver.find_best_stored_route(moved, allow_count_match=False) is None

    partial = await resolver.get_tour_route(pois=pois[1:])
    assert partial.source == RouteSource.LIVE
    assert partial.route.start.poi_id == "market"


@pytest.mark.asyncio
async def test_concurrent_precalculation_is_rejected(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    class _Slow:
        async def fetch_route(self, start: Coordinate, end: Coordinate) -> dict[str, Any]:
            await asyncio.sleep(0.01)
            return await fake_transport.fetch_route(start, end)

    resolver = _resolver(_Slow(), config, pois)

    first = asyncio.create_task(resolver.precalculate_and_store("a"))
    await asyncio.sleep(0)
    with pytest.raises(RouteCalculationInProgressError):
        await resolver.precalculate_and_store("b")
    assert (await first).id == "a"


@pytest.mark.asyncio
async def test_on_route_checks(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    resolver = _resolver(fake_transport, config, pois)
    assert not resolver.is_on_route(pois[0].coordinates).on_route
    assert resolver.closest_route_point(pois[0].coordinates) is None

    await resolver.get_tour_route()

    near = resolver.is_on_route(Coordinate.of(47.8601, 5.335))
    far = resolver.is_on_route(Coordinate.of(47.862, 5.335))
    assert near.on_route
    assert near.progress_fraction == pytest.approx(0.5, abs=0.05)
    assert not far.on_route
    assert far.distance == pytest.approx(222, abs=3)

    closest = resolver.closest_route_point(Coordinate.of(47.8601, 5.340))
    assert closest is not None
    assert geo.distance(closest.coordinates, pois[2].coordinates) < 0.5

    resolver.clear_current_route()
    assert resolver.route_coordinates == []


@pytest.mark.asyncio
async def test_progress_fraction_spans_the_whole_route(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    resolver = _resolver(fake_transport, config, pois)
    await resolver.get_tour_route()

    assert resolver.is_on_route(pois[0].coordinates).progress_fraction == 0.0
    assert resolver.is_on_route(pois[-1].coordinates).progress_fraction == 1.0


@pytest.mark.asyncio
async def test_route_update_status(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    clock = _Clock(CREATED)
    resolver = _resolver(fake_transport, config, pois, clock)
    await resolver.precalculate_and_store("tour")

    assert (await resolver.route_update_status("missing")).reason == RouteUpdateReason.MISSING
    fresh = await resolver.route_update_status("tour")
    assert not fresh.needs_update
    assert fresh.age == timedelta(0)

    clock.now = CREATED + timedelta(days=8)
    stale = await resolver.route_update_status("tour")
    assert stale.needs_update
    assert stale.reason == RouteUpdateReason.STALE

    shorter = StoredRouteResolver(resolver._store, resolver._provider, pois[:2], clock=clock)  # noqa: SLF001
    assert (await shorter.route_update_status("tour")).reason == RouteUpdateReason.POI_COUNT_CHANGED
