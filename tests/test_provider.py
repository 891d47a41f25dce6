from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pytourguide import geo
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import (
    NoRouteAvailableError,
    RoutingApiRejectedError,
    RoutingFailureKind,
    RoutingNetworkError,
)
from pytourguide.models.poi import POI, Coordinate
from pytourguide.models.route import RouteSource
from pytourguide.provider import RouteProvider


class _FailingTransport:
    def __init__(self, exc: BaseException) -> None:
        self._exc = exc
        self.calls = 0

    async def fetch_route(self, _start: Coordinate, _end: Coordinate) -> dict[str, Any]:
        self.calls += 1
        raise self._exc


class _HangingTransport:
    async def fetch_route(self, _start: Coordinate, _end: Coordinate) -> dict[str, Any]:
        await asyncio.sleep(10)
        return {}


class _SlowTransport:
    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self.calls = 0

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> dict[str, Any]:
        self.calls += 1
        await asyncio.sleep(0.01)
        return await self._inner.fetch_route(start, end)


@pytest.mark.asyncio
async def test_live_route_is_cached(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    provider = RouteProvider(fake_transport, config)

    first = await provider.calculate_route(pois[0], pois[1])
    second = await provider.calculate_route(pois[0], pois[1])

    assert first.provider == RouteSource.LIVE
    assert second == first
    assert len(fake_transport.calls) == 1
    assert provider.cache_size == 1


@pytest.mark.asyncio
async def test_cache_hit_for_nearby_coordinates_keeps_caller_endpoints(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    provider = RouteProvider(fake_transport, config)
    await provider.calculate_segment(pois[0], pois[1])

    nearby = Coordinate.of(47.860001, 5.330001)
    segment = await provider.calculate_segment(nearby, pois[1])

    assert len(fake_transport.calls) == 1
    assert segment.start.coordinates == nearby
    assert segment.start.poi_id is None
    assert segment.end.poi_id == "market"


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_fetch(
    fake_transport: Any, config: TourGuideConfig, pois: list[POI]
) -> None:
    slow = _SlowTransport(fake_transport)
    provider = RouteProvider(slow, config)

    a, b = await asyncio.gather(
        provider.calculate_segment(pois[0], pois[1]),
        provider.calculate_segment(pois[0], pois[1]),
    )

    assert slow.calls == 1
    assert a.geometry == b.geometry


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (RoutingNetworkError("down"), RoutingFailureKind.NETWORK),
        (
            RoutingApiRejectedError("HTTP 403", kind=RoutingFailureKind.FORBIDDEN, status_code=403),
            RoutingFailureKind.FORBIDDEN,
        ),
        (ConnectionResetError("reset"), RoutingFailureKind.NETWORK),
        (RuntimeError("surprise"), RoutingFailureKind.UNKNOWN),
    ],
)
async def test_failures_fall_back_with_reason(
    exc: BaseException, kind: RoutingFailureKind, config: TourGuideConfig, pois: list[POI]
) -> None:
    transport = _FailingTransport(exc)
    provider = RouteProvider(transport, config)

    route = await provider.calculate_route(pois[0], pois[1])

    assert route.provider == RouteSource.FALLBACK
    assert route.is_synthetic
    assert route.failure is not None
    assert route.failure.kind == kind
    # Fallback results are not cached: the next call tries the API again.
    await provider.calculate_route(pois[0], pois[1])
    assert transport.calls == 2
    assert provider.cache_size == 0


@pytest.mark.asyncio
async def test_timeout_falls_back(pois: list[POI]) -> None:
    provider = RouteProvider(_HangingTransport(), TourGuideConfig(min_request_interval=0.0, request_timeout=0.05))

    route = await provider.calculate_route(pois[0], pois[1])

    assert route.provider == RouteSource.FALLBACK
    assert route.failure is not None
    assert route.failure.kind == RoutingFailureKind.TIMEOUT


@pytest.mark.asyncio
async def test_fallback_distance_is_close_to_straight_line(config: TourGuideConfig, pois: list[POI]) -> None:
    provider = RouteProvider(None, config)

    route = await provider.calculate_route(pois[0], pois[2])

    straight = geo.distance(pois[0].coordinates, pois[2].coordinates)
    assert route.total_distance == pytest.approx(straight, rel=0.2)
    assert route.segments[0].geometry[0] == pois[0].coordinates
    assert route.segments[0].geometry[-1] == pois[2].coordinates


@pytest.mark.asyncio
async def test_tour_route_is_contiguous(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    provider = RouteProvider(fake_transport, config)

    route = await provider.calculate_tour_route(pois)

    assert len(route.segments) == 2
    assert route.start.poi_id == "cathedral"
    assert route.end.poi_id == "ramparts"
    assert route.total_distance == pytest.approx(sum(s.distance_meters for s in route.segments))


@pytest.mark.asyncio
async def test_mixed_tour_route_is_marked_fallback(
    config: TourGuideConfig, pois: list[POI], fake_transport: Any
) -> None:
    class _SecondLegFails:
        def __init__(self) -> None:
            self.calls = 0

        async def fetch_route(self, start: Coordinate, end: Coordinate) -> dict[str, Any]:
            self.calls += 1
            if self.calls == 2:
                raise RoutingNetworkError("flaky")
            return await fake_transport.fetch_route(start, end)

    route = await RouteProvider(_SecondLegFails(), config).calculate_tour_route(pois)

    assert route.provider == RouteSource.FALLBACK
    assert route.fallback_segments == 1
    assert route.segments[0].source == RouteSource.LIVE
    assert route.failure is not None


@pytest.mark.asyncio
async def test_tour_route_needs_two_pois(config: TourGuideConfig, pois: list[POI]) -> None:
    with pytest.raises(NoRouteAvailableError):
        await RouteProvider(None, config).calculate_tour_route(pois[:1])


@pytest.mark.asyncio
async def test_check_reroute_needed(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    provider = RouteProvider(fake_transport, config)
    route = await provider.calculate_route(pois[0], pois[1])

    on_route = provider.check_reroute_needed(Coordinate.of(47.8601, 5.332), route)
    off_route = provider.check_reroute_needed(Coordinate.of(47.861, 5.332), route)

    assert not on_route.needed
    assert on_route.deviation_meters < 15
    assert off_route.needed
    assert off_route.deviation_meters == pytest.approx(111, abs=2)
    assert not provider.check_reroute_needed(Coordinate.of(47.861, 5.332), []).needed


@pytest.mark.asyncio
async def test_assess_availability(config: TourGuideConfig, pois: list[POI], fake_transport: Any) -> None:
    live = await RouteProvider(fake_transport, config).assess_availability(pois)
    offline = await RouteProvider(None, config).assess_availability(pois)

    assert live.fully_available
    assert live.total_pairs == 2
    assert offline.fallback_pairs == 2
    assert not offline.fully_available
    assert len(offline.failures) == 2
