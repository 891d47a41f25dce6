from __future__ import annotations

from typing import Any

import aiohttp
import pytest

from pytourguide import TourGuideClient
from pytourguide._transport import OsrmTransport
from pytourguide.config import TourGuideConfig
from pytourguide.exceptions import TourGuideError
from pytourguide.guidance.events import GuidanceEvent, GuidanceEventType
from pytourguide.models.guidance import GuidanceMode
from pytourguide.models.poi import POI
from pytourguide.models.route import RouteSource
from pytourguide.storage.backends import MemoryBackend
from pytourguide.storage.resolver import RouteUpdateReason


@pytest.mark.asyncio
async def test_tour_start_and_first_poi(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    seen: list[GuidanceEvent] = []
    async with TourGuideClient(config, pois, transport=fake_transport) as client:
        client.subscribe(seen.append)

        result = await client.start_tour(position=pois[0].coordinates)
        state = await client.update_position(pois[0].coordinates)

        assert result.ok
        assert result.route_source == RouteSource.LIVE
        assert state.mode == GuidanceMode.GUIDED_TOUR
        assert state.tour_step == 1
        assert client.tracker.is_visited("cathedral")
        assert client.tracker.progress.start_time is not None

    types = [event.type for event in seen]
    assert GuidanceEventType.POI_REACHED in types
    assert GuidanceEventType.POI_DISCOVERED in types
    assert types[-1] == GuidanceEventType.GUIDANCE_STOPPED


@pytest.mark.asyncio
async def test_precalculated_route_is_reused(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    backend = MemoryBackend()
    async with TourGuideClient(config, pois, backend=backend, transport=fake_transport) as client:
        stored = await client.precalculate_tour_route("langres")
        status = await client.route_update_status("langres")
        assert not status.needs_update
        assert stored.id == "langres"

    fake_transport.calls.clear()
    async with TourGuideClient(config, pois, backend=backend, transport=fake_transport) as client:
        result = await client.start_tour()
        assert result.route_source == RouteSource.STORED
        assert fake_transport.calls == []

        missing = await client.route_update_status("elsewhere")
        assert missing.reason == RouteUpdateReason.MISSING


@pytest.mark.asyncio
async def test_offline_client_uses_fallback_routes(pois: list[POI]) -> None:
    config = TourGuideConfig(routing_base_url="", min_request_interval=0.0)
    async with TourGuideClient(config, pois) as client:
        report = await client.check_routing_availability()
        result = await client.start_tour()

        assert not report.fully_available
        assert report.fallback_pairs == 2
        assert result.ok
        assert result.route_source == RouteSource.FALLBACK
        assert client.state.main_route is not None
        assert client.state.main_route.is_synthetic


@pytest.mark.asyncio
async def test_back_on_track_from_client(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    async with TourGuideClient(config, pois, transport=fake_transport) as client:
        result = await client.start_back_on_track(pois[1].coordinates, target_poi=pois[2])

        assert result.ok
        assert client.state.mode == GuidanceMode.BACK_ON_TRACK
        assert client.state.target_poi == pois[2]

        await client.stop("user")
        assert client.state.mode == GuidanceMode.NONE


@pytest.mark.asyncio
async def test_session_from_client(fake_transport: Any, config: TourGuideConfig, pois: list[POI]) -> None:
    async with TourGuideClient(config, pois, transport=fake_transport) as client:
        await client.start_tour()
        async with client.open_session() as session:
            session.push(pois[0].coordinates)
            await session.drain()

        assert client.state.tour_step == 1
        assert client.tracker.is_visited("cathedral")


@pytest.mark.asyncio
async def test_methods_require_context(config: TourGuideConfig, pois: list[POI]) -> None:
    client = TourGuideClient(config, pois)

    with pytest.raises(TourGuideError, match="not initialized"):
        await client.start_tour()
    with pytest.raises(TourGuideError):
        client.decline_poi_reached()


@pytest.mark.asyncio
async def test_owned_http_session_is_closed(config: TourGuideConfig, pois: list[POI]) -> None:
    client = TourGuideClient(config, pois)
    async with client:
        http_session = client._http_session
        assert isinstance(http_session, aiohttp.ClientSession)
        assert isinstance(client._provider._transport, OsrmTransport)  # type: ignore[union-attr]

    assert http_session.closed


@pytest.mark.asyncio
async def test_injected_http_session_stays_open(config: TourGuideConfig, pois: list[POI]) -> None:
    async with aiohttp.ClientSession() as http_session:
        async with TourGuideClient(config, pois, session=http_session):
            pass
        assert not http_session.closed
