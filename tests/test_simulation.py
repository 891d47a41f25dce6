from __future__ import annotations

import pytest

from pytourguide import geo
from pytourguide.models.poi import Coordinate
from pytourguide.simulation import simulate_walk

START = Coordinate.of(47.86, 5.33)
END = geo.destination_point(START, 90.0, 100.0)


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def _collect(*args, **kwargs) -> list[Coordinate]:
    return [position async for position in simulate_walk(*args, **kwargs)]


@pytest.mark.asyncio
async def test_walk_starts_and_ends_on_the_route() -> None:
    sleeps = _Sleeps()

    positions = await _collect([START, END], speed_mps=10.0, interval=1.0, sleep=sleeps)

    assert positions[0] == START
    assert geo.distance(positions[-1], END) < 0.01
    assert len(positions) == 11
    assert sleeps.delays == [1.0] * 10


@pytest.mark.asyncio
async def test_positions_are_spaced_by_speed() -> None:
    middle = geo.destination_point(START, 90.0, 45.0)

    positions = await _collect([START, middle, END], speed_mps=2.0, interval=5.0, sleep=_Sleeps())

    gaps = [geo.distance(a, b) for a, b in zip(positions, positions[1:])]
    assert all(gap == pytest.approx(10.0, abs=0.05) for gap in gaps)


@pytest.mark.asyncio
async def test_short_tail_still_reaches_the_end() -> None:
    positions = await _collect([START, END], speed_mps=30.0, interval=1.0, sleep=_Sleeps())

    assert len(positions) == 5
    assert positions[-1] == END


@pytest.mark.asyncio
async def test_empty_route_yields_nothing() -> None:
    assert await _collect([], sleep=_Sleeps()) == []


@pytest.mark.asyncio
async def test_invalid_speed_is_rejected() -> None:
    with pytest.raises(ValueError):
        await _collect([START, END], speed_mps=0)
