"""Simulated walker for demos and tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

from pytourguide import geo
from pytourguide._constants import WALKING_SPEED_MPS
from pytourguide.models.poi import Coordinate
from pytourguide.models.route import Route

# Positions closer than this to a vertex snap onto it.
_SNAP_M = 0.01


async def simulate_walk(
    route: Route | Sequence[Coordinate],
    *,
    speed_mps: float = WALKING_SPEED_MPS,
    interval: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncIterator[Coordinate]:
    """Yield positions walking along *route* at *speed_mps*.

    One position is produced every *interval* seconds; the first is the
    route start and the last is exactly the route end.
    """
    if speed_mps <= 0 or interval <= 0:
        raise ValueError("speed_mps and interval must be positive")
    coords = route.coordinates() if isinstance(route, Route) else list(route)
    if not coords:
        return

    step = speed_mps * interval
    yield coords[0]

    # Metres still to walk before the next emitted position.
    budget = step
    for a, b in zip(coords, coords[1:]):
        leg = geo.distance(a, b)
        walked = 0.0
        while leg - walked >= budget:
            walked += budget
            budget = step
            await sleep(interval)
            yield b if leg - walked < _SNAP_M else geo.interpolate(a, b, walked / leg)
        budget -= leg - walked

    if step - budget > _SNAP_M:
        await sleep(interval)
        yield coords[-1]
