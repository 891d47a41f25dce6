#!/usr/bin/env python3
"""Walk a simulated visitor through a POI tour and print guidance events.

Examples::

    python scripts/simulate_tour.py --offline
    python scripts/simulate_tour.py --pois my_tour.json --precalculate --speed 5 --interval 0.2

Routing configuration comes from the usual ``TOURGUIDE_*`` environment
variables; ``--offline`` forces fallback routes.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pytourguide import GuidanceEvent, GuidanceEventType, TourGuideClient, TourGuideConfig, simulate_walk  # noqa: E402
from pytourguide.models import load_pois  # noqa: E402

_DEFAULT_POIS = Path(__file__).resolve().parent / "langres_pois.json"

# Only printed with -v.
_QUIET_EVENTS = {GuidanceEventType.POSITION_UPDATED}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--pois", type=Path, default=_DEFAULT_POIS, help="POI JSON file")
    parser.add_argument("--offline", action="store_true", help="Use fallback routes only")
    parser.add_argument("--precalculate", action="store_true", help="Store the tour route before starting")
    parser.add_argument("--speed", type=float, default=1.4, help="Walking speed in m/s")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between positions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging and position events")
    return parser.parse_args(argv)


def _printer(verbose: bool):
    def _print(event: GuidanceEvent) -> None:
        if event.type in _QUIET_EVENTS and not verbose:
            return
        details = ", ".join(f"{k}={_short(v)}" for k, v in event.data.items() if k != "route")
        print(f"[{event.observed_at:%H:%M:%S}] {event.type.value}: {details}")

    return _print


def _short(value: object) -> str:
    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name
    if isinstance(value, float):
        return f"{value:.1f}"
    return str(value)


async def _run(args: argparse.Namespace) -> int:
    pois = load_pois(args.pois)
    overrides = {"routing_base_url": ""} if args.offline else {}
    config = TourGuideConfig.from_env(**overrides)

    async with TourGuideClient(config, pois) as client:
        client.subscribe(_printer(args.verbose))

        if args.precalculate:
            stored = await client.precalculate_tour_route()
            print(f"Stored route {stored.id} ({stored.route.total_distance:.0f} m)")

        result = await client.start_tour(position=pois[0].coordinates)
        if not result.ok:
            print(f"Could not start tour: {result.reason}", file=sys.stderr)
            return 1
        route = client.state.main_route
        if route is None:
            return 1
        print(f"Tour route: {route.total_distance:.0f} m via {result.route_source}")

        async with client.open_session() as session:
            async for position in simulate_walk(route, speed_mps=args.speed, interval=args.interval):
                session.push(position)
                await session.drain()
                # A visitor tapping "yes" on every prompt.
                if client.state.awaiting_confirmation:
                    await client.confirm_poi_reached()
                if not client.state.is_active:
                    break
            await session.drain()

        summary = client.tracker.summary()
        print(f"Visited {summary.visited}/{summary.total} POIs ({summary.percentage}%)")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
