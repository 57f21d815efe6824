from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from wayfinder.geometry import Coordinate  # noqa: E402
from wayfinder.leg_cache import JsonFileLegStore, LegCache  # noqa: E402
from wayfinder.leg_fetcher import LegFetcher  # noqa: E402
from wayfinder.models import RouteResponse  # noqa: E402
from wayfinder.planner import plan_route  # noqa: E402
from wayfinder.road_graph import GraphBuildOptions, RoadFeature  # noqa: E402
from wayfinder.recompute_driver import RouteRecomputeDriver  # noqa: E402
from wayfinder.road_source import RoadFeatureClient, load_road_features_file, parse_road_features  # noqa: E402
from wayfinder.route_stitcher import RouteOptions  # noqa: E402
from wayfinder.routing_osrm import OSRMClient  # noqa: E402
from wayfinder.settings import settings  # noqa: E402


def _parse_lat_lng(raw: str) -> Coordinate:
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected 'lat,lng', got {raw!r}")
    try:
        return Coordinate(lat=float(parts[0]), lng=float(parts[1]))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected 'lat,lng', got {raw!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Plan one walking route to a grave over cemetery road geometry."
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--roads-geojson", default=None)
    group.add_argument("--roads-url", default=None)
    start = parser.add_mutually_exclusive_group(required=True)
    start.add_argument("--user", type=_parse_lat_lng, default=None, help="lat,lng")
    start.add_argument(
        "--positions",
        default=None,
        help="JSON file of visitor positions replayed in order; the route for the last one is printed",
    )
    parser.add_argument("--destination", type=_parse_lat_lng, required=True, help="lat,lng")
    parser.add_argument("--osrm-base-url", default=settings.osrm_base_url)
    parser.add_argument("--osrm-profile", default=settings.osrm_profile)
    parser.add_argument("--cache-file", default=str(settings.leg_cache_path))
    parser.add_argument("--k-neighbors", type=int, default=settings.graph_k_neighbors)
    parser.add_argument("--max-edge-m", type=float, default=settings.graph_max_edge_m)
    parser.add_argument("--out-file", default=None)
    return parser


def load_positions(path: str | Path) -> list[Coordinate]:
    """Read a position track: a list of "lat,lng" strings or GeoJSON points/lines."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, list) and all(isinstance(item, str) for item in payload):
        try:
            return [_parse_lat_lng(item) for item in payload]
        except argparse.ArgumentTypeError as e:
            raise ValueError(f"{path}: {e}") from e
    return [c for feature in parse_road_features(payload) for c in feature.coordinates]


async def _load_features(args: argparse.Namespace) -> list[RoadFeature]:
    if args.roads_geojson:
        return load_road_features_file(args.roads_geojson)
    client = RoadFeatureClient(url=args.roads_url, timeout_s=settings.road_features_timeout_s)
    try:
        return await client.fetch_features()
    finally:
        await client.aclose()


async def run(args: argparse.Namespace) -> dict[str, Any]:
    if args.positions:
        positions = load_positions(args.positions)
        if not positions:
            raise ValueError(f"no positions in {args.positions}")
    else:
        positions = [args.user]

    features = await _load_features(args)
    osrm = OSRMClient(
        base_url=args.osrm_base_url,
        profile=args.osrm_profile,
        timeout_s=settings.osrm_timeout_s,
        connect_timeout_s=settings.osrm_connect_timeout_s,
        max_retries=settings.osrm_max_retries,
    )
    cache = LegCache(
        store=JsonFileLegStore(Path(args.cache_file), max_entries=settings.leg_cache_max_entries),
        ttl_s=settings.leg_cache_ttl_s,
        memory_max_entries=settings.leg_cache_memory_max_entries,
    )
    fetcher = LegFetcher(provider=osrm, cache=cache)
    graph_options = GraphBuildOptions(
        k_neighbors=args.k_neighbors,
        max_edge_m=args.max_edge_m,
        min_edge_m=settings.graph_min_edge_m,
    )
    route_options = RouteOptions.from_settings(settings)

    driver = RouteRecomputeDriver(
        lambda position: plan_route(
            position,
            args.destination,
            features,
            fetcher,
            graph_options=graph_options,
            route_options=route_options,
        )
    )
    try:
        for position in positions:
            await driver.update_position(position)
    finally:
        await driver.aclose()
        await osrm.aclose()

    if driver.latest is None:
        raise RuntimeError("no route was published")
    result = RouteResponse.from_planned(driver.latest).model_dump()
    if args.positions:
        result["positions_replayed"] = driver.generation
    return result


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    result = asyncio.run(run(args))
    text = json.dumps(result, indent=2)
    if args.out_file:
        out_path = Path(args.out_file)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        print(f"Wrote route to {out_path}")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
