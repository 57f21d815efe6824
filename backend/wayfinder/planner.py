from __future__ import annotations

import time
from collections.abc import Iterable

from .errors import EMPTY_INPUT
from .geometry import Coordinate
from .leg_fetcher import LegFetcher
from .logging_utils import log_event
from .road_graph import GraphBuildOptions, RoadFeature, build_road_graph
from .route_stitcher import PlannedRoute, RouteOptions, stitch_route


async def plan_route(
    user: Coordinate,
    destination: Coordinate,
    features: Iterable[RoadFeature],
    fetcher: LegFetcher,
    *,
    graph_options: GraphBuildOptions | None = None,
    route_options: RouteOptions | None = None,
) -> PlannedRoute:
    """Build the road graph for this request and stitch a route over it."""
    t0 = time.perf_counter()
    feature_list = list(features)
    graph = build_road_graph(feature_list, graph_options)
    graph_ms = (time.perf_counter() - t0) * 1000.0

    planned = await stitch_route(user, destination, graph, fetcher, route_options)
    if not feature_list:
        planned.debug.note(EMPTY_INPUT)

    log_event(
        "route_planned",
        feature_count=len(feature_list),
        graph_nodes=len(graph),
        graph_edges=graph.edge_count,
        graph_build_ms=round(graph_ms, 2),
        total_ms=round((time.perf_counter() - t0) * 1000.0, 2),
        distance_m=round(planned.distance_m, 2),
        path_nodes=len(planned.graph_path),
        head_strategy=planned.debug.head_strategy,
        tail_strategy=planned.debug.tail_strategy,
        legs_requested=planned.debug.legs_requested,
        leg_sources=planned.debug.leg_sources,
        degradations=planned.debug.degradations,
    )
    return planned
