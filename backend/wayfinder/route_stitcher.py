from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from .errors import EMPTY_INPUT, EXTERNAL_SERVICE_FAILURE, GRAPH_UNREACHABLE, NO_PROJECTION_FOUND
from .geometry import (
    Coordinate,
    closest_point_on_segment,
    cumulative_lengths_m,
    distance_m,
    polyline_length_m,
)
from .leg_fetcher import LegFetcher, LegResult
from .road_graph import NodeId, RoadGraph, nearest_node
from .settings import Settings
from .shortest_path import dijkstra

HeadStrategy = Literal["none", "projection", "node_fallback", "direct"]
TailStrategy = Literal["untrimmed", "projection", "final_segment"]

# Points closer than this are treated as the same vertex when splicing.
_SAME_POINT_M = 0.01
# Consecutive legs share an endpoint; OSRM snapping may move it slightly.
_LEG_JOIN_TOL_M = 0.5


@dataclass(frozen=True)
class RouteOptions:
    """Windows and tolerances for head attachment and tail trimming.

    lookahead_m: along-route distance from the start searched for the user.
    head_proj_tol_m: max perpendicular distance for a projected head attach.
    max_fallback_candidates: direct user->node legs tried when projection fails.
    lookback_segments: trailing segments searched for the destination.
    tail_proj_tol_m: destination snap tolerance on graph routes.
    direct_tail_proj_tol_m: destination snap tolerance on direct routes.
    """

    lookahead_m: float = 140.0
    head_proj_tol_m: float = 22.0
    max_fallback_candidates: int = 6
    lookback_segments: int = 8
    tail_proj_tol_m: float = 25.0
    direct_tail_proj_tol_m: float = 12.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RouteOptions:
        return cls(
            lookahead_m=float(settings.head_lookahead_m),
            head_proj_tol_m=float(settings.head_proj_tol_m),
            max_fallback_candidates=int(settings.head_max_fallback_candidates),
            lookback_segments=int(settings.tail_lookback_segments),
            tail_proj_tol_m=float(settings.tail_proj_tol_m),
            direct_tail_proj_tol_m=float(settings.direct_tail_proj_tol_m),
        )


@dataclass
class RouteDebug:
    head_strategy: HeadStrategy = "none"
    tail_strategy: TailStrategy = "untrimmed"
    start_node_distance_m: float | None = None
    end_node_distance_m: float | None = None
    legs_requested: int = 0
    leg_sources: dict[str, int] = field(default_factory=lambda: {"cache": 0, "network": 0, "fallback": 0})
    degradations: list[str] = field(default_factory=list)
    raw_point_count: int = 0
    final_point_count: int = 0

    def note(self, reason_code: str) -> None:
        if reason_code not in self.degradations:
            self.degradations.append(reason_code)

    def record_leg(self, leg: LegResult) -> None:
        self.legs_requested += 1
        self.leg_sources[leg.source] = self.leg_sources.get(leg.source, 0) + 1
        if leg.degraded:
            self.note(EXTERNAL_SERVICE_FAILURE)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlannedRoute:
    polyline: tuple[Coordinate, ...]
    distance_m: float
    graph_path: tuple[NodeId, ...]
    debug: RouteDebug


@dataclass(frozen=True)
class ExpandedPath:
    points: tuple[Coordinate, ...]
    # Polyline index at which each graph path node sits.
    node_index: tuple[int, ...]


def _append_distinct(out: list[Coordinate], point: Coordinate) -> None:
    if not out or distance_m(out[-1], point) > _SAME_POINT_M:
        out.append(point)


def _splice(out: list[Coordinate], tail: Sequence[Coordinate]) -> None:
    if not tail:
        return
    _append_distinct(out, tail[0])
    out.extend(tail[1:])


async def expand_legs(path: Sequence[NodeId], fetcher: LegFetcher, debug: RouteDebug) -> ExpandedPath:
    """Concatenate the detailed legs of every hop along ``path``."""
    if not path:
        return ExpandedPath(points=(), node_index=())

    points: list[Coordinate] = [path[0].coordinate]
    node_index: list[int] = [0]
    for hop, (a, b) in enumerate(zip(path, path[1:])):
        leg = await fetcher.get_leg(a.coordinate, b.coordinate)
        debug.record_leg(leg)
        coords = list(leg.points)
        if hop == 0:
            # The first leg's own start replaces the bare node coordinate.
            points = coords
        else:
            if distance_m(points[-1], coords[0]) <= _LEG_JOIN_TOL_M:
                coords = coords[1:]
            points.extend(coords)
        node_index.append(len(points) - 1)
    return ExpandedPath(points=tuple(points), node_index=tuple(node_index))


def attach_head_by_projection(
    user: Coordinate,
    points: Sequence[Coordinate],
    *,
    lookahead_m: float,
    tol_m: float,
) -> list[Coordinate] | None:
    """Splice the user onto the closest segment near the start of ``points``.

    Only segments starting within ``lookahead_m`` of along-route distance are
    considered, so a user never snaps onto a far part of the route that
    happens to pass nearby. Returns None when no segment is within ``tol_m``.
    """
    if len(points) < 2:
        return None
    along = cumulative_lengths_m(points)
    best_idx = -1
    best_hit = None
    for idx in range(len(points) - 1):
        if along[idx] > lookahead_m:
            break
        hit = closest_point_on_segment(points[idx], points[idx + 1], user)
        if hit.distance_m > tol_m:
            continue
        if best_hit is None or hit.distance_m < best_hit.distance_m:
            best_idx = idx
            best_hit = hit
    if best_hit is None:
        return None

    out: list[Coordinate] = [user]
    _append_distinct(out, best_hit.point)
    _splice(out, points[best_idx + 1 :])
    return out


async def attach_head_by_node_legs(
    user: Coordinate,
    path: Sequence[NodeId],
    expanded: ExpandedPath,
    fetcher: LegFetcher,
    debug: RouteDebug,
    *,
    lookahead_m: float,
    max_candidates: int,
) -> list[Coordinate]:
    """Join the user to the route through the shortest direct leg to an early node."""
    points = expanded.points
    along = cumulative_lengths_m(points)
    window_end = 0
    for idx, dist in enumerate(along):
        if dist > lookahead_m:
            break
        window_end = idx

    candidates = [
        (node, idx)
        for node, idx in zip(path, expanded.node_index)
        if along[idx] <= lookahead_m
    ][: max(1, max_candidates)]

    best: tuple[float, int, LegResult] | None = None
    for node, idx in candidates:
        leg = await fetcher.get_leg(user, node.coordinate)
        debug.record_leg(leg)
        length = polyline_length_m(leg.points)
        if best is None or length < best[0]:
            best = (length, idx, leg)

    if best is None:
        out = [user]
        _splice(out, points)
        return out

    _, node_idx, leg = best
    leg_end = leg.points[-1]
    join_idx = min(
        range(node_idx, max(node_idx, window_end) + 1),
        key=lambda j: distance_m(points[j], leg_end),
    )
    out = [user]
    _splice(out, list(leg.points[1:]) or [points[join_idx]])
    _splice(out, points[join_idx + 1 :])
    return out


def trim_tail(
    route: Sequence[Coordinate],
    destination: Coordinate,
    *,
    lookback_segments: int,
    tol_m: float,
) -> tuple[list[Coordinate], TailStrategy]:
    """End ``route`` exactly at ``destination`` when a trailing segment passes close by.

    Trimming an already trimmed route returns it unchanged.
    """
    n = len(route)
    if n < 2:
        return list(route), "untrimmed"

    first_seg = max(0, n - 1 - max(1, lookback_segments))
    best_idx = -1
    best_hit = None
    # Backward so ties keep the later segment.
    for idx in range(n - 2, first_seg - 1, -1):
        hit = closest_point_on_segment(route[idx], route[idx + 1], destination)
        if hit.distance_m > tol_m:
            continue
        if best_hit is None or hit.distance_m < best_hit.distance_m:
            best_idx = idx
            best_hit = hit

    if best_hit is not None:
        out = list(route[: best_idx + 1])
        if best_hit.t > 0.0:
            _append_distinct(out, best_hit.point)
        if len(out) > 1 and distance_m(out[-1], destination) <= _SAME_POINT_M:
            out[-1] = destination
        else:
            out.append(destination)
        return out, "projection"

    last, prev = route[-1], route[-2]
    if distance_m(last, destination) > distance_m(prev, destination):
        hit = closest_point_on_segment(prev, last, destination)
        # Only an overshoot past the destination is cut; never drop below two points.
        if 0.0 < hit.t < 1.0:
            out = list(route[:-1])
            _append_distinct(out, hit.point)
            if len(out) > 1:
                return out, "final_segment"
    return list(route), "untrimmed"


def _finish(route: Sequence[Coordinate], graph_path: Sequence[NodeId], debug: RouteDebug) -> PlannedRoute:
    debug.final_point_count = len(route)
    if debug.tail_strategy != "projection":
        debug.note(NO_PROJECTION_FOUND)
    return PlannedRoute(
        polyline=tuple(route),
        distance_m=polyline_length_m(route),
        graph_path=tuple(graph_path),
        debug=debug,
    )


async def _direct_route(
    user: Coordinate,
    destination: Coordinate,
    fetcher: LegFetcher,
    options: RouteOptions,
    debug: RouteDebug,
) -> PlannedRoute:
    leg = await fetcher.get_leg(user, destination)
    debug.record_leg(leg)
    debug.raw_point_count = len(leg.points)
    debug.head_strategy = "direct"

    route = attach_head_by_projection(
        user,
        leg.points,
        lookahead_m=options.lookahead_m,
        tol_m=options.head_proj_tol_m,
    )
    if route is None:
        route = [user]
        _splice(route, leg.points)

    route, tail = trim_tail(
        route,
        destination,
        lookback_segments=options.lookback_segments,
        tol_m=options.direct_tail_proj_tol_m,
    )
    debug.tail_strategy = tail
    return _finish(route, (), debug)


async def stitch_route(
    user: Coordinate,
    destination: Coordinate,
    graph: RoadGraph,
    fetcher: LegFetcher,
    options: RouteOptions | None = None,
) -> PlannedRoute:
    """Plan a walkable route from ``user`` to ``destination`` over ``graph``.

    Always returns a route: an empty or disconnected graph falls back to one
    direct provider leg, and failed hops degrade to straight lines. What was
    degraded is listed in ``debug.degradations``.
    """
    opts = options or RouteOptions()
    debug = RouteDebug()

    if len(graph) == 0:
        debug.note(EMPTY_INPUT)
        return await _direct_route(user, destination, fetcher, opts, debug)

    start, start_d = nearest_node(graph, user)
    end, end_d = nearest_node(graph, destination)
    debug.start_node_distance_m = start_d
    debug.end_node_distance_m = end_d

    path = dijkstra(graph, start, end) if start is not None and end is not None else []
    if not path:
        debug.note(GRAPH_UNREACHABLE)
        return await _direct_route(user, destination, fetcher, opts, debug)

    expanded = await expand_legs(path, fetcher, debug)
    debug.raw_point_count = len(expanded.points)

    route = attach_head_by_projection(
        user,
        expanded.points,
        lookahead_m=opts.lookahead_m,
        tol_m=opts.head_proj_tol_m,
    )
    if route is not None:
        debug.head_strategy = "projection"
    else:
        debug.note(NO_PROJECTION_FOUND)
        debug.head_strategy = "node_fallback"
        route = await attach_head_by_node_legs(
            user,
            path,
            expanded,
            fetcher,
            debug,
            lookahead_m=opts.lookahead_m,
            max_candidates=opts.max_fallback_candidates,
        )

    route, tail = trim_tail(
        route,
        destination,
        lookback_segments=opts.lookback_segments,
        tol_m=opts.tail_proj_tol_m,
    )
    debug.tail_strategy = tail
    return _finish(route, path, debug)
