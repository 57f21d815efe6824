from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass
from math import inf

from .road_graph import NodeId, RoadGraph


@dataclass(frozen=True)
class PathResult:
    nodes: tuple[NodeId, ...]
    cost: float


class PathNotFoundError(ValueError):
    pass


def shortest_path(graph: RoadGraph, start: NodeId, goal: NodeId) -> PathResult:
    if start not in graph or goal not in graph:
        raise PathNotFoundError("start/goal not in graph")

    dist: dict[NodeId, float] = {node: inf for node in graph}
    prev: dict[NodeId, NodeId | None] = {node: None for node in graph}
    dist[start] = 0.0
    finalized: set[NodeId] = set()
    # The counter keeps heap entries comparable when costs tie.
    tie = itertools.count()
    heap: list[tuple[float, int, NodeId]] = [(0.0, next(tie), start)]

    while heap:
        cost, _, node = heapq.heappop(heap)
        if node in finalized:
            continue
        if node == goal:
            break
        finalized.add(node)
        for nxt, weight in graph.neighbors(node).items():
            if nxt in finalized:
                continue
            new_cost = cost + weight
            if new_cost < dist[nxt]:
                dist[nxt] = new_cost
                prev[nxt] = node
                heapq.heappush(heap, (new_cost, next(tie), nxt))

    path: list[NodeId] = []
    cur: NodeId | None = goal
    while cur is not None:
        path.append(cur)
        cur = prev[cur]
    path.reverse()
    if path[0] != start:
        raise PathNotFoundError("no path")
    return PathResult(nodes=tuple(path), cost=dist[goal])


def dijkstra(graph: RoadGraph, start: NodeId, goal: NodeId) -> list[NodeId]:
    """Ordered node ids from ``start`` to ``goal`` inclusive, or [] if unreachable."""
    try:
        return list(shortest_path(graph, start, goal).nodes)
    except PathNotFoundError:
        return []
