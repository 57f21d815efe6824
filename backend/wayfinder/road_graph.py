from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal, NamedTuple

from .geometry import EARTH_RADIUS_M, Coordinate, distance_m
from .settings import Settings

# 6 decimal places, ~0.11 m: coordinates closer than this are the same node.
NODE_SCALE = 1_000_000

# Same sphere as distance_m; the margin keeps cells wider than max_edge_m.
_METERS_PER_DEG_LAT = math.radians(1.0) * EARTH_RADIUS_M
_CELL_MARGIN = 1.01


class NodeId(NamedTuple):
    """Quantized coordinate used as a graph vertex."""

    lat_e6: int
    lng_e6: int

    @classmethod
    def from_coordinate(cls, coordinate: Coordinate) -> NodeId:
        return cls(
            lat_e6=int(round(coordinate.lat * NODE_SCALE)),
            lng_e6=int(round(coordinate.lng * NODE_SCALE)),
        )

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat_e6 / NODE_SCALE, lng=self.lng_e6 / NODE_SCALE)

    def __str__(self) -> str:
        c = self.coordinate
        return f"{c.lat:.6f},{c.lng:.6f}"


@dataclass(frozen=True)
class RoadFeature:
    kind: Literal["line", "point"]
    coordinates: tuple[Coordinate, ...]

    @classmethod
    def line(cls, coordinates: Iterable[Coordinate]) -> RoadFeature:
        return cls(kind="line", coordinates=tuple(coordinates))

    @classmethod
    def point(cls, coordinate: Coordinate) -> RoadFeature:
        return cls(kind="point", coordinates=(coordinate,))


@dataclass(frozen=True)
class GraphBuildOptions:
    """Tunables for graph construction.

    k_neighbors: nearest-node shortcuts added per node (0 disables the pass).
    max_edge_m: longest shortcut allowed; drawn road segments are never capped.
    min_edge_m: shortcuts below this length are degenerate and skipped.
    """

    k_neighbors: int = 4
    max_edge_m: float = 80.0
    min_edge_m: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> GraphBuildOptions:
        return cls(
            k_neighbors=int(settings.graph_k_neighbors),
            max_edge_m=float(settings.graph_max_edge_m),
            min_edge_m=float(settings.graph_min_edge_m),
        )


@dataclass(frozen=True)
class RoadGraph:
    adjacency: Mapping[NodeId, Mapping[NodeId, float]] = field(default_factory=dict)

    def __contains__(self, node: object) -> bool:
        return node in self.adjacency

    def __len__(self) -> int:
        return len(self.adjacency)

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self.adjacency)

    def neighbors(self, node: NodeId) -> Mapping[NodeId, float]:
        return self.adjacency.get(node, {})

    def weight(self, a: NodeId, b: NodeId) -> float | None:
        return self.adjacency.get(a, {}).get(b)

    @property
    def edge_count(self) -> int:
        return sum(len(nbrs) for nbrs in self.adjacency.values()) // 2


class _GraphAccumulator:
    def __init__(self) -> None:
        self.adjacency: dict[NodeId, dict[NodeId, float]] = {}

    def add_edge(self, a: NodeId, b: NodeId, weight: float) -> None:
        if a == b:
            return
        for u, v in ((a, b), (b, a)):
            nbrs = self.adjacency.setdefault(u, {})
            prior = nbrs.get(v)
            if prior is None or weight < prior:
                nbrs[v] = weight

    def finalize(self) -> RoadGraph:
        return RoadGraph(adjacency={node: nbrs for node, nbrs in self.adjacency.items() if nbrs})


def _grid_cell(node: NodeId, cell_lat_deg: float, cell_lng_deg: float) -> tuple[int, int]:
    c = node.coordinate
    return (int(math.floor(c.lat / cell_lat_deg)), int(math.floor(c.lng / cell_lng_deg)))


def _add_nearest_shortcuts(
    acc: _GraphAccumulator,
    nodes: Sequence[NodeId],
    options: GraphBuildOptions,
) -> None:
    if options.k_neighbors <= 0 or len(nodes) < 2:
        return

    # Cells at least max_edge_m wide on both axes, so a 3x3 ring covers the radius.
    max_abs_lat = max(abs(n.coordinate.lat) for n in nodes)
    cos_lat = max(0.01, math.cos(math.radians(min(89.0, max_abs_lat))))
    cell_lat_deg = max(1e-9, options.max_edge_m * _CELL_MARGIN / _METERS_PER_DEG_LAT)
    cell_lng_deg = max(1e-9, options.max_edge_m * _CELL_MARGIN / (_METERS_PER_DEG_LAT * cos_lat))

    order = {node: idx for idx, node in enumerate(nodes)}
    grid: dict[tuple[int, int], list[NodeId]] = {}
    for node in nodes:
        grid.setdefault(_grid_cell(node, cell_lat_deg, cell_lng_deg), []).append(node)

    for node in nodes:
        here = node.coordinate
        row, col = _grid_cell(node, cell_lat_deg, cell_lng_deg)
        candidates: list[tuple[float, int, NodeId]] = []
        for dr in (-1, 0, 1):
            for dc in (-1, 0, 1):
                for other in grid.get((row + dr, col + dc), ()):
                    if other == node:
                        continue
                    d = distance_m(here, other.coordinate)
                    if d <= options.max_edge_m:
                        candidates.append((d, order[other], other))
        candidates.sort()
        for d, _, other in candidates[: options.k_neighbors]:
            if d < options.min_edge_m:
                continue
            acc.add_edge(node, other, d)


def build_road_graph(
    features: Iterable[RoadFeature],
    options: GraphBuildOptions | None = None,
) -> RoadGraph:
    """Build an undirected, distance-weighted graph from road features.

    Consecutive vertices of every line become edges as drawn. Every node then
    gains shortcuts to its nearest neighbours within ``max_edge_m`` so that
    roads which were not snapped together still connect. Nodes left without
    edges are dropped.
    """
    opts = options or GraphBuildOptions()
    acc = _GraphAccumulator()
    seen: dict[NodeId, None] = {}

    for feature in features:
        ids = [NodeId.from_coordinate(c) for c in feature.coordinates]
        for node in ids:
            seen.setdefault(node, None)
        if feature.kind != "line" or len(ids) < 2:
            continue
        for a, b in zip(ids, ids[1:]):
            if a == b:
                continue
            acc.add_edge(a, b, distance_m(a.coordinate, b.coordinate))

    _add_nearest_shortcuts(acc, list(seen), opts)
    return acc.finalize()


def nearest_node(graph: RoadGraph, coordinate: Coordinate) -> tuple[NodeId | None, float]:
    best: NodeId | None = None
    best_d = float("inf")
    for node in graph:
        d = distance_m(coordinate, node.coordinate)
        if d < best_d:
            best = node
            best_d = d
    return best, best_d
