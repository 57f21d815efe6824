from __future__ import annotations

from typing import Any

import pytest

import wayfinder.planner as planner_module
from wayfinder.errors import EMPTY_INPUT
from wayfinder.geometry import Coordinate
from wayfinder.leg_cache import LegCache, MemoryLegStore
from wayfinder.leg_fetcher import LegFetcher
from wayfinder.planner import plan_route
from wayfinder.road_graph import GraphBuildOptions, RoadFeature


class StraightProvider:
    async def fetch_leg(self, origin: Coordinate, destination: Coordinate) -> list[Coordinate]:
        return [origin, destination]


def _fetcher() -> LegFetcher:
    return LegFetcher(provider=StraightProvider(), cache=LegCache(store=MemoryLegStore()))


@pytest.fixture
def events(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict[str, Any]]]:
    captured: list[tuple[str, dict[str, Any]]] = []
    monkeypatch.setattr(planner_module, "log_event", lambda event, **fields: captured.append((event, fields)))
    return captured


@pytest.mark.anyio
async def test_plan_route_logs_summary(events: list[tuple[str, dict[str, Any]]]) -> None:
    road = RoadFeature.line([Coordinate(0.0, 0.0), Coordinate(0.0, 0.0005), Coordinate(0.0, 0.001)])

    planned = await plan_route(
        Coordinate(0.00001, 0.0001),
        Coordinate(0.00002, 0.001),
        [road],
        _fetcher(),
        graph_options=GraphBuildOptions(k_neighbors=0),
    )

    assert len(planned.graph_path) == 3
    ((event, fields),) = events
    assert event == "route_planned"
    assert fields["feature_count"] == 1
    assert fields["graph_nodes"] == 3
    assert fields["graph_edges"] == 2
    assert fields["head_strategy"] == "projection"
    assert fields["degradations"] == []


@pytest.mark.anyio
async def test_plan_route_without_features_notes_empty_input(events: list[tuple[str, dict[str, Any]]]) -> None:
    planned = await plan_route(Coordinate(0.0, 0.0), Coordinate(0.0001, 0.0001), iter(()), _fetcher())

    assert planned.debug.head_strategy == "direct"
    assert planned.debug.degradations.count(EMPTY_INPUT) == 1
    assert events[0][1]["feature_count"] == 0
