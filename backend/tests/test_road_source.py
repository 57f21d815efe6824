from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

import wayfinder.road_source as road_source
from wayfinder.errors import ROAD_SOURCE_UNAVAILABLE, RoadSourceError
from wayfinder.geometry import Coordinate
from wayfinder.road_graph import RoadFeature
from wayfinder.road_source import RoadFeatureClient, load_road_features_file, parse_road_features


def _collection() -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"name": "Main Avenue"},
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[120.5560, 15.4950], [120.5565, 15.4953, 12.0]],
                },
            },
            {
                "type": "Feature",
                "properties": {},
                "geometry": {
                    "type": "MultiLineString",
                    "coordinates": [
                        [[120.5565, 15.4953], [120.5570, 15.4956]],
                        [[120.5570, 15.4956], [120.5572, 15.4960]],
                    ],
                },
            },
            {
                "type": "Feature",
                "properties": {"kind": "junction"},
                "geometry": {"type": "Point", "coordinates": [120.5571, 15.4951]},
            },
            {
                "type": "Feature",
                "properties": {},
                "geometry": {"type": "MultiPoint", "coordinates": [[120.5575, 15.4952], [999.0, 15.0]]},
            },
            {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": []}},
            {"type": "Feature", "properties": {}, "geometry": None},
        ],
    }


def test_parse_feature_collection_handles_lines_and_points() -> None:
    features = parse_road_features(_collection())

    assert [f.kind for f in features] == ["line", "line", "line", "point", "point"]
    assert features[0] == RoadFeature.line([Coordinate(15.4950, 120.5560), Coordinate(15.4953, 120.5565)])
    assert features[3] == RoadFeature.point(Coordinate(15.4951, 120.5571))
    # out-of-range position is skipped
    assert features[4] == RoadFeature.point(Coordinate(15.4952, 120.5575))


def test_parse_bare_geometries_and_collections() -> None:
    payload = [
        {"type": "LineString", "coordinates": [[120.0, 15.0], [120.001, 15.0]]},
        {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Point", "coordinates": [120.002, 15.0]},
                {"type": "LineString", "coordinates": [[120.003, 15.0], ["x", 15.0]]},
            ],
        },
        "not a feature",
    ]
    features = parse_road_features(payload)

    assert [f.kind for f in features] == ["line", "point", "line"]
    assert features[2].coordinates == (Coordinate(15.0, 120.003),)


def test_parse_rejects_unusable_payloads() -> None:
    assert parse_road_features(None) == []
    assert parse_road_features({"type": "FeatureCollection", "features": []}) == []
    assert parse_road_features({"type": "Feature", "geometry": {"type": "LineString", "coordinates": "nope"}}) == []


def test_load_road_features_file(tmp_path: Path) -> None:
    path = tmp_path / "roads.geojson"
    path.write_text(json.dumps(_collection()), encoding="utf-8")
    assert len(load_road_features_file(path)) == 5


def test_load_road_features_file_errors(tmp_path: Path) -> None:
    with pytest.raises(RoadSourceError) as missing:
        load_road_features_file(tmp_path / "missing.geojson")
    assert missing.value.reason_code == ROAD_SOURCE_UNAVAILABLE

    bad = tmp_path / "bad.geojson"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(RoadSourceError):
        load_road_features_file(bad)


@pytest.mark.anyio
async def test_client_fetches_and_parses() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=_collection())

    client = RoadFeatureClient(url="http://geo.test/plot/road-plots", transport=httpx.MockTransport(handler))
    try:
        features = await client.fetch_features()
    finally:
        await client.aclose()

    assert seen == ["http://geo.test/plot/road-plots"]
    assert len(features) == 5


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="upstream down"),
        httpx.Response(200, text="<html>not json</html>"),
    ],
)
async def test_client_failures_raise_road_source_error(
    response: httpx.Response,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    events: list[tuple[str, dict[str, Any]]] = []
    monkeypatch.setattr(road_source, "log_event", lambda event, **fields: events.append((event, fields)))

    client = RoadFeatureClient(url="http://geo.test/roads", transport=httpx.MockTransport(lambda _: response))
    try:
        with pytest.raises(RoadSourceError) as exc:
            await client.fetch_features()
    finally:
        await client.aclose()

    assert exc.value.reason_code == ROAD_SOURCE_UNAVAILABLE
    assert exc.value.details == {"url": "http://geo.test/roads"}
    assert events[0][0] == "road_source_failed"
