from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

import scripts.plan_route as plan_route_script
from scripts.plan_route import build_parser, load_positions, main, run
from wayfinder.geometry import Coordinate

ROADS = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {},
            "geometry": {"type": "LineString", "coordinates": [[0.0, 0.0], [0.0005, 0.0], [0.001, 0.0]]},
        }
    ],
}


class FakeOSRMClient:
    instances: list[FakeOSRMClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.closed = False
        FakeOSRMClient.instances.append(self)

    async def fetch_leg(self, origin: Coordinate, destination: Coordinate) -> list[Coordinate]:
        return [origin, destination]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def roads_file(tmp_path: Path) -> Path:
    path = tmp_path / "roads.geojson"
    path.write_text(json.dumps(ROADS), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def fake_osrm(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeOSRMClient.instances = []
    monkeypatch.setattr(plan_route_script, "OSRMClient", FakeOSRMClient)


def test_parser_requires_one_road_source() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--user", "0,0", "--destination", "0,0.001"])
    with pytest.raises(SystemExit):
        build_parser().parse_args(
            ["--roads-geojson", "a.json", "--roads-url", "http://x", "--user", "0,0", "--destination", "0,0.001"]
        )


def test_parser_takes_user_or_positions_but_not_both() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--roads-geojson", "r.json", "--destination", "0,0.001"])
    with pytest.raises(SystemExit):
        build_parser().parse_args(
            ["--roads-geojson", "r.json", "--user", "0,0", "--positions", "track.json", "--destination", "0,0.001"]
        )

    args = build_parser().parse_args(["--roads-geojson", "r.json", "--positions", "track.json", "--destination", "0,0"])
    assert args.user is None
    assert args.positions == "track.json"


def test_parser_parses_lat_lng_and_rejects_garbage() -> None:
    args = build_parser().parse_args(
        ["--roads-geojson", "roads.json", "--user", "15.4950, 120.5560", "--destination", "15.4960,120.5570"]
    )
    assert args.user == Coordinate(15.4950, 120.5560)
    assert args.destination == Coordinate(15.4960, 120.5570)
    assert args.k_neighbors == 4

    with pytest.raises(SystemExit):
        build_parser().parse_args(["--roads-geojson", "r.json", "--user", "north", "--destination", "0,0"])


def test_run_plans_over_geojson_file(roads_file: Path, tmp_path: Path) -> None:
    cache_file = tmp_path / "cache" / "legs.json"
    args = build_parser().parse_args(
        [
            "--roads-geojson",
            str(roads_file),
            "--user",
            "0.00001,0.0001",
            "--destination",
            "0.00002,0.001",
            "--osrm-base-url",
            "http://osrm.test",
            "--cache-file",
            str(cache_file),
        ]
    )

    result = asyncio.run(run(args))

    assert result["polyline"][0] == {"lat": 0.00001, "lng": 0.0001}
    assert result["polyline"][-1] == {"lat": 0.00002, "lng": 0.001}
    assert result["debug"]["head_strategy"] == "projection"
    assert len(result["graph_path"]) == 3
    assert cache_file.exists()
    assert len(json.loads(cache_file.read_text(encoding="utf-8"))) == 2

    (client,) = FakeOSRMClient.instances
    assert client.kwargs["base_url"] == "http://osrm.test"
    assert client.kwargs["profile"] == "foot"
    assert client.closed


def test_main_writes_out_file(roads_file: Path, tmp_path: Path) -> None:
    out_file = tmp_path / "route" / "route.json"
    code = main(
        [
            "--roads-geojson",
            str(roads_file),
            "--user",
            "0.00001,0.0001",
            "--destination",
            "0.00002,0.001",
            "--cache-file",
            str(tmp_path / "legs.json"),
            "--out-file",
            str(out_file),
        ]
    )

    assert code == 0
    payload = json.loads(out_file.read_text(encoding="utf-8"))
    assert payload["distance_m"] > 100.0


def test_load_positions_accepts_strings_and_geojson(tmp_path: Path) -> None:
    strings = tmp_path / "strings.json"
    strings.write_text(json.dumps(["0.0001,0.0002", " 0.0003 , 0.0004"]), encoding="utf-8")
    assert load_positions(strings) == [Coordinate(0.0001, 0.0002), Coordinate(0.0003, 0.0004)]

    track = tmp_path / "track.geojson"
    track.write_text(
        json.dumps({"type": "LineString", "coordinates": [[0.0002, 0.0001], [0.0004, 0.0003]]}),
        encoding="utf-8",
    )
    assert load_positions(track) == [Coordinate(0.0001, 0.0002), Coordinate(0.0003, 0.0004)]

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps(["north"]), encoding="utf-8")
    with pytest.raises(ValueError):
        load_positions(bad)


def test_run_replays_positions_and_returns_route_for_last(roads_file: Path, tmp_path: Path) -> None:
    track = tmp_path / "track.geojson"
    track.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0.0001, 0.00001]}},
                    {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0.0003, 0.00001]}},
                ],
            }
        ),
        encoding="utf-8",
    )
    args = build_parser().parse_args(
        [
            "--roads-geojson",
            str(roads_file),
            "--positions",
            str(track),
            "--destination",
            "0.00002,0.001",
            "--cache-file",
            str(tmp_path / "legs.json"),
        ]
    )

    result = asyncio.run(run(args))

    assert result["positions_replayed"] == 2
    assert result["polyline"][0] == {"lat": 0.00001, "lng": 0.0003}
    assert result["polyline"][-1] == {"lat": 0.00002, "lng": 0.001}
    (client,) = FakeOSRMClient.instances
    assert client.closed


def test_run_rejects_empty_position_track(roads_file: Path, tmp_path: Path) -> None:
    track = tmp_path / "empty.json"
    track.write_text(json.dumps({"type": "FeatureCollection", "features": []}), encoding="utf-8")
    args = build_parser().parse_args(
        ["--roads-geojson", str(roads_file), "--positions", str(track), "--destination", "0,0.001"]
    )

    with pytest.raises(ValueError):
        asyncio.run(run(args))
    assert FakeOSRMClient.instances == []
