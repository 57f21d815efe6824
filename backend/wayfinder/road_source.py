from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import httpx

from .errors import ROAD_SOURCE_UNAVAILABLE, RoadSourceError
from .geometry import Coordinate
from .logging_utils import log_event
from .road_graph import RoadFeature


def _parse_position(raw: object) -> Coordinate | None:
    # GeoJSON positions are [lng, lat, (alt)]
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        return None
    lng, lat = raw[0], raw[1]
    if not isinstance(lng, (int, float)) or not isinstance(lat, (int, float)):
        return None
    if not (-90.0 <= float(lat) <= 90.0 and -180.0 <= float(lng) <= 180.0):
        return None
    return Coordinate(lat=float(lat), lng=float(lng))


def _parse_line(raw: object) -> RoadFeature | None:
    if not isinstance(raw, list):
        return None
    points = [p for p in (_parse_position(item) for item in raw) if p is not None]
    if not points:
        return None
    return RoadFeature.line(points)


def _features_from_geometry(geometry: object) -> list[RoadFeature]:
    if not isinstance(geometry, dict):
        return []
    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    if kind == "LineString":
        line = _parse_line(coords)
        return [line] if line is not None else []
    if kind == "MultiLineString" and isinstance(coords, list):
        return [line for line in (_parse_line(part) for part in coords) if line is not None]
    if kind == "Point":
        point = _parse_position(coords)
        return [RoadFeature.point(point)] if point is not None else []
    if kind == "MultiPoint" and isinstance(coords, list):
        return [RoadFeature.point(p) for p in (_parse_position(item) for item in coords) if p is not None]
    if kind == "GeometryCollection":
        out: list[RoadFeature] = []
        for child in geometry.get("geometries") or []:
            out.extend(_features_from_geometry(child))
        return out
    return []


def _iter_items(payload: Any) -> Iterable[object]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        features = payload.get("features")
        if isinstance(features, list):
            return features
        return [payload]
    return []


def parse_road_features(payload: Any) -> list[RoadFeature]:
    """Convert GeoJSON road geometry into graph builder input.

    Accepts a FeatureCollection, a bare list of features, or bare geometries.
    Entries that are not usable lines or points are skipped.
    """
    out: list[RoadFeature] = []
    for item in _iter_items(payload):
        if not isinstance(item, dict):
            continue
        geometry = item.get("geometry") if item.get("type") == "Feature" else item
        out.extend(_features_from_geometry(geometry))
    return out


def load_road_features_file(path: str | Path) -> list[RoadFeature]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise RoadSourceError(
            reason_code=ROAD_SOURCE_UNAVAILABLE,
            message=f"Could not read road features from {path}: {e}",
            details={"path": str(path)},
        ) from e
    return parse_road_features(payload)


class RoadFeatureClient:
    """Reads cemetery road geometry from the geodata service."""

    def __init__(
        self,
        *,
        url: str,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s),
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_features(self) -> list[RoadFeature]:
        try:
            resp = await self._client.get(self.url)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log_event(
                "road_source_failed",
                level=logging.WARNING,
                url=self.url,
                error=f"{type(e).__name__}: {e}",
            )
            raise RoadSourceError(
                reason_code=ROAD_SOURCE_UNAVAILABLE,
                message=f"Road feature request failed: {type(e).__name__}: {e}",
                details={"url": self.url},
            ) from e
        return parse_road_features(payload)
