from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from .geometry import Coordinate
from .route_stitcher import PlannedRoute


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)

    @classmethod
    def from_coordinate(cls, coordinate: Coordinate) -> LatLng:
        return cls(lat=coordinate.lat, lng=coordinate.lng)


class RouteRequest(BaseModel):
    user: LatLng
    destination: LatLng
    # GeoJSON FeatureCollection; when omitted the configured road source is used.
    road_features: dict[str, Any] | list[dict[str, Any]] | None = None


class RouteDebugInfo(BaseModel):
    head_strategy: Literal["none", "projection", "node_fallback", "direct"]
    tail_strategy: Literal["untrimmed", "projection", "final_segment"]
    start_node_distance_m: float | None = None
    end_node_distance_m: float | None = None
    legs_requested: int = 0
    leg_sources: dict[str, int] = Field(default_factory=dict)
    degradations: list[str] = Field(default_factory=list)
    raw_point_count: int = 0
    final_point_count: int = 0


class RouteResponse(BaseModel):
    polyline: list[LatLng]
    distance_m: float
    graph_path: list[LatLng]
    debug: RouteDebugInfo

    @classmethod
    def from_planned(cls, planned: PlannedRoute) -> RouteResponse:
        return cls(
            polyline=[LatLng.from_coordinate(c) for c in planned.polyline],
            distance_m=round(planned.distance_m, 3),
            graph_path=[LatLng.from_coordinate(node.coordinate) for node in planned.graph_path],
            debug=RouteDebugInfo(**planned.debug.to_dict()),
        )


class LegCacheStats(BaseModel):
    memory_size: int
    store_size: int
    hits: int
    misses: int
    evictions: int
    ttl_s: float
    memory_max_entries: int
