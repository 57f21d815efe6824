from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .errors import ROAD_SOURCE_UNAVAILABLE, RoadSourceError
from .leg_cache import JsonFileLegStore, LegCache
from .leg_fetcher import LegFetcher
from .models import LegCacheStats, RouteRequest, RouteResponse
from .planner import plan_route
from .road_graph import GraphBuildOptions, RoadFeature
from .road_source import RoadFeatureClient, parse_road_features
from .route_stitcher import RouteOptions
from .routing_osrm import OSRMClient
from .settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    osrm = OSRMClient(
        base_url=settings.osrm_base_url,
        profile=settings.osrm_profile,
        timeout_s=settings.osrm_timeout_s,
        connect_timeout_s=settings.osrm_connect_timeout_s,
        max_retries=settings.osrm_max_retries,
    )
    cache = LegCache(
        store=JsonFileLegStore(settings.leg_cache_path, max_entries=settings.leg_cache_max_entries),
        ttl_s=settings.leg_cache_ttl_s,
        memory_max_entries=settings.leg_cache_memory_max_entries,
    )
    app.state.osrm = osrm
    app.state.leg_fetcher = LegFetcher(provider=osrm, cache=cache)
    app.state.road_source = (
        RoadFeatureClient(url=settings.road_features_url, timeout_s=settings.road_features_timeout_s)
        if settings.road_features_url
        else None
    )
    yield
    await osrm.aclose()
    if app.state.road_source is not None:
        await app.state.road_source.aclose()


app = FastAPI(title="Cemetery Wayfinding Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def leg_fetcher(request: Request) -> LegFetcher:
    fetcher: LegFetcher | None = getattr(request.app.state, "leg_fetcher", None)  # type: ignore[attr-defined]
    if fetcher is None:
        raise HTTPException(status_code=503, detail="Leg fetcher not initialised")
    return fetcher


def road_source(request: Request) -> RoadFeatureClient | None:
    return getattr(request.app.state, "road_source", None)  # type: ignore[attr-defined]


LegFetcherDep = Annotated[LegFetcher, Depends(leg_fetcher)]
RoadSourceDep = Annotated[RoadFeatureClient | None, Depends(road_source)]


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


async def _resolve_features(req: RouteRequest, source: RoadFeatureClient | None) -> tuple[list[RoadFeature], bool]:
    if req.road_features is not None:
        return parse_road_features(req.road_features), False
    if source is None:
        return [], True
    try:
        return await source.fetch_features(), False
    except RoadSourceError:
        return [], True


@app.post("/route", response_model=RouteResponse)
async def compute_route(req: RouteRequest, fetcher: LegFetcherDep, source: RoadSourceDep) -> RouteResponse:
    features, source_failed = await _resolve_features(req, source)
    planned = await plan_route(
        req.user.to_coordinate(),
        req.destination.to_coordinate(),
        features,
        fetcher,
        graph_options=GraphBuildOptions.from_settings(settings),
        route_options=RouteOptions.from_settings(settings),
    )
    if source_failed:
        planned.debug.note(ROAD_SOURCE_UNAVAILABLE)
    return RouteResponse.from_planned(planned)


@app.get("/cache/legs", response_model=LegCacheStats)
async def leg_cache_stats(fetcher: LegFetcherDep) -> LegCacheStats:
    return LegCacheStats(**fetcher.cache.snapshot())


@app.delete("/cache/legs")
async def clear_leg_cache(fetcher: LegFetcherDep) -> dict[str, int]:
    return {"cleared": fetcher.cache.clear()}
