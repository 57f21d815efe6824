from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_out_dir() -> str:
    # Keep cache and log artifacts in backend/out by default.
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tunables out of the algorithms."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    osrm_base_url: str = Field(default="https://router.project-osrm.org", alias="OSRM_BASE_URL")
    osrm_profile: str = Field(default="foot", alias="OSRM_PROFILE")
    osrm_timeout_s: float = Field(default=10.0, ge=1.0, le=120.0, alias="OSRM_TIMEOUT_S")
    osrm_connect_timeout_s: float = Field(default=5.0, ge=0.5, le=60.0, alias="OSRM_CONNECT_TIMEOUT_S")
    osrm_max_retries: int = Field(default=3, ge=1, le=10, alias="OSRM_MAX_RETRIES")

    # GeoJSON FeatureCollection of cemetery roads (lines) and junction points.
    road_features_url: str = Field(default="", alias="ROAD_FEATURES_URL")
    road_features_timeout_s: float = Field(default=10.0, ge=1.0, le=120.0, alias="ROAD_FEATURES_TIMEOUT_S")

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Graph construction
    graph_k_neighbors: int = Field(default=4, ge=0, le=32, alias="GRAPH_K_NEIGHBORS")
    graph_max_edge_m: float = Field(default=80.0, gt=0.0, le=1000.0, alias="GRAPH_MAX_EDGE_M")
    graph_min_edge_m: float = Field(default=0.5, ge=0.0, le=10.0, alias="GRAPH_MIN_EDGE_M")

    # Leg cache (7 days, capped durable store)
    leg_cache_ttl_s: int = Field(default=7 * 24 * 3600, ge=1, alias="LEG_CACHE_TTL_S")
    leg_cache_max_entries: int = Field(default=300, ge=1, le=100_000, alias="LEG_CACHE_MAX_ENTRIES")
    leg_cache_memory_max_entries: int = Field(
        default=2048,
        ge=1,
        le=1_000_000,
        alias="LEG_CACHE_MEMORY_MAX_ENTRIES",
    )

    # Head attachment / tail trimming windows
    head_lookahead_m: float = Field(default=140.0, ge=0.0, le=5000.0, alias="HEAD_LOOKAHEAD_M")
    head_proj_tol_m: float = Field(default=22.0, ge=0.0, le=500.0, alias="HEAD_PROJ_TOL_M")
    head_max_fallback_candidates: int = Field(default=6, ge=1, le=50, alias="HEAD_MAX_FALLBACK_CANDIDATES")
    tail_lookback_segments: int = Field(default=8, ge=1, le=500, alias="TAIL_LOOKBACK_SEGMENTS")
    tail_proj_tol_m: float = Field(default=25.0, ge=0.0, le=500.0, alias="TAIL_PROJ_TOL_M")
    direct_tail_proj_tol_m: float = Field(default=12.0, ge=0.0, le=500.0, alias="DIRECT_TAIL_PROJ_TOL_M")

    @property
    def leg_cache_path(self) -> Path:
        return Path(self.out_dir) / "cache" / "leg_cache.json"


settings = Settings()
