from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

import httpx

from .geometry import Coordinate
from .leg_cache import LegCache, leg_cache_key
from .logging_utils import log_event
from .routing_osrm import OSRMError

LegSource = Literal["cache", "network", "fallback"]


class LegProvider(Protocol):
    async def fetch_leg(self, origin: Coordinate, destination: Coordinate) -> list[Coordinate]: ...


@dataclass(frozen=True)
class LegResult:
    points: tuple[Coordinate, ...]
    source: LegSource

    @property
    def degraded(self) -> bool:
        return self.source == "fallback"


class LegFetcher:
    """Cache-first lookup of per-hop walking geometry.

    A failed lookup degrades that hop to a straight line and is never cached,
    so the next planning pass retries the provider.
    """

    def __init__(self, *, provider: LegProvider, cache: LegCache) -> None:
        self.provider = provider
        self.cache = cache

    async def get_leg(self, a: Coordinate, b: Coordinate) -> LegResult:
        key = leg_cache_key(a, b)
        cached = self.cache.get(key)
        if cached is not None:
            return LegResult(points=cached, source="cache")

        try:
            points = await self.provider.fetch_leg(a, b)
        except (OSRMError, httpx.HTTPError) as e:
            log_event(
                "leg_fetch_failed",
                level=logging.WARNING,
                cache_key=key,
                error=f"{type(e).__name__}: {e}",
            )
            return LegResult(points=(a, b), source="fallback")

        if not points:
            log_event("leg_fetch_failed", level=logging.WARNING, cache_key=key, error="empty geometry")
            return LegResult(points=(a, b), source="fallback")

        leg = tuple(points)
        self.cache.set(key, leg)
        return LegResult(points=leg, source="network")
