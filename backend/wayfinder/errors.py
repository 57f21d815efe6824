from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Degradations recorded on a planned route. None of them abort planning.
GRAPH_UNREACHABLE = "graph_unreachable"
EXTERNAL_SERVICE_FAILURE = "external_service_failure"
NO_PROJECTION_FOUND = "no_projection_found"
EMPTY_INPUT = "empty_input"
ROAD_SOURCE_UNAVAILABLE = "road_source_unavailable"

REASON_CODES: frozenset[str] = frozenset(
    {
        GRAPH_UNREACHABLE,
        EXTERNAL_SERVICE_FAILURE,
        NO_PROJECTION_FOUND,
        EMPTY_INPUT,
        ROAD_SOURCE_UNAVAILABLE,
    }
)


@dataclass
class RoadSourceError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message
