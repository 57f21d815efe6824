from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from .geometry import Coordinate
from .logging_utils import log_event
from .route_stitcher import PlannedRoute

Planner = Callable[[Coordinate], Awaitable[PlannedRoute]]
RouteListener = Callable[[PlannedRoute], None]


class RouteRecomputeDriver:
    """Re-plans whenever the visitor's position changes.

    The newest position always wins: an update cancels the plan still running
    for an older position, and a result that finishes after a newer update was
    issued is dropped instead of published.
    """

    def __init__(self, planner: Planner, *, on_route: RouteListener | None = None) -> None:
        self._planner = planner
        self._on_route = on_route
        self._generation = 0
        self._task: asyncio.Task[PlannedRoute] | None = None
        self.latest: PlannedRoute | None = None
        self.latest_position: Coordinate | None = None

    @property
    def generation(self) -> int:
        return self._generation

    async def update_position(self, position: Coordinate) -> PlannedRoute | None:
        self._generation += 1
        generation = self._generation

        previous = self._task
        if previous is not None and not previous.done():
            previous.cancel()
            log_event("route_superseded", generation=generation - 1)

        task = asyncio.ensure_future(self._planner(position))
        self._task = task
        try:
            planned = await task
        except asyncio.CancelledError:
            if task.cancelled() and generation != self._generation:
                return None
            raise

        if generation != self._generation:
            log_event("route_superseded", generation=generation)
            return None

        self.latest = planned
        self.latest_position = position
        if self._on_route is not None:
            self._on_route(planned)
        return planned

    async def aclose(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
