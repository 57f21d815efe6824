from __future__ import annotations

import asyncio
from typing import Any, Final

import httpx

from .geometry import Coordinate


class OSRMError(RuntimeError):
    pass


class OSRMRetryableError(OSRMError):
    """An OSRM error that is likely transient and safe to retry."""

    pass


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


def _format_osrm_error(resp: httpx.Response) -> str:
    """Best-effort decode of OSRM JSON error payloads."""
    try:
        data = resp.json()
        if isinstance(data, dict):
            code = data.get("code")
            message = data.get("message")
            if code and message:
                return f"OSRM {resp.status_code} {code}: {message}"
            if code:
                return f"OSRM {resp.status_code} {code}"
            if message:
                return f"OSRM {resp.status_code}: {message}"
    except ValueError:
        # fall through to text
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"OSRM {resp.status_code}: {body}"
    return f"OSRM HTTP {resp.status_code}"


def extract_leg_geometry(data: Any) -> list[Coordinate]:
    """Return the first route's GeoJSON geometry as (lat, lng) coordinates."""
    if not isinstance(data, dict):
        raise OSRMError("OSRM payload is not an object")
    if data.get("code") != "Ok":
        raise OSRMError(f"OSRM error code={data.get('code')} message={data.get('message')}")

    routes = data.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        raise OSRMError("OSRM returned no routes")

    geom = routes[0].get("geometry")
    if not isinstance(geom, dict):
        raise OSRMError("OSRM route missing geometry")
    coords = geom.get("coordinates")
    if not isinstance(coords, list) or not coords:
        raise OSRMError("OSRM geometry missing coordinates")

    out: list[Coordinate] = []
    for pt in coords:
        if (
            isinstance(pt, (list, tuple))
            and len(pt) >= 2
            and isinstance(pt[0], (int, float))
            and isinstance(pt[1], (int, float))
        ):
            # GeoJSON order is [lng, lat]
            out.append(Coordinate(lat=float(pt[1]), lng=float(pt[0])))
        else:
            raise OSRMError("OSRM geometry invalid")
    return out


class OSRMClient:
    """Fetches detailed walking geometry for single A->B hops."""

    def __init__(
        self,
        *,
        base_url: str,
        profile: str = "foot",
        timeout_s: float = 10.0,
        connect_timeout_s: float = 5.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.max_retries = max(1, int(max_retries))

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=connect_timeout_s),
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_leg(self, origin: Coordinate, destination: Coordinate) -> list[Coordinate]:
        coords = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        url = f"{self.base_url}/route/v1/{self.profile}/{coords}"
        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "false",
            "continue_straight": "true",
        }

        last_err: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                resp = await self._client.get(url, params=params)

                # Fast-fail on most 4xx: these are request errors (bad coords, no segment)
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise OSRMError(_format_osrm_error(resp))

                if resp.status_code in _RETRYABLE_STATUS:
                    raise OSRMRetryableError(_format_osrm_error(resp))

                resp.raise_for_status()
                try:
                    data = resp.json()
                except ValueError as e:
                    raise OSRMError("OSRM returned invalid JSON") from e
                return extract_leg_geometry(data)

            except OSRMRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.NetworkError, httpx.TransportError) as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise OSRMError(str(e)) from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
        if last_err is None:
            detail = "unknown error"
        else:
            msg = str(last_err).strip()
            detail = f"{type(last_err).__name__}: {msg}" if msg else f"{type(last_err).__name__}: {last_err!r}"
        raise OSRMError(
            f"OSRM request failed after {self.max_retries} attempts (base={self.base_url}): {detail}"
        )
