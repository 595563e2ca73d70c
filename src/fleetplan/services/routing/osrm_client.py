"""HTTP client for the OSRM table and route services."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import httpx

from ...config import settings

# The table endpoint rejects long URLs; a chunk pair puts up to 2x this many coordinates in one request.
DEFAULT_MAX_COORDINATES_PER_REQUEST = 80
DEFAULT_MAX_PARALLEL_REQUESTS = 8

logger = logging.getLogger(__name__)


def _format_coordinates(coordinates: Sequence[tuple[float, float]]) -> str:
    return ";".join(f"{lon},{lat}" for lat, lon in coordinates)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float = 60.0,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_coordinates_per_request: int = DEFAULT_MAX_COORDINATES_PER_REQUEST,
        max_parallel_requests: int = DEFAULT_MAX_PARALLEL_REQUESTS,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self.max_coordinates_per_request = max_coordinates_per_request
        self.max_parallel_requests = max_parallel_requests
        self.timeout = timeout

    def _get_client(self) -> httpx.Client:
        """One client per call so chunk requests can run on worker threads."""
        return httpx.Client(timeout=httpx.Timeout(self.timeout, connect=10.0))

    def _get_json(self, url: str, params: dict) -> dict:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if data.get("code", "Ok") != "Ok":
                        raise ValueError(f"OSRM request failed: {data.get('message', data.get('code'))}")
                    return data
                except httpx.HTTPStatusError as exc:
                    if exc.response.status_code == 414:
                        raise ValueError(
                            f"OSRM request URL too large; reduce max_coordinates_per_request "
                            f"(current: {self.max_coordinates_per_request})"
                        ) from exc
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except (httpx.ConnectError, httpx.NetworkError, httpx.TimeoutException) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(f"Failed to connect to OSRM service at {self.base_url}: {exc}") from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {exc}")
                    time.sleep(wait_time)
        finally:
            client.close()

    def _table_request(
        self,
        coordinates: Sequence[tuple[float, float]],
        sources: Sequence[int] | None = None,
        destinations: Sequence[int] | None = None,
    ) -> dict:
        params = {"annotations": "duration,distance"}
        if sources is not None:
            params["sources"] = ";".join(str(i) for i in sources)
        if destinations is not None:
            params["destinations"] = ";".join(str(i) for i in destinations)
        url = f"{self.base_url}/table/v1/{self.profile}/{_format_coordinates(coordinates)}"
        data = self._get_json(url, params)
        if "durations" not in data or "distances" not in data:
            raise ValueError("OSRM response missing durations/distances.")
        return data

    def table(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Full duration (s) and distance (m) matrices for ``(lat, lon)`` coordinates.

        Large inputs are split into chunk pairs requested in parallel. Cells of
        failed chunks stay ``None``; more than half the chunks failing raises
        ``ConnectionError``.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM table.")
        if len(coordinates) <= self.max_coordinates_per_request:
            return self._table_request(coordinates)

        size = self.max_coordinates_per_request
        ranges = [(i, min(i + size, len(coordinates))) for i in range(0, len(coordinates), size)]
        n = len(coordinates)
        durations: list[list[float | None]] = [[None] * n for _ in range(n)]
        distances: list[list[float | None]] = [[None] * n for _ in range(n)]

        def fetch(src: tuple[int, int], dst: tuple[int, int]) -> dict:
            chunk = list(coordinates[src[0]:src[1]]) + list(coordinates[dst[0]:dst[1]])
            src_count = src[1] - src[0]
            return self._table_request(chunk, range(src_count), range(src_count, len(chunk)))

        pairs = [(src, dst) for src in ranges for dst in ranges]
        failed = 0
        logger.info(f"Chunking OSRM table request: {n} coordinates in {len(pairs)} requests")
        with ThreadPoolExecutor(max_workers=self.max_parallel_requests) as executor:
            futures = {executor.submit(fetch, src, dst): (src, dst) for src, dst in pairs}
            for future in as_completed(futures):
                src, dst = futures[future]
                try:
                    result = future.result()
                except (ConnectionError, ValueError, httpx.HTTPError) as exc:
                    failed += 1
                    logger.warning(f"OSRM chunk [{src[0]}:{src[1]}] -> [{dst[0]}:{dst[1]}] failed: {exc}")
                    continue
                for local_i, global_i in enumerate(range(*src)):
                    for local_j, global_j in enumerate(range(*dst)):
                        durations[global_i][global_j] = result["durations"][local_i][local_j]
                        distances[global_i][global_j] = result["distances"][local_i][local_j]

        if failed / len(pairs) > 0.5:
            raise ConnectionError(f"{failed}/{len(pairs)} OSRM chunk requests failed")
        if failed:
            logger.warning(f"{failed}/{len(pairs)} OSRM chunk requests failed; affected cells are unreachable")
        return {"durations": durations, "distances": distances}

    def route(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Street-following route through the waypoints, geometry encoded as a polyline."""
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")
        url = f"{self.base_url}/route/v1/{self.profile}/{_format_coordinates(coordinates)}"
        return self._get_json(url, {"overview": "full", "geometries": "polyline", "steps": "false"})


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode a Google encoded polyline into ``(lat, lon)`` pairs."""
    coordinates = []
    index = 0
    values = [0, 0]
    while index < len(polyline):
        for axis in range(2):
            shift = 0
            result = 0
            while True:
                b = ord(polyline[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            values[axis] += ~(result >> 1) if (result & 1) else (result >> 1)
        coordinates.append((values[0] / 1e5, values[1] / 1e5))
    return coordinates


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM with a two-point table request; public servers have no health endpoint."""
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    url = f"{base.rstrip('/')}/table/v1/{settings.osrm_profile}/13.388860,52.517037;13.385983,52.496891"
    try:
        response = httpx.get(url, params={"annotations": "duration"}, timeout=5.0)
        response.raise_for_status()
        return isinstance(response.json().get("durations"), list)
    except (httpx.HTTPError, ValueError):
        return False
