"""Travel time and distance matrices from OSRM, with a straight-line fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

import httpx

from ...config import settings
from ..geospatial import haversine_m, travel_seconds
from .osrm_client import OSRMClient

logger = logging.getLogger(__name__)

# Effectively unreachable (~277 hours / ~1M km) while staying well inside int64 arithmetic.
LARGE_PENALTY = 999_999_999


@dataclass(slots=True)
class TravelMatrix:
    durations: list[list[int]]
    distances: list[list[int]]
    source: str

    def __len__(self) -> int:
        return len(self.durations)


MatrixProvider = Callable[[Sequence[tuple[float, float]]], TravelMatrix]


def haversine_matrix(coordinates: Sequence[tuple[float, float]]) -> TravelMatrix:
    distances: list[list[int]] = []
    durations: list[list[int]] = []
    for lat1, lon1 in coordinates:
        distance_row = []
        duration_row = []
        for lat2, lon2 in coordinates:
            meters = haversine_m(lat1, lon1, lat2, lon2)
            distance_row.append(int(round(meters)))
            duration_row.append(int(round(travel_seconds(meters))))
        distances.append(distance_row)
        durations.append(duration_row)
    return TravelMatrix(durations=durations, distances=distances, source="haversine")


def _prepare(values: list[list[float | None]]) -> list[list[int]]:
    matrix = [[int(value) if value is not None else LARGE_PENALTY for value in row] for row in values]
    for index in range(len(matrix)):
        matrix[index][index] = 0
    return matrix


def build_travel_matrix(coordinates: Sequence[tuple[float, float]]) -> TravelMatrix:
    """Road matrix when OSRM is configured and reachable, straight-line estimate otherwise."""
    if len(coordinates) < 2:
        return haversine_matrix(coordinates)
    if not settings.osrm_base_url:
        return haversine_matrix(coordinates)
    try:
        table = OSRMClient().table(coordinates)
    except (ConnectionError, ValueError, httpx.HTTPError) as exc:
        logger.warning(f"OSRM table failed, falling back to haversine distances: {exc}")
        return haversine_matrix(coordinates)
    return TravelMatrix(
        durations=_prepare(table["durations"]),
        distances=_prepare(table["distances"]),
        source="osrm",
    )


def apply_speed_factor(matrix: TravelMatrix, speed_factor: float) -> TravelMatrix:
    """Scale durations for a speed multiplier (>1 faster, <1 slower)."""
    if speed_factor <= 0 or speed_factor == 1:
        return matrix
    durations = [
        [value if value >= LARGE_PENALTY else int(round(value / speed_factor)) for value in row]
        for row in matrix.durations
    ]
    return TravelMatrix(durations=durations, distances=matrix.distances, source=matrix.source)


def speed_factor_from_traffic(traffic_factor: int | None) -> float:
    """Traffic 0-100 maps to speed 1.5x (empty roads) down to 0.5x (congested)."""
    if traffic_factor is None:
        return 1.0
    return 1.5 - traffic_factor / 100
