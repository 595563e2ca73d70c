"""Post-optimization balancing of stop counts across routes."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import List, Sequence

from ..geospatial import haversine_km
from .models import PlannedRoute, PlannedStop


@dataclass(slots=True)
class BalanceTransfer:
    stop_id: str
    from_vehicle: str
    to_vehicle: str
    distance_km: float


@dataclass(slots=True)
class BalanceResult:
    original_score: int
    new_score: int
    transfers: List[BalanceTransfer]
    routes: List[PlannedRoute]

    @property
    def moved_orders(self) -> int:
        return len(self.transfers)


@dataclass(slots=True)
class BalanceStats:
    total_stops: int
    min_stops: int
    max_stops: int
    avg_stops: float
    ideal_stops: int
    score: int


def calculate_ideal_stops_per_vehicle(total_stops: int, vehicle_count: int) -> int:
    if vehicle_count == 0:
        return 0
    return math.ceil(total_stops / vehicle_count)


def get_balance_score(routes: Sequence[PlannedRoute]) -> int:
    """0-100 score, 100 meaning every route has the same number of stops."""
    if not routes:
        return 100
    counts = [len(route.stops) for route in routes]
    total = sum(counts)
    if total == 0:
        return 100
    ideal = total / len(counts)
    variance = sum((count - ideal) ** 2 for count in counts) / len(counts)
    std_dev = math.sqrt(variance)
    return max(0, int(math.floor((1 - std_dev / ideal) * 100 + 0.5)))


def get_balance_stats(routes: Sequence[PlannedRoute]) -> BalanceStats:
    counts = [len(route.stops) for route in routes]
    total = sum(counts)
    return BalanceStats(
        total_stops=total,
        min_stops=min(counts, default=0),
        max_stops=max(counts, default=0),
        avg_stops=total / len(counts) if counts else 0.0,
        ideal_stops=calculate_ideal_stops_per_vehicle(total, len(counts)),
        score=get_balance_score(routes),
    )


def calculate_balanced_max_orders(total_orders: int, vehicle_count: int, default_max_orders: int = 50) -> int:
    """Per-vehicle order limit that leaves a 20% buffer over an even split."""
    if vehicle_count == 0:
        return default_max_orders
    ideal = math.ceil(total_orders / vehicle_count)
    return min(math.ceil(ideal * 1.2), default_max_orders)


def _can_accept(route: PlannedRoute, stop: PlannedStop) -> bool:
    if len(route.stops) >= route.max_orders:
        return False
    if not set(stop.required_skills) <= set(route.skills):
        return False
    for load, demand, capacity in zip(route.loads, stop.demands, route.capacities):
        if load + demand > capacity:
            return False
    return True


def _insertion_cost(route: PlannedRoute, stop: PlannedStop) -> float:
    if not route.stops:
        return 0.0
    return min(
        haversine_km(existing.latitude, existing.longitude, stop.latitude, stop.longitude)
        for existing in route.stops
    )


def _copy_route(route: PlannedRoute) -> PlannedRoute:
    return PlannedRoute(
        vehicle_id=route.vehicle_id,
        stops=[replace(stop) for stop in route.stops],
        capacities=list(route.capacities),
        max_orders=route.max_orders,
        loads=list(route.loads) or [0] * len(route.capacities),
        distance_m=route.distance_m,
        travel_seconds=route.travel_seconds,
        service_seconds=route.service_seconds,
        waiting_seconds=route.waiting_seconds,
        duration_seconds=route.duration_seconds,
        start_seconds=route.start_seconds,
        time_window_violations=route.time_window_violations,
        skills=list(route.skills),
    )


def redistribute_orders(
    routes: Sequence[PlannedRoute],
    *,
    max_deviation: float = 20.0,
    preserve_sequence: bool = False,
) -> BalanceResult:
    """Move stops from the busiest route to the quietest until counts are within ``max_deviation`` percent."""
    original_score = get_balance_score(routes)
    if len(routes) <= 1:
        return BalanceResult(original_score, original_score, [], list(routes))

    balanced = [_copy_route(route) for route in routes]
    total = sum(len(route.stops) for route in balanced)
    ideal = calculate_ideal_stops_per_vehicle(total, len(balanced))
    if ideal == 0:
        return BalanceResult(original_score, original_score, [], balanced)

    transfers: list[BalanceTransfer] = []
    for _ in range(total * 2):
        overloaded = max(balanced, key=lambda route: len(route.stops))
        underloaded = min(balanced, key=lambda route: len(route.stops))

        over_dev = (len(overloaded.stops) - ideal) / ideal * 100
        under_dev = (ideal - len(underloaded.stops)) / ideal * 100
        if over_dev <= max_deviation and under_dev <= max_deviation:
            break
        if len(overloaded.stops) - len(underloaded.stops) <= 1:
            break

        candidates = [stop for stop in overloaded.stops if _can_accept(underloaded, stop)]
        if not candidates:
            break
        stop_to_move = min(candidates, key=lambda stop: _insertion_cost(underloaded, stop))
        cost = _insertion_cost(underloaded, stop_to_move)

        overloaded.stops.remove(stop_to_move)
        underloaded.stops.append(stop_to_move)
        overloaded.loads = [load - demand for load, demand in zip(overloaded.loads, stop_to_move.demands)]
        underloaded.loads = [load + demand for load, demand in zip(underloaded.loads, stop_to_move.demands)]
        transfers.append(
            BalanceTransfer(
                stop_id=stop_to_move.stop_id,
                from_vehicle=overloaded.vehicle_id,
                to_vehicle=underloaded.vehicle_id,
                distance_km=cost,
            )
        )

    if transfers and not preserve_sequence:
        for route in balanced:
            for index, stop in enumerate(route.stops, start=1):
                stop.sequence = index

    return BalanceResult(
        original_score=original_score,
        new_score=get_balance_score(balanced),
        transfers=transfers,
        routes=balanced,
    )
