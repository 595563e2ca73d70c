"""Conversion of solver output into client-facing results, and result-level metrics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ...config import settings
from ...models.domain import OptimizationConfiguration, Order, Vehicle
from ..assignment.drivers import AssignmentQualityMetrics
from ..routing.balancing import get_balance_score
from ..routing.capacity import CapacityProfile, map_order_capacities, map_vehicle_capacities
from ..routing.models import PlannedRoute, RoutingStop, RoutingVehicle, SolveOptions
from ..routing.time_windows import calculate_compliance_rate, get_effective_strictness, minutes_to_time, time_to_minutes
from .models import (
    OptimizationResult,
    PlanSummary,
    ResultMetrics,
    RouteResult,
    RouteStopResult,
    UnassignedOrder,
    VehicleWithoutRoute,
)


def route_id_for(vehicle: Vehicle) -> str:
    return f"route-{vehicle.id}"


def solve_options_for(configuration: OptimizationConfiguration) -> SolveOptions:
    return SolveOptions(
        objective=configuration.objective,
        penalty_factor=configuration.penalty_factor,
        work_start_seconds=time_to_minutes(configuration.work_window_start) * 60,
        work_end_seconds=time_to_minutes(configuration.work_window_end) * 60,
        max_distance_km=configuration.max_distance_km,
        max_travel_time_minutes=configuration.max_travel_time_minutes,
        traffic_factor=configuration.traffic_factor,
        minimize_vehicles=configuration.minimize_vehicles,
        flexible_time_windows=configuration.flexible_time_windows,
        balance_visits=configuration.balance_visits,
        max_routes=configuration.max_routes,
    )


def routing_stop_for(order: Order, configuration: OptimizationConfiguration, profile: CapacityProfile) -> RoutingStop:
    mapping = map_order_capacities(order, profile)
    service_minutes = (
        order.service_time_minutes if order.service_time_minutes is not None else configuration.service_time_minutes
    )
    return RoutingStop(
        id=order.id,
        latitude=order.latitude,
        longitude=order.longitude,
        demands=mapping.capacities if configuration.capacity_enabled else [],
        weight=order.weight_kg or 0.0,
        volume=order.volume_m3 or 0.0,
        service_seconds=int(service_minutes * 60),
        window_start=time_to_minutes(order.time_window_start) * 60 if order.time_window_start else None,
        window_end=time_to_minutes(order.time_window_end) * 60 if order.time_window_end else None,
        strictness=get_effective_strictness(order.strictness, configuration.time_window_strictness),
        required_skills=list(order.required_skills),
        priority=mapping.priority,
    )


def routing_vehicle_for(
    vehicle: Vehicle,
    configuration: OptimizationConfiguration,
    profile: CapacityProfile,
) -> RoutingVehicle:
    depot = (configuration.depot_latitude, configuration.depot_longitude)
    origin = depot
    if vehicle.origin_latitude is not None and vehicle.origin_longitude is not None:
        origin = (vehicle.origin_latitude, vehicle.origin_longitude)

    if configuration.route_end_mode == "OPEN_END":
        end = None
    elif configuration.route_end_mode == "SPECIFIC_DEPOT":
        if configuration.end_depot_latitude is not None and configuration.end_depot_longitude is not None:
            end = (configuration.end_depot_latitude, configuration.end_depot_longitude)
        else:
            end = depot
    else:
        end = origin

    mapping = map_vehicle_capacities(vehicle, profile)
    return RoutingVehicle(
        id=vehicle.id,
        capacities=mapping.capacities if configuration.capacity_enabled else [],
        max_orders=vehicle.max_orders or settings.default_max_orders_per_vehicle,
        start=origin,
        end=end,
        skills=list(vehicle.skills),
    )


def route_utilization(total_weight: float, total_volume: float, stop_count: int, vehicle: Vehicle) -> int:
    """Highest fill ratio across weight and volume, falling back to the order limit."""
    ratios = []
    if vehicle.weight_capacity_kg:
        ratios.append(total_weight / vehicle.weight_capacity_kg * 100)
    if vehicle.volume_capacity_m3:
        ratios.append(total_volume / vehicle.volume_capacity_m3 * 100)
    utilization = max(ratios, default=0.0)
    if not utilization:
        limit = vehicle.max_orders or settings.default_max_orders_per_vehicle
        utilization = stop_count / limit * 100
    return int(round(utilization))


def build_route_result(
    planned: PlannedRoute,
    vehicle: Vehicle,
    orders_by_id: Mapping[str, Order],
    zone_id: Optional[str],
    route_id: Optional[str] = None,
) -> RouteResult:
    stops = []
    for stop in planned.stops:
        order = orders_by_id[stop.stop_id]
        stops.append(
            RouteStopResult(
                order_id=order.id,
                tracking_id=order.tracking_id,
                sequence=stop.sequence,
                address=order.address,
                latitude=order.latitude,
                longitude=order.longitude,
                estimated_arrival=minutes_to_time(stop.arrival_seconds / 60),
                arrival_seconds=stop.arrival_seconds,
                service_seconds=stop.service_seconds,
                waiting_seconds=stop.waiting_seconds,
                lateness_seconds=stop.lateness_seconds,
                time_window_start=order.time_window_start,
                time_window_end=order.time_window_end,
                weight=order.weight_kg or 0.0,
                volume=order.volume_m3 or 0.0,
            )
        )
    total_weight = sum(stop.weight for stop in stops)
    total_volume = sum(stop.volume for stop in stops)
    return RouteResult(
        route_id=route_id or route_id_for(vehicle),
        vehicle_id=vehicle.id,
        vehicle_plate=vehicle.plate,
        zone_id=zone_id,
        stops=stops,
        total_distance=round(planned.distance_m, 1),
        total_duration=planned.duration_seconds,
        total_service_time=planned.service_seconds,
        total_travel_time=planned.travel_seconds,
        total_weight=total_weight,
        total_volume=total_volume,
        utilization_percentage=route_utilization(total_weight, total_volume, len(stops), vehicle),
        time_window_violations=planned.time_window_violations,
    )


def unassigned_for(order: Order, reason: str) -> UnassignedOrder:
    return UnassignedOrder(order_id=order.id, tracking_id=order.tracking_id, reason=reason)


def compute_metrics(
    routes: Sequence[RouteResult],
    *,
    computing_time_ms: int = 0,
    matrix_source: Optional[str] = None,
) -> ResultMetrics:
    total_stops = sum(len(route.stops) for route in routes)
    violations = sum(route.time_window_violations for route in routes)
    utilization = sum(route.utilization_percentage for route in routes) / len(routes) if routes else 0
    counts = [_StopCount(len(route.stops)) for route in routes]
    return ResultMetrics(
        total_distance=round(sum(route.total_distance for route in routes), 1),
        total_duration=sum(route.total_duration for route in routes),
        total_routes=len(routes),
        total_stops=total_stops,
        utilization_rate=int(round(utilization)),
        time_window_compliance_rate=calculate_compliance_rate(total_stops, total_stops - violations),
        balance_score=get_balance_score(counts),
        computing_time_ms=computing_time_ms,
        matrix_source=matrix_source,
    )


class _StopCount:
    """Adapter so stop-count based balance scoring works on result routes."""

    __slots__ = ("stops",)

    def __init__(self, count: int) -> None:
        self.stops = range(count)


def assemble_result(
    *,
    routes: List[RouteResult],
    unassigned: List[UnassignedOrder],
    vehicles: Iterable[Vehicle],
    configuration: OptimizationConfiguration,
    assignment_metrics: AssignmentQualityMetrics,
    total_orders: int,
    computing_time_ms: int = 0,
    matrix_source: Optional[str] = None,
    is_partial: bool = False,
) -> OptimizationResult:
    vehicles = list(vehicles)
    used = {route.vehicle_id for route in routes}
    assigned_orders = sum(len(route.stops) for route in routes)
    return OptimizationResult(
        routes=routes,
        unassigned_orders=unassigned,
        vehicles_without_routes=[
            VehicleWithoutRoute(vehicle_id=vehicle.id, plate=vehicle.plate) for vehicle in vehicles if vehicle.id not in used
        ],
        metrics=compute_metrics(routes, computing_time_ms=computing_time_ms, matrix_source=matrix_source),
        assignment_metrics=assignment_metrics,
        summary=PlanSummary(
            optimized_at=datetime.now(timezone.utc).isoformat(),
            objective=configuration.objective,
            total_orders=total_orders,
            assigned_orders=assigned_orders,
            unassigned_orders=len(unassigned),
            vehicles_used=len(used),
            vehicles_available=len(vehicles),
        ),
        depot={"latitude": configuration.depot_latitude, "longitude": configuration.depot_longitude},
        is_partial=is_partial,
    )


def refresh_result(result: OptimizationResult) -> OptimizationResult:
    """Recompute metrics and summary counts after routes were edited in place."""
    result.metrics = compute_metrics(
        result.routes,
        computing_time_ms=result.metrics.computing_time_ms,
        matrix_source=result.metrics.matrix_source,
    )
    assigned = sum(len(route.stops) for route in result.routes)
    result.summary.assigned_orders = assigned
    result.summary.unassigned_orders = len(result.unassigned_orders)
    result.summary.vehicles_used = len(result.routes)
    result.summary.optimized_at = datetime.now(timezone.utc).isoformat()
    return result


def orders_index(orders: Iterable[Order]) -> Dict[str, Order]:
    return {order.id: order for order in orders}
