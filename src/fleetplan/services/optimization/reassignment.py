"""Manual moves of orders between routes of a computed plan."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from ...models.domain import OptimizationConfiguration, Order, Vehicle
from ..geospatial import route_distance
from ..routing.capacity import CapacityProfile
from ..routing.matrix import MatrixProvider, build_travel_matrix
from ..routing.solver import sequence_single_route
from .assembly import (
    build_route_result,
    refresh_result,
    route_id_for,
    route_utilization,
    routing_stop_for,
    routing_vehicle_for,
    solve_options_for,
)
from .models import OptimizationResult, RouteResult, RouteStopResult, VehicleWithoutRoute

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OrderMove:
    order_id: str
    source_route_id: Optional[str] = None


@dataclass(slots=True)
class ReassignmentOutcome:
    result: OptimizationResult
    moved_order_ids: List[str] = field(default_factory=list)
    skipped_order_ids: List[str] = field(default_factory=list)
    resequenced_route_ids: List[str] = field(default_factory=list)


def _take_from_routes(result: OptimizationResult, move: OrderMove) -> Optional[tuple[RouteResult, RouteStopResult]]:
    candidates = [route for route in result.routes if route.route_id == move.source_route_id]
    candidates += [route for route in result.routes if route.route_id != move.source_route_id]
    for route in candidates:
        for position, stop in enumerate(route.stops):
            if stop.order_id == move.order_id:
                return route, route.stops.pop(position)
    return None


def _stop_for_order(order: Order, sequence: int) -> RouteStopResult:
    return RouteStopResult(
        order_id=order.id,
        tracking_id=order.tracking_id,
        sequence=sequence,
        address=order.address,
        latitude=order.latitude,
        longitude=order.longitude,
        estimated_arrival="",
        arrival_seconds=0,
        service_seconds=0,
        time_window_start=order.time_window_start,
        time_window_end=order.time_window_end,
        weight=order.weight_kg or 0.0,
        volume=order.volume_m3 or 0.0,
    )


def _keep_sequence(route: RouteResult, vehicle: Vehicle, start: tuple[float, float]) -> RouteResult:
    """Renumber stops in their current order and refresh straight-line totals."""
    for sequence, stop in enumerate(route.stops, start=1):
        stop.sequence = sequence
    coordinates = [start] + [(stop.latitude, stop.longitude) for stop in route.stops]
    distance_m, travel_seconds = route_distance(coordinates)
    route.total_distance = round(distance_m, 1)
    route.total_travel_time = int(travel_seconds)
    route.total_duration = route.total_travel_time + route.total_service_time
    route.total_weight = sum(stop.weight for stop in route.stops)
    route.total_volume = sum(stop.volume for stop in route.stops)
    route.utilization_percentage = route_utilization(route.total_weight, route.total_volume, len(route.stops), vehicle)
    return route


def _resequence(
    route: RouteResult,
    vehicle: Vehicle,
    orders: Mapping[str, Order],
    configuration: OptimizationConfiguration,
    profile: CapacityProfile,
    matrix_provider: MatrixProvider,
) -> tuple[RouteResult, bool]:
    routing_vehicle = routing_vehicle_for(vehicle, configuration, profile)
    stops = [routing_stop_for(orders[stop.order_id], configuration, profile) for stop in route.stops]
    planned = sequence_single_route(stops, routing_vehicle, solve_options_for(configuration), matrix_provider)
    if planned is None:
        logger.warning(f"Could not re-sequence route {route.route_id}; keeping the current order")
        return _keep_sequence(route, vehicle, routing_vehicle.start), False

    rebuilt = build_route_result(planned, vehicle, orders, route.zone_id, route_id=route.route_id)
    rebuilt.driver_id = route.driver_id
    rebuilt.driver_name = route.driver_name
    rebuilt.assignment_quality = route.assignment_quality
    return rebuilt, True


def reassign_orders(
    result: OptimizationResult,
    moves: Sequence[OrderMove],
    target_vehicle: Vehicle,
    orders: Mapping[str, Order],
    vehicles: Mapping[str, Vehicle],
    configuration: OptimizationConfiguration,
    profile: CapacityProfile,
    *,
    matrix_provider: MatrixProvider = build_travel_matrix,
) -> ReassignmentOutcome:
    """Move orders onto ``target_vehicle``'s route and re-sequence every touched route.

    Orders may come from any route or from the unassigned list; orders not
    found in the plan are skipped. Source routes left empty are removed and
    their vehicles listed as without route.

    The moves are applied to a copy; ``result`` itself is never modified, so a
    failure part-way leaves the caller's plan intact.
    """
    if not moves:
        raise ValueError("orders and target_vehicle_id are required")

    result = copy.deepcopy(result)
    outcome = ReassignmentOutcome(result=result)
    target = next((route for route in result.routes if route.vehicle_id == target_vehicle.id), None)
    if target is None:
        target = RouteResult(
            route_id=route_id_for(target_vehicle),
            vehicle_id=target_vehicle.id,
            vehicle_plate=target_vehicle.plate,
            zone_id=None,
            stops=[],
        )
        result.routes.append(target)
        result.vehicles_without_routes = [
            vehicle for vehicle in result.vehicles_without_routes if vehicle.vehicle_id != target_vehicle.id
        ]

    touched: Dict[str, RouteResult] = {}
    for move in moves:
        order = orders.get(move.order_id)
        taken = _take_from_routes(result, move)
        if taken is not None:
            source, stop = taken
            if source is not target:
                touched[source.route_id] = source
            target.stops.append(stop)
        elif order is not None and any(item.order_id == move.order_id for item in result.unassigned_orders):
            result.unassigned_orders = [item for item in result.unassigned_orders if item.order_id != move.order_id]
            target.stops.append(_stop_for_order(order, len(target.stops) + 1))
        else:
            logger.warning(f"Order {move.order_id} not found in plan, skipping")
            outcome.skipped_order_ids.append(move.order_id)
            continue
        outcome.moved_order_ids.append(move.order_id)

    for route in list(touched.values()):
        if not route.stops:
            result.routes.remove(route)
            result.vehicles_without_routes.append(VehicleWithoutRoute(vehicle_id=route.vehicle_id, plate=route.vehicle_plate))
            del touched[route.route_id]
    touched[target.route_id] = target

    for position, route in enumerate(result.routes):
        if route.route_id not in touched or not route.stops:
            continue
        vehicle = vehicles.get(route.vehicle_id, target_vehicle if route is target else None)
        if vehicle is None or any(stop.order_id not in orders for stop in route.stops):
            logger.warning(f"Missing vehicle or order data for route {route.route_id}; renumbering only")
            for sequence, stop in enumerate(route.stops, start=1):
                stop.sequence = sequence
            continue
        rebuilt, solved = _resequence(route, vehicle, orders, configuration, profile, matrix_provider)
        result.routes[position] = rebuilt
        if solved:
            outcome.resequenced_route_ids.append(rebuilt.route_id)

    if not target.stops and any(route is target for route in result.routes):
        result.routes.remove(target)
        result.vehicles_without_routes.append(VehicleWithoutRoute(vehicle_id=target.vehicle_id, plate=target.vehicle_plate))

    refresh_result(result)
    return outcome
