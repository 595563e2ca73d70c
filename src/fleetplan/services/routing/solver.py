"""OR-Tools VRP solver integration."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from ortools.constraint_solver import pywrapcp, routing_enums_pb2

from ...config import settings
from .balancing import calculate_balanced_max_orders, get_balance_score, redistribute_orders
from .matrix import (
    LARGE_PENALTY,
    MatrixProvider,
    TravelMatrix,
    apply_speed_factor,
    build_travel_matrix,
    speed_factor_from_traffic,
)
from .models import (
    PlannedRoute,
    PlannedStop,
    RoutingStop,
    RoutingVehicle,
    SolveOptions,
    SolveResult,
    UnassignedStop,
)

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 3600
DROP_PENALTY = 100_000_000
PRIORITY_PENALTY_STEP = 100_000
VEHICLE_FIXED_COST = 1_000_000

REASON_NO_VEHICLES = "No vehicles available"
REASON_SKILLS = "No vehicle with required skills"
REASON_CAPACITY = "No vehicle with sufficient capacity"
REASON_TIME_WINDOW = "Time window cannot be met"
REASON_UNREACHABLE = "Location unreachable"
REASON_NOT_SCHEDULED = "No vehicle with sufficient capacity or skills"


@dataclass(slots=True)
class _Problem:
    """Node layout shared by the model, the fallback and route evaluation.

    Nodes ``[0, stop_offset)`` are vehicle start/end anchors, stops follow, and an
    optional zero-cost sink terminates open-ended routes.
    """

    locations: list[tuple[float, float]]
    starts: list[int]
    ends: list[int]
    stop_offset: int
    sink: Optional[int]
    node_of: dict[str, int] = field(default_factory=dict)


def _build_problem(stops: Sequence[RoutingStop], vehicles: Sequence[RoutingVehicle]) -> _Problem:
    anchors: list[tuple[float, float]] = []
    anchor_index: dict[tuple[float, float], int] = {}

    def anchor(coordinate: tuple[float, float]) -> int:
        key = (round(coordinate[0], 7), round(coordinate[1], 7))
        if key not in anchor_index:
            anchor_index[key] = len(anchors)
            anchors.append(coordinate)
        return anchor_index[key]

    starts = [anchor(vehicle.start) for vehicle in vehicles]
    ends = [anchor(vehicle.end) if vehicle.end is not None else -1 for vehicle in vehicles]
    offset = len(anchors)
    locations = anchors + [(stop.latitude, stop.longitude) for stop in stops]
    sink = None
    if any(end == -1 for end in ends):
        sink = len(locations)
        ends = [sink if end == -1 else end for end in ends]
    node_of = {stop.id: offset + position for position, stop in enumerate(stops)}
    return _Problem(locations=locations, starts=starts, ends=ends, stop_offset=offset, sink=sink, node_of=node_of)


def _with_sink(matrix: TravelMatrix, sink: Optional[int]) -> TravelMatrix:
    if sink is None:
        return matrix
    size = len(matrix) + 1
    durations = [row + [0] for row in matrix.durations] + [[0] * size]
    distances = [row + [0] for row in matrix.distances] + [[0] * size]
    return TravelMatrix(durations=durations, distances=distances, source=matrix.source)


def _effective_window(stop: RoutingStop, options: SolveOptions) -> tuple[Optional[int], Optional[int]]:
    start, end = stop.window_start, stop.window_end
    if options.flexible_time_windows:
        tolerance = settings.flexible_time_window_minutes * 60
        start = max(0, start - tolerance) if start is not None else None
        end = end + tolerance if end is not None else None
    return start, end


def _precheck(
    stop: RoutingStop,
    vehicles: Sequence[RoutingVehicle],
    options: SolveOptions,
) -> Optional[str]:
    """Reason the stop can never be served, or None."""
    skilled = [v for v in vehicles if set(stop.required_skills) <= set(v.skills)]
    if not skilled:
        return REASON_SKILLS
    if not any(all(d <= c for d, c in zip(stop.demands, v.capacities)) and v.max_orders > 0 for v in skilled):
        return REASON_CAPACITY
    if stop.strictness == "HARD":
        start, end = _effective_window(stop, options)
        if start is not None and end is not None and start > end:
            return REASON_TIME_WINDOW
        if end is not None and end < options.work_start_seconds:
            return REASON_TIME_WINDOW
        if start is not None and start > options.work_end_seconds:
            return REASON_TIME_WINDOW
    return None


def _search_parameters(options: SolveOptions):
    search_parameters = pywrapcp.DefaultRoutingSearchParameters()
    search_parameters.first_solution_strategy = getattr(
        routing_enums_pb2.FirstSolutionStrategy, settings.solver_first_solution_strategy
    )
    search_parameters.local_search_metaheuristic = getattr(
        routing_enums_pb2.LocalSearchMetaheuristic, settings.solver_local_search_metaheuristic
    )
    limit = options.time_limit_seconds if options.time_limit_seconds is not None else settings.solver_time_limit_seconds
    if limit > 0:
        search_parameters.time_limit.FromSeconds(limit)
    return search_parameters


def _solve_with_ortools(
    stops: Sequence[RoutingStop],
    vehicles: Sequence[RoutingVehicle],
    problem: _Problem,
    matrix: TravelMatrix,
    options: SolveOptions,
) -> Optional[list[list[RoutingStop]]]:
    """Stop sequences per vehicle, or None when OR-Tools finds no assignment."""
    manager = pywrapcp.RoutingIndexManager(len(matrix), len(vehicles), problem.starts, problem.ends)
    routing = pywrapcp.RoutingModel(manager)

    stop_at_node = {problem.node_of[stop.id]: stop for stop in stops}
    distance_matrix = matrix.distances
    duration_matrix = matrix.durations

    def distance_callback(from_index: int, to_index: int) -> int:
        return distance_matrix[manager.IndexToNode(from_index)][manager.IndexToNode(to_index)]

    def duration_callback(from_index: int, to_index: int) -> int:
        return duration_matrix[manager.IndexToNode(from_index)][manager.IndexToNode(to_index)]

    def time_callback(from_index: int, to_index: int) -> int:
        from_node = manager.IndexToNode(from_index)
        stop = stop_at_node.get(from_node)
        service = stop.service_seconds if stop else 0
        return service + duration_matrix[from_node][manager.IndexToNode(to_index)]

    def balanced_callback(from_index: int, to_index: int) -> int:
        return distance_callback(from_index, to_index) + duration_callback(from_index, to_index)

    distance_index = routing.RegisterTransitCallback(distance_callback)
    duration_index = routing.RegisterTransitCallback(duration_callback)
    time_index = routing.RegisterTransitCallback(time_callback)

    if options.objective == "DISTANCE":
        routing.SetArcCostEvaluatorOfAllVehicles(distance_index)
    elif options.objective == "TIME":
        routing.SetArcCostEvaluatorOfAllVehicles(duration_index)
    else:
        routing.SetArcCostEvaluatorOfAllVehicles(routing.RegisterTransitCallback(balanced_callback))

    if options.minimize_vehicles:
        routing.SetFixedCostOfAllVehicles(VEHICLE_FIXED_COST)

    dimension_count = len(vehicles[0].capacities)
    for dimension in range(dimension_count):
        def demand_callback(index: int, dimension: int = dimension) -> int:
            stop = stop_at_node.get(manager.IndexToNode(index))
            return stop.demands[dimension] if stop else 0

        routing.AddDimensionWithVehicleCapacity(
            routing.RegisterUnaryTransitCallback(demand_callback),
            0,
            [vehicle.capacities[dimension] for vehicle in vehicles],
            True,
            f"Capacity{dimension}",
        )

    order_count_index = routing.RegisterUnaryTransitCallback(
        lambda index: 1 if manager.IndexToNode(index) in stop_at_node else 0
    )
    routing.AddDimensionWithVehicleCapacity(
        order_count_index, 0, [vehicle.max_orders for vehicle in vehicles], True, "Orders"
    )

    routing.AddDimension(time_index, DAY_SECONDS, DAY_SECONDS, False, "Time")
    time_dimension = routing.GetDimensionOrDie("Time")
    for vehicle_id in range(len(vehicles)):
        time_dimension.CumulVar(routing.Start(vehicle_id)).SetRange(options.work_start_seconds, options.work_end_seconds)
        time_dimension.CumulVar(routing.End(vehicle_id)).SetRange(options.work_start_seconds, options.work_end_seconds)

    if options.max_travel_time_minutes:
        routing.AddDimension(duration_index, 0, int(options.max_travel_time_minutes * 60), True, "Travel")
    if options.max_distance_km:
        routing.AddDimension(distance_index, 0, int(options.max_distance_km * 1000), True, "Distance")

    for stop in stops:
        index = manager.NodeToIndex(problem.node_of[stop.id])
        window_start, window_end = _effective_window(stop, options)
        cumul = time_dimension.CumulVar(index)
        if stop.strictness == "HARD":
            cumul.SetRange(
                max(window_start or 0, 0),
                min(window_end if window_end is not None else DAY_SECONDS, DAY_SECONDS),
            )
        else:
            if window_start is not None:
                cumul.SetMin(min(window_start, DAY_SECONDS))
            if window_end is not None:
                time_dimension.SetCumulVarSoftUpperBound(index, window_end, max(1, options.penalty_factor))

        if stop.required_skills:
            excluded = [
                vehicle_id
                for vehicle_id, vehicle in enumerate(vehicles)
                if not set(stop.required_skills) <= set(vehicle.skills)
            ]
            if excluded:
                routing.VehicleVar(index).RemoveValues(excluded)
        routing.AddDisjunction([index], DROP_PENALTY + (stop.priority or 0) * PRIORITY_PENALTY_STEP)

    assignment = routing.SolveWithParameters(_search_parameters(options))
    if not assignment:
        return None

    sequences: list[list[RoutingStop]] = []
    for vehicle_id in range(len(vehicles)):
        sequence: list[RoutingStop] = []
        index = assignment.Value(routing.NextVar(routing.Start(vehicle_id)))
        while not routing.IsEnd(index):
            stop = stop_at_node.get(manager.IndexToNode(index))
            if stop is not None:
                sequence.append(stop)
            index = assignment.Value(routing.NextVar(index))
        sequences.append(sequence)
    return sequences


def solve_nearest_neighbor(
    stops: Sequence[RoutingStop],
    vehicles: Sequence[RoutingVehicle],
    problem: _Problem,
    matrix: TravelMatrix,
) -> list[list[RoutingStop]]:
    """Greedy construction: each vehicle repeatedly takes the closest stop it can still carry."""
    sequences: list[list[RoutingStop]] = [[] for _ in vehicles]
    assigned: set[str] = set()
    order = sorted(range(len(vehicles)), key=lambda i: vehicles[i].max_orders)

    for vehicle_id in order:
        vehicle = vehicles[vehicle_id]
        loads = [0] * len(vehicle.capacities)
        current = problem.starts[vehicle_id]
        while len(sequences[vehicle_id]) < vehicle.max_orders:
            best: Optional[RoutingStop] = None
            best_distance = LARGE_PENALTY
            for stop in stops:
                if stop.id in assigned:
                    continue
                if not set(stop.required_skills) <= set(vehicle.skills):
                    continue
                if any(load + demand > capacity for load, demand, capacity in zip(loads, stop.demands, vehicle.capacities)):
                    continue
                distance = matrix.distances[current][problem.node_of[stop.id]]
                if distance < best_distance:
                    best, best_distance = stop, distance
            if best is None:
                break
            assigned.add(best.id)
            sequences[vehicle_id].append(best)
            loads = [load + demand for load, demand in zip(loads, best.demands)]
            current = problem.node_of[best.id]
    return sequences


def _evaluate_route(
    route: PlannedRoute,
    vehicle_id: int,
    problem: _Problem,
    matrix: TravelMatrix,
    options: SolveOptions,
    windows: dict[str, tuple[Optional[int], Optional[int]]],
) -> PlannedRoute:
    """Recompute arrival times, lateness and totals along the current stop order."""
    clock = options.work_start_seconds
    previous = problem.starts[vehicle_id]
    distance = travel = service = waiting = violations = 0
    loads = [0] * len(route.capacities)
    for sequence, stop in enumerate(route.stops, start=1):
        node = problem.node_of[stop.stop_id]
        leg = matrix.durations[previous][node]
        distance += matrix.distances[previous][node]
        travel += leg
        clock += leg
        window_start, window_end = windows[stop.stop_id]
        wait = max(0, window_start - clock) if window_start is not None else 0
        clock += wait
        late = max(0, clock - window_end) if window_end is not None else 0
        stop.sequence = sequence
        stop.arrival_seconds = clock
        stop.waiting_seconds = wait
        stop.lateness_seconds = late
        if late:
            violations += 1
        clock += stop.service_seconds
        waiting += wait
        service += stop.service_seconds
        loads = [load + demand for load, demand in zip(loads, stop.demands)]
        previous = node

    end = problem.ends[vehicle_id]
    if end != problem.sink:
        distance += matrix.distances[previous][end]
        travel += matrix.durations[previous][end]

    route.distance_m = float(distance)
    route.travel_seconds = travel
    route.service_seconds = service
    route.waiting_seconds = waiting
    route.duration_seconds = travel + service + waiting
    route.start_seconds = options.work_start_seconds
    route.time_window_violations = violations
    route.loads = loads
    return route


def _planned_route(vehicle: RoutingVehicle, sequence: Sequence[RoutingStop]) -> PlannedRoute:
    return PlannedRoute(
        vehicle_id=vehicle.id,
        stops=[
            PlannedStop(
                stop_id=stop.id,
                sequence=position,
                latitude=stop.latitude,
                longitude=stop.longitude,
                service_seconds=stop.service_seconds,
                weight=stop.weight,
                volume=stop.volume,
                demands=list(stop.demands),
                required_skills=list(stop.required_skills),
                strictness=stop.strictness,
            )
            for position, stop in enumerate(sequence, start=1)
        ],
        capacities=list(vehicle.capacities),
        max_orders=vehicle.max_orders,
        skills=list(vehicle.skills),
    )


def _late_hard_stops(routes: Sequence[PlannedRoute]) -> set[str]:
    return {
        stop.stop_id
        for route in routes
        for stop in route.stops
        if stop.strictness == "HARD" and stop.lateness_seconds > 0
    }


def solve_routes(
    stops: Sequence[RoutingStop],
    vehicles: Sequence[RoutingVehicle],
    options: SolveOptions | None = None,
    matrix_provider: MatrixProvider = build_travel_matrix,
) -> SolveResult:
    """Assign stops to vehicles and sequence them.

    Stops that no vehicle can serve are returned as unassigned with a reason.
    OR-Tools is used unless the nearest-neighbour engine is configured; the
    nearest-neighbour construction is also the fallback when OR-Tools returns
    no assignment.
    """
    options = options or SolveOptions()
    started = time.perf_counter()
    engine = options.engine or settings.routing_engine

    if not stops:
        return SolveResult(routes=[], unassigned=[], metadata={"engine": engine, "status": "EMPTY", "balance_score": 100})
    if not vehicles:
        return SolveResult(
            routes=[],
            unassigned=[UnassignedStop(stop.id, REASON_NO_VEHICLES) for stop in stops],
            metadata={"engine": engine, "status": "NO_VEHICLES", "balance_score": 100},
        )

    vehicles = list(vehicles)
    if options.max_routes:
        vehicles = vehicles[: options.max_routes]
    if options.balance_visits:
        limit = calculate_balanced_max_orders(len(stops), len(vehicles), settings.default_max_orders_per_vehicle)
        vehicles = [replace(vehicle, max_orders=min(vehicle.max_orders, limit)) for vehicle in vehicles]

    unassigned: list[UnassignedStop] = []
    candidates: list[RoutingStop] = []
    for stop in stops:
        reason = _precheck(stop, vehicles, options)
        if reason:
            unassigned.append(UnassignedStop(stop.id, reason))
        else:
            candidates.append(stop)

    problem = _build_problem(candidates, vehicles)
    base_matrix = matrix_provider(problem.locations)
    matrix = _with_sink(
        apply_speed_factor(base_matrix, speed_factor_from_traffic(options.traffic_factor)),
        problem.sink,
    )

    reachable: list[RoutingStop] = []
    for stop in candidates:
        node = problem.node_of[stop.id]
        if all(matrix.distances[start][node] >= LARGE_PENALTY for start in problem.starts):
            unassigned.append(UnassignedStop(stop.id, REASON_UNREACHABLE))
        else:
            reachable.append(stop)
    if len(reachable) < len(candidates):
        logger.warning(f"{len(candidates) - len(reachable)} stops are unreachable from every vehicle start")

    status = "NO_STOPS"
    sequences: list[list[RoutingStop]] = [[] for _ in vehicles]
    if reachable:
        if engine == "nearest_neighbor":
            sequences = solve_nearest_neighbor(reachable, vehicles, problem, matrix)
            status = "NEAREST_NEIGHBOR"
        else:
            solved = _solve_with_ortools(reachable, vehicles, problem, matrix, options)
            if solved is None:
                logger.warning("OR-Tools found no assignment; using nearest-neighbour construction")
                sequences = solve_nearest_neighbor(reachable, vehicles, problem, matrix)
                status = "FALLBACK_NEAREST_NEIGHBOR"
            else:
                sequences = solved
                status = "SUCCESS"

    windows = {stop.id: _effective_window(stop, options) for stop in candidates}
    vehicle_index = {vehicle.id: position for position, vehicle in enumerate(vehicles)}
    routes = [
        _evaluate_route(_planned_route(vehicle, sequence), position, problem, matrix, options, windows)
        for position, (vehicle, sequence) in enumerate(zip(vehicles, sequences))
        if sequence
    ]

    served = {stop.stop_id for route in routes for stop in route.stops}
    for stop in reachable:
        if stop.id not in served:
            reason = REASON_TIME_WINDOW if stop.strictness == "HARD" and stop.window_end is not None else REASON_NOT_SCHEDULED
            unassigned.append(UnassignedStop(stop.id, reason))

    balance_score = get_balance_score(routes)
    if options.balance_visits and len(routes) > 1 and balance_score < settings.balance_score_threshold:
        balanced = redistribute_orders(routes, max_deviation=20)
        if balanced.new_score > balance_score + settings.balance_min_improvement:
            rebalanced = [
                _evaluate_route(route, vehicle_index[route.vehicle_id], problem, matrix, options, windows)
                for route in balanced.routes
            ]
            newly_late = _late_hard_stops(rebalanced) - _late_hard_stops(routes)
            if newly_late:
                logger.warning(
                    f"Discarding rebalanced routes: HARD windows missed for {sorted(newly_late)}"
                )
            else:
                logger.info(
                    f"Balance improved from {balance_score} to {balanced.new_score} "
                    f"(moved {balanced.moved_orders} orders)"
                )
                routes = rebalanced
                balance_score = balanced.new_score

    if options.max_distance_km:
        for route in routes:
            if route.distance_m > options.max_distance_km * 1000:
                logger.warning(
                    f"Route for vehicle {route.vehicle_id} exceeds max distance: "
                    f"{route.distance_m / 1000:.1f}km > {options.max_distance_km}km"
                )

    return SolveResult(
        routes=routes,
        unassigned=unassigned,
        metadata={
            "engine": engine,
            "status": status,
            "matrix_source": base_matrix.source,
            "balance_score": balance_score,
            "computing_time_ms": int((time.perf_counter() - started) * 1000),
        },
    )


def sequence_single_route(
    stops: Sequence[RoutingStop],
    vehicle: RoutingVehicle,
    options: SolveOptions | None = None,
    matrix_provider: MatrixProvider = build_travel_matrix,
) -> Optional[PlannedRoute]:
    """Re-sequence a fixed set of stops for one vehicle by distance; None if not all fit."""
    options = replace(options or SolveOptions(), objective="DISTANCE", balance_visits=False, max_routes=None)
    vehicle = replace(vehicle, max_orders=max(vehicle.max_orders, len(stops)))
    result = solve_routes(stops, [vehicle], options, matrix_provider)
    if result.unassigned or not result.routes:
        return None
    return result.routes[0]
