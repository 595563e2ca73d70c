"""Optimization job execution: data loading, zone batching, solving and driver assignment."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache
from typing import List, Optional

from ...config import settings
from ...errors import NotFoundError, OptimizationCancelled
from ...models.domain import OptimizationJob
from ...persistence.store import PlanningStore
from ..assignment.drivers import (
    AssignmentConfig,
    RouteAssignmentRequest,
    assign_drivers_to_routes,
    get_assignment_quality_metrics,
)
from ..routing.matrix import MatrixProvider, build_travel_matrix
from ..routing.solver import solve_routes
from ..zoning.zones import UNZONED, create_zone_batches, day_of_week
from .assembly import (
    assemble_result,
    build_route_result,
    orders_index,
    routing_stop_for,
    routing_vehicle_for,
    solve_options_for,
    unassigned_for,
)
from .job_queue import JobQueue, calculate_input_hash
from .models import AssignmentQuality, OptimizationResult, RouteResult, UnassignedOrder

logger = logging.getLogger(__name__)

REASON_NO_ZONE_VEHICLE = "No vehicle assigned to the order's zone on the plan date"


@dataclass(slots=True)
class OptimizationInput:
    configuration_id: str
    company_id: str
    vehicle_ids: List[str] = field(default_factory=list)
    driver_ids: List[str] = field(default_factory=list)


@dataclass(slots=True)
class JobSubmission:
    job: OptimizationJob
    cached: bool


@lru_cache()
def get_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=settings.max_concurrent_jobs, thread_name_prefix="optimization")


def run_optimization(
    input: OptimizationInput,
    abort_event: Optional[threading.Event] = None,
    job_id: Optional[str] = None,
    *,
    store: PlanningStore,
    queue: Optional[JobQueue] = None,
    matrix_provider: MatrixProvider = build_travel_matrix,
    today: Optional[date] = None,
) -> OptimizationResult:
    """Compute routes for every pending order of the tenant.

    Raises ``OptimizationCancelled`` carrying the routes built so far when
    ``abort_event`` is set between phases.
    """
    started = time.perf_counter()
    routes: List[RouteResult] = []
    unassigned: List[UnassignedOrder] = []

    def report(progress: int) -> None:
        if queue is not None and job_id is not None:
            queue.update_job_progress(job_id, progress)

    configuration = store.get_configuration(input.company_id, input.configuration_id)
    if configuration is None:
        raise NotFoundError("Configuration not found")

    vehicle_ids = input.vehicle_ids or configuration.selected_vehicle_ids
    driver_ids = input.driver_ids or configuration.selected_driver_ids
    orders = store.list_pending_orders(input.company_id)
    vehicles = store.list_vehicles(input.company_id, vehicle_ids, active=True)
    drivers = store.list_drivers(input.company_id, driver_ids, active=True)
    zones = store.list_zones(input.company_id, active=True)
    profile = store.get_capacity_profile(input.company_id)
    by_id = orders_index(orders)

    def check_abort() -> None:
        if abort_event is not None and abort_event.is_set():
            partial = assemble_result(
                routes=list(routes),
                unassigned=list(unassigned),
                vehicles=vehicles,
                configuration=configuration,
                assignment_metrics=get_assignment_quality_metrics([]),
                total_orders=len(orders),
                computing_time_ms=int((time.perf_counter() - started) * 1000),
                is_partial=True,
            )
            raise OptimizationCancelled(partial_result=partial)

    logger.info(
        f"Optimizing {len(orders)} orders with {len(vehicles)} vehicles and {len(drivers)} drivers "
        f"for configuration {configuration.id}"
    )
    report(10)
    check_abort()

    plan_day = day_of_week(configuration.plan_date or today or date.today())
    batches, stranded = create_zone_batches(orders, vehicles, zones, plan_day)
    unassigned.extend(unassigned_for(order, REASON_NO_ZONE_VEHICLE) for order in stranded)
    report(30)
    check_abort()

    options = solve_options_for(configuration)
    used_vehicle_ids: set[str] = set()
    matrix_source: Optional[str] = None
    vehicles_by_id = {vehicle.id: vehicle for vehicle in vehicles}

    for position, batch in enumerate(batches, start=1):
        available = [vehicle for vehicle in batch.vehicles if vehicle.id not in used_vehicle_ids]
        stops = [routing_stop_for(order, configuration, profile) for order in batch.orders]
        solved = solve_routes(
            stops,
            [routing_vehicle_for(vehicle, configuration, profile) for vehicle in available],
            options,
            matrix_provider,
        )
        matrix_source = solved.metadata.get("matrix_source", matrix_source)
        zone_id = None if batch.zone_id == UNZONED else batch.zone_id
        for planned in solved.routes:
            vehicle = vehicles_by_id[planned.vehicle_id]
            used_vehicle_ids.add(vehicle.id)
            routes.append(build_route_result(planned, vehicle, by_id, zone_id))
        unassigned.extend(unassigned_for(by_id[item.stop_id], item.reason) for item in solved.unassigned)
        logger.info(
            f"Zone {batch.zone_name}: {sum(len(p.stops) for p in solved.routes)} orders routed, "
            f"{len(solved.unassigned)} unassigned ({solved.metadata.get('status')})"
        )
        report(30 + int(40 * position / len(batches)))
        check_abort()

    report(70)
    required_skills = {
        route.vehicle_id: sorted({skill for stop in route.stops for skill in by_id[stop.order_id].required_skills})
        for route in routes
    }
    requests = [
        RouteAssignmentRequest(vehicle=vehicles_by_id[route.vehicle_id], required_skills=required_skills[route.vehicle_id])
        for route in routes
    ]
    assignments = assign_drivers_to_routes(
        requests,
        drivers,
        AssignmentConfig(strategy=configuration.assignment_strategy),
        today=configuration.plan_date or today,
    )
    for route in routes:
        assignment = assignments.get(route.vehicle_id)
        if assignment is None:
            continue
        route.driver_id = assignment.driver_id
        route.driver_name = assignment.driver_name
        route.assignment_quality = AssignmentQuality(
            score=assignment.score.score,
            warnings=list(assignment.score.warnings),
            errors=list(assignment.score.errors),
        )
    report(90)
    check_abort()

    result = assemble_result(
        routes=routes,
        unassigned=unassigned,
        vehicles=vehicles,
        configuration=configuration,
        assignment_metrics=get_assignment_quality_metrics(list(assignments.values())),
        total_orders=len(orders),
        computing_time_ms=int((time.perf_counter() - started) * 1000),
        matrix_source=matrix_source,
    )
    report(100)
    return result


def _execute(
    input: OptimizationInput,
    job_id: str,
    abort_event: threading.Event,
    store: PlanningStore,
    queue: JobQueue,
    matrix_provider: MatrixProvider,
) -> None:
    queue.mark_running(job_id)
    try:
        result = run_optimization(
            input,
            abort_event,
            job_id,
            store=store,
            queue=queue,
            matrix_provider=matrix_provider,
        )
    except OptimizationCancelled as cancelled:
        logger.info(f"Optimization job {job_id} cancelled")
        queue.cancel_job(job_id, cancelled.partial_result)
        return
    except Exception as e:
        logger.exception(f"Optimization job {job_id} failed")
        queue.fail_job(job_id, str(e) or "Unknown error")
        return

    if abort_event.is_set():
        queue.cancel_job(job_id, result)
    else:
        queue.complete_job(job_id, result)


def create_and_execute_job(
    input: OptimizationInput,
    timeout_ms: Optional[int] = None,
    *,
    store: PlanningStore,
    queue: JobQueue,
    matrix_provider: MatrixProvider = build_travel_matrix,
    executor: Optional[ThreadPoolExecutor] = None,
) -> JobSubmission:
    """Queue an optimization run, or return the completed job of an identical earlier input."""
    configuration = store.get_configuration(input.company_id, input.configuration_id)
    if configuration is None:
        raise NotFoundError("Configuration not found")

    vehicle_ids = input.vehicle_ids or configuration.selected_vehicle_ids
    driver_ids = input.driver_ids or configuration.selected_driver_ids
    input_hash = calculate_input_hash(
        configuration.id,
        vehicle_ids,
        driver_ids,
        [order.id for order in store.list_pending_orders(input.company_id)],
    )
    cached = queue.get_cached_result(input_hash, input.company_id)
    if cached is not None:
        logger.info(f"Reusing completed job {cached.id} for identical input")
        return JobSubmission(job=cached, cached=True)

    job_id = str(uuid.uuid4())
    abort_event = queue.register_job(job_id)
    timeout_ms = timeout_ms or settings.default_job_timeout_ms
    job = store.add_job(
        OptimizationJob(
            id=job_id,
            company_id=input.company_id,
            configuration_id=configuration.id,
            input_hash=input_hash,
            timeout_ms=timeout_ms,
        )
    )
    queue.set_job_timeout(job_id, timeout_ms, lambda: queue.fail_job(job_id, "Optimization timed out"))

    run_input = OptimizationInput(
        configuration_id=configuration.id,
        company_id=input.company_id,
        vehicle_ids=list(vehicle_ids),
        driver_ids=list(driver_ids),
    )
    (executor or get_executor()).submit(_execute, run_input, job_id, abort_event, store, queue, matrix_provider)
    return JobSubmission(job=job, cached=False)


def wait_for_job(store: PlanningStore, job_id: str, timeout_seconds: float = 30.0, poll_seconds: float = 0.05) -> OptimizationJob:
    """Block until the job reaches a terminal status or the timeout elapses."""
    deadline = time.monotonic() + timeout_seconds
    while True:
        job = store.find_job(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        if job.status not in ("PENDING", "RUNNING") or time.monotonic() >= deadline:
            return job
        time.sleep(poll_seconds)
