import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from src.fleetplan.errors import NotFoundError, OptimizationCancelled
from src.fleetplan.models.domain import (
    Driver,
    OptimizationConfiguration,
    Order,
    Vehicle,
    VehicleZoneAssignment,
    Zone,
)
from src.fleetplan.persistence.store import PlanningStore
from src.fleetplan.services.optimization.job_queue import JobQueue
from src.fleetplan.services.optimization.runner import (
    REASON_NO_ZONE_VEHICLE,
    OptimizationInput,
    create_and_execute_job,
    run_optimization,
    wait_for_job,
)
from src.fleetplan.services.routing.matrix import haversine_matrix
from src.fleetplan.services.routing.solver import REASON_SKILLS

PLAN_DATE = date(2026, 3, 2)  # a Monday


def _order(order_id: str, lat: float, lon: float, **overrides) -> Order:
    values = dict(
        id=order_id,
        company_id="c1",
        tracking_id=f"T-{order_id}",
        address=f"Calle {order_id}",
        latitude=lat,
        longitude=lon,
        weight_kg=20.0,
        volume_m3=0.5,
    )
    values.update(overrides)
    return Order(**values)


def _store(*, zones=(), vehicles=None) -> PlanningStore:
    store = PlanningStore()
    for order in (
        _order("o1", -12.05, -77.04),
        _order("o2", -12.06, -77.03),
        _order("o3", -12.07, -77.05),
        _order("o4", -12.04, -77.06),
    ):
        store.add_order(order)
    for vehicle in vehicles or (
        Vehicle(id="v1", company_id="c1", plate="AAA-111", fleet_ids=["f1"]),
        Vehicle(id="v2", company_id="c1", plate="BBB-222", fleet_ids=["f1"]),
    ):
        store.add_vehicle(vehicle)
    for driver_id in ("d1", "d2"):
        store.add_driver(
            Driver(
                id=driver_id,
                company_id="c1",
                name=f"Driver {driver_id}",
                license_expiry=date(2030, 1, 1),
                primary_fleet_id="f1",
            )
        )
    for zone in zones:
        store.add_zone(zone)
    store.add_configuration(
        OptimizationConfiguration(
            id="cfg",
            company_id="c1",
            name="Monday plan",
            depot_latitude=-12.00,
            depot_longitude=-77.00,
            selected_vehicle_ids=[vehicle.id for vehicle in store.list_vehicles("c1")],
            selected_driver_ids=["d1", "d2"],
            plan_date=PLAN_DATE,
        )
    )
    return store


def _input() -> OptimizationInput:
    return OptimizationInput(configuration_id="cfg", company_id="c1")


def test_run_optimization_routes_orders_and_assigns_drivers():
    store = _store()
    store.add_order(_order("cold", -12.05, -77.05, required_skills=["REFRIGERATED"]))

    result = run_optimization(_input(), store=store, matrix_provider=haversine_matrix, today=PLAN_DATE)

    routed = sorted(stop.order_id for route in result.routes for stop in route.stops)
    assert routed == ["o1", "o2", "o3", "o4"]
    assert [(item.order_id, item.reason) for item in result.unassigned_orders] == [("cold", REASON_SKILLS)]
    assert all(route.driver_id in ("d1", "d2") for route in result.routes)
    assert len({route.driver_id for route in result.routes}) == len(result.routes)
    assert result.summary.total_orders == 5
    assert result.summary.assigned_orders == 4
    assert result.summary.vehicles_available == 2
    assert result.metrics.matrix_source == "haversine"
    assert result.depot == {"latitude": -12.00, "longitude": -77.00}
    assert result.is_partial is False


def test_orders_in_zone_without_vehicle_that_day_are_unassigned():
    tuesday_only = Zone(
        id="z1",
        company_id="c1",
        name="Centro",
        geometry={
            "type": "Polygon",
            "coordinates": [[[-77.10, -12.10], [-77.00, -12.10], [-77.00, -12.00], [-77.10, -12.00], [-77.10, -12.10]]],
        },
        vehicle_assignments=[VehicleZoneAssignment(vehicle_id="v1", assigned_days=["TUESDAY"])],
    )
    store = _store(zones=[tuesday_only], vehicles=[Vehicle(id="v1", company_id="c1", plate="AAA-111")])

    result = run_optimization(_input(), store=store, matrix_provider=haversine_matrix, today=PLAN_DATE)

    assert result.routes == []
    assert {item.reason for item in result.unassigned_orders} == {REASON_NO_ZONE_VEHICLE}
    assert len(result.unassigned_orders) == 4
    assert [vehicle.vehicle_id for vehicle in result.vehicles_without_routes] == ["v1"]


def test_missing_configuration():
    with pytest.raises(NotFoundError):
        run_optimization(
            OptimizationInput(configuration_id="nope", company_id="c1"),
            store=_store(),
            matrix_provider=haversine_matrix,
        )


def test_abort_signal_returns_partial_result():
    abort = threading.Event()
    abort.set()

    with pytest.raises(OptimizationCancelled) as raised:
        run_optimization(_input(), abort, store=_store(), matrix_provider=haversine_matrix, today=PLAN_DATE)

    partial = raised.value.partial_result
    assert partial.is_partial is True
    assert partial.routes == []
    assert partial.summary.total_orders == 4


def test_job_runs_in_background_and_identical_input_is_cached():
    store = _store()
    queue = JobQueue(store)

    with ThreadPoolExecutor(max_workers=1) as executor:
        submission = create_and_execute_job(
            _input(), 60_000, store=store, queue=queue, matrix_provider=haversine_matrix, executor=executor
        )
        assert submission.cached is False
        job = wait_for_job(store, submission.job.id, timeout_seconds=60)

    assert job.status == "COMPLETED"
    assert job.progress == 100
    assert job.result.summary.assigned_orders == 4
    assert queue.active_count == 0

    again = create_and_execute_job(_input(), store=store, queue=queue, matrix_provider=haversine_matrix)
    assert again.cached is True
    assert again.job.id == job.id


def test_job_failure_is_recorded():
    store = _store()
    queue = JobQueue(store)

    def broken_matrix(coordinates):
        raise RuntimeError("matrix service exploded")

    with ThreadPoolExecutor(max_workers=1) as executor:
        submission = create_and_execute_job(
            _input(), store=store, queue=queue, matrix_provider=broken_matrix, executor=executor
        )
        job = wait_for_job(store, submission.job.id, timeout_seconds=30)

    assert job.status == "FAILED"
    assert job.error == "matrix service exploded"
