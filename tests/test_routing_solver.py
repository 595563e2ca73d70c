import pytest

from src.fleetplan.models.domain import OptimizationConfiguration, Vehicle
from src.fleetplan.services.geospatial import haversine_m
from src.fleetplan.services.optimization.assembly import routing_vehicle_for
from src.fleetplan.services.routing.capacity import CapacityProfile
from src.fleetplan.services.routing.matrix import TravelMatrix, haversine_matrix
from src.fleetplan.services.routing.models import RoutingStop, RoutingVehicle, SolveOptions
from src.fleetplan.services.routing.solver import (
    REASON_CAPACITY,
    REASON_NO_VEHICLES,
    REASON_NOT_SCHEDULED,
    REASON_SKILLS,
    REASON_TIME_WINDOW,
    sequence_single_route,
    solve_routes,
)

DEPOT = (-12.00, -77.00)


def _stop(stop_id: str, lat: float, lon: float = -77.00, **overrides) -> RoutingStop:
    values = dict(id=stop_id, latitude=lat, longitude=lon, demands=[1], service_seconds=300)
    values.update(overrides)
    return RoutingStop(**values)


def _vehicle(vehicle_id: str, **overrides) -> RoutingVehicle:
    values = dict(id=vehicle_id, capacities=[100], max_orders=10, start=DEPOT, end=DEPOT)
    values.update(overrides)
    return RoutingVehicle(**values)


def _nearest() -> SolveOptions:
    return SolveOptions(engine="nearest_neighbor")


def _served(result) -> list[str]:
    return [stop.stop_id for route in result.routes for stop in route.stops]


def _fixed_matrix(durations, distances):
    def provider(coordinates):
        assert len(coordinates) == len(distances)
        return TravelMatrix(durations=durations, distances=distances, source="fixed")

    return provider


def test_empty_inputs():
    empty = solve_routes([], [_vehicle("v1")], matrix_provider=haversine_matrix)
    assert empty.metadata["status"] == "EMPTY"

    no_vehicles = solve_routes([_stop("s1", -12.01)], [], matrix_provider=haversine_matrix)
    assert no_vehicles.metadata["status"] == "NO_VEHICLES"
    assert [(item.stop_id, item.reason) for item in no_vehicles.unassigned] == [("s1", REASON_NO_VEHICLES)]


def test_ortools_serves_every_stop_once():
    stops = [_stop(f"s{index}", -12.00 - index * 0.01, -77.00 + (index % 2) * 0.01) for index in range(1, 7)]
    vehicles = [_vehicle("v1"), _vehicle("v2")]

    result = solve_routes(stops, vehicles, matrix_provider=haversine_matrix)

    assert result.metadata["status"] == "SUCCESS"
    assert result.metadata["matrix_source"] == "haversine"
    assert result.unassigned == []
    assert sorted(_served(result)) == sorted(stop.id for stop in stops)
    for route in result.routes:
        assert [stop.sequence for stop in route.stops] == list(range(1, len(route.stops) + 1))
        assert route.loads == [len(route.stops)]
        assert route.distance_m > 0


def test_infeasible_stops_are_reported_with_reasons():
    stops = [
        _stop("ok", -12.01),
        _stop("cold", -12.02, required_skills=["REFRIGERATED"]),
        _stop("heavy", -12.03, demands=[500]),
        _stop("early", -12.04, strictness="HARD", window_start=6 * 3600, window_end=7 * 3600),
    ]

    result = solve_routes(stops, [_vehicle("v1")], _nearest(), matrix_provider=haversine_matrix)

    reasons = {item.stop_id: item.reason for item in result.unassigned}
    assert reasons == {"cold": REASON_SKILLS, "heavy": REASON_CAPACITY, "early": REASON_TIME_WINDOW}
    assert _served(result) == ["ok"]


def test_skilled_vehicle_takes_skilled_stop():
    stops = [_stop("cold", -12.02, required_skills=["REFRIGERATED"])]
    vehicles = [_vehicle("plain"), _vehicle("reefer", skills=["REFRIGERATED"])]

    result = solve_routes(stops, vehicles, matrix_provider=haversine_matrix)

    assert [route.vehicle_id for route in result.routes] == ["reefer"]


def test_nearest_neighbor_orders_by_proximity():
    stops = [_stop("far", -12.03), _stop("near", -12.01), _stop("mid", -12.02)]

    result = solve_routes(stops, [_vehicle("v1")], _nearest(), matrix_provider=haversine_matrix)

    assert result.metadata["status"] == "NEAREST_NEIGHBOR"
    [route] = result.routes
    assert [stop.stop_id for stop in route.stops] == ["near", "mid", "far"]
    arrivals = [stop.arrival_seconds for stop in route.stops]
    assert arrivals == sorted(arrivals)
    assert arrivals[0] > 8 * 3600
    assert route.service_seconds == 900


def test_max_orders_leaves_overflow_unassigned():
    stops = [_stop("a", -12.01), _stop("b", -12.02), _stop("c", -12.03)]

    result = solve_routes(stops, [_vehicle("v1", max_orders=2)], _nearest(), matrix_provider=haversine_matrix)

    assert _served(result) == ["a", "b"]
    assert [(item.stop_id, item.reason) for item in result.unassigned] == [("c", REASON_NOT_SCHEDULED)]


def test_open_route_does_not_count_return_leg():
    stops = [_stop("a", -12.01)]

    closed = solve_routes(stops, [_vehicle("v1")], _nearest(), matrix_provider=haversine_matrix)
    open_ended = solve_routes(stops, [_vehicle("v1", end=None)], _nearest(), matrix_provider=haversine_matrix)

    assert closed.routes[0].distance_m == pytest.approx(2 * open_ended.routes[0].distance_m, abs=2)


def test_soft_window_lateness_is_recorded():
    stops = [_stop("late", -12.01, window_start=0, window_end=8 * 3600)]

    result = solve_routes(stops, [_vehicle("v1")], _nearest(), matrix_provider=haversine_matrix)

    [stop] = result.routes[0].stops
    assert stop.lateness_seconds > 0
    assert result.routes[0].time_window_violations == 1


def test_sequence_single_route():
    stops = [_stop("b", -12.02), _stop("a", -12.01)]

    route = sequence_single_route(stops, _vehicle("v1", max_orders=1), _nearest(), matrix_provider=haversine_matrix)

    assert route is not None
    assert [stop.stop_id for stop in route.stops] == ["a", "b"]
    assert sequence_single_route(stops, _vehicle("v1", capacities=[1]), _nearest(), matrix_provider=haversine_matrix) is None


def test_hard_window_is_kept_or_the_stop_is_dropped():
    stops = [
        _stop("booked", -12.01, strictness="HARD", window_start=9 * 3600, window_end=9 * 3600 + 1800),
        _stop("unreachable_in_time", -12.10, strictness="HARD", window_start=8 * 3600, window_end=8 * 3600 + 300),
        _stop("relaxed", -12.10, window_start=8 * 3600, window_end=8 * 3600 + 300),
    ]

    result = solve_routes(stops, [_vehicle("v1")], matrix_provider=haversine_matrix)

    assert result.metadata["status"] == "SUCCESS"
    assert [(item.stop_id, item.reason) for item in result.unassigned] == [("unreachable_in_time", REASON_TIME_WINDOW)]
    served = {stop.stop_id: stop for stop in result.routes[0].stops}
    assert 9 * 3600 <= served["booked"].arrival_seconds <= 9 * 3600 + 1800
    assert served["booked"].lateness_seconds == 0
    assert served["relaxed"].lateness_seconds > 0


def test_balancing_keeps_skilled_stops_on_skilled_vehicles():
    stops = [_stop(f"cold{index}", -12.00 - index * 0.01, required_skills=["FRIDGE"]) for index in range(1, 5)]
    stops.append(_stop("dry", -12.20))
    vehicles = [_vehicle("reefer", skills=["FRIDGE"]), _vehicle("van")]
    options = SolveOptions(engine="nearest_neighbor", balance_visits=True)

    result = solve_routes(stops, vehicles, options, matrix_provider=haversine_matrix)

    by_vehicle = {route.vehicle_id: [stop.stop_id for stop in route.stops] for route in result.routes}
    assert sorted(by_vehicle["reefer"]) == ["cold1", "cold2", "cold3", "cold4"]
    assert by_vehicle["van"] == ["dry"]
    assert result.metadata["balance_score"] == 40


def test_balancing_moves_stops_to_the_quiet_route():
    stops = [_stop(f"a{index}", -12.00 - index * 0.01) for index in range(1, 5)]
    stops.append(_stop("remote", -12.50))
    options = SolveOptions(engine="nearest_neighbor", balance_visits=True)

    result = solve_routes(stops, [_vehicle("v1"), _vehicle("v2")], options, matrix_provider=haversine_matrix)

    by_vehicle = {route.vehicle_id: [stop.stop_id for stop in route.stops] for route in result.routes}
    assert by_vehicle == {"v1": ["a1", "a2", "a3"], "v2": ["remote", "a4"]}
    assert result.metadata["balance_score"] == 80
    assert [stop.sequence for stop in result.routes[1].stops] == [1, 2]


def test_balancing_is_discarded_when_it_breaks_a_hard_window():
    stops = [_stop(f"a{index}", -12.00 - index * 0.01) for index in range(1, 4)]
    stops.append(_stop("a4", -12.04, strictness="HARD", window_start=8 * 3600, window_end=8 * 3600 + 1800))
    stops.append(_stop("remote", -12.50))
    options = SolveOptions(engine="nearest_neighbor", balance_visits=True)

    result = solve_routes(stops, [_vehicle("v1"), _vehicle("v2")], options, matrix_provider=haversine_matrix)

    by_vehicle = {route.vehicle_id: [stop.stop_id for stop in route.stops] for route in result.routes}
    assert by_vehicle == {"v1": ["a1", "a2", "a3", "a4"], "v2": ["remote"]}
    assert result.metadata["balance_score"] == 40
    assert all(stop.lateness_seconds == 0 for stop in result.routes[0].stops)


@pytest.mark.parametrize(
    "objective, expected",
    [("DISTANCE", ["short", "quick"]), ("TIME", ["quick", "short"])],
)
def test_objective_picks_the_cheaper_order(objective, expected):
    # nodes: depot, "short" (close by road), "quick" (fast by road)
    distances = [[0, 1000, 5000], [1000, 0, 5000], [5000, 5000, 0]]
    durations = [[0, 5000, 100], [5000, 0, 100], [100, 100, 0]]
    stops = [_stop("short", -12.01), _stop("quick", -12.02)]

    result = solve_routes(
        stops,
        [_vehicle("v1", end=None)],
        SolveOptions(objective=objective),
        matrix_provider=_fixed_matrix(durations, distances),
    )

    assert result.metadata["matrix_source"] == "fixed"
    assert _served(result) == expected


def test_max_distance_drops_stops_beyond_the_limit():
    stops = [_stop("near", -12.01), _stop("far", -12.20)]

    result = solve_routes(stops, [_vehicle("v1")], SolveOptions(max_distance_km=10), matrix_provider=haversine_matrix)

    assert _served(result) == ["near"]
    assert [(item.stop_id, item.reason) for item in result.unassigned] == [("far", REASON_NOT_SCHEDULED)]
    assert result.routes[0].distance_m <= 10_000


def test_max_travel_time_drops_stops_beyond_the_limit():
    stops = [_stop("near", -12.01), _stop("far", -12.20)]

    result = solve_routes(
        stops, [_vehicle("v1")], SolveOptions(max_travel_time_minutes=30), matrix_provider=haversine_matrix
    )

    assert _served(result) == ["near"]
    assert [item.stop_id for item in result.unassigned] == ["far"]
    assert result.routes[0].travel_seconds <= 30 * 60


def test_minimize_vehicles_uses_a_single_route():
    # the two stops are close to the depot but far from each other
    distances = [[0, 1000, 1000], [1000, 0, 50_000], [1000, 50_000, 0]]
    durations = [[value // 10 for value in row] for row in distances]
    stops = [_stop("east", -12.01), _stop("west", -11.99)]
    vehicles = [_vehicle("v1"), _vehicle("v2")]
    provider = _fixed_matrix(durations, distances)

    spread = solve_routes(stops, vehicles, SolveOptions(), matrix_provider=provider)
    packed = solve_routes(stops, vehicles, SolveOptions(minimize_vehicles=True), matrix_provider=provider)

    assert len(spread.routes) == 2
    assert len(packed.routes) == 1
    assert sorted(_served(packed)) == ["east", "west"]


def test_traffic_factor_scales_travel_times():
    stops = [_stop("a", -12.01)]

    def travel(traffic_factor):
        options = SolveOptions(engine="nearest_neighbor", traffic_factor=traffic_factor)
        [route] = solve_routes(stops, [_vehicle("v1")], options, matrix_provider=haversine_matrix).routes
        return route

    normal, empty_roads, congested = travel(None), travel(0), travel(100)

    assert empty_roads.travel_seconds < normal.travel_seconds < congested.travel_seconds
    assert congested.travel_seconds == 2 * normal.travel_seconds
    assert empty_roads.distance_m == normal.distance_m == congested.distance_m


def test_max_routes_limits_the_vehicles_used():
    stops = [_stop(f"s{index}", -12.00 - index * 0.01) for index in range(1, 4)]
    vehicles = [_vehicle("v1"), _vehicle("v2"), _vehicle("v3")]

    result = solve_routes(stops, vehicles, SolveOptions(max_routes=1), matrix_provider=haversine_matrix)

    assert [route.vehicle_id for route in result.routes] == ["v1"]
    assert sorted(_served(result)) == ["s1", "s2", "s3"]


def test_specific_end_depot_closes_routes_there():
    configuration = OptimizationConfiguration(
        id="cfg",
        company_id="c1",
        name="Depot run",
        depot_latitude=-12.00,
        depot_longitude=-77.00,
        selected_vehicle_ids=["v1"],
        selected_driver_ids=[],
        route_end_mode="SPECIFIC_DEPOT",
        end_depot_latitude=-12.00,
        end_depot_longitude=-76.90,
    )
    vehicle = routing_vehicle_for(Vehicle(id="v1", company_id="c1", plate="AAA-111"), configuration, CapacityProfile())
    stop = _stop("a", -12.01)

    result = solve_routes([stop], [vehicle], _nearest(), matrix_provider=haversine_matrix)

    assert vehicle.start == (-12.00, -77.00)
    assert vehicle.end == (-12.00, -76.90)
    expected = haversine_m(-12.00, -77.00, -12.01, -77.00) + haversine_m(-12.01, -77.00, -12.00, -76.90)
    assert result.routes[0].distance_m == pytest.approx(expected, abs=2)


@pytest.mark.parametrize(
    "mode, expected_end",
    [("OPEN_END", None), ("DRIVER_ORIGIN", (-12.05, -77.05)), ("SPECIFIC_DEPOT", (-12.00, -77.00))],
)
def test_route_end_mode_sets_vehicle_end(mode, expected_end):
    configuration = OptimizationConfiguration(
        id="cfg",
        company_id="c1",
        name="Ends",
        depot_latitude=-12.00,
        depot_longitude=-77.00,
        selected_vehicle_ids=["v1"],
        selected_driver_ids=[],
        route_end_mode=mode,
    )
    vehicle = Vehicle(id="v1", company_id="c1", plate="AAA-111", origin_latitude=-12.05, origin_longitude=-77.05)

    assert routing_vehicle_for(vehicle, configuration, CapacityProfile()).end == expected_end
