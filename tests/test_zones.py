from datetime import date

from src.fleetplan.models.domain import Order, Vehicle, VehicleZoneAssignment, Zone
from src.fleetplan.services.zoning.zones import (
    UNZONED,
    calculate_zone_stats,
    create_zone_batches,
    day_of_week,
    filter_vehicles_for_zone,
    get_zone_for_order,
    group_orders_by_zone,
)

CENTRO = {
    "type": "Polygon",
    "coordinates": [[[-77.10, -12.10], [-77.00, -12.10], [-77.00, -12.00], [-77.10, -12.00], [-77.10, -12.10]]],
}


def _order(order_id: str, lat: float, lon: float) -> Order:
    return Order(
        id=order_id,
        company_id="c1",
        tracking_id=f"T-{order_id}",
        address="Lima",
        latitude=lat,
        longitude=lon,
    )


def _vehicle(vehicle_id: str) -> Vehicle:
    return Vehicle(id=vehicle_id, company_id="c1", plate=vehicle_id.upper())


def _zone(**overrides) -> Zone:
    values = dict(
        id="z1",
        company_id="c1",
        name="Centro",
        geometry=CENTRO,
        vehicle_assignments=[VehicleZoneAssignment(vehicle_id="v1", assigned_days=["MONDAY"])],
    )
    values.update(overrides)
    return Zone(**values)


def test_day_of_week_names():
    assert day_of_week(date(2026, 10, 19)) == "MONDAY"
    assert day_of_week(date(2026, 10, 18)) == "SUNDAY"


def test_order_zone_lookup_skips_inactive_zones():
    inside = _order("o1", -12.05, -77.05)

    assert get_zone_for_order(inside, [_zone()]).id == "z1"
    assert get_zone_for_order(inside, [_zone(active=False)]) is None
    assert get_zone_for_order(_order("o2", -11.50, -77.05), [_zone()]) is None


def test_group_orders_by_zone_keeps_unzoned_bucket():
    orders = [_order("o1", -12.05, -77.05), _order("o2", -11.50, -77.05)]

    grouped = group_orders_by_zone(orders, [_zone()])

    assert [order.id for order in grouped["z1"]] == ["o1"]
    assert [order.id for order in grouped[UNZONED]] == ["o2"]


def test_assigned_vehicle_only_serves_its_zone_on_assigned_days():
    zones = [_zone()]
    vehicles = [_vehicle("v1"), _vehicle("v2")]

    monday = filter_vehicles_for_zone(vehicles, "z1", zones, "MONDAY")
    tuesday = filter_vehicles_for_zone(vehicles, "z1", zones, "TUESDAY")
    unzoned = filter_vehicles_for_zone(vehicles, UNZONED, zones, "MONDAY")

    assert [vehicle.id for vehicle in monday] == ["v1", "v2"]
    assert [vehicle.id for vehicle in tuesday] == ["v2"]
    assert [vehicle.id for vehicle in unzoned] == ["v2"]


def test_create_zone_batches_strands_orders_without_vehicles():
    orders = [_order("o1", -12.05, -77.05), _order("o2", -11.50, -77.05)]

    batches, stranded = create_zone_batches(orders, [_vehicle("v1")], [_zone()], "MONDAY")

    assert [(batch.zone_id, batch.zone_name) for batch in batches] == [("z1", "Centro")]
    assert [vehicle.id for vehicle in batches[0].vehicles] == ["v1"]
    assert [order.id for order in stranded] == ["o2"]


def test_create_zone_batches_without_zones_is_one_unzoned_batch():
    orders = [_order("o1", -12.05, -77.05), _order("o2", -11.50, -77.05)]

    batches, stranded = create_zone_batches(orders, [_vehicle("v1")], [], "MONDAY")

    assert len(batches) == 1
    assert batches[0].zone_id == UNZONED
    assert len(batches[0].orders) == 2
    assert stranded == []


def test_zone_stats_counts_unassignable_orders():
    orders = [_order("o1", -12.05, -77.05), _order("o2", -11.50, -77.05), _order("o3", -12.06, -77.06)]

    summary = calculate_zone_stats(orders, [_vehicle("v1")], [_zone()], "TUESDAY")

    assert summary.unzoned_count == 1
    assert summary.unassignable_count == 3
    [stats] = summary.stats
    assert (stats.order_count, stats.vehicle_count, stats.coverage) == (2, 0, 0)
