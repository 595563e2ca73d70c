from src.fleetplan.models.domain import Order, Vehicle
from src.fleetplan.services.routing.capacity import (
    CapacityProfile,
    map_order_capacities,
    map_vehicle_capacities,
    validate_profile,
)


def _order(**overrides) -> Order:
    values = dict(
        id="o1",
        company_id="c1",
        tracking_id="T-1",
        address="Av. Arequipa 100",
        latitude=-12.05,
        longitude=-77.04,
        weight_kg=12.6,
        volume_m3=0.4,
        order_value=250.0,
        units=3,
    )
    values.update(overrides)
    return Order(**values)


def test_default_profile_maps_weight_and_volume():
    mapping = map_order_capacities(_order())

    assert mapping.dimension_names == ["WEIGHT", "VOLUME"]
    assert mapping.capacities == [13, 0]
    assert mapping.priority is None


def test_all_dimensions_keep_profile_order():
    profile = CapacityProfile(active_dimensions=("UNITS", "VALUE", "WEIGHT"))
    mapping = map_order_capacities(_order(), profile)

    assert mapping.dimension_names == ["UNITS", "VALUE", "WEIGHT"]
    assert mapping.capacities == [3, 250, 13]


def test_order_type_priority_mapping():
    profile = CapacityProfile(enable_order_type=True)

    assert map_order_capacities(_order(order_type="URGENT"), profile).priority == 100
    assert map_order_capacities(_order(order_type="RESCHEDULED"), profile).priority == 80
    assert map_order_capacities(_order(priority=7)).priority == 7


def test_vehicle_defaults_for_missing_capacities():
    vehicle = Vehicle(id="v1", company_id="c1", plate="ABC-123")
    profile = CapacityProfile(active_dimensions=("WEIGHT", "VOLUME", "VALUE", "UNITS"))

    mapping = map_vehicle_capacities(vehicle, profile)

    assert mapping.capacities == [10000, 100, 10_000_000, 50]


def test_validate_profile_reports_problems():
    assert validate_profile(CapacityProfile()) == []
    errors = validate_profile(CapacityProfile(active_dimensions=("PALLETS",), priority_mapping={"NEW": 150}))
    assert "Unknown capacity dimension: PALLETS" in errors
    assert "Priority for NEW must be between 0 and 100" in errors
