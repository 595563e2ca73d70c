"""Mapping of orders and vehicles onto the company's active capacity dimensions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from ...models.domain import Order, Vehicle

CAPACITY_DIMENSIONS = ("WEIGHT", "VOLUME", "VALUE", "UNITS")

DEFAULT_PRIORITY_MAPPING = {"NEW": 50, "RESCHEDULED": 80, "URGENT": 100}

DEFAULT_VEHICLE_CAPACITY = {
    "WEIGHT": 10000,
    "VOLUME": 100,
    "VALUE": 10_000_000,
    "UNITS": 50,
}


@dataclass(slots=True)
class CapacityProfile:
    """Per-company choice of capacity dimensions and order type priorities."""

    active_dimensions: tuple[str, ...] = ("WEIGHT", "VOLUME")
    enable_order_type: bool = False
    priority_mapping: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PRIORITY_MAPPING))


@dataclass(slots=True)
class CapacityMapping:
    capacities: list[int]
    dimension_names: list[str]
    priority: Optional[int] = None


DEFAULT_PROFILE = CapacityProfile()


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def validate_profile(profile: CapacityProfile) -> list[str]:
    errors: list[str] = []
    if not profile.active_dimensions:
        errors.append("At least one capacity dimension must be active")
    for dimension in profile.active_dimensions:
        if dimension not in CAPACITY_DIMENSIONS:
            errors.append(f"Unknown capacity dimension: {dimension}")
    for order_type, priority in profile.priority_mapping.items():
        if not 0 <= priority <= 100:
            errors.append(f"Priority for {order_type} must be between 0 and 100")
    return errors


def map_order_capacities(order: Order, profile: CapacityProfile = DEFAULT_PROFILE) -> CapacityMapping:
    values = {
        "WEIGHT": order.weight_kg or 0,
        "VOLUME": order.volume_m3 or 0,
        "VALUE": order.order_value or 0,
        "UNITS": order.units if order.units is not None else 1,
    }
    names = [dim for dim in profile.active_dimensions if dim in values]

    priority: Optional[int] = None
    if profile.enable_order_type and order.order_type:
        priority = profile.priority_mapping.get(order.order_type)
        if priority is None:
            priority = order.priority if order.priority is not None else 50
    elif order.priority is not None:
        priority = order.priority

    return CapacityMapping(
        capacities=[_round(values[dim]) for dim in names],
        dimension_names=names,
        priority=priority,
    )


def map_vehicle_capacities(vehicle: Vehicle, profile: CapacityProfile = DEFAULT_PROFILE) -> CapacityMapping:
    values = {
        "WEIGHT": vehicle.weight_capacity_kg,
        "VOLUME": vehicle.volume_capacity_m3,
        "VALUE": vehicle.max_value_capacity,
        "UNITS": vehicle.max_units_capacity,
    }
    names = [dim for dim in profile.active_dimensions if dim in values]
    capacities = [
        _round(values[dim] if values[dim] is not None else DEFAULT_VEHICLE_CAPACITY[dim])
        for dim in names
    ]
    return CapacityMapping(capacities=capacities, dimension_names=names)
