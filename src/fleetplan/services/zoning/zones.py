"""Zone membership, day schedules and per-zone optimization batches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, TypeVar

from ...models.domain import DAYS_OF_WEEK, Order, Vehicle, VehicleZoneAssignment, Zone
from ..geospatial import point_in_geojson

logger = logging.getLogger(__name__)

UNZONED = "unzoned"

TVehicle = TypeVar("TVehicle", bound=Vehicle)


@dataclass(slots=True)
class ZoneBatch:
    zone_id: str
    zone_name: str
    orders: List[Order]
    vehicles: List[Vehicle]


@dataclass(slots=True)
class ZoneStats:
    zone_id: str
    zone_name: str
    order_count: int
    vehicle_count: int
    coverage: int


@dataclass(slots=True)
class ZoneStatsSummary:
    stats: List[ZoneStats] = field(default_factory=list)
    unzoned_count: int = 0
    unassignable_count: int = 0


def day_of_week(value: date) -> str:
    return DAYS_OF_WEEK[value.weekday()]


def is_point_in_zone(latitude: float, longitude: float, zone: Zone) -> bool:
    try:
        return point_in_geojson(latitude, longitude, zone.geometry)
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning(f"Invalid geometry for zone {zone.id}: {exc}")
        return False


def get_zone_for_order(order: Order, zones: Sequence[Zone]) -> Optional[Zone]:
    """First active zone containing the order location."""
    for zone in zones:
        if zone.active and is_point_in_zone(order.latitude, order.longitude, zone):
            return zone
    return None


def is_zone_active_on_day(zone: Zone, day: str) -> bool:
    return not zone.active_days or day in zone.active_days


def is_vehicle_assigned_to_zone_on_day(assignment: VehicleZoneAssignment, day: str) -> bool:
    if not assignment.active:
        return False
    return not assignment.assigned_days or day in assignment.assigned_days


def _assignments_for(vehicle_id: str, zones: Sequence[Zone]) -> Dict[str, VehicleZoneAssignment]:
    return {
        zone.id: assignment
        for zone in zones
        for assignment in zone.vehicle_assignments
        if assignment.vehicle_id == vehicle_id
    }


def is_vehicle_unrestricted(vehicle: Vehicle, zones: Sequence[Zone]) -> bool:
    """A vehicle with no zone assignments may serve any order."""
    return not _assignments_for(vehicle.id, zones)


def get_vehicle_zone_ids(vehicle: Vehicle, zones: Sequence[Zone], day: str) -> List[str]:
    return [
        zone_id
        for zone_id, assignment in _assignments_for(vehicle.id, zones).items()
        if is_vehicle_assigned_to_zone_on_day(assignment, day)
    ]


def get_vehicles_for_zone(zone: Zone, vehicles: Sequence[TVehicle], day: str) -> List[TVehicle]:
    if not is_zone_active_on_day(zone, day):
        return []
    assigned = {
        assignment.vehicle_id
        for assignment in zone.vehicle_assignments
        if is_vehicle_assigned_to_zone_on_day(assignment, day)
    }
    return [vehicle for vehicle in vehicles if vehicle.id in assigned]


def group_orders_by_zone(orders: Sequence[Order], zones: Sequence[Zone]) -> Dict[str, List[Order]]:
    grouped: Dict[str, List[Order]] = {zone.id: [] for zone in zones if zone.active}
    grouped[UNZONED] = []
    for order in orders:
        zone = get_zone_for_order(order, zones)
        grouped.setdefault(zone.id if zone else UNZONED, []).append(order)
    return grouped


def filter_vehicles_for_zone(
    vehicles: Sequence[TVehicle],
    zone_id: str,
    zones: Sequence[Zone],
    day: str,
) -> List[TVehicle]:
    """Unrestricted vehicles serve every zone; only they serve unzoned orders."""
    eligible = []
    for vehicle in vehicles:
        if is_vehicle_unrestricted(vehicle, zones):
            eligible.append(vehicle)
        elif zone_id != UNZONED and zone_id in get_vehicle_zone_ids(vehicle, zones, day):
            eligible.append(vehicle)
    return eligible


def create_zone_batches(
    orders: Sequence[Order],
    vehicles: Sequence[TVehicle],
    zones: Sequence[Zone],
    day: str,
) -> tuple[List[ZoneBatch], List[Order]]:
    """Split orders into per-zone batches; orders of zones without vehicles are returned separately."""
    batches: List[ZoneBatch] = []
    stranded: List[Order] = []
    names = {zone.id: zone.name for zone in zones}

    for zone_id, zone_orders in group_orders_by_zone(orders, zones).items():
        if not zone_orders:
            continue
        eligible = filter_vehicles_for_zone(vehicles, zone_id, zones, day)
        zone_name = names.get(zone_id, "No zone")
        if eligible:
            batches.append(ZoneBatch(zone_id=zone_id, zone_name=zone_name, orders=zone_orders, vehicles=eligible))
        else:
            logger.warning(
                f"No vehicles available for zone {zone_name} on {day}. {len(zone_orders)} orders will be unassigned."
            )
            stranded.extend(zone_orders)
    return batches, stranded


def calculate_zone_stats(
    orders: Sequence[Order],
    vehicles: Sequence[Vehicle],
    zones: Sequence[Zone],
    day: str,
) -> ZoneStatsSummary:
    summary = ZoneStatsSummary()
    names = {zone.id: zone.name for zone in zones}
    for zone_id, zone_orders in group_orders_by_zone(orders, zones).items():
        if zone_id == UNZONED:
            summary.unzoned_count = len(zone_orders)
            if not any(is_vehicle_unrestricted(vehicle, zones) for vehicle in vehicles):
                summary.unassignable_count += len(zone_orders)
            continue
        eligible = filter_vehicles_for_zone(vehicles, zone_id, zones, day)
        summary.stats.append(
            ZoneStats(
                zone_id=zone_id,
                zone_name=names.get(zone_id, "Unknown"),
                order_count=len(zone_orders),
                vehicle_count=len(eligible),
                coverage=100 if eligible else 0,
            )
        )
        if not eligible:
            summary.unassignable_count += len(zone_orders)
    return summary
