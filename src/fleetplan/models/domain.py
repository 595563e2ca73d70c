"""Domain models for the planning entities owned by each tenant."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional

ORDER_STATUSES = ("PENDING", "ASSIGNED", "IN_PROGRESS", "DELIVERED", "FAILED", "CANCELLED")
ORDER_TYPES = ("NEW", "RESCHEDULED", "URGENT")
DRIVER_STATUSES = ("AVAILABLE", "ASSIGNED", "IN_ROUTE", "ON_PAUSE", "COMPLETED", "UNAVAILABLE", "ABSENT")
JOB_STATUSES = ("PENDING", "RUNNING", "COMPLETED", "FAILED", "CANCELLED")
CONFIGURATION_STATUSES = ("DRAFT", "CONFIGURED", "CONFIRMED")
DAYS_OF_WEEK = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Order:
    """A delivery order waiting to be planned."""

    id: str
    company_id: str
    tracking_id: str
    address: str
    latitude: float
    longitude: float
    customer_name: Optional[str] = None
    status: str = "PENDING"
    active: bool = True
    order_type: str = "NEW"
    weight_kg: float = 0.0
    volume_m3: float = 0.0
    order_value: float = 0.0
    units: int = 1
    time_window_start: Optional[str] = None
    time_window_end: Optional[str] = None
    strictness: Optional[str] = None
    required_skills: list[str] = field(default_factory=list)
    service_time_minutes: Optional[int] = None
    priority: Optional[int] = None
    promised_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class Vehicle:
    """A vehicle that may be given a route."""

    id: str
    company_id: str
    plate: str
    name: Optional[str] = None
    weight_capacity_kg: float = 10000.0
    volume_capacity_m3: float = 100.0
    max_value_capacity: Optional[float] = None
    max_units_capacity: Optional[int] = None
    max_orders: Optional[int] = None
    skills: list[str] = field(default_factory=list)
    fleet_ids: list[str] = field(default_factory=list)
    license_required: Optional[str] = None
    origin_latitude: Optional[float] = None
    origin_longitude: Optional[float] = None
    assigned_driver_id: Optional[str] = None
    status: str = "AVAILABLE"
    active: bool = True


@dataclass(slots=True)
class DriverSkill:
    skill_id: str
    name: str
    expires_at: Optional[date] = None


@dataclass(slots=True)
class DriverAvailability:
    day_of_week: str
    start_time: str = "00:00"
    end_time: str = "23:59"
    is_day_off: bool = False


@dataclass(slots=True)
class Driver:
    """A driver that can be attached to a planned route."""

    id: str
    company_id: str
    name: str
    status: str = "AVAILABLE"
    license_expiry: Optional[date] = None
    license_categories: Optional[str] = None
    primary_fleet_id: Optional[str] = None
    secondary_fleet_ids: list[str] = field(default_factory=list)
    skills: list[DriverSkill] = field(default_factory=list)
    availability: list[DriverAvailability] = field(default_factory=list)
    active: bool = True


@dataclass(slots=True)
class VehicleZoneAssignment:
    vehicle_id: str
    assigned_days: list[str] = field(default_factory=list)
    active: bool = True


@dataclass(slots=True)
class Zone:
    """A service area polygon, optionally restricted to days and vehicles."""

    id: str
    company_id: str
    name: str
    geometry: dict[str, Any]
    active_days: list[str] = field(default_factory=list)
    vehicle_assignments: list[VehicleZoneAssignment] = field(default_factory=list)
    color: Optional[str] = None
    active: bool = True


@dataclass(slots=True)
class OptimizationConfiguration:
    """Depot, fleet selection and solver options for one planning run."""

    id: str
    company_id: str
    name: str
    depot_latitude: float
    depot_longitude: float
    selected_vehicle_ids: list[str]
    selected_driver_ids: list[str]
    depot_address: Optional[str] = None
    plan_date: Optional[date] = None
    objective: str = "BALANCED"
    capacity_enabled: bool = True
    work_window_start: str = "08:00"
    work_window_end: str = "18:00"
    service_time_minutes: int = 10
    time_window_strictness: str = "SOFT"
    penalty_factor: int = 3
    max_routes: Optional[int] = None
    balance_visits: bool = False
    max_distance_km: Optional[float] = None
    max_travel_time_minutes: Optional[int] = None
    traffic_factor: Optional[int] = None
    route_end_mode: str = "DRIVER_ORIGIN"
    end_depot_latitude: Optional[float] = None
    end_depot_longitude: Optional[float] = None
    minimize_vehicles: bool = False
    flexible_time_windows: bool = False
    assignment_strategy: str = "BALANCED"
    status: str = "CONFIGURED"
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class OptimizationJob:
    """Server-side asynchronous optimization task."""

    id: str
    company_id: str
    configuration_id: str
    input_hash: str
    timeout_ms: int
    status: str = "PENDING"
    progress: int = 0
    result: Any = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


@dataclass(slots=True)
class AuditEntry:
    company_id: str
    entity_type: str
    entity_id: str
    action: str
    user_id: Optional[str]
    changes: dict[str, Any]
    created_at: datetime = field(default_factory=utc_now)
