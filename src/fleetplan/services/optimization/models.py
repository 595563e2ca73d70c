"""Optimization result models returned to clients and stored on jobs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional

from ..assignment.drivers import AssignmentQualityMetrics


@dataclass(slots=True)
class AssignmentQuality:
    score: int
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass(slots=True)
class RouteStopResult:
    order_id: str
    tracking_id: str
    sequence: int
    address: str
    latitude: float
    longitude: float
    estimated_arrival: str
    arrival_seconds: int
    service_seconds: int
    waiting_seconds: int = 0
    lateness_seconds: int = 0
    time_window_start: Optional[str] = None
    time_window_end: Optional[str] = None
    weight: float = 0.0
    volume: float = 0.0


@dataclass(slots=True)
class RouteResult:
    route_id: str
    vehicle_id: str
    vehicle_plate: str
    zone_id: Optional[str]
    stops: List[RouteStopResult]
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    total_distance: float = 0.0
    total_duration: int = 0
    total_service_time: int = 0
    total_travel_time: int = 0
    total_weight: float = 0.0
    total_volume: float = 0.0
    utilization_percentage: int = 0
    time_window_violations: int = 0
    assignment_quality: Optional[AssignmentQuality] = None


@dataclass(slots=True)
class UnassignedOrder:
    order_id: str
    tracking_id: str
    reason: str


@dataclass(slots=True)
class VehicleWithoutRoute:
    vehicle_id: str
    plate: str


@dataclass(slots=True)
class ResultMetrics:
    total_distance: float = 0.0
    total_duration: int = 0
    total_routes: int = 0
    total_stops: int = 0
    utilization_rate: int = 0
    time_window_compliance_rate: int = 100
    balance_score: int = 100
    computing_time_ms: int = 0
    matrix_source: Optional[str] = None


@dataclass(slots=True)
class PlanSummary:
    optimized_at: str
    objective: str
    total_orders: int = 0
    assigned_orders: int = 0
    unassigned_orders: int = 0
    vehicles_used: int = 0
    vehicles_available: int = 0


@dataclass(slots=True)
class OptimizationResult:
    routes: List[RouteResult]
    unassigned_orders: List[UnassignedOrder]
    vehicles_without_routes: List[VehicleWithoutRoute]
    metrics: ResultMetrics
    assignment_metrics: AssignmentQualityMetrics
    summary: PlanSummary
    depot: dict[str, float]
    is_partial: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
