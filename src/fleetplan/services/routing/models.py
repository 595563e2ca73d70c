"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(slots=True)
class RoutingStop:
    """A location the solver has to visit, already mapped to solver units."""

    id: str
    latitude: float
    longitude: float
    demands: List[int] = field(default_factory=list)
    weight: float = 0.0
    volume: float = 0.0
    service_seconds: int = 0
    window_start: Optional[int] = None
    window_end: Optional[int] = None
    strictness: str = "SOFT"
    required_skills: List[str] = field(default_factory=list)
    priority: Optional[int] = None


@dataclass(slots=True)
class RoutingVehicle:
    id: str
    capacities: List[int]
    max_orders: int
    start: tuple[float, float]
    end: Optional[tuple[float, float]] = None
    skills: List[str] = field(default_factory=list)


@dataclass(slots=True)
class SolveOptions:
    objective: str = "BALANCED"
    penalty_factor: int = 3
    work_start_seconds: int = 8 * 3600
    work_end_seconds: int = 18 * 3600
    max_distance_km: Optional[float] = None
    max_travel_time_minutes: Optional[int] = None
    traffic_factor: Optional[int] = None
    minimize_vehicles: bool = False
    flexible_time_windows: bool = False
    balance_visits: bool = False
    max_routes: Optional[int] = None
    time_limit_seconds: Optional[int] = None
    engine: Optional[str] = None


@dataclass(slots=True)
class PlannedStop:
    stop_id: str
    sequence: int
    latitude: float
    longitude: float
    arrival_seconds: int = 0
    service_seconds: int = 0
    waiting_seconds: int = 0
    lateness_seconds: int = 0
    weight: float = 0.0
    volume: float = 0.0
    demands: List[int] = field(default_factory=list)
    required_skills: List[str] = field(default_factory=list)
    strictness: str = "SOFT"


@dataclass(slots=True)
class PlannedRoute:
    vehicle_id: str
    stops: List[PlannedStop]
    capacities: List[int]
    max_orders: int
    loads: List[int] = field(default_factory=list)
    distance_m: float = 0.0
    travel_seconds: int = 0
    service_seconds: int = 0
    waiting_seconds: int = 0
    duration_seconds: int = 0
    start_seconds: int = 0
    time_window_violations: int = 0
    skills: List[str] = field(default_factory=list)

    @property
    def total_weight(self) -> float:
        return sum(stop.weight for stop in self.stops)

    @property
    def total_volume(self) -> float:
        return sum(stop.volume for stop in self.stops)


@dataclass(slots=True)
class UnassignedStop:
    stop_id: str
    reason: str


@dataclass(slots=True)
class SolveResult:
    routes: List[PlannedRoute]
    unassigned: List[UnassignedStop]
    metadata: dict
