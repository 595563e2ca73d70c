"""Optimization configuration, job and plan request schemas."""

from __future__ import annotations

import uuid
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models.domain import OptimizationConfiguration
from ..services.optimization.validation import PlanValidationConfig
from ..services.routing.time_windows import time_to_minutes
from .orders import ClockTime


class ConfigurationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    depot_latitude: float = Field(..., ge=-90, le=90)
    depot_longitude: float = Field(..., ge=-180, le=180)
    depot_address: Optional[str] = None
    selected_vehicle_ids: List[str] = Field(..., min_length=1)
    selected_driver_ids: List[str] = Field(..., min_length=1)
    plan_date: Optional[date] = None
    objective: Literal["DISTANCE", "TIME", "BALANCED"] = "BALANCED"
    capacity_enabled: bool = True
    work_window_start: ClockTime = "08:00"
    work_window_end: ClockTime = "18:00"
    service_time_minutes: int = Field(default=10, gt=0)
    time_window_strictness: Literal["HARD", "SOFT"] = "SOFT"
    penalty_factor: int = Field(default=3, ge=1, le=20)
    max_routes: Optional[int] = Field(default=None, gt=0)
    balance_visits: bool = False
    max_distance_km: Optional[float] = Field(default=None, gt=0)
    max_travel_time_minutes: Optional[int] = Field(default=None, gt=0)
    traffic_factor: Optional[int] = Field(default=None, ge=0, le=100)
    route_end_mode: Literal["DRIVER_ORIGIN", "SPECIFIC_DEPOT", "OPEN_END"] = "DRIVER_ORIGIN"
    end_depot_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    end_depot_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    minimize_vehicles: bool = False
    flexible_time_windows: bool = False
    assignment_strategy: Literal["BALANCED", "SKILLS_FIRST", "AVAILABILITY", "WORKLOAD", "FLEET_MATCH"] = "BALANCED"

    @field_validator("depot_latitude", "depot_longitude")
    @classmethod
    def _non_zero(cls, value: float) -> float:
        if value == 0:
            raise ValueError("Coordinate cannot be 0")
        return value

    @model_validator(mode="after")
    def _check_window(self) -> "ConfigurationCreate":
        if time_to_minutes(self.work_window_end) <= time_to_minutes(self.work_window_start):
            raise ValueError("Work window end time must be after start time")
        if (self.end_depot_latitude is None) != (self.end_depot_longitude is None):
            raise ValueError("end_depot_latitude and end_depot_longitude must be provided together")
        return self

    def to_configuration(self, company_id: str) -> OptimizationConfiguration:
        return OptimizationConfiguration(id=str(uuid.uuid4()), company_id=company_id, **self.model_dump())


class JobCreate(BaseModel):
    configuration_id: str
    vehicle_ids: List[str] = Field(default_factory=list)
    driver_ids: List[str] = Field(default_factory=list)
    timeout_ms: Optional[int] = Field(default=None, ge=1_000, le=3_600_000)


class PlanValidationConfigModel(BaseModel):
    require_all_drivers_assigned: bool = True
    require_minimum_assignment_quality: int = Field(default=50, ge=0, le=100)
    require_minimum_time_window_compliance: int = Field(default=80, ge=0, le=100)
    allow_unassigned_orders_override: bool = False
    check_license_expiry: bool = True
    license_expiry_warning_days: int = Field(default=30, ge=0, le=365)
    check_skill_expiry: bool = True
    skill_expiry_warning_days: int = Field(default=30, ge=0, le=365)

    def to_config(self) -> PlanValidationConfig:
        return PlanValidationConfig(**self.model_dump())


class ConfirmRequest(BaseModel):
    override_warnings: bool = False
    confirmation_note: Optional[str] = Field(default=None, max_length=1000)


class ReassignOrderModel(BaseModel):
    order_id: str
    source_route_id: Optional[str] = None


class ReassignRequest(BaseModel):
    orders: List[ReassignOrderModel] = Field(..., min_length=1)
    target_vehicle_id: str = Field(..., min_length=1)
