"""Vehicle and driver request schemas."""

from __future__ import annotations

import uuid
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.domain import Driver, DriverAvailability, DriverSkill, Vehicle
from .orders import ClockTime

DayOfWeek = Literal["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


class VehicleCreate(BaseModel):
    plate: str = Field(..., min_length=1, max_length=50)
    name: Optional[str] = None
    weight_capacity_kg: float = Field(default=10000.0, gt=0)
    volume_capacity_m3: float = Field(default=100.0, gt=0)
    max_value_capacity: Optional[float] = Field(default=None, gt=0)
    max_units_capacity: Optional[int] = Field(default=None, ge=1)
    max_orders: Optional[int] = Field(default=None, ge=1)
    skills: List[str] = Field(default_factory=list)
    fleet_ids: List[str] = Field(default_factory=list)
    license_required: Optional[str] = None
    origin_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    origin_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    assigned_driver_id: Optional[str] = None
    status: Literal["AVAILABLE", "IN_MAINTENANCE", "ASSIGNED", "INACTIVE"] = "AVAILABLE"

    @model_validator(mode="after")
    def _origin_pair(self) -> "VehicleCreate":
        if (self.origin_latitude is None) != (self.origin_longitude is None):
            raise ValueError("origin_latitude and origin_longitude must be provided together")
        return self

    def to_vehicle(self, company_id: str) -> Vehicle:
        return Vehicle(id=str(uuid.uuid4()), company_id=company_id, **self.model_dump())


class DriverSkillModel(BaseModel):
    skill_id: str
    name: str
    expires_at: Optional[date] = None


class DriverAvailabilityModel(BaseModel):
    day_of_week: DayOfWeek
    start_time: ClockTime = "08:00"
    end_time: ClockTime = "18:00"
    is_day_off: bool = False


class DriverCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    status: Literal["AVAILABLE", "ASSIGNED", "IN_ROUTE", "ON_PAUSE", "COMPLETED", "UNAVAILABLE", "ABSENT"] = "AVAILABLE"
    license_expiry: Optional[date] = None
    license_categories: Optional[str] = Field(default=None, description="Comma-separated license categories.")
    primary_fleet_id: Optional[str] = None
    secondary_fleet_ids: List[str] = Field(default_factory=list)
    skills: List[DriverSkillModel] = Field(default_factory=list)
    availability: List[DriverAvailabilityModel] = Field(default_factory=list)

    def to_driver(self, company_id: str) -> Driver:
        data = self.model_dump(exclude={"skills", "availability"})
        return Driver(
            id=str(uuid.uuid4()),
            company_id=company_id,
            skills=[DriverSkill(**skill.model_dump()) for skill in self.skills],
            availability=[DriverAvailability(**slot.model_dump()) for slot in self.availability],
            **data,
        )
