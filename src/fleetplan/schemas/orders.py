"""Order request schemas."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator

from ..models.domain import Order
from ..services.routing.time_windows import is_valid_time, minutes_to_time, time_to_minutes


def validate_hhmm(value: str) -> str:
    if not is_valid_time(value):
        raise ValueError("Time must be in HH:MM format (24-hour)")
    return minutes_to_time(time_to_minutes(value))


ClockTime = Annotated[str, AfterValidator(validate_hhmm)]


class OrderCreate(BaseModel):
    tracking_id: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    customer_name: Optional[str] = None
    order_type: Literal["NEW", "RESCHEDULED", "URGENT"] = "NEW"
    weight_kg: float = Field(default=0.0, ge=0)
    volume_m3: float = Field(default=0.0, ge=0)
    order_value: float = Field(default=0.0, ge=0)
    units: int = Field(default=1, ge=1)
    time_window_start: Optional[ClockTime] = None
    time_window_end: Optional[ClockTime] = None
    strictness: Optional[Literal["HARD", "SOFT"]] = Field(
        default=None,
        description="Overrides the configuration's time-window strictness for this order.",
    )
    required_skills: List[str] = Field(default_factory=list)
    service_time_minutes: Optional[int] = Field(default=None, ge=0)
    priority: Optional[int] = Field(default=None, ge=0, le=100)
    promised_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_location_and_window(self) -> "OrderCreate":
        if self.latitude == 0 and self.longitude == 0:
            raise ValueError("Coordinates cannot be 0,0")
        if self.time_window_start and self.time_window_end:
            if time_to_minutes(self.time_window_end) <= time_to_minutes(self.time_window_start):
                raise ValueError("time_window_end must be after time_window_start")
        return self

    def to_order(self, company_id: str) -> Order:
        return Order(id=str(uuid.uuid4()), company_id=company_id, **self.model_dump())
