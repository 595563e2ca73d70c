"""Zone request schemas."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from shapely.geometry import shape

from ..models.domain import VehicleZoneAssignment, Zone
from .fleet import DayOfWeek


class VehicleZoneAssignmentModel(BaseModel):
    vehicle_id: str
    assigned_days: List[DayOfWeek] = Field(default_factory=list)
    active: bool = True


class ZoneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    geometry: Dict[str, Any] = Field(..., description="GeoJSON Polygon, MultiPolygon or Feature.")
    active_days: List[DayOfWeek] = Field(default_factory=list)
    vehicle_assignments: List[VehicleZoneAssignmentModel] = Field(default_factory=list)
    color: Optional[str] = None

    @field_validator("geometry")
    @classmethod
    def _check_geometry(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        geometry = value.get("geometry") if value.get("type") == "Feature" else value
        if not isinstance(geometry, dict) or geometry.get("type") not in ("Polygon", "MultiPolygon"):
            raise ValueError("Zone geometry must be a GeoJSON Polygon or MultiPolygon")
        try:
            polygon = shape(geometry)
        except (ValueError, TypeError, IndexError, AttributeError) as exc:
            raise ValueError(f"Invalid zone geometry: {exc}") from exc
        if polygon.is_empty:
            raise ValueError("Zone geometry is empty")
        return value

    def to_zone(self, company_id: str) -> Zone:
        return Zone(
            id=str(uuid.uuid4()),
            company_id=company_id,
            name=self.name,
            geometry=self.geometry,
            active_days=list(self.active_days),
            vehicle_assignments=[VehicleZoneAssignment(**item.model_dump()) for item in self.vehicle_assignments],
            color=self.color,
        )
