"""Vehicle endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...persistence.store import PlanningStore
from ...schemas.fleet import VehicleCreate
from ..deps import TenantContext, get_tenant, http_error, store_dependency

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_vehicle(
    payload: VehicleCreate,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    vehicle = store.add_vehicle(payload.to_vehicle(tenant.company_id))
    return {"data": asdict(vehicle)}


@router.get("", status_code=status.HTTP_200_OK)
def list_vehicles(
    active: Optional[bool] = Query(default=None),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    vehicles = store.list_vehicles(tenant.company_id, active=active)
    return {"data": [asdict(vehicle) for vehicle in vehicles], "meta": {"total": len(vehicles)}}


@router.get("/{vehicle_id}", status_code=status.HTTP_200_OK)
def get_vehicle(
    vehicle_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    vehicle = store.get_vehicle(tenant.company_id, vehicle_id)
    if vehicle is None:
        raise http_error(status.HTTP_404_NOT_FOUND, "Vehicle not found")
    return {"data": asdict(vehicle)}
