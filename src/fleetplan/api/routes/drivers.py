"""Driver endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...persistence.store import PlanningStore
from ...schemas.fleet import DriverCreate
from ..deps import TenantContext, get_tenant, http_error, store_dependency

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_driver(
    payload: DriverCreate,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    driver = store.add_driver(payload.to_driver(tenant.company_id))
    return {"data": asdict(driver)}


@router.get("", status_code=status.HTTP_200_OK)
def list_drivers(
    active: Optional[bool] = Query(default=None),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    drivers = store.list_drivers(tenant.company_id, active=active)
    return {"data": [asdict(driver) for driver in drivers], "meta": {"total": len(drivers)}}


@router.get("/{driver_id}", status_code=status.HTTP_200_OK)
def get_driver(
    driver_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    driver = store.get_driver(tenant.company_id, driver_id)
    if driver is None:
        raise http_error(status.HTTP_404_NOT_FOUND, "Driver not found")
    return {"data": asdict(driver)}
