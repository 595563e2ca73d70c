"""Optimization configuration endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from ...persistence.store import PlanningStore
from ...schemas.optimization import ConfigurationCreate
from ..deps import TenantContext, get_tenant, http_error, store_dependency

router = APIRouter(prefix="/optimization/configurations", tags=["optimization"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_configuration(
    payload: ConfigurationCreate,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    known_vehicles = {vehicle.id for vehicle in store.list_vehicles(tenant.company_id, payload.selected_vehicle_ids)}
    missing = [vehicle_id for vehicle_id in payload.selected_vehicle_ids if vehicle_id not in known_vehicles]
    if missing:
        raise http_error(status.HTTP_400_BAD_REQUEST, "Unknown vehicles selected", vehicle_ids=missing)
    known_drivers = {driver.id for driver in store.list_drivers(tenant.company_id, payload.selected_driver_ids)}
    missing = [driver_id for driver_id in payload.selected_driver_ids if driver_id not in known_drivers]
    if missing:
        raise http_error(status.HTTP_400_BAD_REQUEST, "Unknown drivers selected", driver_ids=missing)

    configuration = store.add_configuration(payload.to_configuration(tenant.company_id))
    return {"data": asdict(configuration)}


@router.get("", status_code=status.HTTP_200_OK)
def list_configurations(
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    configurations = store.list_configurations(tenant.company_id)
    return {"data": [asdict(item) for item in configurations], "meta": {"total": len(configurations)}}


@router.get("/{configuration_id}", status_code=status.HTTP_200_OK)
def get_configuration(
    configuration_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    configuration = store.get_configuration(tenant.company_id, configuration_id)
    if configuration is None:
        raise http_error(status.HTTP_404_NOT_FOUND, "Configuration not found")
    return {"data": asdict(configuration)}
