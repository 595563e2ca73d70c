"""Zone endpoints."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...persistence.store import PlanningStore
from ...schemas.zones import ZoneCreate
from ...services.zoning.zones import calculate_zone_stats, day_of_week
from ..deps import TenantContext, get_tenant, store_dependency

router = APIRouter(prefix="/zones", tags=["zones"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_zone(
    payload: ZoneCreate,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    zone = store.add_zone(payload.to_zone(tenant.company_id))
    return {"data": asdict(zone)}


@router.get("", status_code=status.HTTP_200_OK)
def list_zones(
    active: Optional[bool] = Query(default=None),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    zones = store.list_zones(tenant.company_id, active=active)
    return {"data": [asdict(zone) for zone in zones], "meta": {"total": len(zones)}}


@router.get("/stats", status_code=status.HTTP_200_OK)
def get_zone_stats(
    plan_date: Optional[date] = Query(default=None, description="Day to evaluate vehicle assignments for."),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    """Pending orders and eligible vehicles per zone."""
    day = day_of_week(plan_date or date.today())
    summary = calculate_zone_stats(
        store.list_pending_orders(tenant.company_id),
        store.list_vehicles(tenant.company_id, active=True),
        store.list_zones(tenant.company_id, active=True),
        day,
    )
    return {"data": {"day": day, **asdict(summary)}}
