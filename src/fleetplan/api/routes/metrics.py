"""Plan metrics history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ...persistence.store import PlanningStore
from ...services.optimization.metrics import get_historical_metrics, get_metrics_summary_stats
from ..deps import TenantContext, get_tenant, store_dependency

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/history", status_code=status.HTTP_200_OK)
def get_metrics_history(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    return {
        "data": get_historical_metrics(store, tenant.company_id, limit=limit, offset=offset),
        "summary": get_metrics_summary_stats(store, tenant.company_id),
        "meta": {"limit": limit, "offset": offset},
    }
