"""Order intake endpoints."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from ...models.domain import ORDER_STATUSES
from ...persistence.store import PlanningStore
from ...schemas.orders import OrderCreate
from ...services.orders.importer import (
    SUPPORTED_SUFFIXES,
    import_orders,
    read_tabular_file,
    suggest_column_mappings,
)
from ...services.orders.summary import pending_orders_summary
from ..deps import TenantContext, get_tenant, http_error, store_dependency, to_http_error

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    if store.find_order_by_tracking_id(tenant.company_id, payload.tracking_id):
        raise http_error(
            status.HTTP_409_CONFLICT,
            "Order with this tracking ID already exists",
            tracking_id=payload.tracking_id,
        )
    order = store.add_order(payload.to_order(tenant.company_id))
    return {"data": asdict(order)}


@router.get("", status_code=status.HTTP_200_OK)
def list_orders(
    order_status: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    if order_status is not None and order_status not in ORDER_STATUSES:
        raise http_error(status.HTTP_400_BAD_REQUEST, f"Invalid status filter: {order_status}")
    orders = store.list_orders(tenant.company_id, status=order_status)
    page = orders[offset : offset + limit]
    return {
        "data": [asdict(order) for order in page],
        "meta": {"total": len(orders), "limit": limit, "offset": offset},
    }


@router.get("/pending-summary", status_code=status.HTTP_200_OK)
def get_pending_summary(
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    return {"data": pending_orders_summary(store, tenant.company_id)}


@router.post("/import", status_code=status.HTTP_200_OK)
async def import_order_file(
    file: UploadFile = File(...),
    mappings: Optional[str] = Form(default=None, description="JSON object mapping order fields to file columns."),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    """Import orders from a CSV or XLSX file. Without explicit mappings, suggested ones are used."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required.")
    if Path(file.filename).suffix.lower() not in SUPPORTED_SUFFIXES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Only .csv and .xlsx files are supported.",
        )

    column_mapping: dict[str, str] = {}
    if mappings:
        try:
            column_mapping = json.loads(mappings)
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid mappings JSON: {exc}") from exc
        if not isinstance(column_mapping, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mappings must be a JSON object.")

    contents = await file.read()
    try:
        headers, rows = read_tabular_file(file.filename, contents)
        suggested = suggest_column_mappings(headers)
        report = import_orders(store, tenant.company_id, rows, column_mapping or suggested)
    except Exception as exc:
        raise to_http_error(exc, "import orders") from exc

    return {
        "data": {
            "total_rows": report.total_rows,
            "created": report.created_count,
            "duplicates": report.duplicates,
            "errors": [asdict(error) for error in report.errors],
            "headers": headers,
            "suggested_mappings": suggested,
        }
    }


@router.get("/{order_id}", status_code=status.HTTP_200_OK)
def get_order(
    order_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    order = store.get_order(tenant.company_id, order_id)
    if order is None:
        raise http_error(status.HTTP_404_NOT_FOUND, "Order not found")
    return {"data": asdict(order)}


@router.delete("/{order_id}", status_code=status.HTTP_200_OK)
def delete_order(
    order_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    if not store.delete_order(tenant.company_id, order_id):
        raise http_error(status.HTTP_404_NOT_FOUND, "Order not found")
    return {"success": True}
