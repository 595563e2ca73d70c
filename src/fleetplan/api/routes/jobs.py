"""Optimization job lifecycle endpoints: create, poll, cancel, validate, confirm, reassign, export."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import ValidationError

from ...errors import ConflictError, NotFoundError
from ...models.domain import JOB_STATUSES, AuditEntry, OptimizationJob
from ...persistence.database import save_job_to_database
from ...persistence.store import PlanningStore
from ...schemas.optimization import ConfirmRequest, JobCreate, PlanValidationConfigModel, ReassignRequest
from ...services.export.plan_excel import export_plan_workbook, plan_to_csv
from ...services.optimization.assembly import orders_index
from ...services.optimization.confirmation import confirm_plan, load_completed_job, validate_job
from ...services.optimization.job_queue import ACTIVE_STATUSES, JobQueue
from ...services.optimization.metrics import calculate_plan_metrics, get_plan_metrics
from ...services.optimization.reassignment import OrderMove, reassign_orders
from ...services.optimization.runner import OptimizationInput, create_and_execute_job
from ...services.optimization.validation import (
    PlanValidationConfig,
    get_issues_by_category,
    get_issues_by_severity,
    get_validation_summary_text,
)
from ..deps import (
    TenantContext,
    get_tenant,
    http_error,
    job_queue_dependency,
    store_dependency,
    to_http_error,
)

router = APIRouter(prefix="/optimization/jobs", tags=["optimization"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _job_payload(job: OptimizationJob, *, include_result: bool = False) -> dict[str, Any]:
    payload = {
        "id": job.id,
        "configuration_id": job.configuration_id,
        "status": job.status,
        "progress": job.progress,
        "error": job.error,
        "timeout_ms": job.timeout_ms,
        "input_hash": job.input_hash,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "cancelled_at": job.cancelled_at,
        "has_result": job.result is not None,
    }
    if include_result:
        payload["result"] = job.result.to_dict() if job.result is not None else None
    return payload


def _get_job(store: PlanningStore, company_id: str, job_id: str) -> OptimizationJob:
    job = store.get_job(company_id, job_id)
    if job is None:
        raise http_error(status.HTTP_404_NOT_FOUND, "Optimization job not found")
    return job


def _parse_validation_config(raw: Optional[str]) -> Optional[PlanValidationConfig]:
    if not raw:
        return None
    try:
        return PlanValidationConfigModel.model_validate(json.loads(raw)).to_config()
    except (json.JSONDecodeError, ValidationError) as exc:
        raise http_error(status.HTTP_400_BAD_REQUEST, f"Invalid validation config: {exc}") from exc


@router.post("", status_code=status.HTTP_201_CREATED)
def create_job(
    payload: JobCreate,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
    queue: JobQueue = Depends(job_queue_dependency),
) -> dict:
    try:
        submission = create_and_execute_job(
            OptimizationInput(
                configuration_id=payload.configuration_id,
                company_id=tenant.company_id,
                vehicle_ids=list(payload.vehicle_ids),
                driver_ids=list(payload.driver_ids),
            ),
            payload.timeout_ms,
            store=store,
            queue=queue,
        )
    except Exception as exc:
        raise to_http_error(exc, "create optimization job") from exc

    message = "Using cached optimization result" if submission.cached else "Optimization job created"
    return {"data": {"id": submission.job.id, "cached": submission.cached, "message": message}}


@router.get("", status_code=status.HTTP_200_OK)
def list_jobs(
    job_status: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    if job_status is not None and job_status not in JOB_STATUSES:
        raise http_error(status.HTTP_400_BAD_REQUEST, f"Invalid status filter: {job_status}")
    jobs = store.list_jobs(tenant.company_id, status=job_status)
    return {
        "data": [_job_payload(job) for job in jobs[offset : offset + limit]],
        "meta": {"total": len(jobs), "limit": limit, "offset": offset},
    }


@router.get("/{job_id}", status_code=status.HTTP_200_OK)
def get_job(
    job_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    return {"data": _job_payload(_get_job(store, tenant.company_id, job_id), include_result=True)}


@router.delete("/{job_id}", status_code=status.HTTP_200_OK)
def cancel_job(
    job_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
    queue: JobQueue = Depends(job_queue_dependency),
) -> dict:
    job = _get_job(store, tenant.company_id, job_id)
    if job.status not in ACTIVE_STATUSES:
        raise http_error(status.HTTP_400_BAD_REQUEST, f"Cannot cancel job with status: {job.status}")
    if not queue.cancel_job(job_id):
        raise http_error(status.HTTP_400_BAD_REQUEST, f"Cannot cancel job with status: {job.status}")
    return {"data": {"id": job.id, "status": job.status, "message": "Optimization job cancelled"}}


@router.get("/{job_id}/validate", status_code=status.HTTP_200_OK)
def validate_plan(
    job_id: str,
    config: Optional[str] = Query(default=None, description="JSON-encoded validation options."),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    """Validate a completed plan before confirmation."""
    validation_config = _parse_validation_config(config)
    try:
        job, validation = validate_job(store, tenant.company_id, job_id, validation_config)
    except Exception as exc:
        raise to_http_error(exc, "validate plan") from exc

    configuration = store.get_configuration(tenant.company_id, job.configuration_id)
    already_confirmed = configuration is not None and configuration.status == "CONFIRMED"
    by_category = get_issues_by_category(validation.issues)
    by_severity = get_issues_by_severity(validation.issues)
    return {
        "data": {
            **asdict(validation),
            "can_confirm": validation.can_confirm and not already_confirmed,
            "already_confirmed": already_confirmed,
            "confirmed_at": configuration.confirmed_at if already_confirmed else None,
            "summary_text": get_validation_summary_text(validation),
            "issues_by_category": {key: [asdict(issue) for issue in items] for key, items in by_category.items()},
            "issues_by_severity": {key: [asdict(issue) for issue in items] for key, items in by_severity.items()},
        }
    }


@router.post("/{job_id}/confirm", status_code=status.HTTP_200_OK)
def confirm_job_plan(
    job_id: str,
    payload: Optional[ConfirmRequest] = None,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    payload = payload or ConfirmRequest()
    try:
        outcome = confirm_plan(
            store,
            tenant.company_id,
            job_id,
            user_id=tenant.user_id,
            override_warnings=payload.override_warnings,
            confirmation_note=payload.confirmation_note,
        )
    except Exception as exc:
        raise to_http_error(exc, "confirm plan") from exc

    configuration = outcome.configuration
    return {
        "data": {
            "job_id": job_id,
            "configuration_id": configuration.id,
            "status": configuration.status,
            "confirmed_at": configuration.confirmed_at,
            "confirmed_by": configuration.confirmed_by,
            "validation": asdict(outcome.validation),
            "plan_metrics": outcome.plan_metrics,
            "output_directory": str(outcome.output_directory) if outcome.output_directory else None,
        }
    }


@router.get("/{job_id}/confirm", status_code=status.HTTP_200_OK)
def get_confirmation_status(
    job_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    job = _get_job(store, tenant.company_id, job_id)
    configuration = store.get_configuration(tenant.company_id, job.configuration_id)
    if configuration is None:
        raise http_error(status.HTTP_404_NOT_FOUND, "Configuration not found")
    confirmed = configuration.status == "CONFIRMED"
    return {
        "data": {
            "job_id": job.id,
            "job_status": job.status,
            "configuration_id": configuration.id,
            "is_confirmed": confirmed,
            "confirmed_at": configuration.confirmed_at if confirmed else None,
            "confirmed_by": configuration.confirmed_by if confirmed else None,
        }
    }


@router.post("/{job_id}/reassign", status_code=status.HTTP_200_OK)
def reassign_job_orders(
    job_id: str,
    payload: ReassignRequest,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    """Move orders onto another vehicle's route and re-sequence the affected routes."""
    company_id = tenant.company_id
    try:
        job, result = load_completed_job(store, company_id, job_id)
        configuration = store.get_configuration(company_id, job.configuration_id)
        if configuration is None:
            raise NotFoundError("Configuration not found")
        if configuration.status == "CONFIRMED":
            raise ConflictError("Plan has already been confirmed and can no longer be changed")
        target_vehicle = store.get_vehicle(company_id, payload.target_vehicle_id)
        if target_vehicle is None:
            raise NotFoundError("Target vehicle not found")

        outcome = reassign_orders(
            result,
            [OrderMove(order_id=item.order_id, source_route_id=item.source_route_id) for item in payload.orders],
            target_vehicle,
            orders_index(store.list_orders(company_id)),
            {vehicle.id: vehicle for vehicle in store.list_vehicles(company_id)},
            configuration,
            store.get_capacity_profile(company_id),
        )
    except Exception as exc:
        raise to_http_error(exc, "reassign orders") from exc

    with store.lock:
        if configuration.status == "CONFIRMED":
            raise http_error(status.HTTP_409_CONFLICT, "Plan has already been confirmed and can no longer be changed")
        if job.result is not result:
            raise http_error(status.HTTP_409_CONFLICT, "Plan was changed by another request; reload and retry")
        job.result = outcome.result
    save_job_to_database(job)
    store.add_audit_entry(
        AuditEntry(
            company_id=company_id,
            entity_type="optimization_job",
            entity_id=job.id,
            action="REASSIGN_ORDERS",
            user_id=tenant.user_id,
            changes={
                "target_vehicle_id": target_vehicle.id,
                "moved_order_ids": outcome.moved_order_ids,
                "skipped_order_ids": outcome.skipped_order_ids,
            },
        )
    )
    return {
        "data": {
            "result": outcome.result.to_dict(),
            "moved_order_ids": outcome.moved_order_ids,
            "skipped_order_ids": outcome.skipped_order_ids,
            "resequenced_route_ids": outcome.resequenced_route_ids,
        }
    }


@router.get("/{job_id}/metrics", status_code=status.HTTP_200_OK)
def get_job_metrics(
    job_id: str,
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> dict:
    """Recorded plan metrics, or metrics computed from the result when the plan is not confirmed yet."""
    stored = get_plan_metrics(store, tenant.company_id, job_id)
    if stored is not None:
        return {"data": stored, "meta": {"persisted": True}}
    try:
        job, validation = validate_job(store, tenant.company_id, job_id)
    except Exception as exc:
        raise to_http_error(exc, "compute plan metrics") from exc
    metrics = calculate_plan_metrics(tenant.company_id, job.id, job.configuration_id, job.result, validation)
    return {"data": asdict(metrics), "meta": {"persisted": False}}


@router.get("/{job_id}/export")
def export_job_plan(
    job_id: str,
    file_format: Literal["xlsx", "csv"] = Query(default="xlsx", alias="format"),
    tenant: TenantContext = Depends(get_tenant),
    store: PlanningStore = Depends(store_dependency),
) -> Response:
    try:
        job, result = load_completed_job(store, tenant.company_id, job_id)
    except Exception as exc:
        raise to_http_error(exc, "export plan") from exc

    filename = f"plan_{job.id[:8]}.{file_format}"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if file_format == "csv":
        return Response(content=plan_to_csv(result), media_type="text/csv", headers=headers)
    return Response(content=export_plan_workbook(result), media_type=XLSX_MEDIA_TYPE, headers=headers)
