"""Plan confirmation: validation gate, metrics recording, audit trail and file outputs."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

from ...config import settings
from ...errors import ConflictError, InvalidStateError, NotFoundError
from ...models.domain import AuditEntry, OptimizationConfiguration, OptimizationJob, utc_now
from ...persistence.database import save_plan_metrics_to_database
from ...persistence.filesystem import FileStorage
from ...persistence.store import PlanningStore
from ..export.plan_excel import export_plan_workbook, plan_to_csv
from .metrics import calculate_comparison_metrics, calculate_plan_metrics, save_plan_metrics
from .models import OptimizationResult
from .validation import (
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    PlanValidationConfig,
    PlanValidationResult,
    can_confirm_plan,
    validate_plan_for_confirmation,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConfirmationOutcome:
    configuration: OptimizationConfiguration
    validation: PlanValidationResult
    plan_metrics: Dict[str, Any]
    output_directory: Optional[Path] = None


def load_completed_job(store: PlanningStore, company_id: str, job_id: str) -> tuple[OptimizationJob, OptimizationResult]:
    job = store.get_job(company_id, job_id)
    if job is None:
        raise NotFoundError("Optimization job not found")
    if job.status != "COMPLETED":
        raise InvalidStateError(f"Operation is only available for completed optimization jobs (status: {job.status})")
    if job.result is None:
        raise InvalidStateError("No optimization result available")
    return job, job.result


def validate_job(
    store: PlanningStore,
    company_id: str,
    job_id: str,
    config: PlanValidationConfig | None = None,
    *,
    today: date | None = None,
) -> tuple[OptimizationJob, PlanValidationResult]:
    job, result = load_completed_job(store, company_id, job_id)
    driver_ids = [route.driver_id for route in result.routes if route.driver_id]
    drivers = store.list_drivers(company_id, driver_ids)
    return job, validate_plan_for_confirmation(result, drivers, config, today=today)


def confirm_plan(
    store: PlanningStore,
    company_id: str,
    job_id: str,
    *,
    user_id: str | None = None,
    override_warnings: bool = False,
    confirmation_note: str | None = None,
    storage: FileStorage | None = None,
    today: date | None = None,
) -> ConfirmationOutcome:
    """Confirm a completed plan.

    Blocking errors raise ``InvalidStateError``; warnings without override and
    an already confirmed configuration raise ``ConflictError``.
    """
    with store.lock:
        job, validation = validate_job(store, company_id, job_id, today=today)
        configuration = store.get_configuration(company_id, job.configuration_id)
        if configuration is None:
            raise NotFoundError("Configuration not found")
        if configuration.status == "CONFIRMED":
            raise ConflictError(
                "Plan has already been confirmed",
                confirmed_at=configuration.confirmed_at.isoformat() if configuration.confirmed_at else None,
            )

        if not can_confirm_plan(validation):
            errors = [asdict(issue) for issue in validation.issues if issue.severity == SEVERITY_ERROR]
            raise InvalidStateError(
                f"{validation.summary.error_count} error(s) must be resolved before confirmation",
                errors=errors,
            )

        warnings = [asdict(issue) for issue in validation.issues if issue.severity == SEVERITY_WARNING]
        if warnings and not override_warnings:
            raise ConflictError(
                "Plan has warnings that should be reviewed",
                requires_override=True,
                warnings=warnings,
                summary_text=(
                    f"Plan has {validation.summary.warning_count} warning(s). "
                    "Set override_warnings=true to confirm anyway."
                ),
            )

        previous_status = configuration.status
        result: OptimizationResult = job.result
        configuration.status = "CONFIRMED"
        configuration.confirmed_at = utc_now()
        configuration.confirmed_by = user_id
        for route in result.routes:
            for stop in route.stops:
                order = store.get_order(company_id, stop.order_id)
                if order is not None and order.status == "PENDING":
                    order.status = "ASSIGNED"

    metrics = calculate_plan_metrics(company_id, job.id, configuration.id, result, validation)
    comparison = calculate_comparison_metrics(store, metrics)
    record = save_plan_metrics(store, metrics, comparison)
    save_plan_metrics_to_database(record)

    store.add_audit_entry(
        AuditEntry(
            company_id=company_id,
            entity_type="optimization_configuration",
            entity_id=configuration.id,
            action="CONFIRM_PLAN",
            user_id=user_id,
            changes={
                "job_id": job.id,
                "previous_status": previous_status,
                "new_status": "CONFIRMED",
                "validation_summary": asdict(validation.summary),
                "override_warnings": override_warnings,
                "confirmation_note": confirmation_note,
                "comparison": asdict(comparison),
            },
        )
    )

    output_directory = None
    if settings.persist_confirmed_plans:
        storage = storage or FileStorage()
        output_directory = storage.save_plan_outputs(
            job.id,
            {"job_id": job.id, "configuration_id": configuration.id, "plan_metrics": record, "result": result.to_dict()},
            plan_to_csv(result),
            export_plan_workbook(result),
        )
        logger.info(f"Confirmed plan outputs written to {output_directory}")

    return ConfirmationOutcome(
        configuration=configuration,
        validation=validation,
        plan_metrics=record,
        output_directory=output_directory,
    )

