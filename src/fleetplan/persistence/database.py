"""Mirror of optimization jobs and plan metrics to Supabase."""

from __future__ import annotations

import logging
from typing import Any

from ..db.supabase import get_supabase_client
from ..models.domain import OptimizationJob


def _serialize_result(result: Any) -> Any:
    if result is None:
        return None
    to_dict = getattr(result, "to_dict", None)
    return to_dict() if callable(to_dict) else result


def job_to_record(job: OptimizationJob) -> dict[str, Any]:
    return {
        "id": job.id,
        "company_id": job.company_id,
        "configuration_id": job.configuration_id,
        "status": job.status,
        "progress": job.progress,
        "input_hash": job.input_hash,
        "timeout_ms": job.timeout_ms,
        "error": job.error,
        "result": _serialize_result(job.result),
        "created_at": job.created_at.isoformat(),
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "cancelled_at": job.cancelled_at.isoformat() if job.cancelled_at else None,
    }


def save_job_to_database(job: OptimizationJob) -> bool:
    """Upsert the job row; returns False when Supabase is not configured or the write fails."""
    supabase = get_supabase_client()
    if not supabase:
        return False
    try:
        supabase.table("optimization_jobs").upsert(job_to_record(job)).execute()
        return True
    except Exception as e:
        logging.warning(f"Failed to mirror optimization job {job.id}: {e}")
        return False


def save_plan_metrics_to_database(metrics: dict[str, Any]) -> bool:
    supabase = get_supabase_client()
    if not supabase:
        return False
    record = dict(metrics)
    record["created_at"] = record["created_at"].isoformat()
    try:
        supabase.table("plan_metrics").insert(record).execute()
        return True
    except Exception as e:
        logging.warning(f"Failed to mirror plan metrics for job {metrics.get('job_id')}: {e}")
        return False
