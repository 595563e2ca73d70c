"""Plan metrics recorded at confirmation time and their history."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ...models.domain import utc_now
from ...persistence.store import PlanningStore
from .models import OptimizationResult
from .validation import PlanValidationResult


@dataclass(slots=True)
class PlanMetrics:
    company_id: str
    job_id: str
    configuration_id: str
    total_routes: int
    total_stops: int
    total_distance: float
    total_duration: int
    average_utilization_rate: int
    max_utilization_rate: int
    min_utilization_rate: int
    time_window_compliance_rate: int
    total_time_window_violations: int
    driver_assignment_coverage: int
    average_assignment_quality: int
    assignments_with_warnings: int
    assignments_with_errors: int
    skill_coverage: int
    license_compliance: int
    fleet_alignment: int
    workload_balance: int
    unassigned_orders: int
    objective: Optional[str]
    processing_time_ms: int


@dataclass(slots=True)
class MetricsComparison:
    compared_to_job_id: Optional[str] = None
    distance_change_percent: Optional[int] = None
    duration_change_percent: Optional[int] = None
    compliance_change_percent: Optional[int] = None


def calculate_plan_metrics(
    company_id: str,
    job_id: str,
    configuration_id: str,
    result: OptimizationResult,
    validation: PlanValidationResult,
) -> PlanMetrics:
    routes = result.routes
    utilization = [route.utilization_percentage for route in routes if route.utilization_percentage > 0]
    qualities = [route.assignment_quality for route in routes if route.assignment_quality is not None]
    assignment = result.assignment_metrics
    return PlanMetrics(
        company_id=company_id,
        job_id=job_id,
        configuration_id=configuration_id,
        total_routes=len(routes),
        total_stops=sum(len(route.stops) for route in routes),
        total_distance=result.metrics.total_distance,
        total_duration=result.metrics.total_duration,
        average_utilization_rate=round(sum(utilization) / len(utilization)) if utilization else 0,
        max_utilization_rate=max(utilization, default=0),
        min_utilization_rate=min(utilization, default=0),
        time_window_compliance_rate=result.metrics.time_window_compliance_rate,
        total_time_window_violations=sum(route.time_window_violations for route in routes),
        driver_assignment_coverage=round(validation.metrics.driver_assignment_coverage),
        average_assignment_quality=round(validation.metrics.average_assignment_quality),
        assignments_with_warnings=sum(1 for quality in qualities if quality.warnings),
        assignments_with_errors=sum(1 for quality in qualities if quality.errors),
        skill_coverage=assignment.skill_coverage if assignment.total_assignments else 100,
        license_compliance=assignment.license_compliance if assignment.total_assignments else 100,
        fleet_alignment=assignment.fleet_alignment if assignment.total_assignments else 100,
        workload_balance=assignment.workload_balance if assignment.total_assignments else 100,
        unassigned_orders=len(result.unassigned_orders),
        objective=result.summary.objective,
        processing_time_ms=result.metrics.computing_time_ms,
    )


def calculate_percent_change(old_value: float, new_value: float) -> int:
    if old_value == 0:
        return 0 if new_value == 0 else 100
    return round((new_value - old_value) / old_value * 100)


def find_previous_job_for_comparison(
    store: PlanningStore,
    company_id: str,
    job_id: str,
    configuration_id: str | None = None,
) -> Optional[str]:
    """Most recent completed job of the same configuration created before ``job_id``."""
    current = store.get_job(company_id, job_id)
    if current is None:
        return None
    for job in store.list_jobs(company_id, status="COMPLETED"):
        if job.id == job_id or job.created_at >= current.created_at:
            continue
        if configuration_id and job.configuration_id != configuration_id:
            continue
        return job.id
    return None


def calculate_comparison_metrics(store: PlanningStore, metrics: PlanMetrics) -> MetricsComparison:
    previous_id = find_previous_job_for_comparison(store, metrics.company_id, metrics.job_id, metrics.configuration_id)
    if previous_id is None:
        return MetricsComparison()
    previous = get_plan_metrics(store, metrics.company_id, previous_id)
    if previous is None:
        return MetricsComparison(compared_to_job_id=previous_id)
    return MetricsComparison(
        compared_to_job_id=previous_id,
        distance_change_percent=calculate_percent_change(previous["total_distance"], metrics.total_distance),
        duration_change_percent=calculate_percent_change(previous["total_duration"], metrics.total_duration),
        compliance_change_percent=calculate_percent_change(
            previous["time_window_compliance_rate"], metrics.time_window_compliance_rate
        ),
    )


def save_plan_metrics(
    store: PlanningStore,
    metrics: PlanMetrics,
    comparison: MetricsComparison | None = None,
    *,
    created_at: datetime | None = None,
) -> Dict[str, Any]:
    record = asdict(metrics)
    record.update(asdict(comparison or MetricsComparison()))
    record["created_at"] = created_at or utc_now()
    return store.add_plan_metrics(record)


def get_plan_metrics(store: PlanningStore, company_id: str, job_id: str) -> Optional[Dict[str, Any]]:
    return next((row for row in store.list_plan_metrics(company_id) if row["job_id"] == job_id), None)


HISTORY_FIELDS = (
    "job_id",
    "created_at",
    "total_routes",
    "total_stops",
    "total_distance",
    "total_duration",
    "average_utilization_rate",
    "time_window_compliance_rate",
)


def get_historical_metrics(store: PlanningStore, company_id: str, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
    rows = store.list_plan_metrics(company_id)[offset : offset + limit]
    return [{name: row[name] for name in HISTORY_FIELDS} for row in rows]


def get_metrics_summary_stats(store: PlanningStore, company_id: str) -> Dict[str, int]:
    rows = store.list_plan_metrics(company_id)
    if not rows:
        return {
            "total_sessions": 0,
            "average_distance": 0,
            "average_duration": 0,
            "average_compliance": 0,
            "average_utilization": 0,
        }
    count = len(rows)
    return {
        "total_sessions": count,
        "average_distance": round(sum(row["total_distance"] for row in rows) / count),
        "average_duration": round(sum(row["total_duration"] for row in rows) / count),
        "average_compliance": round(sum(row["time_window_compliance_rate"] for row in rows) / count),
        "average_utilization": round(sum(row["average_utilization_rate"] for row in rows) / count),
    }
