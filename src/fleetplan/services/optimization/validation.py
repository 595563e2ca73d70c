"""Pre-confirmation checks for optimization results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from ...config import settings
from ...models.domain import Driver
from .models import OptimizationResult

SEVERITY_ERROR = "ERROR"
SEVERITY_WARNING = "WARNING"
SEVERITY_INFO = "INFO"


@dataclass(slots=True)
class ValidationIssue:
    severity: str
    category: str
    message: str
    route_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    driver_id: Optional[str] = None
    order_id: Optional[str] = None
    resolution: Optional[str] = None


@dataclass(slots=True)
class ValidationSummary:
    total_routes: int = 0
    routes_with_drivers: int = 0
    routes_without_drivers: int = 0
    unassigned_orders: int = 0
    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0


@dataclass(slots=True)
class ValidationMetrics:
    driver_assignment_coverage: float = 0.0
    time_window_compliance: float = 0.0
    average_assignment_quality: float = 0.0


@dataclass(slots=True)
class PlanValidationConfig:
    require_all_drivers_assigned: bool = True
    require_minimum_assignment_quality: int = field(default_factory=lambda: settings.validation_min_assignment_quality)
    require_minimum_time_window_compliance: int = field(
        default_factory=lambda: settings.validation_min_time_window_compliance
    )
    allow_unassigned_orders_override: bool = False
    check_license_expiry: bool = True
    license_expiry_warning_days: int = field(default_factory=lambda: settings.license_expiry_warning_days)
    check_skill_expiry: bool = True
    skill_expiry_warning_days: int = field(default_factory=lambda: settings.skill_expiry_warning_days)


@dataclass(slots=True)
class PlanValidationResult:
    is_valid: bool
    can_confirm: bool
    issues: List[ValidationIssue]
    summary: ValidationSummary
    metrics: ValidationMetrics


def validate_plan_for_confirmation(
    result: OptimizationResult,
    drivers: Iterable[Driver] = (),
    config: PlanValidationConfig | None = None,
    *,
    today: date | None = None,
) -> PlanValidationResult:
    """Collect blocking errors, warnings and notes for a computed plan.

    The plan can be confirmed only when no ERROR issue is present; time-window
    compliance is compared in percent on both sides.
    """
    config = config or PlanValidationConfig()
    today = today or date.today()
    issues: List[ValidationIssue] = []
    routes = result.routes
    unassigned = result.unassigned_orders

    without_driver = [route for route in routes if not route.driver_id]
    summary = ValidationSummary(
        total_routes=len(routes),
        routes_with_drivers=len(routes) - len(without_driver),
        routes_without_drivers=len(without_driver),
        unassigned_orders=len(unassigned),
    )

    if config.require_all_drivers_assigned:
        for route in without_driver:
            issues.append(
                ValidationIssue(
                    severity=SEVERITY_ERROR,
                    category="driver_assignment",
                    message=f"Route {route.route_id} has no driver assigned",
                    route_id=route.route_id,
                    vehicle_id=route.vehicle_id,
                    resolution="Assign a driver to this route before confirming",
                )
            )

    if unassigned and not config.allow_unassigned_orders_override:
        issues.append(
            ValidationIssue(
                severity=SEVERITY_ERROR,
                category="unassigned_orders",
                message=f"{len(unassigned)} order(s) could not be assigned to any route",
                resolution="; ".join(order.reason or "Review capacity constraints" for order in unassigned),
            )
        )
    elif unassigned:
        issues.append(
            ValidationIssue(
                severity=SEVERITY_WARNING,
                category="unassigned_orders",
                message=f"{len(unassigned)} order(s) will remain unassigned",
                resolution="These orders will need to be handled separately",
            )
        )

    quality_scores: List[int] = []
    for route in routes:
        quality = route.assignment_quality
        if quality is None:
            continue
        quality_scores.append(quality.score)
        for error in quality.errors:
            issues.append(
                ValidationIssue(
                    severity=SEVERITY_ERROR,
                    category="assignment_error",
                    message=error,
                    route_id=route.route_id,
                    vehicle_id=route.vehicle_id,
                    driver_id=route.driver_id,
                    resolution="Reassign the driver or resolve the constraint issue",
                )
            )
        for warning in quality.warnings:
            issues.append(
                ValidationIssue(
                    severity=SEVERITY_WARNING,
                    category="assignment_warning",
                    message=warning,
                    route_id=route.route_id,
                    vehicle_id=route.vehicle_id,
                    driver_id=route.driver_id,
                    resolution="Consider reassigning to a more suitable driver if available",
                )
            )
        if quality.score < config.require_minimum_assignment_quality:
            issues.append(
                ValidationIssue(
                    severity=SEVERITY_WARNING,
                    category="assignment_quality",
                    message=f"Route {route.route_id} has low assignment quality score ({quality.score}/100)",
                    route_id=route.route_id,
                    vehicle_id=route.vehicle_id,
                    driver_id=route.driver_id,
                    resolution="Consider manual reassignment for better driver match",
                )
            )

    compliance = result.metrics.time_window_compliance_rate
    if compliance < config.require_minimum_time_window_compliance:
        issues.append(
            ValidationIssue(
                severity=SEVERITY_WARNING,
                category="time_window_compliance",
                message=(
                    f"Time window compliance is {compliance:.1f}%, "
                    f"below recommended {config.require_minimum_time_window_compliance}%"
                ),
                resolution="Consider adjusting time window settings or penalty factor",
            )
        )

    for route in routes:
        if route.time_window_violations > 0:
            issues.append(
                ValidationIssue(
                    severity=SEVERITY_WARNING,
                    category="time_window_violation",
                    message=f"Route {route.route_id} has {route.time_window_violations} time window violation(s)",
                    route_id=route.route_id,
                    vehicle_id=route.vehicle_id,
                    driver_id=route.driver_id,
                    resolution="Review promised times or adjust route sequence",
                )
            )

    if config.check_license_expiry or config.check_skill_expiry:
        issues.extend(_driver_document_issues(result, {driver.id: driver for driver in drivers}, config, today))

    summary.error_count = sum(1 for issue in issues if issue.severity == SEVERITY_ERROR)
    summary.warning_count = sum(1 for issue in issues if issue.severity == SEVERITY_WARNING)
    summary.info_count = sum(1 for issue in issues if issue.severity == SEVERITY_INFO)

    metrics = ValidationMetrics(
        driver_assignment_coverage=(
            summary.routes_with_drivers / summary.total_routes * 100 if summary.total_routes else 0.0
        ),
        time_window_compliance=float(compliance),
        average_assignment_quality=sum(quality_scores) / len(quality_scores) if quality_scores else 0.0,
    )
    is_valid = summary.error_count == 0
    return PlanValidationResult(
        is_valid=is_valid,
        can_confirm=is_valid,
        issues=issues,
        summary=summary,
        metrics=metrics,
    )


def _driver_document_issues(
    result: OptimizationResult,
    drivers: Dict[str, Driver],
    config: PlanValidationConfig,
    today: date,
) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for route in result.routes:
        driver = drivers.get(route.driver_id) if route.driver_id else None
        if driver is None:
            continue

        if config.check_license_expiry and driver.license_expiry is not None:
            days_left = (driver.license_expiry - today).days
            if days_left < 0:
                issues.append(
                    ValidationIssue(
                        severity=SEVERITY_ERROR,
                        category="license_expiry",
                        message=f"Driver {driver.name} has an expired license ({driver.license_expiry.isoformat()})",
                        route_id=route.route_id,
                        vehicle_id=route.vehicle_id,
                        driver_id=driver.id,
                        resolution="Assign a different driver with valid license",
                    )
                )
            elif days_left < config.license_expiry_warning_days:
                issues.append(
                    ValidationIssue(
                        severity=SEVERITY_WARNING,
                        category="license_expiry",
                        message=f"Driver {driver.name} license expires in {days_left} day(s)",
                        route_id=route.route_id,
                        vehicle_id=route.vehicle_id,
                        driver_id=driver.id,
                        resolution="Ensure license renewal before route execution",
                    )
                )

        if config.check_skill_expiry:
            for skill in driver.skills:
                if skill.expires_at is None:
                    continue
                days_left = (skill.expires_at - today).days
                if days_left < 0:
                    message = f'Driver {driver.name} skill "{skill.name}" has expired'
                elif days_left < config.skill_expiry_warning_days:
                    message = f'Driver {driver.name} skill "{skill.name}" expires in {days_left} day(s)'
                else:
                    continue
                issues.append(
                    ValidationIssue(
                        severity=SEVERITY_WARNING,
                        category="skill_expiry",
                        message=message,
                        route_id=route.route_id,
                        vehicle_id=route.vehicle_id,
                        driver_id=driver.id,
                        resolution="Renew the certification or assign a different driver",
                    )
                )
    return issues


def get_issues_by_category(issues: Iterable[ValidationIssue]) -> Dict[str, List[ValidationIssue]]:
    grouped: Dict[str, List[ValidationIssue]] = {}
    for issue in issues:
        grouped.setdefault(issue.category, []).append(issue)
    return grouped


def get_issues_by_severity(issues: Iterable[ValidationIssue]) -> Dict[str, List[ValidationIssue]]:
    grouped: Dict[str, List[ValidationIssue]] = {"errors": [], "warnings": [], "info": []}
    keys = {SEVERITY_ERROR: "errors", SEVERITY_WARNING: "warnings", SEVERITY_INFO: "info"}
    for issue in issues:
        grouped[keys[issue.severity]].append(issue)
    return grouped


def can_confirm_plan(validation: PlanValidationResult) -> bool:
    return validation.can_confirm


def get_validation_summary_text(validation: PlanValidationResult) -> str:
    summary = validation.summary
    parts = []
    if summary.routes_without_drivers > 0:
        parts.append(f"{summary.routes_without_drivers} route(s) missing driver assignment")
    if summary.unassigned_orders > 0:
        parts.append(f"{summary.unassigned_orders} unassigned order(s)")
    if summary.error_count > 0:
        parts.append(f"{summary.error_count} error(s) that must be resolved")
    if summary.warning_count > 0:
        parts.append(f"{summary.warning_count} warning(s) to review")
    if not parts:
        return "Plan is ready for confirmation"
    return ", ".join(parts)
