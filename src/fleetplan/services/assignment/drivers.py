"""Driver-to-route assignment scoring."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

from ...config import settings
from ...models.domain import DAYS_OF_WEEK, Driver, Vehicle

ASSIGNMENT_STRATEGIES = ("BALANCED", "SKILLS_FIRST", "AVAILABILITY", "WORKLOAD", "FLEET_MATCH")

# skills, availability, license, fleet, workload
STRATEGY_WEIGHTS: Dict[str, tuple[int, int, int, int, int]] = {
    "SKILLS_FIRST": (5, 2, 3, 1, 1),
    "AVAILABILITY": (2, 5, 3, 1, 2),
    "WORKLOAD": (2, 2, 3, 1, 5),
    "FLEET_MATCH": (2, 2, 3, 5, 1),
    "BALANCED": (1, 1, 1, 1, 1),
}


@dataclass(slots=True)
class AssignmentFactors:
    skills_match: int = 0
    availability: int = 0
    license_valid: int = 0
    fleet_match: int = 0
    workload: int = 0

    def as_tuple(self) -> tuple[int, int, int, int, int]:
        return (self.skills_match, self.availability, self.license_valid, self.fleet_match, self.workload)


@dataclass(slots=True)
class AssignmentScore:
    driver_id: str
    score: int
    factors: AssignmentFactors
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass(slots=True)
class DriverAssignment:
    vehicle_id: str
    driver_id: str
    driver_name: str
    score: AssignmentScore
    is_manual_override: bool = False


@dataclass(slots=True)
class AssignmentConfig:
    strategy: str = "BALANCED"
    require_license_valid: bool = True
    require_skills_match: bool = True
    max_days_license_near_expiry: int = 30
    balance_workload: bool = True


@dataclass(slots=True)
class RouteAssignmentRequest:
    vehicle: Vehicle
    required_skills: List[str]


@dataclass(slots=True)
class AssignmentValidation:
    is_valid: bool
    errors: List[str]
    warnings: List[str]


@dataclass(slots=True)
class AssignmentQualityMetrics:
    total_assignments: int = 0
    assignments_with_warnings: int = 0
    assignments_with_errors: int = 0
    average_score: int = 0
    skill_coverage: int = 0
    license_compliance: int = 0
    fleet_alignment: int = 0
    workload_balance: int = 0


def strategy_weights(strategy: str) -> tuple[int, int, int, int, int]:
    return STRATEGY_WEIGHTS.get(strategy, STRATEGY_WEIGHTS["BALANCED"])


def _driver_skill_ids(driver: Driver) -> set[str]:
    return {skill.skill_id for skill in driver.skills} | {skill.name for skill in driver.skills}


def _license_categories(driver: Driver) -> list[str]:
    return [category.strip() for category in (driver.license_categories or "").split(",") if category.strip()]


def _round(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def calculate_driver_score(
    driver: Driver,
    vehicle: Vehicle,
    required_skills: Sequence[str],
    assigned_drivers: Dict[str, str],
    config: AssignmentConfig | None = None,
    *,
    today: date | None = None,
) -> AssignmentScore:
    """Score one driver for one vehicle's route on five 0-100 factors."""
    config = config or AssignmentConfig()
    today = today or date.today()
    factors = AssignmentFactors()
    warnings: list[str] = []
    errors: list[str] = []

    if driver.license_expiry is None:
        errors.append("No license expiry date")
    else:
        days_left = (driver.license_expiry - today).days
        if days_left < 0:
            errors.append("License expired")
        elif days_left <= config.max_days_license_near_expiry:
            warnings.append(f"License expires in {days_left} days")
            factors.license_valid = _round(days_left / max(1, config.max_days_license_near_expiry) * 100)
        else:
            factors.license_valid = 100

    if driver.status in ("UNAVAILABLE", "ABSENT"):
        errors.append(f"Driver is {driver.status.lower()}")
    elif driver.status == "COMPLETED":
        factors.availability = 50
    elif driver.status == "AVAILABLE":
        factors.availability = 100
    else:
        warnings.append(f"Driver status is {driver.status}")
        factors.availability = 50

    primary_vehicle_fleet = vehicle.fleet_ids[0] if vehicle.fleet_ids else None
    if primary_vehicle_fleet and driver.primary_fleet_id == primary_vehicle_fleet:
        factors.fleet_match = 100
    elif any(fleet_id in driver.secondary_fleet_ids for fleet_id in vehicle.fleet_ids):
        factors.fleet_match = 75
        warnings.append("Driver from secondary fleet")
    else:
        factors.fleet_match = 25
        warnings.append("Driver from different fleet")

    if required_skills:
        owned = _driver_skill_ids(driver)
        matched = [skill for skill in required_skills if skill in owned]
        factors.skills_match = _round(len(matched) / len(required_skills) * 100)
        if factors.skills_match < 100:
            warnings.append(f"{len(matched)}/{len(required_skills)} skills matched")
        if config.require_skills_match and factors.skills_match == 0:
            errors.append("Missing required skills")
    else:
        factors.skills_match = 100

    for skill in driver.skills:
        if skill.expires_at is not None and skill.expires_at < today:
            warnings.append(f'Skill "{skill.name}" expired')
            factors.skills_match = max(0, factors.skills_match - 20)

    current_assignments = sum(1 for driver_id in assigned_drivers.values() if driver_id == driver.id)
    factors.workload = max(0, 100 - current_assignments * 30) if config.balance_workload else 100

    categories = _license_categories(driver)
    if vehicle.license_required and categories and vehicle.license_required not in categories:
        warnings.append(f"Missing license category: {vehicle.license_required}")
        factors.license_valid = max(0, factors.license_valid - 50)

    weights = strategy_weights(config.strategy)
    weighted = sum(value * weight for value, weight in zip(factors.as_tuple(), weights))
    return AssignmentScore(
        driver_id=driver.id,
        score=_round(weighted / sum(weights)),
        factors=factors,
        warnings=warnings,
        errors=errors,
    )


def _weighted(score: AssignmentScore, strategy: str) -> int:
    return sum(value * weight for value, weight in zip(score.factors.as_tuple(), strategy_weights(strategy)))


def assign_drivers_to_routes(
    requests: Sequence[RouteAssignmentRequest],
    candidates: Sequence[Driver],
    config: AssignmentConfig | None = None,
    *,
    assigned_drivers: Optional[Dict[str, str]] = None,
    today: date | None = None,
) -> Dict[str, DriverAssignment]:
    """Pick the best driver per vehicle; drivers with errors are used only when nobody qualifies."""
    config = config or AssignmentConfig()
    assigned = assigned_drivers if assigned_drivers is not None else {}
    results: Dict[str, DriverAssignment] = {}
    drivers = [driver for driver in candidates if driver.active]
    if not drivers:
        return results

    by_id = {driver.id: driver for driver in drivers}
    for request in requests:
        scores = [
            calculate_driver_score(driver, request.vehicle, request.required_skills, assigned, config, today=today)
            for driver in drivers
        ]
        valid = [score for score in scores if not score.errors]
        if valid:
            best = max(valid, key=lambda score: _weighted(score, config.strategy))
        else:
            best = max(scores, key=lambda score: score.score)
        driver = by_id[best.driver_id]
        results[request.vehicle.id] = DriverAssignment(
            vehicle_id=request.vehicle.id,
            driver_id=driver.id,
            driver_name=driver.name,
            score=best,
        )
        if valid:
            assigned[request.vehicle.id] = driver.id
    return results


def validate_driver_assignment(
    driver: Optional[Driver],
    vehicle: Optional[Vehicle],
    required_skills: Iterable[str],
    *,
    today: date | None = None,
) -> AssignmentValidation:
    if driver is None:
        return AssignmentValidation(is_valid=False, errors=["Driver not found"], warnings=[])
    if vehicle is None:
        return AssignmentValidation(is_valid=False, errors=["Vehicle not found"], warnings=[])

    today = today or date.today()
    errors: list[str] = []
    warnings: list[str] = []

    if driver.license_expiry is None:
        warnings.append("Driver license expiry date not set")
    elif driver.license_expiry < today:
        errors.append("Driver's license has expired")
    else:
        days_left = (driver.license_expiry - today).days
        if days_left <= settings.license_expiry_warning_days:
            warnings.append(f"License expires in {days_left} days")

    categories = _license_categories(driver)
    if vehicle.license_required and categories and vehicle.license_required not in categories:
        errors.append(f"Driver missing required license category: {vehicle.license_required}")

    owned = _driver_skill_ids(driver)
    missing = [skill for skill in required_skills if skill not in owned]
    if missing:
        errors.append(f"Driver missing required skills: {', '.join(missing)}")

    for skill in driver.skills:
        if skill.expires_at is not None and skill.expires_at < today:
            warnings.append(f'Skill "{skill.name}" has expired')

    if driver.status in ("UNAVAILABLE", "ABSENT"):
        errors.append(f"Driver is {driver.status.lower()}")
    elif driver.status not in ("AVAILABLE", "COMPLETED"):
        warnings.append(f"Driver status is {driver.status}")

    return AssignmentValidation(is_valid=not errors, errors=errors, warnings=warnings)


def get_available_drivers_at_time(drivers: Sequence[Driver], moment: datetime) -> List[str]:
    """Ids of AVAILABLE drivers whose weekly schedule covers ``moment``."""
    day = DAYS_OF_WEEK[moment.weekday()]
    clock = moment.strftime("%H:%M")
    available = []
    for driver in drivers:
        if not driver.active or driver.status != "AVAILABLE":
            continue
        slot = next((entry for entry in driver.availability if entry.day_of_week == day), None)
        if slot is None or slot.is_day_off:
            continue
        if slot.start_time[:5] <= clock <= slot.end_time[:5]:
            available.append(driver.id)
    return available


def get_assignment_quality_metrics(assignments: Sequence[DriverAssignment]) -> AssignmentQualityMetrics:
    total = len(assignments)
    if total == 0:
        return AssignmentQualityMetrics()

    def average(values: Iterable[float]) -> int:
        return _round(sum(values) / total)

    return AssignmentQualityMetrics(
        total_assignments=total,
        assignments_with_warnings=sum(1 for a in assignments if a.score.warnings),
        assignments_with_errors=sum(1 for a in assignments if a.score.errors),
        average_score=average(a.score.score for a in assignments),
        skill_coverage=average(a.score.factors.skills_match for a in assignments),
        license_compliance=average(a.score.factors.license_valid for a in assignments),
        fleet_alignment=average(a.score.factors.fleet_match for a in assignments),
        workload_balance=average(a.score.factors.workload for a in assignments),
    )
