"""Thread-safe, tenant-scoped in-process store for planning entities."""

from __future__ import annotations

import threading
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from ..models.domain import (
    AuditEntry,
    Driver,
    OptimizationConfiguration,
    OptimizationJob,
    Order,
    Vehicle,
    Zone,
)
from ..services.routing.capacity import CapacityProfile

T = TypeVar("T")


class PlanningStore:
    """Holds every entity keyed by ``(company_id, id)``.

    Reads return the stored objects; callers mutate them only through the
    services that own their lifecycle.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._orders: Dict[tuple[str, str], Order] = {}
        self._vehicles: Dict[tuple[str, str], Vehicle] = {}
        self._drivers: Dict[tuple[str, str], Driver] = {}
        self._zones: Dict[tuple[str, str], Zone] = {}
        self._configurations: Dict[tuple[str, str], OptimizationConfiguration] = {}
        self._jobs: Dict[tuple[str, str], OptimizationJob] = {}
        self._plan_metrics: List[Dict[str, Any]] = []
        self._audit: List[AuditEntry] = []
        self._capacity_profiles: Dict[str, CapacityProfile] = {}

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def _put(self, table: Dict[tuple[str, str], T], company_id: str, entity_id: str, entity: T) -> T:
        with self._lock:
            table[(company_id, entity_id)] = entity
        return entity

    def _list(
        self,
        table: Dict[tuple[str, str], T],
        company_id: str,
        predicate: Optional[Callable[[T], bool]] = None,
    ) -> List[T]:
        with self._lock:
            items = [entity for (company, _), entity in table.items() if company == company_id]
        if predicate is not None:
            items = [entity for entity in items if predicate(entity)]
        return items

    # Orders
    def add_order(self, order: Order) -> Order:
        return self._put(self._orders, order.company_id, order.id, order)

    def get_order(self, company_id: str, order_id: str) -> Optional[Order]:
        return self._orders.get((company_id, order_id))

    def delete_order(self, company_id: str, order_id: str) -> bool:
        with self._lock:
            return self._orders.pop((company_id, order_id), None) is not None

    def list_orders(self, company_id: str, *, status: str | None = None, active: bool | None = None) -> List[Order]:
        orders = self._list(
            self._orders,
            company_id,
            lambda order: (status is None or order.status == status) and (active is None or order.active == active),
        )
        return sorted(orders, key=lambda order: order.created_at)

    def list_pending_orders(self, company_id: str) -> List[Order]:
        return self.list_orders(company_id, status="PENDING", active=True)

    def find_order_by_tracking_id(self, company_id: str, tracking_id: str) -> Optional[Order]:
        matches = self._list(self._orders, company_id, lambda order: order.tracking_id == tracking_id)
        return matches[0] if matches else None

    # Vehicles and drivers
    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        return self._put(self._vehicles, vehicle.company_id, vehicle.id, vehicle)

    def get_vehicle(self, company_id: str, vehicle_id: str) -> Optional[Vehicle]:
        return self._vehicles.get((company_id, vehicle_id))

    def list_vehicles(self, company_id: str, ids: Iterable[str] | None = None, *, active: bool | None = None) -> List[Vehicle]:
        wanted = set(ids) if ids is not None else None
        return self._list(
            self._vehicles,
            company_id,
            lambda vehicle: (wanted is None or vehicle.id in wanted) and (active is None or vehicle.active == active),
        )

    def add_driver(self, driver: Driver) -> Driver:
        return self._put(self._drivers, driver.company_id, driver.id, driver)

    def get_driver(self, company_id: str, driver_id: str) -> Optional[Driver]:
        return self._drivers.get((company_id, driver_id))

    def list_drivers(self, company_id: str, ids: Iterable[str] | None = None, *, active: bool | None = None) -> List[Driver]:
        wanted = set(ids) if ids is not None else None
        return self._list(
            self._drivers,
            company_id,
            lambda driver: (wanted is None or driver.id in wanted) and (active is None or driver.active == active),
        )

    # Zones
    def add_zone(self, zone: Zone) -> Zone:
        return self._put(self._zones, zone.company_id, zone.id, zone)

    def list_zones(self, company_id: str, *, active: bool | None = None) -> List[Zone]:
        return self._list(self._zones, company_id, lambda zone: active is None or zone.active == active)

    # Configurations
    def add_configuration(self, configuration: OptimizationConfiguration) -> OptimizationConfiguration:
        return self._put(self._configurations, configuration.company_id, configuration.id, configuration)

    def get_configuration(self, company_id: str, configuration_id: str) -> Optional[OptimizationConfiguration]:
        return self._configurations.get((company_id, configuration_id))

    def list_configurations(self, company_id: str) -> List[OptimizationConfiguration]:
        configurations = self._list(self._configurations, company_id)
        return sorted(configurations, key=lambda configuration: configuration.created_at, reverse=True)

    def get_capacity_profile(self, company_id: str) -> CapacityProfile:
        return self._capacity_profiles.get(company_id) or CapacityProfile()

    def set_capacity_profile(self, company_id: str, profile: CapacityProfile) -> CapacityProfile:
        with self._lock:
            self._capacity_profiles[company_id] = profile
        return profile

    # Jobs
    def add_job(self, job: OptimizationJob) -> OptimizationJob:
        return self._put(self._jobs, job.company_id, job.id, job)

    def get_job(self, company_id: str, job_id: str) -> Optional[OptimizationJob]:
        return self._jobs.get((company_id, job_id))

    def find_job(self, job_id: str) -> Optional[OptimizationJob]:
        with self._lock:
            return next((job for (_, key), job in self._jobs.items() if key == job_id), None)

    def list_jobs(self, company_id: str, *, status: str | None = None) -> List[OptimizationJob]:
        jobs = self._list(self._jobs, company_id, lambda job: status is None or job.status == status)
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    # Plan metrics and audit log
    def add_plan_metrics(self, metrics: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self._plan_metrics.append(metrics)
        return metrics

    def list_plan_metrics(self, company_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [row for row in self._plan_metrics if row["company_id"] == company_id]
        return sorted(rows, key=lambda row: row["created_at"], reverse=True)

    def add_audit_entry(self, entry: AuditEntry) -> AuditEntry:
        with self._lock:
            self._audit.append(entry)
        return entry

    def list_audit_entries(self, company_id: str, entity_id: str | None = None) -> List[AuditEntry]:
        with self._lock:
            return [
                entry
                for entry in self._audit
                if entry.company_id == company_id and (entity_id is None or entry.entity_id == entity_id)
            ]


@lru_cache()
def get_store() -> PlanningStore:
    """Process-wide store instance."""
    return PlanningStore()
