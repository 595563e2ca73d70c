"""Registry of running optimization jobs: concurrency limit, timeouts, cancellation and terminal states."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from ...config import settings
from ...errors import ConcurrencyLimitError
from ...models.domain import OptimizationJob, utc_now
from ...persistence.database import save_job_to_database
from ...persistence.store import PlanningStore

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("PENDING", "RUNNING")
TERMINAL_STATUSES = ("COMPLETED", "FAILED", "CANCELLED")


def calculate_input_hash(
    configuration_id: str,
    vehicle_ids: Iterable[str],
    driver_ids: Iterable[str],
    pending_order_ids: Iterable[str],
) -> str:
    """Stable fingerprint of an optimization input; id order does not matter."""
    payload = json.dumps(
        {
            "configurationId": configuration_id,
            "vehicleIds": sorted(vehicle_ids),
            "driverIds": sorted(driver_ids),
            "pendingOrderIds": sorted(pending_order_ids),
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class _ActiveJob:
    abort: threading.Event
    timer: Optional[threading.Timer] = None


class JobQueue:
    """Tracks in-flight jobs and performs every status transition on them.

    A job leaves PENDING/RUNNING exactly once; later completion, failure or
    cancellation attempts are ignored.
    """

    def __init__(self, store: PlanningStore, max_concurrent_jobs: int | None = None) -> None:
        self.store = store
        self.max_concurrent_jobs = max_concurrent_jobs or settings.max_concurrent_jobs
        self._lock = threading.RLock()
        self._active: Dict[str, _ActiveJob] = {}

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def can_start_job(self) -> bool:
        return self.active_count < self.max_concurrent_jobs

    def register_job(self, job_id: str) -> threading.Event:
        """Reserve a slot for ``job_id`` and return its abort signal."""
        with self._lock:
            if len(self._active) >= self.max_concurrent_jobs:
                raise ConcurrencyLimitError("Maximum concurrent jobs reached. Please try again later.")
            entry = _ActiveJob(abort=threading.Event())
            self._active[job_id] = entry
            return entry.abort

    def unregister_job(self, job_id: str) -> None:
        with self._lock:
            entry = self._active.pop(job_id, None)
        if entry and entry.timer:
            entry.timer.cancel()

    def set_job_timeout(self, job_id: str, timeout_ms: int, on_timeout: Callable[[], None]) -> None:
        with self._lock:
            entry = self._active.get(job_id)
            if entry is None:
                return
            timer = threading.Timer(timeout_ms / 1000.0, on_timeout)
            timer.daemon = True
            entry.timer = timer
        timer.start()

    def is_job_aborting(self, job_id: str) -> bool:
        with self._lock:
            entry = self._active.get(job_id)
            return bool(entry and entry.abort.is_set())

    def _transition(self, job_id: str, status: str, **changes: Any) -> Optional[OptimizationJob]:
        with self.store.lock:
            job = self.store.find_job(job_id)
            if job is None or job.status not in ACTIVE_STATUSES:
                return None
            job.status = status
            for name, value in changes.items():
                setattr(job, name, value)
        save_job_to_database(job)
        return job

    def mark_running(self, job_id: str) -> Optional[OptimizationJob]:
        return self._transition(job_id, "RUNNING", started_at=utc_now())

    def update_job_progress(self, job_id: str, progress: int) -> None:
        with self.store.lock:
            job = self.store.find_job(job_id)
            if job is not None and job.status in ACTIVE_STATUSES:
                job.progress = max(0, min(100, int(progress)))

    def complete_job(self, job_id: str, result: Any) -> Optional[OptimizationJob]:
        job = self._transition(job_id, "COMPLETED", result=result, progress=100, completed_at=utc_now())
        self.unregister_job(job_id)
        return job

    def fail_job(self, job_id: str, error: str) -> Optional[OptimizationJob]:
        job = self._transition(job_id, "FAILED", error=error, completed_at=utc_now())
        if job is not None:
            logger.warning(f"Optimization job {job_id} failed: {error}")
        self.abort(job_id)
        self.unregister_job(job_id)
        return job

    def abort(self, job_id: str) -> None:
        with self._lock:
            entry = self._active.get(job_id)
        if entry:
            entry.abort.set()

    def cancel_job(self, job_id: str, partial_result: Any = None) -> bool:
        """Signal the worker to stop and mark the job CANCELLED.

        A partial result arriving after the job was already cancelled is
        attached to it.
        """
        self.abort(job_id)
        job = self._transition(job_id, "CANCELLED", cancelled_at=utc_now(), completed_at=utc_now())
        if job is None:
            with self.store.lock:
                existing = self.store.find_job(job_id)
                if existing is not None and existing.status == "CANCELLED" and partial_result is not None:
                    existing.result = partial_result
                    job = existing
            if job is not None:
                save_job_to_database(job)
            self.unregister_job(job_id)
            return False
        if partial_result is not None:
            job.result = partial_result
        self.unregister_job(job_id)
        return True

    def get_cached_result(self, input_hash: str, company_id: str) -> Optional[OptimizationJob]:
        """Most recent completed job for the same input."""
        for job in self.store.list_jobs(company_id, status="COMPLETED"):
            if job.input_hash == input_hash and job.result is not None:
                return job
        return None
