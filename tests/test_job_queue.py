import threading

import pytest

from src.fleetplan.errors import ConcurrencyLimitError
from src.fleetplan.models.domain import OptimizationJob
from src.fleetplan.persistence.store import PlanningStore
from src.fleetplan.services.optimization.job_queue import JobQueue, calculate_input_hash


def _queue(max_jobs: int = 2) -> JobQueue:
    return JobQueue(PlanningStore(), max_concurrent_jobs=max_jobs)


def _add_job(queue: JobQueue, job_id: str = "job-1", **overrides) -> OptimizationJob:
    values = dict(id=job_id, company_id="c1", configuration_id="cfg-1", input_hash="hash", timeout_ms=60_000)
    values.update(overrides)
    queue.register_job(job_id)
    return queue.store.add_job(OptimizationJob(**values))


def test_input_hash_ignores_id_order():
    first = calculate_input_hash("cfg", ["v2", "v1"], ["d1"], ["o3", "o1", "o2"])
    second = calculate_input_hash("cfg", ["v1", "v2"], ["d1"], ["o1", "o2", "o3"])

    assert first == second
    assert len(first) == 64
    assert first != calculate_input_hash("cfg", ["v1", "v2"], ["d1"], ["o1", "o2"])


def test_concurrency_limit():
    queue = _queue(max_jobs=1)
    queue.register_job("a")

    assert not queue.can_start_job()
    with pytest.raises(ConcurrencyLimitError):
        queue.register_job("b")

    queue.unregister_job("a")
    assert queue.can_start_job()


def test_job_reaches_a_single_terminal_state():
    queue = _queue()
    job = _add_job(queue)

    queue.mark_running(job.id)
    queue.update_job_progress(job.id, 140)
    assert job.status == "RUNNING" and job.started_at is not None
    assert job.progress == 100

    assert queue.complete_job(job.id, {"routes": []}) is job
    assert job.status == "COMPLETED"
    assert queue.active_count == 0

    assert queue.fail_job(job.id, "late failure") is None
    assert job.status == "COMPLETED"
    assert job.error is None


def test_cancel_sets_abort_signal_and_keeps_late_partial_result():
    queue = _queue()
    abort = queue.register_job("job-2")
    job = queue.store.add_job(
        OptimizationJob(id="job-2", company_id="c1", configuration_id="cfg-1", input_hash="h", timeout_ms=60_000)
    )
    queue.mark_running(job.id)

    assert queue.cancel_job(job.id) is True
    assert abort.is_set()
    assert job.status == "CANCELLED" and job.cancelled_at is not None

    assert queue.cancel_job(job.id, {"is_partial": True}) is False
    assert job.result == {"is_partial": True}
    assert queue.complete_job(job.id, {"late": True}) is None
    assert job.status == "CANCELLED"


def test_timeout_fails_job():
    queue = _queue()
    job = _add_job(queue, "job-3")
    fired = threading.Event()

    def on_timeout():
        queue.fail_job(job.id, "Optimization timed out")
        fired.set()

    queue.set_job_timeout(job.id, 10, on_timeout)

    assert fired.wait(5)
    assert job.status == "FAILED"
    assert job.error == "Optimization timed out"
    assert queue.is_job_aborting(job.id) is False


def test_cached_result_only_for_completed_jobs_of_tenant():
    queue = _queue()
    done = _add_job(queue, "job-4", input_hash="same")
    queue.complete_job(done.id, {"routes": []})
    _add_job(queue, "job-5", input_hash="same")

    assert queue.get_cached_result("same", "c1") is done
    assert queue.get_cached_result("same", "c2") is None
    assert queue.get_cached_result("other", "c1") is None
