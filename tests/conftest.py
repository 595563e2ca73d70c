from pathlib import Path

import pytest

from src.fleetplan.api import deps
from src.fleetplan.config import settings
from src.fleetplan.db.supabase import get_supabase_client
from src.fleetplan.persistence.store import get_store


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Fast solver, no external services, outputs under tmp_path, fresh store per test."""
    monkeypatch.setattr(settings, "solver_time_limit_seconds", 1)
    monkeypatch.setattr(settings, "solver_local_search_metaheuristic", "GREEDY_DESCENT")
    monkeypatch.setattr(settings, "routing_engine", "ortools")
    monkeypatch.setattr(settings, "osrm_base_url", None)
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "supabase_key", None)
    monkeypatch.setattr(settings, "data_root", tmp_path)

    get_store.cache_clear()
    deps.get_job_queue.cache_clear()
    get_supabase_client.cache_clear()
    yield
    get_store.cache_clear()
    deps.get_job_queue.cache_clear()
    get_supabase_client.cache_clear()
