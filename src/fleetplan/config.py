"""Runtime settings for the FleetPlan API."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings read from FLEETPLAN_* environment variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="FLEETPLAN_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "FleetPlan Optimization API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for generated plan outputs.")
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="OSRM server used for road travel matrices; straight-line estimates are used when unset.",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM routing profile.",
    )
    osrm_max_retries: int = Field(default=3, ge=0)
    osrm_backoff_seconds: float = Field(default=1.0, ge=0.0)
    average_speed_kmh: float = Field(
        default=40.0,
        gt=0.0,
        description="Average urban speed used for straight-line travel estimates.",
    )

    # Solver
    routing_engine: Literal["ortools", "nearest_neighbor"] = Field(default="ortools")
    solver_first_solution_strategy: str = Field(default="PATH_CHEAPEST_ARC")
    solver_local_search_metaheuristic: str = Field(default="GUIDED_LOCAL_SEARCH")
    solver_time_limit_seconds: int = Field(default=30, ge=0)
    default_service_time_seconds: int = Field(default=300, ge=0)
    default_max_orders_per_vehicle: int = Field(default=50, ge=1)
    balance_score_threshold: int = Field(default=80, ge=0, le=100)
    balance_min_improvement: int = Field(default=5, ge=0)
    flexible_time_window_minutes: int = Field(default=30, ge=0)

    # Job queue
    max_concurrent_jobs: int = Field(default=3, ge=1)
    default_job_timeout_ms: int = Field(default=300_000, ge=1)

    # Plan validation defaults
    validation_min_assignment_quality: int = Field(default=50, ge=0, le=100)
    validation_min_time_window_compliance: int = Field(default=80, ge=0, le=100)
    license_expiry_warning_days: int = Field(default=30, ge=0)
    skill_expiry_warning_days: int = Field(default=30, ge=0)

    persist_confirmed_plans: bool = Field(
        default=True,
        description="Write summary, route CSV and workbook for every confirmed plan.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Origins allowed by the CORS middleware.",
    )

    # Supabase mirror
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project used to mirror jobs and plan metrics.",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Service key for the Supabase mirror.",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> tuple[str, ...]:
        """Accept a JSON array, a comma-separated string or an iterable of origins."""
        if value is None:
            return ()
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                try:
                    value = json.loads(text)
                except json.JSONDecodeError:
                    value = text.strip("[]").split(",")
            else:
                value = text.split(",")
        return tuple(str(origin).strip().strip('"') for origin in value if str(origin).strip())


settings = Settings()
