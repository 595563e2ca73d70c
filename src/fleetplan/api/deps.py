"""Shared request dependencies: tenant context, store and job queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from fastapi import Header, HTTPException, status

from ..errors import ConcurrencyLimitError, ConflictError, InvalidStateError, NotFoundError
from ..persistence.store import PlanningStore, get_store
from ..services.optimization.job_queue import JobQueue

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TenantContext:
    company_id: str
    user_id: Optional[str] = None


def get_tenant(
    x_company_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> TenantContext:
    if not x_company_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing tenant context")
    return TenantContext(company_id=x_company_id, user_id=x_user_id or None)


def store_dependency() -> PlanningStore:
    return get_store()


@lru_cache()
def get_job_queue() -> JobQueue:
    return JobQueue(get_store())


def job_queue_dependency() -> JobQueue:
    return get_job_queue()


def http_error(status_code: int, message: str, **extra: Any) -> HTTPException:
    """HTTPException whose body becomes ``{"error": message, **extra}``."""
    if extra:
        return HTTPException(status_code=status_code, detail={"error": message, **extra})
    return HTTPException(status_code=status_code, detail=message)


def to_http_error(exc: Exception, action: str) -> HTTPException:
    """Translate a domain error into the matching HTTP response."""
    if isinstance(exc, NotFoundError):
        return http_error(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, ConcurrencyLimitError):
        return http_error(status.HTTP_429_TOO_MANY_REQUESTS, str(exc))
    if isinstance(exc, ConflictError):
        return http_error(status.HTTP_409_CONFLICT, str(exc), **exc.extra)
    if isinstance(exc, InvalidStateError):
        return http_error(status.HTTP_400_BAD_REQUEST, str(exc), **exc.extra)
    if isinstance(exc, ValueError):
        return http_error(status.HTTP_400_BAD_REQUEST, str(exc))
    logger.exception(f"Failed to {action}: {exc}")
    return http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to {action}: {exc}")
