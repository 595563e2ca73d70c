"""Domain errors raised by services and translated to HTTP responses by the API layer."""

from __future__ import annotations

from typing import Any


class NotFoundError(LookupError):
    """Requested entity does not exist for the tenant."""


class ConflictError(RuntimeError):
    """Operation conflicts with the entity's current state."""

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.extra = extra


class InvalidStateError(ValueError):
    """Operation is not allowed in the entity's current lifecycle state."""

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.extra = extra


class ConcurrencyLimitError(RuntimeError):
    """Too many optimization jobs are already running."""


class OptimizationCancelled(Exception):
    """Raised inside a running optimization when its abort signal is set."""

    def __init__(self, partial_result: Any = None) -> None:
        super().__init__("Optimization cancelled")
        self.partial_result = partial_result
