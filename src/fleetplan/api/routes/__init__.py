"""Route group exports."""

from . import configurations, drivers, health, jobs, metrics, orders, vehicles, zones

__all__ = ["configurations", "drivers", "health", "jobs", "metrics", "orders", "vehicles", "zones"]
