"""Aggregates over a tenant's pending orders."""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict

from ...persistence.store import PlanningStore


def pending_orders_summary(store: PlanningStore, company_id: str) -> Dict[str, Any]:
    orders = store.list_pending_orders(company_id)
    return {
        "total": len(orders),
        "total_weight_kg": round(sum(order.weight_kg or 0.0 for order in orders), 2),
        "total_volume_m3": round(sum(order.volume_m3 or 0.0 for order in orders), 3),
        "with_time_window": sum(1 for order in orders if order.time_window_start or order.time_window_end),
        "with_required_skills": sum(1 for order in orders if order.required_skills),
        "by_order_type": dict(Counter(order.order_type for order in orders)),
        "by_strictness": dict(Counter(order.strictness or "DEFAULT" for order in orders)),
    }
