"""Spreadsheet and CSV renderings of an optimization plan."""

from __future__ import annotations

import csv
import io
from typing import Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from ..optimization.models import OptimizationResult, RouteResult

EXCEL_MAX_SHEET_TITLE = 31
INVALID_TITLE_CHARS = set("[]:*?/\\")

PLAN_COLUMNS = (
    "route_id",
    "vehicle_plate",
    "driver_name",
    "sequence",
    "tracking_id",
    "address",
    "latitude",
    "longitude",
    "estimated_arrival",
    "time_window_start",
    "time_window_end",
    "weight",
    "volume",
)


def _plan_rows(routes: Sequence[RouteResult]) -> Iterable[dict]:
    for route in routes:
        for stop in route.stops:
            yield {
                "route_id": route.route_id,
                "vehicle_plate": route.vehicle_plate,
                "driver_name": route.driver_name or "",
                "sequence": stop.sequence,
                "tracking_id": stop.tracking_id,
                "address": stop.address,
                "latitude": stop.latitude,
                "longitude": stop.longitude,
                "estimated_arrival": stop.estimated_arrival,
                "time_window_start": stop.time_window_start or "",
                "time_window_end": stop.time_window_end or "",
                "weight": stop.weight,
                "volume": stop.volume,
            }


def plan_to_csv(result: OptimizationResult) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(PLAN_COLUMNS))
    writer.writeheader()
    writer.writerows(_plan_rows(result.routes))
    return buffer.getvalue()


def _append_table(sheet, header: Sequence[str], rows: Iterable[Sequence]) -> None:
    sheet.append(list(header))
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(list(row))


def _summary_rows(result: OptimizationResult) -> List[tuple]:
    metrics = result.metrics
    summary = result.summary
    return [
        ("Optimized at", summary.optimized_at),
        ("Objective", summary.objective),
        ("Routes", metrics.total_routes),
        ("Stops", metrics.total_stops),
        ("Unassigned orders", len(result.unassigned_orders)),
        ("Total distance (km)", round(metrics.total_distance / 1000, 2)),
        ("Total duration (min)", round(metrics.total_duration / 60)),
        ("Utilization (%)", metrics.utilization_rate),
        ("Time window compliance (%)", metrics.time_window_compliance_rate),
        ("Balance score", metrics.balance_score),
    ]


def sheet_title(index: int, route: RouteResult) -> str:
    plate = "".join("-" if char in INVALID_TITLE_CHARS else char for char in route.vehicle_plate)
    return f"Route {index} - {plate}"[:EXCEL_MAX_SHEET_TITLE]


def export_plan_workbook(result: OptimizationResult) -> bytes:
    """Workbook with the full plan, one sheet per route and a summary sheet."""
    workbook = Workbook()
    plan_sheet = workbook.active
    plan_sheet.title = "Plan"
    _append_table(plan_sheet, PLAN_COLUMNS, ([row[name] for name in PLAN_COLUMNS] for row in _plan_rows(result.routes)))

    for index, route in enumerate(result.routes, start=1):
        sheet = workbook.create_sheet(sheet_title(index, route))
        _append_table(
            sheet,
            ("sequence", "tracking_id", "address", "estimated_arrival", "weight", "volume"),
            (
                (stop.sequence, stop.tracking_id, stop.address, stop.estimated_arrival, stop.weight, stop.volume)
                for stop in route.stops
            ),
        )

    summary_sheet = workbook.create_sheet("Summary")
    _append_table(summary_sheet, ("metric", "value"), _summary_rows(result))
    if result.unassigned_orders:
        summary_sheet.append([])
        summary_sheet.append(["unassigned tracking_id", "reason"])
        for item in result.unassigned_orders:
            summary_sheet.append([item.tracking_id, item.reason])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
