import csv
import io

from openpyxl import load_workbook

from src.fleetplan.services.assignment.drivers import AssignmentQualityMetrics
from src.fleetplan.services.export.plan_excel import export_plan_workbook, plan_to_csv, sheet_title
from src.fleetplan.services.optimization.models import (
    OptimizationResult,
    PlanSummary,
    ResultMetrics,
    RouteResult,
    RouteStopResult,
    UnassignedOrder,
)


def _stop(sequence: int, tracking_id: str) -> RouteStopResult:
    return RouteStopResult(
        order_id=f"o-{tracking_id}",
        tracking_id=tracking_id,
        sequence=sequence,
        address=f"Calle {sequence}",
        latitude=-12.0 - sequence / 100,
        longitude=-77.0,
        estimated_arrival=f"08:{sequence:02d}",
        arrival_seconds=8 * 3600 + sequence * 60,
        service_seconds=600,
        weight=10.0,
        volume=0.5,
    )


def _result() -> OptimizationResult:
    route = RouteResult(
        route_id="route-v1",
        vehicle_id="v1",
        vehicle_plate="ABC/123",
        zone_id=None,
        stops=[_stop(1, "T-1"), _stop(2, "T-2")],
        driver_name="Ana",
    )
    return OptimizationResult(
        routes=[route],
        unassigned_orders=[UnassignedOrder(order_id="o-9", tracking_id="T-9", reason="Location unreachable")],
        vehicles_without_routes=[],
        metrics=ResultMetrics(total_distance=12_346.0, total_duration=5400, total_routes=1, total_stops=2),
        assignment_metrics=AssignmentQualityMetrics(),
        summary=PlanSummary(optimized_at="2026-03-02T07:00:00+00:00", objective="BALANCED"),
        depot={"latitude": -12.0, "longitude": -77.0},
    )


def test_csv_has_one_row_per_stop():
    rows = list(csv.DictReader(io.StringIO(plan_to_csv(_result()))))

    assert [row["tracking_id"] for row in rows] == ["T-1", "T-2"]
    assert rows[0]["driver_name"] == "Ana"
    assert rows[1]["sequence"] == "2"
    assert rows[0]["time_window_start"] == ""


def test_workbook_sheets_and_summary():
    workbook = load_workbook(io.BytesIO(export_plan_workbook(_result())))

    assert workbook.sheetnames == ["Plan", "Route 1 - ABC-123", "Summary"]
    plan = workbook["Plan"]
    assert plan.cell(row=1, column=1).value == "route_id"
    assert plan.cell(row=1, column=1).font.bold
    assert plan.max_row == 3

    summary = {row[0]: row[1] for row in workbook["Summary"].iter_rows(min_row=2, values_only=True) if row[0]}
    assert summary["Total distance (km)"] == 12.35
    assert summary["Total duration (min)"] == 90
    assert summary["T-9"] == "Location unreachable"


def test_sheet_title_is_truncated_and_sanitized():
    route = _result().routes[0]
    route.vehicle_plate = "PLATE:WITH*A?VERY[LONG]NAME"

    title = sheet_title(12, route)

    assert len(title) == 31
    assert not any(char in title for char in "[]:*?/\\")
    assert title.startswith("Route 12 - PLATE-WITH-A-VERY")
