from io import BytesIO

import pytest
from openpyxl import Workbook
from pydantic import ValidationError

from src.fleetplan.persistence.store import PlanningStore
from src.fleetplan.schemas.orders import OrderCreate
from src.fleetplan.services.orders.importer import (
    RowValidationError,
    import_orders,
    parse_order_row,
    read_tabular_file,
    suggest_column_mappings,
)
from src.fleetplan.services.orders.summary import pending_orders_summary

CSV_CONTENT = (
    "Tracking ID,Direccion,Lat,Lng,Peso,Window Start,Window End,Skills\n"
    "T-1,Av. Arequipa 100,-12.05,-77.04,12.5,8:00,12:00,FRAGILE; COLD\n"
    "T-2,Jr. Lampa 200,0,0,3,,,\n"
    "T-1,Av. Arequipa 100,-12.05,-77.04,12.5,,,\n"
    "T-3,Calle 5,-12.07,-77.01,abc,,,\n"
    "T-4,Calle 6,-12.08,-77.02,1,14:00,10:00,\n"
)


def _import(store: PlanningStore):
    headers, rows = read_tabular_file("orders.csv", CSV_CONTENT.encode("utf-8"))
    return import_orders(store, "c1", rows, suggest_column_mappings(headers))


def test_suggested_mappings_match_common_headers():
    mappings = suggest_column_mappings(["Tracking ID", "Direccion", "Lat", "Lng", "Peso", "Window Start", "Skills"])

    assert mappings == {
        "tracking_id": "Tracking ID",
        "address": "Direccion",
        "latitude": "Lat",
        "longitude": "Lng",
        "weight_kg": "Peso",
        "time_window_start": "Window Start",
        "required_skills": "Skills",
    }


def test_csv_import_reports_duplicates_and_row_errors():
    store = PlanningStore()

    report = _import(store)

    assert report.total_rows == 5
    assert [order.tracking_id for order in report.created] == ["T-1"]
    assert report.duplicates == ["T-1"]
    assert [(error.row, error.field) for error in report.errors] == [
        (3, "coordinates"),
        (5, "weight_kg"),
        (6, "time_window_end"),
    ]

    order = store.find_order_by_tracking_id("c1", "T-1")
    assert order.time_window_start == "08:00"
    assert order.required_skills == ["FRAGILE", "COLD"]
    assert order.weight_kg == 12.5
    assert order.status == "PENDING"


def test_reimport_only_finds_duplicates():
    store = PlanningStore()
    _import(store)

    report = _import(store)

    assert report.created_count == 0
    assert report.duplicates == ["T-1", "T-1"]


def test_xlsx_upload_is_read():
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["tracking_id", "address", "latitude", "longitude", "units"])
    sheet.append(["X-1", "Av. Brasil 1", -12.06, -77.05, 4])
    sheet.append([None, None, None, None, None])
    buffer = BytesIO()
    workbook.save(buffer)

    headers, rows = read_tabular_file("orders.xlsx", buffer.getvalue())
    report = import_orders(PlanningStore(), "c1", rows, suggest_column_mappings(headers))

    assert headers == ["tracking_id", "address", "latitude", "longitude", "units"]
    assert len(rows) == 1
    assert report.created[0].units == 4
    assert report.created[0].latitude == -12.06


def test_unsupported_file_type():
    with pytest.raises(ValueError):
        read_tabular_file("orders.json", b"[]")


def test_pending_orders_summary():
    store = PlanningStore()
    _import(store)
    store.add_order(OrderCreate(tracking_id="M-1", address="x", latitude=-12.1, longitude=-77.1, strictness="HARD").to_order("c1"))

    summary = pending_orders_summary(store, "c1")

    assert summary["total"] == 2
    assert summary["total_weight_kg"] == 12.5
    assert summary["with_time_window"] == 1
    assert summary["with_required_skills"] == 1
    assert summary["by_strictness"] == {"DEFAULT": 1, "HARD": 1}


def test_order_schema_validation():
    order = OrderCreate(tracking_id="A", address="x", latitude=-12.0, longitude=-77.0, time_window_start="8:05")
    assert order.time_window_start == "08:05"

    with pytest.raises(ValidationError):
        OrderCreate(tracking_id="A", address="x", latitude=0, longitude=0)
    with pytest.raises(ValidationError):
        OrderCreate(tracking_id="A", address="x", latitude=-12.0, longitude=-77.0, time_window_start="25:00")
    with pytest.raises(ValidationError):
        OrderCreate(
            tracking_id="A",
            address="x",
            latitude=-12.0,
            longitude=-77.0,
            time_window_start="12:00",
            time_window_end="09:00",
        )


def _row(**overrides) -> dict:
    row = {"tracking_id": "N-1", "address": "Calle 1", "latitude": "-12.05", "longitude": "-77.04"}
    row.update(overrides)
    return row


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("weight_kg", "nan"),
        ("volume_m3", "inf"),
        ("order_value", "-inf"),
        ("units", "0"),
        ("priority", "5000"),
        ("priority", "-1"),
    ],
)
def test_row_numbers_follow_order_schema_bounds(field, value):
    with pytest.raises(RowValidationError) as excinfo:
        parse_order_row(_row(**{field: value}), {}, "c1", 2)

    assert [(error.row, error.field) for error in excinfo.value.errors] == [(2, field)]


def test_row_numbers_at_the_bounds_are_accepted():
    order = parse_order_row(_row(units="1", priority="100", weight_kg="0"), {}, "c1", 2)

    assert (order.units, order.priority, order.weight_kg) == (1, 100, 0.0)
