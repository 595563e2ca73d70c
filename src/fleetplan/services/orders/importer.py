"""Batch order import from CSV and Excel files."""

from __future__ import annotations

import csv
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openpyxl import load_workbook

from ...models.domain import ORDER_TYPES, Order
from ...persistence.store import PlanningStore
from ..geospatial import is_valid_coordinate
from ..routing.time_windows import is_valid_time, minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = {".csv", ".xlsx"}

REQUIRED_FIELDS = ("tracking_id", "address", "latitude", "longitude")

COLUMN_PATTERNS: Dict[str, tuple[str, ...]] = {
    "tracking_id": ("tracking_id", "trackingid", "tracking_number", "tracking_no", "tracking", "order_id", "id"),
    "address": ("address", "delivery_address", "street_address", "street", "direccion"),
    "latitude": ("latitude", "lat", "latitud", "y", "coord_y"),
    "longitude": ("longitude", "lon", "lng", "long", "longitud", "x", "coord_x"),
    "customer_name": ("customer_name", "customername", "client_name", "customer", "name"),
    "weight_kg": ("weight_kg", "weight_required", "weight", "peso"),
    "volume_m3": ("volume_m3", "volume_required", "volume", "volumen"),
    "order_value": ("order_value", "value", "amount"),
    "units": ("units", "quantity", "qty"),
    "time_window_start": ("time_window_start", "window_start", "tw_start", "start_time"),
    "time_window_end": ("time_window_end", "window_end", "tw_end", "end_time"),
    "strictness": ("strictness", "strict_mode", "strict"),
    "required_skills": ("required_skills", "skills", "skill_requirements"),
    "service_time_minutes": ("service_time_minutes", "service_time", "service_minutes"),
    "priority": ("priority",),
    "order_type": ("order_type", "type"),
    "promised_date": ("promised_date", "delivery_date", "due_date"),
    "notes": ("notes", "comments", "observations"),
}


@dataclass(slots=True)
class RowError:
    row: int
    field: str
    message: str
    value: Any = None


@dataclass(slots=True)
class ImportReport:
    total_rows: int = 0
    created: List[Order] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)


class RowValidationError(ValueError):
    def __init__(self, errors: List[RowError]) -> None:
        super().__init__("; ".join(f"{error.field}: {error.message}" for error in errors))
        self.errors = errors


def _normalize(header: str) -> str:
    return header.lower().strip().replace(" ", "_").replace("-", "_")


def suggest_column_mappings(headers: Sequence[str]) -> Dict[str, str]:
    """Map system fields to the file's headers by common naming patterns."""
    normalized = {_normalize(header): header for header in headers if header}
    mappings: Dict[str, str] = {}
    claimed: set[str] = set()
    for field_name, patterns in COLUMN_PATTERNS.items():
        for pattern in patterns:
            header = normalized.get(pattern)
            if header is not None and header not in claimed:
                mappings[field_name] = header
                claimed.add(header)
                break
    return mappings


def read_tabular_file(filename: str, contents: bytes) -> tuple[List[str], List[Dict[str, Any]]]:
    """Return the header row and data rows of a CSV or XLSX upload."""
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError("Only .csv and .xlsx files are supported.")

    if suffix == ".csv":
        lines = contents.decode("utf-8-sig").splitlines()
        reader = csv.DictReader(lines)
        rows = [dict(row) for row in reader]
        return list(reader.fieldnames or []), rows

    workbook = load_workbook(filename=BytesIO(contents), read_only=True, data_only=True)
    worksheet = workbook.active
    headers = [str(cell) if cell is not None else "" for cell in next(worksheet.iter_rows(values_only=True), [])]
    rows = []
    for values in worksheet.iter_rows(values_only=True, min_row=2):
        if all(cell is None or cell == "" for cell in values):
            continue
        rows.append({headers[i]: ("" if cell is None else cell) for i, cell in enumerate(values) if i < len(headers)})
    workbook.close()
    return headers, rows


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(
    value: Any,
    field_name: str,
    errors: List[RowError],
    row: int,
    *,
    integer: bool = False,
    minimum: float = 0,
    maximum: Optional[float] = None,
):
    text = _text(value)
    if text is None:
        return None
    try:
        number = float(text)
    except ValueError:
        errors.append(RowError(row, field_name, "Must be a number", value))
        return None
    if not math.isfinite(number):
        errors.append(RowError(row, field_name, "Must be a finite number", value))
        return None
    if number < minimum:
        errors.append(RowError(row, field_name, f"Must be at least {minimum:g}", value))
        return None
    if maximum is not None and number > maximum:
        errors.append(RowError(row, field_name, f"Must be at most {maximum:g}", value))
        return None
    return int(number) if integer else number


def parse_order_row(
    row: Mapping[str, Any],
    mapping: Mapping[str, str],
    company_id: str,
    row_number: int,
) -> Order:
    """Build an order from one mapped row; raises ``RowValidationError`` listing every problem."""

    def get(field_name: str) -> Any:
        column = mapping.get(field_name, field_name)
        return row.get(column)

    errors: List[RowError] = []
    for field_name in REQUIRED_FIELDS:
        if _text(get(field_name)) is None:
            errors.append(RowError(row_number, field_name, "Required field is missing"))

    latitude = longitude = None
    if _text(get("latitude")) is not None and _text(get("longitude")) is not None:
        if is_valid_coordinate(get("latitude"), get("longitude")):
            latitude, longitude = float(get("latitude")), float(get("longitude"))
        else:
            errors.append(
                RowError(
                    row_number,
                    "coordinates",
                    "Coordinates must be in range and not 0,0",
                    f"{get('latitude')},{get('longitude')}",
                )
            )

    window = {}
    for field_name in ("time_window_start", "time_window_end"):
        value = _text(get(field_name))
        if value is None:
            window[field_name] = None
        elif is_valid_time(value):
            window[field_name] = minutes_to_time(time_to_minutes(value))
        else:
            errors.append(RowError(row_number, field_name, "Must use HH:MM format", value))
            window[field_name] = None
    if window["time_window_start"] and window["time_window_end"] and not errors:
        if time_to_minutes(window["time_window_end"]) <= time_to_minutes(window["time_window_start"]):
            errors.append(RowError(row_number, "time_window_end", "Must be after time_window_start", window["time_window_end"]))

    strictness = _text(get("strictness"))
    if strictness is not None:
        strictness = strictness.upper()
        if strictness not in ("HARD", "SOFT"):
            errors.append(RowError(row_number, "strictness", "Must be HARD or SOFT", strictness))

    order_type = (_text(get("order_type")) or "NEW").upper()
    if order_type not in ORDER_TYPES:
        errors.append(RowError(row_number, "order_type", f"Must be one of {', '.join(ORDER_TYPES)}", order_type))

    promised_date = None
    promised_text = _text(get("promised_date"))
    if promised_text is not None:
        try:
            promised_date = date.fromisoformat(promised_text[:10])
        except ValueError:
            errors.append(RowError(row_number, "promised_date", "Must be an ISO date (YYYY-MM-DD)", promised_text))

    weight = _number(get("weight_kg"), "weight_kg", errors, row_number)
    volume = _number(get("volume_m3"), "volume_m3", errors, row_number)
    value = _number(get("order_value"), "order_value", errors, row_number)
    units = _number(get("units"), "units", errors, row_number, integer=True, minimum=1)
    service = _number(get("service_time_minutes"), "service_time_minutes", errors, row_number, integer=True)
    priority = _number(get("priority"), "priority", errors, row_number, integer=True, maximum=100)

    if errors:
        raise RowValidationError(errors)

    skills_text = _text(get("required_skills")) or ""
    return Order(
        id=str(uuid.uuid4()),
        company_id=company_id,
        tracking_id=_text(get("tracking_id")),
        address=_text(get("address")),
        latitude=latitude,
        longitude=longitude,
        customer_name=_text(get("customer_name")),
        order_type=order_type,
        weight_kg=weight or 0.0,
        volume_m3=volume or 0.0,
        order_value=value or 0.0,
        units=units if units is not None else 1,
        time_window_start=window["time_window_start"],
        time_window_end=window["time_window_end"],
        strictness=strictness,
        required_skills=[skill.strip() for skill in skills_text.replace(";", ",").split(",") if skill.strip()],
        service_time_minutes=service,
        priority=priority,
        promised_date=promised_date,
        notes=_text(get("notes")),
    )


def import_orders(
    store: PlanningStore,
    company_id: str,
    rows: Sequence[Mapping[str, Any]],
    mapping: Mapping[str, str],
) -> ImportReport:
    """Validate and store every row; duplicate tracking ids are skipped, not overwritten."""
    report = ImportReport(total_rows=len(rows))
    seen: set[str] = set()
    for index, row in enumerate(rows, start=2):
        try:
            order = parse_order_row(row, mapping, company_id, index)
        except RowValidationError as exc:
            report.errors.extend(exc.errors)
            continue
        if order.tracking_id in seen or store.find_order_by_tracking_id(company_id, order.tracking_id):
            report.duplicates.append(order.tracking_id)
            continue
        seen.add(order.tracking_id)
        report.created.append(store.add_order(order))

    logger.info(
        f"Imported {report.created_count} of {report.total_rows} orders for company {company_id} "
        f"({len(report.duplicates)} duplicates, {len(report.errors)} row errors)"
    )
    return report
