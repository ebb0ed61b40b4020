"""Vehicle CSV export and import.

Exports encode non-active status and sale details into the notes column so
that re-importing the file restores them. Imports accept loosely shaped
spreadsheets: headers are auto-mapped by substring, a leading title line
is skipped, and unparseable values become per-row warnings instead of
errors.
"""

import csv
import io
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from collectors.db.models import (
    ACTIVE_STATUSES,
    Vehicle,
    VehicleStatus,
    VehicleType,
    generate_uuid,
)
from collectors.utils.dates import format_date_for_db, parse_flexible_date
from collectors.utils.status_parser import (
    SaleInfo,
    encode_status_in_notes,
    parse_status_from_notes,
)
from collectors.utils.vehicles import vehicle_field

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "name",
    "make",
    "model",
    "year",
    "vehicle_type",
    "vin",
    "plate_number",
    "mileage",
    "tab_expiration",
    "status",
    "notes",
    "purchase_price",
    "purchase_date",
    "nickname",
    "maintenance_notes",
)

# Checked in order; a header maps to the first unassigned field it matches.
FIELD_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("name", ("name", "motorcycle", "bike", "vehicle", "title")),
    ("make", ("make", "manufacturer", "brand")),
    ("model", ("model",)),
    ("year", ("year", "yr", "model year")),
    ("nickname", ("nickname", "alias")),
    ("vehicle_type", ("vehicle_type", "type", "category")),
    ("vin", ("vin", "vehicle identification")),
    ("plate_number", ("plate", "license", "tag", "registration")),
    ("mileage", ("mile", "mileage", "odometer", "odo")),
    ("tab_expiration", ("expir", "tab", "renewal", "due")),
    ("status", ("status",)),
    ("notes", ("note", "comment", "description", "memo")),
    ("purchase_price", ("purchase_price", "price", "cost", "paid")),
    ("purchase_date", ("purchase_date", "bought", "acquired")),
    ("maintenance_notes", ("maintenance", "service", "repair")),
)

MIN_YEAR = 1900
MAX_YEAR = 2099
MIN_NON_EMPTY_FIELDS = 2

_VALID_STATUSES = frozenset(s.value for s in VehicleStatus)
_VALID_TYPES = frozenset(t.value for t in VehicleType)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def export_row(vehicle: Any, encode_status: bool = True) -> dict[str, str]:
    """One vehicle as a dict keyed by EXPORT_COLUMNS."""
    status = vehicle_field(vehicle, "status") or VehicleStatus.active.value
    notes = vehicle_field(vehicle, "notes") or ""
    if encode_status:
        notes = encode_status_in_notes(
            status, SaleInfo.from_dict(vehicle_field(vehicle, "sale_info")), notes
        )

    row = {column: _cell(vehicle_field(vehicle, column)) for column in EXPORT_COLUMNS}
    row["vehicle_type"] = row["vehicle_type"] or VehicleType.motorcycle.value
    row["status"] = status
    row["notes"] = notes
    return row


def generate_vehicles_csv(
    vehicles: Sequence[Any],
    include_inactive: bool = False,
    encode_status: bool = True,
) -> str:
    """Render vehicles as CSV text with a header row.

    Args:
        vehicles: ORM rows or dicts with vehicle fields.
        include_inactive: Also export stored, sold and traded vehicles.
        encode_status: Prefix notes with the status keyword and sale details.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for vehicle in vehicles:
        status = vehicle_field(vehicle, "status") or VehicleStatus.active.value
        if not include_inactive and status not in ACTIVE_STATUSES:
            continue
        writer.writerow(export_row(vehicle, encode_status=encode_status))
    return buffer.getvalue()


def get_export_filename(today: date | None = None) -> str:
    today = today or date.today()
    return f"vehicles-export-{today.isoformat()}.csv"


def auto_map_columns(headers: Sequence[str]) -> dict[str, str]:
    """Map target fields to source headers by case-insensitive substring."""
    mapping: dict[str, str] = {}
    for header in headers:
        normalized = header.lower().strip()
        for target, patterns in FIELD_PATTERNS:
            if target in mapping:
                continue
            if any(pattern in normalized for pattern in patterns):
                mapping[target] = header
                break
    return mapping


@dataclass
class VehicleImportRow:
    """A CSV row mapped onto vehicle fields.

    ``error`` is set when the row cannot be imported (missing name).
    ``warnings`` lists values that were dropped because they did not parse.
    """

    line: int
    name: str = ""
    year: int | None = None
    make: str | None = None
    model: str | None = None
    nickname: str | None = None
    vehicle_type: str = VehicleType.motorcycle.value
    vin: str | None = None
    plate_number: str | None = None
    mileage: str | None = None
    tab_expiration: str | None = None
    status: str = VehicleStatus.active.value
    sale_info: SaleInfo | None = None
    notes: str | None = None
    purchase_price: float | None = None
    purchase_date: str | None = None
    maintenance_notes: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.error is None


def _strip_title_line(text: str) -> str:
    """Drop a leading spreadsheet title line that is not the header.

    A first line with no commas, or with fewer than half the commas of the
    second line, is treated as a title.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        return text
    first, second = lines[0].count(","), lines[1].count(",")
    if first == 0 or (second > 0 and first < second / 2):
        return "\n".join(lines[1:])
    return text


def _text(row: dict[str, Any], mapping: dict[str, str], target: str) -> str | None:
    header = mapping.get(target)
    if not header:
        return None
    value = row.get(header)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_year(raw: str | None, result: VehicleImportRow) -> None:
    if raw is None:
        return
    try:
        year = int(raw)
    except ValueError:
        result.warnings.append(f"Ignored year '{raw}': not a number")
        return
    if MIN_YEAR <= year <= MAX_YEAR:
        result.year = year
    else:
        result.warnings.append(f"Ignored year '{raw}': out of range")


def _parse_price(raw: str | None, result: VehicleImportRow) -> None:
    if raw is None:
        return
    cleaned = raw.replace("$", "").replace(",", "")
    try:
        result.purchase_price = float(cleaned)
    except ValueError:
        result.warnings.append(f"Ignored purchase price '{raw}': not a number")


def _parse_date(
    raw: str | None, label: str, result: VehicleImportRow, today: date | None
) -> str | None:
    if raw is None:
        return None
    parsed = parse_flexible_date(raw, today=today)
    if parsed is None:
        result.warnings.append(f"Ignored {label} '{raw}': unrecognized date")
    return format_date_for_db(parsed)


def map_row(
    row: dict[str, Any],
    mapping: dict[str, str],
    line: int,
    today: date | None = None,
) -> VehicleImportRow:
    """Map one CSV record onto a VehicleImportRow."""
    result = VehicleImportRow(line=line)
    name = _text(row, mapping, "name")
    if not name:
        result.error = "Name is required"
        return result
    result.name = name

    notes = _text(row, mapping, "notes")
    parsed = parse_status_from_notes(notes, today=today)
    result.status = parsed.status.value
    result.sale_info = parsed.sale_info
    result.notes = parsed.cleaned_notes or None

    explicit_status = _text(row, mapping, "status")
    if explicit_status:
        if explicit_status.lower() in _VALID_STATUSES:
            result.status = explicit_status.lower()
        else:
            result.warnings.append(f"Ignored status '{explicit_status}'")

    vehicle_type = _text(row, mapping, "vehicle_type")
    if vehicle_type:
        if vehicle_type.lower() in _VALID_TYPES:
            result.vehicle_type = vehicle_type.lower()
        else:
            result.warnings.append(f"Unknown vehicle type '{vehicle_type}', using motorcycle")

    _parse_year(_text(row, mapping, "year"), result)
    _parse_price(_text(row, mapping, "purchase_price"), result)
    result.tab_expiration = _parse_date(
        _text(row, mapping, "tab_expiration"), "tab expiration", result, today
    )
    result.purchase_date = _parse_date(
        _text(row, mapping, "purchase_date"), "purchase date", result, today
    )

    for attr in ("make", "model", "nickname", "vin", "plate_number", "mileage", "maintenance_notes"):
        setattr(result, attr, _text(row, mapping, attr))
    return result


def parse_vehicles_csv(
    text: str,
    mapping: dict[str, str] | None = None,
    today: date | None = None,
) -> tuple[list[VehicleImportRow], dict[str, str]]:
    """Parse CSV text into import rows.

    Args:
        text: Raw CSV contents.
        mapping: Target field -> source header. Auto-mapped when omitted.
        today: Reference date for year-less dates.

    Returns:
        Tuple of (rows, mapping used). Rows with fewer than two non-empty
        cells are skipped; rows without a name carry an ``error``.
    """
    reader = csv.DictReader(io.StringIO(_strip_title_line(text)))
    headers = [h for h in (reader.fieldnames or []) if h is not None]
    mapping = mapping if mapping is not None else auto_map_columns(headers)

    rows: list[VehicleImportRow] = []
    # Header is line 1.
    for line, record in enumerate(reader, start=2):
        non_empty = [
            v for k, v in record.items()
            if k is not None and isinstance(v, str) and v.strip()
        ]
        if len(non_empty) < MIN_NON_EMPTY_FIELDS:
            continue
        rows.append(map_row(record, mapping, line, today=today))

    logger.info(
        "Parsed vehicle CSV: %d rows, %d invalid",
        len(rows),
        sum(1 for r in rows if not r.valid),
    )
    return rows, mapping


def import_vehicles(
    db: Session,
    collection_id: str,
    rows: Sequence[VehicleImportRow],
    user_id: str | None = None,
) -> int:
    """Insert valid rows into a collection. Returns the number inserted."""
    inserted = 0
    for row in rows:
        if not row.valid:
            continue
        db.add(
            Vehicle(
                id=generate_uuid(),
                collection_id=collection_id,
                name=row.name,
                vehicle_type=row.vehicle_type,
                year=row.year,
                make=row.make,
                model=row.model,
                nickname=row.nickname,
                vin=row.vin,
                plate_number=row.plate_number,
                mileage=row.mileage,
                notes=row.notes,
                tab_expiration=row.tab_expiration,
                status=row.status,
                maintenance_notes=row.maintenance_notes,
                sale_info_json=json.dumps(row.sale_info.to_dict()) if row.sale_info else None,
                purchase_price=row.purchase_price,
                purchase_date=row.purchase_date,
                created_by=user_id,
            )
        )
        inserted += 1
    db.commit()
    logger.info("Imported %d vehicles into collection %s", inserted, collection_id)
    return inserted
