"""Parse vehicle lifecycle status out of a free-text notes field.

Spreadsheets exported by collectors often record a sale inline:

    "SOLD 7/25 $10,000"          -> sold, date 7/25, amount 10000
    "Traded in Vegas $7,000"     -> traded, amount 7000, notes "in Vegas"
    "STORED - winter"            -> stored, notes "winter"
    "Needs new chain"            -> active, notes unchanged

This is a heuristic, not a grammar. Ambiguous input resolves first-match-wins
per pattern.
"""

import re
from dataclasses import dataclass
from typing import Any

from collectors.db.models import VehicleStatus
from collectors.utils.dates import (
    format_date,
    format_date_for_db,
    parse_flexible_date,
)

_SOLD_PREFIX = re.compile(r"^SOLD\b\s*", re.IGNORECASE)
_TRADED_PREFIX = re.compile(r"^TRADED?\b\s*", re.IGNORECASE)
_STORED_PREFIX = re.compile(r"^STORED\b[\s-]*", re.IGNORECASE)

# Numeric tokens that are not part of a date (no adjacent "/" or "-").
_AMOUNT_PATTERN = re.compile(
    r"(?<![\w/.-])(\$?)(\d{1,3}(?:,\d{3})+|\d+)(\.\d{1,2})?(?![\w/-])"
)

# Amounts at or below this are left in the text (model-year fragments, counts).
MIN_SALE_AMOUNT = 100

_DATE_PATTERNS = (
    re.compile(r"(\d{1,2}/\d{1,2}/\d{2,4})"),
    re.compile(r"(\d{1,2}/\d{1,2})"),
    re.compile(r"(\d{4}-\d{2}-\d{2})"),
)

_EDGE_PUNCTUATION = re.compile(r"^[\s,-]+|[\s,-]+$")
_WHITESPACE_RUN = re.compile(r"\s{2,}")


@dataclass
class SaleInfo:
    """Structured sale/trade details recovered from notes."""

    date: str | None = None
    amount: int | float | None = None
    type: str | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize without unset fields."""
        return {
            key: value
            for key, value in (
                ("date", self.date),
                ("amount", self.amount),
                ("type", self.type),
                ("notes", self.notes),
            )
            if value is not None
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SaleInfo | None":
        if not data:
            return None
        return cls(
            date=data.get("date"),
            amount=data.get("amount"),
            type=data.get("type"),
            notes=data.get("notes"),
        )


@dataclass
class ParsedStatus:
    """Result of ``parse_status_from_notes``."""

    status: VehicleStatus
    sale_info: SaleInfo | None
    cleaned_notes: str


def _to_number(integer_part: str, fraction: str | None) -> int | float:
    raw = integer_part.replace(",", "") + (fraction or "")
    value = float(raw)
    return int(value) if value.is_integer() else value


def _extract_amount(text: str) -> tuple[int | float | None, str]:
    """Pull the first plausible sale price out of ``text``.

    Dollar-prefixed tokens win over bare numbers. Only values above
    MIN_SALE_AMOUNT count as prices.
    """
    candidates = list(_AMOUNT_PATTERN.finditer(text))
    ordered = [m for m in candidates if m.group(1)] + [m for m in candidates if not m.group(1)]
    for match in ordered:
        amount = _to_number(match.group(2), match.group(3))
        if amount > MIN_SALE_AMOUNT:
            remaining = text[: match.start()] + text[match.end():]
            return amount, remaining
    return None, text


def _extract_date(text: str, today=None) -> tuple[str | None, str]:
    for pattern in _DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        parsed = parse_flexible_date(match.group(1), today=today)
        if parsed:
            remaining = text[: match.start()] + text[match.end():]
            return format_date_for_db(parsed), remaining
    return None, text


def _clean(text: str) -> str:
    text = _WHITESPACE_RUN.sub(" ", text.strip())
    return _EDGE_PUNCTUATION.sub("", text).strip()


def extract_sale_info(text: str, today=None) -> SaleInfo:
    """Extract amount, date and leftover notes from the text after a keyword."""
    info = SaleInfo()
    remaining = text.strip()

    info.amount, remaining = _extract_amount(remaining)
    info.date, remaining = _extract_date(remaining, today=today)

    leftover = _clean(remaining)
    if leftover:
        info.notes = leftover
    return info


def parse_status_from_notes(notes: str | None, today=None) -> ParsedStatus:
    """Detect a leading status keyword and split out sale details.

    Args:
        notes: Free-text notes, typically a spreadsheet column.
        today: Reference date for year-less sale dates.

    Returns:
        ParsedStatus. Unrecognized text yields ``active`` with the trimmed
        notes passed through unchanged.
    """
    if not notes or not isinstance(notes, str):
        return ParsedStatus(status=VehicleStatus.active, sale_info=None, cleaned_notes="")

    trimmed = notes.strip()

    for prefix, status in (
        (_SOLD_PREFIX, VehicleStatus.sold),
        (_TRADED_PREFIX, VehicleStatus.traded),
    ):
        match = prefix.match(trimmed)
        if match:
            info = extract_sale_info(trimmed[match.end():], today=today)
            info.type = status.value
            return ParsedStatus(
                status=status,
                sale_info=info,
                cleaned_notes=info.notes or "",
            )

    match = _STORED_PREFIX.match(trimmed)
    if match:
        return ParsedStatus(
            status=VehicleStatus.stored,
            sale_info=None,
            cleaned_notes=trimmed[match.end():].strip(),
        )

    return ParsedStatus(status=VehicleStatus.active, sale_info=None, cleaned_notes=trimmed)


def _format_amount(amount: int | float) -> str:
    if isinstance(amount, float) and not amount.is_integer():
        return f"${amount:,.2f}"
    return f"${int(amount):,}"


def format_sale_info(sale_info: SaleInfo | None) -> str:
    """Human-readable summary, e.g. ``Sold - Jul 25, 2025 - $10,000 - to neighbor``."""
    if sale_info is None:
        return ""

    parts: list[str] = []
    if sale_info.type:
        parts.append("Sold" if sale_info.type == VehicleStatus.sold.value else "Traded")
    if sale_info.date:
        parts.append(format_date(sale_info.date))
    if sale_info.amount:
        parts.append(_format_amount(sale_info.amount))
    if sale_info.notes:
        parts.append(sale_info.notes)
    return " - ".join(part for part in parts if part)


def encode_status_in_notes(
    status: str,
    sale_info: SaleInfo | None,
    notes: str | None,
) -> str:
    """Inverse of ``parse_status_from_notes`` for CSV export.

    Active vehicles keep their notes as-is; anything else gets a leading
    status keyword plus sale date/amount so a re-import restores it.
    """
    notes = notes or ""
    if not status or status == VehicleStatus.active.value:
        return notes

    details = ""
    if sale_info is not None:
        if sale_info.date:
            details += f" {sale_info.date}"
        if sale_info.amount:
            details += f" {_format_amount(sale_info.amount)}"

    suffix = f" - {notes}" if notes else ""
    return f"{status.upper()}{details}{suffix}"
