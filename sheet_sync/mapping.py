from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Sequence, Tuple

from .models import CanonicalRecord

LOGGER = logging.getLogger(__name__)

# Header aliases per canonical field, highest priority first.
SL_NUMBER_ALIASES: Tuple[str, ...] = ("S/L.", "SL", "SNo", "Sl No", "Serial")
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "checklist_category": ("Checklist Category", "Category"),
    "oversight_manager": ("Oversight Manager", "Manager"),
    "action_item": ("Actionable Items", "Action Item", "Action"),
    "responsible_person_name": (
        "Responsible Person Name",
        "Responsible Person",
        "Person Name",
    ),
    "responsible_person_designation": ("Responsible Person Designation", "Designation"),
    "responsible_person_email": ("Responsible Person Email", "Email"),
    "reminder_cc_email": ("Reminder Cc email", "CC Email"),
    "reminder_days": ("Reminder days before due date", "Reminder Days"),
    "reminder_sent": ("Reminder Sent?", "Reminder Sent"),
    "status": ("Status",),
    "comments": ("Comments",),
}
FIELD_DEFAULTS: Dict[str, Any] = {
    "reminder_sent": "No",
    "status": "Not Done",
}
DUE_DATE_COLUMN = "Due Date"
REMINDER_COUNT_COLUMN = "Reminder Count"

# Day zero of spreadsheet serial dates.
_SERIAL_EPOCH = date(1899, 12, 30)
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%d.%m.%Y",
    "%d.%m.%Y %H:%M",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d-%b-%Y",
    "%a %b %d %Y",
)
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def build_row_mapping(headers: Sequence[Any], values: Sequence[Any]) -> Dict[str, Any]:
    """Pair header names with cell values, skipping blank headers."""

    row: Dict[str, Any] = {}
    for index, header in enumerate(headers):
        if header is None:
            continue
        name = str(header).strip()
        if not name:
            continue
        value = values[index] if index < len(values) else ""
        row[name] = "" if value is None else value
    return row


def is_blank_row(row: Dict[str, Any]) -> bool:
    return all(value == "" for value in row.values())


def rows_from_values(values: List[List[Any]]) -> List[Dict[str, Any]]:
    """Turn raw tab values (header first) into mapped rows, dropping blank ones."""

    if len(values) <= 1:
        return []

    headers = values[0]
    if not headers:
        return []

    rows = [build_row_mapping(headers, raw) for raw in values[1:]]
    return [row for row in rows if not is_blank_row(row)]


def first_present(row: Dict[str, Any], aliases: Sequence[str], default: Any = "") -> Any:
    for alias in aliases:
        value = row.get(alias)
        if not _is_empty(value):
            return value
    return default


def parse_reminder_count(value: Any) -> int:
    if isinstance(value, bool) or _is_empty(value):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and abs(value) != float("inf") else 0
    match = _LEADING_INT.match(str(value))
    if not match:
        return 0
    return int(match.group(1))


def normalize_date(value: Any) -> str | None:
    """Return ``YYYY-MM-DD`` for anything that looks like a date, else ``None``."""

    try:
        return _normalize_date(value)
    except Exception:  # unparseable input maps to null
        LOGGER.debug("Unable to normalize date value %r", value)
        return None


def _normalize_date(value: Any) -> str | None:
    if _is_empty(value) or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return (_SERIAL_EPOCH + timedelta(days=int(value))).isoformat()
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        return _normalize_date(parsed)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def format_timestamp(moment: datetime | None = None) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""

    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def map_record(
    row: Dict[str, Any],
    sheet_name: str,
    *,
    now: datetime | None = None,
) -> CanonicalRecord:
    fields = {
        name: first_present(row, aliases, FIELD_DEFAULTS.get(name, ""))
        for name, aliases in FIELD_ALIASES.items()
    }
    sl_number = first_present(row, SL_NUMBER_ALIASES)
    if isinstance(sl_number, float) and sl_number.is_integer():
        sl_number = int(sl_number)

    return CanonicalRecord(
        sl_number=str(sl_number),
        due_date=normalize_date(row.get(DUE_DATE_COLUMN)),
        reminder_count=parse_reminder_count(row.get(REMINDER_COUNT_COLUMN)),
        sheet_source=sheet_name,
        last_synced=format_timestamp(now),
        **fields,
    )
