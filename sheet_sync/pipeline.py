from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from .config import SheetsConfig
from .google_sheets import GoogleSheetsClient
from .mapping import build_row_mapping, is_blank_row, map_record, rows_from_values
from .models import CanonicalRecord
from .remote_client import RemoteTableClient

LOGGER = logging.getLogger("sheet_sync.pipeline")


def resolve_source_sheet(sheets_client: GoogleSheetsClient, conf: SheetsConfig) -> str:
    """Return the first configured source tab that exists in the spreadsheet."""

    titles = set(sheets_client.sheet_titles())
    for name in conf.candidate_sheet_names:
        if name in titles:
            return name
    msg = (
        "Sheet not found. Tried: "
        + ", ".join(conf.candidate_sheet_names)
        + ". Update 'source_sheet_name' in the configuration."
    )
    raise ValueError(msg)


def build_records(
    values: List[List[Any]],
    sheet_name: str,
    *,
    now: datetime | None = None,
) -> List[CanonicalRecord]:
    return [map_record(row, sheet_name, now=now) for row in rows_from_values(values)]


def sync_sheet(
    sheets_client: GoogleSheetsClient,
    remote_client: RemoteTableClient,
    sheet_name: str,
) -> int:
    """Push every data row of a tab to the remote table; return the synced count."""

    values = sheets_client.fetch_values(sheet_name)
    records = build_records(values, sheet_name)
    keyed = [record for record in records if record.sl_number]
    if len(keyed) < len(records):
        LOGGER.warning(
            "Skipping %s rows without a serial number in '%s'",
            len(records) - len(keyed),
            sheet_name,
        )
    records = keyed
    if not records:
        LOGGER.info("No data rows found in '%s'", sheet_name)
        return 0

    LOGGER.info("Syncing %s rows from '%s'", len(records), sheet_name)
    synced = remote_client.upsert(records)
    LOGGER.info("Synced %s of %s rows from '%s'", len(synced), len(records), sheet_name)
    return len(synced)


def sync_row(
    sheets_client: GoogleSheetsClient,
    remote_client: RemoteTableClient,
    sheet_name: str,
    row_number: int,
) -> bool:
    """Push a single row; rows that are blank or lack a serial number are skipped."""

    header, values = sheets_client.fetch_header_and_row(sheet_name, row_number)
    if not header:
        LOGGER.debug("Sheet '%s' has no header row; nothing to sync", sheet_name)
        return False

    row = build_row_mapping(header, values)
    if is_blank_row(row):
        LOGGER.debug("Row %s of '%s' is empty; skipping", row_number, sheet_name)
        return False

    record = map_record(row, sheet_name)
    if not record.sl_number:
        LOGGER.debug("Row %s of '%s' has no serial number; skipping", row_number, sheet_name)
        return False

    success = remote_client.update_row(record.sl_number, record)
    if not success:
        LOGGER.error("Failed to sync row %s of '%s'", row_number, sheet_name)
    return success


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def remote_rows_to_values(rows: List[Dict[str, Any]]) -> List[List[Any]]:
    """Lay out remote rows as a table whose header follows the first row's keys."""

    if not rows:
        return []
    header = list(rows[0].keys())
    table: List[List[Any]] = [header]
    for item in rows:
        table.append([_cell_value(item.get(column)) for column in header])
    return table


def view_synced_data(
    sheets_client: GoogleSheetsClient,
    remote_client: RemoteTableClient,
    view_sheet_name: str,
) -> int:
    rows = remote_client.fetch_rows()
    sheets_client.overwrite_sheet(view_sheet_name, remote_rows_to_values(rows))
    LOGGER.info("Wrote %s remote rows to '%s'", len(rows), view_sheet_name)
    return len(rows)
