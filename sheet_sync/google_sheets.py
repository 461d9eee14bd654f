from __future__ import annotations

from typing import Any, Callable, Iterable, List, Sequence

import logging
import ssl
import time

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest
from httplib2 import HttpLib2Error

from .config import SheetsConfig
from .credentials import ConfigurationError

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_MAX_RETRY_ATTEMPTS = 4
_INITIAL_BACKOFF_SECONDS = 1.0
_MAX_BACKOFF_SECONDS = 8.0
_RETRYABLE_EXCEPTIONS = (ssl.SSLEOFError, HttpLib2Error)


def _quote_sheet(sheet_name: str) -> str:
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'"


class GoogleSheetsClient:
    """Thin wrapper around the Google Sheets API for this project."""

    def __init__(self, conf: SheetsConfig) -> None:
        self._conf = conf
        self._service: Resource | None = None

    @property
    def spreadsheet_id(self) -> str:
        return self._conf.spreadsheet_id

    def _service_client(self) -> Resource:
        if self._service is None:
            try:
                creds = Credentials.from_service_account_file(
                    str(self._conf.credentials_file), scopes=SCOPES
                )
            except OSError as exc:
                msg = f"Cannot read service account file {self._conf.credentials_file}: {exc}"
                raise ConfigurationError(msg) from exc
            self._service = build("sheets", "v4", credentials=creds)
        return self._service

    # Reading -----------------------------------------------------------------
    def sheet_properties(self) -> List[dict]:
        """Return the ``properties`` block of every tab in the spreadsheet."""

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return service.spreadsheets().get(
                spreadsheetId=self._conf.spreadsheet_id,
                fields="sheets.properties",
            )

        result = self._execute_with_retry(_build_request, operation="fetch sheet list")
        return [sheet.get("properties", {}) for sheet in result.get("sheets", [])]

    def sheet_titles(self) -> List[str]:
        return [props.get("title", "") for props in self.sheet_properties()]

    def fetch_values(self, sheet_name: str) -> List[List[Any]]:
        """Load all values from a tab, header row included."""

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=self._conf.spreadsheet_id,
                    range=_quote_sheet(sheet_name),
                )
            )

        result = self._execute_with_retry(_build_request, operation=f"fetch values of {sheet_name}")
        return result.get("values", [])

    def fetch_header_and_row(
        self, sheet_name: str, row_number: int
    ) -> tuple[List[Any], List[Any]]:
        """Load the header row and a single data row of a tab."""

        if row_number < 1:
            msg = f"Row numbers must be 1-based; received {row_number}"
            raise ValueError(msg)

        sheet_ref = _quote_sheet(sheet_name)
        ranges = [f"{sheet_ref}!1:1", f"{sheet_ref}!{row_number}:{row_number}"]

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .batchGet(
                    spreadsheetId=self._conf.spreadsheet_id,
                    ranges=ranges,
                )
            )

        result = self._execute_with_retry(
            _build_request, operation=f"fetch row {row_number} of {sheet_name}"
        )
        value_ranges = result.get("valueRanges", [])

        def _first_row(index: int) -> List[Any]:
            if index >= len(value_ranges):
                return []
            rows = value_ranges[index].get("values", [])
            return list(rows[0]) if rows else []

        return _first_row(0), _first_row(1)

    # Writing -----------------------------------------------------------------
    def ensure_sheet(self, sheet_name: str) -> int:
        """Return the sheet id of ``sheet_name``, creating the tab if needed."""

        for props in self.sheet_properties():
            if props.get("title") == sheet_name:
                return int(props.get("sheetId", 0))

        def _add_request() -> HttpRequest:
            service = self._service_client()
            return service.spreadsheets().batchUpdate(
                spreadsheetId=self._conf.spreadsheet_id,
                body={"requests": [{"addSheet": {"properties": {"title": sheet_name}}}]},
            )

        LOGGER.info("Creating sheet '%s'", sheet_name)
        result = self._execute_with_retry(_add_request, operation=f"add sheet {sheet_name}")
        replies = result.get("replies", [{}])
        return int(replies[0].get("addSheet", {}).get("properties", {}).get("sheetId", 0))

    def overwrite_sheet(self, sheet_name: str, values: Iterable[Sequence[Any]]) -> None:
        """Replace the tab contents with ``values`` and bold the header row."""

        rows = [list(row) for row in values]
        sheet_id = self.ensure_sheet(sheet_name)
        sheet_ref = _quote_sheet(sheet_name)

        def _clear_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .clear(
                    spreadsheetId=self._conf.spreadsheet_id,
                    range=sheet_ref,
                )
            )

        self._execute_with_retry(_clear_request, operation=f"clear sheet {sheet_name}")
        if not rows:
            return

        def _update_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .update(
                    spreadsheetId=self._conf.spreadsheet_id,
                    range=f"{sheet_ref}!A1",
                    valueInputOption="RAW",
                    body={"values": rows},
                )
            )

        self._execute_with_retry(_update_request, operation=f"write sheet {sheet_name}")

        column_count = len(rows[0])
        format_requests = [
            {
                "repeatCell": {
                    "range": {
                        "sheetId": sheet_id,
                        "startRowIndex": 0,
                        "endRowIndex": 1,
                        "startColumnIndex": 0,
                        "endColumnIndex": column_count,
                    },
                    "cell": {"userEnteredFormat": {"textFormat": {"bold": True}}},
                    "fields": "userEnteredFormat.textFormat.bold",
                }
            },
            {
                "autoResizeDimensions": {
                    "dimensions": {
                        "sheetId": sheet_id,
                        "dimension": "COLUMNS",
                        "startIndex": 0,
                        "endIndex": column_count,
                    }
                }
            },
        ]

        def _format_request() -> HttpRequest:
            service = self._service_client()
            return service.spreadsheets().batchUpdate(
                spreadsheetId=self._conf.spreadsheet_id,
                body={"requests": format_requests},
            )

        self._execute_with_retry(_format_request, operation=f"format header of {sheet_name}")

    # Internal ----------------------------------------------------------------
    def _reset_service(self) -> None:
        self._service = None

    def _execute_with_retry(
        self,
        request_builder: Callable[[], HttpRequest],
        *,
        operation: str,
    ) -> dict:
        """Execute a Sheets API request with retries for transient failures."""

        backoff = _INITIAL_BACKOFF_SECONDS
        last_exc: Exception | None = None

        for attempt in range(1, _MAX_RETRY_ATTEMPTS + 1):
            try:
                return request_builder().execute()
            except _RETRYABLE_EXCEPTIONS as exc:
                last_exc = exc
            except HttpError as exc:
                status = getattr(exc.resp, "status", None)
                if status not in _RETRYABLE_STATUS_CODES:
                    raise
                last_exc = exc

            if attempt == _MAX_RETRY_ATTEMPTS:
                raise last_exc

            wait_time = min(backoff, _MAX_BACKOFF_SECONDS)
            LOGGER.warning(
                "Sheets API %s failed on attempt %s/%s (%s); retrying in %.1f seconds",
                operation,
                attempt,
                _MAX_RETRY_ATTEMPTS,
                last_exc,
                wait_time,
            )
            self._reset_service()
            time.sleep(wait_time)
            backoff *= 2

        if last_exc is not None:  # pragma: no cover - belt and suspenders.
            raise last_exc
        raise RuntimeError("Sheets API request failed without capturing an exception")
