from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import unquote

import pytest
import requests

from sheet_sync.config import AppConfig
from sheet_sync.credentials import API_KEY_PROPERTY, StoredKeyProvider
from sheet_sync.remote_client import RemoteTableClient
from sheet_sync.store import PropertyStore

TEST_API_KEY = "eyJ-test-key"


class FakeResponse:
    def __init__(
        self,
        status_code: int,
        body: Any = None,
        *,
        text: str | None = None,
        headers: Dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        if text is None:
            text = "" if body is None else json.dumps(body)
        self.text = text

    def json(self) -> Any:
        return json.loads(self.text)


class FakeTableSession:
    """In-memory stand-in for a PostgREST table keyed by ``sl_number``."""

    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.fail_bulk_with: int | None = None
        self.fail_patch_for: set[str] = set()
        self.raise_for: set[str] = set()

    def request(self, method, url, *, params=None, data=None, headers=None, timeout=None):
        payload = json.loads(data) if data is not None else None
        self.calls.append(
            {
                "method": method,
                "url": url,
                "params": dict(params or {}),
                "payload": payload,
                "headers": dict(headers or {}),
                "timeout": timeout,
            }
        )
        params = params or {}
        if method == "GET":
            ordered = sorted(self.rows.values(), key=lambda row: row["sl_number"])
            return FakeResponse(200, ordered)
        if method == "POST" and isinstance(payload, list):
            if self.fail_bulk_with is not None:
                return FakeResponse(self.fail_bulk_with, {"message": "bulk rejected"})
            for row in payload:
                self.rows[row["sl_number"]] = dict(row)
            return FakeResponse(201, text="")
        if method == "POST":
            if payload["sl_number"] in self.raise_for:
                raise requests.ConnectionError("network down")
            if payload["sl_number"] in self.rows:
                return FakeResponse(409, {"message": "duplicate key"})
            self.rows[payload["sl_number"]] = dict(payload)
            return FakeResponse(201, text="")
        if method == "PATCH":
            key = unquote(params["sl_number"]).removeprefix("eq.")
            if key in self.raise_for:
                raise requests.ConnectionError("network down")
            if key in self.fail_patch_for:
                return FakeResponse(500, {"message": "boom"})
            if key not in self.rows:
                return FakeResponse(204, text="", headers={"Content-Range": "*/0"})
            self.rows[key].update(payload)
            return FakeResponse(204, text="", headers={"Content-Range": "0-0/1"})
        raise AssertionError(f"Unexpected request {method} {url}")

    def methods(self) -> List[str]:
        return [call["method"] for call in self.calls]


class FakeSheetsClient:
    """Spreadsheet held as ``{tab name: rows}``."""

    def __init__(self, sheets: Dict[str, List[List[Any]]] | None = None) -> None:
        self.sheets: Dict[str, List[List[Any]]] = sheets or {}
        self.row_reads: List[tuple[str, int]] = []

    def sheet_titles(self) -> List[str]:
        return list(self.sheets)

    def fetch_values(self, sheet_name: str) -> List[List[Any]]:
        return [list(row) for row in self.sheets[sheet_name]]

    def fetch_header_and_row(self, sheet_name: str, row_number: int):
        self.row_reads.append((sheet_name, row_number))
        rows = self.sheets.get(sheet_name, [])
        header = list(rows[0]) if rows else []
        row = list(rows[row_number - 1]) if row_number - 1 < len(rows) else []
        return header, row

    def overwrite_sheet(self, sheet_name: str, values) -> None:
        self.sheets[sheet_name] = [list(row) for row in values]


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig.model_validate(
        {
            "sheets": {
                "credentials_file": str(tmp_path / "service-account.json"),
                "spreadsheet_id": "spreadsheet-123",
            },
            "remote": {"base_url": "https://example.supabase.co/"},
            "auto_sync": {"settle_delay_seconds": 0, "poll_interval_seconds": 1},
        }
    )


@pytest.fixture()
def store(tmp_path: Path):
    property_store = PropertyStore(tmp_path / "state" / "sheet_sync.sqlite")
    yield property_store
    property_store.close()


@pytest.fixture()
def table_session() -> FakeTableSession:
    return FakeTableSession()


@pytest.fixture()
def remote_client(app_config: AppConfig, store: PropertyStore, table_session: FakeTableSession):
    store.set(API_KEY_PROPERTY, TEST_API_KEY)
    return RemoteTableClient(
        app_config.remote,
        StoredKeyProvider(store, app_config.remote),
        session=table_session,
    )


@pytest.fixture()
def tracker_values() -> List[List[Any]]:
    return [
        ["S/L.", "Actionable Items", "Responsible Person", "Due Date", "Status", ""],
        ["2", "Renew permit", "Alice", "2024-03-05", "Done", "ignored"],
        ["", "", "", "", "", ""],
        ["1", "Inspect trucks", "Bob", "03/07/2024", "", ""],
    ]


@pytest.fixture()
def sheets_client(tracker_values) -> FakeSheetsClient:
    return FakeSheetsClient({"sheet1": tracker_values})
