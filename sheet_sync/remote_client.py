from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from .config import RemoteConfig
from .credentials import KeyProvider
from .models import CanonicalRecord

LOGGER = logging.getLogger(__name__)

_NOT_FOUND = 404


class RemoteTableError(RuntimeError):
    """Raised when the remote table answers a read with a non-2xx status."""


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _payload(record: CanonicalRecord | Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(record, CanonicalRecord):
        return record.to_payload()
    return dict(record)


def _matched_nothing(response: requests.Response) -> bool:
    """Whether an update response reports zero affected rows."""

    if response.status_code == _NOT_FOUND:
        return True
    content_range = response.headers.get("Content-Range", "")
    _, _, total = content_range.rpartition("/")
    return total.strip() == "0"


class RemoteTableClient:
    """Synchronous client for a PostgREST table keyed by a unique column."""

    def __init__(
        self,
        conf: RemoteConfig,
        key_provider: KeyProvider,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._conf = conf
        self._key_provider = key_provider
        self._session = session or requests.Session()

    @property
    def table_url(self) -> str:
        return f"{self._conf.base_url}/rest/v1/{self._conf.table}"

    def _headers(self, prefer: str | None = None) -> Dict[str, str]:
        api_key = self._key_provider.get_api_key()
        headers = {
            "Authorization": f"Bearer {api_key}",
            "apikey": api_key,
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        *,
        params: Dict[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> requests.Response:
        data = None if payload is None else json.dumps(payload, ensure_ascii=False)
        return self._session.request(
            method,
            self.table_url,
            params=params,
            data=data,
            headers=self._headers(prefer),
            timeout=self._conf.request_timeout,
        )

    # Bulk --------------------------------------------------------------------
    def upsert(self, records: Sequence[CanonicalRecord | Dict[str, Any]]) -> List[Any]:
        """Insert or merge all records in one request.

        Falls back to per-record updates when the bulk request is rejected.
        Transport errors are left to the caller.
        """

        payload = [_payload(record) for record in records]
        if not payload:
            return []

        response = self._request(
            "POST",
            params={"on_conflict": self._conf.key_column},
            payload=payload,
            prefer="resolution=merge-duplicates",
        )
        if _is_success(response.status_code):
            try:
                body = response.json()
            except ValueError:
                return payload
            if not isinstance(body, list):
                return payload
            return body

        LOGGER.warning(
            "Bulk upsert of %s records failed with status %s (%s); updating records individually",
            len(payload),
            response.status_code,
            response.text,
        )
        return self.update_records_individually(payload)

    def update_records_individually(
        self, records: Sequence[CanonicalRecord | Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        synced: List[Dict[str, Any]] = []
        for record in records:
            payload = _payload(record)
            key_value = payload.get(self._conf.key_column)
            if not key_value:
                continue
            try:
                success = self.update_row(key_value, payload)
            except requests.RequestException:
                LOGGER.exception("Error updating record %s; skipping", key_value)
                continue
            if success:
                synced.append(payload)
        return synced

    # Single row --------------------------------------------------------------
    def update_row(self, key_value: Any, record: CanonicalRecord | Dict[str, Any]) -> bool:
        """Update the row matching ``key_value``; create it when it does not exist."""

        if not key_value:
            raise ValueError(f"{self._conf.key_column} is required for a single row update")

        try:
            response = self._request(
                "PATCH",
                params={self._conf.key_column: f"eq.{key_value}"},
                payload=_payload(record),
                prefer="return=minimal, count=exact",
            )
        except requests.RequestException:
            LOGGER.exception("PATCH request for %s failed", key_value)
            return False

        if _is_success(response.status_code) and not _matched_nothing(response):
            return True
        if _matched_nothing(response):
            LOGGER.info("Record not found, creating new one for %s", key_value)
            try:
                return self.create_record(record)
            except requests.RequestException:
                LOGGER.exception("POST request for %s failed", key_value)
                return False

        LOGGER.error("PATCH failed: %s - %s", response.status_code, response.text)
        return False

    def create_record(self, record: CanonicalRecord | Dict[str, Any]) -> bool:
        response = self._request("POST", payload=_payload(record), prefer="return=minimal")
        if not _is_success(response.status_code):
            LOGGER.error("POST failed: %s - %s", response.status_code, response.text)
            return False
        return True

    # Reading -----------------------------------------------------------------
    def fetch_rows(self) -> List[Dict[str, Any]]:
        """Return every remote row ordered by the key column."""

        response = self._request(
            "GET",
            params={"select": "*", "order": f"{self._conf.key_column}.asc"},
        )
        if not _is_success(response.status_code):
            msg = f"Reading {self._conf.table} failed: {response.status_code} - {response.text}"
            raise RemoteTableError(msg)
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteTableError(f"Reading {self._conf.table} returned invalid JSON") from exc
        if not isinstance(body, list):
            raise RemoteTableError(f"Reading {self._conf.table} returned {type(body).__name__}")
        return body
