from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .config import AppConfig
from .google_sheets import GoogleSheetsClient
from .models import EditEvent
from .remote_client import RemoteTableClient
from .triggers import (
    EDIT_HANDLER,
    SCHEDULED_HANDLER,
    TriggerRegistry,
    on_sheet_edit,
    scheduled_sync,
)

LOGGER = logging.getLogger(__name__)

Snapshot = List[List[Any]]


def _cell(rows: Snapshot, row_idx: int, col_idx: int) -> Any:
    if row_idx >= len(rows):
        return ""
    row = rows[row_idx]
    if col_idx >= len(row):
        return ""
    return row[col_idx]


def diff_snapshots(sheet_name: str, before: Snapshot, after: Snapshot) -> List[EditEvent]:
    """One event per changed row, pointing at its first changed column."""

    events: List[EditEvent] = []
    for row_idx in range(max(len(before), len(after))):
        width = max(
            len(before[row_idx]) if row_idx < len(before) else 0,
            len(after[row_idx]) if row_idx < len(after) else 0,
        )
        for col_idx in range(width):
            if _cell(before, row_idx, col_idx) != _cell(after, row_idx, col_idx):
                events.append(EditEvent(sheet_name, row_idx + 1, col_idx + 1))
                break
    return events


class AutoSyncRunner:
    """Polling host that turns sheet changes and elapsed time into trigger calls.

    Runs on a single thread: every handler call finishes before the next poll.
    """

    def __init__(
        self,
        config: AppConfig,
        sheets_client: GoogleSheetsClient,
        remote_client: RemoteTableClient,
        registry: TriggerRegistry,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._sheets = sheets_client
        self._remote = remote_client
        self._registry = registry
        self._sleep = sleep
        self._clock = clock
        self._snapshots: Dict[str, Snapshot] = {}
        self._next_scheduled_run: Optional[float] = None

    def poll_edits(self) -> List[EditEvent]:
        titles = set(self._sheets.sheet_titles())
        events: List[EditEvent] = []
        for sheet_name in self._config.auto_sync.edit_sheet_names:
            if sheet_name not in titles:
                continue
            try:
                current = self._sheets.fetch_values(sheet_name)
            except Exception:
                # Keep the old baseline so the edit shows up on the next poll
                LOGGER.exception("Failed to read '%s'; retrying on next poll", sheet_name)
                continue
            previous = self._snapshots.get(sheet_name)
            self._snapshots[sheet_name] = current
            if previous is None:
                LOGGER.debug("Captured baseline snapshot of '%s'", sheet_name)
                continue
            events.extend(diff_snapshots(sheet_name, previous, current))
        return events

    def run_once(self) -> None:
        edit_trigger = self._registry.find(EDIT_HANDLER)
        schedule_trigger = self._registry.find(SCHEDULED_HANDLER)

        if edit_trigger is None:
            self._snapshots.clear()
        else:
            try:
                events = self.poll_edits()
            except Exception:
                LOGGER.exception("Polling for edits failed")
                events = []
            for event in events:
                on_sheet_edit(
                    event,
                    config=self._config,
                    sheets_client=self._sheets,
                    remote_client=self._remote,
                    sleep=self._sleep,
                )

        if schedule_trigger is None:
            self._next_scheduled_run = None
            return

        now = self._clock()
        interval = (schedule_trigger.every_hours or 1) * 3600.0
        if self._next_scheduled_run is None:
            self._next_scheduled_run = now + interval
        elif now >= self._next_scheduled_run:
            LOGGER.info("Running scheduled sync")
            scheduled_sync(
                config=self._config,
                sheets_client=self._sheets,
                remote_client=self._remote,
            )
            self._next_scheduled_run = now + interval

    def run(self, max_cycles: int | None = None) -> None:
        cycles = 0
        LOGGER.info(
            "Trigger host started; polling every %.1f seconds",
            self._config.auto_sync.poll_interval_seconds,
        )
        while max_cycles is None or cycles < max_cycles:
            self.run_once()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            self._sleep(self._config.auto_sync.poll_interval_seconds)
