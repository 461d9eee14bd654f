from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .config import AppConfig
from .google_sheets import GoogleSheetsClient
from .models import EditEvent, Trigger
from .pipeline import resolve_source_sheet, sync_row, sync_sheet
from .remote_client import RemoteTableClient
from .store import PropertyStore

LOGGER = logging.getLogger(__name__)

EDIT_HANDLER = "on_sheet_edit"
SCHEDULED_HANDLER = "scheduled_sync"
SYNC_HANDLERS = (EDIT_HANDLER, SCHEDULED_HANDLER)

KIND_ON_EDIT = "on_edit"
KIND_TIME = "time"

_TRIGGERS_PROPERTY = "TRIGGERS"


class TriggerRegistry:
    """Persistent list of installed triggers, addressed by handler name."""

    def __init__(self, store: PropertyStore) -> None:
        self._store = store

    def list(self) -> List[Trigger]:
        raw = self._store.get_json(_TRIGGERS_PROPERTY, default=[])
        triggers: List[Trigger] = []
        for item in raw or []:
            try:
                triggers.append(Trigger.from_dict(item))
            except (KeyError, TypeError):
                LOGGER.warning("Ignoring malformed trigger entry: %r", item)
        return triggers

    def _save(self, triggers: List[Trigger]) -> None:
        self._store.set_json(_TRIGGERS_PROPERTY, [trigger.to_dict() for trigger in triggers])

    def find(self, handler: str) -> Optional[Trigger]:
        for trigger in self.list():
            if trigger.handler == handler:
                return trigger
        return None

    def install(self, handler: str, kind: str, *, every_hours: int | None = None) -> Trigger:
        trigger = Trigger(
            trigger_id=uuid.uuid4().hex,
            handler=handler,
            kind=kind,
            created_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            every_hours=every_hours,
        )
        triggers = self.list()
        triggers.append(trigger)
        self._save(triggers)
        LOGGER.debug("Installed %s trigger for %s", kind, handler)
        return trigger

    def remove(self, *handlers: str) -> int:
        """Delete every trigger bound to one of ``handlers``; return how many."""

        triggers = self.list()
        kept = [trigger for trigger in triggers if trigger.handler not in handlers]
        removed = len(triggers) - len(kept)
        if removed:
            self._save(kept)
        return removed


def enable_auto_sync(registry: TriggerRegistry, config: AppConfig) -> List[Trigger]:
    """Install one edit trigger and one scheduled trigger, replacing old ones."""

    removed = registry.remove(*SYNC_HANDLERS)
    if removed:
        LOGGER.info("Removed %s existing sync triggers", removed)
    return [
        registry.install(EDIT_HANDLER, KIND_ON_EDIT),
        registry.install(
            SCHEDULED_HANDLER,
            KIND_TIME,
            every_hours=config.auto_sync.schedule_every_hours,
        ),
    ]


def disable_auto_sync(registry: TriggerRegistry) -> int:
    removed = registry.remove(*SYNC_HANDLERS)
    LOGGER.info("Removed %s sync triggers", removed)
    return removed


def on_sheet_edit(
    event: EditEvent,
    *,
    config: AppConfig,
    sheets_client: GoogleSheetsClient,
    remote_client: RemoteTableClient,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Sync the edited row. Returns whether a sync was attempted; never raises."""

    auto_sync = config.auto_sync
    try:
        if event.sheet_name not in auto_sync.edit_sheet_names:
            return False
        if not 1 < event.row < auto_sync.max_row:
            LOGGER.debug("Ignoring edit on row %s of '%s'", event.row, event.sheet_name)
            return False

        sleep(auto_sync.settle_delay_seconds)
        LOGGER.debug(
            "Edit at row %s column %s of '%s'; syncing row",
            event.row,
            event.column,
            event.sheet_name,
        )
        sync_row(sheets_client, remote_client, event.sheet_name, event.row)
        return True
    except Exception:
        LOGGER.exception("Auto-sync failed for row %s of '%s'", event.row, event.sheet_name)
        return True


def scheduled_sync(
    *,
    config: AppConfig,
    sheets_client: GoogleSheetsClient,
    remote_client: RemoteTableClient,
) -> int:
    """Run a full sync of the source tab; failures are logged, never raised."""

    try:
        sheet_name = resolve_source_sheet(sheets_client, config.sheets)
        return sync_sheet(sheets_client, remote_client, sheet_name)
    except Exception:
        LOGGER.exception("Scheduled sync failed")
        return 0
