from __future__ import annotations

import logging
from typing import Iterable, Tuple

import requests

from .credentials import ConfigurationError
from .models import Trigger
from .remote_client import RemoteTableClient, RemoteTableError
from .triggers import EDIT_HANDLER, SCHEDULED_HANDLER

LOGGER = logging.getLogger(__name__)


def describe_auto_sync_status(triggers: Iterable[Trigger]) -> str:
    triggers = list(triggers)
    lines = ["Auto-Sync Status:", ""]
    has_edit = False
    has_scheduled = False
    for trigger in triggers:
        if trigger.handler == EDIT_HANDLER:
            has_edit = True
            lines.append("Edit Trigger: ACTIVE (runs on cell edit)")
        elif trigger.handler == SCHEDULED_HANDLER:
            has_scheduled = True
            hours = trigger.every_hours or 1
            period = "hourly" if hours == 1 else f"every {hours} hours"
            lines.append(f"Scheduled Trigger: ACTIVE (runs {period})")
    if not has_edit:
        lines.append("Edit Trigger: MISSING")
    if not has_scheduled:
        lines.append("Scheduled Trigger: MISSING")
    lines.append("")
    lines.append(f"Total triggers: {len(triggers)}")
    return "\n".join(lines)


def check_connection(remote_client: RemoteTableClient) -> Tuple[bool, str]:
    """Read the remote table once and describe the outcome."""

    try:
        rows = remote_client.fetch_rows()
    except (ConfigurationError, RemoteTableError, requests.RequestException) as exc:
        LOGGER.debug("Connection test failed", exc_info=True)
        return False, f"Connection failed:\n{exc}"
    if not rows:
        return True, "Connection works but no data found."
    return True, (
        f"Connection successful!\n\nFound {len(rows)} records.\n"
        "Data is ordered by SL number."
    )
