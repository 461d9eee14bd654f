from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(slots=True)
class CanonicalRecord:
    """Normalized tracker row in the shape stored by the remote table."""

    sl_number: str
    checklist_category: Any
    oversight_manager: Any
    action_item: Any
    responsible_person_name: Any
    responsible_person_designation: Any
    responsible_person_email: Any
    reminder_cc_email: Any
    due_date: Optional[str]
    reminder_days: Any
    reminder_sent: Any
    reminder_count: int
    status: Any
    comments: Any
    sheet_source: str
    last_synced: str

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class EditEvent:
    """A cell edit inside a spreadsheet tab (1-based coordinates)."""

    sheet_name: str
    row: int
    column: int


@dataclass(frozen=True, slots=True)
class Trigger:
    """Registered trigger; ``every_hours`` is only set for time-based triggers."""

    trigger_id: str
    handler: str
    kind: str
    created_at: str
    every_hours: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trigger":
        return cls(
            trigger_id=str(data["trigger_id"]),
            handler=str(data["handler"]),
            kind=str(data["kind"]),
            created_at=str(data.get("created_at", "")),
            every_hours=data.get("every_hours"),
        )
