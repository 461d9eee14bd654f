from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

DEFAULT_ALTERNATIVE_SHEET_NAMES = ["Sheet1", "SHEET1", "Data", "Main", "Transport Plan"]


class SheetsConfig(BaseModel):
    credentials_file: Path = Field(
        ..., description="Path to the Google service account JSON credentials"
    )
    spreadsheet_id: str = Field(..., description="ID of the spreadsheet holding the tracker")
    source_sheet_name: str = Field(
        "sheet1", description="Tab name that is synchronized to the remote table"
    )
    alternative_sheet_names: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALTERNATIVE_SHEET_NAMES),
        description="Tab names tried in order when the source tab does not exist",
    )
    view_sheet_name: str = Field(
        "Supabase Data",
        description="Tab that receives the read-back of the remote table",
    )

    @field_validator("credentials_file")
    @classmethod
    def _expand_credentials_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def candidate_sheet_names(self) -> List[str]:
        names = [self.source_sheet_name]
        for name in self.alternative_sheet_names:
            if name not in names:
                names.append(name)
        return names


class RemoteConfig(BaseModel):
    """Settings for the PostgREST endpoint that stores synced rows."""

    base_url: str = Field(..., description="Project URL, e.g. https://<ref>.supabase.co")
    table: str = Field("met", description="Name of the remote table")
    key_column: str = Field(
        "sl_number",
        description="Unique column used as the conflict key for upserts and updates",
    )
    api_key_env: str | None = Field(
        None,
        description="Optional environment variable that overrides the stored API key",
    )
    api_key_prefix: str = Field(
        "eyJ",
        description="Prefix every valid API key starts with",
    )
    request_timeout: int = Field(
        30,
        gt=0,
        description="Timeout in seconds for API requests",
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("base_url must not be empty")
        return value


class AutoSyncConfig(BaseModel):
    edit_sheet_names: List[str] = Field(
        default_factory=lambda: ["sheet1", "Sheet1", "Data", "Main", "Transport Plan"],
        description="Tabs whose edits are pushed to the remote table",
    )
    settle_delay_seconds: float = Field(
        1.0,
        ge=0.0,
        description="Pause before reading an edited row so multi-cell pastes can finish",
    )
    max_row: int = Field(
        1000,
        gt=1,
        description="Edits on this row or any row after it are ignored",
    )
    schedule_every_hours: int = Field(
        1,
        ge=1,
        description="Interval of the scheduled full sync",
    )
    poll_interval_seconds: float = Field(
        5.0,
        gt=0.0,
        description="How often the trigger host checks the sheet for edits",
    )


class AppConfig(BaseModel):
    sheets: SheetsConfig
    remote: RemoteConfig
    auto_sync: AutoSyncConfig = Field(default_factory=AutoSyncConfig)
    state_path: Path | None = Field(
        None,
        description="Optional path to the SQLite file with stored properties and triggers",
    )

    @model_validator(mode="after")
    def _validate_view_sheet(self) -> "AppConfig":
        if self.sheets.view_sheet_name in self.sheets.candidate_sheet_names:
            msg = "view_sheet_name must differ from the source sheet names"
            raise ValueError(msg)
        return self

    @field_validator("state_path")
    @classmethod
    def _expand_state_path(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        return value.expanduser().resolve()


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from a YAML file and return a validated object."""

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if data is None:
        msg = f"Configuration file is empty: {config_path}"
        raise ValueError(msg)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
