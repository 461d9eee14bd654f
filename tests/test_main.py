from __future__ import annotations

from pathlib import Path

import pytest

import sheet_sync.main as main_module
from conftest import FakeSheetsClient
from sheet_sync.main import main
from sheet_sync.remote_client import RemoteTableClient
from sheet_sync.store import PropertyStore

VALID_KEY = "eyJhbGciOiJIUzI1NiJ9.test"


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
sheets:
  credentials_file: {tmp_path / 'service-account.json'}
  spreadsheet_id: abc123
remote:
  base_url: https://example.supabase.co
auto_sync:
  settle_delay_seconds: 0
state_path: {tmp_path / 'state.sqlite'}
""",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def fake_backends(monkeypatch, sheets_client: FakeSheetsClient, table_session):
    monkeypatch.setattr(main_module, "GoogleSheetsClient", lambda conf: sheets_client)
    monkeypatch.setattr(
        main_module,
        "RemoteTableClient",
        lambda conf, provider: RemoteTableClient(conf, provider, session=table_session),
    )
    return sheets_client, table_session


def _run(config_path: Path, *args: str) -> int:
    return main(["--config", str(config_path), *args])


def test_setup_key_with_argument(config_path, tmp_path, capsys):
    assert _run(config_path, "setup-key", "--key", VALID_KEY) == 0
    assert "API key stored" in capsys.readouterr().out

    store = PropertyStore(tmp_path / "state.sqlite")
    try:
        assert store.get("SUPABASE_API_KEY") == VALID_KEY
    finally:
        store.close()


def test_setup_key_prompts_and_rejects_bad_format(config_path, monkeypatch, capsys):
    monkeypatch.setattr(main_module.getpass, "getpass", lambda prompt: "not-a-key")

    assert _run(config_path, "setup-key") == 1
    assert "invalid API key format" in capsys.readouterr().out


def test_enable_status_disable_cycle(config_path, capsys):
    assert _run(config_path, "enable-auto-sync") == 0
    assert _run(config_path, "enable-auto-sync") == 0
    capsys.readouterr()

    assert _run(config_path, "status") == 0
    status = capsys.readouterr().out
    assert "Edit Trigger: ACTIVE" in status
    assert "Scheduled Trigger: ACTIVE" in status
    assert "Total triggers: 2" in status

    assert _run(config_path, "disable-auto-sync") == 0
    assert "removed 2 sync triggers" in capsys.readouterr().out


def test_sync_without_api_key_fails(config_path, fake_backends, capsys):
    _, table_session = fake_backends

    assert _run(config_path, "sync") == 1
    assert "setup-key" in capsys.readouterr().out
    assert table_session.calls == []


def test_sync_and_view(config_path, fake_backends, capsys):
    sheets_client, table_session = fake_backends
    assert _run(config_path, "setup-key", "--key", VALID_KEY) == 0

    assert _run(config_path, "sync") == 0
    assert "successfully synced 2 records" in capsys.readouterr().out

    assert _run(config_path, "view") == 0
    assert "Displaying 2 records" in capsys.readouterr().out
    view = sheets_client.sheets["Supabase Data"]
    assert [row[0] for row in view[1:]] == ["1", "2"]


def test_test_row_rejects_header_row(config_path, fake_backends, capsys):
    assert _run(config_path, "test-row", "1") == 1
    assert "2 or higher" in capsys.readouterr().out


def test_test_row_syncs_single_row(config_path, fake_backends, capsys):
    _, table_session = fake_backends
    _run(config_path, "setup-key", "--key", VALID_KEY)

    assert _run(config_path, "test-row", "2") == 0
    assert "Row 2 sync test completed" in capsys.readouterr().out
    assert set(table_session.rows) == {"2"}


def test_test_connection_exit_codes(config_path, fake_backends, capsys):
    assert _run(config_path, "test-connection") == 1
    _run(config_path, "setup-key", "--key", VALID_KEY)
    assert _run(config_path, "test-connection") == 0


def test_missing_config_file(tmp_path):
    assert main(["--config", str(tmp_path / "absent.yaml"), "status"]) == 1


def test_sync_with_missing_service_account_file(config_path, monkeypatch, table_session, capsys):
    monkeypatch.setattr(
        main_module,
        "RemoteTableClient",
        lambda conf, provider: RemoteTableClient(conf, provider, session=table_session),
    )
    assert _run(config_path, "setup-key", "--key", VALID_KEY) == 0

    assert _run(config_path, "sync") == 1

    assert "service account file" in capsys.readouterr().out
    assert table_session.calls == []
