from __future__ import annotations

import argparse
import getpass
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Sequence

import requests
from dotenv import load_dotenv
from googleapiclient.errors import HttpError

from .config import AppConfig, load_config
from .credentials import ConfigurationError, StoredKeyProvider, store_api_key
from .diagnostics import check_connection, describe_auto_sync_status
from .google_sheets import GoogleSheetsClient
from .pipeline import resolve_source_sheet, sync_row, sync_sheet, view_synced_data
from .remote_client import RemoteTableClient, RemoteTableError
from .store import PropertyStore
from .triggers import TriggerRegistry, disable_auto_sync, enable_auto_sync
from .watcher import AutoSyncRunner


def _load_env_files(config_path: Path) -> None:
    """Load environment variables from .env files."""

    # Load default .env in current working directory if present
    load_dotenv(override=False)

    # Load .env placed next to the config file if it exists
    config_env = config_path.parent / ".env"
    if config_env.exists():
        load_dotenv(dotenv_path=config_env, override=False)


LOGGER = logging.getLogger("sheet_sync")

EXIT_OK = 0
EXIT_FAILURE = 1


@dataclass
class Services:
    config: AppConfig
    store: PropertyStore
    sheets: GoogleSheetsClient
    remote: RemoteTableClient
    registry: TriggerRegistry


def build_services(config: AppConfig, config_path: Path) -> Services:
    state_path = config.state_path or (config_path.parent / "sheet_sync_state.sqlite")
    store = PropertyStore(state_path)
    return Services(
        config=config,
        store=store,
        sheets=GoogleSheetsClient(config.sheets),
        remote=RemoteTableClient(config.remote, StoredKeyProvider(store, config.remote)),
        registry=TriggerRegistry(store),
    )


# Commands --------------------------------------------------------------------
def _cmd_setup_key(services: Services, args: argparse.Namespace) -> int:
    api_key = args.key
    if api_key is None:
        api_key = getpass.getpass("Enter your Supabase API key: ")
    if not store_api_key(services.store, api_key, services.config.remote.api_key_prefix):
        print("Error: invalid API key format")
        return EXIT_FAILURE
    print("Success: API key stored securely!")
    return EXIT_OK


def _cmd_sync(services: Services, args: argparse.Namespace) -> int:
    sheet_name = resolve_source_sheet(services.sheets, services.config.sheets)
    count = sync_sheet(services.sheets, services.remote, sheet_name)
    print(f"Sync complete: successfully synced {count} records")
    return EXIT_OK


def _cmd_enable(services: Services, args: argparse.Namespace) -> int:
    enable_auto_sync(services.registry, services.config)
    print(
        "Auto-sync enabled: real-time and scheduled sync triggers have been set up.\n"
        "Run 'sheet-sync run-triggers' to start processing them."
    )
    return EXIT_OK


def _cmd_disable(services: Services, args: argparse.Namespace) -> int:
    removed = disable_auto_sync(services.registry)
    print(f"Auto-sync disabled: removed {removed} sync triggers.")
    return EXIT_OK


def _cmd_view(services: Services, args: argparse.Namespace) -> int:
    view_sheet = services.config.sheets.view_sheet_name
    count = view_synced_data(services.sheets, services.remote, view_sheet)
    print(f"Displaying {count} records in '{view_sheet}' (ordered by SL number)")
    return EXIT_OK


def _cmd_status(services: Services, args: argparse.Namespace) -> int:
    print(describe_auto_sync_status(services.registry.list()))
    return EXIT_OK


def _cmd_test_connection(services: Services, args: argparse.Namespace) -> int:
    ok, message = check_connection(services.remote)
    print(message)
    return EXIT_OK if ok else EXIT_FAILURE


def _cmd_test_row(services: Services, args: argparse.Namespace) -> int:
    if args.row < 2:
        print("Error: please enter a valid row number (2 or higher)")
        return EXIT_FAILURE
    sheet_name = args.sheet or resolve_source_sheet(services.sheets, services.config.sheets)
    if sync_row(services.sheets, services.remote, sheet_name, args.row):
        print(f"Row {args.row} sync test completed.")
    else:
        print(f"Row {args.row} was not synced (empty row, missing serial number or remote error).")
    return EXIT_OK


def _cmd_run_triggers(services: Services, args: argparse.Namespace) -> int:
    runner = AutoSyncRunner(services.config, services.sheets, services.remote, services.registry)
    runner.run(max_cycles=args.cycles)
    return EXIT_OK


COMMANDS: Dict[str, Callable[[Services, argparse.Namespace], int]] = {
    "setup-key": _cmd_setup_key,
    "sync": _cmd_sync,
    "enable-auto-sync": _cmd_enable,
    "disable-auto-sync": _cmd_disable,
    "view": _cmd_view,
    "status": _cmd_status,
    "test-connection": _cmd_test_connection,
    "test-row": _cmd_test_row,
    "run-triggers": _cmd_run_triggers,
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Synchronize a Google Sheets tracker with a Supabase table"
    )
    parser.add_argument("--config", required=True, help="Path to the YAML configuration file")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    setup = subparsers.add_parser("setup-key", help="Store the Supabase API key (run first)")
    setup.add_argument("--key", default=None, help="API key; prompted for when omitted")
    subparsers.add_parser("sync", help="Sync all rows of the source sheet")
    subparsers.add_parser("enable-auto-sync", help="Install the edit and scheduled triggers")
    subparsers.add_parser("disable-auto-sync", help="Remove the sync triggers")
    subparsers.add_parser("view", help="Copy the remote table into the view sheet")
    subparsers.add_parser("status", help="Show which sync triggers are installed")
    subparsers.add_parser("test-connection", help="Check that the remote table is reachable")
    test_row = subparsers.add_parser("test-row", help="Sync a single row")
    test_row.add_argument("row", type=int, help="1-based row number (2 or higher)")
    test_row.add_argument("--sheet", default=None, help="Sheet name; defaults to the source sheet")
    run_triggers = subparsers.add_parser(
        "run-triggers", help="Watch the sheet and run installed triggers"
    )
    run_triggers.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Stop after this many polling cycles",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config_path = Path(args.config).expanduser().resolve()
    _load_env_files(config_path)
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        LOGGER.error("%s", exc)
        return EXIT_FAILURE

    services = build_services(config, config_path)
    handler = COMMANDS[args.command]
    try:
        return handler(services, args)
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        print(f"Error: {exc}")
        return EXIT_FAILURE
    except (RemoteTableError, HttpError, requests.RequestException, ValueError) as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}")
        return EXIT_FAILURE
    finally:
        services.store.close()


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
