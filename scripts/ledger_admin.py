#!/usr/bin/env python3
"""Inspect and maintain a local ledger data directory.

Commands:
    status   show record counts and sync state
    export   write all records to a JSON document
    import   replace all records with an exported document
    notify   generate due/overdue payment reminders
    sync     push unsynced records to the configured remote
"""

import argparse
import logging
import sys
from pathlib import Path

from loan_ledger.config import LedgerConfig
from loan_ledger.exceptions import LoanLedgerError
from loan_ledger.logging import setup_logging
from loan_ledger.storage import JsonFileStorage
from loan_ledger.store import RecordStore
from loan_ledger.sync.events import DataSynced, SyncFailed

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(description="Loan ledger maintenance")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Ledger data directory (default: $LEDGER_DATA_DIR or ./ledger-data)",
    )
    parser.add_argument(
        "--remote",
        choices=["simulated", "kafka"],
        default=None,
        help="Remote to sync with (default: $LEDGER_REMOTE or simulated)",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Treat the device as offline (no sync)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: $LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["standard", "json"],
        default="standard",
        help="Log output format (default: standard)",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show record counts and sync state")

    export_cmd = commands.add_parser("export", help="Export all records")
    export_cmd.add_argument("output", type=Path, nargs="?", help="Output file (default: stdout)")

    import_cmd = commands.add_parser("import", help="Replace all records from an export")
    import_cmd.add_argument("input", type=Path, help="Exported JSON document")

    commands.add_parser("notify", help="Generate payment reminders")
    commands.add_parser("sync", help="Push unsynced records now")
    return parser


def open_store(args: argparse.Namespace) -> RecordStore:
    """Open the record store described by config and command-line flags."""
    config = LedgerConfig.from_env()
    if args.data_dir is not None:
        config.storage.data_dir = args.data_dir
    if args.remote is not None:
        config.remote = args.remote
    return RecordStore(JsonFileStorage(config.storage.data_dir), config=config, online=not args.offline)


def cmd_status(store: RecordStore, args: argparse.Namespace) -> int:
    status = store.get_sync_status()
    loans = store.get_loans()
    notifications = store.get_notifications()
    print(f"{'Loans:':18}{len(loans)}")
    print(f"{'Outstanding:':18}{sum(1 for loan in loans if loan.remaining_balance > 0)}")
    print(f"{'Notifications:':18}{len(notifications)} ({sum(1 for n in notifications if not n.read)} unread)")
    print(f"{'Needs sync:':18}{'yes' if status.needs_sync else 'no'}")
    print(f"{'Online:':18}{'yes' if status.is_online else 'no'}")
    print(f"{'Last sync:':18}{status.last_sync.isoformat() if status.last_sync else 'never'}")
    return 0


def cmd_export(store: RecordStore, args: argparse.Namespace) -> int:
    document = store.export_data()
    if args.output is None:
        print(document)
    else:
        args.output.write_text(document, encoding="utf-8")
        logger.info("Exported to %s", args.output)
    return 0


def cmd_import(store: RecordStore, args: argparse.Namespace) -> int:
    store.import_data(args.input.read_text(encoding="utf-8"))
    print(f"Imported {len(store.get_loans())} loans, {len(store.get_notifications())} notifications")
    return 0


def cmd_notify(store: RecordStore, args: argparse.Namespace) -> int:
    created = store.generate_payment_notifications()
    for notification in created:
        print(f"[{notification.type.value}] {notification.title}: {notification.message}")
    print(f"{len(created)} notifications created")
    return 0


def cmd_sync(store: RecordStore, args: argparse.Namespace) -> int:
    def report(event: DataSynced | SyncFailed) -> None:
        if isinstance(event, DataSynced):
            print(f"Synced {event.loans_count} loans, {event.notifications_count} notifications")
        else:
            print(f"Sync failed, will retry on next change: {event.error}", file=sys.stderr)

    store.events.subscribe(report)
    result = store.sync_now()
    if result is None:
        print("Offline; nothing pushed")
        return 0
    if result.ok and result.loans_count == 0 and result.notifications_count == 0:
        print("Nothing to sync")
    return 0 if result.ok else 1


COMMANDS = {
    "status": cmd_status,
    "export": cmd_export,
    "import": cmd_import,
    "notify": cmd_notify,
    "sync": cmd_sync,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    # stdout carries command output
    setup_logging(args.log_level or LedgerConfig.from_env().log_level, args.log_format, stream=sys.stderr)

    try:
        store = open_store(args)
        return COMMANDS[args.command](store, args)
    except (LoanLedgerError, OSError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
