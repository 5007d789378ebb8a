#!/usr/bin/env python3
"""Seed a ledger data directory with sample loans and payments.

The generated records are written through the record store, so the directory
can be opened by the app or by ``ledger_admin.py`` straight away.
"""

import argparse
import logging
import sys
from pathlib import Path

from loan_ledger.generators import LoanAgreementGenerator
from loan_ledger.logging import setup_logging
from loan_ledger.storage import JsonFileStorage
from loan_ledger.store import RecordStore

logger = logging.getLogger(__name__)


def seed_store(store: RecordStore, generator: LoanAgreementGenerator, num_loans: int, max_payments: int) -> dict[str, int]:
    """Generate loans with payments into ``store`` and return counts."""
    loans = list(generator.generate_batch(num_loans))
    store.upsert_loans(loans)

    payment_count = 0
    for loan in loans:
        count = generator.random.randint(0, max_payments)
        for payment in generator.generate_payments(loan, count):
            store.record_payment(payment)
            payment_count += 1

    notifications = store.generate_payment_notifications()
    return {
        "Loans": len(loans),
        "Payments": payment_count,
        "Notifications": len(notifications),
    }


def print_summary(counts: dict[str, int], data_dir: Path) -> None:
    """Print generation summary."""
    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    for name, count in counts.items():
        print(f"{name + ':':18}{count}")
    print(f"\nLedger data saved to: {data_dir}")
    print("=" * 60)


def main(argv: list[str] | None = None) -> int:
    """Generate sample ledger data."""
    parser = argparse.ArgumentParser(description="Seed a ledger data directory with sample data")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("local"),
        help="Ledger data directory (default: local)",
    )
    parser.add_argument(
        "--loans",
        type=int,
        default=10,
        help="Number of loans to generate (default: 10)",
    )
    parser.add_argument(
        "--max-payments",
        type=int,
        default=4,
        help="Maximum payments per loan (default: 4)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed (default: 42)",
    )
    args = parser.parse_args(argv)
    setup_logging("INFO")

    # Offline so seeding never waits on the remote
    store = RecordStore(JsonFileStorage(args.data_dir), online=False)
    generator = LoanAgreementGenerator(seed=args.seed)

    logger.info("Generating %d loans (seed=%d)", args.loans, args.seed)
    counts = seed_store(store, generator, args.loans, args.max_payments)
    print_summary(counts, args.data_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
