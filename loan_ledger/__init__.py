"""Offline-first loan ledger with opportunistic cloud sync."""

from loan_ledger.config import LedgerConfig
from loan_ledger.models import (
    LoanAgreement,
    LoanDirection,
    Notification,
    NotificationType,
    Party,
    PaymentRecord,
)
from loan_ledger.store import RecordStore, SyncStatus

__version__ = "0.3.0"

__all__ = [
    "LedgerConfig",
    "LoanAgreement",
    "LoanDirection",
    "Notification",
    "NotificationType",
    "Party",
    "PaymentRecord",
    "RecordStore",
    "SyncStatus",
    "__version__",
]
