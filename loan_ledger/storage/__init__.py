"""Local persistence for ledger records."""

from loan_ledger.storage.local import (
    LAST_SYNC_KEY,
    LOANS_KEY,
    NOTIFICATIONS_KEY,
    JsonFileStorage,
    LocalStorage,
    MemoryStorage,
)

__all__ = [
    "JsonFileStorage",
    "LAST_SYNC_KEY",
    "LOANS_KEY",
    "LocalStorage",
    "MemoryStorage",
    "NOTIFICATIONS_KEY",
]
