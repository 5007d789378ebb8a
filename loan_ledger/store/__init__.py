"""Record store owning all persisted ledger data."""

from loan_ledger.store.record_store import RecordStore, SyncStatus, days_until_due

__all__ = ["RecordStore", "SyncStatus", "days_until_due"]
