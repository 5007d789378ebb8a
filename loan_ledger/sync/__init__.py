"""Opportunistic sync to a remote system of record."""

from loan_ledger.sync.events import DataSynced, SyncEventBus, SyncFailed, SyncResult
from loan_ledger.sync.remote import KafkaRemote, RemoteEndpoint, SimulatedRemote, SyncBatch
from loan_ledger.sync.worker import SyncWorker

__all__ = [
    "DataSynced",
    "KafkaRemote",
    "RemoteEndpoint",
    "SimulatedRemote",
    "SyncBatch",
    "SyncEventBus",
    "SyncFailed",
    "SyncResult",
    "SyncWorker",
]
