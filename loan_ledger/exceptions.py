"""Custom exception hierarchy for loan-ledger."""


class LoanLedgerError(Exception):
    """Base exception for all loan-ledger errors."""


class NotFoundError(LoanLedgerError):
    """Raised when a referenced record does not exist."""


class LoanNotFoundError(NotFoundError):
    """Raised when an operation references an unknown loan id."""


class InvalidRecordError(LoanLedgerError):
    """Raised when a record is in an invalid state for the operation."""


class StorageError(LoanLedgerError):
    """Raised when local persistence fails."""


class FormatError(LoanLedgerError):
    """Raised when a payload does not decode into the expected shape."""


class SyncError(LoanLedgerError):
    """Raised when a push to the remote system of record fails."""


class SyncTimeoutError(SyncError):
    """Raised when a push does not complete within its timeout."""


class ConfigurationError(LoanLedgerError):
    """Raised when configuration is invalid or missing."""
