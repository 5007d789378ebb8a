"""Enumeration types for loan-ledger records."""

from enum import Enum


class LoanDirection(str, Enum):
    LEND = "lend"
    BORROW = "borrow"


class NotificationType(str, Enum):
    PAYMENT_DUE = "payment_due"
    PAYMENT_OVERDUE = "payment_overdue"
    LOAN_COMPLETED = "loan_completed"


class IdProofType(str, Enum):
    """Identity proofs offered by the lend and borrow workflows."""

    AADHAAR = "aadhaar"
    PAN = "pan"
    VOTER_ID = "voter_id"
    DRIVING_LICENSE = "driving_license"
    PASSPORT = "passport"
    OTHER = "other"
