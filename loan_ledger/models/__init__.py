"""Domain models for loan-ledger."""

from loan_ledger.models.enums import IdProofType, LoanDirection, NotificationType
from loan_ledger.models.loan import LoanAgreement, Party, PaymentRecord
from loan_ledger.models.notification import Notification

__all__ = [
    "IdProofType",
    "LoanAgreement",
    "LoanDirection",
    "Notification",
    "NotificationType",
    "Party",
    "PaymentRecord",
]
