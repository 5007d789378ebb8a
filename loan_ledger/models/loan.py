"""Loan agreement and payment models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from loan_ledger.models.enums import LoanDirection


@dataclass
class Party:
    """A counterparty to a loan agreement (lender or receiver)."""

    name: str = ""
    phone: str = ""
    address: str = ""


@dataclass
class PaymentRecord:
    """A repayment recorded against a loan."""

    payment_id: str
    loan_id: str  # Parent loan, looked up by id on every mutation
    amount: Decimal
    date: date
    method: str
    notes: str | None = None
    synced: bool = False


@dataclass
class LoanAgreement:
    """A lend or borrow agreement between two parties."""

    loan_id: str
    direction: LoanDirection
    amount: Decimal  # Principal
    interest_rate: Decimal  # Annual percent (e.g., 12 for 12%)
    repayment_date: date
    created_at: datetime
    updated_at: datetime
    lender: Party = field(default_factory=Party)
    receiver: Party = field(default_factory=Party)
    id_proof_type: str = ""
    id_proof_file: str | None = None
    contract_generated: bool = False
    contract_url: str | None = None
    total_paid: Decimal = Decimal("0")
    remaining_balance: Decimal = Decimal("0")
    payments: list[PaymentRecord] = field(default_factory=list)  # Entry order
    synced: bool = False
    needs_sync: bool = True

    def find_payment(self, payment_id: str) -> int | None:
        """Get the index of a payment by id, or None."""
        for idx, payment in enumerate(self.payments):
            if payment.payment_id == payment_id:
                return idx
        return None
