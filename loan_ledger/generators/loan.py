"""Sample loan and payment generator."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterator

from loan_ledger.generators.base import BaseGenerator
from loan_ledger.interest import remaining_balance, round_money
from loan_ledger.models import IdProofType, LoanAgreement, LoanDirection, Party, PaymentRecord

PAYMENT_METHODS = ["UPI", "Cash", "Bank Transfer", "Cheque"]


class LoanAgreementGenerator(BaseGenerator):
    """Generate informal lend/borrow agreements between individuals."""

    # Typical informal lending: principal in rupees, annual rate in percent
    PRINCIPAL_RANGE = (5, 200)  # x 1000
    RATE_CHOICES = [Decimal("0"), Decimal("12"), Decimal("18"), Decimal("24"), Decimal("36")]
    TERM_MONTHS = [3, 6, 12, 18, 24]

    def __init__(self, seed: int | None = None, now: datetime | None = None) -> None:
        super().__init__(seed)
        self._now = now or datetime.now()

    def _party(self) -> Party:
        return Party(
            name=self.fake.name(),
            phone=self.fake.phone_number(),
            address=self.fake.address().replace("\n", ", "),
        )

    def generate(self, direction: LoanDirection | None = None) -> LoanAgreement:
        """Generate a single loan with no payments.

        Parameters
        ----------
        direction : LoanDirection | None
            Lend or borrow. Random when omitted.

        Returns
        -------
        LoanAgreement
            Generated loan, balance computed, marked unsynced.
        """
        created_at = (self._now - timedelta(days=self.random.randint(10, 400))).replace(microsecond=0)
        term = self.random.choice(self.TERM_MONTHS)
        proof = self.random.choice(list(IdProofType))

        loan = LoanAgreement(
            loan_id=self.fake.uuid4(),
            direction=direction or self.random.choice(list(LoanDirection)),
            amount=Decimal(self.random.randint(*self.PRINCIPAL_RANGE) * 1000),
            interest_rate=self.random.choice(self.RATE_CHOICES),
            repayment_date=(created_at + timedelta(days=30 * term)).date(),
            created_at=created_at,
            updated_at=created_at,
            lender=self._party(),
            receiver=self._party(),
            id_proof_type=proof.value,
            contract_generated=self.random.random() < 0.5,
        )
        loan.remaining_balance = remaining_balance(loan)
        return loan

    def generate_batch(self, count: int) -> Iterator[LoanAgreement]:
        """Generate multiple loans.

        Parameters
        ----------
        count : int
            Number of loans to generate.

        Yields
        ------
        LoanAgreement
            Generated loan.
        """
        for _ in range(count):
            yield self.generate()

    def generate_payments(self, loan: LoanAgreement, count: int) -> list[PaymentRecord]:
        """Generate payments that together stay below the loan's balance."""
        if count <= 0:
            return []
        share = round_money(loan.remaining_balance / (count + 1))
        payments = []
        for i in range(count):
            paid_on = loan.created_at + timedelta(days=30 * (i + 1))
            payments.append(
                PaymentRecord(
                    payment_id=self.fake.uuid4(),
                    loan_id=loan.loan_id,
                    amount=max(share, Decimal("1.00")),
                    date=min(paid_on, self._now).date(),
                    method=self.random.choice(PAYMENT_METHODS),
                )
            )
        return payments
