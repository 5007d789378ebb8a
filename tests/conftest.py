"""Pytest configuration and fixtures."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable

import pytest

from loan_ledger.config import LedgerConfig
from loan_ledger.models import LoanAgreement, LoanDirection, Party, PaymentRecord
from loan_ledger.storage import MemoryStorage
from loan_ledger.store import RecordStore
from loan_ledger.sync import SimulatedRemote


class FakeClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2024-06-01 10:00."""
    return FakeClock(datetime(2024, 6, 1, 10, 0, 0))


@pytest.fixture
def storage() -> MemoryStorage:
    """Empty in-memory storage."""
    return MemoryStorage()


@pytest.fixture
def remote() -> SimulatedRemote:
    """Simulated remote with no delay."""
    return SimulatedRemote(delay_seconds=0)


@pytest.fixture
def config() -> LedgerConfig:
    """Default configuration."""
    return LedgerConfig()


@pytest.fixture
def store(storage: MemoryStorage, remote: SimulatedRemote, config: LedgerConfig, clock: FakeClock) -> RecordStore:
    """Online store without a background worker."""
    return RecordStore(storage, remote=remote, config=config, clock=clock)


@pytest.fixture
def make_loan() -> Callable[..., LoanAgreement]:
    """Factory for loans: 10000 at 12% over exactly one 365-day year."""

    def _make(
        loan_id: str = "loan-001",
        amount: str = "10000",
        interest_rate: str = "12",
        created_at: datetime = datetime(2023, 1, 1),
        repayment_date: date = date(2024, 1, 1),
        remaining_balance: str = "11200.00",
        direction: LoanDirection = LoanDirection.LEND,
    ) -> LoanAgreement:
        return LoanAgreement(
            loan_id=loan_id,
            direction=direction,
            amount=Decimal(amount),
            interest_rate=Decimal(interest_rate),
            repayment_date=repayment_date,
            created_at=created_at,
            updated_at=created_at,
            lender=Party(name="Ravi Kumar", phone="+919800000001", address="Guntur"),
            receiver=Party(name="Lakshmi Devi", phone="+919800000002", address="Vijayawada"),
            id_proof_type="aadhaar",
            remaining_balance=Decimal(remaining_balance),
        )

    return _make


@pytest.fixture
def make_payment() -> Callable[..., PaymentRecord]:
    """Factory for payments."""

    def _make(
        payment_id: str = "pay-001",
        loan_id: str = "loan-001",
        amount: str = "3000",
        paid_on: date = date(2023, 6, 1),
        method: str = "UPI",
    ) -> PaymentRecord:
        return PaymentRecord(
            payment_id=payment_id,
            loan_id=loan_id,
            amount=Decimal(amount),
            date=paid_on,
            method=method,
        )

    return _make
