"""Interest, balance and EMI calculations.

All amounts are ``Decimal``. Rates are annual percentages (``12`` means 12%).
"""

from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loan_ledger.models import LoanAgreement

SECONDS_PER_YEAR = Decimal(365 * 24 * 60 * 60)
HUNDRED = Decimal("100")
PAISA = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to paise, half-up."""
    return value.quantize(PAISA, rounding=ROUND_HALF_UP)


def local_naive(moment: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through.

    Records hold naive local timestamps so they compare with calendar dates.
    """
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def elapsed_years(start: datetime, end: date) -> Decimal:
    """Get years elapsed from ``start`` to midnight of ``end`` (365-day years).

    Negative when ``end`` falls before ``start``.
    """
    delta = datetime.combine(end, time.min) - local_naive(start)
    return Decimal(str(delta.total_seconds())) / SECONDS_PER_YEAR


def simple_interest_total(principal: Decimal, annual_rate: Decimal, years: Decimal) -> Decimal:
    """Get principal plus simple interest: ``P * (1 + R/100 * T)``."""
    return principal * (1 + annual_rate / HUNDRED * years)


def remaining_balance(loan: "LoanAgreement") -> Decimal:
    """Get the outstanding balance of a loan.

    Interest accrues from ``created_at`` to ``repayment_date``, not to today,
    so the result does not change as time passes.
    """
    years = elapsed_years(loan.created_at, loan.repayment_date)
    total = simple_interest_total(loan.amount, loan.interest_rate, years)
    return round_money(max(Decimal("0"), total - loan.total_paid))


def compound_amount(
    principal: Decimal,
    annual_rate: Decimal,
    years: Decimal,
    periods_per_year: int = 12,
) -> Decimal:
    """Get the maturity amount with compound interest.

    Parameters
    ----------
    principal : Decimal
        Amount lent or borrowed.
    annual_rate : Decimal
        Annual interest rate in percent.
    years : Decimal
        Term in years.
    periods_per_year : int
        Compounding frequency (1 yearly, 2 half-yearly, 4 quarterly, 12 monthly).

    Returns
    -------
    Decimal
        Principal plus interest, rounded to paise.
    """
    if periods_per_year <= 0:
        raise ValueError("periods_per_year must be positive")
    rate_per_period = annual_rate / HUNDRED / periods_per_year
    periods = periods_per_year * years
    # Decimal ** Decimal handles fractional terms
    return round_money(principal * (1 + rate_per_period) ** periods)


def monthly_emi(principal: Decimal, annual_rate: Decimal, months: int) -> Decimal:
    """Get the equated monthly installment for an amortizing loan.

    Parameters
    ----------
    principal : Decimal
        Loan amount.
    annual_rate : Decimal
        Annual interest rate in percent.
    months : int
        Number of monthly installments.

    Returns
    -------
    Decimal
        Monthly installment, rounded to paise.
    """
    if months <= 0:
        raise ValueError("months must be positive")
    rate = annual_rate / HUNDRED / 12
    if rate == 0:
        return round_money(principal / months)
    factor = (1 + rate) ** months
    return round_money(principal * rate * factor / (factor - 1))
