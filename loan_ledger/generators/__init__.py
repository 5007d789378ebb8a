"""Faker-based sample data generators."""

from loan_ledger.generators.loan import LoanAgreementGenerator

__all__ = ["LoanAgreementGenerator"]
