"""
Builders for ledger fixtures used across the arrears tests
"""

from datetime import date
from decimal import Decimal

from arrears_ageing.currency import Money, Currency
from arrears_ageing.loans import (
    Loan, LoanInstallment, LoanStatus, LoanSummary, OriginalSchedulePeriod
)


TODAY = date(2024, 6, 1)


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.USD)


def installment(loan_id, number, due_date, principal=0, interest=0, fee=0, penalty=0, **paid):
    """
    Current-schedule installment; `paid` takes any of the *_completed,
    *_waived or *_written_off field names as plain numbers.
    """
    return LoanInstallment(
        loan_id=loan_id,
        installment_number=number,
        due_date=due_date,
        principal=usd(principal),
        interest=usd(interest),
        fee_charges=usd(fee),
        penalty_charges=usd(penalty),
        **{name: usd(value) for name, value in paid.items()}
    )


def period(loan_id, due_date, principal=0, interest=0, fee=0, penalty=0, version=1):
    return OriginalSchedulePeriod(
        loan_id=loan_id,
        version=version,
        due_date=due_date,
        principal=usd(principal),
        interest=usd(interest),
        fee_charges=usd(fee),
        penalty_charges=usd(penalty),
    )


def summary(loan_id, **amounts):
    base = LoanSummary.empty(loan_id, Currency.USD)
    for name, value in amounts.items():
        setattr(base, name, usd(value))
    return base


def loan(loan_id, installments=(), status=LoanStatus.ACTIVE, grace=0,
         original_schedule=False, loan_summary=None):
    return Loan(
        id=loan_id,
        currency=Currency.USD,
        status=status,
        grace_on_arrears_ageing_days=grace,
        arrears_based_on_original_schedule=original_schedule,
        interest_recalculation_enabled=original_schedule,
        installments=list(installments),
        summary=loan_summary,
    )
