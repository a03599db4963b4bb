"""
Overdue Aggregation Module

Sums overdue amounts over a loan's current repayment schedule. Pure
functions, no storage access.
"""

from datetime import date, timedelta
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .currency import Money, Currency, sum_money
from .loans import Loan, LoanInstallment


@dataclass(frozen=True)
class OverdueTotals:
    """Overdue amount per component and the date arrears started"""
    principal: Money
    interest: Money
    fee_charges: Money
    penalty_charges: Money
    overdue_since: date

    @property
    def total(self) -> Money:
        return sum_money(
            (self.principal, self.interest, self.fee_charges, self.penalty_charges),
            self.principal.currency
        )

    @classmethod
    def nothing_overdue(cls, currency: Currency, today: date) -> 'OverdueTotals':
        zero = Money.zero(currency)
        return cls(zero, zero, zero, zero, today)


def arrears_cutoff(today: date, grace_days: int) -> date:
    """Installments due strictly before this date count as overdue"""
    return today - timedelta(days=grace_days or 0)


def overdue_installments(installments: Iterable[LoanInstallment], today: date,
                         grace_days: int) -> List[LoanInstallment]:
    """Installments past the grace cutoff that are not completed"""
    cutoff = arrears_cutoff(today, grace_days)
    return [
        installment for installment in installments
        if installment.due_date < cutoff and not installment.completed
    ]


def aggregate_installments(
    installments: Iterable[LoanInstallment],
    today: date,
    grace_days: int,
    currency: Currency
) -> OverdueTotals:
    """
    Aggregate overdue amounts for one loan's current schedule.

    Outstanding amounts are summed as they are; a negative component coming
    from an inconsistent ledger is passed through rather than clamped.

    Args:
        installments: The loan's current installments, any order
        today: Business date of the computation
        grace_days: Loan's grace on arrears ageing
        currency: Loan currency

    Returns:
        OverdueTotals; when nothing is overdue every component is zero and
        `overdue_since` is `today`
    """
    principal = interest = fee_charges = penalty_charges = Money.zero(currency)
    overdue_since = today

    for installment in overdue_installments(installments, today, grace_days):
        principal = principal + installment.principal_outstanding
        interest = interest + installment.interest_outstanding
        fee_charges = fee_charges + installment.fee_charges_outstanding
        penalty_charges = penalty_charges + installment.penalty_charges_outstanding
        if installment.is_not_fully_paid_off() and installment.due_date < overdue_since:
            overdue_since = installment.due_date

    return OverdueTotals(principal, interest, fee_charges, penalty_charges, overdue_since)


def aggregate_installments_by_loan(
    installments_by_loan: Dict[str, Tuple[Loan, List[LoanInstallment]]],
    today: date
) -> Dict[str, OverdueTotals]:
    """
    Batch form of `aggregate_installments`.

    Args:
        installments_by_loan: loan id -> (Loan, installments)
        today: Business date of the computation

    Returns:
        loan id -> OverdueTotals for every loan with at least one overdue
        installment. No positivity filter is applied: a loan whose overdue
        components net to zero or below still gets an entry.
    """
    results: Dict[str, OverdueTotals] = {}
    for loan_id, (loan, installments) in installments_by_loan.items():
        overdue = overdue_installments(installments, today, loan.grace_on_arrears_ageing_days)
        if overdue:
            results[loan_id] = aggregate_installments(
                overdue, today, loan.grace_on_arrears_ageing_days, loan.currency
            )
    return results
