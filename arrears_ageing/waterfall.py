"""
Original Schedule Waterfall Module

Historical schedule versions keep only the amount due per period; what has
been paid is known only as one lifetime total per component (the loan
summary). This module reconstructs per-period paid amounts by spending those
totals on periods earliest-due first, independently for each component, and
aggregates the periods left incomplete into overdue totals.
"""

from datetime import date
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .aggregation import OverdueTotals
from .currency import Money, Currency
from .loans import LoanSummary, OriginalSchedulePeriod


@dataclass
class AllocationPools:
    """Amounts still available to cover period dues, per component"""
    principal: Money
    interest: Money
    fee_charges: Money
    penalty_charges: Money

    @classmethod
    def from_summary(cls, summary: LoanSummary) -> 'AllocationPools':
        # Written-off principal and waived interest/charges count as covered
        return cls(
            principal=summary.principal_repaid + summary.principal_written_off,
            interest=summary.interest_repaid + summary.interest_waived,
            fee_charges=summary.fee_charges_repaid + summary.fee_charges_waived,
            penalty_charges=summary.penalty_charges_repaid + summary.penalty_charges_waived,
        )


@dataclass(frozen=True)
class PeriodAllocation:
    """A period with the share of the pools it received"""
    period: OriginalSchedulePeriod
    principal_paid: Money
    interest_paid: Money
    fee_charges_paid: Money
    penalty_charges_paid: Money
    complete: bool

    @property
    def due_date(self) -> date:
        return self.period.due_date

    @property
    def principal_outstanding(self) -> Money:
        return self.period.principal - self.principal_paid

    @property
    def interest_outstanding(self) -> Money:
        return self.period.interest - self.interest_paid

    @property
    def fee_charges_outstanding(self) -> Money:
        return self.period.fee_charges - self.fee_charges_paid

    @property
    def penalty_charges_outstanding(self) -> Money:
        return self.period.penalty_charges - self.penalty_charges_paid


def _take(due: Money, pool: Money) -> Tuple[Money, Money, bool]:
    """Returns (paid, remaining pool, fully covered)"""
    if due > pool:
        return pool, Money.zero(pool.currency), False
    return due, pool - due, True


def allocate(periods: Iterable[OriginalSchedulePeriod], summary: LoanSummary) -> List[PeriodAllocation]:
    """
    Spread the summary's cumulative amounts over `periods`, earliest due first.

    For each period and component: a due amount the pool can cover is paid in
    full and deducted; otherwise the component takes whatever is left, the
    pool drops to zero and the period is incomplete. Later periods then get
    nothing for that component. A period is complete only when all four
    components were covered.

    Periods are sorted by due date here (stable for equal dates), so the
    caller's ordering can never make a later period be paid before an
    earlier one.
    """
    pools = AllocationPools.from_summary(summary)
    allocations = []

    for period in sorted(periods, key=lambda p: p.due_date):
        principal_paid, pools.principal, principal_done = _take(period.principal, pools.principal)
        interest_paid, pools.interest, interest_done = _take(period.interest, pools.interest)
        fee_paid, pools.fee_charges, fee_done = _take(period.fee_charges, pools.fee_charges)
        penalty_paid, pools.penalty_charges, penalty_done = _take(period.penalty_charges, pools.penalty_charges)

        allocations.append(PeriodAllocation(
            period=period,
            principal_paid=principal_paid,
            interest_paid=interest_paid,
            fee_charges_paid=fee_paid,
            penalty_charges_paid=penalty_paid,
            complete=principal_done and interest_done and fee_done and penalty_done,
        ))

    return allocations


def aggregate_allocations(allocations: Iterable[PeriodAllocation], today: date,
                          currency: Currency) -> OverdueTotals:
    """
    Overdue totals over the incomplete periods of an allocation.

    `overdue_since` moves only for periods with principal still outstanding;
    a period incomplete on interest or charges alone does not set it.
    """
    principal = interest = fee_charges = penalty_charges = Money.zero(currency)
    overdue_since = today

    for allocation in allocations:
        if allocation.complete:
            continue
        principal = principal + allocation.principal_outstanding
        interest = interest + allocation.interest_outstanding
        fee_charges = fee_charges + allocation.fee_charges_outstanding
        penalty_charges = penalty_charges + allocation.penalty_charges_outstanding
        if allocation.due_date < overdue_since and allocation.principal_outstanding.is_positive():
            overdue_since = allocation.due_date

    return OverdueTotals(principal, interest, fee_charges, penalty_charges, overdue_since)


def original_schedule_arrears(periods: Iterable[OriginalSchedulePeriod], summary: LoanSummary,
                              today: date, currency: Currency) -> OverdueTotals:
    """Allocate then aggregate; the full original-schedule computation for one loan"""
    return aggregate_allocations(allocate(periods, summary), today, currency)
