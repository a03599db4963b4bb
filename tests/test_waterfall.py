"""
Tests for original-schedule waterfall allocation

The loan summary only knows lifetime totals per component; allocation spends
them on periods earliest-due first.
"""

from datetime import date

from arrears_ageing.currency import Currency
from arrears_ageing.waterfall import (
    AllocationPools, aggregate_allocations, allocate, original_schedule_arrears
)

from tests.factories import TODAY, period, summary, usd


def three_periods(principal=100, **kwargs):
    return [
        period("L1", date(2024, 3, 1), principal=principal, **kwargs),
        period("L1", date(2024, 4, 1), principal=principal, **kwargs),
        period("L1", date(2024, 5, 1), principal=principal, **kwargs),
    ]


class TestAllocationPools:
    """Pool construction from the summary"""

    def test_written_off_and_waived_count_as_covered(self):
        pools = AllocationPools.from_summary(summary(
            "L1", principal_repaid=100, principal_written_off=20,
            interest_repaid=10, interest_waived=5,
            fee_charges_repaid=1, fee_charges_waived=2,
            penalty_charges_repaid=3, penalty_charges_waived=4,
        ))

        assert pools.principal == usd(120)
        assert pools.interest == usd(15)
        assert pools.fee_charges == usd(3)
        assert pools.penalty_charges == usd(7)


class TestAllocate:
    """Per-period allocation"""

    def test_partial_period(self):
        """Pool of 150 over three periods of 100: one paid, one half paid, one unpaid"""
        allocations = allocate(three_periods(), summary("L1", principal_repaid=150))

        assert [a.principal_paid for a in allocations] == [usd(100), usd(50), usd(0)]
        assert [a.complete for a in allocations] == [True, False, False]
        assert [a.principal_outstanding for a in allocations] == [usd(0), usd(50), usd(100)]

    def test_components_are_independent(self):
        periods = three_periods(principal=100, interest=10)
        allocations = allocate(periods, summary("L1", principal_repaid=300, interest_repaid=10))

        assert all(a.principal_outstanding.is_zero() for a in allocations)
        assert [a.interest_paid for a in allocations] == [usd(10), usd(0), usd(0)]
        assert [a.complete for a in allocations] == [True, False, False]

    def test_input_order_does_not_matter(self):
        periods = three_periods()
        shuffled = [periods[2], periods[0], periods[1]]

        allocations = allocate(shuffled, summary("L1", principal_repaid=150))

        assert [a.due_date for a in allocations] == [date(2024, 3, 1), date(2024, 4, 1), date(2024, 5, 1)]
        assert allocations[0].complete

    def test_conservation(self):
        """Paid amounts never exceed the pool nor the total due"""
        periods = three_periods(principal=100, interest=10, fee=5)
        for repaid in (0, 40, 150, 300, 500):
            allocations = allocate(periods, summary("L1", principal_repaid=repaid, interest_repaid=repaid))

            principal_paid = sum(a.principal_paid.amount for a in allocations)
            interest_paid = sum(a.interest_paid.amount for a in allocations)

            assert principal_paid == min(repaid, 300)
            assert interest_paid == min(repaid, 30)

    def test_zero_due_components_are_covered(self):
        allocations = allocate([period("L1", date(2024, 3, 1), principal=100)],
                               summary("L1", principal_repaid=100))
        assert allocations[0].complete

    def test_pool_larger_than_dues(self):
        allocations = allocate(three_periods(), summary("L1", principal_repaid=1000))
        assert all(a.complete for a in allocations)


class TestAggregateAllocations:
    """Totals over incomplete periods"""

    def test_partial_period_overdue(self):
        totals = original_schedule_arrears(three_periods(), summary("L1", principal_repaid=150),
                                           TODAY, Currency.USD)

        assert totals.principal == usd(150)
        assert totals.total == usd(150)
        assert totals.overdue_since == date(2024, 4, 1)

    def test_interest_only_shortfall_does_not_move_overdue_since(self):
        periods = [period("L1", date(2024, 3, 1), principal=100, interest=20)]

        totals = original_schedule_arrears(periods, summary("L1", principal_repaid=100), TODAY, Currency.USD)

        assert totals.principal == usd(0)
        assert totals.interest == usd(20)
        assert totals.overdue_since == TODAY

    def test_fully_paid(self):
        totals = aggregate_allocations(
            allocate(three_periods(), summary("L1", principal_repaid=300)), TODAY, Currency.USD
        )

        assert totals.total.is_zero()
        assert totals.overdue_since == TODAY

    def test_nothing_paid(self):
        totals = original_schedule_arrears(three_periods(principal=100, penalty=2), summary("L1"),
                                           TODAY, Currency.USD)

        assert totals.principal == usd(300)
        assert totals.penalty_charges == usd(6)
        assert totals.overdue_since == date(2024, 3, 1)
