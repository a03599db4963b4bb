"""
Tests for the ledger read adapter
"""

import pytest
from datetime import date

from arrears_ageing.loans import LoanStatus
from arrears_ageing.schedule_source import LoanSummaryNotFoundError

from tests.factories import TODAY, installment, loan, period, summary, usd


@pytest.fixture
def ledger(repository):
    """A small loan book covering each selection rule"""
    repository.save_loan(loan("current", installments=[
        installment("current", 1, date(2024, 4, 1), principal=100),
        installment("current", 2, date(2024, 5, 1), principal=100, principal_completed=100),
        installment("current", 3, date(2024, 7, 1), principal=100),
    ]))
    repository.save_loan(loan("graced", grace=10, installments=[
        installment("graced", 1, date(2024, 5, 25), principal=100),
    ]))
    repository.save_loan(loan("closed", status=LoanStatus.CLOSED, installments=[
        installment("closed", 1, date(2024, 4, 1), principal=100),
    ]))
    repository.save_loan(loan("original", original_schedule=True, installments=[
        installment("original", 1, date(2024, 4, 1), principal=100),
    ], loan_summary=summary("original", principal_repaid=50)))
    repository.snapshot_original_schedule("original", [
        period("original", date(2024, 3, 1), principal=100),
        period("original", date(2024, 4, 1), principal=100),
    ])
    repository.snapshot_original_schedule("original", [
        period("original", date(2024, 4, 1), principal=120),
        period("original", date(2024, 3, 1), principal=120),
        period("original", date(2024, 8, 1), principal=120),
    ])
    return repository


class TestGetLoan:
    def test_unknown_loan(self, source):
        assert source.get_loan("missing") is None

    def test_attaches_installments_and_summary(self, ledger, source):
        original = source.get_loan("original")
        assert len(original.installments) == 1
        assert original.summary.principal_repaid == usd(50)

        assert source.get_loan("current").summary is None


class TestOverdueInstallments:
    """Batch read for the current-schedule path"""

    def test_selection(self, ledger, source):
        overdue = source.load_overdue_installments(TODAY)

        assert set(overdue) == {"current"}
        current_loan, installments = overdue["current"]
        assert current_loan.id == "current"
        assert [i.installment_number for i in installments] == [1]

    def test_grace_is_per_loan(self, ledger, source):
        overdue = source.load_overdue_installments(date(2024, 6, 10))
        assert "graced" in overdue


class TestOriginalSchedule:
    """Latest-version reads"""

    def test_latest_version_before_cutoff(self, ledger, source):
        schedules = source.load_latest_original_schedule(["original"], TODAY)

        periods = schedules["original"]
        assert [p.due_date for p in periods] == [date(2024, 3, 1), date(2024, 4, 1)]
        assert all(p.version == 2 for p in periods)
        assert all(p.principal == usd(120) for p in periods)

    def test_loans_without_periods_omitted(self, ledger, source):
        assert source.load_latest_original_schedule(["original"], date(2024, 2, 1)) == {}
        assert source.load_latest_original_schedule(["current"], TODAY) == {}
        assert source.load_latest_original_schedule([], TODAY) == {}

    def test_find_loan_ids(self, ledger, source):
        assert source.find_loan_ids_using_original_schedule(TODAY) == {"original"}
        assert source.find_loan_ids_using_original_schedule(date(2024, 3, 1)) == set()


class TestSummaries:
    def test_load_summary(self, ledger, source):
        assert source.load_loan_summary("original").principal_repaid == usd(50)

    def test_missing_summary_raises(self, ledger, source):
        with pytest.raises(LoanSummaryNotFoundError, match="Loan summary for loan current not found"):
            source.load_loan_summary("current")

    def test_bulk_skips_missing(self, ledger, source):
        assert set(source.load_loan_summaries(["original", "current"])) == {"original"}
