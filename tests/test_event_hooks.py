"""
Tests for event-driven arrears maintenance
"""

import pytest
from datetime import date
from unittest.mock import Mock

from arrears_ageing.aging import RecomputeOutcome
from arrears_ageing.event_hooks import ArrearsEventListener
from arrears_ageing.events import (
    BusinessEntity, EventDispatcher, EventPayload, LedgerEvent,
    charge_event, loan_event, transaction_event
)
from arrears_ageing.loans import LoanCharge, LoanTransaction, LoanTransactionType

from tests.factories import installment, loan, period, summary, usd


LEDGER_EVENTS = [event for event in LedgerEvent if event != LedgerEvent.LOAN_DISBURSAL]


@pytest.fixture
def mock_engine():
    engine = Mock()
    engine.recompute_one.return_value = RecomputeOutcome.INSERTED
    return engine


@pytest.fixture
def routed(mock_engine):
    dispatcher = EventDispatcher()
    ArrearsEventListener(mock_engine, dispatcher).register()
    return dispatcher


def overdue_loan(loan_id="L1", **kwargs):
    return loan(loan_id, installments=[
        installment(loan_id, 1, date(2024, 4, 1), principal=100, interest=10),
    ], **kwargs)


class TestRegistration:
    """Routing table subscription"""

    def test_every_event_routed(self, engine, dispatcher):
        listener = ArrearsEventListener(engine, dispatcher)
        listener.register()

        assert set(dispatcher.get_subscribed_events()) == set(LedgerEvent)
        assert dispatcher.get_handler_count() == len(LedgerEvent)

    def test_register_is_idempotent(self, engine, dispatcher):
        listener = ArrearsEventListener(engine, dispatcher)
        listener.register()
        listener.register()

        assert dispatcher.get_handler_count() == len(LedgerEvent)

    def test_unregister(self, engine, dispatcher):
        listener = ArrearsEventListener(engine, dispatcher)
        listener.register()
        listener.unregister()

        assert dispatcher.get_handler_count() == 0


class TestRouting:
    """Which engine call each event makes"""

    @pytest.mark.parametrize("event_type", LEDGER_EVENTS)
    def test_ledger_events_recompute_resolved_loan(self, routed, mock_engine, event_type):
        target = overdue_loan()

        routed.publish(loan_event(event_type, target))

        mock_engine.recompute_one.assert_called_once_with(target)

    def test_transaction_payload(self, routed, mock_engine):
        target = overdue_loan()
        transaction = LoanTransaction("T1", target, LoanTransactionType.REPAYMENT, usd(50), date(2024, 5, 1))

        routed.publish(transaction_event(LedgerEvent.LOAN_MAKE_REPAYMENT, transaction))

        mock_engine.recompute_one.assert_called_once_with(target)

    def test_adjusted_transaction_payload(self, routed, mock_engine):
        target = overdue_loan()
        transaction = LoanTransaction("T1", target, LoanTransactionType.REPAYMENT, usd(50), date(2024, 5, 1),
                                      reversed=True)

        routed.publish(transaction_event(LedgerEvent.LOAN_ADJUST_TRANSACTION, transaction, adjusted=True))

        mock_engine.recompute_one.assert_called_once_with(target)

    def test_charge_payload(self, routed, mock_engine):
        target = overdue_loan()

        routed.publish(charge_event(LedgerEvent.LOAN_APPLY_OVERDUE_CHARGE, LoanCharge("C1", target, usd(5))))

        mock_engine.recompute_one.assert_called_once_with(target)

    def test_disbursal_forces_current_schedule(self, routed, mock_engine):
        target = overdue_loan(original_schedule=True)

        routed.publish(loan_event(LedgerEvent.LOAN_DISBURSAL, target))

        mock_engine.recompute_one.assert_called_once_with(target, force_current_schedule=True)

    def test_disbursal_ignores_non_loan_entities(self, routed, mock_engine):
        transaction = LoanTransaction("T1", overdue_loan(), LoanTransactionType.DISBURSEMENT, usd(1000),
                                      date(2024, 1, 1))

        routed.publish(EventPayload(LedgerEvent.LOAN_DISBURSAL, {BusinessEntity.LOAN_TRANSACTION: transaction}))

        mock_engine.recompute_one.assert_not_called()

    def test_payload_without_loan_is_ignored(self, routed, mock_engine):
        routed.publish(EventPayload(LedgerEvent.LOAN_MAKE_REPAYMENT))

        mock_engine.recompute_one.assert_not_called()


class TestEndToEnd:
    """Events against a real engine and store"""

    def test_repayment_event_maintains_row(self, listener, dispatcher, store):
        target = overdue_loan()

        dispatcher.publish(loan_event(LedgerEvent.LOAN_MAKE_REPAYMENT, target))
        assert store.get("L1").total_overdue == usd(110)

        target.installments = [
            installment("L1", 1, date(2024, 4, 1), principal=100, interest=10,
                        principal_completed=100, interest_completed=10),
        ]
        transaction = LoanTransaction("T1", target, LoanTransactionType.REPAYMENT, usd(110), date(2024, 6, 1))
        dispatcher.publish(transaction_event(LedgerEvent.LOAN_MAKE_REPAYMENT, transaction))

        assert not store.exists("L1")

    def test_disbursal_uses_current_schedule_for_original_loans(self, listener, dispatcher, store, repository):
        target = overdue_loan("O1", original_schedule=True, loan_summary=summary("O1"))
        repository.save_loan(target)

        # No history periods: the normal path would skip this loan
        dispatcher.publish(loan_event(LedgerEvent.LOAN_WAIVE_INTEREST, target))
        assert not store.exists("O1")

        dispatcher.publish(loan_event(LedgerEvent.LOAN_DISBURSAL, target))
        assert store.get("O1").principal_overdue == usd(100)

    def test_original_schedule_event(self, listener, dispatcher, store, repository):
        target = overdue_loan("O1", original_schedule=True, loan_summary=summary("O1", principal_repaid=60))
        repository.save_loan(target)
        repository.snapshot_original_schedule("O1", [
            period("O1", date(2024, 3, 1), principal=50),
            period("O1", date(2024, 4, 1), principal=50),
        ])

        dispatcher.publish(loan_event(LedgerEvent.LOAN_FORECLOSURE, target))

        record = store.get("O1")
        assert record.principal_overdue == usd(40)
        assert record.overdue_since_date == date(2024, 4, 1)

    def test_handler_failure_rolls_back_mutation(self, listener, dispatcher, storage, repository, engine):
        target = overdue_loan()
        repository.save_loan(target)
        engine.recompute_one = Mock(side_effect=RuntimeError("arrears update failed"))

        with pytest.raises(RuntimeError, match="arrears update failed"):
            with storage.atomic():
                repository.save_summary(summary("L1", principal_repaid=100))
                dispatcher.publish(loan_event(LedgerEvent.LOAN_MAKE_REPAYMENT, target))

        assert storage.load("loan_summaries", "L1") is None
