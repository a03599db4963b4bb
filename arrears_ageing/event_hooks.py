"""
Event Hooks Module

Subscribes the arrears engine to ledger events so a loan's arrears row is
recomputed inside the same unit of work as the mutation that changed it.
"""

import logging
from typing import Callable, Dict, Optional

from .aging import ArrearsAgingEngine, RecomputeOutcome
from .events import BusinessEntity, EventDispatcher, EventPayload, LedgerEvent
from .logging_config import log_action


logger = logging.getLogger("arrears.events")


class ArrearsEventListener:
    """Keeps the arrears table current as ledger events arrive"""

    def __init__(self, engine: ArrearsAgingEngine, dispatcher: EventDispatcher):
        self.engine = engine
        self.dispatcher = dispatcher
        self._registered = False

        # Disbursal always recomputes on the current schedule, whatever the
        # product's original-schedule setting.
        self.routes: Dict[LedgerEvent, Callable[[EventPayload], Optional[RecomputeOutcome]]] = {
            LedgerEvent.LOAN_MAKE_REPAYMENT: self.on_ledger_event,
            LedgerEvent.LOAN_REFUND: self.on_ledger_event,
            LedgerEvent.LOAN_ADJUST_TRANSACTION: self.on_ledger_event,
            LedgerEvent.LOAN_UNDO_WRITTEN_OFF: self.on_ledger_event,
            LedgerEvent.LOAN_WAIVE_INTEREST: self.on_ledger_event,
            LedgerEvent.LOAN_ADD_CHARGE: self.on_ledger_event,
            LedgerEvent.LOAN_WAIVE_CHARGE: self.on_ledger_event,
            LedgerEvent.LOAN_CHARGE_PAYMENT: self.on_ledger_event,
            LedgerEvent.LOAN_APPLY_OVERDUE_CHARGE: self.on_ledger_event,
            LedgerEvent.LOAN_FORECLOSURE: self.on_ledger_event,
            LedgerEvent.LOAN_DISBURSAL: self.on_disbursal,
        }

    def register(self) -> None:
        if self._registered:
            return
        for event_type, handler in self.routes.items():
            self.dispatcher.subscribe(event_type, handler)
        self._registered = True

    def unregister(self) -> None:
        if not self._registered:
            return
        for event_type, handler in self.routes.items():
            self.dispatcher.unsubscribe(event_type, handler)
        self._registered = False

    def on_ledger_event(self, event: EventPayload) -> Optional[RecomputeOutcome]:
        loan = event.resolve_loan()
        if loan is None:
            log_action(logger, "warning", "Event carried no loan; arrears not recomputed",
                       event=event.event_type.value, extra=event.describe())
            return None

        outcome = self.engine.recompute_one(loan)
        log_action(logger, "debug", f"Arrears recomputed: {outcome.value}",
                   loan_id=loan.id, action="recompute", event=event.event_type.value)
        return outcome

    def on_disbursal(self, event: EventPayload) -> Optional[RecomputeOutcome]:
        loan = event.entity(BusinessEntity.LOAN)
        if loan is None:
            log_action(logger, "warning", "Disbursal event carried no loan; arrears not recomputed",
                       event=event.event_type.value, extra=event.describe())
            return None

        outcome = self.engine.recompute_one(loan, force_current_schedule=True)
        log_action(logger, "debug", f"Arrears recomputed after disbursal: {outcome.value}",
                   loan_id=loan.id, action="recompute", event=event.event_type.value)
        return outcome
