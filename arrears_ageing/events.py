"""
Ledger Event Module

Ledger mutations announce themselves through a synchronous publish/subscribe
dispatcher. Handlers run inside the publisher's unit of work, so by default a
failing handler makes `publish` raise and the mutation roll back.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
import logging
import uuid


class LedgerEvent(Enum):
    """Ledger mutations that can change a loan's arrears"""
    LOAN_MAKE_REPAYMENT = "loan.make_repayment"
    LOAN_REFUND = "loan.refund"
    LOAN_ADJUST_TRANSACTION = "loan.adjust_transaction"
    LOAN_UNDO_WRITTEN_OFF = "loan.undo_written_off"
    LOAN_WAIVE_INTEREST = "loan.waive_interest"
    LOAN_ADD_CHARGE = "loan.add_charge"
    LOAN_WAIVE_CHARGE = "loan.waive_charge"
    LOAN_CHARGE_PAYMENT = "loan.charge_payment"
    LOAN_APPLY_OVERDUE_CHARGE = "loan.apply_overdue_charge"
    LOAN_FORECLOSURE = "loan.foreclosure"
    LOAN_DISBURSAL = "loan.disbursal"


class BusinessEntity(Enum):
    """Kinds of entity an event payload can carry"""
    LOAN = "loan"
    LOAN_TRANSACTION = "loan_transaction"
    LOAN_ADJUSTED_TRANSACTION = "loan_adjusted_transaction"
    LOAN_CHARGE = "loan_charge"


# Order in which payload entities are consulted to find the affected loan
LOAN_RESOLUTION_ORDER = (
    BusinessEntity.LOAN,
    BusinessEntity.LOAN_TRANSACTION,
    BusinessEntity.LOAN_ADJUSTED_TRANSACTION,
    BusinessEntity.LOAN_CHARGE,
)


@dataclass
class EventPayload:
    """
    Event plus the entities involved.

    Every entity exposes `owning_loan()`: a Loan returns itself, transactions
    and charges return the loan they belong to.
    """
    event_type: LedgerEvent
    entities: Dict[BusinessEntity, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def entity(self, kind: BusinessEntity) -> Optional[Any]:
        return self.entities.get(kind)

    def resolve_loan(self):
        """The affected loan, taken from the first entity present, or None"""
        for kind in LOAN_RESOLUTION_ORDER:
            entity = self.entities.get(kind)
            if entity is not None:
                return entity.owning_loan()
        return None

    def describe(self) -> Dict[str, Any]:
        """Loggable summary of the payload"""
        return {
            'event_type': self.event_type.value,
            'event_id': self.event_id,
            'timestamp': self.timestamp.isoformat(),
            'entities': {
                kind.value: getattr(entity, 'id', None) for kind, entity in self.entities.items()
            },
        }


def loan_event(event_type: LedgerEvent, loan) -> EventPayload:
    return EventPayload(event_type, {BusinessEntity.LOAN: loan})


def transaction_event(event_type: LedgerEvent, transaction, adjusted: bool = False) -> EventPayload:
    kind = BusinessEntity.LOAN_ADJUSTED_TRANSACTION if adjusted else BusinessEntity.LOAN_TRANSACTION
    return EventPayload(event_type, {kind: transaction})


def charge_event(event_type: LedgerEvent, charge) -> EventPayload:
    return EventPayload(event_type, {BusinessEntity.LOAN_CHARGE: charge})


def _handler_name(handler: Callable) -> str:
    return getattr(handler, '__name__', repr(handler))


class EventDispatcher:
    """Central dispatcher, publish/subscribe"""

    def __init__(self, raise_on_handler_error: bool = True):
        self._handlers: Dict[LedgerEvent, List[Callable[[EventPayload], None]]] = {}
        self._lock = RLock()
        self.raise_on_handler_error = raise_on_handler_error
        self.logger = logging.getLogger("arrears.events")

    def subscribe(self, event_type: LedgerEvent, handler: Callable[[EventPayload], None]) -> None:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)} to {event_type.value}")

    def unsubscribe(self, event_type: LedgerEvent, handler: Callable[[EventPayload], None]) -> None:
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
                self.logger.debug(f"Unsubscribed handler {_handler_name(handler)} from {event_type.value}")
            except ValueError:
                self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed to {event_type.value}")

    def publish(self, event: EventPayload) -> None:
        """
        Deliver `event` to its subscribers in subscription order.

        Raises:
            Whatever a handler raised, unless the dispatcher was built with
            raise_on_handler_error=False, in which case the error is logged
            and delivery continues
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))

        self.logger.debug(f"Publishing event {event.event_type.value} ({event.event_id})")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(
                    f"Error in event handler {_handler_name(handler)} for {event.event_type.value}: {e}",
                    exc_info=True
                )
                if self.raise_on_handler_error:
                    raise

    def get_handler_count(self, event_type: Optional[LedgerEvent] = None) -> int:
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            return sum(len(handlers) for handlers in self._handlers.values())

    def get_subscribed_events(self) -> List[LedgerEvent]:
        with self._lock:
            return [event for event, handlers in self._handlers.items() if handlers]

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
