"""
Arrears Ageing Module

The derived arrears table (one row per loan in arrears) and the engine that
recomputes it, either for the whole loan book or for a single loan.

The two write policies differ:

* batch rebuild writes a row for every loan the overdue predicate selects on
  the current schedule, whatever the total;
* single-loan recompute writes only when the total overdue is positive and
  deletes the row otherwise.

On the original schedule both write only when principal overdue is positive.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional
from enum import Enum
import logging

from .aggregation import OverdueTotals, aggregate_installments, aggregate_installments_by_loan
from .currency import Money, Currency, money_from_string
from .loans import Loan, LoanSummary, OriginalSchedulePeriod
from .logging_config import log_action
from .schedule_source import LedgerSource, LoanNotFoundError, LoanSummaryNotFoundError
from .storage import StorageInterface
from .waterfall import original_schedule_arrears


ARREARS_TABLE = "loan_arrears_aging"

logger = logging.getLogger("arrears.engine")


@dataclass(frozen=True)
class ArrearsAgingRecord:
    """Derived arrears row for one loan"""
    loan_id: str
    principal_overdue: Money
    interest_overdue: Money
    fee_charges_overdue: Money
    penalty_charges_overdue: Money
    total_overdue: Money
    overdue_since_date: date

    @classmethod
    def from_totals(cls, loan_id: str, totals: OverdueTotals) -> 'ArrearsAgingRecord':
        return cls(
            loan_id=loan_id,
            principal_overdue=totals.principal,
            interest_overdue=totals.interest,
            fee_charges_overdue=totals.fee_charges,
            penalty_charges_overdue=totals.penalty_charges,
            total_overdue=totals.total,
            overdue_since_date=totals.overdue_since,
        )

    @property
    def currency(self) -> Currency:
        return self.total_overdue.currency

    def to_dict(self) -> Dict:
        return {
            'loan_id': self.loan_id,
            'currency': self.currency.code,
            'principal_overdue': str(self.principal_overdue.amount),
            'interest_overdue': str(self.interest_overdue.amount),
            'fee_charges_overdue': str(self.fee_charges_overdue.amount),
            'penalty_charges_overdue': str(self.penalty_charges_overdue.amount),
            'total_overdue': str(self.total_overdue.amount),
            'overdue_since_date': self.overdue_since_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ArrearsAgingRecord':
        currency = Currency.from_code(data['currency'])
        return cls(
            loan_id=data['loan_id'],
            principal_overdue=money_from_string(data['principal_overdue'], currency),
            interest_overdue=money_from_string(data['interest_overdue'], currency),
            fee_charges_overdue=money_from_string(data['fee_charges_overdue'], currency),
            penalty_charges_overdue=money_from_string(data['penalty_charges_overdue'], currency),
            total_overdue=money_from_string(data['total_overdue'], currency),
            overdue_since_date=date.fromisoformat(data['overdue_since_date']),
        )


class ArrearsAgingStore:
    """Keyed access to the derived arrears table"""

    def __init__(self, storage: StorageInterface, table: str = ARREARS_TABLE):
        self.storage = storage
        self.table = table

    def clear(self) -> None:
        self.storage.clear_table(self.table)

    def bulk_insert(self, records: Iterable[ArrearsAgingRecord]) -> int:
        return self.storage.save_many(self.table, [(r.loan_id, r.to_dict()) for r in records])

    def upsert(self, record: ArrearsAgingRecord) -> bool:
        """
        Write the row for `record.loan_id`.

        Returns:
            True if the row was inserted, False if an existing row was updated
        """
        inserted = not self.storage.exists(self.table, record.loan_id)
        self.storage.save(self.table, record.loan_id, record.to_dict())
        return inserted

    def delete(self, loan_id: str) -> bool:
        return self.storage.delete(self.table, loan_id)

    def exists(self, loan_id: str) -> bool:
        return self.storage.exists(self.table, loan_id)

    def get(self, loan_id: str) -> Optional[ArrearsAgingRecord]:
        data = self.storage.load(self.table, loan_id)
        return ArrearsAgingRecord.from_dict(data) if data else None

    def list_all(self) -> List[ArrearsAgingRecord]:
        records = [ArrearsAgingRecord.from_dict(data) for data in self.storage.load_all(self.table)]
        return sorted(records, key=lambda r: r.loan_id)

    def count(self) -> int:
        return self.storage.count(self.table)


class WritePolicy(ABC):
    """Decides whether computed totals produce a row"""

    @abstractmethod
    def should_write_current(self, totals: OverdueTotals) -> bool:
        pass

    def should_write_original(self, totals: OverdueTotals) -> bool:
        return totals.principal.is_positive()


class BatchPolicy(WritePolicy):
    """Full rebuild: every loan selected by the overdue predicate gets a row"""

    def should_write_current(self, totals: OverdueTotals) -> bool:
        return True


class IncrementalPolicy(WritePolicy):
    """Single-loan recompute: only loans with something actually overdue"""

    def should_write_current(self, totals: OverdueTotals) -> bool:
        return totals.total.is_positive()


class RecomputeOutcome(Enum):
    """What a single-loan recompute did to the arrears table"""
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"
    NO_RECORD = "no_record"   # nothing qualifying and no row to remove
    SKIPPED = "skipped"       # original schedule has no periods before cutoff


class ArrearsAgingEngine:
    """
    Recomputes the derived arrears table from the ledger.
    """

    def __init__(
        self,
        source: LedgerSource,
        store: ArrearsAgingStore,
        batch_policy: Optional[WritePolicy] = None,
        incremental_policy: Optional[WritePolicy] = None,
        clock: Optional[Callable[[], date]] = None,
        max_workers: int = 1
    ):
        self.source = source
        self.store = store
        self.batch_policy = batch_policy or BatchPolicy()
        self.incremental_policy = incremental_policy or IncrementalPolicy()
        self.clock = clock or (lambda: datetime.now(timezone.utc).date())
        self.max_workers = max(1, max_workers)

    def today(self) -> date:
        return self.clock()

    def recompute_all(self, today: Optional[date] = None) -> int:
        """
        Rebuild the whole arrears table as one unit of work.

        Clears the table, computes rows for current-schedule and
        original-schedule loans and bulk-inserts them. Any failure rolls the
        table back to its previous contents.

        Returns:
            Number of rows written

        Raises:
            LoanSummaryNotFoundError: an original-schedule loan has no
                stored summary; nothing is written
        """
        today = today or self.today()

        with self.store.storage.atomic():
            self.store.clear()

            current = self.source.load_overdue_installments(today)
            current_totals = aggregate_installments_by_loan(current, today)
            records = [
                ArrearsAgingRecord.from_totals(loan_id, totals)
                for loan_id, totals in current_totals.items()
                if self.batch_policy.should_write_current(totals)
            ]

            original_ids = self.source.find_loan_ids_using_original_schedule(today)
            if original_ids:
                schedules = self.source.load_latest_original_schedule(original_ids, today)
                summaries = self.source.load_loan_summaries(schedules.keys())
                records.extend(self._original_schedule_records(schedules, summaries, today))

            written = self.store.bulk_insert(records)

        log_action(logger, "info", f"Records affected by arrears ageing rebuild: {written}",
                   action="rebuild", extra={"as_of": today.isoformat(), "rows": written})
        return written

    def _original_schedule_records(
        self,
        schedules: Dict[str, List[OriginalSchedulePeriod]],
        summaries: Dict[str, LoanSummary],
        today: date
    ) -> List[ArrearsAgingRecord]:
        jobs = []
        for loan_id, periods in schedules.items():
            summary = summaries.get(loan_id)
            if summary is None:
                raise LoanSummaryNotFoundError(loan_id)
            jobs.append((loan_id, periods, summary))

        def compute(job):
            loan_id, periods, summary = job
            return loan_id, original_schedule_arrears(periods, summary, today, periods[0].principal.currency)

        if self.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(compute, jobs))
        else:
            results = [compute(job) for job in jobs]

        return [
            ArrearsAgingRecord.from_totals(loan_id, totals)
            for loan_id, totals in results
            if self.batch_policy.should_write_original(totals)
        ]

    def recompute_one(self, loan: Loan, today: Optional[date] = None,
                      force_current_schedule: bool = False) -> RecomputeOutcome:
        """
        Recompute and persist the arrears row of one loan.

        Args:
            loan: Loan with its current installments (and summary) loaded
            today: Business date; defaults to the engine clock
            force_current_schedule: Use the current schedule even for loans
                measured on the original schedule

        Returns:
            What happened to the loan's row
        """
        today = today or self.today()

        if loan.is_active and loan.uses_original_schedule and not force_current_schedule:
            schedules = self.source.load_latest_original_schedule([loan.id], today)
            periods = schedules.get(loan.id)
            if not periods:
                log_action(logger, "debug", "No original schedule periods before cutoff",
                           loan_id=loan.id, action="skip")
                return RecomputeOutcome.SKIPPED
            summary = loan.summary or self.source.load_loan_summary(loan.id)
            totals = original_schedule_arrears(periods, summary, today, loan.currency)
            write = self.incremental_policy.should_write_original(totals)
        else:
            totals = aggregate_installments(
                loan.installments, today, loan.grace_on_arrears_ageing_days, loan.currency
            )
            write = self.incremental_policy.should_write_current(totals)

        return self._reconcile(loan.id, totals if write else None)

    def recompute_loan(self, loan_id: str, today: Optional[date] = None) -> RecomputeOutcome:
        """Load a loan from the ledger and recompute its row"""
        loan = self.source.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return self.recompute_one(loan, today)

    def _reconcile(self, loan_id: str, totals: Optional[OverdueTotals]) -> RecomputeOutcome:
        if totals is None:
            deleted = self.store.delete(loan_id)
            outcome = RecomputeOutcome.DELETED if deleted else RecomputeOutcome.NO_RECORD
        else:
            inserted = self.store.upsert(ArrearsAgingRecord.from_totals(loan_id, totals))
            outcome = RecomputeOutcome.INSERTED if inserted else RecomputeOutcome.UPDATED

        log_action(logger, "debug", f"Arrears row {outcome.value}", loan_id=loan_id, action="recompute")
        return outcome
