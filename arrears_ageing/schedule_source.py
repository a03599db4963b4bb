"""
Schedule Source Module

Read boundary between the arrears engine and the ledger: current
installments, the latest original schedule version and loan summaries, for one
loan or in bulk. Apart from the date, status and version filters named on each
method, nothing here interprets the data.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .aggregation import arrears_cutoff
from .loans import (
    Loan, LoanInstallment, LoanStatus, LoanSummary, OriginalSchedulePeriod,
    LOANS_TABLE, INSTALLMENTS_TABLE, SCHEDULE_HISTORY_TABLE, SUMMARIES_TABLE,
    loan_from_dict, installment_from_dict, period_from_dict, summary_from_dict
)
from .storage import StorageInterface


class LoanNotFoundError(ValueError):
    """No loan with the requested id"""

    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} not found")
        self.loan_id = loan_id


class LoanSummaryNotFoundError(ValueError):
    """The loan has no stored summary"""

    def __init__(self, loan_id: str):
        super().__init__(f"Loan summary for loan {loan_id} not found")
        self.loan_id = loan_id


class LedgerSource(ABC):
    """What the arrears engine needs to read from the ledger"""

    @abstractmethod
    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Loan with its installments and summary attached, or None"""
        pass

    @abstractmethod
    def load_current_installments(self, loan_id: str) -> List[LoanInstallment]:
        """Current schedule of one loan, ascending by due date"""
        pass

    @abstractmethod
    def load_overdue_installments(self, as_of: date) -> Dict[str, Tuple[Loan, List[LoanInstallment]]]:
        """
        Batch read for the current-schedule path.

        Active loans not using the original schedule, each with its
        installments that are not completed and fall due before the loan's
        cutoff (`as_of` minus its grace days). Loans with no such installment
        are omitted.
        """
        pass

    @abstractmethod
    def load_latest_original_schedule(self, loan_ids: Iterable[str],
                                      as_of: date) -> Dict[str, List[OriginalSchedulePeriod]]:
        """
        Periods of the highest schedule version of each loan that fall due
        before the loan's cutoff, ascending by due date. Loans without such
        periods are omitted.
        """
        pass

    @abstractmethod
    def load_loan_summary(self, loan_id: str) -> LoanSummary:
        """Raises LoanSummaryNotFoundError when the loan has no summary"""
        pass

    @abstractmethod
    def load_loan_summaries(self, loan_ids: Iterable[str]) -> Dict[str, LoanSummary]:
        pass

    @abstractmethod
    def find_loan_ids_using_original_schedule(self, as_of: date) -> Set[str]:
        """
        Active loans measured on the original schedule that have at least one
        non-completed current installment due before their cutoff.
        """
        pass


class StorageLedgerSource(LedgerSource):
    """LedgerSource over the ledger tables kept by `LoanRepository`"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(LOANS_TABLE, loan_id)
        if not data:
            return None
        loan = loan_from_dict(data)
        loan.installments = self.load_current_installments(loan_id)
        summary = self.storage.load(SUMMARIES_TABLE, loan_id)
        loan.summary = summary_from_dict(summary) if summary else None
        return loan

    def load_current_installments(self, loan_id: str) -> List[LoanInstallment]:
        rows = self.storage.find(INSTALLMENTS_TABLE, {'loan_id': loan_id})
        installments = [installment_from_dict(row) for row in rows]
        installments.sort(key=lambda i: (i.due_date, i.installment_number))
        return installments

    def _active_loans(self) -> Dict[str, Loan]:
        rows = self.storage.find(LOANS_TABLE, {'status': LoanStatus.ACTIVE.value})
        return {row['id']: loan_from_dict(row) for row in rows}

    def _overdue_rows_by_loan(self, loans: Dict[str, Loan], as_of: date) -> Dict[str, List[LoanInstallment]]:
        """Non-completed installments before each loan's cutoff"""
        cutoffs = {loan_id: arrears_cutoff(as_of, loan.grace_on_arrears_ageing_days)
                   for loan_id, loan in loans.items()}
        grouped: Dict[str, List[LoanInstallment]] = defaultdict(list)
        for row in self.storage.find(INSTALLMENTS_TABLE, {'completed': False}):
            loan_id = row['loan_id']
            if loan_id not in cutoffs:
                continue
            installment = installment_from_dict(row)
            if installment.due_date < cutoffs[loan_id]:
                grouped[loan_id].append(installment)
        for installments in grouped.values():
            installments.sort(key=lambda i: (i.due_date, i.installment_number))
        return grouped

    def load_overdue_installments(self, as_of: date) -> Dict[str, Tuple[Loan, List[LoanInstallment]]]:
        loans = {loan_id: loan for loan_id, loan in self._active_loans().items()
                 if not loan.uses_original_schedule}
        grouped = self._overdue_rows_by_loan(loans, as_of)
        return {loan_id: (loans[loan_id], installments) for loan_id, installments in grouped.items()}

    def load_latest_original_schedule(self, loan_ids: Iterable[str],
                                      as_of: date) -> Dict[str, List[OriginalSchedulePeriod]]:
        wanted = set(loan_ids)
        if not wanted:
            return {}

        loans = {}
        for loan_id in wanted:
            data = self.storage.load(LOANS_TABLE, loan_id)
            if data:
                loans[loan_id] = loan_from_dict(data)

        by_loan: Dict[str, List[OriginalSchedulePeriod]] = defaultdict(list)
        latest: Dict[str, int] = {}
        for row in self.storage.load_all(SCHEDULE_HISTORY_TABLE):
            loan_id = row['loan_id']
            if loan_id not in loans:
                continue
            period = period_from_dict(row)
            by_loan[loan_id].append(period)
            latest[loan_id] = max(latest.get(loan_id, period.version), period.version)

        result = {}
        for loan_id, periods in by_loan.items():
            cutoff = arrears_cutoff(as_of, loans[loan_id].grace_on_arrears_ageing_days)
            live = [p for p in periods if p.version == latest[loan_id] and p.due_date < cutoff]
            if live:
                live.sort(key=lambda p: p.due_date)
                result[loan_id] = live
        return result

    def load_loan_summary(self, loan_id: str) -> LoanSummary:
        data = self.storage.load(SUMMARIES_TABLE, loan_id)
        if not data:
            raise LoanSummaryNotFoundError(loan_id)
        return summary_from_dict(data)

    def load_loan_summaries(self, loan_ids: Iterable[str]) -> Dict[str, LoanSummary]:
        summaries = {}
        for loan_id in loan_ids:
            data = self.storage.load(SUMMARIES_TABLE, loan_id)
            if data:
                summaries[loan_id] = summary_from_dict(data)
        return summaries

    def find_loan_ids_using_original_schedule(self, as_of: date) -> Set[str]:
        loans = {loan_id: loan for loan_id, loan in self._active_loans().items()
                 if loan.uses_original_schedule}
        return set(self._overdue_rows_by_loan(loans, as_of))
