"""
Loan Ledger Model

Ledger entities the arrears engine reads: loans, their current repayment
installments, historical (original) schedule versions and the cumulative loan
summary, plus the transactions and charges carried by ledger events.
`LoanRepository` is the write side used to record them in storage.
"""

from datetime import date
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Any
from enum import Enum

from .currency import Money, Currency, money_from_string
from .storage import StorageInterface


LOANS_TABLE = "loans"
INSTALLMENTS_TABLE = "loan_repayment_schedule"
SCHEDULE_HISTORY_TABLE = "loan_repayment_schedule_history"
SUMMARIES_TABLE = "loan_summaries"


class LoanStatus(Enum):
    """Loan lifecycle states"""
    SUBMITTED = "submitted"
    APPROVED = "approved"
    ACTIVE = "active"            # Disbursed and in repayment; the only state aged
    OVERPAID = "overpaid"
    CLOSED = "closed"
    WRITTEN_OFF = "written_off"


class LoanTransactionType(Enum):
    DISBURSEMENT = "disbursement"
    REPAYMENT = "repayment"
    REFUND = "refund"
    WAIVE_INTEREST = "waive_interest"
    WAIVE_CHARGES = "waive_charges"
    CHARGE_PAYMENT = "charge_payment"
    WRITE_OFF = "write_off"
    FORECLOSURE = "foreclosure"


@dataclass
class LoanInstallment:
    """One installment of a loan's current repayment schedule"""
    loan_id: str
    installment_number: int
    due_date: date
    principal: Money
    interest: Money
    fee_charges: Money
    penalty_charges: Money

    principal_completed: Money = None
    principal_written_off: Money = None
    interest_completed: Money = None
    interest_waived: Money = None
    interest_written_off: Money = None
    fee_charges_completed: Money = None
    fee_charges_waived: Money = None
    fee_charges_written_off: Money = None
    penalty_charges_completed: Money = None
    penalty_charges_waived: Money = None
    penalty_charges_written_off: Money = None

    def __post_init__(self):
        currency = self.principal.currency
        for f in fields(self):
            if getattr(self, f.name) is None and f.name.endswith(("_completed", "_waived", "_written_off")):
                setattr(self, f.name, Money.zero(currency))

    @property
    def currency(self) -> Currency:
        return self.principal.currency

    @property
    def principal_outstanding(self) -> Money:
        return self.principal - self.principal_completed - self.principal_written_off

    @property
    def interest_outstanding(self) -> Money:
        return self.interest - self.interest_completed - self.interest_written_off - self.interest_waived

    @property
    def fee_charges_outstanding(self) -> Money:
        return (self.fee_charges - self.fee_charges_completed
                - self.fee_charges_written_off - self.fee_charges_waived)

    @property
    def penalty_charges_outstanding(self) -> Money:
        return (self.penalty_charges - self.penalty_charges_completed
                - self.penalty_charges_written_off - self.penalty_charges_waived)

    @property
    def total_outstanding(self) -> Money:
        return (self.principal_outstanding + self.interest_outstanding
                + self.fee_charges_outstanding + self.penalty_charges_outstanding)

    @property
    def completed(self) -> bool:
        """True only when nothing is outstanding on any component"""
        return all(
            amount.is_zero() for amount in (
                self.principal_outstanding,
                self.interest_outstanding,
                self.fee_charges_outstanding,
                self.penalty_charges_outstanding,
            )
        )

    def is_not_fully_paid_off(self) -> bool:
        return not self.completed


@dataclass
class OriginalSchedulePeriod:
    """A period of a historical schedule version; due amounts only"""
    loan_id: str
    version: int
    due_date: date
    principal: Money
    interest: Money
    fee_charges: Money
    penalty_charges: Money


@dataclass
class LoanSummary:
    """Lifetime cumulative repayments, waivers and write-offs for a loan"""
    loan_id: str
    principal_repaid: Money
    principal_written_off: Money
    interest_repaid: Money
    interest_waived: Money
    fee_charges_repaid: Money
    fee_charges_waived: Money
    penalty_charges_repaid: Money
    penalty_charges_waived: Money

    @classmethod
    def empty(cls, loan_id: str, currency: Currency) -> 'LoanSummary':
        zero = Money.zero(currency)
        return cls(loan_id, zero, zero, zero, zero, zero, zero, zero, zero)


@dataclass
class Loan:
    """Loan account as seen by arrears ageing"""
    id: str
    currency: Currency
    status: LoanStatus = LoanStatus.ACTIVE
    grace_on_arrears_ageing_days: int = 0
    arrears_based_on_original_schedule: bool = False
    interest_recalculation_enabled: bool = False
    installments: List[LoanInstallment] = field(default_factory=list)
    summary: Optional[LoanSummary] = None

    def __post_init__(self):
        if self.grace_on_arrears_ageing_days is None:
            self.grace_on_arrears_ageing_days = 0
        if self.grace_on_arrears_ageing_days < 0:
            raise ValueError("Grace on arrears ageing cannot be negative")

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def uses_original_schedule(self) -> bool:
        """
        Whether arrears are measured against the original schedule.

        The flag belongs to the interest recalculation settings of the product,
        so it only applies when recalculation is enabled.
        """
        return self.arrears_based_on_original_schedule and self.interest_recalculation_enabled

    def owning_loan(self) -> 'Loan':
        return self


@dataclass
class LoanTransaction:
    """Monetary transaction against a loan"""
    id: str
    loan: Loan
    transaction_type: LoanTransactionType
    amount: Money
    transaction_date: date
    reversed: bool = False

    def owning_loan(self) -> Loan:
        return self.loan


@dataclass
class LoanCharge:
    """Fee or penalty charge applied to a loan"""
    id: str
    loan: Loan
    amount: Money
    due_date: Optional[date] = None
    is_penalty: bool = False

    def owning_loan(self) -> Loan:
        return self.loan


_INSTALLMENT_MONEY_FIELDS = [
    f.name for f in fields(LoanInstallment)
    if f.name not in ("loan_id", "installment_number", "due_date")
]
_PERIOD_MONEY_FIELDS = ["principal", "interest", "fee_charges", "penalty_charges"]
_SUMMARY_MONEY_FIELDS = [f.name for f in fields(LoanSummary) if f.name != "loan_id"]


def loan_to_dict(loan: Loan) -> Dict[str, Any]:
    """Loan row; installments and summary live in their own tables"""
    return {
        'id': loan.id,
        'currency': loan.currency.code,
        'status': loan.status.value,
        'grace_on_arrears_ageing_days': loan.grace_on_arrears_ageing_days,
        'arrears_based_on_original_schedule': loan.arrears_based_on_original_schedule,
        'interest_recalculation_enabled': loan.interest_recalculation_enabled,
    }


def loan_from_dict(data: Dict[str, Any]) -> Loan:
    return Loan(
        id=data['id'],
        currency=Currency.from_code(data['currency']),
        status=LoanStatus(data['status']),
        grace_on_arrears_ageing_days=data.get('grace_on_arrears_ageing_days') or 0,
        arrears_based_on_original_schedule=bool(data.get('arrears_based_on_original_schedule', False)),
        interest_recalculation_enabled=bool(data.get('interest_recalculation_enabled', False)),
    )


def installment_to_dict(installment: LoanInstallment) -> Dict[str, Any]:
    result = {
        'loan_id': installment.loan_id,
        'installment_number': installment.installment_number,
        'due_date': installment.due_date.isoformat(),
        'currency': installment.currency.code,
        # Stored so the batch reader can filter without recomputing
        'completed': installment.completed,
    }
    for name in _INSTALLMENT_MONEY_FIELDS:
        result[name] = str(getattr(installment, name).amount)
    return result


def installment_from_dict(data: Dict[str, Any]) -> LoanInstallment:
    currency = Currency.from_code(data['currency'])
    amounts = {name: money_from_string(data.get(name), currency) for name in _INSTALLMENT_MONEY_FIELDS}
    return LoanInstallment(
        loan_id=data['loan_id'],
        installment_number=data['installment_number'],
        due_date=date.fromisoformat(data['due_date']),
        **amounts
    )


def period_to_dict(period: OriginalSchedulePeriod) -> Dict[str, Any]:
    result = {
        'loan_id': period.loan_id,
        'version': period.version,
        'due_date': period.due_date.isoformat(),
        'currency': period.principal.currency.code,
    }
    for name in _PERIOD_MONEY_FIELDS:
        result[name] = str(getattr(period, name).amount)
    return result


def period_from_dict(data: Dict[str, Any]) -> OriginalSchedulePeriod:
    currency = Currency.from_code(data['currency'])
    return OriginalSchedulePeriod(
        loan_id=data['loan_id'],
        version=data['version'],
        due_date=date.fromisoformat(data['due_date']),
        **{name: money_from_string(data.get(name), currency) for name in _PERIOD_MONEY_FIELDS}
    )


def summary_to_dict(summary: LoanSummary) -> Dict[str, Any]:
    result = {
        'loan_id': summary.loan_id,
        'currency': summary.principal_repaid.currency.code,
    }
    for name in _SUMMARY_MONEY_FIELDS:
        result[name] = str(getattr(summary, name).amount)
    return result


def summary_from_dict(data: Dict[str, Any]) -> LoanSummary:
    currency = Currency.from_code(data['currency'])
    return LoanSummary(
        loan_id=data['loan_id'],
        **{name: money_from_string(data.get(name), currency) for name in _SUMMARY_MONEY_FIELDS}
    )


class LoanRepository:
    """
    Records ledger state for loans.

    Owns the ledger tables; reads for ageing purposes go through
    `schedule_source.StorageLedgerSource`.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def save_loan(self, loan: Loan) -> None:
        """Save a loan together with its current installments and summary"""
        with self.storage.atomic():
            self.storage.save(LOANS_TABLE, loan.id, loan_to_dict(loan))
            self.replace_installments(loan.id, loan.installments)
            if loan.summary is not None:
                self.save_summary(loan.summary)

    def replace_installments(self, loan_id: str, installments: List[LoanInstallment]) -> None:
        """Replace the loan's current schedule with `installments`"""
        with self.storage.atomic():
            for existing in self.storage.find(INSTALLMENTS_TABLE, {'loan_id': loan_id}):
                self.storage.delete(INSTALLMENTS_TABLE, _installment_key(loan_id, existing['installment_number']))
            self.storage.save_many(INSTALLMENTS_TABLE, [
                (_installment_key(loan_id, installment.installment_number), installment_to_dict(installment))
                for installment in installments
            ])

    def save_summary(self, summary: LoanSummary) -> None:
        self.storage.save(SUMMARIES_TABLE, summary.loan_id, summary_to_dict(summary))

    def update_status(self, loan_id: str, status: LoanStatus) -> Loan:
        data = self.storage.load(LOANS_TABLE, loan_id)
        if not data:
            raise ValueError(f"Loan {loan_id} not found")
        data['status'] = status.value
        self.storage.save(LOANS_TABLE, loan_id, data)
        return loan_from_dict(data)

    def snapshot_original_schedule(self, loan_id: str, periods: List[OriginalSchedulePeriod]) -> int:
        """
        Store `periods` as the next schedule version of the loan.

        The version numbers on the given periods are ignored; the stored
        version is one above the loan's current latest.

        Returns:
            The version number written
        """
        if not self.storage.exists(LOANS_TABLE, loan_id):
            raise ValueError(f"Loan {loan_id} not found")

        history = self.storage.find(SCHEDULE_HISTORY_TABLE, {'loan_id': loan_id})
        version = max((row['version'] for row in history), default=0) + 1

        rows = []
        for index, period in enumerate(periods, start=1):
            stored = OriginalSchedulePeriod(
                loan_id=loan_id,
                version=version,
                due_date=period.due_date,
                principal=period.principal,
                interest=period.interest,
                fee_charges=period.fee_charges,
                penalty_charges=period.penalty_charges,
            )
            rows.append((f"{loan_id}:v{version}:{index}", period_to_dict(stored)))
        self.storage.save_many(SCHEDULE_HISTORY_TABLE, rows)
        return version


def _installment_key(loan_id: str, installment_number: int) -> str:
    return f"{loan_id}:{installment_number}"
