"""
Pydantic schemas for API responses
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from .aging import ArrearsAgingRecord, RecomputeOutcome
from .currency import Money
from .jobs import JobRunReport


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (USD, EUR, etc.)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


class ArrearsAgingResponse(BaseModel):
    loan_id: str
    principal_overdue: MoneyModel
    interest_overdue: MoneyModel
    fee_charges_overdue: MoneyModel
    penalty_charges_overdue: MoneyModel
    total_overdue: MoneyModel
    overdue_since_date: str

    @classmethod
    def from_record(cls, record: ArrearsAgingRecord) -> 'ArrearsAgingResponse':
        return cls(
            loan_id=record.loan_id,
            principal_overdue=MoneyModel.from_money(record.principal_overdue),
            interest_overdue=MoneyModel.from_money(record.interest_overdue),
            fee_charges_overdue=MoneyModel.from_money(record.fee_charges_overdue),
            penalty_charges_overdue=MoneyModel.from_money(record.penalty_charges_overdue),
            total_overdue=MoneyModel.from_money(record.total_overdue),
            overdue_since_date=record.overdue_since_date.isoformat(),
        )


class ArrearsListResponse(BaseModel):
    count: int
    records: List[ArrearsAgingResponse]


class RecomputeResponse(BaseModel):
    loan_id: str
    outcome: str
    record: Optional[ArrearsAgingResponse] = None

    @classmethod
    def build(cls, loan_id: str, outcome: RecomputeOutcome,
              record: Optional[ArrearsAgingRecord]) -> 'RecomputeResponse':
        return cls(
            loan_id=loan_id,
            outcome=outcome.value,
            record=ArrearsAgingResponse.from_record(record) if record else None,
        )


class JobRunResponse(BaseModel):
    job_name: str
    as_of: str
    started_at: str
    finished_at: str
    duration_seconds: float
    rows_written: int

    @classmethod
    def from_report(cls, report: JobRunReport) -> 'JobRunResponse':
        return cls(**report.to_dict())
