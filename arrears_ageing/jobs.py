"""
Scheduled Jobs Module

Entry point the scheduler calls to rebuild the arrears table.
"""

from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging
import time

from .aging import ArrearsAgingEngine
from .logging_config import log_action


logger = logging.getLogger("arrears.job")

JOB_NAME = "update_loan_arrears_ageing"


@dataclass
class JobRunReport:
    """Outcome of one batch rebuild"""
    job_name: str
    as_of: date
    started_at: datetime
    finished_at: datetime
    rows_written: int

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job_name': self.job_name,
            'as_of': self.as_of.isoformat(),
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
            'duration_seconds': self.duration_seconds,
            'rows_written': self.rows_written,
        }


class ArrearsAgeingJob:
    """Full rebuild of the arrears table for the active loan book"""

    def __init__(self, engine: ArrearsAgingEngine):
        self.engine = engine
        self.last_report: Optional[JobRunReport] = None

    def run(self, today: Optional[date] = None) -> JobRunReport:
        as_of = today or self.engine.today()
        started_at = datetime.now(timezone.utc)
        t0 = time.perf_counter()

        try:
            rows = self.engine.recompute_all(as_of)
        except Exception:
            logger.exception(f"{JOB_NAME} failed for {as_of.isoformat()}")
            raise

        report = JobRunReport(
            job_name=JOB_NAME,
            as_of=as_of,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            rows_written=rows,
        )
        self.last_report = report
        log_action(logger, "info", f"{JOB_NAME}: {rows} rows in {time.perf_counter() - t0:.3f}s",
                   action="rebuild", extra=report.to_dict())
        return report
