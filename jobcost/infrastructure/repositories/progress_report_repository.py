"""
Progress Report Repository - Data access layer for progress reports and lines.
"""
import uuid
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from jobcost.models import ProgressReport, ProgressReportLine, BASELINE_STATUSES
from .base_repository import BaseRepository


class ProgressReportRepository(BaseRepository[ProgressReport]):

    def __init__(self, session: Session):
        super().__init__(session, ProgressReport)

    def get_by_job(self, job_id: int) -> List[ProgressReport]:
        """All reports for a job in period order."""
        return self.session.query(ProgressReport).filter(
            ProgressReport.job_id == job_id
        ).order_by(ProgressReport.period_start, ProgressReport.sequence).all()

    def get_by_number(self, job_id: int, report_number: str) -> Optional[ProgressReport]:
        return self.session.query(ProgressReport).filter(
            ProgressReport.job_id == job_id,
            ProgressReport.report_number == report_number,
        ).first()

    def get_latest(self, job_id: int) -> Optional[ProgressReport]:
        """Report with the latest period, whatever its status."""
        return self.session.query(ProgressReport).filter(
            ProgressReport.job_id == job_id
        ).order_by(ProgressReport.period_end.desc(), ProgressReport.sequence.desc()).first()

    def get_latest_baseline(self, job_id: int, as_of: Optional[date] = None) -> Optional[ProgressReport]:
        """
        Latest approved-or-invoiced report; the CTD baseline for the next period.

        Args:
            as_of: only consider reports whose period ends on or before this date
        """
        query = self.session.query(ProgressReport).filter(
            ProgressReport.job_id == job_id,
            ProgressReport.status.in_(BASELINE_STATUSES),
        )
        if as_of is not None:
            query = query.filter(ProgressReport.period_end <= as_of)
        return query.order_by(
            ProgressReport.period_end.desc(), ProgressReport.sequence.desc()
        ).first()

    def get_open(self, job_id: int) -> List[ProgressReport]:
        """Reports that have not reached approval yet."""
        return self.session.query(ProgressReport).filter(
            ProgressReport.job_id == job_id,
            ProgressReport.status.notin_(BASELINE_STATUSES),
        ).order_by(ProgressReport.period_start).all()

    def get_baselines(self, job_id: int) -> List[ProgressReport]:
        return self.session.query(ProgressReport).filter(
            ProgressReport.job_id == job_id,
            ProgressReport.status.in_(BASELINE_STATUSES),
        ).order_by(ProgressReport.period_end, ProgressReport.sequence).all()

    def get_line_history(self, job_id: int, cost_code: str) -> List[ProgressReportLine]:
        """Approved-or-later lines for one cost code, oldest period first."""
        return self.session.query(ProgressReportLine).join(ProgressReport).filter(
            ProgressReport.job_id == job_id,
            ProgressReport.status.in_(BASELINE_STATUSES),
            ProgressReportLine.cost_code == cost_code,
        ).order_by(ProgressReport.period_end, ProgressReport.sequence).all()

    def create(self, job_id: int, **fields) -> ProgressReport:
        report = ProgressReport(uuid=str(uuid.uuid4()), job_id=job_id, **fields)
        self.add(report)
        return report
