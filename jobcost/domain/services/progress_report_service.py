"""
Progress Report Service - period-over-period progress rollup.

Workflow: draft -> submitted -> reviewed -> approved -> invoiced.

Each report carries one line per cost code grouping. A line's
previous_complete is the approved CTD of the same cost code on the latest
approved (or invoiced) report; draft and in-review reports never move that
baseline. Report creation serialises per job on jobs.progress_sequence.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from jobcost.config import get_config, JobCostConfig
from jobcost.models import ProgressReport, ProgressReportLine, ReportStatus, BASELINE_STATUSES
from jobcost.infrastructure.repositories import JobRepository, ProgressReportRepository, SOVRepository
from jobcost.money import cents_to_display
from jobcost.domain.entities import (
    ClampWarning, LineItemProgress, ProgressAmount, ZERO_PROGRESS, require_finite_percent,
)
from jobcost.domain.exceptions import (
    DuplicateReportNumberError,
    InvalidTransitionError,
    LineItemNotFoundError,
    OutOfSequenceError,
    ReportNotFoundError,
    ValidationError,
)
from .actual_cost_service import ActualCostAggregator
from .transaction import atomic

logger = logging.getLogger(__name__)


@dataclass
class ProgressResult:
    """A report plus any clamp warnings raised while writing it."""
    report: ProgressReport
    warnings: List[ClampWarning] = field(default_factory=list)


@dataclass(frozen=True)
class ReportSummary:
    report_id: int
    report_number: str
    status: str
    period_start: date
    period_end: date
    total_assigned_cents: int
    total_submitted_ctd_cents: int
    total_approved_ctd_cents: int
    total_amount_this_period_cents: int
    total_holdback_this_period_cents: int
    total_due_this_period_cents: int
    calculated_percent_ctd: Optional[float]
    actual_cost_to_date_cents: int
    earned_to_burned_ratio: Optional[float]
    health_status: Optional[str]

    def to_dict(self) -> dict:
        return {
            'report_id': self.report_id,
            'report_number': self.report_number,
            'status': self.status,
            'period_start': self.period_start.isoformat(),
            'period_end': self.period_end.isoformat(),
            'total_assigned_cents': self.total_assigned_cents,
            'total_submitted_ctd_cents': self.total_submitted_ctd_cents,
            'total_approved_ctd_cents': self.total_approved_ctd_cents,
            'total_amount_this_period_cents': self.total_amount_this_period_cents,
            'total_holdback_this_period_cents': self.total_holdback_this_period_cents,
            'total_due_this_period_cents': self.total_due_this_period_cents,
            'calculated_percent_ctd': self.calculated_percent_ctd,
            'actual_cost_to_date_cents': self.actual_cost_to_date_cents,
            'earned_to_burned_ratio': self.earned_to_burned_ratio,
            'health_status': self.health_status,
        }


@dataclass(frozen=True)
class LineHistoryEntry:
    """One approved period of a cost code's progress history."""
    report_number: str
    status: str
    period_start: date
    period_end: date
    previous_complete: ProgressAmount
    approved_ctd: ProgressAmount
    amount_this_period_cents: int
    holdback_this_period_cents: int
    due_this_period_cents: int

    def to_dict(self) -> dict:
        return {
            'report_number': self.report_number,
            'status': self.status,
            'period_start': self.period_start.isoformat(),
            'period_end': self.period_end.isoformat(),
            'previous_complete': self.previous_complete.to_dict(),
            'approved_ctd': self.approved_ctd.to_dict(),
            'amount_this_period_cents': self.amount_this_period_cents,
            'holdback_this_period_cents': self.holdback_this_period_cents,
            'due_this_period_cents': self.due_this_period_cents,
        }


def line_to_progress(line: ProgressReportLine) -> LineItemProgress:
    """Rebuild the rollup entity from a stored line."""
    approved = None
    if line.approved_ctd_percent is not None:
        approved = ProgressAmount(line.approved_ctd_cents, line.approved_ctd_percent)
    return LineItemProgress(
        cost_code=line.cost_code,
        assigned_cost_cents=line.assigned_cost_cents,
        previous_complete=ProgressAmount(line.previous_complete_cents, line.previous_complete_percent),
        submitted_ctd=ProgressAmount(line.submitted_ctd_cents, line.submitted_ctd_percent),
        approved_ctd=approved,
        holdback_percent=line.holdback_percent,
    )


def store_progress(line: ProgressReportLine, progress: LineItemProgress) -> None:
    """Write the rollup entity's figures onto a stored line."""
    line.submitted_ctd_cents = progress.submitted_ctd.amount_cents
    line.submitted_ctd_percent = progress.submitted_ctd.percent
    if progress.approved_ctd is not None:
        line.approved_ctd_cents = progress.approved_ctd.amount_cents
        line.approved_ctd_percent = progress.approved_ctd.percent
        line.amount_this_period_cents = progress.amount_this_period_cents
        line.holdback_this_period_cents = progress.holdback_this_period_cents
        line.due_this_period_cents = progress.due_this_period_cents


class ProgressReportService:
    """
    Service for progress report creation, workflow and history.

    Approved lines are immutable; corrections belong in a later period.
    """

    def __init__(self, session: Session, config: Optional[JobCostConfig] = None):
        self.session = session
        self.config = config or get_config()
        self.job_repo = JobRepository(session)
        self.sov_repo = SOVRepository(session)
        self.repo = ProgressReportRepository(session)
        self.actuals = ActualCostAggregator(session, self.config)

    def get_report(self, report_id: int) -> ProgressReport:
        report = self.repo.get_by_id(report_id)
        if not report:
            raise ReportNotFoundError(report_id)
        return report

    def latest_approved(self, job_id: int) -> Optional[ProgressReport]:
        """Latest approved or invoiced report; the source of EV."""
        self.job_repo.require(job_id)
        return self.repo.get_latest_baseline(job_id)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_report(
        self,
        job_id: int,
        report_number: str,
        period_start: date,
        period_end: date,
        field_progress: Optional[Dict[str, float]] = None,
        increments: Optional[Dict[str, float]] = None,
        holdback_percent: Optional[float] = None,
        report_date: Optional[date] = None,
    ) -> ProgressResult:
        """
        Open a draft report for the next period.

        Args:
            job_id: Job the report belongs to
            report_number: Unique within the job
            period_start/period_end: Reporting period, inclusive
            field_progress: cost_code -> submitted CTD percent
            increments: cost_code -> percent added to the previous approved percent
            holdback_percent: Retention for every line; config default when omitted

        Returns:
            ProgressResult with the draft report and any field clamp warnings

        Raises:
            ValidationError: bad period, holdback or empty SOV; a non-finite
                percent; a cost code given both a percent and an increment
            DuplicateReportNumberError: report number reused
            OutOfSequenceError: an earlier report is not yet approved, or the
                period does not follow the latest report's period
            LineItemNotFoundError: progress given for an unknown cost code
            ConcurrencyError: another report was created for the job concurrently
        """
        job = self.job_repo.require(job_id)
        report_number = str(report_number).strip()
        if not report_number:
            raise ValidationError("report_number", "must not be blank")
        if period_end < period_start:
            raise ValidationError("period_end", f"{period_end} is before period start {period_start}")
        if holdback_percent is None:
            holdback_percent = self.config.default_holdback_percent
        if not 0 <= holdback_percent <= 100:
            raise ValidationError("holdback_percent", f"must be between 0 and 100, got {holdback_percent}")

        if self.repo.get_by_number(job_id, report_number):
            raise DuplicateReportNumberError(job_id, report_number)

        open_reports = self.repo.get_open(job_id)
        if open_reports:
            raise OutOfSequenceError(
                job_id,
                f"report {open_reports[0].report_number} is still {open_reports[0].status}; "
                f"it must be approved before the next period is opened",
            )

        latest = self.repo.get_latest(job_id)
        if latest and period_start <= latest.period_end:
            raise OutOfSequenceError(
                job_id,
                f"period starting {period_start} does not follow report "
                f"{latest.report_number} ending {latest.period_end}",
            )

        groups = self.sov_repo.get_cost_code_groups(job_id)
        if not groups:
            raise ValidationError("sov", f"job {job_id} has no SOV line items to report against")

        self._check_field_input(job_id, {g.cost_code for g in groups}, field_progress, increments)

        baseline = {line.cost_code: line for line in latest.lines} if latest else {}

        warnings: List[ClampWarning] = []
        rows = []
        for group in groups:
            prior = baseline.get(group.cost_code)
            previous = (
                ProgressAmount(prior.approved_ctd_cents, prior.approved_ctd_percent)
                if prior is not None and prior.approved_ctd_percent is not None
                else ZERO_PROGRESS
            )
            progress = LineItemProgress(
                cost_code=group.cost_code,
                assigned_cost_cents=group.assigned_cost_cents,
                previous_complete=previous,
                submitted_ctd=ProgressAmount.of(group.assigned_cost_cents, previous.percent),
                holdback_percent=float(holdback_percent),
            )
            warning = self._apply_field_input(progress, field_progress, increments)
            if warning:
                warnings.append(warning)
            rows.append((group, progress))

        with atomic(self.session):
            sequence = self.job_repo.advance_progress_sequence(job_id, job.progress_sequence)
            report = self.repo.create(
                job_id=job_id,
                report_number=report_number,
                report_date=report_date or period_end,
                period_start=period_start,
                period_end=period_end,
                sequence=sequence,
                status=ReportStatus.DRAFT.value,
            )
            for group, progress in rows:
                line = ProgressReportLine(
                    cost_code=group.cost_code,
                    sov_line_item_id=group.first_line_item_id,
                    description=group.description,
                    assigned_cost_cents=group.assigned_cost_cents,
                    previous_complete_cents=progress.previous_complete.amount_cents,
                    previous_complete_percent=progress.previous_complete.percent,
                    holdback_percent=progress.holdback_percent,
                )
                store_progress(line, progress)
                report.lines.append(line)
            self._update_totals(report)

        for warning in warnings:
            self._log_clamp(report, warning)
        logger.info(
            f"Opened progress report {report.report_number} for job {job.code} "
            f"({period_start} to {period_end}, {len(rows)} cost codes)"
        )
        return ProgressResult(report=report, warnings=warnings)

    def record_field_progress(
        self,
        report_id: int,
        field_progress: Optional[Dict[str, float]] = None,
        increments: Optional[Dict[str, float]] = None,
    ) -> ProgressResult:
        """
        Update submitted CTD on a draft report.

        Raises:
            InvalidTransitionError: report is past draft
            ValidationError: non-finite percent, or percent and increment for one cost code
            LineItemNotFoundError: cost code not on the report
        """
        report = self.get_report(report_id)
        if report.status != ReportStatus.DRAFT.value:
            raise InvalidTransitionError(report.id, report.status, "record field progress on")

        lines = {line.cost_code: line for line in report.lines}
        self._check_field_input(report.job_id, set(lines), field_progress, increments)

        warnings: List[ClampWarning] = []
        with atomic(self.session):
            for cost_code, line in lines.items():
                progress = line_to_progress(line)
                warning = self._apply_field_input(progress, field_progress, increments)
                if warning:
                    warnings.append(warning)
                store_progress(line, progress)
            self._update_totals(report)

        for warning in warnings:
            self._log_clamp(report, warning)
        return ProgressResult(report=report, warnings=warnings)

    # =========================================================================
    # Workflow
    # =========================================================================

    def submit(self, report_id: int, submitted_by: Optional[str] = None, notes: Optional[str] = None) -> ProgressReport:
        """
        draft -> submitted

        Raises:
            InvalidTransitionError: report is not a draft
            OutOfSequenceError: an earlier period is not yet approved
        """
        report = self.get_report(report_id)
        self._require_status(report, ReportStatus.DRAFT, "submit")
        self._check_sequence(report)

        with atomic(self.session):
            report.status = ReportStatus.SUBMITTED.value
            report.submitted_by = submitted_by
            report.submitted_at = datetime.utcnow()
            report.submission_notes = notes

        logger.info(f"Progress report {report.report_number} submitted by {submitted_by or 'unknown'}")
        return report

    def review(self, report_id: int, reviewed_by: Optional[str] = None, notes: Optional[str] = None) -> ProgressReport:
        """submitted -> reviewed"""
        report = self.get_report(report_id)
        self._require_status(report, ReportStatus.SUBMITTED, "review")

        with atomic(self.session):
            report.status = ReportStatus.REVIEWED.value
            report.reviewed_by = reviewed_by
            report.reviewed_at = datetime.utcnow()
            report.review_notes = notes

        logger.info(f"Progress report {report.report_number} reviewed by {reviewed_by or 'unknown'}")
        return report

    def approve(
        self,
        report_id: int,
        approved_percents: Optional[Dict[str, float]] = None,
        approved_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProgressResult:
        """
        reviewed -> approved

        The reviewer's percent per cost code defaults to the submitted one.
        Each is clamped to max(previous_complete, min(100, requested)); clamps
        are returned as warnings rather than raised.

        Raises:
            InvalidTransitionError: report is not reviewed
            ValidationError: a requested percent is NaN or infinite
            OutOfSequenceError: an earlier period is not yet approved
            LineItemNotFoundError: cost code not on the report
        """
        report = self.get_report(report_id)
        self._require_status(report, ReportStatus.REVIEWED, "approve")
        self._check_sequence(report)

        approved_percents = approved_percents or {}
        lines = {line.cost_code: line for line in report.lines}
        for cost_code, percent in approved_percents.items():
            if cost_code not in lines:
                raise LineItemNotFoundError(f"{report.job_id}/{cost_code}")
            if percent is not None:
                require_finite_percent(f"approved_percents.{cost_code}", percent)

        warnings: List[ClampWarning] = []
        with atomic(self.session):
            for cost_code, line in lines.items():
                progress = line_to_progress(line)
                warning = progress.approve(approved_percents.get(cost_code))
                if warning:
                    warnings.append(warning)
                store_progress(line, progress)
                logger.debug(
                    f"{report.report_number} {cost_code}: {progress.previous_complete.percent:.2f}% -> "
                    f"{progress.approved_ctd.percent:.2f}%, this period "
                    f"{cents_to_display(progress.amount_this_period_cents)}"
                )
            # Lines are written while the report is still 'reviewed'
            self.session.flush()

            self._update_totals(report)
            report.status = ReportStatus.APPROVED.value
            report.approved_by = approved_by
            report.approved_at = datetime.utcnow()
            report.approval_notes = notes

        for warning in warnings:
            self._log_clamp(report, warning)
        logger.info(
            f"Progress report {report.report_number} approved: CTD "
            f"{cents_to_display(report.total_approved_ctd_cents)}, due this period "
            f"{cents_to_display(report.total_due_this_period_cents)}"
        )
        return ProgressResult(report=report, warnings=warnings)

    def invoice(self, report_id: int, invoice_reference: Optional[str] = None) -> ProgressReport:
        """approved -> invoiced"""
        report = self.get_report(report_id)
        self._require_status(report, ReportStatus.APPROVED, "invoice")

        with atomic(self.session):
            report.status = ReportStatus.INVOICED.value
            report.invoiced_at = datetime.utcnow()
            report.invoice_reference = invoice_reference

        logger.info(f"Progress report {report.report_number} invoiced ({invoice_reference or 'no reference'})")
        return report

    # =========================================================================
    # Queries
    # =========================================================================

    def report_summary(self, report_id: int) -> ReportSummary:
        """
        Report totals plus health, judged on approved CTD against actual cost
        up to the end of the report period.
        """
        report = self.get_report(report_id)
        actual = self.actuals.total_actual_cost(report.job_id, as_of=report.period_end)
        earned = report.total_approved_ctd_cents or 0
        ratio = earned / actual if actual > 0 else None
        return ReportSummary(
            report_id=report.id,
            report_number=report.report_number,
            status=report.status,
            period_start=report.period_start,
            period_end=report.period_end,
            total_assigned_cents=report.total_assigned_cents or 0,
            total_submitted_ctd_cents=report.total_submitted_ctd_cents or 0,
            total_approved_ctd_cents=earned,
            total_amount_this_period_cents=report.total_amount_this_period_cents or 0,
            total_holdback_this_period_cents=report.total_holdback_this_period_cents or 0,
            total_due_this_period_cents=report.total_due_this_period_cents or 0,
            calculated_percent_ctd=report.calculated_percent_ctd,
            actual_cost_to_date_cents=actual,
            earned_to_burned_ratio=ratio,
            health_status=self.config.get_health_status(ratio),
        )

    def line_item_history(self, job_id: int, cost_code: str) -> List[LineHistoryEntry]:
        """
        Approved progress for one cost code, oldest period first.

        Raises:
            LineItemNotFoundError: no SOV line item carries the cost code
        """
        self.job_repo.require(job_id)
        if not self.sov_repo.get_by_cost_code(job_id, cost_code):
            raise LineItemNotFoundError(f"{job_id}/{cost_code}")

        return [
            LineHistoryEntry(
                report_number=line.report.report_number,
                status=line.report.status,
                period_start=line.report.period_start,
                period_end=line.report.period_end,
                previous_complete=ProgressAmount(line.previous_complete_cents, line.previous_complete_percent),
                approved_ctd=ProgressAmount(line.approved_ctd_cents, line.approved_ctd_percent),
                amount_this_period_cents=line.amount_this_period_cents,
                holdback_this_period_cents=line.holdback_this_period_cents,
                due_this_period_cents=line.due_this_period_cents,
            )
            for line in self.repo.get_line_history(job_id, cost_code)
        ]

    def retention_held_to_date(self, job_id: int) -> int:
        """Total holdback withheld across approved and invoiced reports."""
        self.job_repo.require(job_id)
        return sum(r.total_holdback_this_period_cents or 0 for r in self.repo.get_baselines(job_id))

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_field_input(
        job_id: int,
        known: Set[str],
        field_progress: Optional[Dict[str, float]],
        increments: Optional[Dict[str, float]],
    ) -> None:
        """A cost code takes either an absolute percent or an increment, never both."""
        overlap = set(field_progress or {}) & set(increments or {})
        if overlap:
            raise ValidationError(
                "increments",
                f"cost codes given both a percent and an increment: {', '.join(sorted(overlap))}",
            )
        for name, values in (("field_progress", field_progress), ("increments", increments)):
            for cost_code, percent in (values or {}).items():
                if cost_code not in known:
                    raise LineItemNotFoundError(f"{job_id}/{cost_code}")
                require_finite_percent(f"{name}.{cost_code}", percent)

    @staticmethod
    def _apply_field_input(
        progress: LineItemProgress,
        field_progress: Optional[Dict[str, float]],
        increments: Optional[Dict[str, float]],
    ) -> Optional[ClampWarning]:
        if field_progress and progress.cost_code in field_progress:
            return progress.submit_percent(field_progress[progress.cost_code])
        if increments and progress.cost_code in increments:
            return progress.submit_increment(increments[progress.cost_code])
        return None

    @staticmethod
    def _require_status(report: ProgressReport, expected: ReportStatus, action: str) -> None:
        if report.status != expected.value:
            raise InvalidTransitionError(report.id, report.status, action)

    def _check_sequence(self, report: ProgressReport) -> None:
        """Every earlier report of the job must have reached approval."""
        for other in self.repo.get_by_job(report.job_id):
            if other.id == report.id or other.period_start >= report.period_start:
                continue
            if other.status not in BASELINE_STATUSES:
                raise OutOfSequenceError(
                    report.job_id,
                    f"report {other.report_number} for an earlier period is still {other.status}",
                )

    def _update_totals(self, report: ProgressReport) -> None:
        lines = [line_to_progress(line) for line in report.lines]
        approved = [p for p in lines if p.approved_ctd is not None]

        report.total_assigned_cents = sum(p.assigned_cost_cents for p in lines)
        report.total_submitted_ctd_cents = sum(p.submitted_ctd.amount_cents for p in lines)
        report.total_approved_ctd_cents = sum(p.approved_ctd.amount_cents for p in approved)
        report.total_amount_this_period_cents = sum(p.amount_this_period_cents for p in approved)
        report.total_holdback_this_period_cents = sum(p.holdback_this_period_cents for p in approved)
        report.total_due_this_period_cents = sum(p.due_this_period_cents for p in approved)

        contract_value = self.job_repo.require(report.job_id).contract_value_cents
        report.calculated_percent_ctd = (
            report.total_approved_ctd_cents / contract_value * 100 if contract_value else None
        )

    @staticmethod
    def _log_clamp(report: ProgressReport, warning: ClampWarning) -> None:
        logger.warning(
            f"Progress report {report.report_number} {warning.cost_code}: "
            f"{warning.requested_percent:.2f}% clamped to {warning.applied_percent:.2f}% ({warning.reason})"
        )
