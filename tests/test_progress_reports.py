"""
Tests for the Progress Report Engine.

Covers the period-over-period CTD chain, holdback split, approval clamps,
workflow ordering and the history query surface.
"""
import logging
from datetime import date

import pytest

from jobcost.models import ProgressReport
from jobcost.domain.entities import LineItemProgress, ProgressAmount, split_holdback, clamp_approved_percent
from jobcost.domain.exceptions import (
    ConcurrencyError,
    DuplicateReportNumberError,
    ImmutableFieldError,
    InvalidTransitionError,
    LineItemNotFoundError,
    OutOfSequenceError,
    ValidationError,
)
from jobcost.infrastructure.repositories import JobRepository
from jobcost.domain.services import ActualCostAggregator, ProgressReportService, SOVLedgerService

JAN = (date(2024, 1, 1), date(2024, 1, 31))
FEB = (date(2024, 2, 1), date(2024, 2, 29))
MAR = (date(2024, 3, 1), date(2024, 3, 31))


class TestLineItemProgress:
    """Pure rollup math."""

    def test_holdback_split_sums_to_amount(self):
        for amount in (2666667, 3333333, 1, 0, -50001):
            holdback, due = split_holdback(amount, 10)
            assert holdback + due == amount
            assert holdback >= 0

    def test_negative_period_has_no_holdback(self):
        assert split_holdback(-1000, 10) == (0, -1000)

    def test_clamp_floor_and_ceiling(self):
        assert clamp_approved_percent(30, 25) == (30.0, 'below_previous')
        assert clamp_approved_percent(30, 120) == (100.0, 'above_maximum')
        assert clamp_approved_percent(30, 40) == (40.0, None)

    def test_submitted_and_approved_may_differ(self):
        progress = LineItemProgress('SYS1A1', 100000, holdback_percent=10)
        progress.submit_percent(50)
        assert progress.approve(40) is None
        assert progress.submitted_ctd == ProgressAmount(50000, 50.0)
        assert progress.approved_ctd == ProgressAmount(40000, 40.0)
        assert progress.due_this_period_cents == 36000

    def test_increment_overflow_clamped(self):
        progress = LineItemProgress('SYS1A1', 100000, previous_complete=ProgressAmount(90000, 90.0))
        warning = progress.submit_increment(15)
        assert warning.reason == 'above_maximum'
        assert progress.submitted_ctd.percent == 100.0

    @pytest.mark.parametrize("percent", [float('nan'), float('inf'), float('-inf')])
    def test_non_finite_percent_rejected(self, percent):
        progress = LineItemProgress('SYS1A1', 100000)
        with pytest.raises(ValidationError):
            progress.submit_percent(percent)
        with pytest.raises(ValidationError):
            progress.approve(percent)
        assert progress.approved_ctd is None


class TestScenario:
    """$133,333.33 line at 10% holdback over two periods."""

    def test_two_period_rollup(self, test_db, sov_job, run_period):
        first = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        line = first.report.lines[0]
        assert line.previous_complete_cents == 0
        assert line.approved_ctd_cents == 2666667
        assert line.amount_this_period_cents == 2666667
        assert line.holdback_this_period_cents == 266667
        assert line.due_this_period_cents == 2400000

        second = run_period(sov_job.id, 'PR-2', *FEB, approved={'SYS1A1': 45})
        line = second.report.lines[0]
        assert line.previous_complete_cents == 2666667
        assert line.previous_complete_percent == 20.0
        assert line.approved_ctd_cents == 6000000
        assert line.amount_this_period_cents == 3333333
        assert line.holdback_this_period_cents == 333333
        assert line.due_this_period_cents == 3000000

    def test_report_summary_totals(self, test_db, sov_job, run_period):
        result = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        report = result.report
        assert report.status == 'approved'
        assert report.total_assigned_cents == 13333333
        assert report.total_approved_ctd_cents == 2666667
        assert report.total_holdback_this_period_cents == 266667
        assert report.total_due_this_period_cents == 2400000
        assert report.calculated_percent_ctd == pytest.approx(20.0, abs=1e-4)
        assert report.approved_by == 'owner'

    def test_summary_health_against_actuals(self, test_db, sov_job, run_period):
        ActualCostAggregator(test_db).record_invoice(sov_job.id, {
            'invoice_number': 'INV-1', 'invoice_date': date(2024, 1, 15),
            'total_amount_cents': 2000000,
            'breakdown': [{'cost_code': 'SYS1A1', 'amount_cents': 2000000}],
        })
        result = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})

        summary = ProgressReportService(test_db).report_summary(result.report.id)
        assert summary.actual_cost_to_date_cents == 2000000
        assert summary.earned_to_burned_ratio == pytest.approx(1.3333, rel=1e-3)
        assert summary.health_status == 'ahead_of_schedule'

    def test_summary_without_actuals_has_no_health(self, test_db, sov_job, run_period):
        result = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        summary = ProgressReportService(test_db).report_summary(result.report.id)
        assert summary.earned_to_burned_ratio is None
        assert summary.health_status is None


class TestMonotonicity:

    def test_approved_below_previous_is_clamped_with_warning(self, test_db, sov_job, run_period, caplog):
        run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 30})
        with caplog.at_level(logging.WARNING):
            result = run_period(sov_job.id, 'PR-2', *FEB, approved={'SYS1A1': 25})

        line = result.report.lines[0]
        assert line.approved_ctd_percent == 30.0
        assert line.amount_this_period_cents == 0
        assert [w.reason for w in result.warnings] == ['below_previous']
        assert 'clamped' in caplog.text

    def test_approved_above_100_is_clamped(self, test_db, sov_job, run_period):
        result = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 130})
        assert result.report.lines[0].approved_ctd_percent == 100.0
        assert result.report.lines[0].approved_ctd_cents == 13333333
        assert result.warnings[0].reason == 'above_maximum'

    def test_history_is_non_decreasing(self, test_db, sov_job, run_period):
        for number, period, pct in (('PR-1', JAN, 10), ('PR-2', FEB, 5), ('PR-3', MAR, 60)):
            run_period(sov_job.id, number, *period, approved={'SYS1A1': pct})

        history = ProgressReportService(test_db).line_item_history(sov_job.id, 'SYS1A1')
        percents = [h.approved_ctd.percent for h in history]
        assert percents == sorted(percents)
        assert percents == [10.0, 10.0, 60.0]
        for previous, current in zip(history, history[1:]):
            assert current.previous_complete == previous.approved_ctd

    def test_reviewer_may_accept_submitted_figure(self, test_db, sov_job, run_period):
        result = run_period(sov_job.id, 'PR-1', *JAN, field_progress={'SYS1A1': 35})
        line = result.report.lines[0]
        assert line.submitted_ctd_percent == 35.0
        assert line.approved_ctd_percent == 35.0
        assert result.warnings == []


class TestSequencing:

    def test_next_period_requires_approval(self, test_db, sov_job):
        service = ProgressReportService(test_db)
        service.create_report(sov_job.id, 'PR-1', *JAN)
        with pytest.raises(OutOfSequenceError):
            service.create_report(sov_job.id, 'PR-2', *FEB)

    def test_period_must_follow_latest(self, test_db, sov_job, run_period):
        run_period(sov_job.id, 'PR-1', *FEB, approved={'SYS1A1': 10})
        with pytest.raises(OutOfSequenceError):
            ProgressReportService(test_db).create_report(sov_job.id, 'PR-2', *JAN)

    def test_duplicate_report_number(self, test_db, sov_job, run_period):
        run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 10})
        with pytest.raises(DuplicateReportNumberError):
            ProgressReportService(test_db).create_report(sov_job.id, 'PR-1', *FEB)

    def test_period_end_before_start(self, test_db, sov_job):
        with pytest.raises(ValidationError):
            ProgressReportService(test_db).create_report(sov_job.id, 'PR-1', date(2024, 2, 1), date(2024, 1, 1))

    def test_job_without_sov(self, test_db, job):
        with pytest.raises(ValidationError):
            ProgressReportService(test_db).create_report(job.id, 'PR-1', *JAN)

    def test_unknown_cost_code_in_field_progress(self, test_db, sov_job):
        with pytest.raises(LineItemNotFoundError):
            ProgressReportService(test_db).create_report(sov_job.id, 'PR-1', *JAN, field_progress={'NOPE': 10})
        assert test_db.query(ProgressReport).count() == 0

    def test_nan_field_progress_writes_nothing(self, test_db, sov_job):
        with pytest.raises(ValidationError):
            ProgressReportService(test_db).create_report(
                sov_job.id, 'PR-1', *JAN, field_progress={'SYS1A1': float('nan')}
            )
        assert test_db.query(ProgressReport).count() == 0

    def test_percent_and_increment_for_same_cost_code(self, test_db, sov_job):
        service = ProgressReportService(test_db)
        with pytest.raises(ValidationError) as exc:
            service.create_report(
                sov_job.id, 'PR-1', *JAN,
                field_progress={'SYS1A1': 20}, increments={'SYS1A1': 5},
            )
        assert exc.value.field == 'increments'
        assert test_db.query(ProgressReport).count() == 0

        report = service.create_report(sov_job.id, 'PR-1', *JAN).report
        with pytest.raises(ValidationError):
            service.record_field_progress(report.id, field_progress={'SYS1A1': 20}, increments={'SYS1A1': 5})
        assert report.lines[0].submitted_ctd_percent == 0.0

    def test_sequence_advances_per_report(self, test_db, sov_job, run_period):
        first = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 10})
        second = run_period(sov_job.id, 'PR-2', *FEB, approved={'SYS1A1': 20})
        assert (first.report.sequence, second.report.sequence) == (1, 2)

    def test_stale_sequence_rejected(self, test_db, sov_job):
        repo = JobRepository(test_db)
        current = repo.require(sov_job.id).progress_sequence
        repo.advance_progress_sequence(sov_job.id, current)
        with pytest.raises(ConcurrencyError):
            repo.advance_progress_sequence(sov_job.id, current)
        test_db.rollback()


class TestWorkflow:

    def test_transitions_are_strict(self, test_db, sov_job):
        service = ProgressReportService(test_db)
        report = service.create_report(sov_job.id, 'PR-1', *JAN).report

        with pytest.raises(InvalidTransitionError):
            service.approve(report.id)
        with pytest.raises(InvalidTransitionError):
            service.review(report.id)

        service.submit(report.id)
        with pytest.raises(InvalidTransitionError):
            service.submit(report.id)
        with pytest.raises(InvalidTransitionError):
            service.invoice(report.id)

    def test_full_lifecycle_to_invoiced(self, test_db, sov_job, run_period):
        result = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        report = ProgressReportService(test_db).invoice(result.report.id, invoice_reference='AR-1001')
        assert report.status == 'invoiced'
        assert report.invoice_reference == 'AR-1001'
        assert report.invoiced_at is not None
        assert report.lines[0].approved_ctd_cents == 2666667

    def test_invoiced_report_is_baseline(self, test_db, sov_job, run_period):
        service = ProgressReportService(test_db)
        first = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        service.invoice(first.report.id)
        second = service.create_report(sov_job.id, 'PR-2', *FEB).report
        assert second.lines[0].previous_complete_percent == 20.0
        assert second.lines[0].submitted_ctd_percent == 20.0

    def test_status_cannot_move_back(self, test_db, sov_job, run_period):
        report = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20}).report
        report.status = 'draft'
        with pytest.raises(InvalidTransitionError):
            test_db.commit()
        test_db.rollback()

    def test_approved_lines_are_immutable(self, test_db, sov_job, run_period):
        report = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20}).report
        report.lines[0].approved_ctd_percent = 50.0
        with pytest.raises(ImmutableFieldError):
            test_db.commit()
        test_db.rollback()

    def test_nan_approved_percent_leaves_report_reviewed(self, test_db, sov_job):
        service = ProgressReportService(test_db)
        report = service.create_report(sov_job.id, 'PR-1', *JAN, field_progress={'SYS1A1': 20}).report
        service.submit(report.id)
        service.review(report.id)

        with pytest.raises(ValidationError):
            service.approve(report.id, approved_percents={'SYS1A1': float('nan')})
        assert service.get_report(report.id).status == 'reviewed'

        result = service.approve(report.id, approved_percents={'SYS1A1': 20})
        assert result.report.total_approved_ctd_cents == 2666667

    def test_field_progress_only_on_draft(self, test_db, sov_job):
        service = ProgressReportService(test_db)
        report = service.create_report(sov_job.id, 'PR-1', *JAN).report
        result = service.record_field_progress(report.id, increments={'SYS1A1': 15})
        assert result.report.lines[0].submitted_ctd_percent == 15.0
        assert result.report.total_submitted_ctd_cents == 2000000

        service.submit(report.id)
        with pytest.raises(InvalidTransitionError):
            service.record_field_progress(report.id, field_progress={'SYS1A1': 20})


class TestGroupingAndHistory:

    def test_change_order_adds_to_assigned_cost(self, test_db, sov_job, run_period):
        SOVLedgerService(test_db).add_line_item(sov_job.id, {
            'line_number': 'CO-1', 'quantity': 1, 'total_cost_cents': 750000, 'margin_percent': 25,
            'system_code': 'SYS1', 'area_code': 'A1', 'is_change_order': True,
        })
        result = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 50})
        line = result.report.lines[0]
        assert len(result.report.lines) == 1
        assert line.assigned_cost_cents == 14333333
        assert line.approved_ctd_cents == 7166667

    def test_one_line_per_cost_code(self, test_db, sov_job, run_period):
        SOVLedgerService(test_db).add_line_item(sov_job.id, {
            'line_number': '2', 'quantity': 1, 'total_cost_cents': 900000, 'margin_percent': 10,
            'system_code': 'SYS1', 'area_code': 'A2',
        })
        result = run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20, 'SYS1A2': 50})
        assert [row.cost_code for row in result.report.lines] == ['SYS1A1', 'SYS1A2']
        assert result.report.lines[1].approved_ctd_cents == 500000

    def test_history_excludes_unapproved(self, test_db, sov_job, run_period):
        service = ProgressReportService(test_db)
        run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        service.create_report(sov_job.id, 'PR-2', *FEB, field_progress={'SYS1A1': 40})

        history = service.line_item_history(sov_job.id, 'SYS1A1')
        assert [h.report_number for h in history] == ['PR-1']
        assert history[0].to_dict()['due_this_period_cents'] == 2400000

    def test_history_unknown_cost_code(self, test_db, sov_job):
        with pytest.raises(LineItemNotFoundError):
            ProgressReportService(test_db).line_item_history(sov_job.id, 'NOPE')

    def test_retention_held_to_date(self, test_db, sov_job, run_period):
        run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        run_period(sov_job.id, 'PR-2', *FEB, approved={'SYS1A1': 45})
        assert ProgressReportService(test_db).retention_held_to_date(sov_job.id) == 266667 + 333333

    def test_latest_approved(self, test_db, sov_job, run_period):
        service = ProgressReportService(test_db)
        assert service.latest_approved(sov_job.id) is None
        run_period(sov_job.id, 'PR-1', *JAN, approved={'SYS1A1': 20})
        assert service.latest_approved(sov_job.id).report_number == 'PR-1'
