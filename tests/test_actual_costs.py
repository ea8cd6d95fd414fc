"""
Tests for the Actual Cost Aggregator.
"""
from datetime import date

import pandas as pd
import pytest

from jobcost.models import Invoice, InvoiceBreakdown
from jobcost.domain.entities import CostSource, labor_cost_with_burden
from jobcost.domain.exceptions import BreakdownMismatchError, JobNotFoundError, ValidationError
from jobcost.domain.services import ActualCostAggregator


def invoice(number, total, breakdown, invoice_date=date(2024, 1, 15), **fields):
    data = {
        'invoice_number': number,
        'vendor': 'ABC Supply',
        'invoice_date': invoice_date,
        'total_amount_cents': total,
        'breakdown': [{'cost_code': code, 'amount_cents': amount} for code, amount in breakdown],
    }
    data.update(fields)
    return data


def labor(cost_code='SYS1A1', work_date=date(2024, 1, 10), **fields):
    data = {
        'cost_code': cost_code,
        'work_date': work_date,
        'worker_name': 'J. Smith',
        'regular_hours': 8,
        'overtime_hours': 2,
        'base_hourly_rate_cents': 5000,
        'overtime_rate_cents': 7500,
        'burden_rate': 0.35,
    }
    data.update(fields)
    return data


class TestLaborBurden:

    def test_burdened_cost(self):
        cost = labor_cost_with_burden(8, 2, 1, 5000, 7500, 10000, 0.35)
        assert cost.total_labor_cost_cents == 65000
        assert cost.total_cost_with_burden_cents == 87750
        assert cost.total_burden_cost_cents == 22750

    def test_parts_add_up_with_fractional_hours(self):
        cost = labor_cost_with_burden(7.25, 0, 0, 4133, 0, 0, 0.275)
        assert cost.total_labor_cost_cents + cost.total_burden_cost_cents == cost.total_cost_with_burden_cents


class TestInvoiceIngestion:

    def test_breakdown_must_match_total(self, test_db, sov_job):
        aggregator = ActualCostAggregator(test_db)
        with pytest.raises(BreakdownMismatchError) as exc:
            aggregator.record_invoice(sov_job.id, invoice('INV-1', 100000, [('SYS1A1', 60000), ('SYS1A2', 39000)]))

        assert exc.value.breakdown_cents == 99000
        assert test_db.query(Invoice).count() == 0
        assert test_db.query(InvoiceBreakdown).count() == 0

    def test_one_cent_tolerance(self, test_db, sov_job):
        record = ActualCostAggregator(test_db).record_invoice(
            sov_job.id, invoice('INV-1', 100000, [('SYS1A1', 60000), ('SYS1A2', 39999)])
        )
        assert len(record.breakdowns) == 2

    def test_breakdown_linked_to_sov_line(self, test_db, sov_job):
        record = ActualCostAggregator(test_db).record_invoice(
            sov_job.id, invoice('INV-1', 5000, [('SYS1A1', 3000), ('OVERHEAD', 2000)])
        )
        linked = {b.cost_code: b.sov_line_item_id for b in record.breakdowns}
        assert linked['SYS1A1'] is not None
        assert linked['OVERHEAD'] is None

    def test_empty_breakdown_rejected(self, test_db, sov_job):
        with pytest.raises(ValidationError):
            ActualCostAggregator(test_db).record_invoice(sov_job.id, invoice('INV-1', 100, []))

    def test_unknown_invoice_type_rejected(self, test_db, sov_job):
        with pytest.raises(ValidationError):
            ActualCostAggregator(test_db).record_invoice(
                sov_job.id, invoice('INV-1', 100, [('SYS1A1', 100)], invoice_type='travel')
            )

    def test_stored_mismatch_detected_on_read(self, test_db, sov_job):
        aggregator = ActualCostAggregator(test_db)
        record = aggregator.record_invoice(sov_job.id, invoice('INV-1', 1000, [('SYS1A1', 1000)]))
        record.total_amount_cents = 5000
        test_db.commit()

        with pytest.raises(BreakdownMismatchError):
            aggregator.aggregate(sov_job.id)


class TestLaborIngestion:

    def test_record_labor_entry(self, test_db, sov_job):
        entry = ActualCostAggregator(test_db).record_labor_entry(sov_job.id, labor())
        assert entry.total_labor_cost_cents == 55000
        assert entry.total_cost_with_burden_cents == 74250
        assert entry.total_burden_cost_cents == 19250
        assert entry.total_hours == 10

    def test_burden_rate_above_one_rejected(self, test_db, sov_job):
        with pytest.raises(ValidationError):
            ActualCostAggregator(test_db).record_labor_entry(sov_job.id, labor(burden_rate=1.5))

    def test_unknown_job(self, test_db):
        with pytest.raises(JobNotFoundError):
            ActualCostAggregator(test_db).record_labor_entry(404, labor())


class TestAggregation:

    @pytest.fixture
    def costs(self, test_db, sov_job):
        aggregator = ActualCostAggregator(test_db)
        aggregator.record_invoice(sov_job.id, invoice('INV-1', 30000, [('SYS1A1', 20000), ('SYS1A2', 10000)]))
        aggregator.record_invoice(sov_job.id, invoice(
            'INV-2', 8000, [('SYS1A1', 8000)], invoice_date=date(2024, 2, 5),
        ))
        aggregator.record_invoice(sov_job.id, invoice(
            'INV-3', 99900, [('SYS1A1', 99900)], payment_status='cancelled',
        ))
        aggregator.record_labor_entry(sov_job.id, labor())
        aggregator.record_labor_entry(sov_job.id, labor(work_date=date(2024, 2, 12), status='paid'))
        aggregator.record_labor_entry(sov_job.id, labor(status='draft'))
        return aggregator

    def test_life_to_date(self, costs, sov_job):
        totals = costs.aggregate(sov_job.id)
        assert list(totals) == ['SYS1A1', 'SYS1A2']
        assert totals['SYS1A1'].material_cost_cents == 28000
        assert totals['SYS1A1'].labor_cost_cents == 2 * 74250
        assert totals['SYS1A1'].total_cost_cents == 28000 + 148500
        assert totals['SYS1A2'].to_dict() == {
            'cost_code': 'SYS1A2', 'labor_cost_cents': 0,
            'material_cost_cents': 10000, 'total_cost_cents': 10000,
        }

    def test_period_filter(self, costs, sov_job):
        january = costs.aggregate(sov_job.id, (date(2024, 1, 1), date(2024, 1, 31)))
        assert january['SYS1A1'].total_cost_cents == 20000 + 74250

    def test_total_actual_cost(self, costs, sov_job):
        assert costs.total_actual_cost(sov_job.id) == 38000 + 148500
        assert costs.total_actual_cost(sov_job.id, as_of=date(2024, 1, 31)) == 30000 + 74250

    def test_entry_stream_sources(self, costs, sov_job):
        sources = [e.source for e in costs.entries(sov_job.id)]
        assert sources.count(CostSource.INVOICE) == 3
        assert sources.count(CostSource.LABOR) == 2

    def test_monthly_buckets(self, costs, sov_job):
        table = costs.aggregate_by_period(sov_job.id)
        assert list(table.columns) == [
            'period', 'cost_code', 'labor_cost_cents', 'material_cost_cents', 'total_cost_cents'
        ]
        rows = {(r.period, r.cost_code): r for r in table.itertuples()}
        assert rows[('2024-01', 'SYS1A1')].labor_cost_cents == 74250
        assert rows[('2024-01', 'SYS1A1')].material_cost_cents == 20000
        assert rows[('2024-02', 'SYS1A1')].total_cost_cents == 8000 + 74250
        assert rows[('2024-01', 'SYS1A2')].labor_cost_cents == 0

    def test_monthly_buckets_empty(self, test_db, sov_job):
        table = ActualCostAggregator(test_db).aggregate_by_period(sov_job.id)
        assert table.empty
        assert 'total_cost_cents' in table.columns

    def test_cost_breakdown_table(self, costs, sov_job):
        table = costs.cost_breakdown_table(sov_job.id)
        assert isinstance(table, pd.DataFrame)
        by_code = table.set_index('cost_code')
        assert by_code.loc['SYS1A1', 'budget_cents'] == 13333333
        assert by_code.loc['SYS1A1', 'variance_cents'] == 13333333 - 176500
        assert by_code.loc['SYS1A2', 'budget_cents'] == 0
        assert pd.isna(by_code.loc['SYS1A2', 'percent_spent'])
