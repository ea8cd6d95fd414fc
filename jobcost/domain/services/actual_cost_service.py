"""
Actual Cost Aggregator - merges vendor invoices and labor entries.

Invoices contribute their cost code breakdown lines (tax-inclusive);
labor entries contribute their burdened cost. Both flow through one
ActualCostEntry stream so totals never depend on where a cost came from.
"""
import logging
from datetime import date
from typing import Dict, Iterator, List, Optional, Tuple, Union

import pandas as pd
from sqlalchemy.orm import Session

from jobcost.config import get_config, JobCostConfig
from jobcost.models import Invoice, LaborEntry
from jobcost.infrastructure.repositories import ActualCostRepository, JobRepository, SOVRepository
from jobcost.schemas import InvoiceCreate, LaborEntryCreate, parse_input
from jobcost.money import cents_to_display
from jobcost.domain.entities import ActualCostEntry, CostCodeActuals, CostSource, labor_cost_with_burden
from jobcost.domain.exceptions import BreakdownMismatchError
from .transaction import atomic

logger = logging.getLogger(__name__)

Period = Tuple[Optional[date], Optional[date]]

PERIOD_COLUMNS = ['period', 'cost_code', 'labor_cost_cents', 'material_cost_cents', 'total_cost_cents']
BREAKDOWN_COLUMNS = [
    'cost_code', 'description', 'budget_cents', 'labor_cost_cents',
    'material_cost_cents', 'total_cost_cents', 'variance_cents', 'percent_spent',
]


class ActualCostAggregator:
    """
    Service for ingesting and aggregating actual costs.

    Only counted records contribute: invoices whose payment status is not
    excluded (cancelled by default) and labor entries whose status is
    counted (approved or paid by default).
    """

    def __init__(self, session: Session, config: Optional[JobCostConfig] = None):
        self.session = session
        self.config = config or get_config()
        self.job_repo = JobRepository(session)
        self.sov_repo = SOVRepository(session)
        self.repo = ActualCostRepository(session)

    # =========================================================================
    # Ingestion
    # =========================================================================

    def validate_breakdown(self, invoice_number: str, breakdown_cents: int, total_cents: int) -> None:
        """
        Raises:
            BreakdownMismatchError: breakdown sum differs from total by more than the tolerance
        """
        if abs(breakdown_cents - total_cents) > self.config.breakdown_tolerance_cents:
            raise BreakdownMismatchError(invoice_number, breakdown_cents, total_cents)

    def record_invoice(self, job_id: int, data: Union[InvoiceCreate, dict]) -> Invoice:
        """
        Store a vendor invoice with its cost code breakdown.

        Nothing is written unless the breakdown sums to the invoice total.
        Breakdown lines are linked to the first SOV line item carrying the
        same cost code, when there is one.

        Raises:
            ValidationError: bad payload
            BreakdownMismatchError: breakdown does not sum to total_amount
        """
        self.job_repo.require(job_id)
        payload = parse_input(InvoiceCreate, data)

        breakdown_cents = sum(line.amount_cents for line in payload.breakdown)
        self.validate_breakdown(payload.invoice_number, breakdown_cents, payload.total_amount_cents)

        breakdowns = []
        for line in payload.breakdown:
            sov_items = self.sov_repo.get_by_cost_code(job_id, line.cost_code)
            breakdowns.append({
                'cost_code': line.cost_code,
                'description': line.description,
                'amount_cents': line.amount_cents,
                'sov_line_item_id': sov_items[0].id if sov_items else None,
            })

        with atomic(self.session):
            invoice = self.repo.create_invoice(
                job_id=job_id,
                breakdowns=breakdowns,
                invoice_number=payload.invoice_number,
                vendor=payload.vendor,
                invoice_date=payload.invoice_date,
                total_amount_cents=payload.total_amount_cents,
                invoice_type=payload.invoice_type,
                payment_status=payload.payment_status,
                notes=payload.notes,
            )

        logger.info(
            f"Recorded invoice {invoice.invoice_number} for job {job_id}: "
            f"{cents_to_display(invoice.total_amount_cents)} across {len(breakdowns)} cost code(s)"
        )
        return invoice

    def record_labor_entry(self, job_id: int, data: Union[LaborEntryCreate, dict]) -> LaborEntry:
        """
        Store a labor time entry with its burdened cost.

        Raises:
            ValidationError: bad payload (negative hours, burden outside [0, 1])
        """
        self.job_repo.require(job_id)
        payload = parse_input(LaborEntryCreate, data)

        cost = labor_cost_with_burden(
            regular_hours=payload.regular_hours,
            overtime_hours=payload.overtime_hours,
            double_time_hours=payload.double_time_hours,
            base_hourly_rate_cents=payload.base_hourly_rate_cents,
            overtime_rate_cents=payload.overtime_rate_cents,
            double_time_rate_cents=payload.double_time_rate_cents,
            burden_rate=payload.burden_rate,
        )

        with atomic(self.session):
            entry = self.repo.create_labor_entry(
                job_id=job_id,
                total_labor_cost_cents=cost.total_labor_cost_cents,
                total_burden_cost_cents=cost.total_burden_cost_cents,
                total_cost_with_burden_cents=cost.total_cost_with_burden_cents,
                **payload.model_dump(),
            )

        logger.debug(
            f"Recorded labor entry for job {job_id} {entry.cost_code} on {entry.work_date}: "
            f"{entry.total_hours}h, {cents_to_display(entry.total_cost_with_burden_cents)}"
        )
        return entry

    # =========================================================================
    # Aggregation
    # =========================================================================

    def entries(
        self,
        job_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Iterator[ActualCostEntry]:
        """
        Flatten counted invoices and labor entries into ActualCostEntry rows.

        Stored invoices are re-checked against their breakdown, so a record
        written by another process cannot slip a mismatch into the totals.
        """
        invoices = self.repo.get_invoices(
            job_id, start_date, end_date, exclude_statuses=self.config.excluded_payment_statuses
        )
        for invoice in invoices:
            self.validate_breakdown(
                invoice.invoice_number,
                sum(b.amount_cents for b in invoice.breakdowns),
                invoice.total_amount_cents,
            )
            for line in invoice.breakdowns:
                yield ActualCostEntry(
                    job_id=job_id,
                    cost_code=line.cost_code,
                    period=invoice.invoice_date,
                    amount_cents=line.amount_cents,
                    source=CostSource.INVOICE,
                )

        labor = self.repo.get_labor_entries(
            job_id, start_date, end_date, statuses=self.config.counted_labor_statuses
        )
        for entry in labor:
            yield ActualCostEntry(
                job_id=job_id,
                cost_code=entry.cost_code,
                period=entry.work_date,
                amount_cents=entry.total_cost_with_burden_cents,
                source=CostSource.LABOR,
            )

    def aggregate(self, job_id: int, period: Optional[Period] = None) -> Dict[str, CostCodeActuals]:
        """
        Actual cost totals per cost code.

        Args:
            job_id: Job to aggregate
            period: optional (start_date, end_date), inclusive; either end may
                be None. Life-to-date when omitted.

        Returns:
            Dict of cost_code -> CostCodeActuals, ordered by cost code
        """
        self.job_repo.require(job_id)
        start_date, end_date = period if period else (None, None)

        totals: Dict[str, CostCodeActuals] = {}
        for entry in self.entries(job_id, start_date, end_date):
            totals.setdefault(entry.cost_code, CostCodeActuals(entry.cost_code)).add(entry)
        return dict(sorted(totals.items()))

    def total_actual_cost(self, job_id: int, as_of: Optional[date] = None) -> int:
        """AC: life-to-date actual cost, optionally only up to ``as_of``."""
        period = (None, as_of) if as_of else None
        return sum(a.total_cost_cents for a in self.aggregate(job_id, period).values())

    def entry_frame(
        self,
        job_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> pd.DataFrame:
        """ActualCostEntry stream as a DataFrame."""
        self.job_repo.require(job_id)
        rows = [e.to_dict() for e in self.entries(job_id, start_date, end_date)]
        return pd.DataFrame(rows, columns=['job_id', 'cost_code', 'period', 'amount_cents', 'source'])

    def aggregate_by_period(
        self,
        job_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> pd.DataFrame:
        """
        Monthly actual cost per cost code.

        Returns:
            DataFrame with columns period ('YYYY-MM'), cost_code,
            labor_cost_cents, material_cost_cents, total_cost_cents
        """
        frame = self.entry_frame(job_id, start_date, end_date)
        if frame.empty:
            return pd.DataFrame(columns=PERIOD_COLUMNS)

        frame['month'] = pd.to_datetime(frame['period']).dt.to_period('M').astype(str)
        table = frame.pivot_table(
            index=['month', 'cost_code'],
            columns='source',
            values='amount_cents',
            aggfunc='sum',
            fill_value=0,
        )
        table = table.reindex(
            columns=[CostSource.LABOR.value, CostSource.INVOICE.value], fill_value=0
        ).reset_index()
        table.columns.name = None
        table = table.rename(columns={
            'month': 'period',
            CostSource.LABOR.value: 'labor_cost_cents',
            CostSource.INVOICE.value: 'material_cost_cents',
        })
        table['total_cost_cents'] = table['labor_cost_cents'] + table['material_cost_cents']
        return table[PERIOD_COLUMNS].sort_values(['period', 'cost_code']).reset_index(drop=True)

    def cost_breakdown_table(self, job_id: int, period: Optional[Period] = None) -> pd.DataFrame:
        """
        Budget versus actual cost per cost code, for cost breakdown displays.

        Cost codes appear when they carry budget, actuals or both.
        percent_spent is None for cost codes with no budget.
        """
        actuals = self.aggregate(job_id, period)
        groups = {g.cost_code: g for g in self.sov_repo.get_cost_code_groups(job_id)}

        rows: List[dict] = []
        for cost_code in sorted(set(groups) | set(actuals)):
            group = groups.get(cost_code)
            actual = actuals.get(cost_code, CostCodeActuals(cost_code))
            budget = group.assigned_cost_cents if group else 0
            rows.append({
                'cost_code': cost_code,
                'description': group.description if group else '',
                'budget_cents': budget,
                'labor_cost_cents': actual.labor_cost_cents,
                'material_cost_cents': actual.material_cost_cents,
                'total_cost_cents': actual.total_cost_cents,
                'variance_cents': budget - actual.total_cost_cents,
                'percent_spent': actual.total_cost_cents / budget * 100 if budget else None,
            })
        return pd.DataFrame(rows, columns=BREAKDOWN_COLUMNS)
