"""
Earned-Value Calculator - EVM snapshots per job and across a portfolio.

Sources:
- BAC: sum of SOV total_value, change orders included
- EV: total approved CTD of the latest approved or invoiced progress report
- AC: life-to-date actual cost from the Actual Cost Aggregator
- PV: only when supplied by the caller

Snapshots are read-only and recomputed from stored records on every call,
so two calls over the same records always agree.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from jobcost.config import get_config, JobCostConfig
from jobcost.infrastructure.repositories import JobRepository, ProgressReportRepository, SOVRepository
from jobcost.domain.entities import EVMSnapshot, PortfolioSnapshot, calculate_evm, rollup_portfolio
from .actual_cost_service import ActualCostAggregator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostCodePerformance:
    """Earned versus burned for one cost code."""
    cost_code: str
    budget_cents: int
    earned_cents: int
    actual_cents: int
    percent_complete: Optional[float]
    cpi: Optional[float]
    cost_variance_cents: int
    health_status: Optional[str]

    def to_dict(self) -> dict:
        return {
            'cost_code': self.cost_code,
            'budget_cents': self.budget_cents,
            'earned_cents': self.earned_cents,
            'actual_cents': self.actual_cents,
            'percent_complete': self.percent_complete,
            'cpi': self.cpi,
            'cost_variance_cents': self.cost_variance_cents,
            'health_status': self.health_status,
        }


class EarnedValueCalculator:

    def __init__(self, session: Session, config: Optional[JobCostConfig] = None):
        self.session = session
        self.config = config or get_config()
        self.job_repo = JobRepository(session)
        self.sov_repo = SOVRepository(session)
        self.progress_repo = ProgressReportRepository(session)
        self.actuals = ActualCostAggregator(session, self.config)

    def earned_value(self, job_id: int) -> int:
        baseline = self.progress_repo.get_latest_baseline(job_id)
        return (baseline.total_approved_ctd_cents or 0) if baseline else 0

    def job_snapshot(self, job_id: int, planned_value_cents: Optional[int] = None) -> EVMSnapshot:
        """
        Compute the EVM index set for one job.

        Args:
            job_id: Job to evaluate
            planned_value_cents: externally supplied PV; SPI and SV are None without it

        Raises:
            JobNotFoundError: unknown job
        """
        job = self.job_repo.require(job_id)
        snapshot = calculate_evm(
            bac_cents=self.sov_repo.get_total_value(job_id),
            ev_cents=self.earned_value(job_id),
            ac_cents=self.actuals.total_actual_cost(job_id),
            pv_cents=planned_value_cents,
            job_id=job.id,
            job_code=job.code,
            health_classifier=self.config.get_health_status,
        )
        logger.debug(f"EVM snapshot for job {job.code}: {snapshot.to_dict()}")
        return snapshot

    def portfolio_snapshot(
        self,
        job_ids: Optional[Iterable[int]] = None,
        planned_values: Optional[Dict[int, int]] = None,
    ) -> PortfolioSnapshot:
        """
        Roll per-job snapshots up into portfolio totals.

        Args:
            job_ids: Jobs to include; all active jobs when omitted
            planned_values: job_id -> PV in cents for the jobs that have one
        """
        if job_ids is None:
            job_ids = [job.id for job in self.job_repo.get_active()]
        planned_values = planned_values or {}

        snapshots = [self.job_snapshot(job_id, planned_values.get(job_id)) for job_id in job_ids]
        portfolio = rollup_portfolio(snapshots, health_classifier=self.config.get_health_status)
        logger.info(
            f"Portfolio EVM over {len(snapshots)} job(s): CPI "
            f"{portfolio.totals.cpi if portfolio.totals.cpi is not None else self.config.no_data_label}"
        )
        return portfolio

    def cost_code_performance(self, job_id: int, as_of: Optional[date] = None) -> List[CostCodePerformance]:
        """
        Earned (latest approved CTD) against actual cost, per cost code.

        Cost codes with actuals but no budget are included with zero earned.

        Args:
            job_id: Job to evaluate
            as_of: only approved reports whose period ends by this date, and
                actual cost dated on or before it; everything when omitted
        """
        self.job_repo.require(job_id)
        budgets = {g.cost_code: g.assigned_cost_cents for g in self.sov_repo.get_cost_code_groups(job_id)}
        baseline = self.progress_repo.get_latest_baseline(job_id, as_of=as_of)
        earned = {
            line.cost_code: line.approved_ctd_cents or 0
            for line in (baseline.lines if baseline else [])
        }
        actuals = self.actuals.aggregate(job_id, (None, as_of) if as_of else None)

        results = []
        for cost_code in sorted(set(budgets) | set(actuals)):
            budget = budgets.get(cost_code, 0)
            ev = earned.get(cost_code, 0)
            ac = actuals[cost_code].total_cost_cents if cost_code in actuals else 0
            cpi = ev / ac if ac > 0 else None
            results.append(CostCodePerformance(
                cost_code=cost_code,
                budget_cents=budget,
                earned_cents=ev,
                actual_cents=ac,
                percent_complete=ev / budget * 100 if budget else None,
                cpi=cpi,
                cost_variance_cents=ev - ac,
                health_status=self.config.get_health_status(cpi),
            ))
        return results
