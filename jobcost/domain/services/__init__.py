"""
Domain Services - one service per job cost component.
"""

from .job_service import JobService
from .cost_structure_service import CostStructureRegistry, composite_cost_code, normalize_dimension
from .sov_ledger_service import SOVLedgerService, JobBudgetTotals
from .actual_cost_service import ActualCostAggregator
from .progress_report_service import (
    ProgressReportService,
    ProgressResult,
    ReportSummary,
    LineHistoryEntry,
)
from .earned_value_service import EarnedValueCalculator, CostCodePerformance
from .transaction import atomic

__all__ = [
    'JobService',
    'CostStructureRegistry', 'composite_cost_code', 'normalize_dimension',
    'SOVLedgerService', 'JobBudgetTotals',
    'ActualCostAggregator',
    'ProgressReportService', 'ProgressResult', 'ReportSummary', 'LineHistoryEntry',
    'EarnedValueCalculator', 'CostCodePerformance',
    'atomic',
]
