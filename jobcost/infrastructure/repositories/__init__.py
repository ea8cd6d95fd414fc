"""
Repository implementations for data access layer.
"""
from .base_repository import BaseRepository
from .job_repository import JobRepository
from .cost_structure_repository import CostStructureRepository
from .sov_repository import SOVRepository, CostCodeGroup
from .progress_report_repository import ProgressReportRepository
from .actual_cost_repository import ActualCostRepository

__all__ = [
    'BaseRepository',
    'JobRepository',
    'CostStructureRepository',
    'SOVRepository',
    'CostCodeGroup',
    'ProgressReportRepository',
    'ActualCostRepository',
]
