"""
Domain Entities - plain value objects and the formulas that derive them.
"""

from .sov_pricing import SOVPricing, price_line_item, sale_value_cents, validate_margin_percent
from .line_progress import (
    ProgressAmount, LineItemProgress, ClampWarning,
    clamp_approved_percent, clamp_field_percent, require_finite_percent, split_holdback, ZERO_PROGRESS,
)
from .actual_cost import ActualCostEntry, CostCodeActuals, CostSource, LaborCost, labor_cost_with_burden
from .evm_snapshot import EVMSnapshot, PortfolioSnapshot, calculate_evm, rollup_portfolio

__all__ = [
    'SOVPricing', 'price_line_item', 'sale_value_cents', 'validate_margin_percent',
    'ProgressAmount', 'LineItemProgress', 'ClampWarning',
    'clamp_approved_percent', 'clamp_field_percent', 'require_finite_percent', 'split_holdback', 'ZERO_PROGRESS',
    'ActualCostEntry', 'CostCodeActuals', 'CostSource', 'LaborCost', 'labor_cost_with_burden',
    'EVMSnapshot', 'PortfolioSnapshot', 'calculate_evm', 'rollup_portfolio',
]
