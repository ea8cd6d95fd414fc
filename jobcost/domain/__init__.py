"""
Domain Layer - value objects, rules and services for the job cost engine.

This module contains:
- entities/: Immutable value objects and formulas (SOVPricing, LineItemProgress, EVMSnapshot)
- events/: ORM listeners enforcing ledger immutability (registered on import)
- services/: One service per component (registry, SOV ledger, progress, actual costs, EVM)
"""

from . import exceptions
from . import events
from .entities import (
    SOVPricing, price_line_item,
    ProgressAmount, LineItemProgress, ClampWarning,
    ActualCostEntry, CostCodeActuals, CostSource,
    EVMSnapshot, PortfolioSnapshot, calculate_evm, rollup_portfolio,
)

__all__ = [
    'exceptions', 'events',
    'SOVPricing', 'price_line_item',
    'ProgressAmount', 'LineItemProgress', 'ClampWarning',
    'ActualCostEntry', 'CostCodeActuals', 'CostSource',
    'EVMSnapshot', 'PortfolioSnapshot', 'calculate_evm', 'rollup_portfolio',
]
