"""
Actual Cost Entities - a single stream over invoice and labor records.

Invoice breakdown lines and labor entries are both flattened into
ActualCostEntry rows so aggregation never has to care where a cost came from.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from jobcost.money import round_cents, to_decimal


class CostSource(str, Enum):
    INVOICE = "invoice"
    LABOR = "labor"


@dataclass(frozen=True)
class ActualCostEntry:
    """One actual cost amount tagged to a cost code and date."""
    job_id: int
    cost_code: str
    period: date
    amount_cents: int
    source: CostSource

    def to_dict(self) -> dict:
        return {
            'job_id': self.job_id,
            'cost_code': self.cost_code,
            'period': self.period.isoformat(),
            'amount_cents': self.amount_cents,
            'source': self.source.value,
        }


@dataclass
class CostCodeActuals:
    """Actual cost totals for one cost code."""
    cost_code: str
    labor_cost_cents: int = 0
    material_cost_cents: int = 0

    @property
    def total_cost_cents(self) -> int:
        return self.labor_cost_cents + self.material_cost_cents

    def add(self, entry: ActualCostEntry) -> None:
        if entry.source == CostSource.LABOR:
            self.labor_cost_cents += entry.amount_cents
        else:
            self.material_cost_cents += entry.amount_cents

    def to_dict(self) -> dict:
        return {
            'cost_code': self.cost_code,
            'labor_cost_cents': self.labor_cost_cents,
            'material_cost_cents': self.material_cost_cents,
            'total_cost_cents': self.total_cost_cents,
        }


@dataclass(frozen=True)
class LaborCost:
    total_labor_cost_cents: int
    total_burden_cost_cents: int
    total_cost_with_burden_cents: int


def labor_cost_with_burden(
    regular_hours: float,
    overtime_hours: float,
    double_time_hours: float,
    base_hourly_rate_cents: int,
    overtime_rate_cents: int,
    double_time_rate_cents: int,
    burden_rate: float,
) -> LaborCost:
    """
    total_cost_with_burden = (reg*rate + ot*ot_rate + dt*dt_rate) * (1 + burden_rate)

    Rounded once, at the end; burden is the difference so the parts always add up.
    """
    wages = (
        to_decimal(regular_hours) * Decimal(base_hourly_rate_cents)
        + to_decimal(overtime_hours) * Decimal(overtime_rate_cents)
        + to_decimal(double_time_hours) * Decimal(double_time_rate_cents)
    )
    labor = round_cents(wages)
    with_burden = round_cents(wages * (1 + to_decimal(burden_rate)))
    return LaborCost(
        total_labor_cost_cents=labor,
        total_burden_cost_cents=with_burden - labor,
        total_cost_with_burden_cents=with_burden,
    )
