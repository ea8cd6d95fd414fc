"""
SOV Pricing - derived financial fields of a Schedule of Values line item.

Margin convention:
- price (default): margin is a share of the sale price.
      total_value = total_cost / (1 - margin_percent / 100)
- cost: margin is a markup on cost.
      total_value = total_cost * (1 + margin_percent / 100)

In both cases margin_amount = total_value - total_cost.
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from jobcost.money import round_cents, to_decimal
from jobcost.domain.exceptions import InvalidMarginError, ValidationError

_HUNDRED = Decimal('100')


@dataclass(frozen=True)
class SOVPricing:
    """Derived SOV amounts, all in integer cents."""
    quantity: float
    unit_cost_cents: float
    total_cost_cents: int
    margin_percent: float
    margin_amount_cents: int
    total_value_cents: int
    margin_convention: str = "price"

    def to_dict(self) -> dict:
        return {
            'quantity': self.quantity,
            'unit_cost_cents': self.unit_cost_cents,
            'total_cost_cents': self.total_cost_cents,
            'margin_percent': self.margin_percent,
            'margin_amount_cents': self.margin_amount_cents,
            'total_value_cents': self.total_value_cents,
            'margin_convention': self.margin_convention,
        }


def validate_margin_percent(margin_percent: float) -> None:
    """Finite, 0 <= margin < 100; 100 would put a zero in the price divisor."""
    if margin_percent is None or not math.isfinite(margin_percent) or not 0 <= margin_percent < 100:
        raise InvalidMarginError(margin_percent)


def sale_value_cents(total_cost_cents: int, margin_percent: float, convention: str = "price") -> int:
    """Sale value for a cost under the given margin convention."""
    validate_margin_percent(margin_percent)
    cost = Decimal(total_cost_cents)
    margin = to_decimal(margin_percent) / _HUNDRED
    if convention == "price":
        return round_cents(cost / (1 - margin))
    if convention == "cost":
        return round_cents(cost * (1 + margin))
    raise ValidationError("margin_convention", f"unknown convention {convention!r}")


def price_line_item(
    quantity: float,
    margin_percent: float,
    unit_cost_cents: Optional[float] = None,
    total_cost_cents: Optional[int] = None,
    convention: str = "price",
) -> SOVPricing:
    """
    Derive a line item's cost, margin and value.

    Either unit_cost_cents or total_cost_cents must be given. A unit cost
    always wins: total_cost = quantity * unit_cost. When only a total is
    given the unit cost is back-derived (zero for zero quantity).

    Raises:
        ValidationError: negative or non-finite quantity or cost, or neither cost given
        InvalidMarginError: margin_percent not finite or outside [0, 100)
    """
    if quantity is None or not math.isfinite(quantity) or quantity < 0:
        raise ValidationError("quantity", f"must be a finite number >= 0, got {quantity}")
    validate_margin_percent(margin_percent)

    if unit_cost_cents is not None:
        if not math.isfinite(unit_cost_cents) or unit_cost_cents < 0:
            raise ValidationError("unit_cost", f"must be a finite number >= 0, got {unit_cost_cents}")
        total_cost = round_cents(to_decimal(quantity) * to_decimal(unit_cost_cents))
        unit_cost = float(unit_cost_cents)
    elif total_cost_cents is not None:
        if total_cost_cents < 0:
            raise ValidationError("total_cost", f"must be >= 0, got {total_cost_cents}")
        total_cost = int(total_cost_cents)
        unit_cost = float(Decimal(total_cost) / to_decimal(quantity)) if quantity > 0 else 0.0
    else:
        raise ValidationError("unit_cost", "either unit_cost or total_cost is required")

    total_value = sale_value_cents(total_cost, margin_percent, convention)

    return SOVPricing(
        quantity=float(quantity),
        unit_cost_cents=unit_cost,
        total_cost_cents=total_cost,
        margin_percent=float(margin_percent),
        margin_amount_cents=total_value - total_cost,
        total_value_cents=total_value,
        margin_convention=convention,
    )
