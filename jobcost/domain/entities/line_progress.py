"""
Line Item Progress - period-over-period rollup math for one cost code grouping.

The chain that makes progress cumulative:
    previous_complete(n) == approved_ctd(n - 1)

Per period:
    amount_this_period = approved_ctd.amount - previous_complete.amount
    holdback_this_period = max(0, amount_this_period * holdback_percent / 100)
    due_this_period = amount_this_period - holdback_this_period
"""
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from jobcost.money import percent_of
from jobcost.domain.exceptions import ValidationError

ZERO_PROGRESS_PERCENT = 0.0
MAX_PROGRESS_PERCENT = 100.0


@dataclass(frozen=True)
class ProgressAmount:
    """A cumulative-to-date figure as an amount and a percent."""
    amount_cents: int = 0
    percent: float = 0.0

    @classmethod
    def of(cls, assigned_cost_cents: int, percent: float) -> "ProgressAmount":
        return cls(amount_cents=percent_of(assigned_cost_cents, percent), percent=float(percent))

    def to_dict(self) -> dict:
        return {'amount_cents': self.amount_cents, 'percent': self.percent}


ZERO_PROGRESS = ProgressAmount()


@dataclass(frozen=True)
class ClampWarning:
    """
    Reported when a requested percent was moved to keep progress valid.

    reason is 'below_previous' (would regress below the prior approved
    figure), 'above_maximum' (over 100%) or 'below_minimum' (under 0%).
    """
    cost_code: str
    requested_percent: float
    applied_percent: float
    reason: str

    def to_dict(self) -> dict:
        return {
            'cost_code': self.cost_code,
            'requested_percent': self.requested_percent,
            'applied_percent': self.applied_percent,
            'reason': self.reason,
        }


def require_finite_percent(field_name: str, percent) -> float:
    """NaN and infinity cannot be clamped into range; reject them outright."""
    try:
        value = float(percent)
    except (TypeError, ValueError):
        raise ValidationError(field_name, f"not a percent: {percent!r}")
    if not math.isfinite(value):
        raise ValidationError(field_name, f"must be a finite percent, got {percent!r}")
    return value


def clamp_approved_percent(previous_percent: float, requested_percent: float) -> Tuple[float, Optional[str]]:
    """
    Clamp an approved percent to max(previous, min(100, requested)).

    Returns:
        (applied_percent, reason) where reason is None when no clamp happened
    """
    requested_percent = require_finite_percent("approved_percent", requested_percent)
    if requested_percent > MAX_PROGRESS_PERCENT:
        applied, reason = MAX_PROGRESS_PERCENT, 'above_maximum'
    else:
        applied, reason = float(requested_percent), None

    if applied < previous_percent:
        applied, reason = float(previous_percent), 'below_previous'
    return applied, reason


def clamp_field_percent(requested_percent: float) -> Tuple[float, Optional[str]]:
    """Clamp a field-reported percent into [0, 100]."""
    requested_percent = require_finite_percent("field_percent", requested_percent)
    if requested_percent > MAX_PROGRESS_PERCENT:
        return MAX_PROGRESS_PERCENT, 'above_maximum'
    if requested_percent < ZERO_PROGRESS_PERCENT:
        return ZERO_PROGRESS_PERCENT, 'below_minimum'
    return float(requested_percent), None


def split_holdback(amount_this_period_cents: int, holdback_percent: float) -> Tuple[int, int]:
    """
    Split a period amount into (holdback, due).

    Holdback is never negative; a downward period (negative amount) is
    billed back in full with nothing released from retention.
    The two parts always sum to the period amount.
    """
    holdback = max(0, percent_of(amount_this_period_cents, holdback_percent))
    return holdback, amount_this_period_cents - holdback


@dataclass
class LineItemProgress:
    """Progress for one cost code grouping in one reporting period."""
    cost_code: str
    assigned_cost_cents: int
    previous_complete: ProgressAmount = ZERO_PROGRESS
    submitted_ctd: ProgressAmount = ZERO_PROGRESS
    approved_ctd: Optional[ProgressAmount] = None
    holdback_percent: float = 0.0
    warnings: list = field(default_factory=list)

    def submit_percent(self, percent: float) -> Optional[ClampWarning]:
        """Record field-reported CTD percent; amount follows from assigned cost."""
        applied, reason = clamp_field_percent(percent)
        self.submitted_ctd = ProgressAmount.of(self.assigned_cost_cents, applied)
        if reason:
            warning = ClampWarning(self.cost_code, float(percent), applied, reason)
            self.warnings.append(warning)
            return warning
        return None

    def submit_increment(self, increment: float) -> Optional[ClampWarning]:
        """Field input as an increment over the previous approved percent."""
        return self.submit_percent(self.previous_complete.percent + increment)

    def approve(self, percent: Optional[float] = None) -> Optional[ClampWarning]:
        """
        Fix the approved CTD figure.

        The reviewer's percent defaults to the submitted one. It may move up
        or down but never below the previously approved percent.
        """
        requested = self.submitted_ctd.percent if percent is None else float(percent)
        applied, reason = clamp_approved_percent(self.previous_complete.percent, requested)
        self.approved_ctd = ProgressAmount.of(self.assigned_cost_cents, applied)
        if reason:
            warning = ClampWarning(self.cost_code, requested, applied, reason)
            self.warnings.append(warning)
            return warning
        return None

    @property
    def amount_this_period_cents(self) -> Optional[int]:
        if self.approved_ctd is None:
            return None
        return self.approved_ctd.amount_cents - self.previous_complete.amount_cents

    @property
    def holdback_this_period_cents(self) -> Optional[int]:
        amount = self.amount_this_period_cents
        return None if amount is None else split_holdback(amount, self.holdback_percent)[0]

    @property
    def due_this_period_cents(self) -> Optional[int]:
        amount = self.amount_this_period_cents
        return None if amount is None else split_holdback(amount, self.holdback_percent)[1]

    def to_dict(self) -> dict:
        return {
            'cost_code': self.cost_code,
            'assigned_cost_cents': self.assigned_cost_cents,
            'previous_complete': self.previous_complete.to_dict(),
            'submitted_ctd': self.submitted_ctd.to_dict(),
            'approved_ctd': self.approved_ctd.to_dict() if self.approved_ctd else None,
            'holdback_percent': self.holdback_percent,
            'amount_this_period_cents': self.amount_this_period_cents,
            'holdback_this_period_cents': self.holdback_this_period_cents,
            'due_this_period_cents': self.due_this_period_cents,
        }
