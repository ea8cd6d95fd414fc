"""
SOV Ledger Service - append-only Schedule of Values.

Line items are priced once, on write, under the job's margin convention.
Budget revisions are appended as change order line items; edits to the
financial fields of an existing line are rejected at flush time by the
ORM listeners in domain.events.handlers.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from jobcost.config import get_config, JobCostConfig
from jobcost.models import Dimension, SOVLineItem
from jobcost.infrastructure.repositories import JobRepository, SOVRepository
from jobcost.schemas import SOVLineItemCreate, parse_input
from jobcost.money import cents_to_display
from jobcost.domain.entities import price_line_item
from jobcost.domain.exceptions import DuplicateLineNumberError, ValidationError
from .cost_structure_service import CostStructureRegistry, composite_cost_code
from .transaction import atomic

logger = logging.getLogger(__name__)

_DIMENSION_FIELDS = (
    (Dimension.SYSTEM, 'system_code', 'system_id'),
    (Dimension.AREA, 'area_code', 'area_id'),
    (Dimension.PHASE, 'phase_code', 'phase_id'),
    (Dimension.MODULE, 'module_code', 'module_id'),
    (Dimension.COMPONENT, 'component_code', 'component_id'),
)


@dataclass(frozen=True)
class JobBudgetTotals:
    """SOV totals for a job, in cents."""
    job_id: int
    bac_cents: int
    base_value_cents: int
    change_order_value_cents: int
    total_cost_cents: int
    total_margin_cents: int
    line_item_count: int
    change_order_count: int

    def to_dict(self) -> dict:
        return {
            'job_id': self.job_id,
            'bac_cents': self.bac_cents,
            'base_value_cents': self.base_value_cents,
            'change_order_value_cents': self.change_order_value_cents,
            'total_cost_cents': self.total_cost_cents,
            'total_margin_cents': self.total_margin_cents,
            'line_item_count': self.line_item_count,
            'change_order_count': self.change_order_count,
        }


class SOVLedgerService:
    """
    Service for appending and summarising SOV line items.

    The sum of total_value over a job's line items is its budget at
    completion (BAC); it only moves when a line item is appended.
    """

    def __init__(self, session: Session, config: Optional[JobCostConfig] = None):
        self.session = session
        self.config = config or get_config()
        self.job_repo = JobRepository(session)
        self.repo = SOVRepository(session)
        self.registry = CostStructureRegistry(session)

    def add_line_item(self, job_id: int, data: Union[SOVLineItemCreate, dict]) -> SOVLineItem:
        """
        Append a priced line item.

        Args:
            job_id: Owning job
            data: SOVLineItemCreate payload; node and GL references by code

        Returns:
            The persisted SOVLineItem

        Raises:
            ValidationError: bad payload, negative quantity or cost
            InvalidMarginError: margin_percent outside [0, 100)
            DuplicateLineNumberError: line_number or cost_code_number reused
            NodeNotFoundError / GLAccountNotFoundError: unknown reference
        """
        job = self.job_repo.require(job_id)
        payload = parse_input(SOVLineItemCreate, data)

        refs = {}
        codes = {}
        for dimension, code_field, id_field in _DIMENSION_FIELDS:
            code = getattr(payload, code_field)
            if code:
                refs[id_field] = self.registry.resolve(job_id, dimension, code).id
                codes[dimension] = code

        if payload.gl_category_code:
            refs['gl_category_id'] = self.registry.resolve_gl_category(job_id, payload.gl_category_code).id
        if payload.gl_account_code:
            refs['gl_account_id'] = self.registry.resolve_gl_account(job_id, payload.gl_account_code).id

        cost_code = payload.cost_code or composite_cost_code(
            codes.get(Dimension.SYSTEM), codes.get(Dimension.AREA)
        )
        if not cost_code:
            raise ValidationError("cost_code", "required when no System or Area code is given")

        if self.repo.line_number_exists(job_id, payload.line_number):
            raise DuplicateLineNumberError(job_id, "line_number", payload.line_number)

        cost_code_number = payload.cost_code_number or self.next_cost_code_number(job_id)
        if self.repo.cost_code_number_exists(job_id, cost_code_number):
            raise DuplicateLineNumberError(job_id, "cost_code_number", cost_code_number)

        pricing = price_line_item(
            quantity=payload.quantity,
            margin_percent=payload.margin_percent,
            unit_cost_cents=payload.unit_cost_cents,
            total_cost_cents=payload.total_cost_cents,
            convention=job.margin_convention,
        )

        with atomic(self.session):
            item = self.repo.create(
                job_id=job_id,
                line_number=payload.line_number,
                cost_code_number=cost_code_number,
                cost_code=cost_code,
                description=payload.description,
                unit=payload.unit,
                is_change_order=payload.is_change_order,
                notes=payload.notes,
                **pricing.to_dict(),
                **refs,
            )

        kind = "change order" if item.is_change_order else "line item"
        logger.info(
            f"Added SOV {kind} {item.line_number} ({item.cost_code}) to job {job.code}: "
            f"{cents_to_display(item.total_value_cents)}"
        )
        return item

    def next_cost_code_number(self, job_id: int) -> str:
        """Next zero-padded numeric cost code number for the job."""
        width = self.config.cost_code_number_width
        numbers = [int(n) for n in self.repo.get_cost_code_numbers(job_id) if n and n.isdigit()]
        return str(max(numbers, default=0) + 1).zfill(width)

    def list_line_items(self, job_id: int, include_change_orders: bool = True) -> List[SOVLineItem]:
        self.job_repo.require(job_id)
        return self.repo.get_by_job(job_id, include_change_orders=include_change_orders)

    def get_budget_at_completion(self, job_id: int) -> int:
        """BAC: sum of total_value over all line items, change orders included."""
        return self.repo.get_total_value(job_id)

    def job_totals(self, job_id: int) -> JobBudgetTotals:
        self.job_repo.require(job_id)
        items = self.repo.get_by_job(job_id)
        base = [i for i in items if not i.is_change_order]
        change_orders = [i for i in items if i.is_change_order]

        bac = sum(i.total_value_cents for i in items)
        total_cost = sum(i.total_cost_cents for i in items)
        return JobBudgetTotals(
            job_id=job_id,
            bac_cents=bac,
            base_value_cents=sum(i.total_value_cents for i in base),
            change_order_value_cents=sum(i.total_value_cents for i in change_orders),
            total_cost_cents=total_cost,
            total_margin_cents=bac - total_cost,
            line_item_count=len(base),
            change_order_count=len(change_orders),
        )

    def check_budget_conservation(self, job_id: int) -> bool:
        """
        Compare base SOV value against the job's contract value.

        A soft check: drift is logged, not raised. Change orders are excluded
        since they legitimately move the budget away from the original contract.

        Returns:
            True when the base line items sum to the contract value
        """
        job = self.job_repo.require(job_id)
        base_value = self.repo.get_total_value(job_id, change_orders=False)
        if base_value == job.contract_value_cents:
            return True

        logger.warning(
            f"Job {job.code} SOV base value {cents_to_display(base_value)} "
            f"differs from contract value {cents_to_display(job.contract_value_cents)}"
        )
        return False
