"""
SOV Repository - Data access layer for Schedule of Values line items.

Line items are append-only; this repository offers no update path.
"""
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from jobcost.models import SOVLineItem
from .base_repository import BaseRepository


@dataclass(frozen=True)
class CostCodeGroup:
    """SOV line items sharing a cost code, summed for progress reporting."""
    cost_code: str
    assigned_cost_cents: int
    first_line_item_id: int
    description: str
    line_item_count: int


class SOVRepository(BaseRepository[SOVLineItem]):

    def __init__(self, session: Session):
        super().__init__(session, SOVLineItem)

    def get_by_job(self, job_id: int, include_change_orders: bool = True) -> List[SOVLineItem]:
        query = self.session.query(SOVLineItem).filter(SOVLineItem.job_id == job_id)
        if not include_change_orders:
            query = query.filter(SOVLineItem.is_change_order.is_(False))
        return query.order_by(SOVLineItem.id).all()

    def get_by_cost_code(self, job_id: int, cost_code: str) -> List[SOVLineItem]:
        return self.session.query(SOVLineItem).filter(
            SOVLineItem.job_id == job_id,
            SOVLineItem.cost_code == cost_code,
        ).order_by(SOVLineItem.id).all()

    def line_number_exists(self, job_id: int, line_number: str) -> bool:
        return self.exists(job_id=job_id, line_number=line_number)

    def cost_code_number_exists(self, job_id: int, cost_code_number: str) -> bool:
        return self.exists(job_id=job_id, cost_code_number=cost_code_number)

    def get_cost_code_numbers(self, job_id: int) -> List[str]:
        rows = self.session.query(SOVLineItem.cost_code_number).filter(
            SOVLineItem.job_id == job_id
        ).all()
        return [r[0] for r in rows]

    def create(self, job_id: int, **fields) -> SOVLineItem:
        item = SOVLineItem(uuid=str(uuid.uuid4()), job_id=job_id, **fields)
        self.add(item)
        return item

    # Aggregation methods

    def get_total_value(self, job_id: int, change_orders: Optional[bool] = None) -> int:
        """Sum of total_value_cents; filter to base lines or change orders when asked."""
        query = self.session.query(
            func.coalesce(func.sum(SOVLineItem.total_value_cents), 0)
        ).filter(SOVLineItem.job_id == job_id)
        if change_orders is not None:
            query = query.filter(SOVLineItem.is_change_order.is_(change_orders))
        return query.scalar() or 0

    def get_cost_code_groups(self, job_id: int) -> List[CostCodeGroup]:
        """
        Group line items by cost code.

        The first (base) line item of each group stands as the group's
        reference and description.
        """
        groups = {}
        for item in self.get_by_job(job_id):
            group = groups.get(item.cost_code)
            if group is None:
                groups[item.cost_code] = [item.total_value_cents, item.id, item.description, 1]
            else:
                group[0] += item.total_value_cents
                group[3] += 1

        return [
            CostCodeGroup(
                cost_code=code,
                assigned_cost_cents=total,
                first_line_item_id=first_id,
                description=description,
                line_item_count=count,
            )
            for code, (total, first_id, description, count) in sorted(groups.items())
        ]
