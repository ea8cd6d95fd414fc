"""
Cost Structure Repository - dimension nodes and the GL chart of accounts.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from jobcost.models import CostCodeNode, GLCategory, GLAccount
from .base_repository import BaseRepository


class CostStructureRepository(BaseRepository[CostCodeNode]):

    def __init__(self, session: Session):
        super().__init__(session, CostCodeNode)

    def get_node(self, job_id: int, dimension: str, code: str) -> Optional[CostCodeNode]:
        return self.session.query(CostCodeNode).filter(
            CostCodeNode.job_id == job_id,
            CostCodeNode.dimension == dimension,
            CostCodeNode.code == code,
        ).first()

    def get_nodes(self, job_id: int, dimension: Optional[str] = None) -> List[CostCodeNode]:
        query = self.session.query(CostCodeNode).filter(CostCodeNode.job_id == job_id)
        if dimension:
            query = query.filter(CostCodeNode.dimension == dimension)
        return query.order_by(CostCodeNode.dimension, CostCodeNode.code).all()

    # GL chart of accounts

    def get_gl_category(self, job_id: int, code: str) -> Optional[GLCategory]:
        return self.session.query(GLCategory).filter(
            GLCategory.job_id == job_id,
            GLCategory.code == code,
        ).first()

    def get_gl_account(self, job_id: int, code: str) -> Optional[GLAccount]:
        return self.session.query(GLAccount).filter(
            GLAccount.job_id == job_id,
            GLAccount.code == code,
        ).first()
