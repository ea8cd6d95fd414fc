"""
Cost Structure Registry - dimension nodes and GL accounts per job.

Nodes (System, Area, Phase, Module, Component) tag every budget, progress
and actual record. The GL chart of accounts is a separate flat hierarchy
used only for financial categorisation.
"""
import logging
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from jobcost.models import CostCodeNode, Dimension, GLAccount, GLCategory
from jobcost.infrastructure.repositories import CostStructureRepository, JobRepository
from jobcost.schemas import normalize_code
from jobcost.domain.exceptions import (
    DuplicateCodeError,
    GLAccountNotFoundError,
    NodeNotFoundError,
    ValidationError,
)
from .transaction import atomic

logger = logging.getLogger(__name__)


def normalize_dimension(dimension: Union[Dimension, str]) -> str:
    """Accept 'System', 'system' or Dimension.SYSTEM; return the stored value."""
    if isinstance(dimension, Dimension):
        return dimension.value
    try:
        return Dimension(str(dimension).strip().lower()).value
    except ValueError:
        allowed = ", ".join(d.value for d in Dimension)
        raise ValidationError("dimension", f"must be one of {allowed}, got {dimension!r}")


def composite_cost_code(system: Optional[str], area: Optional[str]) -> str:
    """Human-readable cost code: System code followed by Area code."""
    return f"{system or ''}{area or ''}"


class CostStructureRegistry:
    """
    Registry of cost structure nodes for each job.

    Codes are unique per (job, dimension). Referential integrity is checked
    when a node is deleted, not when SOV items reference it.
    """

    def __init__(self, session: Session):
        self.session = session
        self.job_repo = JobRepository(session)
        self.repo = CostStructureRepository(session)

    # =========================================================================
    # Dimension Nodes
    # =========================================================================

    def register_node(
        self,
        job_id: int,
        dimension: Union[Dimension, str],
        code: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        parent_dimension: Optional[Union[Dimension, str]] = None,
        parent_code: Optional[str] = None,
    ) -> CostCodeNode:
        """
        Register a cost structure node.

        Args:
            job_id: Owning job
            dimension: System, Area, Phase, Module or Component
            code: Code unique within (job, dimension); stored upper-case
            parent_dimension/parent_code: optional parent, e.g. a Module's System

        Raises:
            JobNotFoundError, ValidationError, DuplicateCodeError, NodeNotFoundError
        """
        self.job_repo.require(job_id)
        dimension = normalize_dimension(dimension)
        code = normalize_code(code)
        if not code:
            raise ValidationError("code", "must not be blank")

        if self.repo.get_node(job_id, dimension, code):
            raise DuplicateCodeError(job_id, dimension, code)

        parent = None
        if parent_code:
            parent = self.resolve(job_id, parent_dimension or dimension, parent_code)

        with atomic(self.session):
            node = CostCodeNode(
                job_id=job_id,
                dimension=dimension,
                code=code,
                name=name or code,
                description=description,
                parent_id=parent.id if parent else None,
            )
            self.repo.add(node)

        logger.info(f"Registered {dimension} node {code} for job {job_id}")
        return node

    def resolve(self, job_id: int, dimension: Union[Dimension, str], code: str) -> CostCodeNode:
        """
        Look up a node by code.

        Raises:
            NodeNotFoundError: If no such node exists in the job
        """
        dimension = normalize_dimension(dimension)
        code = normalize_code(code)
        node = self.repo.get_node(job_id, dimension, code) if code else None
        if not node:
            raise NodeNotFoundError(f"{job_id}/{dimension}/{code}")
        return node

    def list_nodes(self, job_id: int, dimension: Optional[Union[Dimension, str]] = None) -> List[CostCodeNode]:
        return self.repo.get_nodes(job_id, normalize_dimension(dimension) if dimension else None)

    def delete_node(self, node_id: int) -> None:
        """
        Delete an unreferenced node.

        Raises:
            NodeNotFoundError: If the node does not exist
            NodeInUseError: If an SOV line item or child node references it
        """
        node = self.repo.get_by_id(node_id)
        if not node:
            raise NodeNotFoundError(node_id)

        label = f"{node.dimension} node {node.code} from job {node.job_id}"
        with atomic(self.session):
            self.repo.delete(node)
            self.session.flush()

        logger.info(f"Deleted {label}")

    @staticmethod
    def composite_cost_code(system: Optional[str], area: Optional[str]) -> str:
        return composite_cost_code(system, area)

    # =========================================================================
    # GL Chart of Accounts
    # =========================================================================

    def register_gl_category(self, job_id: int, code: str, name: Optional[str] = None) -> GLCategory:
        self.job_repo.require(job_id)
        code = normalize_code(code)
        if not code:
            raise ValidationError("code", "must not be blank")
        if self.repo.get_gl_category(job_id, code):
            raise DuplicateCodeError(job_id, "gl_category", code)

        with atomic(self.session):
            category = GLCategory(job_id=job_id, code=code, name=name or code)
            self.session.add(category)
        return category

    def register_gl_account(
        self,
        job_id: int,
        code: str,
        name: Optional[str] = None,
        category_code: Optional[str] = None,
    ) -> GLAccount:
        """
        Register a GL account, optionally under a category.

        Raises:
            DuplicateCodeError, GLAccountNotFoundError (unknown category)
        """
        self.job_repo.require(job_id)
        code = normalize_code(code)
        if not code:
            raise ValidationError("code", "must not be blank")
        if self.repo.get_gl_account(job_id, code):
            raise DuplicateCodeError(job_id, "gl_account", code)

        category = self.resolve_gl_category(job_id, category_code) if category_code else None

        with atomic(self.session):
            account = GLAccount(
                job_id=job_id,
                code=code,
                name=name or code,
                category_id=category.id if category else None,
            )
            self.session.add(account)
        return account

    def resolve_gl_category(self, job_id: int, code: str) -> GLCategory:
        category = self.repo.get_gl_category(job_id, normalize_code(code))
        if not category:
            raise GLAccountNotFoundError(f"{job_id}/category/{code}")
        return category

    def resolve_gl_account(self, job_id: int, code: str) -> GLAccount:
        account = self.repo.get_gl_account(job_id, normalize_code(code))
        if not account:
            raise GLAccountNotFoundError(f"{job_id}/{code}")
        return account
