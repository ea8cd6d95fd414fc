"""
Domain Event Handlers for the job cost ledgers.

Implements SQLAlchemy event listeners for:
- SOV line item immutability (financial fields are write-once)
- Approved progress history immutability
- One-directional report workflow
- Referential integrity on cost structure node deletion

These handlers ensure business rules are enforced at the ORM level,
whatever code path performs the write.
"""
from sqlalchemy import event, func, inspect, or_, select

from jobcost.models import (
    SOVLineItem,
    ProgressReport,
    ProgressReportLine,
    CostCodeNode,
    ReportStatus,
    BASELINE_STATUSES,
)
from jobcost.domain.exceptions import (
    ImmutableFieldError,
    InvalidTransitionError,
    NodeInUseError,
)


SOV_IMMUTABLE_FIELDS = (
    'job_id',
    'cost_code',
    'quantity',
    'unit_cost_cents',
    'total_cost_cents',
    'margin_percent',
    'margin_amount_cents',
    'total_value_cents',
    'margin_convention',
    'is_change_order',
)

APPROVED_LINE_FIELDS = (
    'assigned_cost_cents',
    'previous_complete_cents',
    'previous_complete_percent',
    'approved_ctd_cents',
    'approved_ctd_percent',
    'holdback_percent',
    'amount_this_period_cents',
    'holdback_this_period_cents',
    'due_this_period_cents',
)

STATUS_ORDER = [s.value for s in ReportStatus]


def _changed(target, field_name: str) -> bool:
    """True when a loaded attribute's value actually differs from the stored one."""
    history = inspect(target).attrs[field_name].history
    if not history.has_changes():
        return False
    old_value = history.deleted[0] if history.deleted else None
    new_value = history.added[0] if history.added else getattr(target, field_name)
    return old_value != new_value


# =============================================================================
# SOV Line Items - Immutability Enforcement
# =============================================================================

@event.listens_for(SOVLineItem, 'before_update')
def sov_before_update(mapper, connection, target):
    """
    Reject edits to SOV financial fields.

    Budget revisions must be appended as change order line items so every
    progress report's CTD figures stay auditable against the line they used.
    """
    for field_name in SOV_IMMUTABLE_FIELDS:
        if _changed(target, field_name):
            raise ImmutableFieldError(field_name=field_name, entity_type='SOV line item')


# =============================================================================
# Progress Reports - Workflow and History
# =============================================================================

@event.listens_for(ProgressReport, 'before_update')
def report_before_update(mapper, connection, target):
    """Status may only move forward through the workflow."""
    history = inspect(target).attrs.status.history
    if not history.has_changes():
        return

    if history.deleted:
        old_status = history.deleted[0]
    else:
        # Status was set while expired; read the stored value
        old_status = connection.execute(
            select(ProgressReport.status).where(ProgressReport.id == target.id)
        ).scalar()
    if old_status is None:
        return
    new_status = target.status
    if STATUS_ORDER.index(new_status) < STATUS_ORDER.index(old_status):
        raise InvalidTransitionError(target.id, old_status, f"move back to '{new_status}'")


@event.listens_for(ProgressReportLine, 'before_update')
def report_line_before_update(mapper, connection, target):
    """Approved progress lines are history; corrections go into a later period."""
    report = target.report
    if report is None:
        return
    # Status as stored before this flush; approval writes lines and status together
    history = inspect(report).attrs.status.history
    status = history.deleted[0] if history.deleted else report.status
    if status not in BASELINE_STATUSES:
        return

    for field_name in APPROVED_LINE_FIELDS:
        if _changed(target, field_name):
            raise ImmutableFieldError(field_name=field_name, entity_type='Approved progress line')


# =============================================================================
# Cost Structure - Referential Integrity
# =============================================================================

def count_node_references(connection, node_id: int) -> int:
    """Count SOV line items and child nodes that reference a node."""
    sov_refs = connection.execute(
        select(func.count()).select_from(SOVLineItem).where(
            or_(
                SOVLineItem.system_id == node_id,
                SOVLineItem.area_id == node_id,
                SOVLineItem.phase_id == node_id,
                SOVLineItem.module_id == node_id,
                SOVLineItem.component_id == node_id,
            )
        )
    ).scalar() or 0
    child_refs = connection.execute(
        select(func.count()).select_from(CostCodeNode).where(CostCodeNode.parent_id == node_id)
    ).scalar() or 0
    return sov_refs + child_refs


@event.listens_for(CostCodeNode, 'before_delete')
def node_before_delete(mapper, connection, target):
    """Nodes cannot be deleted while any SOV line item or child node references them."""
    references = count_node_references(connection, target.id)
    if references:
        raise NodeInUseError(node_id=target.id, references=references)
