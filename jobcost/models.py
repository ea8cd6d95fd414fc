"""
Database models and SQLAlchemy setup for the Job Cost engine.
All monetary values stored as integer cents to avoid float drift.
Percentages are stored as floats on a 0-100 scale.
"""
import enum
from datetime import datetime
from functools import lru_cache

from sqlalchemy import (
    create_engine, Column, Integer, String, Float, Boolean,
    DateTime, Date, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship

from jobcost.config import get_config

Base = declarative_base()


class Dimension(str, enum.Enum):
    """Cost structure dimensions used to tag SOV, progress and actual records."""
    SYSTEM = "system"
    AREA = "area"
    PHASE = "phase"
    MODULE = "module"
    COMPONENT = "component"


class ReportStatus(str, enum.Enum):
    """Progress report workflow states, in order."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    INVOICED = "invoiced"


# Statuses whose approved CTD figures form the baseline for the next period
BASELINE_STATUSES = (ReportStatus.APPROVED.value, ReportStatus.INVOICED.value)


class MarginConvention(str, enum.Enum):
    PRICE = "price"  # margin as a share of sale price
    COST = "cost"    # markup on cost


class InvoiceType(str, enum.Enum):
    MATERIAL = "material"
    SUBCONTRACTOR = "subcontractor"
    EQUIPMENT = "equipment"
    OTHER = "other"
    OVERHEAD = "overhead"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class LaborStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class Job(Base):
    """
    A capital-construction job. Supplied by the job management collaborator;
    stored here so every ledger row can reference it.
    """
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)  # External UUID
    code = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    contract_value_cents = Column(Integer, nullable=False, default=0)
    status = Column(String(20), default="active", index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    margin_convention = Column(String(10), nullable=False, default=MarginConvention.PRICE.value)
    progress_sequence = Column(Integer, nullable=False, default=0)  # Serialises report creation
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    nodes = relationship("CostCodeNode", back_populates="job", cascade="all, delete-orphan")
    sov_items = relationship("SOVLineItem", back_populates="job", cascade="all, delete-orphan")
    progress_reports = relationship("ProgressReport", back_populates="job", cascade="all, delete-orphan")


# =============================================================================
# Cost Structure
# =============================================================================

class CostCodeNode(Base):
    """Hierarchical cost structure node (System, Area, Phase, Module, Component)."""
    __tablename__ = "cost_code_nodes"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    dimension = Column(String(20), nullable=False, index=True)  # Dimension.value
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(Integer, ForeignKey("cost_code_nodes.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("Job", back_populates="nodes")
    parent = relationship("CostCodeNode", remote_side=[id])

    __table_args__ = (
        UniqueConstraint("job_id", "dimension", "code", name="uq_node_job_dimension_code"),
    )


class GLCategory(Base):
    """General ledger category; flat chart of accounts per job."""
    __tablename__ = "gl_categories"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    accounts = relationship("GLAccount", back_populates="category")

    __table_args__ = (
        UniqueConstraint("job_id", "code", name="uq_gl_category_job_code"),
    )


class GLAccount(Base):
    __tablename__ = "gl_accounts"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    category_id = Column(Integer, ForeignKey("gl_categories.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("GLCategory", back_populates="accounts")

    __table_args__ = (
        UniqueConstraint("job_id", "code", name="uq_gl_account_job_code"),
    )


# =============================================================================
# Schedule of Values
# =============================================================================

class SOVLineItem(Base):
    """
    Schedule of Values line item - the priced budget baseline.

    Financial fields are immutable once written (see domain.events.handlers);
    revisions are appended as change order line items.
    """
    __tablename__ = "sov_line_items"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    line_number = Column(String(50), nullable=False)
    cost_code_number = Column(String(50), nullable=False)
    cost_code = Column(String(100), nullable=False, index=True)  # e.g. System code + Area code
    description = Column(String(500), nullable=False, default="")

    quantity = Column(Float, nullable=False, default=0.0)
    unit = Column(String(10), nullable=False, default="LS")
    unit_cost_cents = Column(Float, nullable=False, default=0.0)  # May carry fractional cents
    total_cost_cents = Column(Integer, nullable=False, default=0)
    margin_percent = Column(Float, nullable=False, default=0.0)
    margin_amount_cents = Column(Integer, nullable=False, default=0)
    total_value_cents = Column(Integer, nullable=False, default=0)
    margin_convention = Column(String(10), nullable=False, default=MarginConvention.PRICE.value)

    system_id = Column(Integer, ForeignKey("cost_code_nodes.id"), nullable=True, index=True)
    area_id = Column(Integer, ForeignKey("cost_code_nodes.id"), nullable=True, index=True)
    phase_id = Column(Integer, ForeignKey("cost_code_nodes.id"), nullable=True, index=True)
    module_id = Column(Integer, ForeignKey("cost_code_nodes.id"), nullable=True, index=True)
    component_id = Column(Integer, ForeignKey("cost_code_nodes.id"), nullable=True, index=True)
    gl_category_id = Column(Integer, ForeignKey("gl_categories.id"), nullable=True, index=True)
    gl_account_id = Column(Integer, ForeignKey("gl_accounts.id"), nullable=True, index=True)

    is_change_order = Column(Boolean, default=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("Job", back_populates="sov_items")

    __table_args__ = (
        UniqueConstraint("job_id", "line_number", name="uq_sov_job_line_number"),
        UniqueConstraint("job_id", "cost_code_number", name="uq_sov_job_cost_code_number"),
    )

    @property
    def unit_rate_cents(self) -> float:
        """Sale value per unit of quantity."""
        return self.total_value_cents / self.quantity if self.quantity else 0.0


# =============================================================================
# Progress Reports
# =============================================================================

class ProgressReport(Base):
    """One progress report per reporting period per job."""
    __tablename__ = "progress_reports"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    report_number = Column(String(50), nullable=False)
    report_date = Column(Date, nullable=True)
    period_start = Column(Date, nullable=False, index=True)
    period_end = Column(Date, nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # Job.progress_sequence at creation
    status = Column(String(20), nullable=False, default=ReportStatus.DRAFT.value, index=True)

    # Workflow
    submitted_by = Column(String(100), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    submission_notes = Column(Text, nullable=True)
    reviewed_by = Column(String(100), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_notes = Column(Text, nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approval_notes = Column(Text, nullable=True)
    invoiced_at = Column(DateTime, nullable=True)
    invoice_reference = Column(String(100), nullable=True)

    # Summary (populated on approval)
    total_assigned_cents = Column(Integer, default=0)
    total_submitted_ctd_cents = Column(Integer, default=0)
    total_approved_ctd_cents = Column(Integer, default=0)
    total_amount_this_period_cents = Column(Integer, default=0)
    total_holdback_this_period_cents = Column(Integer, default=0)
    total_due_this_period_cents = Column(Integer, default=0)
    calculated_percent_ctd = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    job = relationship("Job", back_populates="progress_reports")
    lines = relationship(
        "ProgressReportLine",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ProgressReportLine.cost_code",
    )

    __table_args__ = (
        UniqueConstraint("job_id", "report_number", name="uq_report_job_number"),
    )


class ProgressReportLine(Base):
    """
    Progress for one cost code grouping within a report.
    previous_complete is copied from the prior approved report's approved CTD.
    """
    __tablename__ = "progress_report_lines"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("progress_reports.id"), nullable=False, index=True)
    cost_code = Column(String(100), nullable=False, index=True)  # Grouping key
    sov_line_item_id = Column(Integer, ForeignKey("sov_line_items.id"), nullable=False, index=True)
    description = Column(String(500), nullable=True)

    assigned_cost_cents = Column(Integer, nullable=False, default=0)
    submitted_ctd_cents = Column(Integer, nullable=False, default=0)
    submitted_ctd_percent = Column(Float, nullable=False, default=0.0)
    approved_ctd_cents = Column(Integer, nullable=True)
    approved_ctd_percent = Column(Float, nullable=True)
    previous_complete_cents = Column(Integer, nullable=False, default=0)
    previous_complete_percent = Column(Float, nullable=False, default=0.0)

    holdback_percent = Column(Float, nullable=False, default=0.0)
    amount_this_period_cents = Column(Integer, nullable=True)
    holdback_this_period_cents = Column(Integer, nullable=True)
    due_this_period_cents = Column(Integer, nullable=True)

    report = relationship("ProgressReport", back_populates="lines")
    sov_line_item = relationship("SOVLineItem")

    __table_args__ = (
        UniqueConstraint("report_id", "cost_code", name="uq_report_line_cost_code"),
    )


# =============================================================================
# Actual Costs
# =============================================================================

class Invoice(Base):
    """Vendor invoice (AP register row). total_amount_cents is tax-inclusive."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    invoice_number = Column(String(100), nullable=False, index=True)
    vendor = Column(String(200), nullable=False, default="")
    invoice_date = Column(Date, nullable=False, index=True)
    total_amount_cents = Column(Integer, nullable=False)
    invoice_type = Column(String(20), nullable=False, default=InvoiceType.MATERIAL.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    breakdowns = relationship("InvoiceBreakdown", back_populates="invoice", cascade="all, delete-orphan")


class InvoiceBreakdown(Base):
    __tablename__ = "invoice_breakdowns"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    cost_code = Column(String(100), nullable=False, index=True)
    description = Column(String(500), nullable=True)
    amount_cents = Column(Integer, nullable=False)
    sov_line_item_id = Column(Integer, ForeignKey("sov_line_items.id"), nullable=True)

    invoice = relationship("Invoice", back_populates="breakdowns")


class LaborEntry(Base):
    """Labor time entry with wage rates and burden."""
    __tablename__ = "labor_entries"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    cost_code = Column(String(100), nullable=False, index=True)
    worker_name = Column(String(200), nullable=True)
    work_date = Column(Date, nullable=False, index=True)

    regular_hours = Column(Float, nullable=False, default=0.0)
    overtime_hours = Column(Float, nullable=False, default=0.0)
    double_time_hours = Column(Float, nullable=False, default=0.0)
    base_hourly_rate_cents = Column(Integer, nullable=False, default=0)
    overtime_rate_cents = Column(Integer, nullable=False, default=0)
    double_time_rate_cents = Column(Integer, nullable=False, default=0)
    burden_rate = Column(Float, nullable=False, default=0.0)  # 0.35 = 35%

    total_labor_cost_cents = Column(Integer, nullable=False, default=0)
    total_burden_cost_cents = Column(Integer, nullable=False, default=0)
    total_cost_with_burden_cents = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=LaborStatus.APPROVED.value, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def total_hours(self) -> float:
        return (self.regular_hours or 0) + (self.overtime_hours or 0) + (self.double_time_hours or 0)


# =============================================================================
# Engine / Session
# =============================================================================

@lru_cache(maxsize=1)
def get_engine():
    """Engine for the configured database URL."""
    url = get_config().database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def SessionLocal():
    """Open a new session on the configured engine."""
    return sessionmaker(autoflush=False, bind=get_engine())()


def init_db():
    """Initialize the database and create all tables."""
    Base.metadata.create_all(bind=get_engine())
