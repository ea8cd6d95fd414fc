"""
Actual Cost Repository - vendor invoices and labor time entries.
"""
import uuid
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from jobcost.models import Invoice, InvoiceBreakdown, LaborEntry
from .base_repository import BaseRepository


class ActualCostRepository(BaseRepository[Invoice]):

    def __init__(self, session: Session):
        super().__init__(session, Invoice)

    def get_invoices(
        self,
        job_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        exclude_statuses: Iterable[str] = (),
    ) -> List[Invoice]:
        query = self.session.query(Invoice).options(
            selectinload(Invoice.breakdowns)
        ).filter(Invoice.job_id == job_id)
        if start_date is not None:
            query = query.filter(Invoice.invoice_date >= start_date)
        if end_date is not None:
            query = query.filter(Invoice.invoice_date <= end_date)
        exclude_statuses = list(exclude_statuses)
        if exclude_statuses:
            query = query.filter(Invoice.payment_status.notin_(exclude_statuses))
        return query.order_by(Invoice.invoice_date, Invoice.id).all()

    def get_labor_entries(
        self,
        job_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[LaborEntry]:
        query = self.session.query(LaborEntry).filter(LaborEntry.job_id == job_id)
        if start_date is not None:
            query = query.filter(LaborEntry.work_date >= start_date)
        if end_date is not None:
            query = query.filter(LaborEntry.work_date <= end_date)
        if statuses is not None:
            query = query.filter(LaborEntry.status.in_(list(statuses)))
        return query.order_by(LaborEntry.work_date, LaborEntry.id).all()

    def create_invoice(self, job_id: int, breakdowns: List[dict], **fields) -> Invoice:
        invoice = Invoice(uuid=str(uuid.uuid4()), job_id=job_id, **fields)
        invoice.breakdowns = [InvoiceBreakdown(**b) for b in breakdowns]
        self.add(invoice)
        return invoice

    def create_labor_entry(self, job_id: int, **fields) -> LaborEntry:
        entry = LaborEntry(uuid=str(uuid.uuid4()), job_id=job_id, **fields)
        self.session.add(entry)
        return entry
