"""
Shared fixtures: an in-memory database per test plus a small priced job.
"""
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from jobcost.config import get_config
from jobcost.models import Base
from jobcost.domain.services import (
    CostStructureRegistry,
    JobService,
    ProgressReportService,
    SOVLedgerService,
)


@pytest.fixture(scope="function")
def test_db():
    """Create a test database with fresh tables for each test."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def config():
    return get_config()


@pytest.fixture
def job(test_db):
    """Job whose contract value matches the SOV line in sov_job."""
    return JobService(test_db).register_job({
        'code': 'JOB-001',
        'name': 'North Plant Expansion',
        'contract_value_cents': 13333333,
        'start_date': date(2024, 1, 1),
        'end_date': date(2024, 12, 31),
    })


@pytest.fixture
def registry(test_db, job):
    """Cost structure with one System and two Areas."""
    registry = CostStructureRegistry(test_db)
    registry.register_node(job.id, 'system', 'SYS1', name='Process Piping')
    registry.register_node(job.id, 'area', 'A1', name='Area 1')
    registry.register_node(job.id, 'area', 'A2', name='Area 2')
    return registry


@pytest.fixture
def sov_job(test_db, job, registry):
    """
    Job with a single SOV line: cost $100,000 at 25% margin on price,
    valued at $133,333.33 under cost code SYS1A1.
    """
    SOVLedgerService(test_db).add_line_item(job.id, {
        'line_number': '1',
        'description': 'Piping, Area 1',
        'quantity': 1,
        'total_cost_cents': 10000000,
        'margin_percent': 25,
        'system_code': 'SYS1',
        'area_code': 'A1',
    })
    return job


@pytest.fixture
def run_period(test_db):
    """
    Create, submit, review and approve one reporting period.

    Returns the ProgressResult of the approval.
    """
    def _run(job_id, number, start, end, approved=None, field_progress=None, holdback_percent=10.0):
        service = ProgressReportService(test_db)
        created = service.create_report(
            job_id, number, start, end,
            field_progress=field_progress or approved,
            holdback_percent=holdback_percent,
        )
        service.submit(created.report.id, submitted_by='field')
        service.review(created.report.id, reviewed_by='pm')
        return service.approve(created.report.id, approved_percents=approved, approved_by='owner')

    return _run
