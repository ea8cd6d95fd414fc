"""
Job Service - registration of job records supplied by job management.
"""
import logging
from typing import Optional, Union

from sqlalchemy.orm import Session

from jobcost.config import get_config, JobCostConfig
from jobcost.models import Job
from jobcost.infrastructure.repositories import JobRepository
from jobcost.schemas import JobCreate, parse_input
from jobcost.domain.exceptions import IntegrityError, JobNotFoundError
from .transaction import atomic

logger = logging.getLogger(__name__)


class JobService:

    def __init__(self, session: Session, config: Optional[JobCostConfig] = None):
        self.session = session
        self.config = config or get_config()
        self.repo = JobRepository(session)

    def register_job(self, data: Union[JobCreate, dict]) -> Job:
        """
        Store a job record.

        The job's margin convention falls back to sov.default_margin_convention
        and is fixed for the life of the job.

        Raises:
            ValidationError: bad payload
            IntegrityError: job code already registered
        """
        payload = parse_input(JobCreate, data)
        if self.repo.get_by_code(payload.code):
            raise IntegrityError(f"Job code '{payload.code}' is already registered", code="DUPLICATE_JOB_CODE")

        with atomic(self.session):
            job = self.repo.create(
                code=payload.code,
                name=payload.name,
                contract_value_cents=payload.contract_value_cents,
                status=payload.status,
                start_date=payload.start_date,
                end_date=payload.end_date,
                margin_convention=payload.margin_convention or self.config.default_margin_convention,
            )

        logger.info(f"Registered job {job.code} ({job.margin_convention} margin convention)")
        return job

    def get_job_by_code(self, code: str) -> Job:
        job = self.repo.get_by_code(code)
        if not job:
            raise JobNotFoundError(code)
        return job
