"""
Job Repository - Data access layer for Job records.

Owns the per-job progress sequence used to serialise progress report creation.
"""
import uuid
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from jobcost.models import Job
from jobcost.domain.exceptions import JobNotFoundError, ConcurrencyError
from .base_repository import BaseRepository


class JobRepository(BaseRepository[Job]):

    def __init__(self, session: Session):
        super().__init__(session, Job)

    def require(self, job_id: int) -> Job:
        """
        Get a job or fail.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = self.get_by_id(job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def get_by_code(self, code: str) -> Optional[Job]:
        return self.session.query(Job).filter(Job.code == code.strip().upper()).first()

    def get_active(self) -> List[Job]:
        return self.session.query(Job).filter(Job.status == "active").order_by(Job.code).all()

    def create(self, code: str, name: str, contract_value_cents: int = 0, **fields) -> Job:
        job = Job(
            uuid=str(uuid.uuid4()),
            code=code,
            name=name,
            contract_value_cents=contract_value_cents,
            **fields,
        )
        self.add(job)
        return job

    def advance_progress_sequence(self, job_id: int, expected: int) -> int:
        """
        Compare-and-set the job's progress sequence.

        Only one writer can move the sequence from ``expected``; the loser of
        a race gets a ConcurrencyError instead of interleaving its report.

        Returns:
            The new sequence number
        """
        result = self.session.execute(
            update(Job)
            .where(Job.id == job_id, Job.progress_sequence == expected)
            .values(progress_sequence=expected + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyError("Job", job_id)
        self.session.expire(self.require(job_id), ['progress_sequence'])
        return expected + 1
