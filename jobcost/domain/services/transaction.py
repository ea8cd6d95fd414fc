"""
Transaction helper shared by the domain services.
"""
from contextlib import contextmanager

from sqlalchemy.orm import Session


@contextmanager
def atomic(session: Session):
    """
    Commit on success; roll back and re-raise on any error.

    Writes either land completely or leave no trace in the session.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
