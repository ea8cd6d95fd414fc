"""
Base Repository - shared data access helpers for the job cost aggregates.
"""
from typing import Generic, TypeVar, Optional, Type
from sqlalchemy.orm import Session

from jobcost.models import Base

T = TypeVar('T', bound=Base)


class BaseRepository(Generic[T]):
    """
    Session-bound repository for one model class.

    Type Parameters:
        T: The SQLAlchemy model type this repository manages
    """

    def __init__(self, session: Session, model_class: Type[T]):
        self.session = session
        self.model_class = model_class

    def get_by_id(self, entity_id: int) -> Optional[T]:
        return self.session.get(self.model_class, entity_id)

    def add(self, entity: T) -> T:
        self.session.add(entity)
        return entity

    def delete(self, entity: T) -> None:
        self.session.delete(entity)

    def exists(self, **criteria) -> bool:
        """True when a row matches every field=value pair."""
        query = self.session.query(self.model_class)
        for field, value in criteria.items():
            query = query.filter(getattr(self.model_class, field) == value)
        return query.first() is not None
