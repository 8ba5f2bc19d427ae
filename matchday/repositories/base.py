"""
Base repository class for the data access layer.

The repository is the generic persistence interface the engine talks to:
create/read/update/delete against one named collection. Services never
build queries themselves, which keeps them testable against a sqlite session.

Example:
    class VoteRepository(BaseRepository[Vote]):
        def find_for_match(self, match_id: int) -> List[Vote]:
            return self.where(Vote.match_id == match_id)
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List, Any, Dict
from sqlalchemy import delete, func, update
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: int) -> Optional[T]:
        """Find a single record by primary key."""
        return self.db.get(self.model_type, id)

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Returns:
            The created record (added to the session, not yet committed)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    def create_many(self, items: List[Dict[str, Any]]) -> List[T]:
        """Create multiple records (added to the session, not yet committed)."""
        instances = [self.model_type(**item) for item in items]
        self.db.add_all(instances)
        return instances

    def delete(self, id: int) -> bool:
        """
        Delete a record by primary key.

        Returns:
            True if deleted, False if not found
        """
        instance = self.find_by_id(id)
        if instance:
            self.db.delete(instance)
            return True
        return False

    def delete_where(self, *criterion) -> int:
        """Bulk delete matching rows. Returns the number of rows removed."""
        result = self.db.execute(
            delete(self.model_type).where(*criterion).execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def update_where(self, values: Dict[str, Any], *criterion) -> int:
        """
        Conditional bulk update. Returns the number of rows changed.

        Used as a compare-and-set: callers put the expected old value in the
        criterion and treat a zero rowcount as "someone else got there first".
        """
        result = self.db.execute(
            update(self.model_type).where(*criterion).values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # ========================================================================
    # Query Builders
    # ========================================================================

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def filter_by(self, **kwargs) -> List[T]:
        """Filter records by keyword arguments."""
        return self.db.query(self.model_type).filter_by(**kwargs).all()

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.db.query(self.model_type).filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    # ========================================================================
    # Existence Checks & Aggregates
    # ========================================================================

    def exists_where(self, *criterion) -> bool:
        """Check if any record matching the criterion exists."""
        return self.db.query(
            self.db.query(self.model_type).filter(*criterion).exists()
        ).scalar()

    def count(self, *criterion) -> int:
        """Count records matching optional criterion."""
        query = self.db.query(func.count(self.model_type.id))
        if criterion:
            query = query.filter(*criterion)
        return query.scalar() or 0

    # ========================================================================
    # Transaction Control
    # ========================================================================

    def save(self) -> None:
        """Commit pending changes to the database."""
        self.db.commit()

    def flush(self) -> None:
        """Flush pending changes without committing."""
        self.db.flush()

    def refresh(self, instance: T) -> T:
        """Refresh an instance from the database."""
        self.db.refresh(instance)
        return instance

    def rollback(self) -> None:
        """Rollback pending changes."""
        self.db.rollback()
