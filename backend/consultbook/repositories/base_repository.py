# backend/consultbook/repositories/base_repository.py
"""
Base Repository Pattern for the booking engine.

Provides the foundation for all repository classes with:
- Common CRUD operations
- Type safety with generics
- Translation of database errors (lock contention vs. real failures)

Repositories never commit: the service that owns the unit of work does.
"""

from contextlib import contextmanager
import logging
from typing import Any, Generic, Iterator, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import BusyException, RepositoryException
from ..database.session_utils import is_lock_contention_error

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        """
        Initialize repository with database session and model.

        Args:
            db: SQLAlchemy session (managed by service layer)
            model: SQLAlchemy model class
        """
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @contextmanager
    def _db_errors(self, action: str) -> Iterator[None]:
        """
        Translate SQLAlchemy errors raised inside the block.

        Lock waits that were cut short become ``BusyException`` so callers can
        retry; anything else is logged and wrapped in ``RepositoryException``.
        """
        try:
            yield
        except SQLAlchemyError as exc:
            if is_lock_contention_error(exc):
                raise BusyException(self.model.__name__) from exc
            self.logger.error(f"Error trying to {action} {self.model.__name__}: {str(exc)}")
            raise RepositoryException(
                f"Failed to {action} {self.model.__name__}: {str(exc)}"
            ) from exc

    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by its primary key."""
        with self._db_errors("retrieve"):
            return self.db.query(self.model).filter(self.model.id == id).first()

    def get_for_update(self, id: str) -> Optional[T]:
        """
        Retrieve an entity and lock its row until the transaction ends.

        On PostgreSQL this is ``SELECT ... FOR UPDATE``; SQLite ignores the
        clause and relies on the write lock taken by ``BEGIN IMMEDIATE``.
        """
        with self._db_errors("lock"):
            return (
                self.db.query(self.model)
                .filter(self.model.id == id)
                .with_for_update()
                .populate_existing()
                .first()
            )

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as exc:
            if is_lock_contention_error(exc):
                raise BusyException(self.model.__name__) from exc
            self.logger.error(f"Error creating {self.model.__name__}: {str(exc)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(exc)}") from exc

    def update(self, entity: T, **kwargs: Any) -> T:
        """Update provided fields of an already loaded entity, preserving others."""
        with self._db_errors("update"):
            for key, value in kwargs.items():
                if hasattr(entity, key):
                    setattr(entity, key, value)
            self.db.flush()
            return entity

    def delete(self, entity: T) -> None:
        try:
            self.db.delete(entity)
            self.db.flush()
        except IntegrityError as exc:
            self.logger.error(f"Cannot delete {self.model.__name__} due to constraints: {str(exc)}")
            raise RepositoryException(f"Cannot delete due to existing references: {str(exc)}") from exc

    def find_by(self, **kwargs: Any) -> List[T]:
        """
        Find entities by given criteria.

        Args:
            **kwargs: Filter criteria (exact match)

        Returns:
            List of matching entities
        """
        with self._db_errors("find"):
            return self.db.query(self.model).filter_by(**kwargs).all()

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        """Find a single entity by given criteria, or None."""
        with self._db_errors("find"):
            return self.db.query(self.model).filter_by(**kwargs).first()

    # Protected helper methods for use by subclasses

    def _build_query(self) -> Query:
        """Get base query for the model."""
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        """Execute query with error handling."""
        with self._db_errors("query"):
            return query.all()
