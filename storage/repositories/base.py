"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Provides common functionality for all repositories including:
- Session management patterns
- Error handling wrappers
- Common query operations
- Logging setup

============================================================
USAGE
============================================================
All domain repositories inherit from BaseRepository.
Session is injected via constructor; repositories never commit.
Transaction boundaries belong to the ledger services.

============================================================
"""

import logging
from abc import ABC
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete
from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConcurrentModificationError,
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    LockTimeoutError,
    QueryError,
)


# Type variable for ORM model
T = TypeVar("T", bound=Base)

# PostgreSQL lock_not_available, deadlock_detected
_PG_LOCK_NOT_AVAILABLE = "55P03"
_PG_DEADLOCK_DETECTED = "40P01"


def is_lock_timeout(error: Exception) -> bool:
    """True if a DBAPI error means a lock wait gave up."""
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == _PG_LOCK_NOT_AVAILABLE:
        return True
    text = str(error).lower()
    return "lock timeout" in text or "database is locked" in text


def is_deadlock(error: Exception) -> bool:
    """True if the database aborted the transaction to break a lock cycle."""
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == _PG_DEADLOCK_DETECTED:
        return True
    return "deadlock detected" in str(error).lower()


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for all repositories.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Provides common query and persistence patterns
    - Wraps database errors in repository exceptions
    - Manages logging for all operations

    ============================================================
    USAGE
    ============================================================
    class MyRepository(BaseRepository[MyModel]):
        def __init__(self, session: Session):
            super().__init__(session, MyModel, "MyRepository")

    ============================================================
    """

    def __init__(
        self,
        session: Session,
        model_class: Type[T],
        repository_name: str
    ) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy session (injected)
            model_class: The ORM model class this repository manages
            repository_name: Name for logging and error messages
        """
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        """Get the current session."""
        return self._session

    @property
    def repository_name(self) -> str:
        """Get the repository name."""
        return self._repository_name

    # =========================================================
    # PROTECTED HELPER METHODS
    # =========================================================

    def _handle_db_error(
        self,
        error: Exception,
        operation: str,
        context: Optional[dict] = None
    ) -> None:
        """
        Handle database errors by wrapping in repository exceptions.

        Args:
            error: The original exception
            operation: Name of the operation that failed
            context: Additional context for logging

        Raises:
            RepositoryException: Always raises appropriate exception
        """
        context = context or {}

        if isinstance(error, StaleDataError) or (
            isinstance(error, OperationalError) and is_deadlock(error)
        ):
            # Expected under contention; the caller retries.
            self._logger.info(f"Conflict in {operation}: {error}")
            raise ConcurrentModificationError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error)
            ) from error

        if isinstance(error, OperationalError) and is_lock_timeout(error):
            self._logger.warning(f"Lock timeout in {operation}: {error}")
            raise LockTimeoutError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error)
            ) from error

        self._logger.error(
            f"Database error in {operation}: {error}",
            extra={"context": context},
            exc_info=True
        )

        if isinstance(error, OperationalError):
            raise ConnectionError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error)
            ) from error

        if isinstance(error, SQLAlchemyIntegrityError):
            error_str = str(error).lower()
            if "duplicate" in error_str or "unique" in error_str:
                raise DuplicateRecordError(
                    repository_name=self._repository_name,
                    constraint_field=context.get("field", "unknown"),
                    value=context.get("value", "unknown")
                ) from error

            raise IntegrityError(
                repository_name=self._repository_name,
                operation=operation,
                constraint_name="unknown",
                message=str(error)
            ) from error

        raise QueryError(
            repository_name=self._repository_name,
            operation=operation,
            query_description=operation,
            original_error=str(error)
        ) from error

    def _add(self, entity: T, context: Optional[dict] = None) -> T:
        """
        Add an entity to the session and flush it.

        Args:
            entity: The entity to add
            context: Extra context for error reporting

        Returns:
            The added entity, with its generated key populated
        """
        try:
            self._session.add(entity)
            self._session.flush()
            self._logger.debug(f"Added entity: {entity}")
            return entity
        except SQLAlchemyError as e:
            self._handle_db_error(e, "add", context or {"entity": str(entity)})
            raise  # Never reached, but satisfies type checker

    def _flush(self, operation: str) -> None:
        """Flush pending changes, surfacing version conflicts early."""
        try:
            self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
            raise

    def _get_by_id(self, record_id: Any) -> Optional[T]:
        """
        Get an entity by its primary key.

        Args:
            record_id: The primary key (scalar or tuple for composite keys)

        Returns:
            The entity or None if not found
        """
        try:
            return self._session.get(self._model_class, record_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_by_id", {"id": str(record_id)})
            raise

    def _execute_query(self, stmt: Any) -> List[T]:
        """
        Execute a select statement and return results.

        Args:
            stmt: SQLAlchemy select statement

        Returns:
            List of entities
        """
        try:
            result = self._session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query")
            raise

    def _execute_scalar(self, stmt: Any) -> Optional[T]:
        """
        Execute a select statement and return single result.

        Args:
            stmt: SQLAlchemy select statement

        Returns:
            Single entity or None
        """
        try:
            result = self._session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_scalar")
            raise

    def _delete_where(self, operation: str, *criteria: Any) -> int:
        """
        Bulk delete rows matching criteria.

        Returns:
            Number of rows deleted
        """
        try:
            stmt = delete(self._model_class).where(*criteria)
            result = self._session.execute(
                stmt, execution_options={"synchronize_session": False}
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
            raise
