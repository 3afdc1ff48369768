"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Defines repository-specific exceptions for proper error handling
and propagation. All database errors must be caught and wrapped
in these exceptions.

============================================================
USAGE
============================================================
Repositories catch SQLAlchemy/database exceptions and re-raise
as repository exceptions with context.

The ledger services map these onto error codes:
- ConcurrentModificationError: retried, then CON_CONCURRENT_MODIFICATION
- LockTimeoutError: INT_LOCK_TIMEOUT, never retried
- Anything else: INT_STORAGE_FAILURE

============================================================
"""

from typing import Any, Optional


class RepositoryException(Exception):
    """
    Base exception for all repository operations.

    All repository-specific exceptions inherit from this class.
    Business layers can catch this for generic error handling.
    """

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        return f"[{self.repository_name}] {self.operation}: {self.message}"


class DuplicateRecordError(RepositoryException):
    """
    Raised when attempting to create a duplicate record.

    For the ledger this is typically a second balance row for the
    same (member, currency) created by a racing first deposit.
    """

    def __init__(
        self,
        repository_name: str,
        constraint_field: str,
        value: Any
    ) -> None:
        super().__init__(
            message=f"Duplicate record: {constraint_field}={value} already exists",
            repository_name=repository_name,
            operation="create",
            details={"field": constraint_field, "value": str(value)}
        )
        self.constraint_field = constraint_field
        self.value = value


class IntegrityError(RepositoryException):
    """
    Raised when database integrity constraints are violated.

    Includes foreign key violations and check constraints such as
    a negative non-trading amount.
    """

    def __init__(
        self,
        repository_name: str,
        operation: str,
        constraint_name: str,
        message: str
    ) -> None:
        super().__init__(
            message=f"Integrity constraint violated ({constraint_name}): {message}",
            repository_name=repository_name,
            operation=operation,
            details={"constraint": constraint_name}
        )
        self.constraint_name = constraint_name


class ConnectionError(RepositoryException):
    """
    Raised when database connection fails.

    Use for connection timeouts, pool exhaustion, etc.
    """

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Database connection failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class QueryError(RepositoryException):
    """Raised when a query execution fails."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        query_description: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed ({query_description}): {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={
                "query_description": query_description,
                "original_error": original_error
            }
        )


class ConcurrentModificationError(RepositoryException):
    """
    Raised when an optimistic version check fails.

    Another transaction committed a change to the same row between
    our read and our write. The whole operation may be retried.
    """

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Row modified concurrently: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class LockTimeoutError(RepositoryException):
    """
    Raised when a row lock could not be obtained in time.

    The operation fails as a whole; it is not retried.
    """

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Lock wait timed out: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )
