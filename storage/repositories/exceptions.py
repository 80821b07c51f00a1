"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Every SQLAlchemy error raised inside a repository is wrapped in one
of these exceptions so callers never handle driver errors directly.

============================================================
HIERARCHY
============================================================
RepositoryException
├── DuplicateRecordError     storage conflict, callers re-read
├── IntegrityError
├── QueryError
├── ValidationError          rejected before touching the database
└── StorageUnavailableError  aborts the current cycle
    ├── ConnectionError
    └── TransactionError

============================================================
"""

from typing import Any, Optional


class RepositoryException(Exception):
    """
    Base exception for all repository operations.

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
    """A unique constraint rejected an insert."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        constraint_field: str = "unknown",
        value: Any = "unknown"
    ) -> None:
        super().__init__(
            message=f"Duplicate record: {constraint_field}={value} already exists",
            repository_name=repository_name,
            operation=operation,
            details={"field": constraint_field, "value": str(value)}
        )
        self.constraint_field = constraint_field
        self.value = value


class IntegrityError(RepositoryException):
    """Foreign key, not-null or check constraint violated."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        message: str
    ) -> None:
        super().__init__(
            message=f"Integrity constraint violated: {message}",
            repository_name=repository_name,
            operation=operation,
        )


class QueryError(RepositoryException):
    """A statement failed for a reason other than connectivity or constraints."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class ValidationError(RepositoryException):
    """Input rejected by the repository before any write."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        field: str,
        reason: str
    ) -> None:
        super().__init__(
            message=f"Validation failed for {field}: {reason}",
            repository_name=repository_name,
            operation=operation,
            details={"field": field, "reason": reason}
        )
        self.field = field
        self.reason = reason


class StorageUnavailableError(RepositoryException):
    """The database cannot be reached or cannot complete a transaction."""


class ConnectionError(StorageUnavailableError):
    """Connection refused, timed out or dropped."""

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


class TransactionError(StorageUnavailableError):
    """Commit or rollback failed."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        phase: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Transaction {phase} failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"phase": phase, "original_error": original_error}
        )
        self.phase = phase
