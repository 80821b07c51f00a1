"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Provides common functionality for all repositories including:
- Error handling wrappers
- Common query and write helpers
- Logging setup

============================================================
USAGE
============================================================
All repositories inherit from BaseRepository. The session is
injected via the constructor; repositories never create sessions.

============================================================
"""

import logging
from abc import ABC
from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    TransactionError,
)


# Type variable for ORM model
T = TypeVar("T", bound=Base)


def is_unique_violation(error: SQLAlchemyIntegrityError) -> bool:
    """Check whether an IntegrityError came from a unique constraint."""
    error_str = str(error.orig if error.orig is not None else error).lower()
    return "duplicate" in error_str or "unique" in error_str


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for all repositories.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Wraps database errors in repository exceptions
    - Manages logging for all operations
    - Owns commit/rollback for the writes it performs

    ============================================================
    USAGE
    ============================================================
    class ValidatorRepository(BaseRepository[Validator]):
        def __init__(self, session: Session):
            super().__init__(session, Validator, "ValidatorRepository")

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
        return self._session

    @property
    def model_class(self) -> Type[T]:
        return self._model_class

    @property
    def repository_name(self) -> str:
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

        if isinstance(error, SQLAlchemyIntegrityError) and is_unique_violation(error):
            # Conflicts are an expected outcome; callers decide how loud to be.
            self._logger.debug(f"Unique constraint hit in {operation}: {context}")
            raise DuplicateRecordError(
                repository_name=self._repository_name,
                operation=operation,
                constraint_field=str(context.get("field", "unknown")),
                value=context.get("value", "unknown"),
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
            raise IntegrityError(
                repository_name=self._repository_name,
                operation=operation,
                message=str(error)
            ) from error

        raise QueryError(
            repository_name=self._repository_name,
            operation=operation,
            original_error=str(error)
        ) from error

    def _add(self, entity: T, operation: str = "add") -> T:
        """
        Add an entity to the session and flush it so its id is assigned.

        Args:
            entity: The entity to add
            operation: Operation name for error reporting

        Returns:
            The added entity
        """
        try:
            self._session.add(entity)
            self._session.flush()
            self._logger.debug(f"Added entity: {entity}")
            return entity
        except SQLAlchemyError as e:
            self._session.rollback()
            self._handle_db_error(e, operation, {"entity": str(entity)})
            raise  # Never reached, but satisfies type checker

    def _add_all(self, entities: Sequence[Base], operation: str = "add_all") -> None:
        """Add several entities and flush them in one round trip."""
        try:
            self._session.add_all(list(entities))
            self._session.flush()
        except SQLAlchemyError as e:
            self._session.rollback()
            self._handle_db_error(e, operation, {"count": len(entities)})
            raise

    def _execute_query(self, stmt: Any) -> List[T]:
        """
        Execute a select statement and return the mapped entities.

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
        Execute a select statement and return the first entity, if any.

        Args:
            stmt: SQLAlchemy select statement

        Returns:
            Single entity or None
        """
        try:
            result = self._session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_scalar")
            raise

    def _execute_rows(self, stmt: Any) -> List[Any]:
        """Execute a multi-column select and return the raw rows."""
        try:
            return list(self._session.execute(stmt).all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_rows")
            raise

    def _execute_write(self, stmt: Any, operation: str) -> int:
        """Execute an UPDATE/DELETE statement and return the affected row count."""
        try:
            return self._session.execute(stmt).rowcount
        except SQLAlchemyError as e:
            self._session.rollback()
            self._handle_db_error(e, operation)
            raise

    def _commit(self, operation: str = "commit") -> None:
        """
        Commit the current transaction.

        Constraint and connectivity errors raised at commit time are
        wrapped like any other statement error; everything else becomes
        a TransactionError.

        Raises:
            DuplicateRecordError: If the commit hit a unique constraint
            TransactionError: If commit fails
        """
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            if isinstance(e, (SQLAlchemyIntegrityError, OperationalError)):
                self._handle_db_error(e, operation)
            raise TransactionError(
                repository_name=self._repository_name,
                operation=operation,
                phase="commit",
                original_error=str(e)
            ) from e

    def _rollback(self) -> None:
        """Rollback the current transaction."""
        try:
            self._session.rollback()
        except SQLAlchemyError as e:
            self._logger.error(f"Rollback failed: {e}")
            raise TransactionError(
                repository_name=self._repository_name,
                operation="rollback",
                phase="rollback",
                original_error=str(e)
            ) from e
