"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Owns the SQLAlchemy engine and session factory.

- Creates the engine with connection pre-ping
- Hands out sessions through context managers
- Verifies connectivity at startup
- Creates the schema from the ORM metadata

============================================================
DESIGN PRINCIPLES
============================================================
- One Database object per process, passed explicitly to the
  components that need it (no module-level engine)
- Sessions are short-lived: one per reconcile / record step
- SQLite enforces foreign keys (PRAGMA on every connection)

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import storage.models  # noqa: F401  registers every table on Base.metadata
from storage.models.base import Base


logger = logging.getLogger(__name__)


class DatabaseConnectionError(Exception):
    """Raised when the database cannot be reached."""
    pass


class DatabaseInitializationError(Exception):
    """Raised when the schema cannot be created."""
    pass


def _redact(url: str) -> str:
    """Strip credentials from a database URL for logging."""
    return url.split("@")[-1]


class Database:
    """
    Engine + session factory for one database URL.

    Usage:
        db = Database("postgresql://user:pw@host/rpc_uptime")
        db.verify_connection()
        with db.session_scope() as session:
            ValidatorRepository(session).list_all(network_id)
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        engine_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the database.

        Args:
            url: SQLAlchemy database URL
            echo: Log SQL statements
            engine_options: Extra keyword arguments for create_engine
        """
        self._url = url
        options: Dict[str, Any] = {"echo": echo, "future": True}

        if url.startswith("sqlite"):
            if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                # All sessions must share the single in-memory connection.
                options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        else:
            options["pool_pre_ping"] = True
            options["pool_recycle"] = 1800

        options.update(engine_options or {})

        logger.info(f"Creating database engine for: {_redact(url)}")
        self._engine = create_engine(url, **options)

        if url.startswith("sqlite"):
            @event.listens_for(self._engine, "connect")
            def _enable_foreign_keys(dbapi_conn, connection_record):
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def url(self) -> str:
        return self._url

    # =========================================================
    # SESSIONS
    # =========================================================

    def new_session(self) -> Session:
        """
        Get a new session.

        IMPORTANT: Caller is responsible for closing it.
        Prefer session_scope().
        """
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Context manager for a session with automatic cleanup.

        Repositories commit their own writes; anything still pending
        when the block exits normally is committed too. On exception
        the session is rolled back and the exception re-raised.
        """
        session = self.new_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            logger.debug(f"Rolling back session after error: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    # =========================================================
    # INITIALIZATION
    # =========================================================

    def verify_connection(self) -> bool:
        """
        Verify the database is reachable.

        Raises:
            DatabaseConnectionError: If the connection fails
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
        except SQLAlchemyError as e:
            logger.error(f"Database connection failed: {e}")
            raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e

        logger.info("Database connection verified successfully")
        return True

    def create_all(self) -> None:
        """
        Create all tables defined in the ORM models.

        Raises:
            DatabaseInitializationError: If table creation fails
        """
        try:
            logger.info("Creating database tables...")
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabaseInitializationError(f"Table creation failed: {e}") from e
        logger.info("Database tables created successfully")

    def dispose(self) -> None:
        """Close every pooled connection."""
        self._engine.dispose()
