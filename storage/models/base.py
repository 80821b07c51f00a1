"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base and common mixins used by all
ORM models of the indexer.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- IdType: Surrogate key type (BIGINT, INTEGER on SQLite so
  that autoincrement works)
- TimestampMixin: Common timestamp columns

============================================================
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


IdType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    All tables are created from this metadata by
    storage.database.Database.create_all().
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    Mixin providing standard timestamp columns.

    Used on the mutable roster tables (validators, groups) so an
    operator can see when a row was last touched by reconciliation.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last update timestamp (UTC)"
    )
