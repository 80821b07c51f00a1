"""
Temporal History ORM Models.

============================================================
PURPOSE
============================================================
Validity-interval versioned facts about validators.

Every row covers [valid_from, valid_to). valid_to NULL marks the
currently open fact. Rows are only written through
storage.repositories.temporal.TemporalRecordStore.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Stage: HISTORY
- Mutability: APPEND-ONLY (valid_to is set once, when closed)
- Retention: forever

============================================================
MODELS
============================================================
- ValidatorName: Display name history, keyed by block height
- ValidatorGroupMembership: Group membership history, keyed by epoch

============================================================
"""

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, IdType


class TemporalFactMixin:
    """Columns shared by every temporal fact table."""

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    network_id: Mapped[int] = mapped_column(
        ForeignKey("networks.id"),
        nullable=False,
    )

    validator_id: Mapped[int] = mapped_column(
        ForeignKey("validators.id"),
        nullable=False,
    )

    valid_from: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="First height/epoch the value holds (inclusive)"
    )

    valid_to: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        comment="First height/epoch the value no longer holds (exclusive), NULL if open"
    )


class ValidatorName(Base, TemporalFactMixin):
    """
    Validator display name history.

    The name is stored base64-encoded; encoding and decoding happen
    in the repository, never on the model.
    """

    __tablename__ = "validator_names"

    __table_args__ = (
        UniqueConstraint(
            "network_id", "validator_id", "valid_from",
            name="uq_validator_names_from",
        ),
        Index("ix_validator_names_open", "network_id", "validator_id", "valid_to"),
    )

    encoded_name: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Base64 encoded UTF-8 display name"
    )

    def __repr__(self) -> str:
        return (
            f"<ValidatorName(validator_id={self.validator_id}, "
            f"[{self.valid_from}, {self.valid_to}))>"
        )


class ValidatorGroupMembership(Base, TemporalFactMixin):
    """Validator group membership history, keyed by epoch number."""

    __tablename__ = "validator_group_memberships"

    __table_args__ = (
        UniqueConstraint(
            "network_id", "validator_id", "valid_from",
            name="uq_validator_group_memberships_from",
        ),
        Index("ix_validator_group_memberships_open", "network_id", "validator_id", "valid_to"),
    )

    validator_group_id: Mapped[int] = mapped_column(
        ForeignKey("validator_groups.id"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ValidatorGroupMembership(validator_id={self.validator_id}, "
            f"group={self.validator_group_id}, [{self.valid_from}, {self.valid_to}))>"
        )
