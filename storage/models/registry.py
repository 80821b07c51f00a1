"""
Registry Domain ORM Models.

============================================================
PURPOSE
============================================================
Models for the network partition and the roster of entities
observed on-chain: validators and validator groups.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Stage: ROSTER
- Mutability: address is immutable, rpc_url / name are mutable
  scalars updated in place by reconciliation (not versioned)
- Source: Chain oracle
- Consumers: Health prober, query projections

============================================================
MODELS
============================================================
- Network: Partition key for every other table
- Validator: Registered validator account
- ValidatorGroup: Registered validator group account

============================================================
"""

from typing import Optional

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, IdType, TimestampMixin


class Network(Base):
    """
    A chain network (mainnet, testnet, ...).

    Created once at startup, never modified.
    """

    __tablename__ = "networks"

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Network name, e.g. mainnet"
    )

    def __repr__(self) -> str:
        return f"<Network(id={self.id}, name={self.name})>"


class Validator(Base, TimestampMixin):
    """
    A registered validator account.

    `address` is the natural key from the chain and never changes.
    `rpc_url` is the endpoint currently advertised in the account
    metadata; the URL actually probed in a run lives in
    EndpointSnapshot.
    """

    __tablename__ = "validators"

    __table_args__ = (
        UniqueConstraint("network_id", "address", name="uq_validators_network_address"),
    )

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    network_id: Mapped[int] = mapped_column(
        ForeignKey("networks.id"),
        nullable=False,
        index=True,
    )

    address: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Checksummed account address"
    )

    rpc_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Current advertised RPC endpoint"
    )

    def __repr__(self) -> str:
        return f"<Validator(id={self.id}, address={self.address})>"


class ValidatorGroup(Base, TimestampMixin):
    """A registered validator group account."""

    __tablename__ = "validator_groups"

    __table_args__ = (
        UniqueConstraint("network_id", "address", name="uq_validator_groups_network_address"),
    )

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    network_id: Mapped[int] = mapped_column(
        ForeignKey("networks.id"),
        nullable=False,
        index=True,
    )

    address: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Checksummed group account address"
    )

    name: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Current display name (not versioned)"
    )

    def __repr__(self) -> str:
        return f"<ValidatorGroup(id={self.id}, address={self.address})>"
