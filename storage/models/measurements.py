"""
Measurement Domain ORM Models.

============================================================
PURPOSE
============================================================
One probe cycle is stored as a header row plus one result row and
(where the validator had an endpoint) one endpoint snapshot row per
probed validator.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Stage: TELEMETRY
- Mutability: IMMUTABLE (append-only)
- Source: Health prober
- Consumers: Query projections

============================================================
MODELS
============================================================
- MeasurementHeader: One row per run
- Measurement: Probe result per validator per run
- EndpointSnapshot: URL actually probed per validator per run

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, IdType


class MeasurementHeader(Base):
    """
    Probe run header.

    `run_id` is the opaque correlation token generated by the cycle
    driver; `id` is the storage surrogate referenced by result rows.
    """

    __tablename__ = "measurement_headers"

    __table_args__ = (
        Index("ix_measurement_headers_network_executed", "network_id", "executed_at"),
    )

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    network_id: Mapped[int] = mapped_column(
        ForeignKey("networks.id"),
        nullable=False,
    )

    run_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Globally unique run token"
    )

    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Cycle start time (UTC)"
    )

    def __repr__(self) -> str:
        return f"<MeasurementHeader(id={self.id}, run_id={self.run_id})>"


class Measurement(Base):
    """Liveness probe result. up=False rows carry no block number."""

    __tablename__ = "measurements"

    __table_args__ = (
        UniqueConstraint("header_id", "validator_id", name="uq_measurements_header_validator"),
    )

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
        index=True,
    )

    header_id: Mapped[int] = mapped_column(
        ForeignKey("measurement_headers.id"),
        nullable=False,
        index=True,
    )

    up: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
    )

    block_number: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Height reported by the endpoint"
    )

    status_code: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="HTTP status, 408 for timeouts, 500 for transport errors"
    )

    response_time_ms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )


class EndpointSnapshot(Base):
    """The endpoint URL that was probed for a validator in a run."""

    __tablename__ = "endpoint_snapshots"

    __table_args__ = (
        UniqueConstraint("header_id", "validator_id", name="uq_endpoint_snapshots_header_validator"),
    )

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
        index=True,
    )

    header_id: Mapped[int] = mapped_column(
        ForeignKey("measurement_headers.id"),
        nullable=False,
        index=True,
    )

    rpc_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
