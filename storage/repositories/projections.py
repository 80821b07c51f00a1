"""
Query Projections.

============================================================
PURPOSE
============================================================
Read-only, fully typed projections over the measurement and
roster tables, consumed by the HTTP layer:

- get_runs_in_range: runs with nested per-validator results
- get_export_rows: the same data as flat rows
- get_current_roster: address, current name, current group name
  and current endpoint per validator

Ordering is deterministic: executed_at ASC, address ASC.
A range without runs yields an empty list.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from storage.encoding import decode_text
from storage.models.history import ValidatorGroupMembership, ValidatorName
from storage.models.measurements import EndpointSnapshot, Measurement, MeasurementHeader
from storage.models.registry import Validator, ValidatorGroup
from storage.repositories.base import BaseRepository


DEFAULT_RANGE = timedelta(hours=24)
MAX_MEASUREMENT_SPAN = timedelta(days=1)
MAX_EXPORT_SPAN = timedelta(days=365)


# =============================================================
# RESULT SHAPES
# =============================================================

@dataclass(frozen=True)
class ResultView:
    address: str
    up: bool
    block_number: Optional[int]
    status_code: Optional[int]
    response_time_ms: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validator_address": self.address,
            "up": self.up,
            "block_number": self.block_number,
            "status_code": self.status_code,
            "response_time_ms": self.response_time_ms,
        }


@dataclass
class RunView:
    run_id: str
    executed_at: datetime
    results: List[ResultView] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "executed_at": self.executed_at.isoformat(),
            "validators": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class ExportRow:
    run_id: str
    executed_at: datetime
    address: str
    up: bool
    block_number: Optional[int]
    status_code: Optional[int]
    response_time_ms: Optional[int]


@dataclass(frozen=True)
class RosterEntry:
    address: str
    current_name: Optional[str]
    current_group_name: Optional[str]
    rpc_url: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "current_name": self.current_name,
            "current_group_name": self.current_group_name,
            "rpc_url": self.rpc_url,
        }


# =============================================================
# RANGE HANDLING
# =============================================================

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_time_range(
    start: Optional[datetime],
    end: Optional[datetime],
    max_span: timedelta = MAX_MEASUREMENT_SPAN,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Apply the default-window and span-limit rules of the query API.

    - both bounds missing: the last 24 hours
    - only `end` missing: `now`
    - only `start` missing: 24 hours before `end`
    - span above `max_span`: start is moved up to `end - max_span`

    Raises:
        ValueError: If start is not before end
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    end = _as_utc(end) if end is not None else now
    start = _as_utc(start) if start is not None else end - DEFAULT_RANGE

    if start >= end:
        raise ValueError(f"start ({start.isoformat()}) must be before end ({end.isoformat()})")

    if end - start > max_span:
        start = end - max_span

    return start, end


# =============================================================
# REPOSITORY
# =============================================================

class ProjectionRepository(BaseRepository[MeasurementHeader]):
    """Named read-only query functions, one per projection."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, MeasurementHeader, "ProjectionRepository")

    def _measurement_rows(
        self,
        network_id: int,
        start: datetime,
        end: datetime,
        addresses: Optional[Sequence[str]],
    ) -> List[Any]:
        stmt = (
            select(
                MeasurementHeader.run_id,
                MeasurementHeader.executed_at,
                Validator.address,
                Measurement.up,
                Measurement.block_number,
                Measurement.status_code,
                Measurement.response_time_ms,
            )
            .join(Measurement, Measurement.header_id == MeasurementHeader.id)
            .join(Validator, Validator.id == Measurement.validator_id)
            .where(
                MeasurementHeader.network_id == network_id,
                MeasurementHeader.executed_at >= start,
                MeasurementHeader.executed_at <= end,
            )
            .order_by(
                MeasurementHeader.executed_at.asc(),
                MeasurementHeader.id.asc(),
                Validator.address.asc(),
            )
        )
        if addresses is not None:
            stmt = stmt.where(Validator.address.in_(list(addresses)))
        return self._execute_rows(stmt)

    def get_runs_in_range(
        self,
        network_id: int,
        start: datetime,
        end: datetime,
        addresses: Optional[Sequence[str]] = None,
    ) -> List[RunView]:
        """
        Get runs executed in [start, end] with their results nested.

        Args:
            network_id: Network partition
            start: Inclusive lower bound on executed_at
            end: Inclusive upper bound on executed_at
            addresses: Optional validator address filter

        Returns:
            Runs ordered by executed_at, results ordered by address
        """
        runs: List[RunView] = []
        by_run_id: Dict[str, RunView] = {}

        for row in self._measurement_rows(network_id, start, end, addresses):
            run = by_run_id.get(row.run_id)
            if run is None:
                run = RunView(run_id=row.run_id, executed_at=_as_utc(row.executed_at))
                by_run_id[row.run_id] = run
                runs.append(run)
            run.results.append(
                ResultView(
                    address=row.address,
                    up=bool(row.up),
                    block_number=row.block_number,
                    status_code=row.status_code,
                    response_time_ms=row.response_time_ms,
                )
            )
        return runs

    def get_export_rows(
        self,
        network_id: int,
        start: datetime,
        end: datetime,
        addresses: Optional[Sequence[str]] = None,
    ) -> List[ExportRow]:
        """Flat variant of get_runs_in_range for CSV/JSON export."""
        return [
            ExportRow(
                run_id=row.run_id,
                executed_at=_as_utc(row.executed_at),
                address=row.address,
                up=bool(row.up),
                block_number=row.block_number,
                status_code=row.status_code,
                response_time_ms=row.response_time_ms,
            )
            for row in self._measurement_rows(network_id, start, end, addresses)
        ]

    def get_current_roster(
        self,
        network_id: int,
        probed_only: bool = False,
    ) -> List[RosterEntry]:
        """
        Get every validator with its current name and group.

        The current name and group come from the open fact of each
        history table; a validator with no history yet has None there.

        Args:
            network_id: Network partition
            probed_only: Only validators that appear in at least one
                endpoint snapshot
        """
        current_group = ValidatorGroup.__table__.alias("current_group")
        stmt = (
            select(
                Validator.address,
                Validator.rpc_url,
                ValidatorName.encoded_name,
                current_group.c.name.label("group_name"),
            )
            .outerjoin(
                ValidatorName,
                and_(
                    ValidatorName.validator_id == Validator.id,
                    ValidatorName.network_id == Validator.network_id,
                    ValidatorName.valid_to.is_(None),
                ),
            )
            .outerjoin(
                ValidatorGroupMembership,
                and_(
                    ValidatorGroupMembership.validator_id == Validator.id,
                    ValidatorGroupMembership.network_id == Validator.network_id,
                    ValidatorGroupMembership.valid_to.is_(None),
                ),
            )
            .outerjoin(
                current_group,
                current_group.c.id == ValidatorGroupMembership.validator_group_id,
            )
            .where(Validator.network_id == network_id)
            .order_by(
                Validator.address.asc(),
                ValidatorName.valid_from.desc(),
                ValidatorGroupMembership.valid_from.desc(),
            )
        )
        if probed_only:
            probed = select(EndpointSnapshot.validator_id).where(
                EndpointSnapshot.network_id == network_id
            )
            stmt = stmt.where(Validator.id.in_(probed))

        roster: List[RosterEntry] = []
        seen = set()
        for row in self._execute_rows(stmt):
            # Repaired data may leave two open facts; the latest valid_from sorts first.
            if row.address in seen:
                continue
            seen.add(row.address)
            roster.append(
                RosterEntry(
                    address=row.address,
                    current_name=decode_text(row.encoded_name) if row.encoded_name is not None else None,
                    current_group_name=row.group_name,
                    rpc_url=row.rpc_url,
                )
            )
        return roster
