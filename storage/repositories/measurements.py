"""
Measurement Repository.

============================================================
PURPOSE
============================================================
Write path for probe runs: the run header, the per-validator
results and the per-validator endpoint snapshots.

The header is committed on its own so that results always have a
parent row; results and snapshots are then committed together.

============================================================
"""

from datetime import datetime
from typing import List, Optional, Sequence, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storage.models.measurements import EndpointSnapshot, Measurement, MeasurementHeader
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import DuplicateRecordError


class MeasurementRepository(BaseRepository[MeasurementHeader]):
    """Repository for measurement headers, results and snapshots."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, MeasurementHeader, "MeasurementRepository")

    # ---------------------------------------------------------
    # Headers
    # ---------------------------------------------------------

    def get_header_by_run_id(self, run_id: str) -> Optional[MeasurementHeader]:
        stmt = select(MeasurementHeader).where(MeasurementHeader.run_id == run_id)
        return self._execute_scalar(stmt)

    def insert_header(
        self,
        network_id: int,
        run_id: str,
        executed_at: datetime,
    ) -> MeasurementHeader:
        """
        Insert and commit the header row of a run.

        A header with the same run_id already stored (a retried record
        of the same run) is returned instead of failing.
        """
        try:
            header = self._add(
                MeasurementHeader(
                    network_id=network_id,
                    run_id=run_id,
                    executed_at=executed_at,
                ),
                "insert_header",
            )
            self._commit("insert_header")
        except DuplicateRecordError:
            header = self.get_header_by_run_id(run_id)
            if header is None:
                raise
            self._logger.info(f"Header already stored, reusing | run_id={run_id} id={header.id}")
            return header

        self._logger.debug(f"Inserted header | run_id={run_id} id={header.id}")
        return header

    # ---------------------------------------------------------
    # Results
    # ---------------------------------------------------------

    def insert_results(
        self,
        measurements: Sequence[Measurement],
        snapshots: Sequence[EndpointSnapshot],
    ) -> None:
        """
        Insert result and snapshot rows in one transaction.

        Raises:
            RepositoryException: The transaction was rolled back; the
                header (committed earlier) is untouched.
        """
        rows: List = list(measurements) + list(snapshots)
        if not rows:
            return
        self._add_all(rows, "insert_results")
        self._commit("insert_results")

    def stored_validator_ids(self, header_id: int) -> Tuple[Set[int], Set[int]]:
        """
        Validator ids already stored under a header.

        Returns:
            (ids with a result row, ids with a snapshot row)
        """
        results = self._execute_rows(
            select(Measurement.validator_id).where(Measurement.header_id == header_id)
        )
        snapshots = self._execute_rows(
            select(EndpointSnapshot.validator_id).where(EndpointSnapshot.header_id == header_id)
        )
        return {row[0] for row in results}, {row[0] for row in snapshots}

    def count_results(self, header_id: int) -> int:
        """Count the result rows stored for a header."""
        stmt = (
            select(func.count())
            .select_from(Measurement)
            .where(Measurement.header_id == header_id)
        )
        rows = self._execute_rows(stmt)
        return rows[0][0] if rows else 0

    def list_results(self, header_id: int) -> List[Measurement]:
        stmt = (
            select(Measurement)
            .where(Measurement.header_id == header_id)
            .order_by(Measurement.validator_id.asc())
        )
        return self._execute_query(stmt)

    def list_snapshots(self, header_id: int) -> List[EndpointSnapshot]:
        stmt = (
            select(EndpointSnapshot)
            .where(EndpointSnapshot.header_id == header_id)
            .order_by(EndpointSnapshot.validator_id.asc())
        )
        return self._execute_query(stmt)
