"""
Indexer - Measurement Recorder.

============================================================
RESPONSIBILITY
============================================================
Persists one probe run.

1. Insert and commit the run header (run_id, executed_at)
2. Insert one result row per probe result and one endpoint
   snapshot per result that had a URL, in a single transaction

If step 1 fails nothing is written. If step 2 fails the header
remains without results and RecordingError is raised; readers
treat such a run as incomplete.

Recording the same run_id again reuses its header and writes only
the rows that are not stored yet, so a replay completes an
incomplete run and is a no-op for a complete one.

============================================================
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from core.clock import ClockProtocol, SystemClock
from core.exceptions import RecordingError
from indexer.models import RecordedRun
from rpc_health.models import ProbeResult
from storage.database import Database
from storage.models.measurements import EndpointSnapshot, Measurement
from storage.repositories.exceptions import RepositoryException
from storage.repositories.measurements import MeasurementRepository


logger = logging.getLogger(__name__)


class MeasurementRecorder:
    """Writes probe runs to storage."""

    def __init__(self, database: Database, clock: Optional[ClockProtocol] = None) -> None:
        self._database = database
        self._clock = clock or SystemClock()

    def record(
        self,
        network_id: int,
        run_id: str,
        results: Sequence[ProbeResult],
        executed_at: Optional[datetime] = None,
    ) -> RecordedRun:
        """
        Record a run.

        Args:
            network_id: Network partition
            run_id: Unique identifier of the run
            results: One result per probed validator
            executed_at: Run timestamp (defaults to clock.now())

        Returns:
            RecordedRun describing the committed rows

        Raises:
            RepositoryException: The header could not be written
            RecordingError: The header was written, the results were not
        """
        executed_at = executed_at or self._clock.now()

        with self._database.session_scope() as session:
            repo = MeasurementRepository(session)
            header = repo.insert_header(network_id, run_id, executed_at)
            header_id = header.id

            # Rows a previous record() of the same run already committed
            stored_results, stored_snapshots = repo.stored_validator_ids(header_id)

            measurements: List[Measurement] = []
            snapshots: List[EndpointSnapshot] = []
            for result in results:
                if result.validator_id not in stored_results:
                    measurements.append(
                        Measurement(
                            network_id=network_id,
                            validator_id=result.validator_id,
                            header_id=header_id,
                            up=result.up,
                            block_number=result.block_number if result.up else None,
                            status_code=result.status_code,
                            response_time_ms=result.response_time_ms if result.up else None,
                        )
                    )
                if result.rpc_url and result.validator_id not in stored_snapshots:
                    snapshots.append(
                        EndpointSnapshot(
                            network_id=network_id,
                            validator_id=result.validator_id,
                            header_id=header_id,
                            rpc_url=result.rpc_url,
                        )
                    )

            try:
                repo.insert_results(measurements, snapshots)
            except RepositoryException as e:
                logger.error(
                    f"Results of run {run_id} not stored, header {header_id} left incomplete: {e}"
                )
                raise RecordingError(
                    f"Failed to store {len(measurements)} results",
                    run_id=run_id,
                    header_id=header_id,
                    cause=e,
                ) from e

        skipped = len(results) - len(measurements)
        if skipped:
            logger.info(f"Run {run_id} replayed, {skipped} results were already stored")

        down_count = sum(1 for r in results if not r.up)
        snapshot_count = sum(1 for r in results if r.rpc_url)
        logger.info(
            f"Recorded run {run_id} | header_id={header_id} results={len(results)} "
            f"down={down_count} snapshots={snapshot_count}"
        )
        return RecordedRun(
            run_id=run_id,
            header_id=header_id,
            executed_at=executed_at,
            result_count=len(results),
            down_count=down_count,
            snapshot_count=snapshot_count,
        )
