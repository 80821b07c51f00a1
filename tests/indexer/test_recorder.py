"""
Tests for the Measurement Recorder.

============================================================
PURPOSE
============================================================
1. A run stores one header, one result per target and one
   snapshot per target with a URL
2. Header failure writes nothing
3. Result failure leaves the header and raises RecordingError
4. Recording the same run_id again reuses the header and writes
   only the missing rows

============================================================
"""

from unittest.mock import patch

import pytest

from core.exceptions import RecordingError
from indexer.recorder import MeasurementRecorder
from rpc_health.models import ProbeError, ProbeResult, ProbeTarget
from storage.models.measurements import MeasurementHeader
from storage.repositories.exceptions import ConnectionError, TransactionError
from storage.repositories.measurements import MeasurementRepository
from storage.repositories.registry import ValidatorRepository


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def validators(database, network_id):
    with database.session_scope() as session:
        repo = ValidatorRepository(session)
        repo.insert_many(network_id, [f"0xV{i}" for i in range(1, 6)])
        return repo.list_all(network_id)


@pytest.fixture
def results(validators):
    """Five results: V2 timed out, V4 has no endpoint."""
    out = []
    for v in validators:
        t = ProbeTarget(
            validator_id=v.id,
            address=v.address,
            rpc_url=None if v.address == "0xV4" else f"http://{v.address}:8545",
        )
        if v.address == "0xV2":
            out.append(ProbeResult.down(t, ProbeError.TIMEOUT, status_code=408))
        elif v.address == "0xV4":
            out.append(ProbeResult.down(t, ProbeError.NO_ENDPOINT))
        else:
            out.append(
                ProbeResult(
                    validator_id=t.validator_id,
                    address=t.address,
                    rpc_url=t.rpc_url,
                    up=True,
                    block_number=4242,
                    status_code=200,
                    response_time_ms=35,
                )
            )
    return out


@pytest.fixture
def recorder(database, clock):
    return MeasurementRecorder(database, clock)


# ============================================================
# TESTS
# ============================================================

class TestMeasurementRecorder:
    """Tests for MeasurementRecorder.record."""

    def test_five_targets_two_down(self, recorder, database, network_id, results, clock):
        recorded = recorder.record(network_id, "run-1", results)

        assert recorded.result_count == 5
        assert recorded.down_count == 2
        assert recorded.snapshot_count == 4
        assert recorded.executed_at == clock.now()

        with database.session_scope() as session:
            repo = MeasurementRepository(session)
            headers = session.query(MeasurementHeader).all()
            rows = repo.list_results(recorded.header_id)
            snapshots = repo.list_snapshots(recorded.header_id)

        assert len(headers) == 1
        assert len(rows) == 5
        assert sum(1 for r in rows if not r.up) == 2
        assert len(snapshots) == 4
        down = [r for r in rows if not r.up]
        assert all(r.block_number is None and r.response_time_ms is None for r in down)
        assert sorted(r.status_code for r in down if r.status_code) == [408]

    def test_header_failure_writes_nothing(self, recorder, database, network_id, results):
        error = ConnectionError(
            repository_name="MeasurementRepository",
            operation="insert_header",
            original_error="database is locked",
        )

        with patch.object(MeasurementRepository, "insert_header", side_effect=error):
            with pytest.raises(ConnectionError):
                recorder.record(network_id, "run-1", results)

        with database.session_scope() as session:
            assert session.query(MeasurementHeader).count() == 0

    def test_result_failure_keeps_header(self, recorder, database, network_id, results):
        error = TransactionError(
            repository_name="MeasurementRepository",
            operation="insert_results",
            phase="commit",
            original_error="disk I/O error",
        )

        with patch.object(MeasurementRepository, "insert_results", side_effect=error):
            with pytest.raises(RecordingError) as exc_info:
                recorder.record(network_id, "run-1", results)

        assert exc_info.value.run_id == "run-1"
        assert exc_info.value.header_id is not None

        with database.session_scope() as session:
            repo = MeasurementRepository(session)
            header = repo.get_header_by_run_id("run-1")
            assert header.id == exc_info.value.header_id
            assert repo.count_results(header.id) == 0

    def test_same_run_id_reuses_header(self, recorder, database, network_id, results):
        first = recorder.record(network_id, "run-1", results[:2])

        with database.session_scope() as session:
            header = MeasurementRepository(session).insert_header(
                network_id, "run-1", first.executed_at
            )

        assert header.id == first.header_id

    def test_recording_same_run_twice_is_a_no_op(self, recorder, database, network_id, results):
        first = recorder.record(network_id, "run-1", results)

        again = recorder.record(network_id, "run-1", results)

        assert again.header_id == first.header_id
        assert again.result_count == 5
        assert again.snapshot_count == 4
        with database.session_scope() as session:
            repo = MeasurementRepository(session)
            assert session.query(MeasurementHeader).count() == 1
            assert repo.count_results(first.header_id) == 5
            assert len(repo.list_snapshots(first.header_id)) == 4

    def test_replay_completes_incomplete_run(self, recorder, database, network_id, results):
        error = TransactionError(
            repository_name="MeasurementRepository",
            operation="insert_results",
            phase="commit",
            original_error="disk I/O error",
        )
        with patch.object(MeasurementRepository, "insert_results", side_effect=error):
            with pytest.raises(RecordingError):
                recorder.record(network_id, "run-1", results)

        recorded = recorder.record(network_id, "run-1", results)

        with database.session_scope() as session:
            repo = MeasurementRepository(session)
            assert repo.count_results(recorded.header_id) == 5
            assert len(repo.list_snapshots(recorded.header_id)) == 4

    def test_replay_writes_only_missing_results(self, recorder, database, network_id, results):
        first = recorder.record(network_id, "run-1", results[:2])

        recorder.record(network_id, "run-1", results)

        with database.session_scope() as session:
            stored = MeasurementRepository(session).list_results(first.header_id)
        assert sorted(r.validator_id for r in stored) == sorted(r.validator_id for r in results)

    def test_empty_run_stores_header_only(self, recorder, database, network_id):
        recorded = recorder.record(network_id, "run-empty", [])

        assert recorded.result_count == 0
        with database.session_scope() as session:
            assert MeasurementRepository(session).count_results(recorded.header_id) == 0
