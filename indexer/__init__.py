"""
Indexer Package.

The long-running process: reconciles the validator registry with the
chain, probes the live set's RPC endpoints and records each run.

Components:
- config: IndexerConfig (environment, .env, YAML)
- reconciler: RegistryReconciler
- recorder: MeasurementRecorder
- scheduler: CycleDriver, setup_logging, create_driver
- cli: command-line entry point
"""

from indexer.config import IndexerConfig
from indexer.models import CycleResult, CycleState, EntityError, ReconcileSummary, RecordedRun
from indexer.reconciler import RegistryReconciler
from indexer.recorder import MeasurementRecorder
from indexer.scheduler import CycleDriver, create_driver, setup_logging

__all__ = [
    "IndexerConfig",
    "CycleResult",
    "CycleState",
    "EntityError",
    "ReconcileSummary",
    "RecordedRun",
    "RegistryReconciler",
    "MeasurementRecorder",
    "CycleDriver",
    "create_driver",
    "setup_logging",
]
