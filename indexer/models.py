"""
Indexer - Models.

============================================================
RESPONSIBILITY
============================================================
Data structures shared by the reconciler, recorder and cycle
driver: cycle states, per-entity error markers, and the summaries
each step returns.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# CYCLE STATES
# ============================================================

class CycleState(Enum):
    """States of the cycle driver."""

    WAIT_FOR_CHAIN_READY = "wait_for_chain_ready"
    """Startup only: block until the chain reaches the minimum height."""

    RECONCILE = "reconcile"
    """Sync roster and history with the chain."""

    PROBE = "probe"
    """Liveness-check the live set's endpoints."""

    RECORD = "record"
    """Store the run."""

    SLEEP = "sleep"
    """Wait for the next aligned interval boundary."""

    STOPPED = "stopped"


# ============================================================
# RECONCILIATION
# ============================================================

@dataclass(frozen=True)
class EntityError:
    """A per-entity failure that was logged and skipped."""

    address: str
    step: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "step": self.step, "error": self.error}


@dataclass
class ReconcileSummary:
    """What one reconciliation pass changed."""

    network_id: int
    height: int
    epoch: int
    groups_inserted: int = 0
    group_names_updated: int = 0
    validators_inserted: int = 0
    names_recorded: int = 0
    memberships_recorded: int = 0
    endpoints_updated: int = 0
    errors: List[EntityError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def add_error(self, address: str, step: str, error: Exception) -> None:
        self.errors.append(EntityError(address=address, step=step, error=str(error)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network_id": self.network_id,
            "height": self.height,
            "epoch": self.epoch,
            "groups_inserted": self.groups_inserted,
            "group_names_updated": self.group_names_updated,
            "validators_inserted": self.validators_inserted,
            "names_recorded": self.names_recorded,
            "memberships_recorded": self.memberships_recorded,
            "endpoints_updated": self.endpoints_updated,
            "errors": [e.to_dict() for e in self.errors],
        }


# ============================================================
# RECORDING
# ============================================================

@dataclass(frozen=True)
class RecordedRun:
    """A run whose header and result rows were committed."""

    run_id: str
    header_id: int
    executed_at: datetime
    result_count: int
    down_count: int
    snapshot_count: int


# ============================================================
# CYCLE RESULT
# ============================================================

@dataclass
class CycleResult:
    """Outcome of one RECONCILE -> PROBE -> RECORD pass."""

    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    reconcile: Optional[ReconcileSummary] = None
    target_count: int = 0
    recorded: Optional[RecordedRun] = None
    failed_state: Optional[CycleState] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "reconcile": self.reconcile.to_dict() if self.reconcile else None,
            "duration_seconds": self.duration_seconds,
            "target_count": self.target_count,
            "recorded": self.recorded is not None,
            "failed_state": self.failed_state.value if self.failed_state else None,
            "error": self.error,
        }
