"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access goes through these classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. Session Injection: sessions are injected, never created here
2. Explicit Methods: one named method per query
3. Append-only history: temporal facts are closed, never deleted
4. Exception Handling: all DB errors wrapped in repository exceptions

============================================================
REPOSITORY GROUPS
============================================================
REGISTRY
- NetworkRepository, ValidatorRepository, ValidatorGroupRepository

HISTORY
- TemporalRecordStore (VALIDATOR_NAME, GROUP_MEMBERSHIP kinds)

TELEMETRY
- MeasurementRepository

QUERIES
- ProjectionRepository

============================================================
"""

from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
    StorageUnavailableError,
    TransactionError,
    ValidationError,
)
from storage.repositories.base import BaseRepository
from storage.repositories.registry import (
    NetworkRepository,
    ValidatorGroupRepository,
    ValidatorRepository,
)
from storage.repositories.temporal import (
    GROUP_MEMBERSHIP,
    VALIDATOR_NAME,
    FactKind,
    TemporalFact,
    TemporalRecordStore,
    membership_store,
    name_store,
)
from storage.repositories.measurements import MeasurementRepository
from storage.repositories.projections import (
    MAX_EXPORT_SPAN,
    MAX_MEASUREMENT_SPAN,
    ExportRow,
    ProjectionRepository,
    ResultView,
    RosterEntry,
    RunView,
    normalize_time_range,
)

__all__ = [
    "ConnectionError",
    "DuplicateRecordError",
    "IntegrityError",
    "QueryError",
    "RepositoryException",
    "StorageUnavailableError",
    "TransactionError",
    "ValidationError",
    "BaseRepository",
    "NetworkRepository",
    "ValidatorGroupRepository",
    "ValidatorRepository",
    "GROUP_MEMBERSHIP",
    "VALIDATOR_NAME",
    "FactKind",
    "TemporalFact",
    "TemporalRecordStore",
    "membership_store",
    "name_store",
    "MeasurementRepository",
    "MAX_EXPORT_SPAN",
    "MAX_MEASUREMENT_SPAN",
    "ExportRow",
    "ProjectionRepository",
    "ResultView",
    "RosterEntry",
    "RunView",
    "normalize_time_range",
]
