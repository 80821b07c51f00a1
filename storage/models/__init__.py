"""
Storage Models Package.

ORM models for the indexer database, organized by domain.

- registry.py: Network, Validator, ValidatorGroup
- history.py: ValidatorName, ValidatorGroupMembership
- measurements.py: MeasurementHeader, Measurement, EndpointSnapshot

Importing this package registers every table on Base.metadata.
"""

from storage.models.base import Base, IdType, TimestampMixin
from storage.models.registry import Network, Validator, ValidatorGroup
from storage.models.history import (
    TemporalFactMixin,
    ValidatorGroupMembership,
    ValidatorName,
)
from storage.models.measurements import (
    EndpointSnapshot,
    Measurement,
    MeasurementHeader,
)

__all__ = [
    "Base",
    "IdType",
    "TimestampMixin",
    "Network",
    "Validator",
    "ValidatorGroup",
    "TemporalFactMixin",
    "ValidatorGroupMembership",
    "ValidatorName",
    "EndpointSnapshot",
    "Measurement",
    "MeasurementHeader",
]
