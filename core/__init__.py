"""
Core Module Package.

Shared infrastructure used by every other package.

Components:
- clock: Testable UTC clock and aligned-interval arithmetic
- exceptions: Indexer exception hierarchy
"""

from core.clock import ClockProtocol, MockClock, SystemClock, seconds_until_next_boundary
from core.exceptions import (
    ConfigurationError,
    CycleError,
    ErrorClassification,
    IndexerException,
    InvalidConfigError,
    MissingConfigError,
    RecordingError,
    Severity,
    StartupError,
)

__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "seconds_until_next_boundary",
    "ConfigurationError",
    "CycleError",
    "ErrorClassification",
    "IndexerException",
    "InvalidConfigError",
    "MissingConfigError",
    "RecordingError",
    "Severity",
    "StartupError",
]
