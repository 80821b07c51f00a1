"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the indexer-level exceptions.

- Provides a small exception hierarchy for the cycle driver
- Separates fatal startup errors from per-cycle errors
- Carries context for structured logging

Storage and chain-read failures have their own families in
storage.repositories.exceptions and chain_oracle.exceptions.

============================================================
EXCEPTION HIERARCHY
============================================================
IndexerException (base)
├── ConfigurationError
│   ├── MissingConfigError
│   └── InvalidConfigError
├── StartupError
├── CycleError
└── RecordingError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Handled locally, the cycle continues."""

    TRANSIENT = "transient"
    """Aborts the current cycle, the next cycle may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Process must not enter (or must leave) the main loop."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class IndexerException(Exception):
    """
    Base exception for all indexer errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - classification: whether the main loop may continue
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(IndexerException):
    """Error in configuration. Fatal at startup."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    def __init__(self, key: str, source: str = "environment"):
        super().__init__(
            message=f"Missing required configuration: {key}",
            config_key=key,
            context={"source": source},
        )


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )


# ============================================================
# LIFECYCLE ERRORS
# ============================================================

class StartupError(IndexerException):
    """Startup failed: storage unreachable, network row unavailable, etc."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, message: str, stage: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if stage:
            context["stage"] = stage
        super().__init__(message, context=context, **kwargs)


class CycleError(IndexerException):
    """A cycle was aborted. The loop logs it and sleeps until the next tick."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        state: Optional[str] = None,
        run_id: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if state:
            context["state"] = state
        if run_id:
            context["run_id"] = run_id
        super().__init__(message, context=context, **kwargs)
        self.state = state
        self.run_id = run_id


class RecordingError(IndexerException):
    """
    Results could not be stored after the run header was committed.

    The header row remains; readers treat the run as incomplete.
    """

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        run_id: str,
        header_id: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["run_id"] = run_id
        if header_id is not None:
            context["header_id"] = header_id
        super().__init__(message, context=context, **kwargs)
        self.run_id = run_id
        self.header_id = header_id
