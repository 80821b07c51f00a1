"""
Chain Oracle Exceptions.

Chain reads are transient-upstream failures: the reconciler skips
the affected entity, the cycle driver retries on the next tick.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class ChainOracleError(Exception):
    """Base exception for all chain oracle errors."""

    def __init__(
        self,
        message: str,
        oracle_name: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.oracle_name = oracle_name
        self.operation = operation
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "oracle_name": self.oracle_name,
            "operation": self.operation,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.oracle_name:
            parts.append(f"[oracle={self.oracle_name}]")
        if self.operation:
            parts.append(f"[op={self.operation}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ChainReadError(ChainOracleError):
    """A read against the chain failed after retries."""
    pass


class ChainNotReadyError(ChainOracleError):
    """The chain has not reached the configured minimum height yet."""

    def __init__(
        self,
        current_height: int,
        min_height: int,
        oracle_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Chain height {current_height} below required {min_height}",
            oracle_name=oracle_name,
            operation="wait_for_chain_ready",
            context={"current_height": current_height, "min_height": min_height},
        )
        self.current_height = current_height
        self.min_height = min_height
