"""
RPC Health - Models.

Input and output shapes of the health prober.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ProbeError(str, Enum):
    """Why a probe reported the endpoint down."""

    NO_ENDPOINT = "no_endpoint"
    TIMEOUT = "timeout"
    TRANSPORT = "transport_error"
    HTTP_STATUS = "http_status"
    MALFORMED_RESPONSE = "malformed_response"
    RPC_ERROR = "rpc_error"
    INVALID_HEIGHT = "invalid_height"
    INTERNAL = "internal_error"


@dataclass(frozen=True)
class ProbeTarget:
    """A validator whose current endpoint should be probed."""

    validator_id: int
    address: str
    rpc_url: Optional[str]


@dataclass(frozen=True)
class ProbeResult:
    """
    Outcome of one liveness probe.

    Down results never carry a block number or a latency. status_code
    is None only when no request was issued.
    """

    validator_id: int
    address: str
    rpc_url: Optional[str]
    up: bool
    block_number: Optional[int] = None
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    error: Optional[ProbeError] = None
    detail: Optional[str] = None

    @classmethod
    def down(
        cls,
        target: ProbeTarget,
        error: ProbeError,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> "ProbeResult":
        return cls(
            validator_id=target.validator_id,
            address=target.address,
            rpc_url=target.rpc_url,
            up=False,
            status_code=status_code,
            error=error,
            detail=detail,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validator_id": self.validator_id,
            "address": self.address,
            "rpc_url": self.rpc_url,
            "up": self.up,
            "block_number": self.block_number,
            "status_code": self.status_code,
            "response_time_ms": self.response_time_ms,
            "error": self.error.value if self.error else None,
            "detail": self.detail,
        }
