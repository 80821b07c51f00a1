"""
RPC Health Package.

Concurrent liveness probing of validator RPC endpoints.
"""

from rpc_health.models import ProbeError, ProbeResult, ProbeTarget
from rpc_health.prober import (
    LIVENESS_PAYLOAD,
    TIMEOUT_STATUS_CODE,
    TRANSPORT_ERROR_STATUS_CODE,
    HealthProber,
    parse_block_height,
)

__all__ = [
    "ProbeError",
    "ProbeResult",
    "ProbeTarget",
    "LIVENESS_PAYLOAD",
    "TIMEOUT_STATUS_CODE",
    "TRANSPORT_ERROR_STATUS_CODE",
    "HealthProber",
    "parse_block_height",
]
