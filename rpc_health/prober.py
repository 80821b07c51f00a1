"""
RPC Health - Prober.

============================================================
RESPONSIBILITY
============================================================
Checks whether each validator's advertised RPC endpoint answers
a block-height query.

- One POST eth_blockNumber per endpoint, bounded by a timeout
- All probes of a cycle run concurrently
- A failing or hanging endpoint never affects the others
- Exactly one result per target, in input order

============================================================
STATUS CODES
============================================================
- HTTP status of the response when one was received
- 408 when the probe timed out
- 500 for any other transport failure
- None when the validator has no endpoint (no request made)

============================================================
"""

import asyncio
import logging
import time
from typing import Any, List, Optional, Sequence

import aiohttp

from rpc_health.models import ProbeError, ProbeResult, ProbeTarget


logger = logging.getLogger(__name__)


LIVENESS_PAYLOAD = {
    "jsonrpc": "2.0",
    "method": "eth_blockNumber",
    "params": [],
    "id": 1,
}

TIMEOUT_STATUS_CODE = 408
TRANSPORT_ERROR_STATUS_CODE = 500


def parse_block_height(body: Any) -> Optional[int]:
    """
    Extract the block height from a JSON-RPC response body.

    Returns:
        Non-negative height, or None if the body carries an error, no
        result, or a result that is not a hex integer
    """
    if not isinstance(body, dict) or body.get("error") or not body.get("result"):
        return None
    result = body["result"]
    if not isinstance(result, str):
        return None
    try:
        height = int(result, 16)
    except ValueError:
        return None
    return height if height >= 0 else None


class HealthProber:
    """
    Concurrent liveness prober.

    Usage:
        prober = HealthProber(timeout=5.0)
        results = await prober.probe(targets)
    """

    DEFAULT_TIMEOUT = 5.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_concurrency: Optional[int] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize the prober.

        Args:
            timeout: Per-probe timeout in seconds
            max_concurrency: Upper bound on in-flight probes (None = unbounded)
            session: Shared aiohttp session; one is created per probe()
                call when omitted
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self._timeout = timeout
        self._max_concurrency = max_concurrency
        self._session = session

    @property
    def timeout(self) -> float:
        return self._timeout

    async def probe(self, targets: Sequence[ProbeTarget]) -> List[ProbeResult]:
        """
        Probe every target concurrently.

        Args:
            targets: Validators to probe

        Returns:
            One ProbeResult per target, in the same order
        """
        if not targets:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()

        try:
            outcomes = await asyncio.gather(
                *(self._bounded_probe(session, target, semaphore) for target in targets),
                return_exceptions=True,
            )
        finally:
            if owns_session:
                await session.close()

        results: List[ProbeResult] = []
        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"Probe crashed | validator={target.address} error={outcome!r}"
                )
                outcome = ProbeResult.down(
                    target,
                    ProbeError.INTERNAL,
                    status_code=TRANSPORT_ERROR_STATUS_CODE,
                    detail=repr(outcome),
                )
            results.append(outcome)

        up_count = sum(1 for r in results if r.up)
        logger.info(f"Probed {len(results)} endpoints | up={up_count} down={len(results) - up_count}")
        return results

    async def _bounded_probe(
        self,
        session: aiohttp.ClientSession,
        target: ProbeTarget,
        semaphore: Optional[asyncio.Semaphore],
    ) -> ProbeResult:
        if semaphore is None:
            return await self.probe_one(session, target)
        async with semaphore:
            return await self.probe_one(session, target)

    async def probe_one(
        self,
        session: aiohttp.ClientSession,
        target: ProbeTarget,
    ) -> ProbeResult:
        """
        Probe a single target. Never raises for endpoint failures.

        Args:
            session: aiohttp session to issue the request on
            target: Validator to probe

        Returns:
            ProbeResult for the target
        """
        if not target.rpc_url:
            logger.debug(f"No endpoint configured | validator={target.address}")
            return ProbeResult.down(target, ProbeError.NO_ENDPOINT)

        started = time.perf_counter()
        try:
            async with session.post(
                target.rpc_url,
                json=LIVENESS_PAYLOAD,
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                status = response.status
                if not 200 <= status < 300:
                    logger.warning(f"[{target.rpc_url}] Health check failed with status: {status}")
                    return ProbeResult.down(target, ProbeError.HTTP_STATUS, status_code=status)

                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    logger.warning(f"[{target.rpc_url}] Response is not JSON: {e}")
                    return ProbeResult.down(
                        target, ProbeError.MALFORMED_RESPONSE, status_code=status, detail=str(e)
                    )

        except asyncio.TimeoutError:
            logger.warning(f"[{target.rpc_url}] Health check timed out after {self._timeout}s")
            return ProbeResult.down(target, ProbeError.TIMEOUT, status_code=TIMEOUT_STATUS_CODE)
        except (aiohttp.ClientError, OSError, ValueError) as e:
            logger.warning(f"[{target.rpc_url}] Health check failed: {e}")
            return ProbeResult.down(
                target,
                ProbeError.TRANSPORT,
                status_code=TRANSPORT_ERROR_STATUS_CODE,
                detail=str(e),
            )

        elapsed_ms = int(round((time.perf_counter() - started) * 1000))

        if isinstance(body, dict) and body.get("error"):
            logger.warning(f"[{target.rpc_url}] RPC error: {body['error']}")
            return ProbeResult.down(
                target, ProbeError.RPC_ERROR, status_code=status, detail=str(body["error"])
            )

        height = parse_block_height(body)
        if height is None:
            logger.warning(f"[{target.rpc_url}] Invalid block number in response")
            return ProbeResult.down(target, ProbeError.INVALID_HEIGHT, status_code=status)

        logger.debug(f"[{target.rpc_url}] Health check OK: block {height}, {elapsed_ms}ms")
        return ProbeResult(
            validator_id=target.validator_id,
            address=target.address,
            rpc_url=target.rpc_url,
            up=True,
            block_number=height,
            status_code=status,
            response_time_ms=elapsed_ms,
        )
