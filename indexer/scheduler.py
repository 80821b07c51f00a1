"""
Indexer - Cycle Driver.

============================================================
RESPONSIBILITY
============================================================
Runs the indexer as a long-lived process.

    WAIT_FOR_CHAIN_READY (startup only)
        -> RECONCILE -> PROBE -> RECORD -> SLEEP -> RECONCILE ...

- Startup failures (configuration, storage) are fatal
- A failing cycle is logged; the loop always proceeds to SLEEP
- SLEEP ends on the next wall-clock multiple of the interval, so
  cycle starts stay aligned however long a cycle took
- SIGINT / SIGTERM end the loop at the next await point

============================================================
"""

import asyncio
import json
import logging
import signal
import sys
import time
import uuid
from typing import Optional

from chain_oracle.base import BaseChainOracle
from chain_oracle.celo import CeloChainOracle
from chain_oracle.exceptions import ChainReadError
from chain_oracle.fallback import FallbackChainOracle
from core.clock import ClockProtocol, SystemClock
from core.exceptions import ConfigurationError, CycleError, StartupError
from indexer.config import IndexerConfig
from indexer.models import CycleResult, CycleState
from indexer.reconciler import RegistryReconciler
from indexer.recorder import MeasurementRecorder
from rpc_health.prober import HealthProber
from storage.database import Database, DatabaseConnectionError
from storage.repositories.exceptions import RepositoryException
from storage.repositories.registry import NetworkRepository


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING SETUP
# ============================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Set up process-wide logging.

    Args:
        level: Log level name
        log_format: Output format (json or text)

    Returns:
        The indexer logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # web3 logs every request at DEBUG
    logging.getLogger("web3").setLevel(max(log_level, logging.INFO))

    return logging.getLogger("indexer")


# ============================================================
# CYCLE DRIVER
# ============================================================

class CycleDriver:
    """
    Drives reconcile / probe / record cycles on an aligned interval.

    Usage:
        driver = create_driver(config)
        await driver.run_forever()
    """

    def __init__(
        self,
        config: IndexerConfig,
        database: Database,
        oracle: BaseChainOracle,
        prober: HealthProber,
        clock: Optional[ClockProtocol] = None,
        reconciler: Optional[RegistryReconciler] = None,
        recorder: Optional[MeasurementRecorder] = None,
    ) -> None:
        self._config = config
        self._database = database
        self._oracle = oracle
        self._prober = prober
        self._clock = clock or SystemClock()
        self._reconciler = reconciler or RegistryReconciler(database, oracle)
        self._recorder = recorder or MeasurementRecorder(database, self._clock)

        self._network_id: Optional[int] = None
        self._state = CycleState.STOPPED
        self._stop_event = asyncio.Event()
        self._signals_installed = False
        self._last_result: Optional[CycleResult] = None
        self._cycle_count = 0

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def network_id(self) -> Optional[int]:
        return self._network_id

    @property
    def database(self) -> Database:
        return self._database

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def last_result(self) -> Optional[CycleResult]:
        return self._last_result

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start(self) -> int:
        """
        Validate configuration and storage, then resolve the network.

        Returns:
            The network id

        Raises:
            ConfigurationError: Invalid configuration
            StartupError: Storage unreachable or network row unavailable
        """
        logger.info("=== INDEXER STARTUP ===")
        self._config.validate_or_raise()

        try:
            self._database.verify_connection()
        except DatabaseConnectionError as e:
            raise StartupError(str(e), stage="verify_database", cause=e) from e

        try:
            with self._database.session_scope() as session:
                network = NetworkRepository(session).get_or_create(self._config.network_name)
                self._network_id = network.id
        except RepositoryException as e:
            raise StartupError(
                f"Cannot resolve network {self._config.network_name!r}: {e}",
                stage="resolve_network",
                cause=e,
            ) from e

        logger.info(
            f"Network {self._config.network_name} (id={self._network_id}) | "
            f"oracle={self._oracle.name} interval={self._config.cycle_interval_seconds}s "
            f"min_height={self._config.min_chain_height}"
        )
        return self._network_id

    def stop(self) -> None:
        """Request the loop to end at the next await point."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()

    async def close(self) -> None:
        """Release the oracle connection and the database pool."""
        await self._oracle.close()
        self._database.dispose()

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; return True if a stop was requested meanwhile."""
        if seconds <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    # --------------------------------------------------------
    # WAIT_FOR_CHAIN_READY
    # --------------------------------------------------------

    async def wait_for_chain_ready(self) -> Optional[int]:
        """
        Block until the chain reaches min_chain_height.

        Returns:
            The height that satisfied the condition, or None if a stop
            was requested while waiting
        """
        self._state = CycleState.WAIT_FOR_CHAIN_READY
        min_height = self._config.min_chain_height
        attempt = 0

        while not self.stop_requested:
            try:
                height = await self._oracle.get_current_height()
            except ChainReadError as e:
                logger.warning(f"Cannot read chain height: {e}")
            else:
                if height >= min_height:
                    logger.info(f"Chain ready at height {height} (min {min_height})")
                    return height
                logger.info(f"Chain at height {height}, waiting for {min_height}")

            delay = min(
                self._config.chain_ready_poll_seconds * self._config.chain_ready_backoff_base ** attempt,
                self._config.chain_ready_max_poll_seconds,
            )
            attempt += 1
            if await self._wait(delay):
                break

        return None

    # --------------------------------------------------------
    # Cycle
    # --------------------------------------------------------

    async def run_cycle(self) -> CycleResult:
        """
        Run one RECONCILE -> PROBE -> RECORD pass.

        Never raises for cycle failures; the failing state and error
        are reported in the returned CycleResult.
        """
        if self._network_id is None:
            raise StartupError("run_cycle() called before start()", stage="run_cycle")

        run_id = uuid.uuid4().hex
        result = CycleResult(run_id=run_id, started_at=self._clock.now())
        t0 = time.perf_counter()
        logger.info(f"--- Cycle {run_id} started ---")

        try:
            self._state = CycleState.RECONCILE
            result.reconcile = await self._reconciler.reconcile(self._network_id)

            self._state = CycleState.PROBE
            targets = await self._reconciler.resolve_probe_targets(self._network_id)
            result.target_count = len(targets)
            logger.info(f"Cycle {run_id}: probing {len(targets)} validators")

            if not targets:
                logger.info(f"Cycle {run_id}: no probe targets, nothing to record")
            else:
                executed_at = self._clock.now()
                results = await self._prober.probe(targets)

                self._state = CycleState.RECORD
                result.recorded = self._recorder.record(
                    self._network_id, run_id, results, executed_at=executed_at
                )

        except Exception as e:
            error = CycleError(
                f"Cycle failed in {self._state.value}: {e}",
                state=self._state.value,
                run_id=run_id,
                cause=e,
            )
            result.failed_state = self._state
            result.error = str(e)
            logger.error(error.to_log_format(), exc_info=True)

        result.finished_at = self._clock.now()
        self._last_result = result
        self._cycle_count += 1
        logger.info(
            f"--- Cycle {run_id} {'completed' if result.success else 'failed'} "
            f"in {time.perf_counter() - t0:.2f}s ---"
        )
        return result

    # --------------------------------------------------------
    # Main loop
    # --------------------------------------------------------

    async def run_once(self) -> Optional[CycleResult]:
        """Start, wait for the chain, run a single cycle."""
        if self._network_id is None:
            await self.start()
        if await self.wait_for_chain_ready() is None:
            return None
        result = await self.run_cycle()
        self._state = CycleState.STOPPED
        return result

    async def run_forever(self) -> None:
        """
        Run cycles until stopped.

        Raises:
            ConfigurationError, StartupError: From start()
        """
        if self._network_id is None:
            await self.start()

        self._install_signal_handlers()
        try:
            if await self.wait_for_chain_ready() is None:
                return

            logger.info(f"Starting main loop | interval={self._config.cycle_interval_seconds}s")

            while not self.stop_requested:
                try:
                    await self.run_cycle()
                except asyncio.CancelledError:
                    logger.info("Main loop cancelled")
                    break
                except (ConfigurationError, StartupError):
                    raise
                except Exception as e:
                    logger.error(f"Cycle error: {e}", exc_info=True)

                if self.stop_requested:
                    break

                self._state = CycleState.SLEEP
                delay = self._clock.time_until_next_boundary(
                    self._config.cycle_interval_seconds
                ).total_seconds()
                logger.debug(f"Waiting {delay:.1f}s until next cycle")
                if await self._wait(delay):
                    break
        finally:
            self._state = CycleState.STOPPED
            self._restore_signal_handlers()
            logger.info(f"=== INDEXER STOPPED after {self._cycle_count} cycles ===")

    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        if sys.platform == "win32":
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, lambda s=sig: self._on_signal(s))
            except (NotImplementedError, RuntimeError) as e:
                # Not on the main thread (e.g. under a test runner)
                logger.debug(f"Signal handler for {sig.name} not installed: {e}")
                return
        self._signals_installed = True

    def _restore_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        self._signals_installed = False

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.warning(f"Received {sig.name}, shutting down")
        self.stop()


# ============================================================
# FACTORY
# ============================================================

def create_driver(
    config: IndexerConfig,
    clock: Optional[ClockProtocol] = None,
) -> CycleDriver:
    """
    Build a CycleDriver and its collaborators from configuration.

    Reads go to NODE_URL; when EXTERNAL_NODE_URL is set, failed reads
    are retried there.
    """
    config.validate_or_raise()

    database = Database(config.database_url)

    primary = CeloChainOracle(
        config.node_url,
        timeout=config.chain_read_timeout_seconds,
        label="node",
    )
    secondary = None
    if config.external_node_url:
        secondary = CeloChainOracle(
            config.external_node_url,
            timeout=config.chain_read_timeout_seconds,
            label="external",
        )

    prober = HealthProber(
        timeout=config.probe_timeout_seconds,
        max_concurrency=config.probe_max_concurrency,
    )

    return CycleDriver(
        config=config,
        database=database,
        oracle=FallbackChainOracle(primary, secondary),
        prober=prober,
        clock=clock,
    )
