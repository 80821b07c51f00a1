"""
Base Chain Oracle - Abstract read-only interface to on-chain registry state.

The indexer never talks to a node directly; it consumes this interface.
Implementations MUST:
- Be read-only
- Raise ChainReadError (never a client-library error) when a read fails
- Return plain values / chain_oracle.models objects
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, TypeVar

from chain_oracle.exceptions import ChainReadError
from chain_oracle.models import EntityKind, GroupRoster, MembershipEntry


logger = logging.getLogger(__name__)

R = TypeVar("R")


class BaseChainOracle(ABC):
    """
    Abstract base class for chain oracles.

    Features:
    - Bounded retry with exponential backoff around every read
    - Async context manager support for resource cleanup
    """

    MAX_RETRIES = 2
    RETRY_BACKOFF_BASE = 1.5

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs and errors."""
        pass

    # =========================================================
    # READ INTERFACE
    # =========================================================

    @abstractmethod
    async def get_registered_addresses(self, kind: EntityKind) -> List[str]:
        """Get every registered validator or group address."""
        pass

    @abstractmethod
    async def get_current_height(self) -> int:
        """Get the latest block height."""
        pass

    @abstractmethod
    async def get_current_epoch(self, height: int) -> int:
        """Get the epoch number containing `height`."""
        pass

    @abstractmethod
    async def get_display_name(self, address: str, at_height: Optional[int] = None) -> Optional[str]:
        """
        Get an account's display name.

        Args:
            address: Account address
            at_height: Block to read at (latest when None)

        Returns:
            The name, or None if the account has not set one
        """
        pass

    @abstractmethod
    async def get_group_roster(self, group_address: str, include_members: bool = True) -> GroupRoster:
        """Get a group's display name and, optionally, its member addresses."""
        pass

    @abstractmethod
    async def get_membership_history(self, address: str) -> List[MembershipEntry]:
        """Get a validator's on-chain membership history, oldest epoch first."""
        pass

    @abstractmethod
    async def signer_to_entity(self, signer_address: str) -> str:
        """Map a signer address to the account it signs for."""
        pass

    @abstractmethod
    async def get_current_live_set(self) -> List[str]:
        """Get the signer addresses of the currently elected set."""
        pass

    @abstractmethod
    async def get_endpoint_url(self, address: str) -> Optional[str]:
        """Get the RPC endpoint URL advertised in the account metadata."""
        pass

    # =========================================================
    # LIFECYCLE
    # =========================================================

    async def close(self) -> None:
        """Release network resources."""
        pass

    async def __aenter__(self) -> "BaseChainOracle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================
    # HELPERS
    # =========================================================

    async def _read_with_retry(
        self,
        operation: str,
        read: Callable[[], Awaitable[R]],
    ) -> R:
        """
        Run a read, retrying with exponential backoff.

        Args:
            operation: Name used in logs and errors
            read: Zero-argument coroutine factory performing the read

        Returns:
            The read result

        Raises:
            ChainReadError: After the last attempt fails
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES + 1):
            try:
                return await read()
            except asyncio.CancelledError:
                raise
            except ChainReadError:
                raise
            except Exception as e:
                last_error = e
                if attempt < self.MAX_RETRIES:
                    wait_time = self.RETRY_BACKOFF_BASE ** attempt
                    logger.debug(
                        f"[{self.name}] {operation} failed, retrying in {wait_time:.1f}s: {e}"
                    )
                    await asyncio.sleep(wait_time)

        raise ChainReadError(
            f"{operation} failed after {self.MAX_RETRIES + 1} attempts",
            oracle_name=self.name,
            operation=operation,
            original_error=last_error,
        )
