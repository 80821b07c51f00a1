"""
Fallback Chain Oracle - Retries failed reads against a secondary node.

The indexer normally reads from its own node (NODE_URL). When a read
fails there it is repeated once against an external node
(EXTERNAL_NODE_URL) before the failure is reported.
"""

import logging
from typing import Any, List, Optional

from chain_oracle.base import BaseChainOracle
from chain_oracle.exceptions import ChainReadError
from chain_oracle.models import EntityKind, GroupRoster, MembershipEntry


logger = logging.getLogger(__name__)


class FallbackChainOracle(BaseChainOracle):
    """Delegates every read to `primary`, then to `secondary` on ChainReadError."""

    def __init__(
        self,
        primary: BaseChainOracle,
        secondary: Optional[BaseChainOracle] = None,
    ) -> None:
        self._primary = primary
        self._secondary = secondary

    @property
    def name(self) -> str:
        if self._secondary is None:
            return self._primary.name
        return f"{self._primary.name}+{self._secondary.name}"

    async def _delegate(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self._primary, method)(*args, **kwargs)
        except ChainReadError as e:
            if self._secondary is None:
                raise
            logger.warning(
                f"[{self._primary.name}] {method} failed, falling back to "
                f"{self._secondary.name}: {e}"
            )
            return await getattr(self._secondary, method)(*args, **kwargs)

    async def get_registered_addresses(self, kind: EntityKind) -> List[str]:
        return await self._delegate("get_registered_addresses", kind)

    async def get_current_height(self) -> int:
        return await self._delegate("get_current_height")

    async def get_current_epoch(self, height: int) -> int:
        return await self._delegate("get_current_epoch", height)

    async def get_display_name(self, address: str, at_height: Optional[int] = None) -> Optional[str]:
        return await self._delegate("get_display_name", address, at_height)

    async def get_group_roster(self, group_address: str, include_members: bool = True) -> GroupRoster:
        return await self._delegate("get_group_roster", group_address, include_members)

    async def get_membership_history(self, address: str) -> List[MembershipEntry]:
        return await self._delegate("get_membership_history", address)

    async def signer_to_entity(self, signer_address: str) -> str:
        return await self._delegate("signer_to_entity", signer_address)

    async def get_current_live_set(self) -> List[str]:
        return await self._delegate("get_current_live_set")

    async def get_endpoint_url(self, address: str) -> Optional[str]:
        return await self._delegate("get_endpoint_url", address)

    async def close(self) -> None:
        await self._primary.close()
        if self._secondary is not None:
            await self._secondary.close()
