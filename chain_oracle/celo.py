"""
Celo Chain Oracle - Reads validator registry state from a Celo node.

Contract addresses are resolved through the Celo Registry contract
on first use and cached for the lifetime of the oracle.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp
from web3 import AsyncWeb3

from chain_oracle.abi import CELO_REGISTRY_ADDRESS, CONTRACT_ABIS, REGISTRY_ABI
from chain_oracle.base import BaseChainOracle
from chain_oracle.exceptions import ChainReadError
from chain_oracle.models import EntityKind, GroupRoster, MembershipEntry


logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class CeloChainOracle(BaseChainOracle):
    """
    Chain oracle backed by a Celo JSON-RPC node.

    Usage:
        async with CeloChainOracle("https://forno.celo.org") as oracle:
            height = await oracle.get_current_height()
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        node_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        registry_address: str = CELO_REGISTRY_ADDRESS,
        label: str = "celo",
        w3: Optional[AsyncWeb3] = None,
    ) -> None:
        """
        Initialize the oracle.

        Args:
            node_url: HTTP JSON-RPC endpoint of a Celo node
            timeout: Per-request timeout in seconds
            registry_address: Address of the Registry contract
            label: Name used in logs (e.g. primary / external)
            w3: Pre-built AsyncWeb3 instance (tests)
        """
        self._node_url = node_url
        self._label = label
        self._w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                node_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)},
            )
        )
        self._registry = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(registry_address),
            abi=REGISTRY_ABI,
        )
        self._contracts: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._label

    @property
    def node_url(self) -> str:
        return self._node_url

    # ---------------------------------------------------------
    # Contract resolution
    # ---------------------------------------------------------

    async def _contract(self, contract_name: str) -> Any:
        contract = self._contracts.get(contract_name)
        if contract is not None:
            return contract

        async def resolve() -> Any:
            return await self._registry.functions.getAddressForStringOrDie(contract_name).call()

        address = await self._read_with_retry(f"resolve_{contract_name}", resolve)
        if address == ZERO_ADDRESS:
            raise ChainReadError(
                f"{contract_name} is not registered",
                oracle_name=self.name,
                operation=f"resolve_{contract_name}",
            )

        contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=CONTRACT_ABIS[contract_name],
        )
        self._contracts[contract_name] = contract
        logger.debug(f"[{self.name}] Resolved {contract_name} at {address}")
        return contract

    async def _call(
        self,
        contract_name: str,
        function_name: str,
        *args: Any,
        block_identifier: Any = "latest",
    ) -> Any:
        contract = await self._contract(contract_name)
        function = getattr(contract.functions, function_name)

        async def read() -> Any:
            return await function(*args).call(block_identifier=block_identifier)

        return await self._read_with_retry(f"{contract_name}.{function_name}", read)

    @staticmethod
    def _checksum(address: str) -> str:
        return AsyncWeb3.to_checksum_address(address)

    # ---------------------------------------------------------
    # Read interface
    # ---------------------------------------------------------

    async def get_registered_addresses(self, kind: EntityKind) -> List[str]:
        function_name = (
            "getRegisteredValidatorGroups" if kind == EntityKind.GROUP
            else "getRegisteredValidators"
        )
        addresses = await self._call("Validators", function_name)
        return [self._checksum(a) for a in addresses]

    async def get_current_height(self) -> int:
        async def read() -> int:
            return await self._w3.eth.block_number

        return int(await self._read_with_retry("block_number", read))

    async def get_current_epoch(self, height: int) -> int:
        return int(await self._call("Validators", "getEpochNumberOfBlock", height))

    async def get_display_name(self, address: str, at_height: Optional[int] = None) -> Optional[str]:
        block = at_height if at_height is not None else "latest"
        name = await self._call(
            "Accounts", "getName", self._checksum(address), block_identifier=block
        )
        return name or None

    async def get_group_roster(self, group_address: str, include_members: bool = True) -> GroupRoster:
        address = self._checksum(group_address)
        name = await self._call("Accounts", "getName", address)
        members: tuple = ()
        if include_members:
            group = await self._call("Validators", "getValidatorGroup", address)
            members = tuple(self._checksum(m) for m in group[0])
        return GroupRoster(address=address, name=name or None, members=members)

    async def get_membership_history(self, address: str) -> List[MembershipEntry]:
        epochs, groups, _, _ = await self._call(
            "Validators", "getMembershipHistory", self._checksum(address)
        )
        entries = [
            MembershipEntry(epoch=int(epoch), group_address=self._checksum(group))
            for epoch, group in zip(epochs, groups)
        ]
        return sorted(entries, key=lambda e: e.epoch)

    async def signer_to_entity(self, signer_address: str) -> str:
        account = await self._call("Accounts", "signerToAccount", self._checksum(signer_address))
        return self._checksum(account)

    async def get_current_live_set(self) -> List[str]:
        signers = await self._call("Election", "getCurrentValidatorSigners")
        return [self._checksum(s) for s in signers]

    async def get_endpoint_url(self, address: str) -> Optional[str]:
        url = await self._call("Accounts", "getMetadataURL", self._checksum(address))
        url = (url or "").strip()
        return url or None

    async def close(self) -> None:
        provider = self._w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
