"""
In-memory chain oracle for tests.

State is plain dictionaries that tests mutate between calls. Any read
can be made to fail for a given argument through `fail`.
"""

from typing import Dict, List, Optional, Set, Tuple

from chain_oracle.base import BaseChainOracle
from chain_oracle.exceptions import ChainReadError
from chain_oracle.models import EntityKind, GroupRoster, MembershipEntry


class FakeChainOracle(BaseChainOracle):
    """Chain oracle backed by dictionaries."""

    def __init__(self, label: str = "fake") -> None:
        self._label = label
        self.height = 1000
        self.epoch_size = 100
        self.validators: List[str] = []
        self.groups: Dict[str, GroupRoster] = {}
        self.names: Dict[str, Optional[str]] = {}
        self.endpoints: Dict[str, Optional[str]] = {}
        self.memberships: Dict[str, List[MembershipEntry]] = {}
        self.signers: Dict[str, str] = {}
        self.live_set: List[str] = []
        self.failures: Set[Tuple[str, Optional[str]]] = set()
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._label

    # ---------------------------------------------------------
    # Test helpers
    # ---------------------------------------------------------

    def fail(self, method: str, arg: Optional[str] = None) -> None:
        """Make `method` raise ChainReadError (for `arg`, or for every call)."""
        self.failures.add((method, arg))

    def heal(self) -> None:
        self.failures.clear()

    def add_group(self, address: str, name: Optional[str], members: List[str]) -> None:
        self.groups[address] = GroupRoster(address=address, name=name, members=tuple(members))

    def add_validator(
        self,
        address: str,
        name: Optional[str] = None,
        rpc_url: Optional[str] = None,
        signer: Optional[str] = None,
    ) -> None:
        self.validators.append(address)
        self.names[address] = name
        self.endpoints[address] = rpc_url
        if signer:
            self.signers[signer] = address

    def _read(self, method: str, arg: Optional[str] = None) -> None:
        self.calls.append((method, arg))
        if (method, None) in self.failures or (method, arg) in self.failures:
            raise ChainReadError(f"{method} failed", oracle_name=self._label, operation=method)

    # ---------------------------------------------------------
    # BaseChainOracle
    # ---------------------------------------------------------

    async def get_registered_addresses(self, kind: EntityKind) -> List[str]:
        self._read("get_registered_addresses", kind.value)
        if kind == EntityKind.GROUP:
            return list(self.groups)
        return list(self.validators)

    async def get_current_height(self) -> int:
        self._read("get_current_height")
        return self.height

    async def get_current_epoch(self, height: int) -> int:
        self._read("get_current_epoch")
        return height // self.epoch_size + 1

    async def get_display_name(self, address: str, at_height: Optional[int] = None) -> Optional[str]:
        self._read("get_display_name", address)
        return self.names.get(address)

    async def get_group_roster(self, group_address: str, include_members: bool = True) -> GroupRoster:
        self._read("get_group_roster", group_address)
        roster = self.groups[group_address]
        if include_members:
            return roster
        return GroupRoster(address=roster.address, name=roster.name, members=())

    async def get_membership_history(self, address: str) -> List[MembershipEntry]:
        self._read("get_membership_history", address)
        return sorted(self.memberships.get(address, []), key=lambda m: m.epoch)

    async def signer_to_entity(self, signer_address: str) -> str:
        self._read("signer_to_entity", signer_address)
        return self.signers[signer_address]

    async def get_current_live_set(self) -> List[str]:
        self._read("get_current_live_set")
        return list(self.live_set)

    async def get_endpoint_url(self, address: str) -> Optional[str]:
        self._read("get_endpoint_url", address)
        return self.endpoints.get(address)

    async def close(self) -> None:
        self.closed = True
