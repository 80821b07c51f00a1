"""
Registry Repositories.

============================================================
PURPOSE
============================================================
Data access for the network partition and the validator /
validator group roster.

============================================================
REPOSITORIES
============================================================
- NetworkRepository: look up or create the network row
- ValidatorRepository: validator roster and current endpoint URL
- ValidatorGroupRepository: group roster and current display name

============================================================
"""

from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storage.models.registry import Network, Validator, ValidatorGroup
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import DuplicateRecordError


# =============================================================
# NETWORK
# =============================================================

class NetworkRepository(BaseRepository[Network]):
    """Repository for the networks table."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, Network, "NetworkRepository")

    def get_by_name(self, name: str) -> Optional[Network]:
        stmt = select(Network).where(Network.name == name)
        return self._execute_scalar(stmt)

    def get_or_create(self, name: str) -> Network:
        """
        Get the network row, creating it on first start.

        Two processes starting at once may both try to insert; the loser
        re-reads the winner's row.
        """
        network = self.get_by_name(name)
        if network is not None:
            return network

        try:
            network = self._add(Network(name=name), "get_or_create")
            self._commit("get_or_create")
        except DuplicateRecordError:
            network = self.get_by_name(name)
            if network is None:
                raise
            return network

        self._logger.info(f"Created network | name={name} id={network.id}")
        return network


# =============================================================
# VALIDATORS
# =============================================================

class ValidatorRepository(BaseRepository[Validator]):
    """Repository for the validators table."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, Validator, "ValidatorRepository")

    def list_all(self, network_id: int) -> List[Validator]:
        """Get every validator of a network, ordered by address."""
        stmt = (
            select(Validator)
            .where(Validator.network_id == network_id)
            .order_by(Validator.address.asc())
        )
        return self._execute_query(stmt)

    def get_by_address(self, network_id: int, address: str) -> Optional[Validator]:
        stmt = select(Validator).where(
            Validator.network_id == network_id,
            Validator.address == address,
        )
        return self._execute_scalar(stmt)

    def get_by_addresses(self, network_id: int, addresses: Iterable[str]) -> List[Validator]:
        """Get the validators matching `addresses`, ordered by address."""
        wanted = sorted(set(addresses))
        if not wanted:
            return []
        stmt = (
            select(Validator)
            .where(
                Validator.network_id == network_id,
                Validator.address.in_(wanted),
            )
            .order_by(Validator.address.asc())
        )
        return self._execute_query(stmt)

    def address_map(self, network_id: int) -> Dict[str, Validator]:
        """Get address -> validator for a network."""
        return {v.address: v for v in self.list_all(network_id)}

    def insert_many(self, network_id: int, addresses: Iterable[str]) -> List[Validator]:
        """
        Insert validators for addresses not stored yet.

        New validators have no endpoint until the next endpoint refresh.

        Returns:
            The newly inserted validators
        """
        known = set(self.address_map(network_id))
        new_addresses = sorted(set(addresses) - known)
        if not new_addresses:
            return []

        validators = [
            Validator(network_id=network_id, address=address, rpc_url=None)
            for address in new_addresses
        ]
        self._add_all(validators, "insert_many")
        self._commit("insert_many")
        self._logger.info(f"Inserted {len(validators)} validators | network_id={network_id}")
        return validators

    def update_rpc_url(self, validator_id: int, rpc_url: Optional[str]) -> None:
        """Overwrite the current endpoint URL (not versioned)."""
        stmt = (
            update(Validator)
            .where(Validator.id == validator_id)
            .values(rpc_url=rpc_url)
        )
        self._execute_write(stmt, "update_rpc_url")
        self._commit("update_rpc_url")


# =============================================================
# VALIDATOR GROUPS
# =============================================================

class ValidatorGroupRepository(BaseRepository[ValidatorGroup]):
    """Repository for the validator_groups table."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ValidatorGroup, "ValidatorGroupRepository")

    def list_all(self, network_id: int) -> List[ValidatorGroup]:
        stmt = (
            select(ValidatorGroup)
            .where(ValidatorGroup.network_id == network_id)
            .order_by(ValidatorGroup.address.asc())
        )
        return self._execute_query(stmt)

    def get_by_address(self, network_id: int, address: str) -> Optional[ValidatorGroup]:
        stmt = select(ValidatorGroup).where(
            ValidatorGroup.network_id == network_id,
            ValidatorGroup.address == address,
        )
        return self._execute_scalar(stmt)

    def address_map(self, network_id: int) -> Dict[str, ValidatorGroup]:
        return {g.address: g for g in self.list_all(network_id)}

    def insert(self, network_id: int, address: str, name: Optional[str]) -> ValidatorGroup:
        """Insert a newly observed group together with its display name."""
        group = self._add(
            ValidatorGroup(network_id=network_id, address=address, name=name),
            "insert",
        )
        self._commit("insert")
        return group

    def update_name(self, group_id: int, name: Optional[str]) -> None:
        """Overwrite the group display name in place."""
        stmt = (
            update(ValidatorGroup)
            .where(ValidatorGroup.id == group_id)
            .values(name=name)
        )
        self._execute_write(stmt, "update_name")
        self._commit("update_name")
