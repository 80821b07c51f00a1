"""
Indexer - Registry Reconciler.

============================================================
RESPONSIBILITY
============================================================
Brings the stored roster and history in line with the chain.

1. Read the current height and epoch once; every fact recorded in
   this pass uses them as effective_from
2. Insert groups and validators seen for the first time
3. Update group display names in place (not versioned)
4. Record validator display-name changes (keyed by height)
5. Record validator group-membership changes (keyed by epoch)
6. Refresh each validator's advertised endpoint URL in place

Facts are versioned at the height/epoch where the change was
observed, not where it happened on-chain.

============================================================
FAILURE HANDLING
============================================================
- A chain read failing for one entity: log, add an EntityError to
  the summary, continue with the next entity
- Storage unavailable: propagates and aborts the cycle
- Height / address-list reads failing: propagate (nothing to
  reconcile against)

============================================================
"""

import logging
import time
from typing import Dict, List

from chain_oracle.base import BaseChainOracle
from chain_oracle.exceptions import ChainReadError
from chain_oracle.models import EntityKind, GroupRoster
from indexer.models import ReconcileSummary
from rpc_health.models import ProbeTarget
from storage.database import Database
from storage.models.registry import Validator, ValidatorGroup
from storage.repositories.exceptions import ValidationError
from storage.repositories.registry import ValidatorGroupRepository, ValidatorRepository
from storage.repositories.temporal import TemporalRecordStore, membership_store, name_store


logger = logging.getLogger(__name__)


class RegistryReconciler:
    """
    Syncs validators, groups and their history from the chain oracle.

    Usage:
        reconciler = RegistryReconciler(database, oracle)
        summary = await reconciler.reconcile(network_id)
        targets = await reconciler.resolve_probe_targets(network_id)
    """

    def __init__(self, database: Database, oracle: BaseChainOracle) -> None:
        self._database = database
        self._oracle = oracle

    # =========================================================
    # RECONCILE
    # =========================================================

    async def reconcile(self, network_id: int) -> ReconcileSummary:
        """
        Run one reconciliation pass.

        Args:
            network_id: Network partition to reconcile

        Returns:
            ReconcileSummary with counts and per-entity errors
        """
        t0 = time.perf_counter()

        height = await self._oracle.get_current_height()
        epoch = await self._oracle.get_current_epoch(height)
        group_addresses = await self._oracle.get_registered_addresses(EntityKind.GROUP)
        validator_addresses = await self._oracle.get_registered_addresses(EntityKind.VALIDATOR)

        logger.info(
            f"Reconciling network_id={network_id} at height={height} epoch={epoch} | "
            f"groups={len(group_addresses)} validators={len(validator_addresses)}"
        )

        summary = ReconcileSummary(network_id=network_id, height=height, epoch=epoch)

        with self._database.session_scope() as session:
            group_repo = ValidatorGroupRepository(session)
            validator_repo = ValidatorRepository(session)

            rosters = await self._sync_groups(network_id, group_addresses, group_repo, summary)

            inserted = validator_repo.insert_many(network_id, validator_addresses)
            summary.validators_inserted = len(inserted)

            stored = validator_repo.address_map(network_id)
            registered = [stored[a] for a in sorted(set(validator_addresses)) if a in stored]

            await self._sync_names(network_id, height, registered, name_store(session), summary)

            self._sync_memberships(
                network_id,
                epoch,
                rosters,
                group_repo.address_map(network_id),
                stored,
                membership_store(session),
                summary,
            )

            await self._sync_endpoints(registered, validator_repo, summary)

        log = logger.warning if summary.has_errors else logger.info
        log(
            f"Reconciliation done in {time.perf_counter() - t0:.2f}s | "
            f"groups+{summary.groups_inserted} names~{summary.group_names_updated} "
            f"validators+{summary.validators_inserted} names={summary.names_recorded} "
            f"memberships={summary.memberships_recorded} endpoints={summary.endpoints_updated} "
            f"errors={len(summary.errors)}"
        )
        return summary

    # ---------------------------------------------------------
    # Groups
    # ---------------------------------------------------------

    async def _sync_groups(
        self,
        network_id: int,
        group_addresses: List[str],
        group_repo: ValidatorGroupRepository,
        summary: ReconcileSummary,
    ) -> List[GroupRoster]:
        stored: Dict[str, ValidatorGroup] = group_repo.address_map(network_id)
        rosters: List[GroupRoster] = []

        for address in sorted(set(group_addresses)):
            try:
                roster = await self._oracle.get_group_roster(address, include_members=True)
            except ChainReadError as e:
                logger.warning(f"Skipping group {address}: {e}")
                summary.add_error(address, "group_roster", e)
                continue

            rosters.append(roster)
            group = stored.get(address)

            if group is None:
                group_repo.insert(network_id, address, roster.name)
                summary.groups_inserted += 1
                logger.info(f"New group {address} ({roster.name})")
            elif roster.name and roster.name != group.name:
                previous = group.name
                group_repo.update_name(group.id, roster.name)
                summary.group_names_updated += 1
                logger.info(f"Group {address} renamed {previous!r} -> {roster.name!r}")

        return rosters

    # ---------------------------------------------------------
    # Names
    # ---------------------------------------------------------

    async def _sync_names(
        self,
        network_id: int,
        height: int,
        validators: List[Validator],
        names: TemporalRecordStore,
        summary: ReconcileSummary,
    ) -> None:
        for validator in validators:
            try:
                chain_name = await self._oracle.get_display_name(validator.address, height)
            except ChainReadError as e:
                logger.warning(f"Skipping name of {validator.address}: {e}")
                summary.add_error(validator.address, "display_name", e)
                continue

            if not chain_name:
                continue

            current = names.fact_at(network_id, validator.id, height)
            if current is not None and current.value == chain_name:
                continue

            try:
                fact = names.record_fact(network_id, validator.id, chain_name, height)
            except ValidationError as e:
                logger.warning(f"Name of {validator.address} not recorded: {e}")
                summary.add_error(validator.address, "display_name", e)
                continue

            if fact.value != chain_name:
                logger.warning(
                    f"Name of {validator.address} at height {height} already stored as "
                    f"{fact.value!r}, {chain_name!r} not recorded"
                )
                continue

            summary.names_recorded += 1
            logger.info(
                f"Name of {validator.address} at height {height}: "
                f"{current.value if current else None!r} -> {chain_name!r}"
            )

    # ---------------------------------------------------------
    # Membership
    # ---------------------------------------------------------

    def _sync_memberships(
        self,
        network_id: int,
        epoch: int,
        rosters: List[GroupRoster],
        groups: Dict[str, ValidatorGroup],
        validators: Dict[str, Validator],
        memberships: TemporalRecordStore,
        summary: ReconcileSummary,
    ) -> None:
        for roster in rosters:
            group = groups.get(roster.address)
            if group is None:
                continue

            for member in roster.members:
                validator = validators.get(member)
                if validator is None:
                    logger.debug(f"Member {member} of {roster.address} is not a stored validator")
                    continue

                current = memberships.fact_at(network_id, validator.id, epoch)
                if current is not None and current.value == group.id:
                    continue

                try:
                    fact = memberships.record_fact(network_id, validator.id, group.id, epoch)
                except ValidationError as e:
                    logger.warning(f"Membership of {member} not recorded: {e}")
                    summary.add_error(member, "membership", e)
                    continue

                if fact.value != group.id:
                    logger.warning(
                        f"Membership of {member} at epoch {epoch} already stored as "
                        f"group_id={fact.value}, {roster.address} not recorded"
                    )
                    continue

                summary.memberships_recorded += 1
                logger.info(f"Validator {member} in group {roster.address} from epoch {epoch}")

    # ---------------------------------------------------------
    # Endpoints
    # ---------------------------------------------------------

    async def _sync_endpoints(
        self,
        validators: List[Validator],
        validator_repo: ValidatorRepository,
        summary: ReconcileSummary,
    ) -> None:
        for validator in validators:
            try:
                url = await self._oracle.get_endpoint_url(validator.address) or None
            except ChainReadError as e:
                logger.warning(f"Keeping endpoint of {validator.address}: {e}")
                summary.add_error(validator.address, "endpoint_url", e)
                continue

            if url == validator.rpc_url:
                continue

            previous = validator.rpc_url
            validator_repo.update_rpc_url(validator.id, url)
            summary.endpoints_updated += 1
            logger.info(f"Endpoint of {validator.address}: {previous} -> {url}")

    # =========================================================
    # PROBE TARGETS
    # =========================================================

    async def resolve_probe_targets(self, network_id: int) -> List[ProbeTarget]:
        """
        Get the validators of the currently elected set.

        Signers are mapped to their accounts; a signer that cannot be
        mapped, or whose account is not stored, is skipped.

        Returns:
            ProbeTargets ordered by address
        """
        signers = await self._oracle.get_current_live_set()
        if not signers:
            logger.info("No elected validators found")
            return []

        addresses: List[str] = []
        for signer in signers:
            try:
                addresses.append(await self._oracle.signer_to_entity(signer))
            except ChainReadError as e:
                logger.warning(f"Cannot map signer {signer} to an account: {e}")

        with self._database.session_scope() as session:
            validators = ValidatorRepository(session).get_by_addresses(network_id, addresses)

        missing = set(addresses) - {v.address for v in validators}
        if missing:
            logger.warning(f"{len(missing)} elected accounts are not stored validators: {sorted(missing)}")

        return [
            ProbeTarget(validator_id=v.id, address=v.address, rpc_url=v.rpc_url)
            for v in validators
        ]
