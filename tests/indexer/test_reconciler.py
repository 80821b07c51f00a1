"""
Tests for the Registry Reconciler.

============================================================
PURPOSE
============================================================
Runs reconciliation against the in-memory fake oracle:
1. First pass inserts groups, validators, names, memberships, URLs
2. Later passes record only changes, keyed by observation point
3. Per-entity chain failures are skipped and reported
4. Probe targets come from the live set via signer mapping

============================================================
"""

import pytest

from indexer.reconciler import RegistryReconciler
from storage.repositories.projections import ProjectionRepository
from storage.repositories.registry import ValidatorGroupRepository, ValidatorRepository
from storage.repositories.temporal import membership_store, name_store


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def chain(oracle):
    """Two groups, three validators; V3 has no endpoint."""
    oracle.height = 1000
    oracle.add_validator("0xV1", name="Alice", rpc_url="http://v1:8545", signer="0xS1")
    oracle.add_validator("0xV2", name="Bob", rpc_url="http://v2:8545", signer="0xS2")
    oracle.add_validator("0xV3", name="", rpc_url=None, signer="0xS3")
    oracle.add_group("0xG1", "Group One", ["0xV1", "0xV2"])
    oracle.add_group("0xG2", "Group Two", ["0xV3"])
    oracle.live_set = ["0xS1", "0xS2", "0xS3"]
    return oracle


@pytest.fixture
def reconciler(database, chain):
    return RegistryReconciler(database, chain)


def stored_validators(database, network_id):
    with database.session_scope() as session:
        return ValidatorRepository(session).address_map(network_id)


# ============================================================
# FIRST PASS
# ============================================================

class TestInitialReconcile:
    """Tests for a reconcile against an empty database."""

    @pytest.mark.asyncio
    async def test_inserts_everything(self, reconciler, database, network_id):
        summary = await reconciler.reconcile(network_id)

        assert summary.height == 1000
        assert summary.epoch == 11
        assert summary.groups_inserted == 2
        assert summary.validators_inserted == 3
        assert summary.names_recorded == 2
        assert summary.memberships_recorded == 3
        assert summary.endpoints_updated == 2
        assert summary.errors == []

        with database.session_scope() as session:
            groups = ValidatorGroupRepository(session).address_map(network_id)
            assert groups["0xG1"].name == "Group One"
            roster = ProjectionRepository(session).get_current_roster(network_id)

        by_address = {e.address: e for e in roster}
        assert by_address["0xV1"].current_name == "Alice"
        assert by_address["0xV1"].current_group_name == "Group One"
        assert by_address["0xV1"].rpc_url == "http://v1:8545"
        assert by_address["0xV3"].current_name is None
        assert by_address["0xV3"].current_group_name == "Group Two"
        assert by_address["0xV3"].rpc_url is None

    @pytest.mark.asyncio
    async def test_facts_keyed_by_height_and_epoch(self, reconciler, database, network_id):
        await reconciler.reconcile(network_id)
        v1 = stored_validators(database, network_id)["0xV1"]

        with database.session_scope() as session:
            name = name_store(session).open_fact(network_id, v1.id)
            membership = membership_store(session).open_fact(network_id, v1.id)

        assert name.valid_from == 1000
        assert membership.valid_from == 11


# ============================================================
# CHANGES
# ============================================================

class TestIncrementalReconcile:
    """Tests for passes after the first."""

    @pytest.mark.asyncio
    async def test_unchanged_chain_records_nothing(self, reconciler, chain, network_id):
        await reconciler.reconcile(network_id)
        chain.height = 1050

        summary = await reconciler.reconcile(network_id)

        assert summary.groups_inserted == 0
        assert summary.validators_inserted == 0
        assert summary.names_recorded == 0
        assert summary.memberships_recorded == 0
        assert summary.endpoints_updated == 0

    @pytest.mark.asyncio
    async def test_rename_recorded_at_observation_height(self, reconciler, chain, database, network_id):
        await reconciler.reconcile(network_id)
        chain.height = 1500
        chain.names["0xV1"] = "Alicia"

        summary = await reconciler.reconcile(network_id)

        assert summary.names_recorded == 1
        v1 = stored_validators(database, network_id)["0xV1"]
        with database.session_scope() as session:
            history = name_store(session).history(network_id, v1.id)

        assert [(f.value, f.valid_from, f.valid_to) for f in history] == [
            ("Alice", 1000, 1500),
            ("Alicia", 1500, None),
        ]

    @pytest.mark.asyncio
    async def test_rerun_at_same_height_is_idempotent(self, reconciler, chain, database, network_id):
        await reconciler.reconcile(network_id)
        chain.names["0xV1"] = "Alicia"
        chain.height = 1500

        await reconciler.reconcile(network_id)
        summary = await reconciler.reconcile(network_id)

        assert summary.names_recorded == 0
        v1 = stored_validators(database, network_id)["0xV1"]
        with database.session_scope() as session:
            assert len(name_store(session).history(network_id, v1.id)) == 2

    @pytest.mark.asyncio
    async def test_rename_at_already_recorded_height_not_counted(
        self, reconciler, chain, database, network_id
    ):
        await reconciler.reconcile(network_id)
        chain.names["0xV1"] = "Mallory"

        summary = await reconciler.reconcile(network_id)

        assert summary.names_recorded == 0
        v1 = stored_validators(database, network_id)["0xV1"]
        with database.session_scope() as session:
            history = name_store(session).history(network_id, v1.id)
        assert [(f.value, f.valid_from, f.valid_to) for f in history] == [("Alice", 1000, None)]

    @pytest.mark.asyncio
    async def test_switch_within_recorded_epoch_not_counted(
        self, reconciler, chain, database, network_id
    ):
        await reconciler.reconcile(network_id)
        chain.height = 1050
        chain.add_group("0xG1", "Group One", ["0xV1"])
        chain.add_group("0xG2", "Group Two", ["0xV3", "0xV2"])

        summary = await reconciler.reconcile(network_id)

        assert summary.epoch == 11
        assert summary.memberships_recorded == 0
        v2 = stored_validators(database, network_id)["0xV2"]
        with database.session_scope() as session:
            groups = ValidatorGroupRepository(session).address_map(network_id)
            fact = membership_store(session).open_fact(network_id, v2.id)
        assert (fact.value, fact.valid_from) == (groups["0xG1"].id, 11)

    @pytest.mark.asyncio
    async def test_group_switch_recorded_at_epoch(self, reconciler, chain, database, network_id):
        await reconciler.reconcile(network_id)
        chain.height = 1250
        chain.add_group("0xG1", "Group One", ["0xV1"])
        chain.add_group("0xG2", "Group Two", ["0xV3", "0xV2"])

        summary = await reconciler.reconcile(network_id)

        assert summary.memberships_recorded == 1
        v2 = stored_validators(database, network_id)["0xV2"]
        with database.session_scope() as session:
            groups = ValidatorGroupRepository(session).address_map(network_id)
            history = membership_store(session).history(network_id, v2.id)

        assert [(f.value, f.valid_from, f.valid_to) for f in history] == [
            (groups["0xG1"].id, 11, 13),
            (groups["0xG2"].id, 13, None),
        ]

    @pytest.mark.asyncio
    async def test_group_name_updated_in_place(self, reconciler, chain, database, network_id):
        await reconciler.reconcile(network_id)
        chain.add_group("0xG1", "Group Uno", ["0xV1", "0xV2"])

        summary = await reconciler.reconcile(network_id)

        assert summary.group_names_updated == 1
        with database.session_scope() as session:
            groups = ValidatorGroupRepository(session).list_all(network_id)
        assert [g.name for g in groups] == ["Group Uno", "Group Two"]

    @pytest.mark.asyncio
    async def test_new_validator_and_endpoint_change(self, reconciler, chain, database, network_id):
        await reconciler.reconcile(network_id)
        chain.add_validator("0xV4", name="Dave", rpc_url="http://v4:8545")
        chain.endpoints["0xV1"] = "https://v1.new:443"
        chain.endpoints["0xV2"] = ""

        summary = await reconciler.reconcile(network_id)

        assert summary.validators_inserted == 1
        validators = stored_validators(database, network_id)
        assert validators["0xV4"].rpc_url == "http://v4:8545"
        assert validators["0xV1"].rpc_url == "https://v1.new:443"
        assert validators["0xV2"].rpc_url is None


# ============================================================
# FAILURES
# ============================================================

class TestReconcileFailures:
    """Per-entity chain failures are skipped, not fatal."""

    @pytest.mark.asyncio
    async def test_failed_name_read_skips_entity(self, reconciler, chain, network_id):
        chain.fail("get_display_name", "0xV2")

        summary = await reconciler.reconcile(network_id)

        assert summary.names_recorded == 1
        assert [(e.address, e.step) for e in summary.errors] == [("0xV2", "display_name")]

    @pytest.mark.asyncio
    async def test_failed_endpoint_read_keeps_url(self, reconciler, chain, database, network_id):
        await reconciler.reconcile(network_id)
        chain.endpoints["0xV1"] = "http://elsewhere:8545"
        chain.fail("get_endpoint_url", "0xV1")

        summary = await reconciler.reconcile(network_id)

        assert stored_validators(database, network_id)["0xV1"].rpc_url == "http://v1:8545"
        assert summary.errors[0].step == "endpoint_url"

    @pytest.mark.asyncio
    async def test_failed_group_read_skips_group(self, reconciler, chain, database, network_id):
        chain.fail("get_group_roster", "0xG2")

        summary = await reconciler.reconcile(network_id)

        assert summary.groups_inserted == 1
        assert summary.memberships_recorded == 2
        with database.session_scope() as session:
            assert list(ValidatorGroupRepository(session).address_map(network_id)) == ["0xG1"]

    @pytest.mark.asyncio
    async def test_height_failure_propagates(self, reconciler, chain, network_id):
        from chain_oracle.exceptions import ChainReadError

        chain.fail("get_current_height")

        with pytest.raises(ChainReadError):
            await reconciler.reconcile(network_id)


# ============================================================
# PROBE TARGETS
# ============================================================

class TestResolveProbeTargets:
    """Tests for resolve_probe_targets."""

    @pytest.mark.asyncio
    async def test_targets_from_live_set(self, reconciler, network_id):
        await reconciler.reconcile(network_id)

        targets = await reconciler.resolve_probe_targets(network_id)

        assert [t.address for t in targets] == ["0xV1", "0xV2", "0xV3"]
        assert [t.rpc_url for t in targets] == ["http://v1:8545", "http://v2:8545", None]

    @pytest.mark.asyncio
    async def test_unmappable_signer_skipped(self, reconciler, chain, network_id):
        await reconciler.reconcile(network_id)
        chain.fail("signer_to_entity", "0xS2")

        targets = await reconciler.resolve_probe_targets(network_id)

        assert [t.address for t in targets] == ["0xV1", "0xV3"]

    @pytest.mark.asyncio
    async def test_unknown_account_skipped(self, reconciler, chain, network_id):
        await reconciler.reconcile(network_id)
        chain.signers["0xS9"] = "0xUNKNOWN"
        chain.live_set = ["0xS9", "0xS1"]

        targets = await reconciler.resolve_probe_targets(network_id)

        assert [t.address for t in targets] == ["0xV1"]

    @pytest.mark.asyncio
    async def test_empty_live_set(self, reconciler, chain, network_id):
        chain.live_set = []

        assert await reconciler.resolve_probe_targets(network_id) == []
