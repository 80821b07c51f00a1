"""
Tests for the chain oracles.

============================================================
PURPOSE
============================================================
1. FallbackChainOracle retries failed reads on the secondary
2. CeloChainOracle resolves contracts through the registry once,
   normalizes empty strings to None and wraps failures in
   ChainReadError after retrying

The Celo oracle is exercised against a mocked AsyncWeb3; no node
is contacted.

============================================================
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from web3 import AsyncWeb3

from chain_oracle.abi import CELO_REGISTRY_ADDRESS
from chain_oracle.celo import CeloChainOracle
from chain_oracle.exceptions import ChainReadError
from chain_oracle.fallback import FallbackChainOracle
from chain_oracle.models import EntityKind
from tests.fakes import FakeChainOracle


ACCOUNTS = "0x1111111111111111111111111111111111111111"
VALIDATORS = "0x2222222222222222222222222222222222222222"
VALIDATOR = "0x3333333333333333333333333333333333333333"
GROUP = "0x4444444444444444444444444444444444444444"


# ============================================================
# FALLBACK
# ============================================================

class TestFallbackChainOracle:
    """Tests for primary/secondary delegation."""

    @pytest.mark.asyncio
    async def test_primary_used_when_healthy(self):
        primary, secondary = FakeChainOracle("node"), FakeChainOracle("external")
        primary.height, secondary.height = 10, 20

        oracle = FallbackChainOracle(primary, secondary)

        assert await oracle.get_current_height() == 10
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_secondary_used_on_read_error(self):
        primary, secondary = FakeChainOracle("node"), FakeChainOracle("external")
        secondary.add_validator("0xV1", name="Alice")
        primary.fail("get_display_name")

        oracle = FallbackChainOracle(primary, secondary)

        assert await oracle.get_display_name("0xV1") == "Alice"
        assert oracle.name == "node+external"

    @pytest.mark.asyncio
    async def test_error_raised_without_secondary(self):
        primary = FakeChainOracle("node")
        primary.fail("get_current_live_set")

        with pytest.raises(ChainReadError):
            await FallbackChainOracle(primary).get_current_live_set()

    @pytest.mark.asyncio
    async def test_both_failing(self):
        primary, secondary = FakeChainOracle("node"), FakeChainOracle("external")
        primary.fail("get_current_height")
        secondary.fail("get_current_height")

        with pytest.raises(ChainReadError):
            await FallbackChainOracle(primary, secondary).get_current_height()

    @pytest.mark.asyncio
    async def test_close_closes_both(self):
        primary, secondary = FakeChainOracle("node"), FakeChainOracle("external")

        async with FallbackChainOracle(primary, secondary):
            pass

        assert primary.closed and secondary.closed


# ============================================================
# CELO
# ============================================================

def contract_mock(**functions):
    """Contract whose functions.<name>(...).call() resolve to the given values."""
    contract = MagicMock()
    for name, value in functions.items():
        call = AsyncMock(side_effect=value) if isinstance(value, Exception) else AsyncMock(return_value=value)
        getattr(contract.functions, name).return_value.call = call
    return contract


@pytest.fixture
def celo():
    registry = contract_mock()
    registry.functions.getAddressForStringOrDie.side_effect = lambda name: MagicMock(
        call=AsyncMock(return_value={"Accounts": ACCOUNTS, "Validators": VALIDATORS}[name])
    )
    accounts = contract_mock(getName="", getMetadataURL="  http://v1:8545  ")
    validators = contract_mock(
        getRegisteredValidators=[VALIDATOR.lower()],
        getValidatorGroup=([VALIDATOR], 0, 0, 0, [], 0, 0),
    )

    w3 = MagicMock()
    contracts = {
        AsyncWeb3.to_checksum_address(CELO_REGISTRY_ADDRESS): registry,
        AsyncWeb3.to_checksum_address(ACCOUNTS): accounts,
        AsyncWeb3.to_checksum_address(VALIDATORS): validators,
    }
    w3.eth.contract.side_effect = lambda address, abi: contracts[address]

    oracle = CeloChainOracle("http://node.invalid:8545", w3=w3)
    oracle.mocks = {"registry": registry, "accounts": accounts, "validators": validators}
    return oracle


class TestCeloChainOracle:
    """Tests for the web3-backed oracle."""

    @pytest.mark.asyncio
    async def test_registered_addresses_checksummed(self, celo):
        addresses = await celo.get_registered_addresses(EntityKind.VALIDATOR)

        assert addresses == [VALIDATOR]

    @pytest.mark.asyncio
    async def test_contract_resolved_once(self, celo):
        await celo.get_endpoint_url(VALIDATOR)
        await celo.get_endpoint_url(VALIDATOR)

        assert celo.mocks["registry"].functions.getAddressForStringOrDie.call_count == 1

    @pytest.mark.asyncio
    async def test_endpoint_url_stripped(self, celo):
        assert await celo.get_endpoint_url(VALIDATOR) == "http://v1:8545"

    @pytest.mark.asyncio
    async def test_empty_name_is_none(self, celo):
        assert await celo.get_display_name(VALIDATOR, at_height=100) is None

    @pytest.mark.asyncio
    async def test_group_roster(self, celo):
        roster = await celo.get_group_roster(GROUP)

        assert roster.address == GROUP
        assert roster.name is None
        assert roster.members == (VALIDATOR,)

    @pytest.mark.asyncio
    async def test_membership_history_sorted_by_epoch(self, celo):
        history = AsyncMock(return_value=([12, 10], [GROUP, VALIDATOR], 0, 0))
        celo.mocks["validators"].functions.getMembershipHistory.return_value.call = history

        entries = await celo.get_membership_history(VALIDATOR)

        assert [(e.epoch, e.group_address) for e in entries] == [(10, VALIDATOR), (12, GROUP)]

    @pytest.mark.asyncio
    async def test_failure_wrapped_after_retries(self, celo):
        failing = AsyncMock(side_effect=OSError("connection reset"))
        celo.mocks["accounts"].functions.signerToAccount.return_value.call = failing

        with patch("chain_oracle.base.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ChainReadError) as exc_info:
                await celo.signer_to_entity(VALIDATOR)

        assert failing.await_count == CeloChainOracle.MAX_RETRIES + 1
        assert isinstance(exc_info.value.original_error, OSError)
