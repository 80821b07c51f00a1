"""
Chain Oracle Package.

Read-only access to on-chain validator registry state.

Components:
- base: BaseChainOracle interface
- celo: CeloChainOracle (web3.py, Celo core contracts)
- fallback: FallbackChainOracle (primary node, then external node)
- models: EntityKind, GroupRoster, MembershipEntry
- exceptions: ChainOracleError hierarchy
"""

from chain_oracle.base import BaseChainOracle
from chain_oracle.celo import CeloChainOracle
from chain_oracle.exceptions import ChainNotReadyError, ChainOracleError, ChainReadError
from chain_oracle.fallback import FallbackChainOracle
from chain_oracle.models import EntityKind, GroupRoster, MembershipEntry

__all__ = [
    "BaseChainOracle",
    "CeloChainOracle",
    "ChainNotReadyError",
    "ChainOracleError",
    "ChainReadError",
    "FallbackChainOracle",
    "EntityKind",
    "GroupRoster",
    "MembershipEntry",
]
