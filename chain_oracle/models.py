"""
Chain Oracle Models.

Plain value objects returned by every oracle implementation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class EntityKind(Enum):
    """Kinds of registered accounts."""

    VALIDATOR = "validator"
    GROUP = "group"


@dataclass(frozen=True)
class GroupRoster:
    """A validator group as read from the chain."""

    address: str
    name: Optional[str]
    members: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "members": list(self.members),
        }


@dataclass(frozen=True)
class MembershipEntry:
    """One entry of a validator's on-chain membership history."""

    epoch: int
    group_address: str

    def to_dict(self) -> dict[str, Any]:
        return {"epoch": self.epoch, "group_address": self.group_address}
