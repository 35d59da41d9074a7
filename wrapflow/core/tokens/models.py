"""
Token and amount models.
"""

from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from typing import Any, Dict


CANONICAL_DECIMALS = 8
MAX_DECIMALS = 36


class OperationKind(str, Enum):
    """What a (from, to) token pair implies."""
    WRAP = "wrap"
    UNWRAP = "unwrap"
    BRIDGE = "bridge"
    INVALID = "invalid"


@dataclass(frozen=True)
class TokenDescriptor:
    """A token as deployed on one network."""
    address: str
    symbol: str
    name: str
    decimals: int
    network_id: int
    can_wrap: bool = False
    can_bridge: bool = False
    can_redeem: bool = False
    is_canonical: bool = False

    @property
    def key(self) -> tuple:
        """Identity of the token: same address on another network is another token."""
        return (self.network_id, self.address.lower())

    def same_token(self, other: "TokenDescriptor") -> bool:
        return self.key == other.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "networkId": self.network_id,
            "canWrap": self.can_wrap,
            "canBridge": self.can_bridge,
            "canRedeem": self.can_redeem,
            "isCanonical": self.is_canonical,
        }


@total_ordering
@dataclass(frozen=True)
class AmountValue:
    """
    A non-negative integer amount tagged with the precision it is expressed in.

    Amounts of different precision are never compared directly; normalize
    them to the canonical unit first.
    """
    amount: int
    decimals: int

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"amount must be an int, got {type(self.amount).__name__}")
        if self.amount < 0:
            raise ValueError("amount must be non-negative")

    def _check_comparable(self, other: "AmountValue") -> None:
        if self.decimals != other.decimals:
            raise ValueError(
                f"Cannot compare amounts with {self.decimals} and {other.decimals} decimals"
            )

    def __lt__(self, other: "AmountValue") -> bool:
        if not isinstance(other, AmountValue):
            return NotImplemented
        self._check_comparable(other)
        return self.amount < other.amount

    def __int__(self) -> int:
        return self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": str(self.amount), "decimals": self.decimals}
