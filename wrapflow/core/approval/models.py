"""
Approval models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ...config import GWEI, settings


MAX_UINT256 = 2**256 - 1


class ApprovalStrategy(str, Enum):
    EXACT = "exact"
    OPTIMIZED = "optimized"
    UNLIMITED = "unlimited"


class SecurityRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ApprovalPolicy:
    """Tunable constants behind the approval recommendation."""
    optimized_percent: int = 150
    large_amount_tokens: int = 10_000       # whole tokens, scaled by the token's decimals
    high_gas_price_wei: int = 50 * GWEI
    default_gas: int = 50_000

    @classmethod
    def from_settings(cls) -> "ApprovalPolicy":
        return cls(
            optimized_percent=settings.approval_optimized_percent,
            large_amount_tokens=settings.approval_large_amount_tokens,
            high_gas_price_wei=settings.high_gas_wei,
            default_gas=settings.approval_default_gas,
        )

    def large_amount_threshold(self, decimals: int) -> int:
        return self.large_amount_tokens * 10**decimals


@dataclass
class ApprovalOption:
    """One way of granting the allowance, with its cost and risk."""
    strategy: ApprovalStrategy
    amount: int
    gas_estimate: int
    security_risk: SecurityRisk
    label: str
    description: str
    recommended: bool = False

    def gas_cost(self, gas_price_wei: int) -> int:
        return self.gas_estimate * gas_price_wei

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "amount": str(self.amount),
            "gasEstimate": self.gas_estimate,
            "securityRisk": self.security_risk.value,
            "label": self.label,
            "description": self.description,
            "recommended": self.recommended,
        }


@dataclass
class ApprovalState:
    """Snapshot of whether an approval is needed and how to grant it."""
    current_allowance: int
    required_amount: int
    is_required: bool
    recommended_strategy: ApprovalStrategy
    security_risk: SecurityRisk
    gas_estimate: int
    message: str
    options: List[ApprovalOption] = field(default_factory=list)

    def option_for(self, strategy: ApprovalStrategy) -> Optional[ApprovalOption]:
        for option in self.options:
            if option.strategy == strategy:
                return option
        return None

    @property
    def recommended_option(self) -> Optional[ApprovalOption]:
        return self.option_for(self.recommended_strategy)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentAllowance": str(self.current_allowance),
            "requiredAmount": str(self.required_amount),
            "isRequired": self.is_required,
            "recommendedStrategy": self.recommended_strategy.value,
            "securityRisk": self.security_risk.value,
            "gasEstimate": self.gas_estimate,
            "message": self.message,
            "options": [option.to_dict() for option in self.options],
        }
