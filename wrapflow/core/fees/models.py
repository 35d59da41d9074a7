"""
Fee estimation models.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from ..tokens.models import OperationKind


class GasPriceLevel(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    EXTREME = "extreme"


class GasPriceTrend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


class Recommendation(str, Enum):
    EXECUTE = "execute"
    WAIT = "wait"
    ALTERNATIVE = "alternative"


def _usd(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value.quantize(Decimal("0.01")))


@dataclass
class AlternativeRoute:
    """A cheaper way of doing the same thing, with its expected saving."""
    name: str
    description: str
    savings_percent: int
    savings_usd: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "savingsPercent": self.savings_percent,
            "savingsUsd": _usd(self.savings_usd),
        }


@dataclass
class FeeBreakdown:
    """Every fee component of one operation at the current gas price."""
    operation: OperationKind
    gas_units: int                          # operation only
    approval_gas_units: int                 # 0 when no approval is needed
    gas_price: int                          # wei
    network_fee: int                        # native wei
    protocol_fee: int                       # source-token units
    bridge_fee: int                         # native wei
    total_native_fee: int                   # network_fee + bridge_fee
    gas_price_level: GasPriceLevel
    gas_price_trend: GasPriceTrend
    route_efficiency: int                   # 0-100
    source_decimals: int = 8
    network_fee_usd: Optional[Decimal] = None
    approval_fee_usd: Optional[Decimal] = None
    bridge_fee_usd: Optional[Decimal] = None
    total_fee_usd: Optional[Decimal] = None
    suggested_wait_minutes: Optional[int] = None
    potential_savings_usd: Optional[Decimal] = None
    alternatives: List[AlternativeRoute] = field(default_factory=list)

    @property
    def total_gas_units(self) -> int:
        return self.gas_units + self.approval_gas_units

    @property
    def approval_fee(self) -> int:
        return self.approval_gas_units * self.gas_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "gasUnits": self.gas_units,
            "approvalGasUnits": self.approval_gas_units,
            "gasPrice": str(self.gas_price),
            "networkFee": str(self.network_fee),
            "protocolFee": str(self.protocol_fee),
            "bridgeFee": str(self.bridge_fee),
            "totalNativeFee": str(self.total_native_fee),
            "networkFeeUsd": _usd(self.network_fee_usd),
            "approvalFeeUsd": _usd(self.approval_fee_usd),
            "bridgeFeeUsd": _usd(self.bridge_fee_usd),
            "totalFeeUsd": _usd(self.total_fee_usd),
            "gasPriceLevel": self.gas_price_level.value,
            "gasPriceTrend": self.gas_price_trend.value,
            "routeEfficiency": self.route_efficiency,
            "suggestedWaitMinutes": self.suggested_wait_minutes,
            "potentialSavingsUsd": _usd(self.potential_savings_usd),
            "alternatives": [alt.to_dict() for alt in self.alternatives],
        }


@dataclass
class FeeOptimization:
    """Execute now, wait, or take an alternative route."""
    recommendation: Recommendation
    reason: str
    favorable: bool = False
    estimated_savings_usd: Optional[Decimal] = None
    estimated_wait_minutes: Optional[int] = None
    alternatives: List[AlternativeRoute] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendation": self.recommendation.value,
            "reason": self.reason,
            "favorable": self.favorable,
            "estimatedSavingsUsd": _usd(self.estimated_savings_usd),
            "estimatedWaitMinutes": self.estimated_wait_minutes,
            "alternatives": [alt.to_dict() for alt in self.alternatives],
        }
