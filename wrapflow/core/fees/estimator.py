"""
Fee Estimator.

Breaks the cost of a wrap, bridge or unwrap into network, protocol and
cross-chain messaging fees, classifies the live gas price and its trend,
and turns that into an execute / wait / alternative recommendation.

Native fees are integer wei; USD values are optional Decimals and only
computed when a native price is available.
"""

import logging
from collections import deque
from decimal import Decimal
from typing import Deque, Dict, List, Optional, Sequence

from ...config import GWEI, settings
from ..tokens.models import OperationKind
from .models import (
    AlternativeRoute,
    FeeBreakdown,
    FeeOptimization,
    GasPriceLevel,
    GasPriceTrend,
    Recommendation,
)

logger = logging.getLogger(__name__)


WEI_PER_NATIVE = 10**18

# Gas units per operation
DEFAULT_GAS_UNITS: Dict[OperationKind, int] = {
    OperationKind.WRAP: 120_000,
    OperationKind.BRIDGE: 180_000,
    OperationKind.UNWRAP: 150_000,
}
FALLBACK_GAS_UNITS = 100_000
APPROVAL_GAS_UNITS = 46_000

TREND_MIN_SAMPLES = 4

BASE_ROUTE_EFFICIENCY = 85
_LEVEL_EFFICIENCY = {
    GasPriceLevel.LOW: 10,
    GasPriceLevel.NORMAL: 0,
    GasPriceLevel.HIGH: -15,
    GasPriceLevel.EXTREME: -30,
}

# (wait minutes, fraction of the network fee saved by waiting)
_WAIT_ADVICE = {
    GasPriceLevel.HIGH: (30, Decimal("0.3")),
    GasPriceLevel.EXTREME: (60, Decimal("0.5")),
}


def to_native(wei: int) -> Decimal:
    return Decimal(wei) / Decimal(WEI_PER_NATIVE)


class GasPriceTracker:
    """Rolling window of observed gas prices (wei), newest last."""

    def __init__(self, max_samples: Optional[int] = None):
        self._samples: Deque[int] = deque(maxlen=max_samples or settings.gas_history_size)

    def record(self, gas_price: int) -> None:
        if gas_price < 0:
            raise ValueError("Gas price must be non-negative")
        self._samples.append(gas_price)

    @property
    def samples(self) -> List[int]:
        return list(self._samples)

    @property
    def latest(self) -> Optional[int]:
        return self._samples[-1] if self._samples else None

    def trend(self) -> GasPriceTrend:
        return gas_price_trend(self.samples)

    def __len__(self) -> int:
        return len(self._samples)


def gas_price_trend(history: Sequence[int]) -> GasPriceTrend:
    """
    Compare the mean of the last two samples with the mean of the two
    before them. More than 10% up is rising, more than 10% down is falling.
    """
    if len(history) < TREND_MIN_SAMPLES:
        return GasPriceTrend.STABLE

    prior = history[-4] + history[-3]
    recent = history[-2] + history[-1]

    # Both sides are sums of two samples, so the means compare as sums
    if recent * 10 > prior * 11:
        return GasPriceTrend.RISING
    if recent * 10 < prior * 9:
        return GasPriceTrend.FALLING
    return GasPriceTrend.STABLE


class FeeEstimator:
    """
    Computes FeeBreakdowns with configurable tier thresholds and fees.

    Usage:
        estimator = FeeEstimator()
        breakdown = estimator.estimate(OperationKind.WRAP, 8, gas_price, True, amount)
        advice = estimator.recommend(breakdown)
    """

    def __init__(
        self,
        low_below_wei: Optional[int] = None,
        normal_below_wei: Optional[int] = None,
        high_below_wei: Optional[int] = None,
        protocol_fee_bps: Optional[int] = None,
        bridge_min_fee_wei: Optional[int] = None,
        gas_units: Optional[Dict[OperationKind, int]] = None,
    ):
        self.low_below_wei = low_below_wei if low_below_wei is not None else settings.gas_low_below_gwei * GWEI
        self.normal_below_wei = (
            normal_below_wei if normal_below_wei is not None else settings.gas_normal_below_gwei * GWEI
        )
        self.high_below_wei = high_below_wei if high_below_wei is not None else settings.gas_high_below_gwei * GWEI
        self.protocol_fee_bps = protocol_fee_bps if protocol_fee_bps is not None else settings.protocol_fee_bps
        self.bridge_min_fee_wei = (
            bridge_min_fee_wei if bridge_min_fee_wei is not None else settings.bridge_min_fee_wei
        )
        self.gas_units = dict(DEFAULT_GAS_UNITS)
        if gas_units:
            self.gas_units.update(gas_units)

    def gas_price_level(self, gas_price: int) -> GasPriceLevel:
        if gas_price < self.low_below_wei:
            return GasPriceLevel.LOW
        if gas_price < self.normal_below_wei:
            return GasPriceLevel.NORMAL
        if gas_price < self.high_below_wei:
            return GasPriceLevel.HIGH
        return GasPriceLevel.EXTREME

    def protocol_fee(self, operation: OperationKind, amount: int) -> int:
        if operation != OperationKind.WRAP:
            return 0
        return amount * self.protocol_fee_bps // 10_000

    def bridge_fee(self, operation: OperationKind, quoted_fee: Optional[int] = None) -> int:
        """Messaging fee for a bridge: the quote when known, never below the minimum."""
        if operation != OperationKind.BRIDGE:
            return 0
        if quoted_fee is None:
            return self.bridge_min_fee_wei
        return max(quoted_fee, self.bridge_min_fee_wei)

    @staticmethod
    def route_efficiency(operation: OperationKind, level: GasPriceLevel, needs_approval: bool) -> int:
        score = BASE_ROUTE_EFFICIENCY + _LEVEL_EFFICIENCY[level]
        if operation == OperationKind.WRAP and not needs_approval:
            score += 5
        if operation == OperationKind.BRIDGE:
            score -= 5
        return min(100, max(0, score))

    @staticmethod
    def alternatives(
        operation: OperationKind,
        level: GasPriceLevel,
        network_fee_usd: Optional[Decimal],
    ) -> List[AlternativeRoute]:
        routes = []

        def savings(percent: int) -> Optional[Decimal]:
            if network_fee_usd is None:
                return None
            return network_fee_usd * percent / 100

        if operation == OperationKind.WRAP and level != GasPriceLevel.LOW:
            routes.append(
                AlternativeRoute(
                    name="Batch Multiple Wraps",
                    description="Wait and wrap multiple tokens together to amortize gas costs",
                    savings_percent=25,
                    savings_usd=savings(25),
                )
            )
        if operation == OperationKind.BRIDGE and level == GasPriceLevel.HIGH:
            routes.append(
                AlternativeRoute(
                    name="Wait for Lower Gas",
                    description="Bridge during off-peak hours (typically weekends)",
                    savings_percent=40,
                    savings_usd=savings(40),
                )
            )
        return routes

    def estimate(
        self,
        operation: OperationKind,
        source_decimals: int,
        live_gas_price: int,
        needs_approval: bool,
        amount: int,
        gas_history: Optional[Sequence[int]] = None,
        native_usd_price: Optional[Decimal] = None,
        quoted_bridge_fee: Optional[int] = None,
    ) -> FeeBreakdown:
        """
        Fee breakdown for one operation.

        Args:
            operation: WRAP, BRIDGE or UNWRAP (anything else uses fallback gas)
            source_decimals: Decimals of the token being spent
            live_gas_price: Current gas price in wei
            needs_approval: Whether an approval transaction precedes a wrap
            amount: Amount in source-token units
            gas_history: Recent gas prices, oldest first, for trend analysis
            native_usd_price: USD price of the native asset, if known
            quoted_bridge_fee: Messaging fee quoted by the OFT contract, if any

        Returns:
            FeeBreakdown with native, token and optional USD values
        """
        if live_gas_price < 0 or amount < 0:
            raise ValueError("Gas price and amount must be non-negative")

        gas_units = self.gas_units.get(operation, FALLBACK_GAS_UNITS)
        approval_gas = APPROVAL_GAS_UNITS if needs_approval and operation == OperationKind.WRAP else 0

        network_fee = (gas_units + approval_gas) * live_gas_price
        protocol_fee = self.protocol_fee(operation, amount)
        bridge_fee = self.bridge_fee(operation, quoted_bridge_fee)
        total_native = network_fee + bridge_fee

        level = self.gas_price_level(live_gas_price)
        trend = gas_price_trend(gas_history or [])

        network_fee_usd = approval_fee_usd = bridge_fee_usd = total_fee_usd = None
        if native_usd_price is not None:
            network_fee_usd = to_native(network_fee) * native_usd_price
            approval_fee_usd = to_native(approval_gas * live_gas_price) * native_usd_price if approval_gas else None
            bridge_fee_usd = to_native(bridge_fee) * native_usd_price if bridge_fee else None
            total_fee_usd = to_native(total_native) * native_usd_price

        suggested_wait = None
        potential_savings = None
        if level in _WAIT_ADVICE:
            suggested_wait, fraction = _WAIT_ADVICE[level]
            if network_fee_usd is not None:
                potential_savings = network_fee_usd * fraction

        breakdown = FeeBreakdown(
            operation=operation,
            gas_units=gas_units,
            approval_gas_units=approval_gas,
            gas_price=live_gas_price,
            network_fee=network_fee,
            protocol_fee=protocol_fee,
            bridge_fee=bridge_fee,
            total_native_fee=total_native,
            gas_price_level=level,
            gas_price_trend=trend,
            route_efficiency=self.route_efficiency(operation, level, needs_approval),
            source_decimals=source_decimals,
            network_fee_usd=network_fee_usd,
            approval_fee_usd=approval_fee_usd,
            bridge_fee_usd=bridge_fee_usd,
            total_fee_usd=total_fee_usd,
            suggested_wait_minutes=suggested_wait,
            potential_savings_usd=potential_savings,
            alternatives=self.alternatives(operation, level, network_fee_usd),
        )
        logger.debug(
            "Fee estimate: op=%s gas_price=%s level=%s trend=%s total_native=%s",
            operation.value,
            live_gas_price,
            level.value,
            trend.value,
            total_native,
        )
        return breakdown

    @staticmethod
    def recommend(breakdown: FeeBreakdown) -> FeeOptimization:
        level = breakdown.gas_price_level
        trend = breakdown.gas_price_trend

        if level == GasPriceLevel.EXTREME:
            return FeeOptimization(
                recommendation=Recommendation.WAIT,
                reason="Gas prices are extremely high. Consider waiting for better conditions.",
                estimated_savings_usd=breakdown.potential_savings_usd,
                estimated_wait_minutes=breakdown.suggested_wait_minutes,
            )
        if level == GasPriceLevel.HIGH and trend == GasPriceTrend.RISING:
            return FeeOptimization(
                recommendation=Recommendation.ALTERNATIVE,
                reason="Gas prices are high and rising. Consider alternative strategies.",
                alternatives=list(breakdown.alternatives),
            )
        if level == GasPriceLevel.LOW or (level == GasPriceLevel.NORMAL and trend == GasPriceTrend.FALLING):
            return FeeOptimization(
                recommendation=Recommendation.EXECUTE,
                reason="Good time to execute - gas prices are favorable.",
                favorable=True,
            )
        return FeeOptimization(
            recommendation=Recommendation.EXECUTE,
            reason="Current conditions are acceptable for execution.",
        )


_fee_estimator: Optional[FeeEstimator] = None


def get_fee_estimator() -> FeeEstimator:
    global _fee_estimator
    if _fee_estimator is None:
        _fee_estimator = FeeEstimator()
    return _fee_estimator
