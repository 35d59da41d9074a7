"""Fee breakdowns, gas price tiers and trend tracking."""

from .estimator import (
    APPROVAL_GAS_UNITS,
    DEFAULT_GAS_UNITS,
    FALLBACK_GAS_UNITS,
    FeeEstimator,
    GasPriceTracker,
    gas_price_trend,
    get_fee_estimator,
)
from .models import (
    AlternativeRoute,
    FeeBreakdown,
    FeeOptimization,
    GasPriceLevel,
    GasPriceTrend,
    Recommendation,
)

__all__ = [
    "APPROVAL_GAS_UNITS",
    "DEFAULT_GAS_UNITS",
    "FALLBACK_GAS_UNITS",
    "FeeEstimator",
    "GasPriceTracker",
    "gas_price_trend",
    "get_fee_estimator",
    "AlternativeRoute",
    "FeeBreakdown",
    "FeeOptimization",
    "GasPriceLevel",
    "GasPriceTrend",
    "Recommendation",
]
