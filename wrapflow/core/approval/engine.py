"""
Approval engine.

Decides whether the wrapper needs a larger allowance and ranks the three
ways of granting one. Pure: the caller supplies the allowance, the amount
and the live gas price, and gets back an ApprovalState snapshot.
"""

import logging
from typing import Dict, List, Optional

from ..tokens.normalizer import format_units
from .models import (
    MAX_UINT256,
    ApprovalOption,
    ApprovalPolicy,
    ApprovalState,
    ApprovalStrategy,
    SecurityRisk,
)

logger = logging.getLogger(__name__)


_RISK = {
    ApprovalStrategy.EXACT: SecurityRisk.LOW,
    ApprovalStrategy.OPTIMIZED: SecurityRisk.LOW,
    ApprovalStrategy.UNLIMITED: SecurityRisk.HIGH,
}


def approval_amounts(required_amount: int, policy: ApprovalPolicy) -> Dict[ApprovalStrategy, int]:
    return {
        ApprovalStrategy.EXACT: required_amount,
        ApprovalStrategy.OPTIMIZED: required_amount * policy.optimized_percent // 100,
        ApprovalStrategy.UNLIMITED: MAX_UINT256,
    }


def recommend_strategy(
    required_amount: int,
    live_gas_price: Optional[int],
    decimals: int,
    policy: ApprovalPolicy,
) -> ApprovalStrategy:
    """
    Optimized by default. Unlimited when gas is expensive, since later
    approvals are then skipped. Exact when the amount itself is large,
    which takes precedence over the gas rule.
    """
    if required_amount > policy.large_amount_threshold(decimals):
        return ApprovalStrategy.EXACT
    if live_gas_price is not None and live_gas_price > policy.high_gas_price_wei:
        return ApprovalStrategy.UNLIMITED
    return ApprovalStrategy.OPTIMIZED


def build_options(
    required_amount: int,
    decimals: int,
    symbol: str,
    recommended: ApprovalStrategy,
    policy: ApprovalPolicy,
    gas_estimates: Optional[Dict[ApprovalStrategy, int]] = None,
) -> List[ApprovalOption]:
    amounts = approval_amounts(required_amount, policy)
    gas_estimates = gas_estimates or {}

    descriptions = {
        ApprovalStrategy.EXACT: (
            "Exact Amount",
            f"Approve exactly {format_units(amounts[ApprovalStrategy.EXACT], decimals)} {symbol}",
        ),
        ApprovalStrategy.OPTIMIZED: (
            "Optimized",
            f"Approve {format_units(amounts[ApprovalStrategy.OPTIMIZED], decimals)} {symbol} "
            f"({policy.optimized_percent}% of needed)",
        ),
        ApprovalStrategy.UNLIMITED: (
            "Unlimited",
            f"Approve unlimited {symbol} (no future approvals needed)",
        ),
    }

    options = []
    for strategy in (ApprovalStrategy.EXACT, ApprovalStrategy.OPTIMIZED, ApprovalStrategy.UNLIMITED):
        label, description = descriptions[strategy]
        options.append(
            ApprovalOption(
                strategy=strategy,
                amount=amounts[strategy],
                gas_estimate=gas_estimates.get(strategy) or policy.default_gas,
                security_risk=_RISK[strategy],
                label=label,
                description=description,
                recommended=strategy == recommended,
            )
        )
    return options


def evaluate(
    current_allowance: int,
    required_amount: int,
    live_gas_price: Optional[int],
    decimals: int = 8,
    symbol: str = "",
    policy: Optional[ApprovalPolicy] = None,
    gas_estimates: Optional[Dict[ApprovalStrategy, int]] = None,
) -> ApprovalState:
    """
    Evaluate allowance sufficiency for ``required_amount``.

    Args:
        current_allowance: Allowance the owner has granted the wrapper
        required_amount: Amount about to be deposited, in token units
        live_gas_price: Current gas price in wei, None if unknown
        decimals: Token decimals, used for the large-amount threshold
        symbol: Token symbol for labels
        policy: Thresholds; defaults to the configured policy
        gas_estimates: Measured approve() gas per strategy, if available

    Returns:
        ApprovalState with the options ranked exact, optimized, unlimited
    """
    policy = policy or ApprovalPolicy.from_settings()
    if required_amount < 0 or current_allowance < 0:
        raise ValueError("Allowance and required amount must be non-negative")

    is_required = required_amount > 0 and current_allowance < required_amount
    recommended = recommend_strategy(required_amount, live_gas_price, decimals, policy)
    options = build_options(required_amount, decimals, symbol, recommended, policy, gas_estimates)
    chosen = next(option for option in options if option.recommended)

    token = symbol or "token"
    if required_amount == 0:
        message = "Enter an amount to check approval"
    elif not is_required:
        message = f"You have sufficient {token} approval"
    else:
        message = f"Approval needed for {format_units(required_amount, decimals)} {token}"

    logger.debug(
        "Approval evaluated: required=%s allowance=%s needs_approval=%s strategy=%s",
        required_amount,
        current_allowance,
        is_required,
        recommended.value,
    )

    return ApprovalState(
        current_allowance=current_allowance,
        required_amount=required_amount,
        is_required=is_required,
        recommended_strategy=recommended,
        security_risk=chosen.security_risk,
        gas_estimate=chosen.gas_estimate,
        message=message,
        options=options,
    )


def rank_by_cost(options: List[ApprovalOption], gas_price_wei: int) -> List[ApprovalOption]:
    """Options ordered by native gas cost, cheapest first."""
    return sorted(options, key=lambda option: option.gas_cost(gas_price_wei))
