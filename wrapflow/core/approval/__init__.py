"""Allowance sufficiency and approval strategy selection."""

from .engine import approval_amounts, evaluate, rank_by_cost, recommend_strategy
from .models import (
    MAX_UINT256,
    ApprovalOption,
    ApprovalPolicy,
    ApprovalState,
    ApprovalStrategy,
    SecurityRisk,
)

__all__ = [
    "MAX_UINT256",
    "ApprovalOption",
    "ApprovalPolicy",
    "ApprovalState",
    "ApprovalStrategy",
    "SecurityRisk",
    "approval_amounts",
    "evaluate",
    "rank_by_cost",
    "recommend_strategy",
]
