"""Token models, decimal normalization and operation classification."""

from .classifier import classify, suggest_destination
from .models import (
    CANONICAL_DECIMALS,
    MAX_DECIMALS,
    AmountValue,
    OperationKind,
    TokenDescriptor,
)
from .normalizer import (
    convert_decimals,
    format_units,
    from_canonical,
    meets_minimum,
    minimum_in_token_units,
    parse_units,
    to_canonical,
)

__all__ = [
    "CANONICAL_DECIMALS",
    "MAX_DECIMALS",
    "AmountValue",
    "OperationKind",
    "TokenDescriptor",
    "classify",
    "suggest_destination",
    "convert_decimals",
    "format_units",
    "from_canonical",
    "meets_minimum",
    "minimum_in_token_units",
    "parse_units",
    "to_canonical",
]
