"""
Decimal normalization between token precisions and the canonical unit.

Every token amount is an integer in the token's smallest unit. The canonical
token has 8 decimals, so wrapping an 18-decimal token drops its last 10
digits and wrapping a 6-decimal token scales it up by 100. The dropped
digits are never re-introduced on the way back.

All arithmetic is on Python ints; floats never touch an amount.
"""

import re
from typing import Optional

from ..errors import InvalidAmount, UnsupportedPrecision
from .models import CANONICAL_DECIMALS, MAX_DECIMALS, AmountValue


_AMOUNT_PATTERN = re.compile(r"^(\d*)(?:\.(\d*))?$")


def _check_decimals(decimals: int) -> None:
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise UnsupportedPrecision(f"Decimals must be an integer, got {decimals!r}")
    if decimals < 0 or decimals > MAX_DECIMALS:
        raise UnsupportedPrecision(
            f"Decimals {decimals} outside supported range 0..{MAX_DECIMALS}"
        )


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise InvalidAmount(f"Amount must be non-negative, got {amount}")


def convert_decimals(amount: int, from_decimals: int, to_decimals: int) -> int:
    """
    Re-express an integer amount in another precision.

    Scaling up is exact; scaling down floors (truncates toward zero).
    """
    _check_amount(amount)
    _check_decimals(from_decimals)
    _check_decimals(to_decimals)

    if from_decimals == to_decimals:
        return amount
    if from_decimals < to_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    return amount // 10 ** (from_decimals - to_decimals)


def to_canonical(amount: int, source_decimals: int) -> AmountValue:
    """Convert a source-token amount into canonical units."""
    return AmountValue(
        convert_decimals(amount, source_decimals, CANONICAL_DECIMALS),
        CANONICAL_DECIMALS,
    )


def from_canonical(amount: int, target_decimals: int) -> AmountValue:
    """Convert a canonical amount into a target token's units."""
    return AmountValue(
        convert_decimals(amount, CANONICAL_DECIMALS, target_decimals),
        target_decimals,
    )


def parse_units(text: str, decimals: int) -> int:
    """
    Parse a human decimal string ("1.5") into the token's smallest unit.

    An empty string parses to 0. More fractional digits than the token
    supports is rejected rather than silently rounded.
    """
    _check_decimals(decimals)
    cleaned = (text or "").strip().replace(",", "")
    if cleaned == "":
        return 0

    match = _AMOUNT_PATTERN.match(cleaned)
    if not match or cleaned == ".":
        raise InvalidAmount(f"Invalid amount: {text}")

    whole, fraction = match.group(1) or "0", match.group(2) or ""
    if len(fraction) > decimals:
        raise InvalidAmount(
            f"Amount {text} has more than {decimals} decimal places"
        )
    return int(whole) * 10**decimals + int(fraction.ljust(decimals, "0") or "0")


def format_units(amount: int, decimals: int, display_decimals: Optional[int] = None) -> str:
    """
    Render an integer amount as a decimal string.

    With ``display_decimals`` the value is truncated (never rounded up) to that
    many places, so a displayed balance is never more than what is held.
    """
    _check_amount(amount)
    _check_decimals(decimals)

    whole, remainder = divmod(amount, 10**decimals)
    fraction = str(remainder).rjust(decimals, "0") if decimals else ""

    if display_decimals is not None:
        fraction = fraction[:display_decimals].ljust(display_decimals, "0")
        return f"{whole}.{fraction}" if fraction else str(whole)

    fraction = fraction.rstrip("0")
    return f"{whole}.{fraction}" if fraction else str(whole)


def minimum_in_token_units(minimum_canonical: int, decimals: int) -> int:
    """
    Smallest token amount whose canonical value reaches ``minimum_canonical``.

    For tokens with more than 8 decimals this is the canonical minimum scaled
    up, since anything below it truncates to less than the minimum.
    """
    return convert_decimals(minimum_canonical, CANONICAL_DECIMALS, decimals)


def meets_minimum(amount: int, decimals: int, minimum_canonical: int) -> bool:
    return to_canonical(amount, decimals).amount >= minimum_canonical
