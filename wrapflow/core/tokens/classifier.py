"""
Operation classification for a (from, to) token pair.
"""

from typing import Iterable, Optional

from .models import OperationKind, TokenDescriptor


def classify(source: TokenDescriptor, target: TokenDescriptor) -> OperationKind:
    """
    Decide which operation moving from ``source`` to ``target`` implies.

    Total over all pairs: anything that is not a wrap, unwrap or bridge
    is INVALID, including selecting the same token twice.
    """
    if source.same_token(target):
        return OperationKind.INVALID

    same_network = source.network_id == target.network_id

    if not source.is_canonical and target.is_canonical and same_network:
        return OperationKind.WRAP
    if source.is_canonical and not target.is_canonical and same_network:
        return OperationKind.UNWRAP
    if source.is_canonical and target.is_canonical and not same_network:
        return OperationKind.BRIDGE
    return OperationKind.INVALID


def suggest_destination(
    source: TokenDescriptor,
    tokens: Iterable[TokenDescriptor],
) -> Optional[TokenDescriptor]:
    """Default counterpart for a freshly selected source token."""
    candidates = list(tokens)

    if not source.is_canonical:
        for token in candidates:
            if token.is_canonical and token.network_id == source.network_id:
                return token
        return None

    for token in candidates:
        if token.is_canonical and token.network_id != source.network_id:
            return token
    for token in candidates:
        if token.network_id == source.network_id and token.can_wrap:
            return token
    return None
