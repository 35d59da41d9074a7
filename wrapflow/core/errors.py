"""
Error Taxonomy

Every failure the orchestration core can surface carries a distinct kind,
a human-readable message and a suggested action so callers can decide
whether to offer "retry", "switch network" or "adjust amount".
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Distinct error kinds; never collapsed into a generic failure."""

    INVALID_AMOUNT = "invalid_amount"
    UNSUPPORTED_PRECISION = "unsupported_precision"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    BELOW_MINIMUM_AMOUNT = "below_minimum_amount"
    NO_OPERATION_FOR_PAIR = "no_operation_for_pair"
    INSUFFICIENT_RESERVE = "insufficient_reserve"
    INVALID_APPROVAL_STRATEGY = "invalid_approval_strategy"
    NETWORK_MISMATCH = "network_mismatch"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    APPROVAL_REJECTED = "approval_rejected"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSACTION_REVERTED = "transaction_reverted"
    RECEIPT_TIMEOUT = "receipt_timeout"
    DESTINATION_CONFIRMATION_TIMEOUT = "destination_confirmation_timeout"
    FLOW_IN_PROGRESS = "flow_in_progress"
    FLOW_HALTED = "flow_halted"
    GATEWAY_ERROR = "gateway_error"


class SuggestedAction(str, Enum):
    """What the presentation layer should offer the user."""

    RETRY = "retry"
    SWITCH_NETWORK = "switch_network"
    ADJUST_AMOUNT = "adjust_amount"
    NONE = "none"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    suggested_action: SuggestedAction = SuggestedAction.NONE
    step_id: Optional[str] = None
    tx_ref: Optional[str] = None
    network_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


class OrchestrationError(Exception):
    """Base class for every error raised by the core."""

    kind: ErrorKind = ErrorKind.GATEWAY_ERROR
    default_action: SuggestedAction = SuggestedAction.NONE
    # Raised before any chain write; nothing to resume
    is_validation: bool = False

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(suggested_action=self.default_action)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "suggestedAction": self.context.suggested_action.value,
            "stepId": self.context.step_id,
            "txRef": self.context.tx_ref,
            "networkId": self.context.network_id,
            "details": self.context.details,
        }


# Validation errors: detected before any chain write


class InvalidAmount(OrchestrationError):
    kind = ErrorKind.INVALID_AMOUNT
    default_action = SuggestedAction.ADJUST_AMOUNT
    is_validation = True


class UnsupportedPrecision(OrchestrationError):
    kind = ErrorKind.UNSUPPORTED_PRECISION
    is_validation = True


class InsufficientBalance(OrchestrationError):
    kind = ErrorKind.INSUFFICIENT_BALANCE
    default_action = SuggestedAction.ADJUST_AMOUNT
    is_validation = True

    def __init__(self, required: int, available: int, symbol: str = ""):
        super().__init__(
            f"Insufficient {symbol or 'token'} balance: need {required}, have {available}",
            ErrorContext(
                suggested_action=SuggestedAction.ADJUST_AMOUNT,
                details={"required": str(required), "available": str(available), "symbol": symbol},
            ),
        )
        self.required = required
        self.available = available


class BelowMinimumAmount(OrchestrationError):
    kind = ErrorKind.BELOW_MINIMUM_AMOUNT
    default_action = SuggestedAction.ADJUST_AMOUNT
    is_validation = True

    def __init__(self, amount_canonical: int, minimum_canonical: int):
        super().__init__(
            f"Amount {amount_canonical} is below the minimum of {minimum_canonical} canonical units",
            ErrorContext(
                suggested_action=SuggestedAction.ADJUST_AMOUNT,
                details={"amount": str(amount_canonical), "minimum": str(minimum_canonical)},
            ),
        )


class NoOperationForPair(OrchestrationError):
    kind = ErrorKind.NO_OPERATION_FOR_PAIR
    default_action = SuggestedAction.ADJUST_AMOUNT
    is_validation = True


class InsufficientReserve(OrchestrationError):
    kind = ErrorKind.INSUFFICIENT_RESERVE
    default_action = SuggestedAction.ADJUST_AMOUNT
    is_validation = True

    def __init__(self, owed: int, reserve: int, symbol: str = ""):
        super().__init__(
            f"Insufficient {symbol or 'token'} reserve: redemption owes {owed}, available {reserve}",
            ErrorContext(
                suggested_action=SuggestedAction.ADJUST_AMOUNT,
                details={"owed": str(owed), "reserve": str(reserve), "symbol": symbol},
            ),
        )



class InvalidApprovalStrategy(OrchestrationError):
    kind = ErrorKind.INVALID_APPROVAL_STRATEGY
    is_validation = True


# Execution-time errors


class NetworkMismatch(OrchestrationError):
    kind = ErrorKind.NETWORK_MISMATCH
    default_action = SuggestedAction.SWITCH_NETWORK

    def __init__(self, required: int, current: Optional[int], step_id: Optional[str] = None):
        super().__init__(
            f"Wallet is on network {current}, step requires network {required}",
            ErrorContext(
                suggested_action=SuggestedAction.SWITCH_NETWORK,
                step_id=step_id,
                network_id=required,
                details={"current": current},
            ),
        )
        self.required = required
        self.current = current


class InsufficientAllowance(OrchestrationError):
    kind = ErrorKind.INSUFFICIENT_ALLOWANCE
    default_action = SuggestedAction.RETRY


class ApprovalRejected(OrchestrationError):
    kind = ErrorKind.APPROVAL_REJECTED
    default_action = SuggestedAction.RETRY


class TransactionRejected(OrchestrationError):
    kind = ErrorKind.TRANSACTION_REJECTED
    default_action = SuggestedAction.RETRY


class TransactionReverted(OrchestrationError):
    kind = ErrorKind.TRANSACTION_REVERTED
    default_action = SuggestedAction.RETRY


class ReceiptTimeout(OrchestrationError):
    kind = ErrorKind.RECEIPT_TIMEOUT
    default_action = SuggestedAction.RETRY


class DestinationConfirmationTimeout(OrchestrationError):
    kind = ErrorKind.DESTINATION_CONFIRMATION_TIMEOUT
    default_action = SuggestedAction.RETRY


class FlowInProgress(OrchestrationError):
    kind = ErrorKind.FLOW_IN_PROGRESS


class FlowHalted(OrchestrationError):
    """A step failed; the flow must go through retry() before executing again."""

    kind = ErrorKind.FLOW_HALTED
    default_action = SuggestedAction.RETRY


class GatewayError(OrchestrationError):
    """A chain read or write failed at the transport level."""

    kind = ErrorKind.GATEWAY_ERROR
    default_action = SuggestedAction.RETRY


class WalletRejection(Exception):
    """Raised by wallet-backed gateways when the user declines to sign."""


_REJECTION_PATTERNS = (
    "user rejected",
    "user denied",
    "rejected the request",
    "request rejected",
    "cancelled by user",
)

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001


def is_user_rejection(error: BaseException) -> bool:
    """
    Decide whether a submission failure means the user declined to sign.

    Wallets report this inconsistently: some raise a typed error, some an
    RPC error with code 4001, some only a message.
    """
    if isinstance(error, WalletRejection):
        return True
    if getattr(error, "code", None) == USER_REJECTED_CODE:
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in _REJECTION_PATTERNS)
