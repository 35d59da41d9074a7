"""
Transaction flow models and types.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..errors import ErrorKind
from ..tokens.models import OperationKind, TokenDescriptor


class StepKind(str, Enum):
    """Kinds of steps a flow can contain."""
    APPROVAL = "approval"
    DEPOSIT = "deposit"
    BRIDGE_SEND = "bridge_send"
    DESTINATION_CONFIRMATION = "destination_confirmation"   # polled, never signed
    QUEUE_REDEMPTION = "queue_redemption"
    SECURITY_DELAY = "security_delay"                       # time only, never signed


SUBMITTING_KINDS = {
    StepKind.APPROVAL,
    StepKind.DEPOSIT,
    StepKind.BRIDGE_SEND,
    StepKind.QUEUE_REDEMPTION,
}


class StepStatus(str, Enum):
    """Step lifecycle status."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidStepTransition(Exception):
    """Raised when a step is moved along an edge the lifecycle does not allow."""

    def __init__(self, from_status: StepStatus, to_status: StepStatus):
        self.from_status = from_status
        self.to_status = to_status
        self.message = f"Cannot transition step from {from_status.value} to {to_status.value}"
        super().__init__(self.message)


@dataclass
class StepError:
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TransactionStep:
    """One step of a flow. Mutated in place by the orchestrator only."""

    # Terminal states have no outgoing edges
    TRANSITIONS = {
        StepStatus.PENDING: {StepStatus.ACTIVE},
        StepStatus.ACTIVE: {StepStatus.COMPLETED, StepStatus.FAILED},
        StepStatus.COMPLETED: set(),
        StepStatus.FAILED: set(),
    }

    id: str
    kind: StepKind
    label: str
    description: str = ""
    network_id: Optional[int] = None
    status: StepStatus = StepStatus.PENDING
    tx_ref: Optional[str] = None
    estimated_seconds: Optional[int] = None
    error: Optional[StepError] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_submitting(self) -> bool:
        return self.kind in SUBMITTING_KINDS

    @property
    def is_terminal(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.FAILED)

    @property
    def outcome_unknown(self) -> bool:
        """Submitted, but whether it landed is not known yet."""
        if not self.is_submitting or self.tx_ref is None or self.status == StepStatus.COMPLETED:
            return False
        return not (self.error and self.error.kind == ErrorKind.TRANSACTION_REVERTED.value)

    def allowed_transitions(self) -> Set[StepStatus]:
        return self.TRANSITIONS[self.status]

    def _move(self, to_status: StepStatus) -> None:
        if to_status not in self.TRANSITIONS[self.status]:
            raise InvalidStepTransition(self.status, to_status)
        self.status = to_status

    def activate(self) -> None:
        self._move(StepStatus.ACTIVE)
        self.started_at = _utcnow()

    def complete(self, tx_ref: Optional[str] = None) -> None:
        self._move(StepStatus.COMPLETED)
        if tx_ref is not None:
            self.tx_ref = tx_ref
        self.finished_at = _utcnow()

    def fail(self, kind: str, message: str) -> None:
        self._move(StepStatus.FAILED)
        self.error = StepError(kind=kind, message=message)
        self.finished_at = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "description": self.description,
            "networkId": self.network_id,
            "status": self.status.value,
            "txRef": self.tx_ref,
            "estimatedSeconds": self.estimated_seconds,
            "error": self.error.to_dict() if self.error else None,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class FlowRequest:
    """What the user asked for: move ``amount`` of ``source`` into ``target``."""
    source: TokenDescriptor
    target: TokenDescriptor
    amount: int                         # source-token units
    account: Optional[str] = None       # defaults to the wallet's current account
    approval_strategy: Optional[str] = None  # exact / optimized / unlimited, default: recommended

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "amount": str(self.amount),
            "account": self.account,
            "approvalStrategy": self.approval_strategy,
        }


@dataclass
class TransactionFlow:
    """The ordered steps of one user-initiated operation attempt."""
    flow_id: str
    request: FlowRequest
    operation: OperationKind
    account: str
    steps: List[TransactionStep] = field(default_factory=list)
    canonical_amount: int = 0
    approval_amount: Optional[int] = None
    bridge_fee: Optional[int] = None
    destination_baseline: Optional[int] = None
    redemption_request_id: Optional[int] = None
    attempt: int = 1
    created_at: datetime = field(default_factory=_utcnow)

    @staticmethod
    def generate_flow_id() -> str:
        return f"flow_{secrets.token_hex(8)}"

    def step(self, kind: StepKind) -> Optional[TransactionStep]:
        for step in self.steps:
            if step.kind == kind:
                return step
        return None

    @property
    def next_step(self) -> Optional[TransactionStep]:
        """First step that is not completed."""
        for step in self.steps:
            if step.status != StepStatus.COMPLETED:
                return step
        return None

    @property
    def failed_step(self) -> Optional[TransactionStep]:
        for step in self.steps:
            if step.status == StepStatus.FAILED:
                return step
        return None

    @property
    def is_complete(self) -> bool:
        return all(step.status == StepStatus.COMPLETED for step in self.steps)

    @property
    def final_tx_ref(self) -> Optional[str]:
        """Reference of the last submitted transaction that completed."""
        for step in reversed(self.steps):
            if step.is_submitting and step.status == StepStatus.COMPLETED and step.tx_ref:
                return step.tx_ref
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flowId": self.flow_id,
            "operation": self.operation.value,
            "account": self.account,
            "amount": str(self.request.amount),
            "canonicalAmount": str(self.canonical_amount),
            "approvalAmount": str(self.approval_amount) if self.approval_amount is not None else None,
            "bridgeFee": str(self.bridge_fee) if self.bridge_fee is not None else None,
            "redemptionRequestId": (
                str(self.redemption_request_id) if self.redemption_request_id is not None else None
            ),
            "attempt": self.attempt,
            "steps": [step.to_dict() for step in self.steps],
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class FlowResult:
    """Outcome of executing a flow to its last executing step."""
    flow_id: str
    operation: OperationKind
    final_tx_ref: Optional[str]
    steps: List[TransactionStep]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flowId": self.flow_id,
            "operation": self.operation.value,
            "finalTxRef": self.final_tx_ref,
            "steps": [step.to_dict() for step in self.steps],
        }


@dataclass
class PreparedCall:
    """A contract call ready for the wallet to sign and broadcast."""
    network_id: int
    from_address: str
    to_address: str
    data: str                       # encoded calldata (hex)
    value: int = 0                  # native wei attached
    gas_limit: Optional[int] = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to an eth_sendTransaction parameter object."""
        tx = {
            "from": self.from_address,
            "to": self.to_address,
            "data": self.data,
            "value": hex(self.value),
            "chainId": hex(self.network_id),
        }
        if self.gas_limit is not None:
            tx["gas"] = hex(self.gas_limit)
        return tx


@dataclass
class Receipt:
    tx_ref: str
    success: bool
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
