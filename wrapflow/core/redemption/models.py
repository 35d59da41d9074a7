"""
Redemption queue models.
"""

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, List, Optional

from eth_utils import keccak


def redemption_request_id(owner: str, request_time: int) -> int:
    """
    Stable 64-bit id for the request an owner queued at ``request_time``.

    The queue contract exposes no id of its own and keeps one slot per
    owner, so (owner, request time) identifies a request.
    """
    digest = keccak(text=f"{owner.lower()}:{request_time}")
    return int.from_bytes(digest[:8], "big")


@dataclass(frozen=True)
class RedemptionRequest:
    """A queued redemption as read from the redemption queue contract."""
    id: int
    owner: str
    token: str                  # underlying token address
    canonical_amount: int       # sovaBTC burned
    underlying_amount: int      # underlying owed, in the token's units
    request_time: int           # unix seconds
    fulfilled: bool = False

    @property
    def key(self) -> tuple:
        """Identity across owners; ids alone may repeat between owners."""
        return (self.owner.lower(), self.id)

    @property
    def sort_key(self) -> tuple:
        return (self.request_time, self.id, self.owner.lower())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "owner": self.owner,
            "token": self.token,
            "canonicalAmount": str(self.canonical_amount),
            "underlyingAmount": str(self.underlying_amount),
            "requestTime": self.request_time,
            "fulfilled": self.fulfilled,
        }


@dataclass
class QueueEntry:
    """Derived state of one request at a point in time."""
    request: RedemptionRequest
    position: Optional[int]             # None once fulfilled
    ready_time: int
    time_remaining: int
    is_ready: bool
    progress: Fraction

    @property
    def progress_percent(self) -> float:
        return float(self.progress * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.request.to_dict(),
            "position": self.position,
            "readyTime": self.ready_time,
            "timeRemaining": self.time_remaining,
            "isReady": self.is_ready,
            "progress": float(self.progress),
        }


@dataclass
class CompletionEstimate:
    id: int
    completion_time: int
    time_remaining: int
    days_remaining: int
    hours_remaining: int
    is_ready: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "completionTime": self.completion_time,
            "timeRemaining": self.time_remaining,
            "daysRemaining": self.days_remaining,
            "hoursRemaining": self.hours_remaining,
            "isReady": self.is_ready,
        }


@dataclass
class QueueStats:
    """Counts and canonical totals per bucket; wait times over fulfilled requests only."""
    total_count: int = 0
    pending_count: int = 0
    ready_count: int = 0
    completed_count: int = 0
    total_canonical: int = 0
    pending_canonical: int = 0
    ready_canonical: int = 0
    completed_canonical: int = 0
    total_underlying: int = 0
    average_wait_seconds: Optional[Fraction] = None
    longest_wait_seconds: Optional[int] = None
    shortest_wait_seconds: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalCount": self.total_count,
            "pendingCount": self.pending_count,
            "readyCount": self.ready_count,
            "completedCount": self.completed_count,
            "totalCanonical": str(self.total_canonical),
            "pendingCanonical": str(self.pending_canonical),
            "readyCanonical": str(self.ready_canonical),
            "completedCanonical": str(self.completed_canonical),
            "totalUnderlying": str(self.total_underlying),
            "averageWaitSeconds": None if self.average_wait_seconds is None else float(self.average_wait_seconds),
            "longestWaitSeconds": self.longest_wait_seconds,
            "shortestWaitSeconds": self.shortest_wait_seconds,
        }


@dataclass
class TokenDistribution:
    """Underlying amounts owed per token, split by bucket."""
    token: str
    symbol: str
    name: str
    decimals: int
    request_count: int = 0
    total_amount: int = 0
    pending_amount: int = 0
    ready_amount: int = 0
    completed_amount: int = 0

    @property
    def average_amount(self) -> int:
        return self.total_amount // self.request_count if self.request_count else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "requestCount": self.request_count,
            "totalAmount": str(self.total_amount),
            "pendingAmount": str(self.pending_amount),
            "readyAmount": str(self.ready_amount),
            "completedAmount": str(self.completed_amount),
            "averageAmount": str(self.average_amount),
        }


@dataclass
class UserAnalytics:
    owner: str
    total_count: int = 0
    pending_count: int = 0
    ready_count: int = 0
    completed_count: int = 0
    total_canonical: int = 0
    average_canonical: int = 0
    latest_completion_time: Optional[int] = None
    next_ready_time: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "totalCount": self.total_count,
            "pendingCount": self.pending_count,
            "readyCount": self.ready_count,
            "completedCount": self.completed_count,
            "totalCanonical": str(self.total_canonical),
            "averageCanonical": str(self.average_canonical),
            "latestCompletionTime": self.latest_completion_time,
            "nextReadyTime": self.next_ready_time,
        }


@dataclass
class QueueHealth:
    velocity_per_day: float
    backlog: int
    estimated_clear_seconds: int
    average_processing_seconds: Optional[float]
    bottlenecks: List[str] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return not self.bottlenecks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "velocityPerDay": self.velocity_per_day,
            "backlog": self.backlog,
            "estimatedClearSeconds": self.estimated_clear_seconds,
            "averageProcessingSeconds": self.average_processing_seconds,
            "isHealthy": self.is_healthy,
            "bottlenecks": list(self.bottlenecks),
        }


@dataclass
class QueueAnalytics:
    now: int
    fixed_delay: int
    entries: List[QueueEntry]
    completion_estimates: List[CompletionEstimate]
    stats: QueueStats
    token_distribution: List[TokenDistribution]
    queue_health: QueueHealth
    user: Optional[UserAnalytics] = None

    def entry_for(self, request_id: int, owner: Optional[str] = None) -> Optional[QueueEntry]:
        for entry in self.entries:
            if entry.request.id != request_id:
                continue
            if owner is None or entry.request.owner.lower() == owner.lower():
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "now": self.now,
            "fixedDelay": self.fixed_delay,
            "entries": [entry.to_dict() for entry in self.entries],
            "completionEstimates": [estimate.to_dict() for estimate in self.completion_estimates],
            "stats": self.stats.to_dict(),
            "tokenDistribution": [item.to_dict() for item in self.token_distribution],
            "queueHealth": self.queue_health.to_dict(),
            "user": self.user.to_dict() if self.user else None,
        }
