"""Redemption queue readiness, position and aggregate analytics."""

from .analytics import (
    analyze,
    completion_estimate,
    is_ready,
    position,
    progress,
    queue_positions,
    ready_time,
    time_remaining,
)
from .models import (
    CompletionEstimate,
    QueueAnalytics,
    QueueEntry,
    QueueHealth,
    QueueStats,
    RedemptionRequest,
    TokenDistribution,
    UserAnalytics,
    redemption_request_id,
)

__all__ = [
    "analyze",
    "completion_estimate",
    "is_ready",
    "position",
    "progress",
    "queue_positions",
    "redemption_request_id",
    "ready_time",
    "time_remaining",
    "CompletionEstimate",
    "QueueAnalytics",
    "QueueEntry",
    "QueueHealth",
    "QueueStats",
    "RedemptionRequest",
    "TokenDistribution",
    "UserAnalytics",
]
