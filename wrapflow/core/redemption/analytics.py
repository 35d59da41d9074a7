"""
Redemption Queue Analytics.

Pure functions of (requests, now, fixed delay). Nothing here is stored:
readiness, queue position and progress are recomputed on every poll tick.

Queue order is FIFO by request time. Requests sharing a timestamp are
ordered by request id, lowest first, then by owner address.
"""

import math
from collections import OrderedDict
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Sequence

from ...config import settings
from ..networks import all_tokens
from ..tokens.models import TokenDescriptor
from .models import (
    CompletionEstimate,
    QueueAnalytics,
    QueueEntry,
    QueueHealth,
    QueueStats,
    RedemptionRequest,
    TokenDistribution,
    UserAnalytics,
)


SECONDS_PER_DAY = 86_400
SECONDS_PER_HOUR = 3_600

# Queue health thresholds
BACKLOG_LIMIT = 100
MIN_VELOCITY_PER_DAY = 1.0
READY_LIMIT = 10
MIN_CLEAR_VELOCITY = 0.1


def ready_time(request: RedemptionRequest, fixed_delay: int) -> int:
    return request.request_time + fixed_delay


def is_ready(request: RedemptionRequest, now: int, fixed_delay: int) -> bool:
    return not request.fulfilled and now - request.request_time >= fixed_delay


def time_remaining(request: RedemptionRequest, now: int, fixed_delay: int) -> int:
    return max(0, ready_time(request, fixed_delay) - now)


def progress(request: RedemptionRequest, now: int, fixed_delay: int) -> Fraction:
    """Elapsed share of the delay, clamped to [0, 1]."""
    if fixed_delay <= 0:
        return Fraction(1)
    elapsed = Fraction(now - request.request_time, fixed_delay)
    return min(Fraction(1), max(Fraction(0), elapsed))


def queue_positions(requests: Iterable[RedemptionRequest]) -> Dict[tuple, int]:
    """1-based position of each unfulfilled request, keyed by RedemptionRequest.key."""
    pending = sorted((r for r in requests if not r.fulfilled), key=lambda r: r.sort_key)
    return {request.key: index for index, request in enumerate(pending, start=1)}


def position(request: RedemptionRequest, requests: Iterable[RedemptionRequest]) -> Optional[int]:
    """Position of ``request`` among unfulfilled requests; None when fulfilled."""
    if request.fulfilled:
        return None
    ahead = sum(
        1
        for other in requests
        if not other.fulfilled and other.key != request.key and other.sort_key < request.sort_key
    )
    return ahead + 1


def completion_estimate(request: RedemptionRequest, now: int, fixed_delay: int) -> CompletionEstimate:
    remaining = time_remaining(request, now, fixed_delay)
    return CompletionEstimate(
        id=request.id,
        completion_time=ready_time(request, fixed_delay),
        time_remaining=remaining,
        days_remaining=math.ceil(remaining / SECONDS_PER_DAY),
        hours_remaining=math.ceil((remaining % SECONDS_PER_DAY) / SECONDS_PER_HOUR),
        is_ready=is_ready(request, now, fixed_delay),
    )


def _stats(requests: Sequence[RedemptionRequest], now: int, fixed_delay: int) -> QueueStats:
    stats = QueueStats(total_count=len(requests))
    waits: List[int] = []

    for request in requests:
        stats.total_canonical += request.canonical_amount
        stats.total_underlying += request.underlying_amount
        if request.fulfilled:
            stats.completed_count += 1
            stats.completed_canonical += request.canonical_amount
            # Fulfillment time is not on chain; the wait runs to now
            waits.append(now - request.request_time)
        elif is_ready(request, now, fixed_delay):
            stats.ready_count += 1
            stats.ready_canonical += request.canonical_amount
        else:
            stats.pending_count += 1
            stats.pending_canonical += request.canonical_amount

    if waits:
        stats.average_wait_seconds = Fraction(sum(waits), len(waits))
        stats.longest_wait_seconds = max(waits)
        stats.shortest_wait_seconds = min(waits)
    return stats


def _token_distribution(
    requests: Sequence[RedemptionRequest],
    now: int,
    fixed_delay: int,
    tokens: Iterable[TokenDescriptor],
) -> List[TokenDistribution]:
    known = {token.address.lower(): token for token in tokens}
    buckets: "OrderedDict[str, TokenDistribution]" = OrderedDict()

    for request in requests:
        key = request.token.lower()
        item = buckets.get(key)
        if item is None:
            descriptor = known.get(key)
            item = TokenDistribution(
                token=request.token,
                symbol=descriptor.symbol if descriptor else "Unknown",
                name=descriptor.name if descriptor else "Unknown Token",
                decimals=descriptor.decimals if descriptor else 18,
            )
            buckets[key] = item

        item.request_count += 1
        item.total_amount += request.underlying_amount
        if request.fulfilled:
            item.completed_amount += request.underlying_amount
        elif is_ready(request, now, fixed_delay):
            item.ready_amount += request.underlying_amount
        else:
            item.pending_amount += request.underlying_amount

    return list(buckets.values())


def _user_analytics(
    owner: str,
    requests: Sequence[RedemptionRequest],
    now: int,
    fixed_delay: int,
) -> UserAnalytics:
    mine = [r for r in requests if r.owner.lower() == owner.lower()]
    analytics = UserAnalytics(owner=owner, total_count=len(mine))
    if not mine:
        return analytics

    open_ready_times = []
    for request in mine:
        analytics.total_canonical += request.canonical_amount
        if request.fulfilled:
            analytics.completed_count += 1
            continue
        open_ready_times.append(ready_time(request, fixed_delay))
        if is_ready(request, now, fixed_delay):
            analytics.ready_count += 1
        else:
            analytics.pending_count += 1

    analytics.average_canonical = analytics.total_canonical // len(mine)
    if open_ready_times:
        analytics.latest_completion_time = max(open_ready_times)
        upcoming = [t for t in open_ready_times if t > now]
        analytics.next_ready_time = min(upcoming) if upcoming else None
    return analytics


def _queue_health(
    requests: Sequence[RedemptionRequest],
    stats: QueueStats,
    now: int,
) -> QueueHealth:
    backlog = stats.pending_count + stats.ready_count

    if requests:
        oldest = min(r.request_time for r in requests)
        days_observed = max(1.0, (now - oldest) / SECONDS_PER_DAY)
        velocity = stats.completed_count / days_observed
    else:
        velocity = 0.0

    clear_seconds = int(backlog / max(MIN_CLEAR_VELOCITY, velocity) * SECONDS_PER_DAY) if backlog else 0

    bottlenecks = []
    if backlog > BACKLOG_LIMIT:
        bottlenecks.append("High queue volume")
    if requests and velocity < MIN_VELOCITY_PER_DAY:
        bottlenecks.append("Low processing velocity")
    if stats.ready_count > READY_LIMIT:
        bottlenecks.append("Ready redemptions awaiting fulfillment")

    return QueueHealth(
        velocity_per_day=velocity,
        backlog=backlog,
        estimated_clear_seconds=clear_seconds,
        average_processing_seconds=(
            float(stats.average_wait_seconds) if stats.average_wait_seconds is not None else None
        ),
        bottlenecks=bottlenecks,
    )


def analyze(
    requests: Iterable[RedemptionRequest],
    now: int,
    fixed_delay: Optional[int] = None,
    owner: Optional[str] = None,
    tokens: Optional[Iterable[TokenDescriptor]] = None,
) -> QueueAnalytics:
    """
    Derive the full queue picture for one poll tick.

    Args:
        requests: Redemption requests in any order
        now: Current unix time in seconds
        fixed_delay: Security delay in seconds; defaults to the configured delay
        owner: When given, per-user analytics are computed for this address
        tokens: Token descriptors used to label the per-token distribution

    Returns:
        QueueAnalytics with entries sorted in queue order
    """
    if fixed_delay is None:
        fixed_delay = settings.redemption_delay_seconds
    if tokens is None:
        tokens = all_tokens()

    ordered = sorted(requests, key=lambda r: r.sort_key)
    positions = queue_positions(ordered)

    entries = [
        QueueEntry(
            request=request,
            position=positions.get(request.key),
            ready_time=ready_time(request, fixed_delay),
            time_remaining=time_remaining(request, now, fixed_delay),
            is_ready=is_ready(request, now, fixed_delay),
            progress=progress(request, now, fixed_delay),
        )
        for request in ordered
    ]
    stats = _stats(ordered, now, fixed_delay)

    return QueueAnalytics(
        now=now,
        fixed_delay=fixed_delay,
        entries=entries,
        completion_estimates=[completion_estimate(r, now, fixed_delay) for r in ordered],
        stats=stats,
        token_distribution=_token_distribution(ordered, now, fixed_delay, tokens),
        queue_health=_queue_health(ordered, stats, now),
        user=_user_analytics(owner, ordered, now, fixed_delay) if owner else None,
    )
