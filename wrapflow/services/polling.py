"""
Periodic chain reads.

Each poller is its own asyncio task with its own interval and can be
cancelled on its own. Subscribers get every new observation; the last
observed value is kept and a failed read leaves it untouched.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from ..config import settings
from ..core.fees import GasPriceTracker
from ..core.redemption.models import RedemptionRequest
from ..core.tokens.models import TokenDescriptor
from ..providers.base import ChainGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")
Subscriber = Callable[[T], Any]


class Poller(Generic[T]):
    """Calls ``fetch`` every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        interval_seconds: float,
    ) -> None:
        self.name = name
        self._fetch = fetch
        self.interval_seconds = interval_seconds
        self._subscribers: List[Subscriber] = []
        self._task: asyncio.Task | None = None
        self.last_value: Optional[T] = None
        self.last_updated: Optional[datetime] = None
        self.last_error: Optional[str] = None

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"poller-{self.name}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def poll_once(self) -> Optional[T]:
        """Run one fetch now; keeps the previous value when the read fails."""
        try:
            value = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.last_error = str(exc)
            logger.warning("Poller %s read failed: %s", self.name, exc)
            return self.last_value

        self.last_value = value
        self.last_updated = datetime.now(timezone.utc)
        self.last_error = None
        await self._publish(value)
        return value

    async def _publish(self, value: T) -> None:
        for callback in self._subscribers:
            try:
                result = callback(value)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                logger.error("Poller %s subscriber error: %s", self.name, exc)

    async def _run(self) -> None:
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self.interval_seconds)
        except asyncio.CancelledError:
            return

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "running": self.is_running,
            "intervalSeconds": self.interval_seconds,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "lastError": self.last_error,
        }


class PollingService:
    """
    Owns the allowance, gas price and redemption pollers for one session.

    Usage:
        service = PollingService(gateway)
        service.watch_gas_price(84532)
        service.watch_allowance(token, owner, spender)
        ...
        await service.stop_all()
    """

    def __init__(
        self,
        gateway: ChainGateway,
        gas_trackers: Optional[Dict[int, GasPriceTracker]] = None,
    ) -> None:
        self.gateway = gateway
        self._gas_trackers: Dict[int, GasPriceTracker] = (
            dict(gas_trackers) if gas_trackers is not None else {}
        )
        self._pollers: Dict[str, Poller] = {}

    def _add(self, poller: Poller) -> Poller:
        existing = self._pollers.get(poller.name)
        if existing is not None and existing.is_running:
            return existing
        self._pollers[poller.name] = poller
        poller.start()
        return poller

    def get(self, name: str) -> Optional[Poller]:
        return self._pollers.get(name)

    def tracker(self, network_id: int) -> GasPriceTracker:
        """Gas price history for one network, created on first use."""
        tracker = self._gas_trackers.get(network_id)
        if tracker is None:
            tracker = self._gas_trackers[network_id] = GasPriceTracker()
        return tracker

    def watch_allowance(
        self,
        token: TokenDescriptor,
        owner: str,
        spender: str,
        interval_seconds: Optional[float] = None,
    ) -> Poller[int]:
        return self._add(
            Poller(
                f"allowance:{token.network_id}:{token.address.lower()}:{owner.lower()}:{spender.lower()}",
                lambda: self.gateway.read_allowance(token, owner, spender),
                interval_seconds or settings.allowance_poll_seconds,
            )
        )

    def watch_gas_price(self, network_id: int, interval_seconds: Optional[float] = None) -> Poller[int]:
        poller: Poller[int] = Poller(
            f"gas:{network_id}",
            lambda: self.gateway.read_gas_price(network_id),
            interval_seconds or settings.gas_price_poll_seconds,
        )
        poller.subscribe(self.tracker(network_id).record)
        return self._add(poller)

    def watch_redemptions(
        self,
        network_id: int,
        owner: str,
        interval_seconds: Optional[float] = None,
    ) -> Poller[List[RedemptionRequest]]:
        return self._add(
            Poller(
                f"redemptions:{network_id}:{owner.lower()}",
                lambda: self.gateway.read_redemption_requests(network_id, owner),
                interval_seconds or settings.redemption_poll_seconds,
            )
        )

    async def stop(self, name: str) -> None:
        poller = self._pollers.pop(name, None)
        if poller is not None:
            await poller.stop()

    async def stop_all(self) -> None:
        pollers = list(self._pollers.values())
        self._pollers.clear()
        await asyncio.gather(*(poller.stop() for poller in pollers), return_exceptions=True)

    def status(self) -> List[Dict[str, Any]]:
        return [poller.status() for poller in self._pollers.values()]
