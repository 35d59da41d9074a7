"""Background services."""

from .polling import Poller, PollingService

__all__ = ["Poller", "PollingService"]
