"""
Per-host request throttling.

Requests to the same host are serialized and spaced at least min_interval
seconds apart; requests to different hosts never wait on each other.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict
from urllib.parse import urlsplit

from .constants import DEFAULT_REQUEST_DELAY
from .log import get_logger


@dataclass
class HostRateState:
    """Throttling state of one host."""

    next_allowed: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class HostRateLimiter:
    """
    Serializes and throttles outbound requests per destination host.

    Each call to wait() joins the host's queue (an asyncio.Lock, which wakes
    waiters in FIFO order), sleeps until the host's next allowed time, then
    books the next slot min_interval seconds later.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_REQUEST_DELAY,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the limiter.

        Args:
            min_interval: Minimum seconds between two requests to one host
            clock: Monotonic time source (injectable for tests)
            sleep: Async sleep function (injectable for tests)
        """
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._hosts: Dict[str, HostRateState] = {}
        self.logger = get_logger("ratelimit")

    def _state(self, host: str) -> HostRateState:
        state = self._hosts.get(host)
        if state is None:
            state = HostRateState()
            self._hosts[host] = state
        return state

    async def wait(self, url: str) -> None:
        """
        Wait until a request to the URL's host may be sent.

        Args:
            url: URL about to be requested
        """
        try:
            host = (urlsplit(url).hostname or "").lower()
        except ValueError:
            host = ""
        state = self._state(host)

        async with state.lock:
            delay = state.next_allowed - self._clock()
            if delay > 0:
                self.logger.debug(f"Throttling {host} for {delay:.2f}s")
                await self._sleep(delay)
            state.next_allowed = self._clock() + self.min_interval

    def next_allowed(self, host: str) -> float:
        """Get the booked next-allowed timestamp of a host (0.0 if unseen)."""
        state = self._hosts.get(host.lower())
        return state.next_allowed if state else 0.0
