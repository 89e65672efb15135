"""
Cooperative concurrency helpers.

run_pool() drives a fixed list of items through N workers, and
PauseController implements pause/resume/stop honored at checkpoints.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_pool(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T, int], Awaitable[R]]
) -> List[Optional[R]]:
    """
    Process items with at most `limit` concurrent workers.

    Every worker repeatedly claims the next unclaimed index, so results are
    stored by index and keep the input order whatever the completion order.

    Args:
        items: Items to process
        limit: Number of concurrent workers
        worker: Coroutine function called with (item, index)

    Returns:
        List of worker results aligned with items
    """
    results: List[Optional[R]] = [None] * len(items)
    if not items:
        return results

    next_index = 0

    async def run_worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            index = next_index
            next_index += 1
            results[index] = await worker(items[index], index)

    workers = max(1, min(int(limit or 1), len(items)))
    await asyncio.gather(*(run_worker() for _ in range(workers)))
    return results


class PauseController:
    """
    Cooperative pause/resume/stop signal shared by one session's tasks.

    A pause request never interrupts in-flight work: tasks notice it at their
    next checkpoint() and block there until resume() or request_stop()
    releases every waiter at once.
    """

    def __init__(self, on_change: Optional[Callable[[str], None]] = None):
        """
        Args:
            on_change: Called with "paused", "resumed" or "stopping"
        """
        self._running = asyncio.Event()
        self._running.set()
        self._pause_requested = False
        self._stop_requested = False
        self._waiters = 0
        self._on_change = on_change

    @property
    def pause_requested(self) -> bool:
        return self._pause_requested

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def paused(self) -> bool:
        """True while at least one task is blocked at a checkpoint."""
        return self._waiters > 0

    def request_pause(self) -> None:
        if self._stop_requested or self._pause_requested:
            return
        self._pause_requested = True
        self._running.clear()

    def resume(self) -> None:
        if not self._pause_requested:
            return
        self._pause_requested = False
        self._running.set()
        self._notify("resumed")

    def request_stop(self) -> None:
        """Ask every task to wind down at its next checkpoint."""
        if self._stop_requested:
            return
        self._stop_requested = True
        self._pause_requested = False
        self._running.set()
        self._notify("stopping")

    def reset(self) -> None:
        """Clear all requests before a new run."""
        self._pause_requested = False
        self._stop_requested = False
        self._running.set()

    async def checkpoint(self) -> bool:
        """
        Honor a pending pause request.

        Returns:
            False if a stop was requested and the caller should wind down
        """
        if self._pause_requested and not self._stop_requested:
            self._waiters += 1
            if self._waiters == 1:
                self._notify("paused")
            try:
                await self._running.wait()
            finally:
                self._waiters -= 1
        return not self._stop_requested

    def _notify(self, what: str) -> None:
        if self._on_change is not None:
            self._on_change(what)
