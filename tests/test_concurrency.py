"""Tests for the worker pool and the pause controller."""

import asyncio

import pytest

from docs_md_crawler.utils.concurrency import PauseController, run_pool


@pytest.mark.asyncio
async def test_run_pool_preserves_order():
    delays = [0.03, 0.0, 0.02, 0.01, 0.0]

    async def worker(delay, index):
        await asyncio.sleep(delay)
        return index * 10

    results = await run_pool(delays, 3, worker)
    assert results == [0, 10, 20, 30, 40]


@pytest.mark.asyncio
async def test_run_pool_bounds_concurrency():
    active = 0
    peak = 0

    async def worker(item, index):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.001)
        active -= 1
        return item

    await run_pool(list(range(20)), 4, worker)
    assert peak == 4


@pytest.mark.asyncio
async def test_run_pool_empty():
    async def worker(item, index):
        raise AssertionError("never called")

    assert await run_pool([], 4, worker) == []


@pytest.mark.asyncio
async def test_pause_blocks_at_checkpoint_until_resume():
    events = []
    control = PauseController(on_change=events.append)
    passed = []

    async def task(name):
        if await control.checkpoint():
            passed.append(name)

    control.request_pause()
    tasks = [asyncio.create_task(task(i)) for i in range(3)]
    await asyncio.sleep(0.01)

    assert control.paused
    assert passed == []
    assert events == ["paused"]

    control.resume()
    await asyncio.gather(*tasks)

    assert sorted(passed) == [0, 1, 2]
    assert not control.paused
    assert events == ["paused", "resumed"]


@pytest.mark.asyncio
async def test_stop_releases_paused_waiters():
    control = PauseController()
    control.request_pause()
    waiter = asyncio.create_task(control.checkpoint())
    await asyncio.sleep(0.01)

    control.request_stop()
    assert await waiter is False
    assert await control.checkpoint() is False

    control.reset()
    assert await control.checkpoint() is True


@pytest.mark.asyncio
async def test_checkpoint_without_requests_passes():
    control = PauseController()
    assert await control.checkpoint() is True
    control.resume()
    assert not control.pause_requested
