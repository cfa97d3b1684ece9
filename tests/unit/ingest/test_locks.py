"""Tests for KeyedLock."""

from __future__ import annotations

import asyncio

from ragindex.ingest.locks import KeyedLock


async def test_same_key_serializes():
    locks = KeyedLock()
    active = 0
    peak = 0

    async def worker():
        nonlocal active, peak
        async with locks.hold("a"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(4)))
    assert peak == 1


async def test_different_keys_do_not_block():
    locks = KeyedLock()
    entered = asyncio.Event()

    async with locks.hold("a"):
        async def other():
            async with locks.hold("b"):
                entered.set()

        await asyncio.wait_for(other(), timeout=1)
    assert entered.is_set()


async def test_locked_reports_held_key():
    locks = KeyedLock()
    assert not locks.locked("a")
    async with locks.hold("a"):
        assert locks.locked("a")
        assert not locks.locked("b")
    assert not locks.locked("a")


async def test_idle_keys_are_dropped():
    locks = KeyedLock()
    async with locks.hold(("message", "m1")):
        assert len(locks) == 1
    assert len(locks) == 0


async def test_lock_released_on_error():
    locks = KeyedLock()
    try:
        async with locks.hold("a"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert len(locks) == 0
    async with locks.hold("a"):
        assert locks.locked("a")
