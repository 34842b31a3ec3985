"""
Tests for the timer registry.

Run with: pytest test_timers.py -v
"""

import asyncio

import pytest

from timers import TimerRegistry


class TestTimerRegistry:

    @pytest.mark.asyncio
    async def test_fires_once(self):
        timers = TimerRegistry()
        fired = []

        async def cb():
            fired.append(1)

        timers.schedule("a", 0.01, cb)
        assert "a" in timers
        await asyncio.sleep(0.05)
        assert fired == [1]
        assert "a" not in timers

    @pytest.mark.asyncio
    async def test_cancel(self):
        timers = TimerRegistry()
        fired = []

        async def cb():
            fired.append(1)

        timers.schedule("a", 0.02, cb)
        assert timers.cancel("a")
        assert not timers.cancel("a")
        await asyncio.sleep(0.05)
        assert fired == []

    @pytest.mark.asyncio
    async def test_reschedule_replaces(self):
        timers = TimerRegistry()
        fired = []

        async def first():
            fired.append("first")

        async def second():
            fired.append("second")

        timers.schedule("a", 0.01, first)
        timers.schedule("a", 0.01, second)
        await asyncio.sleep(0.05)
        assert fired == ["second"]

    @pytest.mark.asyncio
    async def test_repeating(self):
        timers = TimerRegistry()
        fired = []

        async def cb():
            fired.append(1)

        timers.schedule_repeating("tick", 0.01, cb)
        await asyncio.sleep(0.055)
        timers.cancel("tick")
        assert len(fired) >= 3

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged(self):
        timers = TimerRegistry()

        async def boom():
            raise RuntimeError("boom")

        timers.schedule("a", 0.0, boom)
        await asyncio.sleep(0.02)
        assert len(timers) == 0

    @pytest.mark.asyncio
    async def test_cancel_prefix_and_all(self):
        timers = TimerRegistry()

        async def cb():
            pass

        timers.schedule("uno:Ann", 1, cb)
        timers.schedule("uno:Bob", 1, cb)
        timers.schedule("sync:timeout", 1, cb)
        assert timers.cancel_prefix("uno:") == 2
        assert timers.names() == ["sync:timeout"]
        timers.cancel_all()
        assert len(timers) == 0
