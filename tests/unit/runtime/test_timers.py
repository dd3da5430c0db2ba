# tests/unit/runtime/test_timers.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import asyncio

import pytest

from fluent_state.runtime.timers import TimerRegistry


@pytest.mark.timing
@pytest.mark.asyncio
async def test_timer_fires_and_clears_key():
    timers = TimerRegistry()
    fired = []
    timers.schedule("k", 10, lambda: fired.append("k"))

    assert timers.is_pending("k")
    await asyncio.sleep(0.05)

    assert fired == ["k"]
    assert not timers.is_pending("k")
    assert len(timers) == 0


@pytest.mark.timing
@pytest.mark.asyncio
async def test_rescheduling_supersedes_previous_timer():
    timers = TimerRegistry()
    fired = []
    timers.schedule("k", 10, lambda: fired.append("first"))
    timers.schedule("k", 10, lambda: fired.append("second"))

    assert len(timers) == 1
    await asyncio.sleep(0.05)
    assert fired == ["second"]


@pytest.mark.timing
@pytest.mark.asyncio
async def test_cancel():
    timers = TimerRegistry()
    fired = []
    timers.schedule("k", 10, lambda: fired.append("k"))

    assert timers.cancel("k") is True
    assert timers.cancel("k") is False
    await asyncio.sleep(0.05)
    assert fired == []


@pytest.mark.asyncio
async def test_cancel_where_and_cancel_all():
    timers = TimerRegistry()
    for key in [("a", 1), ("a", 2), ("b", 1)]:
        timers.schedule(key, 1000, lambda: None)

    assert timers.cancel_where(lambda key: key[0] == "a") == 2
    assert timers.is_pending(("b", 1))
    assert not timers.is_pending(("a", 1))

    timers.cancel_all()
    assert len(timers) == 0


def test_schedule_requires_running_loop():
    with pytest.raises(RuntimeError):
        TimerRegistry().schedule("k", 10, lambda: None)
