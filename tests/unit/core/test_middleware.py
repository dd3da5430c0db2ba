# tests/unit/core/test_middleware.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from unittest.mock import MagicMock

import pytest

from fluent_state.core.middleware import MiddlewareChain, run_chain


@pytest.mark.asyncio
async def test_empty_chain_proceeds():
    assert await MiddlewareChain().run(None, "next") is True


@pytest.mark.asyncio
async def test_all_proceed():
    seen = []

    def first(prev, nxt, proceed):
        seen.append("first")
        proceed()

    async def second(prev, nxt, proceed):
        seen.append("second")
        proceed()

    chain = MiddlewareChain()
    chain.add(first)
    chain.add(second)

    assert await chain.run(None, "b") is True
    assert seen == ["first", "second"]


@pytest.mark.asyncio
async def test_blocking_middleware_stops_chain():
    spy = MagicMock()
    chain = MiddlewareChain()
    chain.add(lambda prev, nxt, proceed: None)
    chain.add(spy)

    assert await chain.run(None, "b") is False
    spy.assert_not_called()


@pytest.mark.asyncio
async def test_raising_middleware_blocks(caplog):
    def explode(prev, nxt, proceed):
        raise ValueError("nope")

    chain = MiddlewareChain()
    chain.add(explode)

    assert await chain.run(None, "b") is False
    assert "global middleware" in caplog.text


@pytest.mark.asyncio
async def test_remove_middleware():
    blocker = lambda prev, nxt, proceed: None
    chain = MiddlewareChain()
    chain.add(blocker)
    chain.remove(blocker)
    assert len(chain) == 0
    assert await chain.run(None, "b") is True


@pytest.mark.asyncio
async def test_run_chain_trailing_arguments():
    received = []

    def mw(a, b, proceed, ctx):
        received.append((a, b, ctx))
        proceed()

    assert await run_chain([mw], "a", "b", trailing=({"k": 1},)) is True
    assert received == [("a", "b", {"k": 1})]
