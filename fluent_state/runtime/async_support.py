# fluent_state/runtime/async_support.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable, List

logger = logging.getLogger(__name__)


async def invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """
    Call a user callback that may be synchronous or asynchronous and return its
    result, awaiting it when the callback produced an awaitable.

    :param fn: The callback.
    :param args: Positional arguments for the callback.
    """
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result


async def invoke_all_concurrently(callbacks: Iterable[Callable[..., Any]], *args: Any) -> List[BaseException]:
    """
    Start every callback together and wait for all of them. Failures do not
    cancel the others; they are returned so the caller can report them.
    """
    results = await asyncio.gather(*(invoke(cb, *args) for cb in callbacks), return_exceptions=True)
    return [r for r in results if isinstance(r, Exception)]


def call_safely(fn: Callable[..., Any], *args: Any, description: str = "callback") -> Any:
    """
    Call a synchronous user callback, logging and swallowing any exception.

    :return: The callback result, or None if it raised.
    """
    try:
        return fn(*args)
    except Exception:
        logger.exception("Error in %s", description)
        return None
