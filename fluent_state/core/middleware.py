# fluent_state/core/middleware.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Transition middleware and plugin registration shapes.

A middleware intercepts a transition and must call ``proceed()`` for the
transition to continue. Middlewares run one at a time in registration order;
the first that does not call ``proceed`` (or raises) blocks the transition and
later middlewares never run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Sequence

from fluent_state.core.types import Middleware
from fluent_state.runtime.async_support import invoke

if TYPE_CHECKING:
    from typing import Protocol

    from fluent_state.core.state_machine import StateMachine

    class Installable(Protocol):
        def install(self, machine: "StateMachine") -> Any: ...


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetupPlugin:
    """A plugin that is a setup function called once with the machine."""

    setup: Callable[["StateMachine"], Any]


@dataclass(frozen=True)
class MiddlewarePlugin:
    """A plugin that registers a global middleware ``(previous, next_name, proceed)``."""

    middleware: Middleware


async def run_chain(
    middlewares: Sequence[Callable[..., Any]],
    *args: Any,
    trailing: Sequence[Any] = (),
    label: str = "middleware",
) -> bool:
    """
    Run middlewares in order. Each receives ``*args``, then ``proceed``, then
    ``*trailing``.

    :return: True if every middleware called ``proceed``.
    """
    for middleware in list(middlewares):
        proceeded = False

        def proceed() -> None:
            nonlocal proceeded
            proceeded = True

        try:
            await invoke(middleware, *args, proceed, *trailing)
        except Exception:
            logger.exception("Error in %s; blocking transition", label)
            return False
        if not proceeded:
            logger.debug("Transition blocked by %s", label)
            return False
    return True


class MiddlewareChain:
    """Global middleware registered on a state machine."""

    def __init__(self) -> None:
        self._middlewares: List[Middleware] = []

    def add(self, middleware: Middleware) -> None:
        self._middlewares.append(middleware)

    def remove(self, middleware: Middleware) -> None:
        if middleware in self._middlewares:
            self._middlewares.remove(middleware)

    def __len__(self) -> int:
        return len(self._middlewares)

    async def run(self, previous: Any, next_name: str) -> bool:
        """
        :param previous: The state being left.
        :param next_name: Name of the requested target state.
        """
        if not self._middlewares:
            return True
        return await run_chain(self._middlewares, previous, next_name, label="global middleware")
