# fluent_state/plugins/transition_guard.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from fluent_state.core.middleware import SetupPlugin
from fluent_state.core.types import Lifecycle
from fluent_state.runtime.async_support import invoke

if TYPE_CHECKING:
    from fluent_state.core.state_machine import StateMachine
    from fluent_state.core.states import State

logger = logging.getLogger(__name__)

GuardHandler = Callable[[Optional["State"], str, Callable[[], None]], Any]


def create_transition_guard(handler: GuardHandler) -> SetupPlugin:
    """
    Build a plugin that vetoes transitions unless ``handler`` calls ``proceed``.

    Usage::

        def only_admins(current, next_name, proceed):
            if next_name != "admin" or user.is_admin:
                proceed()

        machine.use(create_transition_guard(only_admins))

    :param handler: ``handler(current, next_name, proceed)``; sync or async.
    :return: A plugin registering the guard as a before-transition observer.
    """

    async def _guard(current: Optional["State"], next_name: str) -> bool:
        proceeded = False

        def proceed() -> None:
            nonlocal proceeded
            proceeded = True

        try:
            await invoke(handler, current, next_name, proceed)
        except Exception:
            logger.exception("Error in transition guard")
            return False
        return proceeded

    def _install(machine: "StateMachine") -> None:
        machine.observe(Lifecycle.BEFORE_TRANSITION, _guard)

    return SetupPlugin(_install)
