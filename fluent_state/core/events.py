# fluent_state/core/events.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import TYPE_CHECKING

from fluent_state.core.errors import StateError

if TYPE_CHECKING:
    from fluent_state.core.states import State
    from fluent_state.core.types import EventHandler


class StateEvent:
    """
    Entry point of the ``when(name).do(handler)`` callback chain. Handlers added
    here run whenever the machine enters the state.
    """

    def __init__(self, state: "State") -> None:
        self._state = state

    @property
    def state(self) -> "State":
        return self._state

    def when(self, name: str) -> "StateEvent":
        """
        Switch the chain to another state.

        :raises StateError: If no state with that name exists.
        """
        state = self._state.machine.get_state(name)
        if state is None:
            raise StateError(f"Unknown state: '{name}'")
        return StateEvent(state)

    def do(self, handler: "EventHandler") -> "Handler":
        """Register a handler called with ``(previous, current)`` on entry."""
        self._state._add_handler(handler)
        return Handler(self)


class Handler:
    """Continuation of a callback chain after ``do``."""

    def __init__(self, event: StateEvent) -> None:
        self._event = event

    def when(self, name: str) -> StateEvent:
        return self._event.when(name)

    def and_(self, handler: "EventHandler") -> "Handler":
        """Add another handler for the same state."""
        return self._event.do(handler)
