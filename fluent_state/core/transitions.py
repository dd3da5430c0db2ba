# fluent_state/core/transitions.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from fluent_state.core.states import State
    from fluent_state.core.types import AutoTransitionConfig, Condition


class Transition:
    """
    Fluent link returned when declaring a transition from a state. It allows
    alternative targets from the same source and switching to another source.
    """

    def __init__(self, name: str, state: "State") -> None:
        """
        :param name: Name of the target state.
        :param state: Source state of the transition.
        """
        self.name = name
        self.state = state

    def from_state(self, name: str) -> "State":
        """Start declaring transitions from another state, creating it if needed."""
        return self.state.machine.from_state(name)

    def or_(self, name: str, config: Optional[Union["AutoTransitionConfig", "Condition"]] = None) -> "Transition":
        """Add an alternative target from the same source state."""
        return self.state.to(name, config)

    def __repr__(self) -> str:
        return f"Transition({self.state.name!r} -> {self.name!r})"
