# fluent_state/core/states.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from fluent_state.core.transitions import Transition
from fluent_state.core.types import AutoTransitionConfig, Condition, EventHandler
from fluent_state.runtime.async_support import invoke
from fluent_state.runtime.context import ContextStore

if TYPE_CHECKING:
    from fluent_state.core.state_machine import StateMachine

logger = logging.getLogger(__name__)

EnterHandler = Callable[[Optional["State"], "State"], Any]
ExitHandler = Callable[["State", "State"], Any]


class State:
    """
    A named state owned by a state machine. Holds the names of the states it can
    reach, enter/exit hooks, handlers run after it becomes current, its own
    auto-transitions and a context dictionary.
    """

    def __init__(self, name: str, machine: "StateMachine") -> None:
        """
        :param name: Unique name of the state within its machine.
        :param machine: Owning state machine.
        """
        self.name = name
        self.machine = machine
        self.transitions: List[str] = []
        self.handlers: List[EventHandler] = []
        self.enter_handlers: List[EnterHandler] = []
        self.exit_handlers: List[ExitHandler] = []
        self._auto_transitions: List[AutoTransitionConfig] = []
        self._context = ContextStore()
        self._evaluating = False

    def __repr__(self) -> str:
        return f"State({self.name!r})"

    @property
    def auto_transitions(self) -> List[AutoTransitionConfig]:
        return list(self._auto_transitions)

    # ---- Structure ----

    def to(self, name: str, config: Optional[Union[AutoTransitionConfig, Condition]] = None) -> Transition:
        """
        Declare a transition to ``name``, creating the target state if needed.

        :param name: Target state name.
        :param config: Optional auto-transition configuration, or a bare condition
            ``(state, context) -> bool``. The target is always ``name``.
        :return: A link for declaring alternatives.
        """
        self.machine._add_state(name)
        if config is not None:
            if isinstance(config, AutoTransitionConfig):
                auto = AutoTransitionConfig(
                    condition=config.condition,
                    target_state=name,
                    priority=config.priority,
                    debounce=config.debounce,
                    retry_config=config.retry_config,
                    evaluation_config=config.evaluation_config,
                    tags=config.tags,
                )
            elif callable(config):
                auto = AutoTransitionConfig(condition=config, target_state=name)
            else:
                raise TypeError("config must be an AutoTransitionConfig or a condition callable")
            self._auto_transitions.append(auto)
        return self._add_transition(name)

    def _add_transition(self, name: str) -> Transition:
        if name not in self.transitions:
            self.transitions.append(name)
        return Transition(name, self)

    def _remove_transition(self, name: str) -> None:
        """Forget every reference to ``name``, including auto-transitions targeting it."""
        if name in self.transitions:
            self.transitions.remove(name)
        self._auto_transitions = [a for a in self._auto_transitions if a.target_state != name]

    def can(self, name: str) -> bool:
        return name in self.transitions

    def _get_random_transition(self, exclude: Sequence[str] = ()) -> Optional[str]:
        if not self.transitions:
            logger.warning("No states to transition to from '%s'", self.name)
            return None
        candidates = [t for t in self.transitions if t not in exclude]
        if not candidates:
            logger.warning(
                "No states to transition to from '%s' after excluding %s", self.name, ", ".join(exclude)
            )
            return None
        return random.choice(candidates)

    # ---- Hooks ----

    def on_enter(self, handler: EnterHandler) -> "State":
        """Add a hook called with ``(previous, current)`` when entering this state."""
        self.enter_handlers.append(handler)
        return self

    def on_exit(self, handler: ExitHandler) -> "State":
        """Add a hook called with ``(current, next)`` when leaving this state."""
        self.exit_handlers.append(handler)
        return self

    def _add_handler(self, handler: EventHandler) -> None:
        self.handlers.append(handler)

    async def _trigger_enter(self, previous: Optional["State"]) -> None:
        for handler in list(self.enter_handlers):
            await invoke(handler, previous, self)

    async def _trigger_exit(self, next_state: "State") -> None:
        for handler in list(self.exit_handlers):
            await invoke(handler, self, next_state)

    # ---- Context ----

    def get_context(self) -> Dict[str, Any]:
        return self._context.get_state()

    async def update_context(self, update: Mapping[str, Any]) -> None:
        """
        Merge ``update`` into the context and let the scheduler re-check any
        auto-transitions that depend on it.
        """
        previous = self._context.get_state()
        current = self._context.set_state(update)
        await self.machine.scheduler.notify(self, previous, current)

    async def batch_update(
        self,
        updates: Sequence[Mapping[str, Any]],
        evaluate_after_complete: bool = False,
        atomic: bool = False,
    ) -> bool:
        """
        Apply several context updates in order.

        :param updates: Patches to merge, in order.
        :param evaluate_after_complete: Notify the scheduler once, after all
            updates, instead of after each one.
        :param atomic: Roll the context back and return False if any update fails.
        :return: True if the batch applied (atomic) or at least one update
            applied (non-atomic). An empty batch returns True.
        """
        if not updates:
            return True

        first = self._context.get_state()
        steps = []
        if atomic:
            snapshot = self._context.snapshot()
            try:
                for update in updates:
                    previous = self._context.get_state()
                    steps.append((previous, self._context.set_state(update)))
            except Exception:
                logger.exception("Atomic batch update on '%s' failed; rolling back", self.name)
                self._context.replace_state(snapshot)
                return False
        else:
            for update in updates:
                previous = self._context.get_state()
                try:
                    current = self._context.set_state(update)
                except Exception:
                    logger.exception("Skipping failed context update on '%s'", self.name)
                    continue
                steps.append((previous, current))
                if not evaluate_after_complete:
                    await self.machine.scheduler.notify(self, previous, current)
            if not steps:
                return False

        if evaluate_after_complete:
            await self.machine.scheduler.notify(self, first, self._context.get_state())
        elif atomic:
            for previous, current in steps:
                await self.machine.scheduler.notify(self, previous, current)
        return True

    # ---- Auto-transitions ----

    async def evaluate_auto_transitions(self, context: Any = None) -> bool:
        """
        Check every auto-transition from this state, highest priority first, and
        take the first whose condition holds. Re-entrant calls return False.

        :return: True if a condition held and a transition was attempted.
        """
        if self._evaluating:
            return False
        if context is None:
            context = self.get_context()

        self._evaluating = True
        try:
            scheduler = self.machine.scheduler
            for candidate in scheduler.collect_candidates(self, context):
                if await scheduler.check_condition(candidate, context):
                    await self.machine.transition(candidate.target)
                    return True
            return False
        finally:
            self._evaluating = False
