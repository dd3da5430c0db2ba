# fluent_state/core/state_machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from fluent_state.core.errors import GroupError, PluginError, StateError
from fluent_state.core.events import StateEvent
from fluent_state.core.groups import TransitionGroup, split_name
from fluent_state.core.hooks import Observer
from fluent_state.core.middleware import MiddlewareChain, MiddlewarePlugin, SetupPlugin
from fluent_state.core.states import State
from fluent_state.core.types import Condition, Lifecycle, Middleware
from fluent_state.runtime.executor import TransitionExecutor
from fluent_state.runtime.graph import GroupGraph
from fluent_state.runtime.monitor import LogLevel, TransitionMonitor
from fluent_state.runtime.scheduler import EvaluationScheduler
from fluent_state.runtime.timers import TimerRegistry

logger = logging.getLogger(__name__)

ConditionMap = Mapping[str, Mapping[str, Condition]]


class StateMachine:
    """
    A finite state machine built from named states, transitions between them and
    hierarchical transition groups.

    States are declared fluently with ``from_state(...).to(...)``. Transitions
    are attempted with ``await transition(name)``, which runs the full lifecycle
    (observers, group gating, middleware, exit/enter hooks, handlers) and
    returns False instead of raising when the attempt does not go through.
    """

    def __init__(self, initial_state: Optional[str] = None, monitor: Optional[TransitionMonitor] = None) -> None:
        """
        :param initial_state: Name of a state to create and make current.
        :param monitor: Receives logs, metrics and attempt records. A default
            monitor logging to the ``fluent_state`` logger is used if omitted.
        """
        self._states: Dict[str, State] = {}
        self._current_state: Optional[State] = None
        self._group_graph = GroupGraph()
        self._observer = Observer()
        self._middleware = MiddlewareChain()
        self._timers = TimerRegistry()
        self._monitor = monitor or TransitionMonitor()
        self._scheduler = EvaluationScheduler(self)
        self._executor = TransitionExecutor(self)

        if initial_state is not None:
            self._current_state = self._add_state(initial_state)

    # ---- Collaborators ----

    @property
    def monitor(self) -> TransitionMonitor:
        return self._monitor

    @property
    def observer(self) -> Observer:
        return self._observer

    @property
    def middleware_chain(self) -> MiddlewareChain:
        return self._middleware

    @property
    def scheduler(self) -> EvaluationScheduler:
        return self._scheduler

    @property
    def timers(self) -> TimerRegistry:
        """Timers owned by groups (temporary disable)."""
        return self._timers

    @property
    def group_graph(self) -> GroupGraph:
        return self._group_graph

    # ---- States ----

    @property
    def state(self) -> Optional[State]:
        """The current state."""
        return self._current_state

    @property
    def states(self) -> Dict[str, State]:
        return dict(self._states)

    def get_current_state(self) -> Optional[State]:
        return self._current_state

    def _set_current_state(self, state: Optional[State]) -> None:
        self._current_state = state

    def get_state(self, name: str) -> Optional[State]:
        return self._states.get(name)

    def _add_state(self, name: str) -> State:
        state = self._states.get(name)
        if state is None:
            state = State(name, self)
            self._states[name] = state
        return state

    def from_state(self, name: str) -> State:
        """
        Get a state for declaring transitions from it, creating it if needed.
        The first state of the machine becomes the current state.
        """
        state = self._add_state(name)
        if self._current_state is None:
            self._current_state = state
        return state

    def has(self, name: str) -> bool:
        return name in self._states

    def can(self, name: str) -> bool:
        """Whether the current state can transition to ``name``."""
        return self._current_state is not None and self._current_state.can(name)

    def set_state(self, name: str) -> State:
        """
        Make ``name`` the current state without running any lifecycle.

        :raises StateError: If the state does not exist.
        """
        state = self._require_state(name)
        previous = self._current_state.name if self._current_state else None
        self._monitor.log(LogLevel.INFO, f"Setting state directly: {previous} -> {name}")
        self._current_state = state
        return state

    def _require_state(self, name: str) -> State:
        state = self._states.get(name)
        if state is None:
            raise StateError(f"Unknown state: '{name}'. Available states: {', '.join(self._states)}")
        return state

    def remove(self, name: str) -> None:
        """
        Remove a state and every reference to it: transitions of other states,
        group transitions and tags, and pending scheduled evaluations. If it was
        current, the first remaining state becomes current.
        """
        state = self._states.pop(name, None)
        if state is None:
            return
        self._scheduler.cancel_for_state(name)
        for other in self._states.values():
            other._remove_transition(name)
        for group in self._group_graph:
            group.remove_transitions_involving_state(name)

        if self._current_state is state:
            self._current_state = next(iter(self._states.values()), None)
            if self._current_state is not None:
                self._monitor.log(LogLevel.INFO, f"Current state removed, moved to '{self._current_state.name}'")
            else:
                self._monitor.log(LogLevel.WARN, "Current state removed, no states remain")

    def clear(self) -> None:
        """Remove every state and cancel all scheduled evaluations. Groups are kept."""
        self._scheduler.cancel_all()
        for group in self._group_graph:
            for from_state, to_state in group.get_all_transitions():
                group.remove_transition(from_state, to_state)
        self._states.clear()
        self._current_state = None

    # ---- Lifecycle ----

    async def start(self) -> "StateMachine":
        """Enter the current state: enter hooks, after-transition observers, handlers."""
        if self._current_state is None:
            self._monitor.log(LogLevel.WARN, "Attempted to start state machine without an initial state")
            return self
        await self._executor.enter_initial(self._current_state)
        return self

    async def transition(self, target: str, context: Any = None) -> bool:
        """
        Attempt to move from the current state to ``target``.

        :param target: Target state name.
        :param context: Context for group gating and group middleware.
        :return: True if the transition happened.
        """
        return await self._executor.execute(target, context)

    async def next(self, *exclude: str) -> bool:
        """Transition to a random reachable state, excluding the given names."""
        if self._current_state is None:
            return False
        target = self._current_state._get_random_transition(exclude)
        if target is None:
            return False
        return await self.transition(target)

    # ---- Callbacks and plugins ----

    def when(self, name: str) -> StateEvent:
        """
        Start a ``when(name).do(handler)`` chain.

        :raises StateError: If the state does not exist.
        """
        return StateEvent(self._require_state(name))

    def observe(self, event: Lifecycle, handler: Callable[..., Any]) -> "StateMachine":
        self._observer.add(event, handler)
        return self

    def middleware(self, middleware: Middleware) -> "StateMachine":
        """Register a global ``middleware(previous, next_name, proceed)``."""
        self._middleware.add(middleware)
        return self

    def use(self, plugin: Any) -> "StateMachine":
        """
        Install a plugin: a ``SetupPlugin``, a ``MiddlewarePlugin`` or an object
        with an ``install(machine)`` method.

        :raises PluginError: For any other shape, including bare callables.
        """
        if isinstance(plugin, SetupPlugin):
            plugin.setup(self)
        elif isinstance(plugin, MiddlewarePlugin):
            self._middleware.add(plugin.middleware)
        elif callable(getattr(plugin, "install", None)):
            plugin.install(self)
        else:
            raise PluginError(
                f"Unsupported plugin {plugin!r}; wrap functions in SetupPlugin or MiddlewarePlugin"
            )
        return self

    # ---- Groups ----

    def create_group(self, name: str, parent: Optional[Union[str, TransitionGroup]] = None) -> TransitionGroup:
        """
        Create and register a transition group.

        :param name: Group name, optionally ``"namespace:name"``.
        :param parent: Parent group or its full name.
        :raises GroupError: If the name exists or the parent does not.
        """
        parent_name = parent.full_name if isinstance(parent, TransitionGroup) else parent
        group = TransitionGroup(name, self)
        self._group_graph.add_group(group, parent_name)
        logger.debug("Created transition group %s (parent=%s)", group.full_name, parent_name)
        return group

    def group(self, name: str) -> Optional[TransitionGroup]:
        return self._group_graph.get(name)

    def get_all_groups(self) -> List[TransitionGroup]:
        return list(self._group_graph)

    def remove_group(self, name: str) -> bool:
        """Remove a group. Its children become root groups."""
        group = self._group_graph.remove_group(name)
        if group is None:
            return False
        self._timers.cancel(group._timer_key)
        self._scheduler.cancel_for_group(name)
        return True

    def groups_for_transition(self, from_state: str, to_state: str) -> List[TransitionGroup]:
        """Groups that directly own the transition, in creation order."""
        return [g for g in self._group_graph if g.has_transition(from_state, to_state)]

    def export_groups(self) -> List[Dict[str, Any]]:
        return [group.serialize() for group in self._group_graph]

    def create_group_from_config(
        self, data: Mapping[str, Any], condition_map: Optional[ConditionMap] = None
    ) -> TransitionGroup:
        """
        Create a group from its serialized form and attach it to its parent if
        that group exists.
        """
        group = self.create_group(_full_name(data))
        group.deserialize(data, condition_map)
        parent = data.get("parentGroup")
        if parent and parent in self._group_graph:
            group.set_parent(parent)
        return group

    def import_groups(
        self,
        groups: Sequence[Mapping[str, Any]],
        condition_maps: Optional[Mapping[str, ConditionMap]] = None,
        skip_existing: bool = False,
        replace_existing: bool = False,
    ) -> "StateMachine":
        """
        Recreate serialized groups, then link parents once all are created.

        :param condition_maps: Conditions keyed by group full name, then source, then target.
        :param skip_existing: Leave groups that already exist untouched.
        :param replace_existing: Remove existing groups before re-creating them.
        :raises GroupError: If a group exists and neither option is set.
        """
        condition_maps = condition_maps or {}
        created: Dict[str, TransitionGroup] = {}
        for data in groups:
            full_name = _full_name(data)
            if full_name in self._group_graph:
                if skip_existing:
                    logger.debug("Skipping existing group %s", full_name)
                    continue
                if replace_existing:
                    self.remove_group(full_name)
            group = self.create_group(full_name)
            group.deserialize(data, condition_maps.get(full_name))
            created[full_name] = group

        for data in groups:
            group = created.get(_full_name(data))
            parent = data.get("parentGroup")
            if group is not None and parent and parent in self._group_graph:
                group.set_parent(parent)
        self._monitor.log(LogLevel.INFO, f"Imported {len(created)} transition group(s)")
        return self


def _full_name(data: Mapping[str, Any]) -> str:
    name = data.get("name")
    if not name:
        raise GroupError("Serialized group has no name")
    namespace = data.get("namespace")
    if namespace and split_name(name)[0] is None:
        return f"{namespace}:{name}"
    return name
