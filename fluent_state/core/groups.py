# fluent_state/core/groups.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Transition groups.

A group is a named collection of transitions with shared configuration, tags,
middleware and event handlers. Groups form a hierarchy: configuration is
inherited from ancestors, events bubble up to them, and enable/disable can
cascade down to descendants. The hierarchy itself lives in the machine's
``GroupGraph``; a group only knows its machine and its own name.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from fluent_state.core.errors import GroupError, TransitionError
from fluent_state.core.middleware import run_chain
from fluent_state.core.resolver import resolve
from fluent_state.core.types import (
    AutoTransitionConfig,
    Condition,
    EffectiveConfig,
    EnablePredicate,
    GroupConfig,
    GroupMiddleware,
)
from fluent_state.runtime.async_support import call_safely

if TYPE_CHECKING:
    from fluent_state.core.state_machine import StateMachine

logger = logging.getLogger(__name__)

TransitionHandler = Callable[[str, str, Any], None]
EnableHandler = Callable[[Any], None]
DisableHandler = Callable[[bool, Any], None]
TransitionConfigArg = Optional[Union[AutoTransitionConfig, Condition, Mapping[str, Any]]]


def split_name(name: str) -> Tuple[Optional[str], str]:
    """Split ``"namespace:name"`` on the first colon."""
    if ":" in name:
        namespace, local = name.split(":", 1)
        return namespace, local
    return None, name


def _to_transition_config(config: TransitionConfigArg, to_state: str) -> AutoTransitionConfig:
    if config is None:
        return AutoTransitionConfig(target_state=to_state)
    if isinstance(config, AutoTransitionConfig):
        return replace(config, target_state=to_state)
    if isinstance(config, Mapping):
        return AutoTransitionConfig(**{**config, "target_state": to_state})
    if callable(config):
        return AutoTransitionConfig(condition=config, target_state=to_state)
    raise TypeError(f"Unsupported transition config: {config!r}")


class TransitionGroup:
    """
    A named, optionally namespaced, collection of transitions.

    Groups are created through ``StateMachine.create_group`` or
    ``create_child_group`` so that they are registered with the machine.
    """

    def __init__(self, name: str, machine: "StateMachine") -> None:
        """
        :param name: Group name, optionally ``"namespace:name"``.
        :param machine: Owning state machine.
        """
        namespace, local = split_name(name)
        if not local:
            raise GroupError("Group name must not be empty")
        self.name = local
        self.namespace = namespace
        self.config = GroupConfig()
        self._machine = machine
        self._transitions: Dict[str, Dict[str, AutoTransitionConfig]] = {}
        self._tags: Dict[str, Dict[Tuple[str, str], None]] = {}
        self._middlewares: List[GroupMiddleware] = []
        self._enabled = True
        self._prevent_manual_transitions = False
        self._enable_predicate: Optional[EnablePredicate] = None

        self._transition_handlers: List[TransitionHandler] = []
        self._once_transition_handlers: List[TransitionHandler] = []
        self._enable_handlers: List[EnableHandler] = []
        self._once_enable_handlers: List[EnableHandler] = []
        self._disable_handlers: List[DisableHandler] = []
        self._once_disable_handlers: List[DisableHandler] = []

    def __repr__(self) -> str:
        return f"TransitionGroup({self.full_name!r})"

    @property
    def full_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}:{self.name}"
        return self.name

    @property
    def machine(self) -> "StateMachine":
        return self._machine

    @property
    def prevent_manual_transitions(self) -> bool:
        return self._prevent_manual_transitions

    @property
    def _timer_key(self) -> Tuple[str, str]:
        return ("group", self.full_name)

    # ---- Hierarchy ----

    def get_parent(self) -> Optional["TransitionGroup"]:
        parent = self._machine.group_graph.parent_of(self.full_name)
        return self._machine.group_graph.get(parent) if parent is not None else None

    def set_parent(self, parent: Optional[Union["TransitionGroup", str]]) -> "TransitionGroup":
        """
        Move this group under ``parent``, or make it a root with ``None``.

        :raises GroupError: If the parent is unknown or is a descendant of this group.
        """
        parent_name = parent.full_name if isinstance(parent, TransitionGroup) else parent
        self._machine.group_graph.set_parent(self.full_name, parent_name)
        return self

    def create_child_group(self, name: str) -> "TransitionGroup":
        """Create and register a group whose parent is this one."""
        return self._machine.create_group(name, parent=self)

    def get_child_groups(self) -> List["TransitionGroup"]:
        graph = self._machine.group_graph
        return [graph.get(child) for child in graph.children_of(self.full_name)]

    def get_all_descendants(self) -> List["TransitionGroup"]:
        """All descendants, depth-first in creation order."""
        result = []
        for child in self.get_child_groups():
            result.append(child)
            result.extend(child.get_all_descendants())
        return result

    def get_siblings(self) -> List["TransitionGroup"]:
        """Other children of this group's parent. Root groups have no siblings."""
        parent = self.get_parent()
        if parent is None:
            return []
        return [g for g in parent.get_child_groups() if g is not self]

    def get_root(self) -> "TransitionGroup":
        root = self
        parent = root.get_parent()
        while parent is not None:
            root = parent
            parent = root.get_parent()
        return root

    def get_hierarchy_path(self) -> List["TransitionGroup"]:
        """Ancestors from the root down to and including this group."""
        path = [self]
        parent = self.get_parent()
        while parent is not None:
            path.append(parent)
            parent = parent.get_parent()
        path.reverse()
        return path

    # ---- Configuration ----

    def with_config(self, config: Optional[Union[GroupConfig, Mapping[str, Any]]] = None, **options: Any) -> "TransitionGroup":
        """
        Merge configuration into this group. Only the fields given are changed.

        :param config: A GroupConfig or a mapping of its fields.
        :param options: Individual fields, e.g. ``priority=2``.
        """
        if config is None:
            update = GroupConfig()
        elif isinstance(config, GroupConfig):
            update = config
        else:
            update = GroupConfig(**config)
        if options:
            update = update.merged(GroupConfig(**options))
        self.config = self.config.merged(update)
        return self

    def get_effective_config(self, from_state: str, to_state: str, context: Any = None) -> Optional[EffectiveConfig]:
        """Configuration of a transition after inheritance; None if the group does not own it."""
        return resolve(self, from_state, to_state, context)

    # ---- Transitions ----

    def from_state(self, name: str) -> "TransitionBuilder":
        return TransitionBuilder(self, name)

    def add_transition(
        self,
        from_state: str,
        to_state: str,
        config: TransitionConfigArg = None,
        tags: Optional[Sequence[str]] = None,
    ) -> "TransitionGroup":
        """
        Add (or replace) a transition. Missing states are created on the machine.

        :param config: Transition configuration or a bare condition. Without a
            condition the transition is manual-only.
        :param tags: Tags to attach to the transition.
        """
        transition = _to_transition_config(config, to_state)
        self._machine._add_state(from_state)
        self._machine._add_state(to_state)
        self._transitions.setdefault(from_state, {})[to_state] = transition
        self._machine.get_state(from_state)._add_transition(to_state)

        all_tags = list(tags or []) + [t for t in transition.tags if t not in (tags or [])]
        if all_tags:
            self.add_tags_to_transition(from_state, to_state, all_tags)
        return self

    def remove_transition(self, from_state: str, to_state: str) -> "TransitionGroup":
        targets = self._transitions.get(from_state)
        if targets is None or to_state not in targets:
            return self
        del targets[to_state]
        if not targets:
            del self._transitions[from_state]
        self._purge_tags(lambda pair: pair == (from_state, to_state))
        return self

    def has_transition(self, from_state: str, to_state: str) -> bool:
        return to_state in self._transitions.get(from_state, {})

    def get_transition(self, from_state: str, to_state: str) -> Optional[AutoTransitionConfig]:
        return self._transitions.get(from_state, {}).get(to_state)

    def get_all_transitions(self) -> List[Tuple[str, str]]:
        return [(f, t) for f, targets in self._transitions.items() for t in targets]

    def transitions_from(self, from_state: str) -> Dict[str, AutoTransitionConfig]:
        return dict(self._transitions.get(from_state, {}))

    def remove_transitions_involving_state(self, name: str) -> "TransitionGroup":
        """Drop every transition with ``name`` as source or target, and their tags."""
        self._transitions.pop(name, None)
        for from_state in list(self._transitions):
            targets = self._transitions[from_state]
            targets.pop(name, None)
            if not targets:
                del self._transitions[from_state]
        self._purge_tags(lambda pair: name in pair)
        return self

    # ---- Tags ----

    def add_tags_to_transition(self, from_state: str, to_state: str, tags: Sequence[str]) -> "TransitionGroup":
        """Tag an existing transition. Unknown transitions are ignored."""
        if not self.has_transition(from_state, to_state):
            return self
        for tag in tags:
            self._tags.setdefault(tag, {})[(from_state, to_state)] = None
        return self

    def remove_tag_from_transition(self, from_state: str, to_state: str, tag: str) -> "TransitionGroup":
        pairs = self._tags.get(tag)
        if pairs is not None:
            pairs.pop((from_state, to_state), None)
            if not pairs:
                del self._tags[tag]
        return self

    def get_transitions_by_tag(self, tag: str) -> List[Tuple[str, str]]:
        return list(self._tags.get(tag, {}))

    def get_tags_for_transition(self, from_state: str, to_state: str) -> List[str]:
        return [tag for tag, pairs in self._tags.items() if (from_state, to_state) in pairs]

    def get_all_tags(self) -> List[str]:
        return list(self._tags)

    def _purge_tags(self, matches: Callable[[Tuple[str, str]], bool]) -> None:
        for tag in list(self._tags):
            pairs = self._tags[tag]
            for pair in [p for p in pairs if matches(p)]:
                del pairs[pair]
            if not pairs:
                del self._tags[tag]

    # ---- Enable / disable ----

    def enable(self, cascade: bool = False) -> "TransitionGroup":
        """
        Enable the group. Enable handlers fire only if the group was disabled.

        :param cascade: Also enable every descendant.
        """
        self._machine.timers.cancel(self._timer_key)
        changed = not self._enabled
        self._enabled = True
        self._prevent_manual_transitions = False
        if changed:
            self._trigger_enable_handlers(None)
        if cascade:
            for child in self.get_child_groups():
                child.enable(cascade=True)
        return self

    def disable(self, prevent_manual_transitions: bool = False, cascade: bool = False) -> "TransitionGroup":
        """
        Disable automatic transitions from this group.

        :param prevent_manual_transitions: Also block explicit ``transition`` calls.
        :param cascade: Apply the same to every descendant.
        """
        self._machine.timers.cancel(self._timer_key)
        changed = self._enabled
        self._enabled = False
        self._prevent_manual_transitions = prevent_manual_transitions
        if changed:
            self._trigger_disable_handlers(prevent_manual_transitions, None)
        if cascade:
            for child in self.get_child_groups():
                child.disable(prevent_manual_transitions=prevent_manual_transitions, cascade=True)
        return self

    def disable_temporarily(
        self,
        duration_ms: float,
        callback: Optional[Callable[[], None]] = None,
        prevent_manual_transitions: bool = False,
        cascade: bool = False,
    ) -> "TransitionGroup":
        """
        Disable the group now and re-enable it after ``duration_ms``. A later
        call, or an explicit ``enable``/``disable``, supersedes the pending
        re-enable. Requires a running event loop.
        """
        self.disable(prevent_manual_transitions=prevent_manual_transitions, cascade=cascade)

        def _reenable() -> None:
            self.enable(cascade=cascade)
            if callback is not None:
                call_safely(callback, description=f"re-enable callback of group '{self.full_name}'")

        self._machine.timers.schedule(self._timer_key, duration_ms, _reenable)
        return self

    def set_enable_predicate(self, predicate: EnablePredicate) -> "TransitionGroup":
        """Make automatic evaluation depend on ``predicate(context)`` while enabled."""
        self._enable_predicate = predicate
        return self

    def clear_enable_predicate(self) -> "TransitionGroup":
        self._enable_predicate = None
        return self

    def _evaluate_predicate(self, context: Any) -> bool:
        try:
            return bool(self._enable_predicate(context))
        except Exception:
            logger.exception("Enable predicate of group '%s' failed", self.full_name)
            return False

    def is_enabled(self, context: Any = None) -> bool:
        """
        False if explicitly disabled. Otherwise the enable predicate's result
        when both a predicate and a context are present, else True.
        """
        if not self._enabled:
            return False
        if self._enable_predicate is not None and context is not None:
            return self._evaluate_predicate(context)
        return True

    def allows_manual_transitions(self, context: Any = None) -> bool:
        """
        Whether explicit ``transition`` calls may use this group's transitions.
        Only an explicit disable with ``prevent_manual_transitions`` blocks them;
        the enable predicate affects automatic evaluation only.
        """
        if not self._enabled:
            return not self._prevent_manual_transitions
        if self._enable_predicate is not None and context is not None:
            self._evaluate_predicate(context)
        return True

    # ---- Events ----

    def on_transition(self, handler: TransitionHandler) -> "TransitionGroup":
        """Call ``handler(from_state, to_state, context)`` after each transition of this group."""
        self._transition_handlers.append(handler)
        return self

    def once_transition(self, handler: TransitionHandler) -> "TransitionGroup":
        self._once_transition_handlers.append(handler)
        return self

    def on_enable(self, handler: EnableHandler) -> "TransitionGroup":
        self._enable_handlers.append(handler)
        return self

    def once_enable(self, handler: EnableHandler) -> "TransitionGroup":
        self._once_enable_handlers.append(handler)
        return self

    def on_disable(self, handler: DisableHandler) -> "TransitionGroup":
        """Call ``handler(prevent_manual_transitions, context)`` when the group is disabled."""
        self._disable_handlers.append(handler)
        return self

    def once_disable(self, handler: DisableHandler) -> "TransitionGroup":
        self._once_disable_handlers.append(handler)
        return self

    def off(self, handler: Callable[..., Any]) -> "TransitionGroup":
        """Remove ``handler`` from every event list of this group."""
        for handlers in self._handler_lists():
            while handler in handlers:
                handlers.remove(handler)
        return self

    def _handler_lists(self) -> List[List[Callable[..., Any]]]:
        return [
            self._transition_handlers,
            self._once_transition_handlers,
            self._enable_handlers,
            self._once_enable_handlers,
            self._disable_handlers,
            self._once_disable_handlers,
        ]

    def _fire(self, regular: List[Callable[..., Any]], once: List[Callable[..., Any]], event: str, *args: Any) -> None:
        for handler in list(regular):
            call_safely(handler, *args, description=f"{event} handler of group '{self.full_name}'")
        pending = list(once)
        once.clear()
        for handler in pending:
            call_safely(handler, *args, description=f"{event} handler of group '{self.full_name}'")

    def _trigger_transition_handlers(self, from_state: str, to_state: str, context: Any) -> None:
        self._fire(self._transition_handlers, self._once_transition_handlers, "transition", from_state, to_state, context)
        parent = self.get_parent()
        if parent is not None:
            parent._trigger_transition_handlers(from_state, to_state, context)

    def _trigger_enable_handlers(self, context: Any) -> None:
        self._fire(self._enable_handlers, self._once_enable_handlers, "enable", context)
        parent = self.get_parent()
        if parent is not None:
            parent._trigger_enable_handlers(context)

    def _trigger_disable_handlers(self, prevent_manual_transitions: bool, context: Any) -> None:
        self._fire(
            self._disable_handlers, self._once_disable_handlers, "disable", prevent_manual_transitions, context
        )
        parent = self.get_parent()
        if parent is not None:
            parent._trigger_disable_handlers(prevent_manual_transitions, context)

    # ---- Middleware ----

    def middleware(self, middleware: GroupMiddleware) -> "TransitionGroup":
        """Register ``middleware(from_state, to_state, proceed, context)``."""
        self._middlewares.append(middleware)
        return self

    def remove_middleware(self, middleware: GroupMiddleware) -> "TransitionGroup":
        if middleware in self._middlewares:
            self._middlewares.remove(middleware)
        return self

    async def _run_middleware(self, from_state: str, to_state: str, context: Any = None) -> bool:
        if not self._middlewares:
            return True
        return await run_chain(
            self._middlewares,
            from_state,
            to_state,
            trailing=(context,),
            label=f"middleware of group '{self.full_name}'",
        )

    # ---- Composition ----

    def compose(
        self,
        other: "TransitionGroup",
        merge_config: bool = True,
        copy_transitions: bool = True,
        copy_event_handlers: bool = True,
        copy_middlewares: bool = True,
    ) -> "TransitionGroup":
        """
        Pull another group's configuration, transitions, handlers and middleware
        into this one. Existing settings and transitions of this group are kept.
        """
        if merge_config:
            self.config = self.config.filled_from(other.config)
        if copy_transitions:
            for from_state, to_state in other.get_all_transitions():
                if self.has_transition(from_state, to_state):
                    continue
                self.add_transition(
                    from_state,
                    to_state,
                    other.get_transition(from_state, to_state),
                    other.get_tags_for_transition(from_state, to_state),
                )
        if copy_event_handlers:
            for mine, theirs in zip(self._handler_lists(), other._handler_lists()):
                mine.extend(h for h in theirs if h not in mine)
        if copy_middlewares:
            self._middlewares.extend(m for m in other._middlewares if m not in self._middlewares)
        return self

    def clone(
        self, new_name: str, machine: Optional["StateMachine"] = None, include_children: bool = False
    ) -> "TransitionGroup":
        """
        Copy this group's configuration, transitions, tags and flags into a new
        group on ``machine`` (default: the same machine).

        :param include_children: Also clone children, recursively, under their own names.
        :raises GroupError: If any new name is already taken on the target machine.
        """
        target = machine or self._machine
        copy = target.create_group(new_name)
        copy.config = replace(self.config)
        for from_state, to_state in self.get_all_transitions():
            copy.add_transition(
                from_state,
                to_state,
                replace(self.get_transition(from_state, to_state)),
                self.get_tags_for_transition(from_state, to_state),
            )
        copy._enabled = self._enabled
        copy._prevent_manual_transitions = self._prevent_manual_transitions
        copy._enable_predicate = self._enable_predicate
        if include_children:
            for child in self.get_child_groups():
                child.clone(child.full_name, machine=target, include_children=True).set_parent(copy)
        return copy

    # ---- Persistence ----

    def serialize(self) -> Dict[str, Any]:
        from fluent_state.persistence.serializer import serialize_group

        return serialize_group(self)

    def deserialize(
        self, data: Mapping[str, Any], condition_map: Optional[Mapping[str, Mapping[str, Condition]]] = None
    ) -> "TransitionGroup":
        from fluent_state.persistence.serializer import apply_serialized

        return apply_serialized(self, data, condition_map)


class TransitionBuilder:
    """Fluent builder for several transitions from one source state."""

    def __init__(self, group: TransitionGroup, from_state: str) -> None:
        self._group = group
        self._from_state = from_state
        self._last_to: Optional[str] = None
        self._tags: List[str] = []

    def with_tags(self, *tags: str) -> "TransitionBuilder":
        """Tags applied to the next transition only."""
        self._tags = list(tags)
        return self

    def to(self, to_state: str, config: TransitionConfigArg = None) -> "TransitionBuilder":
        self._group.add_transition(self._from_state, to_state, config, self._tags)
        self._last_to = to_state
        self._tags = []
        return self

    def or_(self, to_state: str, config: TransitionConfigArg = None) -> "TransitionBuilder":
        """
        Add an alternative target.

        :raises TransitionError: If called before ``to``.
        """
        if self._last_to is None:
            raise TransitionError("or_() must be called after to()")
        return self.to(to_state, config)
