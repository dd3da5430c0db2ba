# fluent_state/core/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Type definitions, enums and configuration records shared across the package.

This module has no runtime dependencies on other fluent_state modules apart from
``values`` so that states, groups and the runtime can all import it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Mapping, Optional, Union

from fluent_state.core.values import Setting, to_setting

if TYPE_CHECKING:
    from fluent_state.core.states import State


class Lifecycle(Enum):
    """Lifecycle events that can be observed on a state machine."""

    BEFORE_TRANSITION = auto()
    FAILED_TRANSITION = auto()
    AFTER_TRANSITION = auto()


class EvaluationStrategy(str, Enum):
    """Timing lane used to dispatch an auto-transition condition check."""

    IMMEDIATE = "immediate"  # Evaluated within the context update
    NEXT_TICK = "nextTick"  # FIFO, on the next loop turn
    IDLE = "idle"  # Only once no immediate/next-tick work is pending


class TransitionStage(Enum):
    """Stages of a single transition attempt, in execution order."""

    REQUESTED = auto()
    BEFORE_HOOK = auto()
    GROUP_GATE = auto()
    VALIDATE = auto()
    GLOBAL_MIDDLEWARE = auto()
    GROUP_MIDDLEWARE = auto()
    EXIT_HOOK = auto()
    COMMIT = auto()
    ENTER_HOOK = auto()
    AFTER_HOOK = auto()
    STATE_HANDLERS = auto()
    DONE = auto()
    BLOCKED = auto()


# Callable aliases
Condition = Callable[["State", Any], Union[bool, Awaitable[bool]]]
SkipPredicate = Callable[[Any], bool]
EnablePredicate = Callable[[Any], bool]
BeforeTransitionHandler = Callable[["State", str], Union[bool, Awaitable[bool]]]
FailedTransitionHandler = Callable[["State", str], Optional[Awaitable[None]]]
AfterTransitionHandler = Callable[[Optional["State"], "State"], Optional[Awaitable[None]]]
EventHandler = Callable[[Optional["State"], "State"], Optional[Awaitable[None]]]
Proceed = Callable[[], None]
Middleware = Callable[[Optional["State"], str, Proceed], Optional[Awaitable[None]]]
GroupMiddleware = Callable[[str, str, Proceed, Any], Optional[Awaitable[None]]]


def _coerce(value: Any, cls: type) -> Any:
    if isinstance(value, Mapping):
        return cls(**value)
    return value


@dataclass
class RetryConfig:
    """Retry policy for conditions that raise. Either field may be static or dynamic."""

    max_attempts: Optional[Setting] = None
    delay: Optional[Setting] = None

    def __post_init__(self) -> None:
        self.max_attempts = to_setting(self.max_attempts)
        self.delay = to_setting(self.delay)


@dataclass
class EvaluationConfig:
    """Controls when an auto-transition condition is re-checked after context changes."""

    watch_properties: List[str] = field(default_factory=list)
    skip_if: Optional[SkipPredicate] = None
    evaluation_strategy: Optional[EvaluationStrategy] = None

    def __post_init__(self) -> None:
        self.watch_properties = list(self.watch_properties or [])
        if self.evaluation_strategy is not None:
            self.evaluation_strategy = EvaluationStrategy(self.evaluation_strategy)


@dataclass
class GroupConfig:
    """Configuration owned by a transition group and inherited by its descendants."""

    priority: Optional[Setting] = None
    debounce: Optional[Setting] = None
    retry_config: Optional[RetryConfig] = None
    evaluation_config: Optional[EvaluationConfig] = None

    def __post_init__(self) -> None:
        self.priority = to_setting(self.priority)
        self.debounce = to_setting(self.debounce)
        self.retry_config = _coerce(self.retry_config, RetryConfig)
        self.evaluation_config = _coerce(self.evaluation_config, EvaluationConfig)

    def merged(self, other: "GroupConfig") -> "GroupConfig":
        """Return a copy where every field set on ``other`` overrides this one."""
        updates = {f.name: getattr(other, f.name) for f in fields(other) if getattr(other, f.name) is not None}
        return replace(self, **updates)

    def filled_from(self, other: "GroupConfig") -> "GroupConfig":
        """Return a copy where fields unset here are taken from ``other``."""
        updates = {
            f.name: getattr(other, f.name)
            for f in fields(other)
            if getattr(self, f.name) is None and getattr(other, f.name) is not None
        }
        return replace(self, **updates)


@dataclass
class AutoTransitionConfig:
    """
    Declaration of a transition, optionally automatic.

    A transition without a condition is manual-only: it can be taken with
    ``StateMachine.transition`` but is never evaluated by the scheduler.
    """

    condition: Optional[Condition] = None
    target_state: Optional[str] = None
    priority: Optional[Setting] = None
    debounce: Optional[Setting] = None
    retry_config: Optional[RetryConfig] = None
    evaluation_config: Optional[EvaluationConfig] = None
    tags: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.priority = to_setting(self.priority)
        self.debounce = to_setting(self.debounce)
        self.retry_config = _coerce(self.retry_config, RetryConfig)
        self.evaluation_config = _coerce(self.evaluation_config, EvaluationConfig)
        self.tags = list(self.tags or [])


@dataclass(frozen=True)
class RetryPolicy:
    """A materialized retry configuration."""

    max_attempts: int
    delay: float


@dataclass
class EffectiveConfig:
    """Result of resolving a transition's configuration against its group chain."""

    target_state: str
    condition: Optional[Condition] = None
    priority: Optional[float] = None
    debounce: Optional[float] = None
    retry: Optional[RetryPolicy] = None
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TransitionAttempt:
    """Record emitted once per transition attempt, for history or debugging consumers."""

    from_state: Optional[str]
    to_state: str
    context: Any
    success: bool
    group_name: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
