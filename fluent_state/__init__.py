# fluent_state/__init__.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""fluent_state: fluent finite state machines with hierarchical transition groups

Responsibilities:
    - State and transition declaration through a fluent API
    - Transition lifecycle execution (observers, middleware, hooks, handlers)
    - Transition groups with inherited configuration, tags and cascading enable/disable
    - Automatic transitions re-evaluated on context changes (debounce, watched
      properties, immediate / next-tick / idle strategies)
    - Group serialization

Cross-cutting Concerns:
    Concurrency:
        - Cooperative, single asyncio event loop
        - Timers owned by the scheduler and by groups, cancelled on removal

    Error Handling:
        - Configuration errors raise FluentStateError subclasses
        - Transition attempts never raise; they return False

    Logging:
        - Standard library logging under the ``fluent_state`` logger
        - No handlers installed by the library
"""

from fluent_state.core.errors import FluentStateError, GroupError, PluginError, StateError, TransitionError
from fluent_state.core.groups import TransitionBuilder, TransitionGroup
from fluent_state.core.middleware import MiddlewarePlugin, SetupPlugin
from fluent_state.core.state_machine import StateMachine
from fluent_state.core.states import State
from fluent_state.core.types import (
    AutoTransitionConfig,
    EffectiveConfig,
    EvaluationConfig,
    EvaluationStrategy,
    GroupConfig,
    Lifecycle,
    RetryConfig,
    RetryPolicy,
    TransitionAttempt,
)
from fluent_state.core.values import Dynamic, Static
from fluent_state.plugins.transition_guard import create_transition_guard
from fluent_state.runtime.monitor import LogLevel, TransitionMonitor

__version__ = "0.1.0"

__all__ = [
    "AutoTransitionConfig",
    "Dynamic",
    "EffectiveConfig",
    "EvaluationConfig",
    "EvaluationStrategy",
    "FluentStateError",
    "GroupConfig",
    "GroupError",
    "Lifecycle",
    "LogLevel",
    "MiddlewarePlugin",
    "PluginError",
    "RetryConfig",
    "RetryPolicy",
    "SetupPlugin",
    "State",
    "StateError",
    "StateMachine",
    "Static",
    "TransitionAttempt",
    "TransitionBuilder",
    "TransitionError",
    "TransitionGroup",
    "TransitionMonitor",
    "create_transition_guard",
]
