# fluent_state/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details


class FluentStateError(Exception):
    """
    Base exception class for errors raised by the fluent_state library.
    """


class StateError(FluentStateError):
    """
    Raised when a state name is unknown at the time a callback is registered or
    a state is selected directly.
    """


class TransitionError(FluentStateError):
    """
    Raised when a transition is declared incorrectly, e.g. ``or_()`` before ``to()``.
    Failed transition attempts are reported as ``False``, never raised.
    """


class GroupError(FluentStateError):
    """
    Raised for transition group configuration errors: duplicate names, missing
    parents, or a parent assignment that would make a group its own ancestor.
    """


class PluginError(FluentStateError):
    """
    Raised when an object passed to ``StateMachine.use`` is not a supported plugin variant.
    """
