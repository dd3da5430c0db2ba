# fluent_state/core/values.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Static(Generic[T]):
    """A configuration value fixed at declaration time."""

    value: T

    def evaluate(self, context: Any = None) -> Optional[T]:
        return self.value


@dataclass(frozen=True)
class Dynamic(Generic[T]):
    """
    A configuration value computed from the transition context. Without a
    context there is nothing to compute from, so the value is unset (None).
    A function that raises is logged and also yields None.
    """

    fn: Callable[[Any], T]

    def evaluate(self, context: Any = None) -> Optional[T]:
        if context is None:
            return None
        try:
            return self.fn(context)
        except Exception:
            logger.exception("Dynamic setting %r failed; treating it as unset", self.fn)
            return None


Setting = Union[Static[T], Dynamic[T]]


def to_setting(value: Any) -> Optional[Setting]:
    """
    Normalize a user-supplied value into a Setting.

    :param value: None, a Static/Dynamic, a callable taking the context, or a literal.
    :return: The tagged value, or None when unset.
    """
    if value is None or isinstance(value, (Static, Dynamic)):
        return value
    if callable(value):
        return Dynamic(value)
    return Static(value)


def evaluate_setting(setting: Optional[Setting], context: Any = None) -> Any:
    """Materialize a setting, returning None for unset or context-less dynamic values."""
    if setting is None:
        return None
    return setting.evaluate(context)


def is_static(setting: Optional[Setting]) -> bool:
    return isinstance(setting, Static)
