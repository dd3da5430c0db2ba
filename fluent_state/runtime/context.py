# fluent_state/runtime/context.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Per-state context storage and property-level change detection.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

_PATH_TOKEN = re.compile(r"[^.\[\]]+|\[(\d+)\]")

MISSING = object()


def _split_path(path: str) -> List[Any]:
    """Split ``"items[0].value"`` into ``["items", 0, "value"]``."""
    parts: List[Any] = []
    for match in _PATH_TOKEN.finditer(path):
        index = match.group(1)
        parts.append(int(index) if index is not None else match.group(0))
    return parts


def get_path(obj: Any, path: str) -> Any:
    """
    Read a dotted path (with optional ``[n]`` indices) from nested mappings,
    sequences or attribute-bearing objects.

    :return: The value, or ``MISSING`` if any segment is absent.
    """
    current = obj
    for part in _split_path(path):
        if current is None:
            return MISSING
        if isinstance(part, int):
            try:
                current = current[part]
            except (IndexError, KeyError, TypeError):
                return MISSING
        elif isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif hasattr(current, part):
            current = getattr(current, part)
        else:
            return MISSING
    return current


def watched_changed(previous: Any, current: Any, paths: Iterable[str]) -> bool:
    """True if any watched path differs (by value) between the two contexts."""
    for path in paths:
        before = get_path(previous, path)
        after = get_path(current, path)
        if before is MISSING or after is MISSING:
            if before is not after:
                return True
            continue
        if before != after:
            return True
    return False


class ContextStore:
    """
    Holds a state's context as a dictionary. Updates are shallow merges and
    produce a new dictionary so earlier snapshots stay valid for diffing.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._state: Dict[str, Any] = dict(initial or {})

    def get_state(self) -> Dict[str, Any]:
        return self._state

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the current context, for rollback."""
        return copy.deepcopy(self._state)

    def set_state(self, update: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Merge ``update`` into the context.

        :raises TypeError: If ``update`` is not a mapping.
        """
        if not isinstance(update, Mapping):
            raise TypeError(f"Context update must be a mapping, got {type(update).__name__}")
        self._state = {**self._state, **update}
        return self._state

    def replace_state(self, state: Mapping[str, Any]) -> None:
        self._state = dict(state)
