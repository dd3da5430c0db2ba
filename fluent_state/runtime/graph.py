# fluent_state/runtime/graph.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""Group hierarchy storage for a state machine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

from fluent_state.core.errors import GroupError

if TYPE_CHECKING:
    from fluent_state.core.groups import TransitionGroup


class GroupGraph:
    """
    Arena of transition groups keyed by full name. Each group records only its
    parent's name; children are derived from the parent map, so groups never
    hold references to each other.
    """

    def __init__(self) -> None:
        self._groups: Dict[str, "TransitionGroup"] = {}
        self._parent_map: Dict[str, Optional[str]] = {}

    def add_group(self, group: "TransitionGroup", parent: Optional[str] = None) -> None:
        """
        Register a group, optionally under a parent.

        :raises GroupError: If the name is taken or the parent is unknown.
        """
        name = group.full_name
        if name in self._groups:
            raise GroupError(f"Group '{name}' already exists")
        if parent is not None and parent not in self._groups:
            raise GroupError(f"Parent group '{parent}' does not exist")
        self._groups[name] = group
        self._parent_map[name] = parent

    def remove_group(self, name: str) -> Optional["TransitionGroup"]:
        """Remove a group. Its children become roots."""
        group = self._groups.pop(name, None)
        if group is None:
            return None
        self._parent_map.pop(name, None)
        for child, parent in self._parent_map.items():
            if parent == name:
                self._parent_map[child] = None
        return group

    def get(self, name: str) -> Optional["TransitionGroup"]:
        return self._groups.get(name)

    def parent_of(self, name: str) -> Optional[str]:
        return self._parent_map.get(name)

    def children_of(self, name: str) -> List[str]:
        """Child names in registration order."""
        return [child for child, parent in self._parent_map.items() if parent == name]

    def set_parent(self, name: str, parent: Optional[str]) -> None:
        """
        Re-parent a group; ``None`` makes it a root.

        :raises GroupError: If either group is unknown or the move would create a cycle.
        """
        if name not in self._groups:
            raise GroupError(f"Group '{name}' does not exist")
        if parent is not None:
            if parent not in self._groups:
                raise GroupError(f"Parent group '{parent}' does not exist")
            if self._would_create_cycle(name, parent):
                raise GroupError(f"Setting '{parent}' as parent of '{name}' would create a cycle")
        self._parent_map[name] = parent

    def _would_create_cycle(self, name: str, new_parent: str) -> bool:
        """Check if placing ``name`` under ``new_parent`` would make it its own ancestor."""
        current: Optional[str] = new_parent
        while current is not None:
            if current == name:
                return True
            current = self._parent_map.get(current)
        return False

    def ancestors(self, name: str) -> List[str]:
        """Ancestor names, nearest first."""
        result = []
        current = self._parent_map.get(name)
        while current is not None:
            result.append(current)
            current = self._parent_map.get(current)
        return result

    def __contains__(self, name: object) -> bool:
        return name in self._groups

    def __iter__(self) -> Iterator["TransitionGroup"]:
        return iter(list(self._groups.values()))

    def __len__(self) -> int:
        return len(self._groups)
