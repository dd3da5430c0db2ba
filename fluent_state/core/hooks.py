# fluent_state/core/hooks.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from fluent_state.core.types import Lifecycle
from fluent_state.runtime.async_support import invoke

logger = logging.getLogger(__name__)


class Observer:
    """
    Manages observers of state machine lifecycle events. Observers for the same
    event run one after another in registration order, each awaited before the
    next starts.
    """

    def __init__(self) -> None:
        self._observers: Dict[Lifecycle, List[Callable[..., Any]]] = {}

    def add(self, event: Lifecycle, handler: Callable[..., Any]) -> None:
        """
        Register a handler for a lifecycle event.

        :param event: The lifecycle event.
        :param handler: Sync or async callable.
        """
        self._observers.setdefault(Lifecycle(event), []).append(handler)

    async def trigger(self, event: Lifecycle, *args: Any) -> List[Any]:
        """
        Run every handler for ``event`` and collect the results. A handler that
        raises is logged and contributes ``False``.
        """
        results = []
        for handler in list(self._observers.get(event, [])):
            try:
                results.append(await invoke(handler, *args))
            except Exception:
                logger.exception("Observer for %s failed", event.name)
                results.append(False)
        return results
