# fluent_state/runtime/timers.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
from typing import Callable, Dict, Hashable


class TimerRegistry:
    """
    Owns scheduled callbacks on the running event loop, keyed by the resource that
    created them. There is at most one pending timer per key; scheduling again
    supersedes the previous one rather than accumulating.
    """

    def __init__(self) -> None:
        self._handles: Dict[Hashable, asyncio.TimerHandle] = {}

    def schedule(self, key: Hashable, delay_ms: float, callback: Callable[[], None]) -> None:
        """
        Start (or restart) the timer for ``key``.

        :param key: Owner of the timer.
        :param delay_ms: Delay in milliseconds.
        :param callback: Synchronous callable to run when the timer fires.
        :raises RuntimeError: If there is no running event loop.
        """
        self.cancel(key)
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            self._handles.pop(key, None)
            callback()

        self._handles[key] = loop.call_later(max(delay_ms, 0) / 1000.0, _fire)

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending timer for ``key``. Returns True if one was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Cancel every pending timer whose key matches ``predicate``."""
        keys = [key for key in self._handles if predicate(key)]
        for key in keys:
            self.cancel(key)
        return len(keys)

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def is_pending(self, key: Hashable) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)
