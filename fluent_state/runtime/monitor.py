# fluent_state/runtime/monitor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Monitoring boundary for a state machine.

The executor and scheduler report three kinds of information here: structured
log messages, timing metrics and transition-attempt records. Log messages go to
the standard ``logging`` hierarchy under ``fluent_state``; metrics and attempts
are forwarded to any registered sinks. Applications attach history recorders or
metric exporters as sinks without the core knowing about them.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from fluent_state.core.types import TransitionAttempt

MetricSink = Callable[[str, str, float, Dict[str, Any]], None]
AttemptSink = Callable[[TransitionAttempt], None]


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class TransitionMonitor:
    """
    Collects logs, metrics and attempt records emitted by a state machine.

    :param logger: Logger to write to. Defaults to the ``fluent_state`` logger.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("fluent_state")
        self._metric_sinks: List[MetricSink] = []
        self._attempt_sinks: List[AttemptSink] = []

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def add_metric_sink(self, sink: MetricSink) -> None:
        self._metric_sinks.append(sink)

    def remove_metric_sink(self, sink: MetricSink) -> None:
        if sink in self._metric_sinks:
            self._metric_sinks.remove(sink)

    def add_attempt_sink(self, sink: AttemptSink) -> None:
        self._attempt_sinks.append(sink)

    def remove_attempt_sink(self, sink: AttemptSink) -> None:
        if sink in self._attempt_sinks:
            self._attempt_sinks.remove(sink)

    def log(self, level: Union[LogLevel, str], message: str, details: Optional[Mapping[str, Any]] = None) -> None:
        """
        Write a structured log message.

        :param level: One of ``debug``, ``info``, ``warn`` or ``error``.
        :param message: Human-readable message.
        :param details: Extra fields, attached to the record as ``details``.
        """
        numeric = _LEVELS[LogLevel(level)]
        if details:
            self._logger.log(numeric, "%s %s", message, dict(details), extra={"details": dict(details)})
        else:
            self._logger.log(numeric, message)

    def record_metric(
        self, category: str, key: str, duration_ms: float, tags: Optional[Mapping[str, Any]] = None
    ) -> None:
        """Forward a timing metric to every metric sink."""
        payload = dict(tags or {})
        for sink in list(self._metric_sinks):
            try:
                sink(category, key, duration_ms, payload)
            except Exception:
                self._logger.exception("Metric sink failed for %s/%s", category, key)

    def record_attempt(self, attempt: TransitionAttempt) -> None:
        """Forward a transition-attempt record to every attempt sink."""
        for sink in list(self._attempt_sinks):
            try:
                sink(attempt)
            except Exception:
                self._logger.exception(
                    "Attempt sink failed for %s -> %s", attempt.from_state, attempt.to_state
                )
