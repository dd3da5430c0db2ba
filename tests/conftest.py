# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from typing import Any, List, Tuple

import pytest

from fluent_state import StateMachine, TransitionMonitor


def pytest_configure(config):
    """Register custom marks."""
    config.addinivalue_line("markers", "property: mark test as a property-based test")
    config.addinivalue_line("markers", "timing: mark test as depending on real timer delays")


class RecordingMonitor(TransitionMonitor):
    """Monitor that keeps every attempt and metric it receives."""

    def __init__(self) -> None:
        super().__init__()
        self.attempts: List[Any] = []
        self.metrics: List[Tuple[str, str, float, dict]] = []
        self.add_attempt_sink(self.attempts.append)
        self.add_metric_sink(lambda category, key, ms, tags: self.metrics.append((category, key, ms, tags)))


@pytest.fixture
def monitor():
    return RecordingMonitor()


@pytest.fixture
def machine(monitor):
    """A machine with idle -> running -> done and running -> failed."""
    m = StateMachine(initial_state="idle", monitor=monitor)
    m.from_state("idle").to("running")
    m.from_state("running").to("done").or_("failed")
    return m


@pytest.fixture
def empty_machine(monitor):
    return StateMachine(monitor=monitor)
