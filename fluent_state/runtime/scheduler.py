# fluent_state/runtime/scheduler.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Evaluation scheduler for automatic transitions.

Every context update on a state is offered to the scheduler. For each
auto-transition leaving that state it decides whether the update is relevant
(watched properties), whether to drop it (``skip_if``), whether to wait for a
quiet period (debounce), and on which lane to run the condition:

* ``immediate``: awaited inside the ``update_context`` call;
* ``nextTick``: FIFO, started on the next loop turn;
* ``idle``: only when no immediate or next-tick work is pending.

An auto-transition is tracked under the key ``(state, target, group)``; there is
at most one pending debounce timer per key.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Deque, List, Optional, Set, Tuple

from fluent_state.core.resolver import resolve, resolve_transition
from fluent_state.core.types import AutoTransitionConfig, EffectiveConfig, EvaluationStrategy
from fluent_state.runtime.async_support import invoke
from fluent_state.runtime.context import watched_changed
from fluent_state.runtime.timers import TimerRegistry

if TYPE_CHECKING:
    from fluent_state.core.groups import TransitionGroup
    from fluent_state.core.state_machine import StateMachine
    from fluent_state.core.states import State

logger = logging.getLogger(__name__)

EvaluationKey = Tuple[str, str, Optional[str]]


@dataclass
class Candidate:
    """An auto-transition considered for evaluation, with its resolved configuration."""

    state: "State"
    config: AutoTransitionConfig
    effective: EffectiveConfig
    group: Optional["TransitionGroup"] = None

    @property
    def target(self) -> str:
        return self.effective.target_state

    @property
    def key(self) -> EvaluationKey:
        return (self.state.name, self.target, self.group.full_name if self.group is not None else None)

    @property
    def strategy(self) -> EvaluationStrategy:
        return self.effective.evaluation.evaluation_strategy or EvaluationStrategy.IMMEDIATE


async def run_condition(state: "State", effective: EffectiveConfig, context: Any) -> bool:
    """
    Evaluate a transition condition, retrying if it raises and a retry policy is
    configured. A False result is final.
    """
    attempts = max(effective.retry.max_attempts, 1) if effective.retry else 1
    for attempt in range(1, attempts + 1):
        try:
            return bool(await invoke(effective.condition, state, context))
        except Exception:
            if attempt >= attempts:
                logger.exception(
                    "Condition for %s -> %s failed after %d attempt(s)", state.name, effective.target_state, attempt
                )
                return False
            logger.warning(
                "Condition for %s -> %s failed (attempt %d of %d), retrying",
                state.name,
                effective.target_state,
                attempt,
                attempts,
            )
            await asyncio.sleep(effective.retry.delay / 1000.0)
    return False


class EvaluationScheduler:
    """
    Decides when auto-transition conditions are checked after context changes.
    One scheduler belongs to one state machine.
    """

    def __init__(self, machine: "StateMachine") -> None:
        self._machine = machine
        self._timers = TimerRegistry()
        self._next_tick: Deque[Candidate] = deque()
        self._idle: Deque[Candidate] = deque()
        self._next_tick_task: Optional[asyncio.Task] = None
        self._idle_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._pending = 0
        self._quiet = asyncio.Event()
        self._quiet.set()

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    @property
    def is_idle(self) -> bool:
        """True when no timers, queued work or running evaluations remain."""
        return not (len(self._timers) or self._next_tick or self._idle or self._pending or self._tasks)

    # ---- Candidate collection ----

    def collect_candidates(self, state: "State", context: Any = None) -> List[Candidate]:
        """
        Auto-transitions leaving ``state`` that have a condition, ordered by
        priority (highest first, definition order on ties). Group transitions
        are included only while their group is enabled for ``context``.
        """
        candidates = []
        for config in state.auto_transitions:
            if config.condition is None:
                continue
            candidates.append(Candidate(state, config, resolve_transition(config, (), context)))

        for group in self._machine.get_all_groups():
            for to_state, config in group.transitions_from(state.name).items():
                if config.condition is None or not group.is_enabled(context):
                    continue
                candidates.append(Candidate(state, config, resolve(group, state.name, to_state, context), group))

        candidates.sort(key=lambda c: -(c.effective.priority or 0))
        return candidates

    async def check_condition(self, candidate: Candidate, context: Any) -> bool:
        started = time.perf_counter()
        result = await run_condition(candidate.state, candidate.effective, context)
        self._machine.monitor.record_metric(
            "conditionEvaluation",
            f"{candidate.state.name}->{candidate.target}",
            (time.perf_counter() - started) * 1000.0,
            {"result": result, "group": candidate.key[2]},
        )
        return result

    # ---- Triggering ----

    async def notify(self, state: "State", previous: Any, current: Any) -> None:
        """
        Offer a context change on ``state`` to every auto-transition leaving it.

        :param state: The state whose context changed.
        :param previous: Context before the change.
        :param current: Context after the change.
        """
        immediate = []
        for candidate in self.collect_candidates(state, current):
            evaluation = candidate.effective.evaluation
            if evaluation.watch_properties and not watched_changed(previous, current, evaluation.watch_properties):
                continue
            if evaluation.skip_if is not None and self._should_skip(candidate, current):
                self._timers.cancel(candidate.key)
                continue

            debounce = candidate.effective.debounce or 0
            if debounce > 0:
                self._timers.schedule(candidate.key, debounce, lambda c=candidate: self._dispatch(c))
            elif candidate.strategy is EvaluationStrategy.IMMEDIATE:
                immediate.append(candidate)
            else:
                self._dispatch(candidate)

        for candidate in immediate:
            await self._run_immediate(candidate)

    def _should_skip(self, candidate: Candidate, context: Any) -> bool:
        try:
            return bool(candidate.effective.evaluation.skip_if(context))
        except Exception:
            logger.exception("skip_if for %s -> %s failed; skipping", candidate.state.name, candidate.target)
            return True

    def _dispatch(self, candidate: Candidate) -> None:
        """Queue a candidate on its lane. Immediate candidates start a task at once."""
        strategy = candidate.strategy
        if strategy is EvaluationStrategy.NEXT_TICK:
            self._next_tick.append(candidate)
            self._begin()
            if self._next_tick_task is None or self._next_tick_task.done():
                self._next_tick_task = self._spawn(self._drain_next_tick())
        elif strategy is EvaluationStrategy.IDLE:
            self._idle.append(candidate)
            if self._idle_task is None or self._idle_task.done():
                self._idle_task = self._spawn(self._drain_idle())
        else:
            self._spawn(self._run_immediate(candidate))

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _begin(self) -> None:
        self._pending += 1
        self._quiet.clear()

    def _end(self) -> None:
        self._pending = max(self._pending - 1, 0)
        if self._pending == 0:
            self._quiet.set()

    # ---- Lanes ----

    async def _run_immediate(self, candidate: Candidate) -> None:
        self._begin()
        try:
            await self._evaluate(candidate)
        finally:
            self._end()

    async def _drain_next_tick(self) -> None:
        while self._next_tick:
            candidate = self._next_tick.popleft()
            try:
                await self._evaluate(candidate)
            finally:
                self._end()

    async def _drain_idle(self) -> None:
        while self._idle:
            # Let queued next-tick work start before checking for quiet.
            await asyncio.sleep(0)
            await self._quiet.wait()
            if not self._idle:
                break
            await self._evaluate(self._idle.popleft())

    async def _evaluate(self, candidate: Candidate) -> bool:
        state = candidate.state
        machine = self._machine
        if not self._is_live(state):
            return False

        context = state.get_context()
        group = candidate.group
        if group is not None:
            if machine.group_graph.get(group.full_name) is not group or not group.has_transition(state.name, candidate.target):
                return False
            if not group.is_enabled(context):
                return False
            effective = resolve(group, state.name, candidate.target, context)
        else:
            if not any(config is candidate.config for config in state.auto_transitions):
                return False
            effective = resolve_transition(candidate.config, (), context)

        if not await self.check_condition(Candidate(state, candidate.config, effective, group), context):
            return False
        # The state may have been removed or left while the condition ran.
        if not self._is_live(state):
            return False
        await machine.transition(effective.target_state)
        return True

    def _is_live(self, state: "State") -> bool:
        return self._machine.get_state(state.name) is state and self._machine.get_current_state() is state

    # ---- Cancellation ----

    def cancel_for_state(self, name: str) -> None:
        """Cancel debounce timers and queued evaluations that reference ``name``."""

        def involves(candidate: Candidate) -> bool:
            return candidate.state.name == name or candidate.target == name

        self._timers.cancel_where(lambda key: key[0] == name or key[1] == name)
        removed = [c for c in self._next_tick if involves(c)]
        self._next_tick = deque(c for c in self._next_tick if not involves(c))
        for _ in removed:
            self._end()
        self._idle = deque(c for c in self._idle if not involves(c))

    def cancel_for_group(self, full_name: str) -> None:
        self._timers.cancel_where(lambda key: key[2] == full_name)

    def cancel_all(self) -> None:
        """Drop every pending timer, queued evaluation and running lane."""
        self._timers.cancel_all()
        self._next_tick.clear()
        self._idle.clear()
        current = asyncio.current_task() if self._has_running_loop() else None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        # A cancelled task reports done() only after the loop has run it.
        self._next_tick_task = None
        self._idle_task = None
        self._pending = 0
        self._quiet.set()

    @staticmethod
    def _has_running_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True
