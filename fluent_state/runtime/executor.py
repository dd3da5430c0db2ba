# fluent_state/runtime/executor.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, List, Optional, TypeVar

from fluent_state.core.types import Lifecycle, TransitionAttempt, TransitionStage
from fluent_state.runtime.async_support import invoke_all_concurrently
from fluent_state.runtime.monitor import LogLevel

if TYPE_CHECKING:
    from fluent_state.core.groups import TransitionGroup
    from fluent_state.core.state_machine import StateMachine
    from fluent_state.core.states import State

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Attempt:
    """Bookkeeping for one transition attempt."""

    to_state: str
    context: Any = None
    from_state: Optional[str] = None
    group_name: Optional[str] = None
    stage: TransitionStage = TransitionStage.REQUESTED
    blocked: bool = False

    @property
    def label(self) -> str:
        return f"{self.from_state}->{self.to_state}"


class TransitionExecutor:
    """
    Runs the lifecycle of a transition attempt for a state machine:

    before observers, group gating, validation, global then group middleware,
    exit hooks, the state change, enter hooks (followed by the new state's
    auto-transitions), after observers and finally the new state's handlers.

    Stages before the state change can block the attempt. An enter hook that
    raises undoes the state change. Failures never propagate to the caller;
    ``execute`` returns False and a failed attempt record is emitted.
    """

    def __init__(self, machine: "StateMachine") -> None:
        """
        :param machine: The state machine whose transitions this executor runs.
        """
        self._machine = machine

    async def execute(self, target: str, context: Any = None) -> bool:
        """
        Attempt a transition from the current state to ``target``.

        :param target: Name of the target state.
        :param context: Context for group gating and middleware. Defaults to the
            current state's context.
        :return: True if the machine is now in ``target``.
        """
        attempt = _Attempt(to_state=target, context=context)
        started = time.perf_counter()
        success = False
        try:
            success = await self._run(attempt)
        finally:
            self._finish(attempt, success, started)
        return success

    async def enter_initial(self, state: "State") -> None:
        """Run the entry sequence for the machine's starting state."""
        machine = self._machine
        attempt = _Attempt(to_state=state.name, context=state.get_context())
        started = time.perf_counter()
        success = False
        try:
            attempt.stage = TransitionStage.ENTER_HOOK
            try:
                await self._timed(attempt, state._trigger_enter(None))
                await state.evaluate_auto_transitions(state.get_context())
            except Exception:
                logger.exception("Enter hook of initial state '%s' failed", state.name)
                return
            await self._after(attempt, None, state)
            success = True
        finally:
            self._finish(attempt, success, started)
        machine.monitor.log(LogLevel.INFO, f"State machine started in '{state.name}'")

    async def _run(self, attempt: _Attempt) -> bool:
        machine = self._machine
        current = machine.get_current_state()
        if current is None:
            return self._block(attempt, "No current state")
        attempt.from_state = current.name
        if attempt.context is None:
            attempt.context = current.get_context()
        context = attempt.context
        target = attempt.to_state

        groups = machine.groups_for_transition(current.name, target)
        if groups:
            attempt.group_name = groups[0].full_name

        attempt.stage = TransitionStage.BEFORE_HOOK
        results = await self._timed(attempt, machine.observer.trigger(Lifecycle.BEFORE_TRANSITION, current, target))
        if any(result is False for result in results):
            return self._block(attempt, "Blocked by before-transition observer")

        attempt.stage = TransitionStage.GROUP_GATE
        for group in groups:
            if not group.is_enabled(context) and not group.allows_manual_transitions(context):
                return self._block(attempt, f"Blocked by disabled group '{group.full_name}'")

        attempt.stage = TransitionStage.VALIDATE
        next_state = machine.get_state(target)
        if next_state is None or not current.can(target):
            await self._timed(attempt, machine.observer.trigger(Lifecycle.FAILED_TRANSITION, current, target))
            return self._block(attempt, f"Invalid transition '{current.name}' -> '{target}'")

        attempt.stage = TransitionStage.GLOBAL_MIDDLEWARE
        if not await self._timed(attempt, machine.middleware_chain.run(current, target)):
            return self._block(attempt, "Blocked by middleware")

        attempt.stage = TransitionStage.GROUP_MIDDLEWARE
        if not await self._run_group_middleware(attempt, groups, context):
            return False

        attempt.stage = TransitionStage.EXIT_HOOK
        try:
            await self._timed(attempt, current._trigger_exit(next_state))
        except Exception:
            logger.exception("Exit hook of '%s' failed", current.name)
            return self._block(attempt, "Exit hook failed")

        attempt.stage = TransitionStage.COMMIT
        machine._set_current_state(next_state)

        attempt.stage = TransitionStage.ENTER_HOOK
        try:
            await self._timed(attempt, next_state._trigger_enter(current))
            await next_state.evaluate_auto_transitions(next_state.get_context())
        except Exception:
            logger.exception("Enter hook of '%s' failed; restoring '%s'", next_state.name, current.name)
            machine._set_current_state(current)
            return False

        await self._after(attempt, current, next_state)

        for group in groups:
            group._trigger_transition_handlers(current.name, target, context)
        return True

    async def _run_group_middleware(self, attempt: _Attempt, groups: List["TransitionGroup"], context: Any) -> bool:
        for group in groups:
            if not await self._timed(attempt, group._run_middleware(attempt.from_state, attempt.to_state, context)):
                return self._block(attempt, f"Blocked by middleware of group '{group.full_name}'")
        return True

    async def _after(self, attempt: _Attempt, previous: Optional["State"], current: "State") -> None:
        machine = self._machine
        attempt.stage = TransitionStage.AFTER_HOOK
        await self._timed(attempt, machine.observer.trigger(Lifecycle.AFTER_TRANSITION, previous, current))

        attempt.stage = TransitionStage.STATE_HANDLERS
        errors = await self._timed(attempt, invoke_all_concurrently(current.handlers, previous, current))
        for error in errors:
            logger.error("Handler of '%s' failed: %r", current.name, error, exc_info=error)
        attempt.stage = TransitionStage.DONE

    async def _timed(self, attempt: _Attempt, awaitable: Awaitable[T]) -> T:
        started = time.perf_counter()
        try:
            return await awaitable
        finally:
            self._machine.monitor.record_metric(
                "transitionStage",
                f"{attempt.label}:{attempt.stage.name.lower()}",
                (time.perf_counter() - started) * 1000.0,
            )

    def _block(self, attempt: _Attempt, reason: str) -> bool:
        attempt.blocked = True
        self._machine.monitor.log(
            LogLevel.WARN, reason, {"from": attempt.from_state, "to": attempt.to_state, "stage": attempt.stage.name}
        )
        attempt.stage = TransitionStage.BLOCKED
        return False

    def _finish(self, attempt: _Attempt, success: bool, started: float) -> None:
        monitor = self._machine.monitor
        monitor.record_metric(
            "transitionEvaluation",
            attempt.label,
            (time.perf_counter() - started) * 1000.0,
            {"success": success, "blocked": attempt.blocked, "group": attempt.group_name},
        )
        monitor.record_attempt(
            TransitionAttempt(
                from_state=attempt.from_state,
                to_state=attempt.to_state,
                context=attempt.context,
                success=success,
                group_name=attempt.group_name,
            )
        )
