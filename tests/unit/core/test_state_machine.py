# tests/unit/core/test_state_machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from unittest.mock import MagicMock

import pytest

from fluent_state import (
    Lifecycle,
    MiddlewarePlugin,
    PluginError,
    SetupPlugin,
    StateError,
    StateMachine,
    create_transition_guard,
)

# -----------------------------------------------------------------------------
# STATES
# -----------------------------------------------------------------------------


def test_first_from_state_becomes_current(empty_machine):
    assert empty_machine.state is None
    empty_machine.from_state("a").to("b")
    empty_machine.from_state("b")
    assert empty_machine.state.name == "a"


def test_initial_state_argument():
    machine = StateMachine(initial_state="start")
    assert machine.get_current_state().name == "start"
    assert machine.has("start")


def test_can_reflects_current_state(machine):
    assert machine.can("running")
    assert not machine.can("done")


def test_set_state(machine):
    machine.set_state("done")
    assert machine.state.name == "done"
    with pytest.raises(StateError):
        machine.set_state("unknown")


def test_remove_strips_references(machine):
    group = machine.create_group("g")
    group.add_transition("idle", "failed", tags=["t"])
    machine.get_state("idle").to("failed", lambda s, c: True)

    machine.remove("failed")

    assert not machine.has("failed")
    assert machine.get_state("running").transitions == ["done"]
    assert machine.get_state("idle").transitions == ["running"]
    assert machine.get_state("idle").auto_transitions == []
    assert group.get_all_transitions() == []
    assert group.get_all_tags() == []


def test_remove_current_moves_to_next_available(machine):
    machine.remove("idle")
    assert machine.state.name == "running"


def test_remove_last_state_leaves_no_current(empty_machine):
    empty_machine.from_state("only")
    empty_machine.remove("only")
    assert empty_machine.state is None


def test_remove_unknown_is_noop(machine):
    machine.remove("nope")
    assert machine.state.name == "idle"


def test_clear(machine):
    group = machine.create_group("g")
    group.add_transition("idle", "running")
    machine.clear()
    assert machine.states == {}
    assert machine.state is None
    assert group.get_all_transitions() == []
    assert machine.group("g") is group


# -----------------------------------------------------------------------------
# LIFECYCLE
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_runs_entry_sequence(machine, monitor):
    order = []
    machine.get_state("idle").on_enter(lambda prev, cur: order.append(("enter", prev)))
    machine.observe(Lifecycle.AFTER_TRANSITION, lambda prev, cur: order.append(("after", prev, cur.name)))
    machine.when("idle").do(lambda prev, cur: order.append(("handler", prev)))

    await machine.start()

    assert order == [("enter", None), ("after", None, "idle"), ("handler", None)]
    assert len(monitor.attempts) == 1
    assert monitor.attempts[0].from_state is None
    assert monitor.attempts[0].success is True


@pytest.mark.asyncio
async def test_start_without_states_is_noop(empty_machine, monitor):
    await empty_machine.start()
    assert monitor.attempts == []


@pytest.mark.asyncio
async def test_transition_and_next(machine):
    assert await machine.transition("running") is True
    assert await machine.next("done") is True
    assert machine.state.name == "failed"


@pytest.mark.asyncio
async def test_next_without_targets(machine):
    machine.set_state("done")
    assert await machine.next() is False


@pytest.mark.asyncio
async def test_invalid_transition_returns_false(machine):
    assert await machine.transition("done") is False
    assert await machine.transition("missing") is False
    assert machine.state.name == "idle"


# -----------------------------------------------------------------------------
# CALLBACKS
# -----------------------------------------------------------------------------


def test_when_unknown_state_raises(machine):
    with pytest.raises(StateError):
        machine.when("missing")
    with pytest.raises(StateError):
        machine.when("idle").do(lambda p, c: None).when("missing")


@pytest.mark.asyncio
async def test_when_do_and_chain(machine):
    first = MagicMock()
    second = MagicMock()
    other = MagicMock()
    machine.when("running").do(first).and_(second).when("done").do(other)

    await machine.transition("running")

    first.assert_called_once()
    second.assert_called_once()
    other.assert_not_called()
    previous, current = first.call_args.args
    assert (previous.name, current.name) == ("idle", "running")


# -----------------------------------------------------------------------------
# PLUGINS
# -----------------------------------------------------------------------------


def test_setup_plugin_receives_machine(machine):
    setup = MagicMock()
    machine.use(SetupPlugin(setup))
    setup.assert_called_once_with(machine)


@pytest.mark.asyncio
async def test_middleware_plugin_can_block(machine):
    machine.use(MiddlewarePlugin(lambda prev, nxt, proceed: None))
    assert await machine.transition("running") is False


def test_installable_plugin(machine):
    class Plugin:
        def __init__(self):
            self.installed_on = None

        def install(self, m):
            self.installed_on = m

    plugin = Plugin()
    machine.use(plugin)
    assert plugin.installed_on is machine


def test_bare_callable_plugin_is_rejected(machine):
    with pytest.raises(PluginError):
        machine.use(lambda m: None)
    with pytest.raises(PluginError):
        machine.use(object())


@pytest.mark.asyncio
async def test_transition_guard_plugin(machine):
    def guard(current, next_name, proceed):
        if next_name != "running":
            proceed()

    machine.use(create_transition_guard(guard))
    assert await machine.transition("running") is False

    machine.get_state("idle").to("done")
    assert await machine.transition("done") is True


@pytest.mark.asyncio
async def test_transition_guard_error_blocks(machine):
    def guard(current, next_name, proceed):
        raise RuntimeError("guard broke")

    machine.use(create_transition_guard(guard))
    assert await machine.transition("running") is False
