# tests/integration/test_scenarios.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
End-to-end scenarios combining groups, the scheduler and the executor.
"""

import asyncio

import pytest

from fluent_state import (
    AutoTransitionConfig,
    Dynamic,
    EvaluationConfig,
    EvaluationStrategy,
    Lifecycle,
    StateMachine,
    create_transition_guard,
)
from fluent_state.persistence.serializer import from_json, to_json

# -----------------------------------------------------------------------------
# FIXTURES
# -----------------------------------------------------------------------------


@pytest.fixture
def checkout():
    """
    cart -> payment -> confirmed, with payment -> failed. The payment steps live
    in a child group of ``checkout:flow``.
    """
    machine = StateMachine(initial_state="cart")
    flow = machine.create_group("checkout:flow").with_config(priority=1)
    payment = flow.create_child_group("checkout:payment")

    flow.from_state("cart").to("payment", lambda s, ctx: ctx.get("items", 0) > 0)
    payment.from_state("payment").with_tags("happy").to(
        "confirmed",
        AutoTransitionConfig(
            condition=lambda s, ctx: ctx.get("paid", False),
            priority=5,
            evaluation_config=EvaluationConfig(watch_properties=["paid"]),
        ),
    ).or_("failed", lambda s, ctx: ctx.get("declined", False))
    return machine


# -----------------------------------------------------------------------------
# SCENARIOS
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_checkout_flows_through_context_updates(checkout):
    visited = []
    checkout.observe(Lifecycle.AFTER_TRANSITION, lambda prev, cur: visited.append(cur.name))
    transitions = []
    checkout.group("checkout:flow").on_transition(lambda f, t, ctx: transitions.append((f, t)))

    await checkout.start()
    await checkout.state.update_context({"items": 2})
    assert checkout.state.name == "payment"

    await checkout.state.update_context({"note": "gift"})
    assert checkout.state.name == "payment"

    await checkout.state.update_context({"paid": True})
    assert checkout.state.name == "confirmed"

    assert visited == ["cart", "payment", "confirmed"]
    # the child's transition bubbles to the parent
    assert transitions == [("cart", "payment"), ("payment", "confirmed")]


@pytest.mark.asyncio
async def test_inherited_priority_orders_group_candidates(checkout):
    payment = checkout.group("checkout:payment")
    assert payment.get_effective_config("payment", "confirmed").priority == 5
    assert payment.get_effective_config("payment", "failed").priority == 1
    assert payment.get_transitions_by_tag("happy") == [("payment", "confirmed")]

    checkout.set_state("payment")
    await checkout.state.update_context({"paid": True, "declined": True})
    assert checkout.state.name == "confirmed"


@pytest.mark.asyncio
async def test_disabled_parent_stops_automatic_but_not_manual(checkout):
    checkout.group("checkout:flow").disable(cascade=True)

    await checkout.state.update_context({"items": 1})
    assert checkout.state.name == "cart"

    assert await checkout.transition("payment") is True
    await checkout.state.update_context({"paid": True})
    assert checkout.state.name == "payment"


@pytest.mark.timing
@pytest.mark.asyncio
async def test_temporary_disable_then_resume(checkout):
    flow = checkout.group("checkout:flow")
    resumed = []
    flow.disable_temporarily(30, callback=lambda: resumed.append(True))

    await checkout.state.update_context({"items": 1})
    assert checkout.state.name == "cart"

    await asyncio.sleep(0.08)
    assert resumed == [True]
    assert flow.is_enabled()

    await checkout.state.update_context({"items": 3})
    assert checkout.state.name == "payment"


@pytest.mark.asyncio
async def test_guard_plugin_and_dynamic_predicate(checkout):
    checkout.use(create_transition_guard(lambda cur, nxt, proceed: proceed() if nxt != "failed" else None))
    flow = checkout.group("checkout:flow")
    flow.set_enable_predicate(lambda ctx: not ctx.get("maintenance", False))

    await checkout.state.update_context({"items": 1, "maintenance": True})
    assert checkout.state.name == "cart"

    await checkout.state.update_context({"maintenance": False})
    assert checkout.state.name == "payment"

    assert await checkout.transition("failed") is False
    assert checkout.state.name == "payment"


@pytest.mark.asyncio
async def test_dynamic_priority_follows_context():
    machine = StateMachine(initial_state="start")
    fast = machine.create_group("fast").with_config(priority=Dynamic(lambda ctx: 10 if ctx.get("rush") else 0))
    fast.add_transition("start", "express", lambda s, ctx: True)
    machine.from_state("start").to("standard", AutoTransitionConfig(condition=lambda s, ctx: True, priority=5))

    await machine.state.update_context({"rush": True})
    assert machine.state.name == "express"


@pytest.mark.asyncio
async def test_next_tick_pipeline():
    machine = StateMachine(initial_state="queued")
    lane = EvaluationConfig(evaluation_strategy=EvaluationStrategy.NEXT_TICK)
    machine.from_state("queued").to("working", AutoTransitionConfig(condition=lambda s, ctx: ctx.get("go"), evaluation_config=lane))

    await machine.state.update_context({"go": True})
    assert machine.state.name == "queued"

    await asyncio.sleep(0.01)
    assert machine.state.name == "working"


@pytest.mark.asyncio
async def test_exported_groups_drive_a_new_machine(checkout):
    payload = to_json(checkout.export_groups())

    conditions = {
        "checkout:flow": {"cart": {"payment": lambda s, ctx: ctx.get("items", 0) > 0}},
        "checkout:payment": {
            "payment": {
                "confirmed": lambda s, ctx: ctx.get("paid", False),
                "failed": lambda s, ctx: ctx.get("declined", False),
            }
        },
    }
    restored = StateMachine(initial_state="cart")
    restored.import_groups(from_json(payload), condition_maps=conditions)

    assert restored.group("checkout:payment").get_parent() is restored.group("checkout:flow")

    await restored.state.update_context({"items": 1})
    await restored.state.update_context({"paid": True})
    assert restored.state.name == "confirmed"
