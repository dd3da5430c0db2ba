# tests/unit/core/test_resolver.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest
from hypothesis import given
from hypothesis import strategies as st

from fluent_state import StateMachine
from fluent_state.core.resolver import resolve, resolve_transition
from fluent_state.core.types import (
    AutoTransitionConfig,
    EvaluationConfig,
    EvaluationStrategy,
    GroupConfig,
    RetryConfig,
    RetryPolicy,
)

# -----------------------------------------------------------------------------
# TEST FIXTURES
# -----------------------------------------------------------------------------


@pytest.fixture
def chain(empty_machine):
    """parent -> child -> grandchild"""
    parent = empty_machine.create_group("parent")
    child = parent.create_child_group("child")
    grandchild = child.create_child_group("grandchild")
    return parent, child, grandchild


# -----------------------------------------------------------------------------
# INHERITANCE
# -----------------------------------------------------------------------------


def test_child_priority_and_inherited_debounce(empty_machine):
    parent = empty_machine.create_group("parent").with_config(priority=1, debounce=100)
    child = parent.create_child_group("child").with_config(priority=2)
    child.add_transition("s1", "s2")

    effective = resolve(child, "s1", "s2")

    assert effective.priority == 2
    assert effective.debounce == 100
    assert effective.target_state == "s2"


def test_root_debounce_and_leaf_priority_apply_to_every_transition(chain):
    parent, child, grandchild = chain
    parent.with_config(debounce=250)
    grandchild.with_config(priority=7)
    grandchild.add_transition("a", "b").add_transition("b", "c").add_transition("a", "c")

    for from_state, to_state in grandchild.get_all_transitions():
        effective = resolve(grandchild, from_state, to_state)
        assert (effective.priority, effective.debounce) == (7, 250)


def test_transition_value_wins_over_inherited(chain):
    parent, child, _ = chain
    parent.with_config(priority=1)
    child.with_config(priority=2)
    child.add_transition("a", "b", AutoTransitionConfig(priority=9))

    assert resolve(child, "a", "b").priority == 9


def test_unknown_transition_resolves_to_none(chain):
    parent, _, _ = chain
    assert resolve(parent, "x", "y") is None


def test_dynamic_values_need_context(empty_machine):
    group = empty_machine.create_group("g").with_config(priority=lambda ctx: ctx["level"], debounce=10)
    group.add_transition("a", "b")

    assert group.get_effective_config("a", "b").priority is None
    assert group.get_effective_config("a", "b", {"level": 4}).priority == 4
    assert group.get_effective_config("a", "b").debounce == 10


def test_retry_requires_both_fields(chain):
    parent, child, _ = chain
    parent.with_config(retry_config=RetryConfig(max_attempts=3))
    child.add_transition("a", "b")
    assert resolve(child, "a", "b").retry is None

    child.with_config(retry_config=RetryConfig(delay=20))
    assert resolve(child, "a", "b").retry == RetryPolicy(max_attempts=3, delay=20.0)


def test_retry_fields_override_independently(chain):
    parent, child, _ = chain
    parent.with_config(retry_config=RetryConfig(max_attempts=3, delay=100))
    child.add_transition("a", "b", AutoTransitionConfig(retry_config=RetryConfig(delay=5)))
    assert resolve(child, "a", "b").retry == RetryPolicy(max_attempts=3, delay=5.0)


def test_watch_properties_are_unioned_in_order(chain):
    parent, child, grandchild = chain
    parent.with_config(evaluation_config=EvaluationConfig(watch_properties=["a", "b"]))
    child.with_config(evaluation_config=EvaluationConfig(watch_properties=["b", "c"]))
    grandchild.add_transition(
        "s1", "s2", AutoTransitionConfig(evaluation_config=EvaluationConfig(watch_properties=["d", "a"]))
    )

    assert resolve(grandchild, "s1", "s2").evaluation.watch_properties == ["a", "b", "c", "d"]


def test_skip_if_and_strategy_use_closest_definition(chain):
    parent, child, _ = chain
    parent_skip = lambda ctx: False
    child_skip = lambda ctx: True
    parent.with_config(
        evaluation_config=EvaluationConfig(skip_if=parent_skip, evaluation_strategy=EvaluationStrategy.IDLE)
    )
    child.with_config(evaluation_config=EvaluationConfig(skip_if=child_skip))
    child.add_transition("s1", "s2")

    evaluation = resolve(child, "s1", "s2").evaluation
    assert evaluation.skip_if is child_skip
    assert evaluation.evaluation_strategy is EvaluationStrategy.IDLE


def test_resolver_does_not_mutate_inputs(chain):
    parent, child, _ = chain
    parent.with_config(evaluation_config=EvaluationConfig(watch_properties=["a"]))
    child.add_transition("s1", "s2", AutoTransitionConfig(evaluation_config=EvaluationConfig(watch_properties=["b"])))

    resolve(child, "s1", "s2")
    resolve(child, "s1", "s2")

    assert parent.config.evaluation_config.watch_properties == ["a"]
    assert child.get_transition("s1", "s2").evaluation_config.watch_properties == ["b"]


def test_resolve_transition_with_empty_chain():
    config = AutoTransitionConfig(condition=lambda s, c: True, target_state="b", priority=3)
    effective = resolve_transition(config)
    assert effective.priority == 3
    assert effective.debounce is None
    assert effective.retry is None


# -----------------------------------------------------------------------------
# PROPERTY TESTS
# -----------------------------------------------------------------------------

optional_int = st.one_of(st.none(), st.integers(min_value=0, max_value=1000))


@pytest.mark.property
@given(
    priorities=st.lists(optional_int, min_size=1, max_size=5),
    debounces=st.lists(optional_int, min_size=1, max_size=5),
    own_priority=optional_int,
)
def test_last_definition_wins(priorities, debounces, own_priority):
    depth = max(len(priorities), len(debounces))
    priorities = priorities + [None] * (depth - len(priorities))
    debounces = debounces + [None] * (depth - len(debounces))
    chain = [GroupConfig(priority=p, debounce=d) for p, d in zip(priorities, debounces)]

    effective = resolve_transition(AutoTransitionConfig(target_state="b", priority=own_priority), chain)

    defined_priorities = [p for p in priorities if p is not None]
    defined_debounces = [d for d in debounces if d is not None]
    expected_priority = own_priority if own_priority is not None else (defined_priorities or [None])[-1]
    assert effective.priority == expected_priority
    assert effective.debounce == (defined_debounces or [None])[-1]


@pytest.mark.property
@given(st.lists(st.lists(st.sampled_from(["a", "b", "c", "d.e", "f[0]"]), max_size=4), min_size=1, max_size=4))
def test_watch_union_is_deduplicated(watch_lists):
    chain = [GroupConfig(evaluation_config=EvaluationConfig(watch_properties=w)) for w in watch_lists]
    merged = resolve_transition(AutoTransitionConfig(target_state="b"), chain).evaluation.watch_properties

    flattened = [p for w in watch_lists for p in w]
    assert len(merged) == len(set(merged))
    assert set(merged) == set(flattened)
    assert merged == sorted(set(flattened), key=flattened.index)


@pytest.mark.property
@given(depth=st.integers(min_value=1, max_value=6), value=st.integers(min_value=0, max_value=50))
def test_dynamic_inherited_values_materialize_with_context(depth, value):
    machine = StateMachine()
    group = machine.create_group("g0").with_config(debounce=lambda ctx: ctx["v"])
    for i in range(1, depth):
        group = group.create_child_group(f"g{i}")
    group.add_transition("a", "b")

    assert group.get_effective_config("a", "b").debounce is None
    assert group.get_effective_config("a", "b", {"v": value}).debounce == value
