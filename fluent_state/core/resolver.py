# fluent_state/core/resolver.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Effective configuration for transitions.

A transition inherits ``priority``, ``debounce``, ``retry_config`` and
``evaluation_config`` from the groups above it. The chain is walked from the
root group down to the owning group; each group that defines a field overwrites
the running value, and the transition's own value always wins. Dynamic values
are materialized only when a context is given.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from fluent_state.core.types import (
    AutoTransitionConfig,
    EffectiveConfig,
    EvaluationConfig,
    GroupConfig,
    RetryPolicy,
)
from fluent_state.core.values import Setting, evaluate_setting

if TYPE_CHECKING:
    from fluent_state.core.groups import TransitionGroup


def _override(values: Sequence[Optional[Setting]]) -> Optional[Setting]:
    result = None
    for value in values:
        if value is not None:
            result = value
    return result


def _retry_field(chain: Sequence[GroupConfig], config: AutoTransitionConfig, name: str) -> Optional[Setting]:
    values = [getattr(gc.retry_config, name) for gc in chain if gc.retry_config is not None]
    if config.retry_config is not None:
        values.append(getattr(config.retry_config, name))
    return _override(values)


def _merge_evaluation(chain: Sequence[GroupConfig], own: Optional[EvaluationConfig]) -> EvaluationConfig:
    configs = [gc.evaluation_config for gc in chain if gc.evaluation_config is not None]
    if own is not None:
        configs.append(own)

    watch: List[str] = []
    skip_if = None
    strategy = None
    for ec in configs:
        for prop in ec.watch_properties:
            if prop not in watch:
                watch.append(prop)
        if ec.skip_if is not None:
            skip_if = ec.skip_if
        if ec.evaluation_strategy is not None:
            strategy = ec.evaluation_strategy
    return EvaluationConfig(watch_properties=watch, skip_if=skip_if, evaluation_strategy=strategy)


def resolve_transition(
    config: AutoTransitionConfig,
    chain: Sequence[GroupConfig] = (),
    context: Any = None,
) -> EffectiveConfig:
    """
    Merge a transition's configuration with an inherited chain.

    :param config: The transition's own configuration.
    :param chain: Group configurations, root first.
    :param context: Context for dynamic values; without one they resolve to None.
    :return: The materialized configuration.
    """
    priority = _override([gc.priority for gc in chain] + [config.priority])
    debounce = _override([gc.debounce for gc in chain] + [config.debounce])

    max_attempts = evaluate_setting(_retry_field(chain, config, "max_attempts"), context)
    delay = evaluate_setting(_retry_field(chain, config, "delay"), context)
    retry = None
    if max_attempts is not None and delay is not None:
        retry = RetryPolicy(max_attempts=int(max_attempts), delay=float(delay))

    return EffectiveConfig(
        target_state=config.target_state,
        condition=config.condition,
        priority=evaluate_setting(priority, context),
        debounce=evaluate_setting(debounce, context),
        retry=retry,
        evaluation=_merge_evaluation(chain, config.evaluation_config),
        tags=list(config.tags),
    )


def resolve(
    group: "TransitionGroup", from_state: str, to_state: str, context: Any = None
) -> Optional[EffectiveConfig]:
    """
    Resolve the effective configuration of a transition owned by ``group``.

    :return: None if the group does not own the transition.
    """
    config = group.get_transition(from_state, to_state)
    if config is None:
        return None
    chain = [g.config for g in group.get_hierarchy_path()]
    effective = resolve_transition(config, chain, context)
    if effective.target_state is None:
        effective.target_state = to_state
    effective.tags = group.get_tags_for_transition(from_state, to_state)
    return effective
