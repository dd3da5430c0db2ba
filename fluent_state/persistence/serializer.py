# fluent_state/persistence/serializer.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Serialization of transition groups.

Groups are written as plain dictionaries with camelCase keys so they can be
stored as JSON and exchanged with other runtimes:

.. code-block:: text

    {name, namespace?, enabled, preventManualTransitions,
     config: {priority?, debounce?, retryConfig?: {maxAttempts?, delay?}},
     transitions: [{from, to, config: {targetState, priority?, debounce?,
                    retryConfig?, evaluationConfig?}, tags}],
     parentGroup?, childGroups?}

Only static values are written. Conditions, ``skip_if`` predicates and dynamic
settings cannot be serialized; they are supplied again when deserializing.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from fluent_state.core.types import AutoTransitionConfig, EvaluationConfig, GroupConfig, RetryConfig
from fluent_state.core.values import Setting, is_static

if TYPE_CHECKING:
    from fluent_state.core.groups import TransitionGroup
    from fluent_state.core.types import Condition

logger = logging.getLogger(__name__)


def _always_true(state: Any, context: Any) -> bool:
    return True


def _put_static(target: Dict[str, Any], key: str, setting: Optional[Setting]) -> None:
    if is_static(setting):
        target[key] = setting.value


def _retry_to_dict(retry: Optional[RetryConfig]) -> Optional[Dict[str, Any]]:
    if retry is None:
        return None
    data: Dict[str, Any] = {}
    _put_static(data, "maxAttempts", retry.max_attempts)
    _put_static(data, "delay", retry.delay)
    return data or None


def _retry_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[RetryConfig]:
    if not data:
        return None
    return RetryConfig(max_attempts=data.get("maxAttempts"), delay=data.get("delay"))


def _group_config_to_dict(config: GroupConfig) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    _put_static(data, "priority", config.priority)
    _put_static(data, "debounce", config.debounce)
    retry = _retry_to_dict(config.retry_config)
    if retry:
        data["retryConfig"] = retry
    return data


def _transition_config_to_dict(config: AutoTransitionConfig, to_state: str) -> Dict[str, Any]:
    data: Dict[str, Any] = {"targetState": config.target_state or to_state}
    _put_static(data, "priority", config.priority)
    _put_static(data, "debounce", config.debounce)
    retry = _retry_to_dict(config.retry_config)
    if retry:
        data["retryConfig"] = retry
    evaluation = config.evaluation_config
    if evaluation is not None:
        ec: Dict[str, Any] = {}
        if evaluation.watch_properties:
            ec["watchProperties"] = list(evaluation.watch_properties)
        if evaluation.evaluation_strategy is not None:
            ec["evaluationStrategy"] = evaluation.evaluation_strategy.value
        if ec:
            data["evaluationConfig"] = ec
    return data


def serialize_group(group: "TransitionGroup") -> Dict[str, Any]:
    """Return the wire form of ``group``."""
    transitions = []
    for from_state, to_state in group.get_all_transitions():
        transitions.append(
            {
                "from": from_state,
                "to": to_state,
                "config": _transition_config_to_dict(group.get_transition(from_state, to_state), to_state),
                "tags": group.get_tags_for_transition(from_state, to_state),
            }
        )

    data: Dict[str, Any] = {"name": group.name}
    if group.namespace:
        data["namespace"] = group.namespace
    data["enabled"] = group.is_enabled()
    data["preventManualTransitions"] = group.prevent_manual_transitions
    data["config"] = _group_config_to_dict(group.config)
    data["transitions"] = transitions

    parent = group.get_parent()
    if parent is not None:
        data["parentGroup"] = parent.full_name
    children = group.get_child_groups()
    if children:
        data["childGroups"] = [child.full_name for child in children]
    return data


def apply_serialized(
    group: "TransitionGroup",
    data: Mapping[str, Any],
    condition_map: Optional[Mapping[str, Mapping[str, "Condition"]]] = None,
) -> "TransitionGroup":
    """
    Load configuration, flags and transitions from ``data`` into ``group``.

    :param condition_map: Conditions keyed by source then target state. A
        transition with no entry becomes unconditional, and a warning is logged.
    """
    condition_map = condition_map or {}
    group._enabled = bool(data.get("enabled", True))
    group._prevent_manual_transitions = bool(data.get("preventManualTransitions", False))

    config = data.get("config") or {}
    group.config = GroupConfig(
        priority=config.get("priority"),
        debounce=config.get("debounce"),
        retry_config=_retry_from_dict(config.get("retryConfig")),
    )

    for entry in data.get("transitions", []):
        from_state, to_state = entry["from"], entry["to"]
        raw = entry.get("config") or {}
        condition = condition_map.get(from_state, {}).get(to_state)
        if condition is None:
            logger.warning(
                "No condition supplied for %s -> %s in group '%s'; using an always-true condition",
                from_state,
                to_state,
                group.full_name,
            )
            condition = _always_true

        evaluation = None
        raw_eval = raw.get("evaluationConfig")
        if raw_eval:
            evaluation = EvaluationConfig(
                watch_properties=raw_eval.get("watchProperties") or [],
                evaluation_strategy=raw_eval.get("evaluationStrategy"),
            )
        transition = AutoTransitionConfig(
            condition=condition,
            target_state=to_state,
            priority=raw.get("priority"),
            debounce=raw.get("debounce"),
            retry_config=_retry_from_dict(raw.get("retryConfig")),
            evaluation_config=evaluation,
        )
        group.add_transition(from_state, to_state, transition, entry.get("tags") or [])
    return group


def to_json(data: Any, **kwargs: Any) -> str:
    """Dump serialized groups (one or a list) to a JSON string."""
    return json.dumps(data, **kwargs)


def from_json(text: str) -> Any:
    return json.loads(text)
