"""
Rule matching for Warden.

Pure functions that decide whether a single PolicyRule applies to a
single PermissionRequest. Nothing here touches shared state, so the
evaluator can call it from any thread.

Evaluation order (short-circuits on the first failure):
    1. Actor: any matcher with a matching type and id pattern
    2. Resource: any resource pattern matches
    3. Action: the rule lists "*" or the requested action
    4. Conditions: every condition holds against the request context

Pattern syntax:
    "*" matches any run of characters (including none). Everything else
    is literal, and the whole subject must match:
        "task:*" matches "task:", "task:123", "task:123:sub"
        "task:*" does not match "task", "tasks:1", "xtask:1"
"""

import re
from functools import lru_cache
from typing import Any

from warden.schema import (
    ActorMatcher,
    ActorType,
    ConditionOperator,
    Context,
    PermissionAction,
    PermissionCondition,
    PermissionRequest,
    PolicyRule,
)

# Marker for a condition field absent from the request context
_MISSING = object()


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regex."""
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(regex)


def matches_pattern(pattern: str, value: str) -> bool:
    """
    Check whether a value matches a glob pattern.

    Args:
        pattern: Glob pattern where "*" matches any run of characters
        value: The actor id or resource to test

    Returns:
        True if the entire value matches the pattern
    """
    if pattern == "*":
        return True
    return compile_pattern(pattern).fullmatch(value) is not None


def matches_actor(
    actors: list[ActorMatcher],
    actor_type: ActorType,
    actor_id: str,
) -> bool:
    """Check whether any actor matcher covers the requesting actor."""
    for actor in actors:
        if actor.type != actor_type and actor.type != ActorType.WILDCARD:
            continue
        if matches_pattern(actor.pattern, actor_id):
            return True
    return False


def matches_resource(resources: list[str], resource: str) -> bool:
    """Check whether any resource pattern covers the resource."""
    return any(matches_pattern(pattern, resource) for pattern in resources)


def matches_action(actions: list[PermissionAction], action: PermissionAction) -> bool:
    """Check whether the rule covers the action."""
    return PermissionAction.WILDCARD in actions or action in actions


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    """
    Equality that never conflates booleans with numbers.

    Python treats True == 1; access decisions must not.
    """
    if left is _MISSING or right is _MISSING:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(
            _strict_equals(a, b) for a, b in zip(left, right)
        )
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _contains_strict(values: list[Any], value: Any) -> bool:
    return any(_strict_equals(candidate, value) for candidate in values)


def evaluate_condition(condition: PermissionCondition, context: Context) -> bool:
    """
    Evaluate one condition against the request context.

    A field missing from the context never equals anything and is never a
    member of a list; numeric and string operators fail on it.

    Args:
        condition: The condition to evaluate
        context: Request attributes

    Returns:
        True if the condition holds
    """
    value = context.get(condition.field, _MISSING)
    expected = condition.value
    op = condition.operator

    if op == ConditionOperator.EQ:
        return _strict_equals(value, expected)
    if op == ConditionOperator.NEQ:
        return not _strict_equals(value, expected)
    if op == ConditionOperator.IN:
        return isinstance(expected, list) and _contains_strict(expected, value)
    if op == ConditionOperator.NIN:
        return not (isinstance(expected, list) and _contains_strict(expected, value))
    if op == ConditionOperator.GT:
        return _is_number(value) and _is_number(expected) and value > expected
    if op == ConditionOperator.LT:
        return _is_number(value) and _is_number(expected) and value < expected
    if op == ConditionOperator.CONTAINS:
        return isinstance(value, str) and isinstance(expected, str) and expected in value

    # Unknown operator: fail closed
    return False


def matches_conditions(conditions: list[PermissionCondition], context: Context) -> bool:
    """Check that every condition holds (conjunction)."""
    return all(evaluate_condition(condition, context) for condition in conditions)


def matches(rule: PolicyRule, request: PermissionRequest) -> bool:
    """
    Check whether a rule applies to a request.

    Args:
        rule: The rule to test
        request: The access request

    Returns:
        True if actor, resource, action and all conditions match
    """
    if not matches_actor(rule.actors, request.actor_type, request.actor_id):
        return False

    if not matches_resource(rule.resources, request.resource):
        return False

    if not matches_action(rule.actions, request.action):
        return False

    if rule.conditions:
        if not matches_conditions(rule.conditions, request.context):
            return False

    return True
