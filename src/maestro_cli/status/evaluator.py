"""Evaluate condition expressions against status snapshots.

Evaluation is fail-closed: malformed expressions, unknown conditions, and
missing feedback fields all evaluate to ``False`` instead of raising.

Freshness gate: a condition that transitioned before the work item's latest
``Applied`` transition belongs to a previous apply cycle and must not satisfy a
wait. Conditions without a parseable transition time are treated as fresh.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from maestro_cli.status.expression import (
    And,
    ConditionCheck,
    Expression,
    ExpressionSyntaxError,
    FieldComparison,
    Or,
    ResourceTerm,
    TopLevelTerm,
    parse_expression,
)
from maestro_cli.status.models import (
    APPLIED_CONDITION,
    ConditionStatus,
    ResourceStatus,
    StatusSnapshot,
)

logger = logging.getLogger(__name__)


def evaluate(snapshot: StatusSnapshot, expression: str) -> bool:
    """Return whether the snapshot satisfies the expression; never raises on bad input."""

    try:
        tree = parse_expression(expression)
    except ExpressionSyntaxError as error:
        logger.debug("Condition expression %r rejected: %s", expression, error)
        return False
    return evaluate_tree(snapshot, tree)


def evaluate_tree(snapshot: StatusSnapshot, tree: Expression) -> bool:
    if isinstance(tree, And):
        return all(evaluate_tree(snapshot, operand) for operand in _chain_operands(tree))
    if isinstance(tree, Or):
        return any(evaluate_tree(snapshot, operand) for operand in _chain_operands(tree))
    if isinstance(tree, TopLevelTerm):
        return _check_top_level(snapshot, tree.type)
    return _check_resource(snapshot, tree)


def _chain_operands(tree: And | Or) -> list[Expression]:
    """Left-to-right operands of a chain of the same operator, without recursion."""

    operands: list[Expression] = []
    stack: list[Expression] = [tree]
    while stack:
        node = stack.pop()
        if type(node) is type(tree):
            stack.append(node.rhs)
            stack.append(node.lhs)
        else:
            operands.append(node)
    return operands


def _check_top_level(snapshot: StatusSnapshot, condition_type: str) -> bool:
    target = snapshot.find_condition(condition_type)
    if target is None:
        logger.debug("Work condition %s not found or not True", condition_type)
        return False

    if condition_type.casefold() == APPLIED_CONDITION.casefold():
        return True
    applied = snapshot.find_condition(APPLIED_CONDITION)
    if applied is None:
        return True

    target_time = target.transition_time
    applied_time = applied.transition_time
    if target_time is None or applied_time is None:
        return True
    if target_time < applied_time:
        logger.debug(
            "Work condition %s is stale: transitioned %s, applied %s",
            condition_type,
            target.last_transition_time,
            applied.last_transition_time,
        )
        return False
    return True


def _check_resource(snapshot: StatusSnapshot, term: ResourceTerm) -> bool:
    work_applied_time = _work_applied_time(snapshot)
    for resource in snapshot.resource_statuses:
        if not _matches_selector(resource, term):
            continue
        if work_applied_time is not None and not _resource_is_fresh(resource, work_applied_time):
            logger.debug("Skipping stale status of %s", resource.display_name)
            continue
        if _check_matches(resource, term.check):
            logger.debug("Resource %s satisfies %s", resource.display_name, term.check)
            return True

    logger.debug("No matching resource satisfies %s:%s", term.kind, term.check)
    return False


def _work_applied_time(snapshot: StatusSnapshot) -> datetime | None:
    for condition in snapshot.conditions:
        if (
            condition.is_type(APPLIED_CONDITION)
            and condition.is_true
            and condition.last_transition_time
        ):
            return condition.transition_time
    return None


def _resource_is_fresh(resource: ResourceStatus, work_applied_time: datetime) -> bool:
    for condition in resource.conditions:
        if condition.is_type(APPLIED_CONDITION) and condition.is_true:
            applied_time = condition.transition_time
            if applied_time is None:
                return True
            return applied_time >= work_applied_time
    return True


def _matches_selector(resource: ResourceStatus, term: ResourceTerm) -> bool:
    if resource.kind.casefold() != term.kind.casefold():
        return False
    if term.name is not None and resource.name.casefold() != term.name.casefold():
        return False
    if term.namespace is not None and resource.namespace.casefold() != term.namespace.casefold():
        return False
    return True


def _check_matches(resource: ResourceStatus, check: ConditionCheck | FieldComparison) -> bool:
    if isinstance(check, FieldComparison):
        return evaluate_comparison(resource, check)
    return _has_true_condition(resource, check.name)


def _has_true_condition(resource: ResourceStatus, condition_type: str) -> bool:
    for condition in resource.conditions:
        if condition.is_type(condition_type) and condition.is_true:
            return True

    return any(
        _feedback_conditions_match(resource.resolve_feedback(path), condition_type)
        for path in ("conditions", "status.conditions")
    )


def _feedback_conditions_match(items: object, condition_type: str) -> bool:
    if not isinstance(items, Sequence) or isinstance(items, str):
        return False
    for item in items:
        if not isinstance(item, Mapping):
            continue
        item_type = item.get("type")
        if not isinstance(item_type, str) or item_type.casefold() != condition_type.casefold():
            continue
        if item.get("status") == ConditionStatus.TRUE.value:
            return True
    return False


def evaluate_comparison(resource: ResourceStatus, comparison: FieldComparison) -> bool:
    """Compare a feedback field to a literal; a missing field compares as False."""

    actual = resource.resolve_feedback(comparison.path)
    if actual is None:
        return False
    if comparison.operator == "=":
        return compare_equal(actual, comparison.literal)
    return compare_numeric(actual, comparison.literal, comparison.operator)


def compare_equal(actual: Any, expected: str) -> bool:
    if isinstance(actual, str):
        return actual.casefold() == expected.casefold()
    if isinstance(actual, bool):
        return ("true" if actual else "false") == expected
    if isinstance(actual, float):
        try:
            return actual == float(expected)
        except ValueError:
            return _stringify(actual) == expected
    return _stringify(actual) == expected


def compare_numeric(actual: Any, expected: str, operator: str) -> bool:
    if isinstance(actual, bool):
        return False
    if isinstance(actual, (int, float)):
        actual_number = float(actual)
    elif isinstance(actual, str):
        try:
            actual_number = float(actual)
        except ValueError:
            return False
    else:
        return False

    try:
        expected_number = float(expected)
    except ValueError:
        return False

    if operator == ">=":
        return actual_number >= expected_number
    if operator == "<=":
        return actual_number <= expected_number
    if operator == ">":
        return actual_number > expected_number
    if operator == "<":
        return actual_number < expected_number
    return False


def _stringify(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    return str(value)
