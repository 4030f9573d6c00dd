"""
Compliance Governance - Condition Evaluator

Evaluates a single RuleCondition against ModuleFacts. Fields that do not
resolve count as "not found", and values that cannot be coerced for a
numeric or regex comparison make the condition false. Neither case raises.
"""

import re
from typing import Any, Callable, Dict

from ..core.facts import MISSING, ModuleFacts, resolve_field
from .models import ConditionOperator, RuleCondition


def _contains(value: Any, expected: Any) -> bool:
    if isinstance(value, str):
        return str(expected) in value
    if isinstance(value, (list, tuple, set, frozenset)):
        return expected in value
    if isinstance(value, dict):
        return expected in value
    return False


def _to_number(value: Any) -> float:
    if isinstance(value, (list, tuple, dict, set)):
        raise TypeError(f"cannot compare {type(value).__name__} numerically")
    return float(value)


def _compare(value: Any, expected: Any, op: Callable[[float, float], bool]) -> bool:
    if value is MISSING or value is None:
        return False
    try:
        return op(_to_number(value), _to_number(expected))
    except (TypeError, ValueError):
        return False


def _matches(value: Any, pattern: Any) -> bool:
    if value is MISSING or value is None or isinstance(value, (list, tuple, dict, set)):
        return False
    try:
        return re.search(str(pattern), str(value)) is not None
    except re.error:
        return False


_EVALUATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EXISTS: lambda v, _: v is not MISSING and v is not None,
    ConditionOperator.NOT_EXISTS: lambda v, _: v is MISSING or v is None,
    ConditionOperator.EQUALS: lambda v, e: v is not MISSING and v == e,
    ConditionOperator.NOT_EQUALS: lambda v, e: v is MISSING or v != e,
    ConditionOperator.CONTAINS: lambda v, e: v is not MISSING and _contains(v, e),
    ConditionOperator.NOT_CONTAINS: lambda v, e: v is MISSING or not _contains(v, e),
    ConditionOperator.MATCHES_REGEX: _matches,
    ConditionOperator.GREATER_THAN: lambda v, e: _compare(v, e, lambda a, b: a > b),
    ConditionOperator.LESS_THAN: lambda v, e: _compare(v, e, lambda a, b: a < b),
}


def evaluate_condition(condition: RuleCondition, facts: ModuleFacts) -> bool:
    """
    Evaluate one condition.

    Args:
        condition: The condition to check
        facts: Snapshot of the module

    Returns:
        True if the condition holds
    """
    operator = condition.operator
    if operator == ConditionOperator.FILE_EXISTS:
        return facts.has_file(condition.field)
    if operator == ConditionOperator.DIRECTORY_EXISTS:
        return facts.has_directory(condition.field)

    value = resolve_field(facts, condition.field)
    return _EVALUATORS[operator](value, condition.value)
