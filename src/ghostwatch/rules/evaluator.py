"""Condition evaluation over metric records.

All functions here are pure: they never mutate the record and never raise
on malformed data. A condition that cannot be evaluated is a non-match.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import Any

from ghostwatch.rules.models import (
    CONTAINS_OPERATORS,
    NEGATED_OPERATORS,
    NUMERIC_OPERATORS,
    Condition,
    ConditionOperator,
)
from ghostwatch.rules.values import (
    NULL,
    ArrayValue,
    MissingValue,
    NumberValue,
    StringValue,
    Value,
    as_number,
    lookup,
    values_equal,
    wrap,
)

logger = logging.getLogger(__name__)


class MissingFieldPolicy(str, Enum):
    """How a condition treats a field absent from the record."""

    CONSERVATIVE = "conservative"
    ZERO_VALUE = "zero_value"


def _substitute_missing(operator: ConditionOperator) -> Value:
    if operator in NUMERIC_OPERATORS:
        return NumberValue(0.0)
    if operator in CONTAINS_OPERATORS:
        return StringValue("")
    return NULL


def _compare_numbers(operator: ConditionOperator, left: float, right: float) -> bool:
    if operator == ConditionOperator.GREATER_THAN:
        return left > right
    if operator == ConditionOperator.LESS_THAN:
        return left < right
    if operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
        return left >= right
    return left <= right


def _evaluate_positive(operator: ConditionOperator, actual: Value, expected: Value, field: str) -> bool:
    """Evaluate the non-negated form of ``operator``."""
    if operator in (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS):
        return values_equal(actual, expected)

    if operator in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
        if not isinstance(actual, StringValue) or not isinstance(expected, StringValue):
            return False
        return expected.value in actual.value

    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not isinstance(expected, ArrayValue):
            logger.warning("Condition on '%s' uses %s without a list value", field, operator.value)
            return False
        return any(values_equal(actual, item) for item in expected.items)

    left = as_number(actual)
    right = as_number(expected)
    if left is None or right is None:
        logger.warning(
            "Cannot compare '%s' numerically (%s): record=%r condition=%r",
            field,
            operator.value,
            actual,
            expected,
        )
        return False
    return _compare_numbers(operator, left, right)


def evaluate_condition(
    record: Mapping[str, Any],
    condition: Condition,
    policy: MissingFieldPolicy | str = MissingFieldPolicy.CONSERVATIVE,
) -> bool:
    """Evaluate one condition against one record."""
    policy = MissingFieldPolicy(policy)
    operator = condition.operator
    actual = lookup(record, condition.field)
    expected = wrap(condition.value)
    negated = operator in NEGATED_OPERATORS

    if isinstance(actual, MissingValue):
        if policy == MissingFieldPolicy.CONSERVATIVE:
            return negated
        actual = _substitute_missing(operator)

    # CONTAINS on a non-string field is false for both polarities
    if operator in CONTAINS_OPERATORS and not isinstance(actual, StringValue):
        return False

    result = _evaluate_positive(operator, actual, expected, condition.field)
    if operator == ConditionOperator.NOT_IN and not isinstance(expected, ArrayValue):
        return False
    return not result if negated else result


def matches(
    record: Mapping[str, Any],
    conditions: Sequence[Condition],
    policy: MissingFieldPolicy | str = MissingFieldPolicy.CONSERVATIVE,
) -> bool:
    """True when every condition holds for ``record``.

    An empty condition list matches every record.
    """
    return all(evaluate_condition(record, condition, policy) for condition in conditions)


def filter_matches(
    records: Iterable[Mapping[str, Any]],
    conditions: Sequence[Condition],
    policy: MissingFieldPolicy | str = MissingFieldPolicy.CONSERVATIVE,
) -> list[Mapping[str, Any]]:
    """Return the records that satisfy all conditions, in input order."""
    return [record for record in records if matches(record, conditions, policy)]
