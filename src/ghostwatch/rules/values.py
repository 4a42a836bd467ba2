"""Tagged values for loosely-typed metric records.

Records and condition values arrive as arbitrary JSON. Every raw value is
wrapped once into one of the tagged types below, and every operator works
through the total coercion functions in this module instead of inspecting
Python types at comparison time.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class NumberValue:
    value: float


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class ArrayValue:
    items: tuple[Value, ...]


@dataclass(frozen=True)
class NullValue:
    """Field present with a null value."""


@dataclass(frozen=True)
class MissingValue:
    """Field absent from the record."""


Value = Union[NumberValue, StringValue, BoolValue, ArrayValue, NullValue, MissingValue]

NULL = NullValue()
MISSING = MissingValue()


def wrap(raw: Any) -> Value:
    """Wrap a raw JSON-ish value into its tagged form."""
    if raw is None:
        return NULL
    # bool first: bool is a subclass of int
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, (int, float)):
        return NumberValue(float(raw))
    if isinstance(raw, str):
        return StringValue(raw)
    if isinstance(raw, (list, tuple, set, frozenset)):
        return ArrayValue(tuple(wrap(item) for item in raw))
    return StringValue(str(raw))


def lookup(record: Mapping[str, Any], field: str) -> Value:
    """Read ``field`` from a record, following dotted paths into nested dicts."""
    if field in record:
        return wrap(record[field])

    current: Any = record
    for part in field.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return MISSING
        current = current[part]
    return wrap(current)


def as_number(value: Value) -> float | None:
    """Coerce to a finite float, or None when the value has no numeric reading."""
    if isinstance(value, NumberValue):
        return value.value if math.isfinite(value.value) else None
    if isinstance(value, StringValue):
        try:
            number = float(value.value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def as_string(value: Value) -> str | None:
    """Coerce to a string, or None for null, missing and array values."""
    if isinstance(value, StringValue):
        return value.value
    if isinstance(value, NumberValue):
        return format_number(value.value)
    if isinstance(value, BoolValue):
        return "true" if value.value else "false"
    return None


def as_bool(value: Value) -> bool | None:
    """Coerce to a bool; strings 'true'/'false' are accepted."""
    if isinstance(value, BoolValue):
        return value.value
    if isinstance(value, StringValue):
        lowered = value.value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def format_number(number: float) -> str:
    if math.isfinite(number) and number.is_integer():
        return str(int(number))
    return repr(number)


def values_equal(actual: Value, expected: Value) -> bool:
    """Compare a record value against a condition value.

    The record value is coerced to the primitive type of the condition
    value. Failed coercion compares unequal.
    """
    if isinstance(expected, NumberValue):
        number = as_number(actual)
        return number is not None and number == expected.value
    if isinstance(expected, StringValue):
        text = as_string(actual)
        return text is not None and text == expected.value
    if isinstance(expected, BoolValue):
        flag = as_bool(actual)
        return flag is not None and flag == expected.value
    if isinstance(expected, ArrayValue):
        if not isinstance(actual, ArrayValue) or len(actual.items) != len(expected.items):
            return False
        return all(values_equal(a, e) for a, e in zip(actual.items, expected.items))
    if isinstance(expected, NullValue):
        return isinstance(actual, NullValue)
    return False
