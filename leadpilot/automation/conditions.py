"""Declarative condition evaluation over event payloads.

A condition is a mapping with ``field`` (a dotted path), ``operator`` (or the
short ``op``) and ``value``. Paths are resolved with the same camelCase /
snake_case tolerance as message templates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sized
from typing import Any

from pydantic import BaseModel

from ..templating import resolve_path

logger = logging.getLogger(__name__)


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _equals(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    left, right = _number(actual), _number(expected)
    return left is not None and right is not None and left == right


def _compare(actual: Any, expected: Any, op: Callable[[Any, Any], bool]) -> bool:
    left, right = _number(actual), _number(expected)
    if left is not None and right is not None:
        return op(left, right)
    try:
        return op(actual, expected)
    except TypeError:
        return False


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    if isinstance(actual, str):
        return str(expected).lower() in actual.lower()
    try:
        return expected in actual
    except TypeError:
        return False


def _is_empty(actual: Any, _expected: Any = None) -> bool:
    if actual is None:
        return True
    if isinstance(actual, str):
        return not actual.strip()
    if isinstance(actual, Sized):
        return len(actual) == 0
    return False


def _member(actual: Any, expected: Any) -> bool:
    if isinstance(expected, str):
        options: Iterable[Any] = [item.strip() for item in expected.split(",")]
    elif isinstance(expected, Iterable):
        options = expected
    else:
        return False
    return any(_equals(actual, option) for option in options)


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": _equals,
    "ne": lambda a, e: not _equals(a, e),
    "gt": lambda a, e: _compare(a, e, lambda x, y: x > y),
    "lt": lambda a, e: _compare(a, e, lambda x, y: x < y),
    "equals": _equals,
    "not_equals": lambda a, e: not _equals(a, e),
    "greater_than": lambda a, e: _compare(a, e, lambda x, y: x > y),
    "less_than": lambda a, e: _compare(a, e, lambda x, y: x < y),
    "contains": _contains,
    "not_contains": lambda a, e: not _contains(a, e),
    "is_empty": _is_empty,
    "is_not_empty": lambda a, e: not _is_empty(a),
    "in": _member,
    "not_in": lambda a, e: not _member(a, e),
}


def _as_mapping(condition: Any) -> Mapping[str, Any]:
    if isinstance(condition, BaseModel):
        return condition.model_dump()
    return condition


def matches(condition: Any, payload: Any) -> bool:
    """Return whether a single condition holds for ``payload``."""

    data = _as_mapping(condition)
    field = data.get("field")
    op_name = str(data.get("operator") or data.get("op") or "eq").lower()
    check = OPERATORS.get(op_name)
    if not field or check is None:
        logger.warning("Ignoring malformed condition %r", dict(data))
        return False
    return check(resolve_path(payload, field), data.get("value"))


def evaluate_conditions(conditions: Iterable[Any] | None, payload: Any, *, logic: str = "AND") -> bool:
    """Evaluate ``conditions`` against ``payload``.

    An empty list always holds. ``logic`` is ``AND`` (every condition) or
    ``OR`` (at least one).
    """

    items = list(conditions or [])
    if not items:
        return True
    if logic.upper() == "OR":
        return any(matches(item, payload) for item in items)
    return all(matches(item, payload) for item in items)


__all__ = ["OPERATORS", "evaluate_conditions", "matches"]
