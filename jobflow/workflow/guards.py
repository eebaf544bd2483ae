import json
import math
import operator
from typing import Any, Callable, Dict, List

from .errors import UnknownOperatorError

_MISSING = object()


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _as_number(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan   # compares false against everything


def _is_empty(value: Any) -> bool:
    return not value or _as_text(value).strip() == ""


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda a, b: _as_text(a) == _as_text(b),
    "not_equals": lambda a, b: _as_text(a) != _as_text(b),
    "greater_than": lambda a, b: operator.gt(_as_number(a), _as_number(b)),
    "less_than": lambda a, b: operator.lt(_as_number(a), _as_number(b)),
    "contains": lambda a, b: _as_text(b).lower() in _as_text(a).lower(),
    "not_contains": lambda a, b: _as_text(b).lower() not in _as_text(a).lower(),
    "is_empty": lambda a, _: _is_empty(a),
    "is_not_empty": lambda a, _: not _is_empty(a),
}

OPERATORS = tuple(_OPERATORS)


def resolve_field(context: Dict[str, Any], field: str) -> Any:
    """
    Look a field up in the context: the exact key first, then a dotted
    path through nested dicts. Returns _MISSING when absent.
    """
    if field in context:
        return context[field]
    current: Any = context
    for part in field.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def evaluate_condition(field_value: Any, op: str, value: Any) -> bool:
    """
    Apply one predicate operator. Comparison follows string or numeric
    coercion depending on the operator.
    """
    func = _OPERATORS.get(op)
    if func is None:
        raise UnknownOperatorError(op)
    return bool(func(field_value, value))


def combine(results: List[bool], logic: str = "AND") -> bool:
    if logic.upper() == "OR":
        return any(results)
    return all(results)

