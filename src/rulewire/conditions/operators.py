"""Closed operator set for condition expressions.

Expressions follow JSON-Logic: an operator application is an object with a
single key naming the operator, whose value is the argument list (a
non-list value is shorthand for a one-element list). Any other object,
including a single-key object whose key is not in ``OPERATORS``, is opaque
literal data and is returned unevaluated.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from rulewire.errors import EvaluationError
from rulewire.utils.paths import get_path


@dataclass(frozen=True)
class OperatorSpec:
    """Arity contract and implementation of one operator.

    Eager operators receive evaluated argument values; lazy operators receive
    the raw argument nodes and decide what to evaluate (short-circuiting and
    scoped iteration).
    """

    name: str
    min_args: int
    max_args: int | None
    func: Callable[[list[Any], Any], Any]
    lazy: bool = False
    check: Callable[[list[Any]], str | None] | None = None

    def arity_error(self, count: int) -> str | None:
        if self.max_args is not None and self.min_args == self.max_args:
            if count != self.min_args:
                return f"expected exactly {self.min_args} argument(s), got {count}"
            return None
        if count < self.min_args:
            return f"expected at least {self.min_args} argument(s), got {count}"
        if self.max_args is not None and count > self.max_args:
            return f"expected at most {self.max_args} argument(s), got {count}"
        return None


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


def as_args(raw: Any) -> list[Any]:
    """Normalize an operator's argument value to a list."""
    if isinstance(raw, list | tuple):
        return list(raw)
    return [raw]


def is_operation(node: Any) -> bool:
    """Return True if ``node`` is an application of a known operator."""
    return isinstance(node, dict) and len(node) == 1 and next(iter(node)) in OPERATORS


def apply(node: Any, data: Any) -> Any:
    """Evaluate ``node`` against ``data``.

    Raises EvaluationError on runtime type errors. Callers are expected to
    have validated the tree; this function does no structural checking.
    """
    if isinstance(node, list | tuple):
        return [apply(item, data) for item in node]
    if not is_operation(node):
        return node

    name, raw = next(iter(node.items()))
    spec = OPERATORS[name]
    args = as_args(raw)
    if spec.lazy:
        return spec.func(args, data)
    return spec.func([apply(arg, data) for arg in args], data)


def truthy(value: Any) -> bool:
    """JSON-Logic truthiness: empty list is false, any object is true."""
    if isinstance(value, list):
        return len(value) > 0
    if isinstance(value, dict):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


# ---------------------------------------------------------------------------
# Coercions
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _to_number(value: Any, operator: str) -> float | int:
    if _is_number(value):
        return value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise EvaluationError(f"'{operator}' expected a number, got string {value!r}")
        return int(number) if number.is_integer() else number
    raise EvaluationError(f"'{operator}' expected a number, got {type(value).__name__}")


def _stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list):
        return ",".join("" if v is None else _stringify(v) for v in value)
    return str(value)


# ---------------------------------------------------------------------------
# Equality and comparison
# ---------------------------------------------------------------------------


def loose_equals(a: Any, b: Any) -> bool:
    """Equality with numeric coercion; null equals only null."""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    scalar = (int, float, str, bool)
    if isinstance(a, scalar) and isinstance(b, scalar):
        try:
            return _to_number(a, "==") == _to_number(b, "==")
        except EvaluationError:
            return False
    return a == b


def strict_equals(a: Any, b: Any) -> bool:
    """Equality without coercion; booleans are not numbers."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def _ordered(a: Any, b: Any, operator: str) -> tuple[Any, Any] | None:
    """Coerce a pair for ordering; None means the comparison is false."""
    if a is None or b is None:
        return None
    if isinstance(a, list | dict) or isinstance(b, list | dict):
        raise EvaluationError(
            f"'{operator}' cannot compare {type(a).__name__} and {type(b).__name__}"
        )
    if isinstance(a, str) and isinstance(b, str):
        return a, b
    try:
        return _to_number(a, operator), _to_number(b, operator)
    except EvaluationError:
        # Non-numeric string against a number behaves like NaN
        return None


def _comparison(operator: str, test: Callable[[Any, Any], bool]):
    def compare(values: list[Any], data: Any) -> bool:
        pair = _ordered(values[0], values[1], operator)
        if pair is None:
            return False
        return test(*pair)

    return compare


# ---------------------------------------------------------------------------
# Logic
# ---------------------------------------------------------------------------


def _and(args: list[Any], data: Any) -> Any:
    value = None
    for arg in args:
        value = apply(arg, data)
        if not truthy(value):
            return value
    return value


def _or(args: list[Any], data: Any) -> Any:
    value = None
    for arg in args:
        value = apply(arg, data)
        if truthy(value):
            return value
    return value


def _if(args: list[Any], data: Any) -> Any:
    index = 0
    while index < len(args) - 1:
        if truthy(apply(args[index], data)):
            return apply(args[index + 1], data)
        index += 2
    if index == len(args) - 1:
        return apply(args[index], data)
    return None


# ---------------------------------------------------------------------------
# Data access
# ---------------------------------------------------------------------------


def _var(values: list[Any], data: Any) -> Any:
    path = values[0]
    if path is None:
        return data
    return get_path(data, str(path))


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _missing(values: list[Any], data: Any) -> list[str]:
    keys = values[0] if values and isinstance(values[0], list) else values
    return [key for key in keys if _is_blank(get_path(data, str(key)))]


def _missing_some(values: list[Any], data: Any) -> list[str]:
    need, keys = values
    keys = keys if isinstance(keys, list) else [keys]
    missing = [key for key in keys if _is_blank(get_path(data, str(key)))]
    if len(keys) - len(missing) >= _to_number(need, "missing_some"):
        return []
    return missing


# ---------------------------------------------------------------------------
# Strings and membership
# ---------------------------------------------------------------------------


def _in(values: list[Any], data: Any) -> bool:
    needle, haystack = values
    if haystack is None:
        return False
    if isinstance(haystack, str):
        return _stringify(needle) in haystack
    if isinstance(haystack, list):
        return any(strict_equals(needle, item) for item in haystack)
    raise EvaluationError(f"'in' expected a string or list, got {type(haystack).__name__}")


def _cat(values: list[Any], data: Any) -> str:
    return "".join(_stringify(v) for v in values)


def _substr(values: list[Any], data: Any) -> str:
    source = _stringify(values[0])
    start = int(_to_number(values[1], "substr"))
    if start < 0:
        start = max(len(source) + start, 0)
    if len(values) < 3 or values[2] is None:
        return source[start:]
    length = int(_to_number(values[2], "substr"))
    if length < 0:
        return source[start : max(len(source) + length, start)]
    return source[start : start + length]


def _merge(values: list[Any], data: Any) -> list[Any]:
    merged: list[Any] = []
    for value in values:
        if isinstance(value, list):
            merged.extend(value)
        else:
            merged.append(value)
    return merged


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def _add(values: list[Any], data: Any) -> float | int:
    return sum(_to_number(v, "+") for v in values)


def _multiply(values: list[Any], data: Any) -> float | int:
    result: float | int = 1
    for value in values:
        result *= _to_number(value, "*")
    return result


def _subtract(values: list[Any], data: Any) -> float | int:
    if len(values) == 1:
        return -_to_number(values[0], "-")
    return _to_number(values[0], "-") - _to_number(values[1], "-")


def _divide(values: list[Any], data: Any) -> float:
    divisor = _to_number(values[1], "/")
    if divisor == 0:
        raise EvaluationError("'/' division by zero")
    return _to_number(values[0], "/") / divisor


def _modulo(values: list[Any], data: Any) -> float | int:
    divisor = _to_number(values[1], "%")
    if divisor == 0:
        raise EvaluationError("'%' modulo by zero")
    return math.fmod(_to_number(values[0], "%"), divisor)


def _min(values: list[Any], data: Any) -> float | int:
    return min(_to_number(v, "min") for v in values)


def _max(values: list[Any], data: Any) -> float | int:
    return max(_to_number(v, "max") for v in values)


# ---------------------------------------------------------------------------
# Higher-order predicates over sequences
# ---------------------------------------------------------------------------


def _sequence(node: Any, data: Any) -> list[Any]:
    value = apply(node, data)
    return value if isinstance(value, list) else []


def _map(args: list[Any], data: Any) -> list[Any]:
    return [apply(args[1], item) for item in _sequence(args[0], data)]


def _filter(args: list[Any], data: Any) -> list[Any]:
    return [item for item in _sequence(args[0], data) if truthy(apply(args[1], item))]


def _all(args: list[Any], data: Any) -> bool:
    items = _sequence(args[0], data)
    if not items:
        return False
    return all(truthy(apply(args[1], item)) for item in items)


def _some(args: list[Any], data: Any) -> bool:
    return any(truthy(apply(args[1], item)) for item in _sequence(args[0], data))


def _none(args: list[Any], data: Any) -> bool:
    return not _some(args, data)


def _reduce(args: list[Any], data: Any) -> Any:
    accumulator = apply(args[2], data)
    for item in _sequence(args[0], data):
        accumulator = apply(args[1], {"current": item, "accumulator": accumulator})
    return accumulator


def _string_path(args: list[Any]) -> str | None:
    if not isinstance(args[0], str):
        return f"path must be a string literal, got {type(args[0]).__name__}"
    return None


_SPECS = [
    OperatorSpec("==", 2, 2, lambda v, d: loose_equals(v[0], v[1])),
    OperatorSpec("!=", 2, 2, lambda v, d: not loose_equals(v[0], v[1])),
    OperatorSpec("===", 2, 2, lambda v, d: strict_equals(v[0], v[1])),
    OperatorSpec("!==", 2, 2, lambda v, d: not strict_equals(v[0], v[1])),
    OperatorSpec(">", 2, 2, _comparison(">", lambda a, b: a > b)),
    OperatorSpec(">=", 2, 2, _comparison(">=", lambda a, b: a >= b)),
    OperatorSpec("<", 2, 2, _comparison("<", lambda a, b: a < b)),
    OperatorSpec("<=", 2, 2, _comparison("<=", lambda a, b: a <= b)),
    OperatorSpec("and", 2, None, _and, lazy=True),
    OperatorSpec("or", 2, None, _or, lazy=True),
    OperatorSpec("!", 1, 1, lambda v, d: not truthy(v[0])),
    OperatorSpec("!!", 1, 1, lambda v, d: truthy(v[0])),
    OperatorSpec("if", 1, None, _if, lazy=True),
    OperatorSpec("?:", 3, 3, _if, lazy=True),
    OperatorSpec("var", 1, 1, _var, check=_string_path),
    OperatorSpec("missing", 1, None, _missing),
    OperatorSpec("missing_some", 2, 2, _missing_some),
    OperatorSpec("in", 2, 2, _in),
    OperatorSpec("cat", 1, None, _cat),
    OperatorSpec("substr", 2, 3, _substr),
    OperatorSpec("merge", 0, None, _merge),
    OperatorSpec("+", 1, None, _add),
    OperatorSpec("*", 1, None, _multiply),
    OperatorSpec("-", 1, 2, _subtract),
    OperatorSpec("/", 2, 2, _divide),
    OperatorSpec("%", 2, 2, _modulo),
    OperatorSpec("min", 1, None, _min),
    OperatorSpec("max", 1, None, _max),
    OperatorSpec("map", 2, 2, _map, lazy=True),
    OperatorSpec("filter", 2, 2, _filter, lazy=True),
    OperatorSpec("all", 2, 2, _all, lazy=True),
    OperatorSpec("some", 2, 2, _some, lazy=True),
    OperatorSpec("none", 2, 2, _none, lazy=True),
    OperatorSpec("reduce", 3, 3, _reduce, lazy=True),
]

OPERATORS: dict[str, OperatorSpec] = {spec.name: spec for spec in _SPECS}
