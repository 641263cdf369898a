"""Structural validation of condition trees."""

from __future__ import annotations

from typing import Any

from rulewire.conditions.operators import OPERATORS, as_args
from rulewire.errors import (
    CyclicReferenceError,
    InvalidArgumentsError,
    NotAnObjectError,
    StructuralError,
    UnknownOperatorError,
)

_SCALARS = (str, int, float, bool, type(None))


def validate(expression: Any) -> None:
    """Check that ``expression`` is a well-formed, acyclic condition tree.

    Raises:
        NotAnObjectError: a node is not a literal, sequence or object
        CyclicReferenceError: a node is revisited on its own path
        UnknownOperatorError: an operator key shares its object with other keys
        InvalidArgumentsError: an operator's arity or argument type is wrong
    """
    try:
        _walk(expression, set(), opaque=False)
    except RecursionError:
        raise StructuralError("Expression is nested too deeply")


def is_valid(expression: Any) -> bool:
    """Return True if ``validate`` accepts the expression."""
    try:
        validate(expression)
    except StructuralError:
        return False
    return True


def _walk(node: Any, on_path: set[int], opaque: bool) -> None:
    if isinstance(node, _SCALARS):
        return

    if isinstance(node, list | tuple):
        _enter(node, on_path)
        for item in node:
            _walk(item, on_path, opaque)
        on_path.discard(id(node))
        return

    if isinstance(node, dict):
        _enter(node, on_path)
        for key in node:
            if not isinstance(key, str):
                raise NotAnObjectError(
                    f"Object keys must be strings, got {type(key).__name__}",
                    node_type=type(key).__name__,
                )
        if not opaque:
            _check_operator_node(node, on_path)
        else:
            for value in node.values():
                _walk(value, on_path, opaque=True)
        on_path.discard(id(node))
        return

    raise NotAnObjectError(
        f"Unsupported node of type {type(node).__name__}", node_type=type(node).__name__
    )


def _enter(node: Any, on_path: set[int]) -> None:
    if id(node) in on_path:
        raise CyclicReferenceError("Expression contains a cyclic reference")
    on_path.add(id(node))


def _check_operator_node(node: dict, on_path: set[int]) -> None:
    recognized = [key for key in node if key in OPERATORS]

    if not recognized:
        # Objects without an operator key are literal data
        for value in node.values():
            _walk(value, on_path, opaque=True)
        return

    if len(node) > 1:
        raise UnknownOperatorError(
            f"Operator '{recognized[0]}' must be the only key in its object, "
            f"found keys {sorted(node)}",
            operator=recognized[0],
        )

    name = recognized[0]
    spec = OPERATORS[name]
    args = as_args(node[name])

    reason = spec.arity_error(len(args))
    if reason is None and spec.check is not None:
        reason = spec.check(args)
    if reason is not None:
        raise InvalidArgumentsError(name, reason)

    raw = node[name]
    if isinstance(raw, list | tuple):
        _enter(raw, on_path)
    for arg in args:
        _walk(arg, on_path, opaque=False)
    if isinstance(raw, list | tuple):
        on_path.discard(id(raw))
