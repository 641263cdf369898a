"""Tests for structural validation of condition trees."""

import pytest

from rulewire.conditions import is_valid, validate
from rulewire.errors import (
    CyclicReferenceError,
    InvalidArgumentsError,
    NotAnObjectError,
    StructuralError,
    UnknownOperatorError,
)


class TestValidShapes:
    """Well-formed trees pass validation."""

    @pytest.mark.parametrize(
        "expression",
        [
            True,
            None,
            "literal",
            3.5,
            [1, "two", None],
            {"var": "a.b"},
            {"var": ["a"]},
            {"==": [{"var": "a"}, None]},
            {"and": [True, {"!": [False]}, {">": [2, 1]}]},
            {"if": [{"var": "x"}, "yes", "no"]},
            {"substr": ["hello", 1, 2]},
            {"merge": []},
            {"reduce": [{"var": "items"}, {"+": [{"var": "current"}, 1]}, 0]},
            {"payload": {"nested": [1, 2]}},
        ],
    )
    def test_accepts(self, expression):
        validate(expression)
        assert is_valid(expression)

    def test_nested_literal_object_is_opaque(self):
        """Operator-looking keys inside literal data are not checked."""
        validate({"==": [{"config": {">": [1]}}, 1]})


class TestNotAnObject:
    def test_rejects_unsupported_node_type(self):
        with pytest.raises(NotAnObjectError) as exc_info:
            validate({"==": [{1, 2}, 1]})
        assert exc_info.value.node_type == "set"

    def test_rejects_non_string_keys(self):
        with pytest.raises(NotAnObjectError):
            validate({1: "a"})

    def test_rejects_arbitrary_objects(self):
        with pytest.raises(NotAnObjectError):
            validate(object())


class TestCyclicReference:
    def test_self_containing_list(self):
        args = [1]
        args.append(args)
        with pytest.raises(CyclicReferenceError):
            validate({"==": args})

    def test_self_containing_operator(self):
        node = {"or": [False]}
        node["or"].append(node)
        with pytest.raises(CyclicReferenceError):
            validate(node)

    def test_cycle_through_literal_data(self):
        data = {"key": None}
        data["key"] = data
        with pytest.raises(CyclicReferenceError):
            validate({"==": [data, 1]})

    def test_repeated_sibling_is_allowed(self):
        shared = {">": [{"var": "a"}, 1]}
        validate({"and": [shared, shared]})


class TestUnknownOperator:
    def test_operator_with_extra_keys(self):
        with pytest.raises(UnknownOperatorError) as exc_info:
            validate({"==": [1, 1], "note": "extra"})
        assert exc_info.value.operator == "=="

    def test_unknown_single_key_is_literal(self):
        """An unrecognized tag is data, not an error."""
        validate({"regex": ["a", "b"]})


class TestInvalidArguments:
    @pytest.mark.parametrize(
        "expression, operator",
        [
            ({">": [1]}, ">"),
            ({"==": [1, 2, 3]}, "=="),
            ({"and": [True]}, "and"),
            ({"or": []}, "or"),
            ({"!": [1, 2]}, "!"),
            ({"var": 5}, "var"),
            ({"var": ["a", "b"]}, "var"),
            ({"var": []}, "var"),
            ({"?:": [1, 2]}, "?:"),
            ({"substr": ["a"]}, "substr"),
            ({"reduce": [[], {"var": "current"}]}, "reduce"),
        ],
    )
    def test_rejects(self, expression, operator):
        with pytest.raises(InvalidArgumentsError) as exc_info:
            validate(expression)
        assert exc_info.value.operator == operator
        assert exc_info.value.reason
        assert not is_valid(expression)

    def test_nested_violation_is_found(self):
        with pytest.raises(InvalidArgumentsError):
            validate({"and": [True, {"or": [{"<": [1]}, True]}]})

    def test_error_serializes(self):
        with pytest.raises(InvalidArgumentsError) as exc_info:
            validate({"<": [1]})
        payload = exc_info.value.to_dict()
        assert payload["error"] == "INVALID_ARGUMENTS"
        assert payload["details"] == {"operator": "<"}


class TestDepth:
    def test_excessive_nesting_is_structural_error(self):
        expression = True
        for _ in range(5000):
            expression = {"!": [expression]}
        with pytest.raises(StructuralError):
            validate(expression)
