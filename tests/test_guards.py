"""Tests for condition predicate evaluation."""

import pytest
from jobflow.workflow.errors import UnknownOperatorError
from jobflow.workflow.guards import combine, evaluate_condition, is_missing, resolve_field


def test_equals_compares_as_text():
    """Test equality across strings and numbers."""
    assert evaluate_condition("1", "equals", "1") is True
    assert evaluate_condition(1, "equals", "1") is True
    assert evaluate_condition(1.0, "equals", 1) is True
    assert evaluate_condition(True, "equals", "true") is True
    assert evaluate_condition("1", "equals", "2") is False


def test_not_equals():
    assert evaluate_condition("a", "not_equals", "b") is True
    assert evaluate_condition(42, "not_equals", "42") is False


def test_numeric_comparisons():
    """Test comparison operators with numeric coercion."""
    assert evaluate_condition("75", "greater_than", 50) is True
    assert evaluate_condition(75, "less_than", "100") is True
    assert evaluate_condition(75, "greater_than", 100) is False
    # not a number: never greater or less
    assert evaluate_condition("abc", "greater_than", 1) is False
    assert evaluate_condition("abc", "less_than", 1) is False


def test_contains_is_case_insensitive():
    assert evaluate_condition("Hello World", "contains", "world") is True
    assert evaluate_condition("Hello World", "not_contains", "WORLD") is False
    assert evaluate_condition(["a", "b"], "contains", "a") is True


def test_emptiness_checks():
    for empty in (None, "", "   ", 0, [], {}):
        assert evaluate_condition(empty, "is_empty", None) is True
        assert evaluate_condition(empty, "is_not_empty", None) is False
    assert evaluate_condition("x", "is_not_empty", None) is True


def test_unknown_operator_raises():
    with pytest.raises(UnknownOperatorError, match="Unknown operator: roughly"):
        evaluate_condition(1, "roughly", 1)


def test_combine_and_or():
    """Test AND/OR logic."""
    assert combine([True, True], "AND") is True
    assert combine([True, False], "AND") is False
    assert combine([True, False], "OR") is True
    assert combine([False, False], "or") is False


def test_resolve_field_exact_key_then_dotted_path():
    context = {
        "x": "1",
        "a.b": "flat",
        "apicall_result": {"data": {"status": "ok"}},
    }

    assert resolve_field(context, "x") == "1"
    assert resolve_field(context, "a.b") == "flat"
    assert resolve_field(context, "apicall_result.data.status") == "ok"
    assert is_missing(resolve_field(context, "apicall_result.data.nope"))
    assert is_missing(resolve_field(context, "nothing"))
