"""Tests for the scenario condition evaluator and templating"""

import pytest

from graphdialog.core.expression import (
    ExpressionEvaluator,
    evaluate_expression,
    replace_variables,
)


@pytest.mark.parametrize(
    "expression,variables,expected",
    [
        ("age >= 18", {"age": 20}, True),
        ("age >= 18", {"age": 17}, False),
        ("age >= 18", {}, False),
        ("age > 18", {"age": "21"}, True),
        ("status == 'approved'", {"status": "approved"}, True),
        ('status == "approved"', {"status": "rejected"}, False),
        ("status != 'approved'", {"status": "rejected"}, True),
        ("count == 5", {"count": 5.0}, True),
        ("confirmed == true", {"confirmed": True}, True),
        ("confirmed == false", {"confirmed": True}, False),
        ("missing == none", {}, True),
        ("items", {"items": ["a"]}, True),
        ("items", {"items": []}, False),
        ("NOT items", {"items": []}, True),
    ],
)
def test_evaluate_simple_expressions(expression, variables, expected):
    """Test comparison, literal and truthiness evaluation"""
    assert evaluate_expression(expression, variables) is expected


def test_and_or_precedence():
    """Test OR binds looser than AND"""
    variables = {"a": 1, "b": 0, "c": 1}

    assert evaluate_expression("a == 1 OR b == 1 AND c == 0", variables) is True
    assert evaluate_expression("(a == 1 OR b == 1) AND c == 0", variables) is False


def test_keywords_inside_quotes_are_not_operators():
    """Test AND/OR inside string literals are left alone"""
    variables = {"name": "Tom AND Jerry"}

    assert evaluate_expression("name == 'Tom AND Jerry'", variables) is True


def test_dotted_lookup_into_nested_mapping():
    """Test dotted names follow nested dictionaries"""
    variables = {"profile": {"age": 30, "country": "ES"}}

    assert evaluate_expression("profile.age > 18", variables) is True
    assert evaluate_expression("profile.country == 'ES'", variables) is True
    assert evaluate_expression("profile.missing", variables) is False


def test_compare_against_other_variable():
    """Test the right-hand side may name another variable"""
    assert evaluate_expression("total > budget", {"total": 60, "budget": 50}) is True


def test_evaluator_wraps_function():
    """Test ExpressionEvaluator satisfies the RuleEvaluator shape"""
    evaluator = ExpressionEvaluator()

    assert evaluator.evaluate("x == 1", {"x": 1}) is True


def test_replace_variables_substitutes_and_defaults():
    """Test placeholders are replaced and missing ones become a space"""
    text = "Hi {{%name%}}, you are {{%age%}}{{%missing%}}!"

    result = replace_variables(text, {"name": "Ana", "age": 30})

    assert result == "Hi Ana, you are 30 !"


def test_replace_variables_without_placeholders_is_identity():
    """Test text without placeholders is returned untouched"""
    assert replace_variables("plain", {"x": 1}) == "plain"
