"""Expression evaluation for scenario conditions and message templating.

Supports:
- Comparison: age >= 18, status == 'approved'
- Boolean: condition1 AND condition2, condition1 OR condition2, NOT condition
- Existence: variable (truthy check)
- Dotted lookups: profile.age
- Template substitution: "Hello, {{%name%}}!"
"""

import operator
import re
from collections.abc import Mapping
from typing import Any

# Operators mapping - longer operators first to avoid partial matches
_OPERATORS = {
    ">=": operator.ge,
    "<=": operator.le,
    "!=": operator.ne,
    "==": operator.eq,
    ">": operator.gt,
    "<": operator.lt,
}

_TEMPLATE_PATTERN = re.compile(r"\{\{%([^%]+)%\}\}")


def evaluate_expression(expr: str, variables: Mapping[str, Any]) -> bool:
    """Evaluate a boolean expression against session variables.

    Args:
        expr: Expression like "age > 18 AND status == 'approved'"
        variables: Mapping of variable name -> value

    Returns:
        Boolean result of evaluation.

    Examples:
        >>> evaluate_expression("age >= 18", {"age": 20})
        True
        >>> evaluate_expression("status == 'approved'", {"status": "approved"})
        True
        >>> evaluate_expression("items", {"items": ["a", "b"]})
        True
    """
    expr = expr.strip()

    if _is_wrapped(expr):
        return evaluate_expression(expr[1:-1], variables)

    # OR binds looser than AND
    or_split = _split_top_level(expr, "OR")
    if or_split:
        left, right = or_split
        return evaluate_expression(left, variables) or evaluate_expression(right, variables)

    and_split = _split_top_level(expr, "AND")
    if and_split:
        left, right = and_split
        return evaluate_expression(left, variables) and evaluate_expression(right, variables)

    not_match = re.match(r"NOT\s+", expr, re.IGNORECASE)
    if not_match:
        return not evaluate_expression(expr[not_match.end() :], variables)

    for op_str, op_func in _OPERATORS.items():
        if op_str in expr:
            return _evaluate_comparison(expr, op_str, op_func, variables)

    # Simple existence/truthiness check
    return bool(_lookup(expr, variables))


def _is_wrapped(expr: str) -> bool:
    """True when the outer parentheses enclose the whole expression."""
    if not (expr.startswith("(") and expr.endswith(")")):
        return False
    depth = 0
    for i, char in enumerate(expr):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and i != len(expr) - 1:
                return False
    return depth == 0


def _split_top_level(expr: str, keyword: str) -> tuple[str, str] | None:
    """Split on the first keyword occurrence outside parentheses and quotes."""
    pattern = re.compile(rf"\s+{keyword}\s+", re.IGNORECASE)
    for match in pattern.finditer(expr):
        prefix = expr[: match.start()]
        if prefix.count("(") != prefix.count(")"):
            continue
        if prefix.count("'") % 2 or prefix.count('"') % 2:
            continue
        return prefix, expr[match.end() :]
    return None


def _evaluate_comparison(
    expr: str,
    op_str: str,
    op_func: Any,
    variables: Mapping[str, Any],
) -> bool:
    """Evaluate a single comparison expression."""
    parts = expr.split(op_str, 1)
    if len(parts) != 2:
        return False

    left_val = _lookup(parts[0].strip(), variables)
    right_val = _parse_literal(parts[1].strip(), variables)

    # Equality operators are None-safe
    if op_str in ("==", "!="):
        left_num = _to_number(left_val)
        right_num = _to_number(right_val)
        if (
            left_num is not None
            and right_num is not None
            and not isinstance(left_val, bool)
            and not isinstance(right_val, bool)
        ):
            return bool(op_func(left_num, right_num))
        return bool(op_func(left_val, right_val))

    # Ordering operators require non-None left value
    if left_val is None:
        return False

    left_num = _to_number(left_val)
    right_num = _to_number(right_val)

    if left_num is not None and right_num is not None:
        return bool(op_func(left_num, right_num))

    # String comparison fallback
    if isinstance(left_val, str) and isinstance(right_val, str):
        return bool(op_func(left_val, right_val))

    return False


def _lookup(name: str, variables: Mapping[str, Any]) -> Any:
    """Resolve a variable name, following dots into nested mappings."""
    if name in variables:
        return variables[name]
    value: Any = variables
    for part in name.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def _to_number(val: Any) -> float | int | None:
    """Try to convert value to number."""
    if isinstance(val, bool):
        return int(val)
    if isinstance(val, (int, float)):
        return val
    if isinstance(val, str):
        try:
            return float(val) if "." in val else int(val)
        except ValueError:
            return None
    return None


def _parse_literal(expr: str, variables: Mapping[str, Any]) -> Any:
    """Parse a value expression (literal or variable reference)."""
    expr = expr.strip()

    # String literal (quoted)
    if (expr.startswith("'") and expr.endswith("'")) or (
        expr.startswith('"') and expr.endswith('"')
    ):
        return expr[1:-1]

    num = _to_number(expr)
    if num is not None:
        return num

    if expr.lower() == "true":
        return True
    if expr.lower() == "false":
        return False
    if expr.lower() in ("none", "null"):
        return None

    return _lookup(expr, variables)


class ExpressionEvaluator:
    """Default rule evaluator used by the navigator."""

    def evaluate(self, expression: str, variables: Mapping[str, Any]) -> bool:
        return evaluate_expression(expression, variables)


def replace_variables(
    text: str,
    variables: Mapping[str, Any],
    default: str = " ",
) -> str:
    """Substitute ``{{%name%}}`` placeholders with variable values.

    Examples:
        >>> replace_variables("Hello, {{%name%}}!", {"name": "Alice"})
        'Hello, Alice!'
        >>> replace_variables("Hi {{%missing%}}", {})
        'Hi  '
    """
    if not isinstance(text, str) or "{{%" not in text:
        return text

    def _substitute(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        return default if value is None else str(value)

    return _TEMPLATE_PATTERN.sub(_substitute, text)
