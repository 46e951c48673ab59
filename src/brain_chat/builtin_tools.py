"""Built-in leaf tools: current time, arithmetic, and a canned weather report."""

from __future__ import annotations

import ast
from datetime import datetime
import math
import operator
from typing import Any

from .exceptions import ToolExecutionError
from .tooling import ToolRegistry

_BINARY_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS: dict[type[ast.unaryop], Any] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _sum(*values: float) -> float:
    return math.fsum(values)


_FUNCTIONS: dict[str, Any] = {
    "abs": abs,
    "sum": _sum,
    "min": min,
    "max": max,
    "round": round,
    "sqrt": math.sqrt,
    "floor": math.floor,
    "ceil": math.ceil,
}
_CONSTANTS: dict[str, float] = {"pi": math.pi, "e": math.e}


def _evaluate(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        if isinstance(node.value, bool):
            raise ToolExecutionError("Booleans are not numbers.")
        # Double precision throughout; huge powers overflow instead of growing.
        return float(node.value)
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        result = _BINARY_OPS[type(node.op)](_evaluate(node.left), _evaluate(node.right))
        if isinstance(result, complex):
            raise ToolExecutionError("Result is not a real number.")
        return result
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        return float(_FUNCTIONS[node.func.id](*(_evaluate(arg) for arg in node.args)))
    raise ToolExecutionError(f"Unsupported expression element: {ast.dump(node)[:60]}")


def evaluate_formula(formula: str) -> float:
    """Evaluate an arithmetic formula such as ``1+sum(2,3)*abs(4-5)/6^2``.

    ``^`` means exponentiation. Only numbers, the four basic operators,
    ``%``, parentheses, and a small set of math functions are allowed.
    """
    source = formula.strip().replace("^", "**")
    if not source:
        raise ToolExecutionError("Formula must not be empty.")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ToolExecutionError(f"Invalid formula: {formula!r}") from exc
    try:
        return _evaluate(tree)
    except ZeroDivisionError as exc:
        raise ToolExecutionError("Division by zero.") from exc
    except (TypeError, ValueError, OverflowError) as exc:
        raise ToolExecutionError(f"Cannot evaluate {formula!r}: {exc}") from exc


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return str(value)


def get_datetime_now() -> str:
    """Return the current local date and time."""
    return f"Current time: {datetime.now().astimezone().isoformat(sep=' ')}"


def calculator(formula: str) -> str:
    """Evaluate an arithmetic formula. Must be used for every calculation.

    Example formula: "1+sum(2,3)*abs(4-5)/6^2".
    """
    return _format_number(evaluate_formula(formula))


def calculate(expression: str) -> str:
    """Perform basic mathematical calculations."""
    return _format_number(evaluate_formula(expression))


def get_weather(location: str) -> str:
    """Get current weather information for a location."""
    return f"Weather in {location or 'Unknown'}: Sunny, 22°C"


def default_registry(max_output_bytes: int = 50_000) -> ToolRegistry:
    """Build a registry holding every built-in tool."""
    registry = ToolRegistry(max_output_bytes=max_output_bytes)
    registry.register_function(get_datetime_now, parameters={"type": "object", "properties": {}})
    registry.register_function(
        calculator,
        parameters={
            "type": "object",
            "properties": {
                "formula": {
                    "type": "string",
                    "description": 'Arithmetic formula, e.g. "1+sum(2,3)*abs(4-5)/6^2"',
                }
            },
            "required": ["formula"],
        },
    )
    registry.register_function(
        get_weather,
        parameters={
            "type": "object",
            "properties": {
                "location": {
                    "type": "string",
                    "description": "The city or location to get weather for",
                }
            },
            "required": ["location"],
        },
    )
    registry.register_function(
        calculate,
        parameters={
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Mathematical expression to evaluate",
                }
            },
            "required": ["expression"],
        },
    )
    return registry
