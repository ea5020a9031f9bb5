#!/usr/bin/env python3
"""Sandboxed arithmetic for --compute and --foreach expressions.

Expressions are parsed with ``ast`` and walked node by node. Only numeric
literals, bound variables, arithmetic operators and a small table of math
functions are accepted; nothing is handed to ``eval``.
"""

from __future__ import annotations

import ast
import math
import operator
import re
from typing import Callable, Mapping, Union


Number = Union[int, float]
Value = Union[int, float, str]

MAX_EXPONENT = 10_000
# str() of larger ints trips the interpreter's digit limit.
MAX_INT_BITS = 14_000

_BIN_OPS: dict[type, Callable[[Number, Number], Number]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[Number], Number]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., Number]] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "floor": math.floor,
    "ceil": math.ceil,
    "sqrt": math.sqrt,
    "exp": math.exp,
    "log": math.log,
    "log10": math.log10,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}

_CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?")
_NAME_RE = re.compile(r"\b[A-Za-z_]\w*\b")


class EvalError(Exception):
    pass


def parse_number(token: str) -> Number:
    """Parse a decimal integer or float token, raising ValueError otherwise."""
    t = token.strip()
    if _INT_RE.fullmatch(t):
        return int(t, 10)
    if _FLOAT_RE.fullmatch(t):
        value = float(t)
        if math.isfinite(value):
            return value
    raise ValueError(f"not a number: {token!r}")


def format_value(value: Value) -> str:
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def substitute(expression: str, variables: Mapping[str, Value]) -> str:
    """Render expression with each bound variable name replaced by its value.

    Only whole identifiers are replaced, so ``sin(s)`` becomes ``sin(15)``.
    """

    def repl(m: re.Match[str]) -> str:
        name = m.group(0)
        if name in variables:
            return format_value(variables[name])
        return name

    return _NAME_RE.sub(repl, expression)


def _require_number(value: Value) -> Number:
    if isinstance(value, str):
        raise EvalError(f"non-numeric operand: {value!r}")
    return value


def _eval_node(node: ast.AST, variables: Mapping[str, Value]) -> Value:
    if isinstance(node, ast.Constant):
        # bool is an int subclass; True/False are not arithmetic literals here.
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        raise EvalError(f"unsupported literal: {node.value!r}")

    if isinstance(node, ast.Name):
        if node.id in variables:
            return variables[node.id]
        if node.id in _CONSTANTS:
            return _CONSTANTS[node.id]
        raise EvalError(f"unknown name: {node.id}")

    if isinstance(node, ast.BinOp):
        op = _BIN_OPS.get(type(node.op))
        if op is None:
            raise EvalError(f"unsupported operator: {type(node.op).__name__}")
        left = _require_number(_eval_node(node.left, variables))
        right = _require_number(_eval_node(node.right, variables))
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise EvalError(f"exponent too large: {right}")
        if (
            isinstance(node.op, ast.Pow)
            and isinstance(left, int)
            and isinstance(right, int)
            and left.bit_length() * abs(right) > MAX_INT_BITS
        ):
            raise EvalError("result too large")
        result = op(left, right)
        if isinstance(result, complex):
            raise EvalError("complex result")
        if isinstance(result, int) and result.bit_length() > MAX_INT_BITS:
            raise EvalError("result too large")
        return result

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise EvalError(f"unsupported operator: {type(node.op).__name__}")
        return op(_require_number(_eval_node(node.operand, variables)))

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise EvalError(f"unsupported function: {ast.unparse(node.func)}")
        if node.keywords:
            raise EvalError("keyword arguments are not supported")
        args = [_require_number(_eval_node(a, variables)) for a in node.args]
        return _FUNCTIONS[node.func.id](*args)

    raise EvalError(f"unsupported expression: {type(node).__name__}")


def evaluate(expression: str, variables: Mapping[str, Value]) -> Value:
    text = expression.strip()
    if not text:
        raise EvalError("empty expression")

    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise EvalError(f"invalid expression {expression!r}: {exc.msg}") from exc
    except (RecursionError, MemoryError) as exc:
        raise EvalError("expression is too long or too deeply nested") from exc

    try:
        return _eval_node(tree.body, variables)
    except (RecursionError, MemoryError) as exc:
        raise EvalError("expression is too long or too deeply nested") from exc
    except (ArithmeticError, ValueError, TypeError) as exc:
        raise EvalError(f"cannot evaluate {expression!r}: {exc}") from exc
