"""
echem_insight.expression
~~~~~~~~~~~~~~~~~~~~~~~~
Sandboxed arithmetic expressions over the sample variables ``x`` and ``y``.

Expressions are parsed with :mod:`ast` and checked against a whitelist of
node types before anything is evaluated.  Evaluation walks the checked tree
with numpy, so an expression is applied to a whole series at once::

    >>> expr = compile_expression("2 * y + sin(x)")
    >>> expr(np.array([0.0]), np.array([1.0]))
    array([2.])

Attribute access, subscripts, comprehensions, lambdas, keyword arguments and
any name outside the whitelist are rejected with :class:`ExpressionError`.
"""

from __future__ import annotations

import ast
import operator
from typing import Callable

import numpy as np

from .errors import ExpressionError

MAX_EXPRESSION_LENGTH = 256

VARIABLES = ("x", "y")

CONSTANTS: dict[str, float] = {
    "pi": float(np.pi),
    "e": float(np.e),
}

FUNCTIONS: dict[str, tuple[Callable, int]] = {
    "abs": (np.abs, 1),
    "sqrt": (np.sqrt, 1),
    "exp": (np.exp, 1),
    "log": (np.log, 1),
    "log10": (np.log10, 1),
    "sin": (np.sin, 1),
    "cos": (np.cos, 1),
    "tan": (np.tan, 1),
    "arctan": (np.arctan, 1),
    "sinh": (np.sinh, 1),
    "cosh": (np.cosh, 1),
    "tanh": (np.tanh, 1),
    "min": (np.minimum, 2),
    "max": (np.maximum, 2),
}

_BINARY_OPS: dict[type, Callable] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
    ast.Mod: operator.mod,
}

_UNARY_OPS: dict[type, Callable] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class Expression:
    """A validated expression, callable on aligned ``x`` / ``y`` arrays."""

    def __init__(self, source: str, tree: ast.Expression) -> None:
        self.source = source
        self._tree = tree

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"

    def __call__(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        with np.errstate(all="ignore"):
            result = self._eval(self._tree.body, {"x": x, "y": y})
        return np.array(np.broadcast_to(result, y.shape), dtype=float)

    def _eval(self, node: ast.AST, env: dict[str, np.ndarray]):
        if isinstance(node, ast.Constant):
            return np.float64(node.value)
        if isinstance(node, ast.Name):
            if node.id in env:
                return env[node.id]
            return np.float64(CONSTANTS[node.id])
        if isinstance(node, ast.BinOp):
            op = _BINARY_OPS[type(node.op)]
            return op(self._eval(node.left, env), self._eval(node.right, env))
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, env))
        if isinstance(node, ast.Call):
            func, _ = FUNCTIONS[node.func.id]
            return func(*(self._eval(arg, env) for arg in node.args))
        # unreachable after _check
        raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def _check(node: ast.AST) -> None:
    """Recursively reject anything outside the arithmetic whitelist."""
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"Only numeric literals are allowed, got {node.value!r}")
        return
    if isinstance(node, ast.Name):
        if node.id not in VARIABLES and node.id not in CONSTANTS:
            raise ExpressionError(f"Unknown name: {node.id!r}")
        return
    if isinstance(node, ast.BinOp):
        if type(node.op) not in _BINARY_OPS:
            raise ExpressionError(f"Operator not allowed: {type(node.op).__name__}")
        _check(node.left)
        _check(node.right)
        return
    if isinstance(node, ast.UnaryOp):
        if type(node.op) not in _UNARY_OPS:
            raise ExpressionError(f"Operator not allowed: {type(node.op).__name__}")
        _check(node.operand)
        return
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
            raise ExpressionError(f"Function not allowed: {ast.dump(node.func)}")
        if node.keywords:
            raise ExpressionError("Keyword arguments are not allowed")
        _, arity = FUNCTIONS[node.func.id]
        if len(node.args) != arity or any(isinstance(a, ast.Starred) for a in node.args):
            raise ExpressionError(
                f"{node.func.id}() takes exactly {arity} argument(s)"
            )
        for arg in node.args:
            _check(arg)
        return
    raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def compile_expression(source: str) -> Expression:
    """Parse and validate *source*, returning a reusable :class:`Expression`.

    Raises
    ------
    ExpressionError
        If *source* is empty, too long, not valid Python syntax, or uses
        anything beyond arithmetic on ``x``, ``y``, numeric literals, the
        constants ``pi`` / ``e`` and the functions in :data:`FUNCTIONS`.
    """
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError("Expression is empty")
    if len(source) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(
            f"Expression longer than {MAX_EXPRESSION_LENGTH} characters"
        )
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(f"Invalid expression {source!r}: {exc.msg}") from None
    _check(tree.body)
    return Expression(source, tree)
