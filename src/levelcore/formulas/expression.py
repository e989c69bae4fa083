"""Safe evaluation of user-supplied XP curve expressions.

Expressions are arithmetic over one free variable (the level) and a map of
named constants. They are parsed once with ``ast`` and validated up front:
unknown identifiers, attribute access, subscripts, comprehensions and
keyword arguments are rejected when the expression is compiled, never at
evaluation time.

Supported: numeric literals, ``+ - * /``, ``^`` and ``**`` (power), unary
``+``/``-``, parentheses and the functions in ``FUNCTIONS``.
"""

from __future__ import annotations

import ast
import math
from collections.abc import Callable, Mapping

from levelcore.exceptions import ConfigurationError

FUNCTIONS: dict[str, Callable[..., float]] = {
    "sqrt": math.sqrt,
    "log": math.log,
    "exp": math.exp,
    "floor": math.floor,
    "ceil": math.ceil,
    "abs": abs,
    "min": min,
    "max": max,
}

_BINARY_OPS = (ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Pow)


class CompiledExpression:
    """A validated expression ready to be evaluated for many levels."""

    def __init__(self, source: str, variable: str, constants: Mapping[str, float] | None = None) -> None:
        if not source or not source.strip():
            msg = "Custom XP expression is empty"
            raise ConfigurationError(msg)

        self.source = source
        self.variable = variable
        self._constants = _check_constants(constants or {}, variable)

        try:
            tree = ast.parse(source.replace("^", "**").strip(), mode="eval")
        except SyntaxError as exc:
            msg = f"Malformed custom XP expression {source!r}: {exc.msg}"
            raise ConfigurationError(msg) from exc

        self._body = tree.body
        self._validate(self._body)

    def evaluate(self, value: float) -> float:
        """Evaluate with the free variable bound to ``value``.

        Overflow evaluates to +inf. Domain errors (division by zero,
        log of a negative, ...) raise ArithmeticError or ValueError.
        """
        env = dict(self._constants)
        env[self.variable] = float(value)
        try:
            return _eval_node(self._body, env)
        except OverflowError:
            return math.inf

    def _validate(self, node: ast.AST) -> None:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                msg = f"Unsupported literal {node.value!r} in custom XP expression"
                raise ConfigurationError(msg)
            return

        if isinstance(node, ast.Name):
            if node.id != self.variable and node.id not in self._constants:
                msg = f"Unknown identifier '{node.id}' in custom XP expression {self.source!r}"
                raise ConfigurationError(msg)
            return

        if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.UAdd, ast.USub)):
            self._validate(node.operand)
            return

        if isinstance(node, ast.BinOp) and isinstance(node.op, _BINARY_OPS):
            self._validate(node.left)
            self._validate(node.right)
            return

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                name = node.func.id if isinstance(node.func, ast.Name) else ast.unparse(node.func)
                msg = f"Unknown function '{name}' in custom XP expression {self.source!r}"
                raise ConfigurationError(msg)
            if node.keywords or not node.args:
                msg = f"Function '{node.func.id}' takes positional arguments only"
                raise ConfigurationError(msg)
            for arg in node.args:
                self._validate(arg)
            return

        msg = f"Unsupported syntax '{ast.unparse(node)}' in custom XP expression {self.source!r}"
        raise ConfigurationError(msg)


def _check_constants(constants: Mapping[str, float], variable: str) -> dict[str, float]:
    checked: dict[str, float] = {}
    for name, value in constants.items():
        if not name.isidentifier():
            msg = f"Constant name {name!r} is not a valid identifier"
            raise ConfigurationError(msg)
        if name == variable or name in FUNCTIONS:
            msg = f"Constant name '{name}' shadows a reserved name"
            raise ConfigurationError(msg)
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            msg = f"Constant '{name}' must be numeric, got {value!r}"
            raise ConfigurationError(msg) from exc
        if not math.isfinite(number):
            msg = f"Constant '{name}' must be finite, got {value!r}"
            raise ConfigurationError(msg)
        checked[name] = number
    return checked


def _eval_node(node: ast.AST, env: Mapping[str, float]) -> float:
    if isinstance(node, ast.Constant):
        return float(node.value)

    if isinstance(node, ast.Name):
        return env[node.id]

    if isinstance(node, ast.UnaryOp):
        operand = _eval_node(node.operand, env)
        return operand if isinstance(node.op, ast.UAdd) else -operand

    if isinstance(node, ast.BinOp):
        left = _eval_node(node.left, env)
        right = _eval_node(node.right, env)
        if isinstance(node.op, ast.Add):
            return left + right
        if isinstance(node.op, ast.Sub):
            return left - right
        if isinstance(node.op, ast.Mult):
            return left * right
        if isinstance(node.op, ast.Div):
            return left / right
        result = left**right
        if isinstance(result, complex):
            msg = f"{left} ^ {right} has no real value"
            raise ValueError(msg)
        return result

    if isinstance(node, ast.Call):
        args = [_eval_node(arg, env) for arg in node.args]
        return float(FUNCTIONS[node.func.id](*args))  # type: ignore[union-attr]

    msg = f"Unsupported node {type(node).__name__}"
    raise ValueError(msg)
