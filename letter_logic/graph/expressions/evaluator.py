from __future__ import annotations

from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any

from letter_logic.graph.context import VariableContext
from letter_logic.graph.expressions.errors import (
    EvalError,
    MissingVariable,
    TypeMismatch,
    UnknownFunction,
)
from letter_logic.graph.expressions.functions import BUILTIN_FUNCTIONS, BuiltinFunction
from letter_logic.graph.expressions.parser import parse
from letter_logic.graph.expressions.syntax import (
    BinaryOp,
    Call,
    Expression,
    Literal,
    LogicalOp,
    UnaryOp,
    VariableRef,
)
from letter_logic.graph.expressions.values import (
    is_number,
    is_truthy,
    normalize_number,
    type_family,
)
from letter_logic.graph.formatting import coerce_date, to_text


ORDERING_OPERATORS = {"<", "<=", ">", ">="}
ARITHMETIC_OPERATORS = {"+", "-", "*", "/", "%"}


class ExpressionEvaluator:
    """Tree-walking evaluator over parsed expressions."""

    def __init__(self, functions: Mapping[str, BuiltinFunction] | None = None) -> None:
        self._functions: dict[str, BuiltinFunction] = dict(BUILTIN_FUNCTIONS)
        if functions:
            self._functions.update({name.upper(): fn for name, fn in functions.items()})

    def evaluate(
        self,
        expression: str | Expression,
        context: VariableContext | Mapping[str, Any],
        *,
        warnings: list[str] | None = None,
    ) -> object:
        tree = parse(expression) if isinstance(expression, str) else expression
        active = context if isinstance(context, VariableContext) else VariableContext(context)
        sink = warnings if warnings is not None else []
        return self._eval(tree, active, sink)

    def evaluate_condition(
        self,
        expression: str | Expression,
        context: VariableContext | Mapping[str, Any],
        *,
        warnings: list[str] | None = None,
    ) -> bool:
        return is_truthy(self.evaluate(expression, context, warnings=warnings))

    def _eval(self, node: Expression, context: VariableContext, warnings: list[str]) -> object:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, VariableRef):
            return self._resolve_variable(node, context, warnings)

        if isinstance(node, LogicalOp):
            left = is_truthy(self._eval(node.left, context, warnings))
            if node.operator == "&&" and not left:
                return False
            if node.operator == "||" and left:
                return True
            return is_truthy(self._eval(node.right, context, warnings))

        if isinstance(node, UnaryOp):
            operand = self._eval(node.operand, context, warnings)
            if node.operator == "!":
                return not is_truthy(operand)
            if not is_number(operand):
                raise TypeMismatch(f"Unary '-' expects a number, got {type_family(operand)}.")
            return -operand  # type: ignore[operator]

        if isinstance(node, BinaryOp):
            left = self._eval(node.left, context, warnings)
            right = self._eval(node.right, context, warnings)
            return self._binary(node.operator, left, right)

        if isinstance(node, Call):
            return self._call(node, context, warnings)

        raise EvalError(f"Unsupported expression node {type(node).__name__}.")

    def _resolve_variable(self, node: VariableRef, context: VariableContext, warnings: list[str]) -> object:
        found, value = context.lookup(node.path)
        if found:
            return value
        if context.is_required(node.name) or context.is_required(str(node.path[0])):
            raise MissingVariable(node.name)
        warnings.append(f"Optional variable '{node.name}' is missing; using null.")
        return None

    def _call(self, node: Call, context: VariableContext, warnings: list[str]) -> object:
        if node.name == "IF" and len(node.args) in {2, 3}:
            # Only the selected branch is evaluated.
            condition = is_truthy(self._eval(node.args[0], context, warnings))
            if condition:
                return self._eval(node.args[1], context, warnings)
            return self._eval(node.args[2], context, warnings) if len(node.args) == 3 else None

        function = self._functions.get(node.name)
        if function is None:
            raise UnknownFunction(f"Unknown function '{node.name}' at offset {node.offset}.")
        args = [self._eval(arg, context, warnings) for arg in node.args]
        return normalize_number(function(args, context))

    def _binary(self, operator: str, left: object, right: object) -> object:
        if operator == "==":
            return _equals(left, right)
        if operator == "!=":
            return not _equals(left, right)
        if operator in ORDERING_OPERATORS:
            return _compare(operator, left, right)
        if operator in ARITHMETIC_OPERATORS:
            return normalize_number(_arithmetic(operator, left, right))
        raise EvalError(f"Unsupported operator '{operator}'.")


def _align_dates(left: object, right: object) -> tuple[object, object]:
    if isinstance(left, date) and isinstance(right, str):
        parsed = coerce_date(right)
        if parsed is not None:
            return left, parsed
    if isinstance(right, date) and isinstance(left, str):
        parsed = coerce_date(left)
        if parsed is not None:
            return parsed, right
    return left, right


def _equals(left: object, right: object) -> bool:
    if left is None or right is None:
        return left is None and right is None
    left, right = _align_dates(left, right)
    left_family, right_family = type_family(left), type_family(right)
    if left_family != right_family:
        raise TypeMismatch(f"Cannot compare {left_family} with {right_family} for equality.")
    return left == right


def _compare(operator: str, left: object, right: object) -> bool:
    left, right = _align_dates(left, right)
    left_family, right_family = type_family(left), type_family(right)
    if left_family != right_family or left_family not in {"number", "string", "date"}:
        raise TypeMismatch(f"Cannot order {left_family} {operator} {right_family}.")
    if operator == "<":
        return left < right  # type: ignore[operator]
    if operator == "<=":
        return left <= right  # type: ignore[operator]
    if operator == ">":
        return left > right  # type: ignore[operator]
    return left >= right  # type: ignore[operator]


def _arithmetic(operator: str, left: object, right: object) -> object:
    if operator == "+" and (isinstance(left, str) or isinstance(right, str)):
        return to_text(left) + to_text(right)

    if isinstance(left, date) and is_number(right) and operator in {"+", "-"}:
        days = int(right)  # type: ignore[arg-type]
        return left + timedelta(days=days if operator == "+" else -days)
    if isinstance(left, date) and isinstance(right, date) and operator == "-":
        return (left - right).days

    if not is_number(left) or not is_number(right):
        raise TypeMismatch(
            f"Operator '{operator}' expects numbers, got {type_family(left)} and {type_family(right)}."
        )

    if operator == "+":
        return left + right  # type: ignore[operator]
    if operator == "-":
        return left - right  # type: ignore[operator]
    if operator == "*":
        return left * right  # type: ignore[operator]
    if right == 0:
        raise EvalError("Division by zero.")
    if operator == "/":
        return left / right  # type: ignore[operator]
    return left % right  # type: ignore[operator]


DEFAULT_EVALUATOR = ExpressionEvaluator()


def evaluate(
    expression: str | Expression,
    context: VariableContext | Mapping[str, Any],
    *,
    warnings: list[str] | None = None,
) -> object:
    return DEFAULT_EVALUATOR.evaluate(expression, context, warnings=warnings)
