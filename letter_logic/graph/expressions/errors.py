from __future__ import annotations


class ExpressionError(ValueError):
    """Base class for expression failures."""


class ParseError(ExpressionError):
    """Raised when an expression cannot be tokenized or parsed."""

    def __init__(self, message: str, *, offset: int, source: str = "") -> None:
        self.offset = offset
        self.source = source
        super().__init__(f"{message} at offset {offset}")


class EvalError(ExpressionError):
    """Raised when a parsed expression cannot be evaluated."""


class TypeMismatch(EvalError):
    """Raised when an operator receives incompatible operand types."""


class UnknownFunction(EvalError):
    """Raised when an expression calls a function that is not registered."""


class MissingVariable(EvalError):
    """Raised when a required variable is absent from the context."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Required variable '{name}' is missing.")
