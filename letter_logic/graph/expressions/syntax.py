"""
Expression syntax tree.

Nodes are immutable and carry the source offset they were parsed from so
evaluation errors can point back at the authored expression. They hold
structure only; evaluation lives in ``evaluator``.
"""

from __future__ import annotations

from dataclasses import dataclass

from letter_logic.graph.paths import PathPart


class Expression:
    """Base class for every syntax tree node."""

    __slots__ = ()


@dataclass(frozen=True, slots=True)
class Literal(Expression):
    """A constant: number, string, boolean or null."""

    value: object
    offset: int = 0


@dataclass(frozen=True, slots=True)
class VariableRef(Expression):
    """
    A reference to a context value.

    ``name`` is the dotted source text (``claim.lines.0.amount``) and is the key
    used for required/optional policy lookups. ``path`` is the parsed form.
    """

    name: str
    path: tuple[PathPart, ...]
    offset: int = 0


@dataclass(frozen=True, slots=True)
class UnaryOp(Expression):
    operator: str
    operand: Expression
    offset: int = 0


@dataclass(frozen=True, slots=True)
class BinaryOp(Expression):
    """Arithmetic, comparison or equality operator."""

    operator: str
    left: Expression
    right: Expression
    offset: int = 0


@dataclass(frozen=True, slots=True)
class LogicalOp(Expression):
    """Short-circuiting ``&&`` / ``||``."""

    operator: str
    left: Expression
    right: Expression
    offset: int = 0


@dataclass(frozen=True, slots=True)
class Call(Expression):
    name: str
    args: tuple[Expression, ...]
    offset: int = 0
