from letter_logic.graph.expressions.errors import (
    EvalError,
    ExpressionError,
    MissingVariable,
    ParseError,
    TypeMismatch,
    UnknownFunction,
)
from letter_logic.graph.expressions.evaluator import ExpressionEvaluator, evaluate
from letter_logic.graph.expressions.functions import BUILTIN_FUNCTIONS
from letter_logic.graph.expressions.parser import parse
from letter_logic.graph.expressions.templates import (
    TemplateSegment,
    split_template,
    template_references,
    unbalanced_offset,
)
from letter_logic.graph.expressions.values import is_truthy

__all__ = [
    "BUILTIN_FUNCTIONS",
    "EvalError",
    "ExpressionError",
    "ExpressionEvaluator",
    "MissingVariable",
    "ParseError",
    "TemplateSegment",
    "TypeMismatch",
    "UnknownFunction",
    "evaluate",
    "is_truthy",
    "parse",
    "split_template",
    "template_references",
    "unbalanced_offset",
]
