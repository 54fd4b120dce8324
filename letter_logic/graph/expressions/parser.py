from __future__ import annotations

from functools import lru_cache

from letter_logic.graph.expressions.errors import ParseError
from letter_logic.graph.expressions.syntax import (
    BinaryOp,
    Call,
    Expression,
    Literal,
    LogicalOp,
    UnaryOp,
    VariableRef,
)
from letter_logic.graph.expressions.tokenizer import Token, tokenize
from letter_logic.graph.paths import PathPart, PathSyntaxError, join_path, split_path


EQUALITY_ALIASES = {"===": "==", "!==": "!="}
COMPARISON_OPERATORS = {"<", "<=", ">", ">="}
ADDITIVE_OPERATORS = {"+", "-"}
MULTIPLICATIVE_OPERATORS = {"*", "/", "%"}


@lru_cache(maxsize=1024)
def parse(source: str) -> Expression:
    if not isinstance(source, str) or not source.strip():
        raise ParseError("Expression is empty", offset=0, source=str(source or ""))
    return _Parser(source, tokenize(source)).parse()


class _Parser:
    def __init__(self, source: str, tokens: list[Token]) -> None:
        self._source = source
        self._tokens = tokens
        self._index = 0

    def parse(self) -> Expression:
        expression = self._or()
        token = self._peek()
        if token.kind != "EOF":
            raise self._error(f"Unexpected token {token.value!r}", token)
        return expression

    def _or(self) -> Expression:
        left = self._and()
        while self._match_op("||"):
            offset = self._previous().offset
            left = LogicalOp("||", left, self._and(), offset)
        return left

    def _and(self) -> Expression:
        left = self._equality()
        while self._match_op("&&"):
            offset = self._previous().offset
            left = LogicalOp("&&", left, self._equality(), offset)
        return left

    def _equality(self) -> Expression:
        left = self._comparison()
        while self._match_op("==", "!=", "===", "!=="):
            token = self._previous()
            operator = EQUALITY_ALIASES.get(str(token.value), str(token.value))
            left = BinaryOp(operator, left, self._comparison(), token.offset)
        return left

    def _comparison(self) -> Expression:
        left = self._additive()
        while self._match_op(*COMPARISON_OPERATORS):
            token = self._previous()
            left = BinaryOp(str(token.value), left, self._additive(), token.offset)
        return left

    def _additive(self) -> Expression:
        left = self._multiplicative()
        while self._match_op(*ADDITIVE_OPERATORS):
            token = self._previous()
            left = BinaryOp(str(token.value), left, self._multiplicative(), token.offset)
        return left

    def _multiplicative(self) -> Expression:
        left = self._unary()
        while self._match_op(*MULTIPLICATIVE_OPERATORS):
            token = self._previous()
            left = BinaryOp(str(token.value), left, self._unary(), token.offset)
        return left

    def _unary(self) -> Expression:
        if self._match_op("!", "-"):
            token = self._previous()
            return UnaryOp(str(token.value), self._unary(), token.offset)
        return self._primary()

    def _primary(self) -> Expression:
        token = self._advance()

        if token.kind in {"NUMBER", "STRING", "BOOL", "NULL"}:
            return Literal(token.value, token.offset)

        if token.kind == "VAR":
            try:
                path = split_path(str(token.value))
            except PathSyntaxError as exc:
                raise self._error(str(exc), token) from exc
            return VariableRef(join_path(path), path, token.offset)

        if token.kind == "NAME":
            if self._peek().kind == "LPAREN":
                self._advance()
                return Call(str(token.value).upper(), self._arguments(), token.offset)
            return self._bare_path(token)

        if token.kind == "LPAREN":
            expression = self._or()
            self._expect("RPAREN", "Expected ')'")
            return expression

        if token.kind == "EOF":
            raise self._error("Unexpected end of expression", token)
        raise self._error(f"Unexpected token {token.value!r}", token)

    def _arguments(self) -> tuple[Expression, ...]:
        args: list[Expression] = []
        if self._peek().kind == "RPAREN":
            self._advance()
            return tuple(args)
        while True:
            args.append(self._or())
            if self._peek().kind == "COMMA":
                self._advance()
                continue
            self._expect("RPAREN", "Expected ',' or ')' in argument list")
            return tuple(args)

    def _bare_path(self, head: Token) -> VariableRef:
        parts: list[PathPart] = [str(head.value)]
        while True:
            kind = self._peek().kind
            if kind == "DOT":
                self._advance()
                segment = self._advance()
                if segment.kind == "NAME":
                    parts.append(str(segment.value))
                elif segment.kind == "NUMBER" and isinstance(segment.value, int):
                    parts.append(segment.value)
                else:
                    raise self._error("Expected a field name after '.'", segment)
                continue
            if kind == "LBRACKET":
                self._advance()
                index = self._advance()
                if index.kind != "NUMBER" or not isinstance(index.value, int):
                    raise self._error("Expected an integer index", index)
                self._expect("RBRACKET", "Expected ']'")
                parts.append(index.value)
                continue
            break
        path = tuple(parts)
        return VariableRef(join_path(path), path, head.offset)

    def _match_op(self, *operators: str) -> bool:
        token = self._peek()
        if token.kind == "OP" and token.value in operators:
            self._index += 1
            return True
        return False

    def _expect(self, kind: str, message: str) -> Token:
        token = self._advance()
        if token.kind != kind:
            raise self._error(message, token)
        return token

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _previous(self) -> Token:
        return self._tokens[self._index - 1]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "EOF":
            self._index += 1
        return token

    def _error(self, message: str, token: Token) -> ParseError:
        return ParseError(message, offset=token.offset, source=self._source)
