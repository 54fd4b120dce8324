from __future__ import annotations

import re
from dataclasses import dataclass

from letter_logic.graph.expressions.errors import ParseError


NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# Longest operators first so "===" never splits into "==" + "=".
OPERATORS = (
    "===",
    "!==",
    "||",
    "&&",
    "==",
    "!=",
    "<=",
    ">=",
    "<",
    ">",
    "+",
    "-",
    "*",
    "/",
    "%",
    "!",
)
WORD_OPERATORS = {"and": "&&", "or": "||", "not": "!"}
PUNCTUATION = {
    "(": "LPAREN",
    ")": "RPAREN",
    ",": "COMMA",
    ".": "DOT",
    "[": "LBRACKET",
    "]": "RBRACKET",
}
ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True, slots=True)
class Token:
    kind: str
    value: object
    offset: int


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    index = 0
    length = len(source)

    while index < length:
        char = source[index]

        if char.isspace():
            index += 1
            continue

        if source.startswith("{{", index):
            end = source.find("}}", index + 2)
            if end == -1:
                raise ParseError("Unterminated '{{' variable reference", offset=index, source=source)
            inner = source[index + 2 : end].strip()
            if not inner:
                raise ParseError("Empty variable reference", offset=index, source=source)
            tokens.append(Token("VAR", inner, index))
            index = end + 2
            continue

        if char in {"'", '"'}:
            text, end = _read_string(source, index)
            tokens.append(Token("STRING", text, index))
            index = end
            continue

        number = NUMBER_RE.match(source, index)
        if number:
            text = number.group(0)
            value: object = float(text) if "." in text else int(text)
            tokens.append(Token("NUMBER", value, index))
            index = number.end()
            continue

        name = NAME_RE.match(source, index)
        if name:
            word = name.group(0)
            lowered = word.lower()
            if lowered in WORD_OPERATORS:
                tokens.append(Token("OP", WORD_OPERATORS[lowered], index))
            elif lowered in {"true", "false"}:
                tokens.append(Token("BOOL", lowered == "true", index))
            elif lowered in {"null", "undefined"}:
                tokens.append(Token("NULL", None, index))
            else:
                tokens.append(Token("NAME", word, index))
            index = name.end()
            continue

        operator = next((op for op in OPERATORS if source.startswith(op, index)), None)
        if operator is not None:
            tokens.append(Token("OP", operator, index))
            index += len(operator)
            continue

        if char in PUNCTUATION:
            tokens.append(Token(PUNCTUATION[char], char, index))
            index += 1
            continue

        raise ParseError(f"Unexpected character {char!r}", offset=index, source=source)

    tokens.append(Token("EOF", None, length))
    return tokens


def _read_string(source: str, start: int) -> tuple[str, int]:
    quote = source[start]
    index = start + 1
    chars: list[str] = []
    while index < len(source):
        char = source[index]
        if char == "\\" and index + 1 < len(source):
            chars.append(ESCAPES.get(source[index + 1], source[index + 1]))
            index += 2
            continue
        if char == quote:
            return "".join(chars), index + 1
        chars.append(char)
        index += 1
    raise ParseError("Unterminated string literal", offset=start, source=source)
