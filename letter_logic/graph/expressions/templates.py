"""
Splitting of authored text into literal runs and ``{{...}}`` tokens.

Token bodies are expression sources. Most are plain paths such as
``member.firstName`` but anything the parser accepts is allowed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


TEMPLATE_TOKEN_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


@dataclass(frozen=True, slots=True)
class TemplateSegment:
    text: str
    is_token: bool = False


def split_template(text: str) -> list[TemplateSegment]:
    segments: list[TemplateSegment] = []
    cursor = 0
    for match in TEMPLATE_TOKEN_RE.finditer(text):
        if match.start() > cursor:
            segments.append(TemplateSegment(text[cursor : match.start()]))
        segments.append(TemplateSegment(match.group(1), is_token=True))
        cursor = match.end()
    if cursor < len(text):
        segments.append(TemplateSegment(text[cursor:]))
    return segments


def template_references(text: str) -> list[str]:
    return [match.group(1) for match in TEMPLATE_TOKEN_RE.finditer(text)]


def unbalanced_offset(text: str) -> int | None:
    """Offset of the first ``{{`` without a closing ``}}`` (or stray ``}}``)."""
    depth_start: int | None = None
    index = 0
    while index < len(text) - 1:
        pair = text[index : index + 2]
        if pair == "{{":
            if depth_start is not None:
                return depth_start
            depth_start = index
            index += 2
            continue
        if pair == "}}":
            if depth_start is None:
                return index
            depth_start = None
            index += 2
            continue
        index += 1
    return depth_start
