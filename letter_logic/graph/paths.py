from __future__ import annotations

import re


PATH_SEGMENT_RE = re.compile(r"([A-Za-z_$][A-Za-z0-9_$-]*)|\[(\d+)\]|(\d+)")
PathPart = str | int


class PathSyntaxError(ValueError):
    """Raised when a dotted variable path is malformed."""


def split_path(path: str) -> tuple[PathPart, ...]:
    """Split ``claim.lines[0].amount`` into ``("claim", "lines", 0, "amount")``."""
    text = path.strip()
    if text.startswith("{{") and text.endswith("}}"):
        text = text[2:-2].strip()
    if not text:
        raise PathSyntaxError("Variable path is empty.")

    parts: list[PathPart] = []
    index = 0
    expect_segment = True
    while index < len(text):
        char = text[index]
        if char == ".":
            if expect_segment:
                raise PathSyntaxError(f"Unexpected '.' in path '{path}'.")
            expect_segment = True
            index += 1
            continue
        match = PATH_SEGMENT_RE.match(text, index)
        if match is None or (not expect_segment and match.group(2) is None):
            raise PathSyntaxError(f"Malformed path '{path}' near offset {index}.")
        if match.group(1) is not None:
            parts.append(match.group(1))
        else:
            parts.append(int(match.group(2) or match.group(3)))
        expect_segment = False
        index = match.end()

    if expect_segment:
        raise PathSyntaxError(f"Path '{path}' ends with '.'.")
    return tuple(parts)


def join_path(parts: tuple[PathPart, ...]) -> str:
    rendered = ""
    for part in parts:
        if isinstance(part, int):
            rendered += f".{part}" if rendered else str(part)
        else:
            rendered += f".{part}" if rendered else part
    return rendered
