"""
Render instructions produced by graph evaluation.

The evaluator decides *what* appears and resolves every variable value in the
scope active at the time; the renderer only decides *how* it is serialized.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Literal, Union

from letter_logic.graph.formatting import FormatOptions


StyleKind = Literal["formatting", "alert", "locale", "cell"]
RepeatLayout = Literal["inline", "table"]


@dataclass(frozen=True, slots=True)
class TextFragment:
    """Authored literal content, emitted as-is."""

    text: str
    node_id: str | None = None


@dataclass(frozen=True, slots=True)
class VariableFragment:
    name: str
    value: object = None
    found: bool = True
    required: bool = False
    format: FormatOptions | None = None
    node_id: str | None = None


@dataclass(frozen=True, slots=True)
class BlockFragment:
    block_id: str
    children: tuple[RenderInstruction, ...] = ()
    compliance_flags: tuple[str, ...] = ()
    missing: bool = False
    node_id: str | None = None


@dataclass(frozen=True, slots=True)
class ComponentFragment:
    component_id: str
    children: tuple[RenderInstruction, ...] = ()
    compliance_flags: tuple[str, ...] = ()
    parameters: Mapping[str, object] = field(default_factory=dict)
    missing: bool = False
    node_id: str | None = None


@dataclass(frozen=True, slots=True)
class RepeatedFragment:
    """
    Output of a loop node.

    Inline layout joins ``items`` with ``separator``. Table layout treats each
    item as a row whose entries are ``cell`` styled fragments.
    """

    items: tuple[tuple[RenderInstruction, ...], ...]
    separator: str = "\n"
    layout: RepeatLayout = "inline"
    headers: tuple[str, ...] = ()
    caption: str | None = None
    node_id: str | None = None


@dataclass(frozen=True, slots=True)
class StyledFragment:
    kind: StyleKind
    children: tuple[RenderInstruction, ...] = ()
    attributes: Mapping[str, object] = field(default_factory=dict)
    node_id: str | None = None


RenderInstruction = Union[
    TextFragment,
    VariableFragment,
    BlockFragment,
    ComponentFragment,
    RepeatedFragment,
    StyledFragment,
]


def iter_fragments(instructions: Iterable[RenderInstruction]) -> Iterator[RenderInstruction]:
    """Depth-first walk over every fragment, nested ones included."""
    for instruction in instructions:
        yield instruction
        if isinstance(instruction, (BlockFragment, ComponentFragment, StyledFragment)):
            yield from iter_fragments(instruction.children)
        elif isinstance(instruction, RepeatedFragment):
            for item in instruction.items:
                yield from iter_fragments(item)


@dataclass(frozen=True, slots=True)
class EmittedContent:
    block_ids: frozenset[str]
    component_ids: frozenset[str]
    compliance_flags: frozenset[str]


def emitted_content(instructions: Iterable[RenderInstruction]) -> EmittedContent:
    """Block ids, component ids and compliance flags actually present in the output."""
    block_ids: set[str] = set()
    component_ids: set[str] = set()
    flags: set[str] = set()
    for fragment in iter_fragments(instructions):
        if isinstance(fragment, BlockFragment) and not fragment.missing:
            block_ids.add(fragment.block_id)
            flags.update(fragment.compliance_flags)
        elif isinstance(fragment, ComponentFragment) and not fragment.missing:
            component_ids.add(fragment.component_id)
            flags.update(fragment.compliance_flags)
    return EmittedContent(frozenset(block_ids), frozenset(component_ids), frozenset(flags))
