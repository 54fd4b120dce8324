from __future__ import annotations

import html
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from letter_logic.graph.context import VariableContext
from letter_logic.graph.formatting import FormatOptions, apply_text_case, format_value
from letter_logic.graph.instructions import (
    BlockFragment,
    ComponentFragment,
    RenderInstruction,
    RepeatedFragment,
    StyledFragment,
    TextFragment,
    VariableFragment,
)


OutputFormat = Literal["html", "text"]

MISSING_CONTENT_MARKER = "[[MISSING CONTENT: {kind} {id}]]"
CSS_TEXT_TRANSFORM = {"upper": "uppercase", "lower": "lowercase", "title": "capitalize"}


@dataclass(slots=True)
class RenderOutput:
    content: str
    warnings: list[str] = field(default_factory=list)


class Renderer:
    """
    Serializes render instructions to an HTML fragment or plain text.

    Variable values are formatted here (never earlier) and escaped in HTML
    output. Authored literal content passes through untouched.
    """

    def __init__(
        self,
        *,
        output_format: OutputFormat = "html",
        missing_placeholder: str = "[[MISSING: {name}]]",
        fragment_separator: str = "\n",
        default_locale: str = "en-US",
    ) -> None:
        if output_format not in ("html", "text"):
            raise ValueError(f"Unsupported output format '{output_format}'.")
        self._format = output_format
        self._placeholder = missing_placeholder
        self._separator = fragment_separator
        self._default_locale = default_locale

    def render(
        self,
        instructions: Sequence[RenderInstruction],
        context: VariableContext | None = None,
    ) -> RenderOutput:
        warnings: list[str] = []
        locale = context.locale if context is not None else self._default_locale
        content = self._sequence(instructions, context, locale, warnings)
        return RenderOutput(content=content, warnings=warnings)

    def _sequence(
        self,
        fragments: Sequence[RenderInstruction],
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        # Inline pieces of one node run together; anything else is separated.
        parts: list[str] = []
        previous: RenderInstruction | None = None
        for fragment in fragments:
            rendered = self._fragment(fragment, context, locale, warnings)
            if previous is not None and not _joins_inline(previous, fragment):
                parts.append(self._separator)
            parts.append(rendered)
            previous = fragment
        return "".join(parts)

    def _fragment(
        self,
        fragment: RenderInstruction,
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        if isinstance(fragment, TextFragment):
            return fragment.text
        if isinstance(fragment, VariableFragment):
            return self._variable(fragment, context, locale, warnings)
        if isinstance(fragment, (BlockFragment, ComponentFragment)):
            return self._content(fragment, context, locale, warnings)
        if isinstance(fragment, RepeatedFragment):
            return self._repeated(fragment, context, locale, warnings)
        if isinstance(fragment, StyledFragment):
            return self._styled(fragment, context, locale, warnings)
        raise TypeError(f"Unsupported render instruction {type(fragment).__name__}")

    def _variable(
        self,
        fragment: VariableFragment,
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        if not fragment.found:
            if not fragment.required:
                return ""
            warnings.append(f"Required variable '{fragment.name}' is missing; rendered placeholder.")
            return self._escape(self._placeholder.format(name=fragment.name))

        options = fragment.format or _definition_format(context, fragment.name)
        rendered = format_value(fragment.value, options, locale=locale)
        return self._escape(rendered)

    def _content(
        self,
        fragment: BlockFragment | ComponentFragment,
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        if isinstance(fragment, BlockFragment):
            kind, content_id = "block", fragment.block_id
        else:
            kind, content_id = "component", fragment.component_id

        if fragment.missing:
            inner = self._escape(MISSING_CONTENT_MARKER.format(kind=kind, id=content_id))
        else:
            inner = self._sequence(fragment.children, context, locale, warnings)

        if self._format == "text":
            return inner

        classes = kind if not fragment.missing else f"{kind} missing"
        attributes = [f'class="{classes}"', f'data-{kind}-id="{_attr(content_id)}"']
        if fragment.compliance_flags:
            attributes.append(f'data-compliance="{_attr(" ".join(fragment.compliance_flags))}"')
        return f"<div {' '.join(attributes)}>{inner}</div>"

    def _repeated(
        self,
        fragment: RepeatedFragment,
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        if fragment.layout == "table":
            return self._table(fragment, context, locale, warnings)
        return fragment.separator.join(
            self._sequence(item, context, locale, warnings) for item in fragment.items
        )

    def _table(
        self,
        fragment: RepeatedFragment,
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        rows = [
            [self._sequence(_cell_children(cell), context, locale, warnings) for cell in item]
            for item in fragment.items
        ]
        if self._format == "text":
            lines = [fragment.caption] if fragment.caption else []
            lines.append(" | ".join(fragment.headers))
            lines.extend(" | ".join(row) for row in rows)
            return "\n".join(lines)

        parts = ['<table class="table-loop">']
        if fragment.caption:
            parts.append(f"<caption>{html.escape(fragment.caption)}</caption>")
        header_cells = "".join(f"<th>{html.escape(header)}</th>" for header in fragment.headers)
        parts.append(f"<thead><tr>{header_cells}</tr></thead>")
        parts.append("<tbody>")
        for row in rows:
            parts.append("<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>")
        parts.append("</tbody></table>")
        return "".join(parts)

    def _styled(
        self,
        fragment: StyledFragment,
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        attributes = fragment.attributes
        if fragment.kind == "locale":
            locale = str(attributes.get("locale") or locale)
        inner = self._sequence(fragment.children, context, locale, warnings)

        if fragment.kind == "formatting":
            return self._formatting(inner, attributes)
        if fragment.kind == "alert":
            return self._alert(inner, attributes, self._title(attributes.get("title"), context, locale, warnings))
        if fragment.kind == "locale":
            if self._format == "text":
                return inner
            return f'<div lang="{_attr(locale)}">{inner}</div>'
        return inner

    def _formatting(self, inner: str, attributes: object) -> str:
        attrs = dict(attributes)  # type: ignore[call-overload]
        text_case = attrs.get("text_case")
        if self._format == "text":
            return apply_text_case(inner, text_case) if text_case else inner

        styles: list[str] = []
        if attrs.get("bold"):
            styles.append("font-weight: bold")
        if attrs.get("italic"):
            styles.append("font-style: italic")
        if attrs.get("underline"):
            styles.append("text-decoration: underline")
        if text_case in CSS_TEXT_TRANSFORM:
            styles.append(f"text-transform: {CSS_TEXT_TRANSFORM[text_case]}")
        styles.extend(f"{key}: {value}" for key, value in sorted(dict(attrs.get("styles") or {}).items()))

        html_attributes: list[str] = []
        if attrs.get("css_class"):
            html_attributes.append(f'class="{_attr(str(attrs["css_class"]))}"')
        if styles:
            html_attributes.append(f'style="{_attr("; ".join(styles))}"')
        opening = f"<span {' '.join(html_attributes)}>" if html_attributes else "<span>"
        return f"{opening}{inner}</span>"

    def _title(
        self,
        title: object,
        context: VariableContext | None,
        locale: str,
        warnings: list[str],
    ) -> str:
        if not title:
            return ""
        if isinstance(title, tuple):
            return self._sequence(title, context, locale, warnings)
        return self._escape(str(title))

    def _alert(self, inner: str, attributes: object, title: str) -> str:
        attrs = dict(attributes)  # type: ignore[call-overload]
        level = str(attrs.get("level") or "info")
        if self._format == "text":
            prefix = f"{title}: " if title else f"[{level.upper()}] "
            return f"{prefix}{inner}"
        heading = f'<strong class="alert-title">{title}</strong>' if title else ""
        return f'<div class="alert alert-{_attr(level)}" role="alert">{heading}{inner}</div>'

    def _escape(self, text: str) -> str:
        if self._format == "text":
            return text
        return html.escape(text).replace("\n", "<br>")


def _joins_inline(previous: RenderInstruction, current: RenderInstruction) -> bool:
    inline = (TextFragment, VariableFragment)
    return (
        isinstance(previous, inline)
        and isinstance(current, inline)
        and previous.node_id == current.node_id
    )


def _cell_children(cell: RenderInstruction) -> tuple[RenderInstruction, ...]:
    if isinstance(cell, StyledFragment):
        return cell.children
    return (cell,)


def _definition_format(context: VariableContext | None, name: str) -> FormatOptions | None:
    if context is None:
        return None
    definition = context.definition(name)
    return definition.format if definition is not None else None


def _attr(value: str) -> str:
    return html.escape(value, quote=True)
