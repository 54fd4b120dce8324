from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from letter_logic.graph.expressions import ParseError, parse, template_references, unbalanced_offset
from letter_logic.graph.loader.models import LoadDiagnostic


# Config keys whose values are whole expressions rather than templated text.
EXPRESSION_KEYS = {
    "expression",
    "filter",
    "condition",
    "criteria",
    "requires",
    "triggerCondition",
    "trigger_condition",
}


@dataclass(slots=True)
class TemplateAnalysis:
    node_refs: dict[str, list[str]]


def run_template_pass(document: dict[str, Any]) -> tuple[TemplateAnalysis, list[LoadDiagnostic]]:
    diagnostics: list[LoadDiagnostic] = []
    refs_map: dict[str, list[str]] = {}

    for node in document.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        node_id = node.get("id")
        config = node.get("config")
        if not isinstance(node_id, str) or not node_id or not isinstance(config, dict):
            continue

        refs: set[str] = set()
        for path, text, is_expression in _walk_strings(config, "config"):
            offset = unbalanced_offset(text)
            if offset is not None:
                diagnostics.append(
                    LoadDiagnostic(
                        code="TEMPLATE_UNBALANCED",
                        severity="error",
                        message=f"Unbalanced '{{{{' / '}}}}' at offset {offset}",
                        node_id=node_id,
                        path=path,
                    )
                )
                continue

            sources = [text] if is_expression else template_references(text)
            refs.update(template_references(text))
            for source in sources:
                try:
                    parse(source)
                except ParseError as exc:
                    diagnostics.append(
                        LoadDiagnostic(
                            code="TEMPLATE_EXPRESSION_INVALID",
                            severity="warning",
                            message=f"Expression '{source}' does not parse: {exc}",
                            node_id=node_id,
                            path=path,
                            hint="The node fails closed at evaluation time.",
                        )
                    )

        refs_map[node_id] = sorted(refs)

    return TemplateAnalysis(node_refs=refs_map), diagnostics


def _walk_strings(value: object, path: str, key: str | None = None):
    if isinstance(value, str):
        yield path, value, key in EXPRESSION_KEYS
        return
    if isinstance(value, dict):
        for child_key, item in value.items():
            yield from _walk_strings(item, f"{path}.{child_key}", str(child_key))
        return
    if isinstance(value, list):
        for index, item in enumerate(value):
            # Expression node operands are each a full expression.
            yield from _walk_strings(item, f"{path}[{index}]", "expression" if key == "operands" else key)
