from __future__ import annotations

from collections import Counter, defaultdict
from typing import Any

from letter_logic.graph.loader.models import LoadDiagnostic
from letter_logic.graph.registry import NODE_TYPES


BOOLEAN_LABELS = {"true", "false"}
FALLBACK_LABELS = {"primary", "fallback"}
LOOP_LABELS = {"body", "next"}


def run_edge_pass(document: dict[str, Any]) -> list[LoadDiagnostic]:
    diagnostics: list[LoadDiagnostic] = []
    nodes = document.get("nodes")
    edges = document.get("edges")
    if not isinstance(nodes, list) or not isinstance(edges, list):
        return diagnostics

    node_map: dict[str, dict[str, Any]] = {
        node["id"]: node
        for node in nodes
        if isinstance(node, dict) and isinstance(node.get("id"), str) and node["id"]
    }

    seen_ids: set[str] = set()
    outgoing: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for index, edge in enumerate(edges):
        path = f"edges[{index}]"
        if not isinstance(edge, dict):
            diagnostics.append(
                LoadDiagnostic(code="EDGE_INVALID", severity="error", message="Edge must be an object", path=path)
            )
            continue

        edge_id = str(edge.get("id"))
        if edge_id in seen_ids:
            diagnostics.append(
                LoadDiagnostic(
                    code="EDGE_DUPLICATE_ID",
                    severity="error",
                    message=f"Duplicate edge id '{edge_id}'",
                    path=path,
                )
            )
        seen_ids.add(edge_id)

        source, target = edge.get("source"), edge.get("target")
        dangling = [
            name
            for name, endpoint in (("source", source), ("target", target))
            if not isinstance(endpoint, str) or endpoint not in node_map
        ]
        if dangling:
            diagnostics.append(
                LoadDiagnostic(
                    code="EDGE_DANGLING",
                    severity="error",
                    message=(
                        f"Edge '{edge_id}' references missing {' and '.join(dangling)} "
                        f"('{source}' -> '{target}')"
                    ),
                    path=path,
                    hint="Every edge must connect two existing nodes.",
                )
            )
            continue
        outgoing[str(source)].append(edge)

    for node_id, node in node_map.items():
        type_def = NODE_TYPES.get(str(node.get("type")))
        if type_def is None:
            continue
        diagnostics.extend(_branch_diagnostics(node_id, type_def.branching, node, outgoing.get(node_id, [])))

    return diagnostics


def _branch_diagnostics(
    node_id: str,
    branching: str,
    node: dict[str, Any],
    edges: list[dict[str, Any]],
) -> list[LoadDiagnostic]:
    labels = [edge.get("label") for edge in edges]
    counts = Counter(label for label in labels if label is not None)
    duplicates = sorted(label for label, count in counts.items() if count > 1)

    def _error(code: str, message: str, hint: str | None = None) -> LoadDiagnostic:
        return LoadDiagnostic(code=code, severity="error", message=message, node_id=node_id, hint=hint)

    diagnostics: list[LoadDiagnostic] = []

    if branching == "boolean":
        invalid = sorted({str(label) for label in labels if label not in BOOLEAN_LABELS})
        if invalid:
            diagnostics.append(
                _error(
                    "EDGE_BRANCH_LABEL_INVALID",
                    f"Boolean node edges must be labeled 'true' or 'false', got {invalid}",
                    "Label each outgoing edge Yes/No or true/false.",
                )
            )
        if duplicates:
            diagnostics.append(_error("EDGE_BRANCH_DUPLICATE", f"Duplicate branch labels {duplicates}"))
        if "true" not in counts:
            diagnostics.append(_error("EDGE_BRANCH_MISSING_TRUE", "Boolean node has no 'true' edge"))

    elif branching == "cases":
        if any(label is None for label in labels):
            diagnostics.append(
                _error("EDGE_CASE_UNLABELED", "Every switch edge needs a case label", "Use 'default' for the fallback case.")
            )
        if duplicates:
            diagnostics.append(_error("EDGE_CASE_DUPLICATE", f"Duplicate case labels {duplicates}"))

    elif branching == "channel":
        if any(label is None for label in labels):
            diagnostics.append(
                _error("EDGE_CHANNEL_UNLABELED", "Every channel edge needs a channel label or 'default'")
            )
        if duplicates:
            diagnostics.append(_error("EDGE_CHANNEL_DUPLICATE", f"Duplicate channel labels {duplicates}"))

    elif branching == "fallback":
        invalid = sorted({str(label) for label in labels if label not in FALLBACK_LABELS})
        if invalid:
            diagnostics.append(
                _error("EDGE_FALLBACK_LABEL_INVALID", f"Fallback edges must be 'primary' or 'fallback', got {invalid}")
            )
        if duplicates:
            diagnostics.append(_error("EDGE_FALLBACK_DUPLICATE", f"Duplicate fallback labels {duplicates}"))
        missing = sorted(FALLBACK_LABELS - set(counts))
        if missing:
            diagnostics.append(_error("EDGE_FALLBACK_MISSING", f"Channel fallback node is missing {missing} edge(s)"))

    elif branching == "loop":
        invalid = sorted({str(label) for label in labels if label is not None and label not in LOOP_LABELS})
        if invalid:
            diagnostics.append(
                _error("EDGE_LOOP_LABEL_INVALID", f"Loop edges must be 'body', 'next' or unlabeled, got {invalid}")
            )
        config = node.get("config") if isinstance(node.get("config"), dict) else {}
        if node.get("type") == "loop" and not config.get("template") and "body" not in counts:
            diagnostics.append(
                _error(
                    "EDGE_LOOP_BODY_MISSING",
                    "Loop without a template needs at least one 'body' edge",
                    "Set 'template' or connect the repeated content with a 'body' edge.",
                )
            )

    elif branching == "terminal" and edges:
        diagnostics.append(
            LoadDiagnostic(
                code="EDGE_AFTER_RETURN",
                severity="warning",
                message="Return node has outgoing edges that will never be followed",
                node_id=node_id,
            )
        )

    return diagnostics
