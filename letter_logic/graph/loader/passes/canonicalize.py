from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from letter_logic.graph.loader.models import LoadDiagnostic
from letter_logic.graph.registry import UnknownNodeType, resolve_type_name


NODE_PRESENTATION_KEYS = {
    "position",
    "positionAbsolute",
    "width",
    "height",
    "selected",
    "dragging",
    "style",
    "className",
    "icon",
    "color",
    "label",
    "explanation",
    "description",
    "measured",
    "zIndex",
}
EDGE_PRESENTATION_KEYS = {
    "type",
    "animated",
    "style",
    "className",
    "selected",
    "markerEnd",
    "markerStart",
    "data",
    "zIndex",
}
LABEL_ALIASES = {
    "yes": "true",
    "no": "false",
    "true": "true",
    "false": "false",
    "default": "default",
}
ENTRY_KEYS = ("entry_id", "entryId", "start", "entry")


def run_canonicalize_pass(document: Mapping[str, Any]) -> tuple[dict[str, Any], list[LoadDiagnostic]]:
    cloned: dict[str, Any] = copy.deepcopy(dict(document))
    diagnostics: list[LoadDiagnostic] = []

    entry_id = next((cloned[key] for key in ENTRY_KEYS if cloned.get(key)), None)
    for key in ENTRY_KEYS:
        cloned.pop(key, None)
    cloned["entry_id"] = str(entry_id) if entry_id is not None else None
    cloned["id"] = str(cloned.get("id") or cloned.get("graphId") or "")
    cloned.pop("graphId", None)

    nodes = cloned.get("nodes")
    if isinstance(nodes, list):
        cloned["nodes"] = [_canonical_node(node, diagnostics) for node in nodes]

    edges = cloned.get("edges")
    if edges is None:
        cloned["edges"] = []
    elif isinstance(edges, list):
        cloned["edges"] = [_canonical_edge(index, edge, diagnostics) for index, edge in enumerate(edges)]

    variables = cloned.get("variables")
    if variables is None:
        cloned["variables"] = []
    elif isinstance(variables, list):
        cloned["variables"] = [_canonical_variable(item) for item in variables]

    return cloned, diagnostics


def _canonical_variable(variable: object) -> object:
    if not isinstance(variable, dict):
        return variable
    normalized = dict(variable)
    if "default" in normalized and "defaultValue" not in normalized and "default_value" not in normalized:
        normalized["defaultValue"] = normalized.pop("default")
    return normalized


def _canonical_node(node: object, diagnostics: list[LoadDiagnostic]) -> object:
    if not isinstance(node, dict):
        return node

    normalized = {key: value for key, value in node.items() if key not in NODE_PRESENTATION_KEYS}
    node_id = str(normalized.get("id") or "") or None

    if "config" not in normalized and "data" in normalized:
        normalized["config"] = normalized.pop("data")
        diagnostics.append(
            LoadDiagnostic(
                code="CANONICAL_DATA_ALIAS",
                severity="info",
                message="Canonicalized 'data' to 'config'.",
                node_id=node_id,
                path="data",
            )
        )
    config = normalized.get("config")
    if config is None:
        normalized["config"] = {}
    elif isinstance(config, dict):
        normalized["config"] = {key: value for key, value in config.items() if key not in NODE_PRESENTATION_KEYS}

    raw_type = normalized.get("type")
    if isinstance(raw_type, str):
        try:
            canonical = resolve_type_name(raw_type)
        except UnknownNodeType:
            canonical = raw_type
        if canonical != raw_type:
            normalized["type"] = canonical
            diagnostics.append(
                LoadDiagnostic(
                    code="CANONICAL_TYPE_ALIAS",
                    severity="info",
                    message=f"Canonicalized node type '{raw_type}' to '{canonical}'.",
                    node_id=node_id,
                    path="type",
                )
            )

    return normalized


def _canonical_edge(index: int, edge: object, diagnostics: list[LoadDiagnostic]) -> object:
    if not isinstance(edge, dict):
        return edge

    normalized = {key: value for key, value in edge.items() if key not in EDGE_PRESENTATION_KEYS}

    label = normalized.get("label")
    if label is None and isinstance(normalized.get("sourceHandle"), str):
        label = normalized["sourceHandle"]
    normalized.pop("sourceHandle", None)
    normalized.pop("targetHandle", None)
    normalized["label"] = _canonical_label(label)

    if not normalized.get("id"):
        normalized["id"] = f"e{index}:{normalized.get('source')}->{normalized.get('target')}"
        diagnostics.append(
            LoadDiagnostic(
                code="CANONICAL_EDGE_ID",
                severity="info",
                message=f"Assigned id '{normalized['id']}' to edge #{index}.",
                path=f"edges[{index}]",
            )
        )
    else:
        normalized["id"] = str(normalized["id"])

    return normalized


def _canonical_label(label: object) -> str | None:
    if label is None:
        return None
    if isinstance(label, bool):
        return "true" if label else "false"
    text = str(label).strip()
    if not text:
        return None
    return LABEL_ALIASES.get(text.lower(), text)
