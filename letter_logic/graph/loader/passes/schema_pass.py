from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from letter_logic.graph.context import VariableDefinition
from letter_logic.graph.loader.models import LoadDiagnostic
from letter_logic.graph.registry import NODE_TYPES, config_errors


def run_schema_pass(document: dict[str, Any]) -> list[LoadDiagnostic]:
    diagnostics: list[LoadDiagnostic] = []

    nodes = document.get("nodes")
    if not isinstance(nodes, list) or not nodes:
        diagnostics.append(
            LoadDiagnostic(
                code="SCHEMA_NO_NODES",
                severity="error",
                message="Graph document must contain a non-empty 'nodes' list",
                path="nodes",
            )
        )
        return diagnostics

    if not isinstance(document.get("edges"), list):
        diagnostics.append(
            LoadDiagnostic(
                code="SCHEMA_EDGES_INVALID",
                severity="error",
                message="'edges' must be a list",
                path="edges",
            )
        )

    seen: set[str] = set()
    for index, node in enumerate(nodes):
        path = f"nodes[{index}]"
        if not isinstance(node, dict):
            diagnostics.append(
                LoadDiagnostic(code="SCHEMA_NODE_INVALID", severity="error", message="Node must be an object", path=path)
            )
            continue

        node_id = node.get("id")
        if not isinstance(node_id, str) or not node_id.strip():
            diagnostics.append(
                LoadDiagnostic(
                    code="SCHEMA_NODE_ID_MISSING",
                    severity="error",
                    message="Node id must be a non-empty string",
                    path=f"{path}.id",
                )
            )
            continue
        if node_id in seen:
            diagnostics.append(
                LoadDiagnostic(
                    code="SCHEMA_DUPLICATE_NODE_ID",
                    severity="error",
                    message=f"Duplicate node id '{node_id}'",
                    node_id=node_id,
                    path=path,
                )
            )
            continue
        seen.add(node_id)

        node_type = node.get("type")
        if node_type not in NODE_TYPES:
            diagnostics.append(
                LoadDiagnostic(
                    code="SCHEMA_UNKNOWN_NODE_TYPE",
                    severity="error",
                    message=f"Unknown node type '{node_type}'",
                    node_id=node_id,
                    path=f"{path}.type",
                    hint="Use a registered node type or one of its editor aliases.",
                )
            )
            continue

        config = node.get("config")
        if not isinstance(config, dict):
            diagnostics.append(
                LoadDiagnostic(
                    code="SCHEMA_CONFIG_INVALID",
                    severity="error",
                    message="Node config must be an object",
                    node_id=node_id,
                    path=f"{path}.config",
                )
            )
            continue

        for error in config_errors(str(node_type), config):
            diagnostics.append(
                LoadDiagnostic(
                    code="SCHEMA_CONFIG_INVALID",
                    severity="error",
                    message=error,
                    node_id=node_id,
                    path=f"{path}.config",
                    hint=f"Check the '{node_type}' node configuration.",
                )
            )

    diagnostics.extend(_variable_diagnostics(document.get("variables")))
    return diagnostics


def _variable_diagnostics(variables: object) -> list[LoadDiagnostic]:
    diagnostics: list[LoadDiagnostic] = []
    if not isinstance(variables, list):
        diagnostics.append(
            LoadDiagnostic(
                code="SCHEMA_VARIABLES_INVALID",
                severity="error",
                message="'variables' must be a list",
                path="variables",
            )
        )
        return diagnostics

    for index, raw in enumerate(variables):
        try:
            VariableDefinition.model_validate(raw)
        except ValidationError as exc:
            diagnostics.append(
                LoadDiagnostic(
                    code="SCHEMA_VARIABLE_INVALID",
                    severity="error",
                    message=f"Invalid variable definition: {exc.errors()[0]['msg']}",
                    path=f"variables[{index}]",
                )
            )
    return diagnostics
