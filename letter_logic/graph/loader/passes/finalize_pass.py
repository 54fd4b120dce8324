from __future__ import annotations

import hashlib
import json
from typing import Any

from letter_logic.graph.context import VariableDefinition
from letter_logic.graph.loader.models import LoadDiagnostic
from letter_logic.graph.loader.passes.cfg_pass import CFGAnalysis
from letter_logic.graph.loader.diagnostics import render_diagnostic
from letter_logic.graph.model import Edge, Graph, Node, freeze_mapping
from letter_logic.graph.registry import NODE_TYPES, validate_config


def run_finalize_pass(
    *,
    document: dict[str, Any],
    cfg: CFGAnalysis,
    warnings: list[LoadDiagnostic],
) -> Graph:
    nodes: dict[str, Node] = {}
    for raw in document["nodes"]:
        node_type = str(raw["type"])
        nodes[raw["id"]] = Node(
            id=raw["id"],
            type=node_type,
            config=validate_config(node_type, raw.get("config")),
            branching=NODE_TYPES[node_type].branching,
        )

    edges = tuple(
        Edge(
            id=str(raw["id"]),
            source=str(raw["source"]),
            target=str(raw["target"]),
            label=raw.get("label"),
        )
        for raw in document.get("edges") or []
    )
    outgoing: dict[str, tuple[Edge, ...]] = {
        node_id: tuple(edge for edge in edges if edge.source == node_id) for node_id in nodes
    }

    variables = tuple(VariableDefinition.model_validate(raw) for raw in document.get("variables") or [])

    payload = {
        "entry_id": cfg.entry_id,
        "nodes": document["nodes"],
        "edges": document.get("edges") or [],
        "variables": document.get("variables") or [],
    }
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    snapshot_hash = hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:16]

    return Graph(
        graph_id=str(document.get("id") or snapshot_hash),
        entry_id=str(cfg.entry_id),
        nodes=freeze_mapping(nodes),
        edges=edges,
        outgoing=freeze_mapping(outgoing),
        in_degree=freeze_mapping(cfg.in_degree),
        topology=tuple(cfg.topology),
        variables=variables,
        snapshot_hash=snapshot_hash,
        warnings=tuple(render_diagnostic(item) for item in warnings if item.severity == "warning"),
    )
