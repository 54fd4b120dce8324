from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from letter_logic.graph.loader.diagnostics import render_diagnostics
from letter_logic.graph.loader.models import LoadDiagnostic, LoadResult
from letter_logic.graph.loader.passes import (
    run_canonicalize_pass,
    run_cfg_pass,
    run_edge_pass,
    run_finalize_pass,
    run_schema_pass,
    run_template_pass,
)
from letter_logic.graph.model import Graph


LOGGER = logging.getLogger(__name__)


class GraphError(ValueError):
    """Raised when a graph document is structurally invalid."""

    def __init__(self, message: str, diagnostics: list[LoadDiagnostic] | None = None) -> None:
        super().__init__(message)
        self.diagnostics = list(diagnostics or [])


class GraphLoader:
    """Validates a graph document through the pass pipeline and freezes it."""

    def load(self, document: Mapping[str, Any]) -> LoadResult:
        if not isinstance(document, Mapping):
            diagnostic = LoadDiagnostic(
                code="SCHEMA_DOCUMENT_INVALID",
                severity="error",
                message="Graph document must be an object",
            )
            return LoadResult(ok=False, diagnostics=[diagnostic])

        diagnostics: list[LoadDiagnostic] = []

        canonical, canonical_diags = run_canonicalize_pass(document)
        diagnostics.extend(canonical_diags)

        schema_diags = run_schema_pass(canonical)
        diagnostics.extend(schema_diags)
        if any(item.severity == "error" for item in schema_diags):
            # Later passes assume well-formed nodes.
            return LoadResult(ok=False, diagnostics=diagnostics)

        diagnostics.extend(run_edge_pass(canonical))

        cfg_analysis, cfg_diags = run_cfg_pass(canonical)
        diagnostics.extend(cfg_diags)

        _, template_diags = run_template_pass(canonical)
        diagnostics.extend(template_diags)

        if any(item.severity == "error" for item in diagnostics):
            return LoadResult(ok=False, diagnostics=diagnostics)

        graph = run_finalize_pass(document=canonical, cfg=cfg_analysis, warnings=diagnostics)
        LOGGER.debug(
            "Loaded graph %s: %d nodes, %d edges, hash=%s",
            graph.graph_id,
            len(graph.nodes),
            len(graph.edges),
            graph.snapshot_hash,
        )
        return LoadResult(ok=True, diagnostics=diagnostics, graph=graph)


def load_graph_document(document: Mapping[str, Any], *, loader: GraphLoader | None = None) -> Graph:
    result = (loader or GraphLoader()).load(document)
    if not result.ok or result.graph is None:
        rendered = render_diagnostics(result.diagnostics)
        raise GraphError(f"Graph validation failed:\n{rendered}", result.diagnostics)
    return result.graph


def load_graph(
    nodes: Iterable[Mapping[str, Any]],
    edges: Iterable[Mapping[str, Any]],
    *,
    entry_id: str | None = None,
    variables: Iterable[Mapping[str, Any]] | None = None,
    graph_id: str | None = None,
) -> Graph:
    document: dict[str, Any] = {
        "id": graph_id or "",
        "nodes": [dict(node) for node in nodes],
        "edges": [dict(edge) for edge in edges],
        "variables": [dict(item) for item in variables or []],
    }
    if entry_id:
        document["entryId"] = entry_id
    return load_graph_document(document)
