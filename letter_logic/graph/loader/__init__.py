from letter_logic.graph.loader.diagnostics import render_diagnostic, render_diagnostics
from letter_logic.graph.loader.loader import GraphError, GraphLoader, load_graph, load_graph_document
from letter_logic.graph.loader.models import LoadDiagnostic, LoadResult

__all__ = [
    "GraphError",
    "GraphLoader",
    "LoadDiagnostic",
    "LoadResult",
    "load_graph",
    "load_graph_document",
    "render_diagnostic",
    "render_diagnostics",
]
