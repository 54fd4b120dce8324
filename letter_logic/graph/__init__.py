from letter_logic.graph.batch import BatchItem, BatchRunner
from letter_logic.graph.cancellation import Cancelled, CancellationToken
from letter_logic.graph.compliance import ComplianceChecker, ComplianceReport, ComplianceRule, build_report
from letter_logic.graph.context import VariableContext, VariableDefinition
from letter_logic.graph.engine import (
    EvaluationRequest,
    GraphCache,
    GraphSource,
    InMemoryGraphSource,
    LetterEngine,
)
from letter_logic.graph.error_handler import ErrorHandler, ErrorHandlingDecision
from letter_logic.graph.evaluator import GraphEvaluator
from letter_logic.graph.healthcare_rules import HEALTHCARE_RULES
from letter_logic.graph.hooks import HOOK_EVENTS, GraphHookRegistry, HookInvocation
from letter_logic.graph.loader import (
    GraphError,
    GraphLoader,
    LoadDiagnostic,
    LoadResult,
    load_graph,
    load_graph_document,
    render_diagnostics,
)
from letter_logic.graph.model import Edge, Graph, Node
from letter_logic.graph.providers import (
    DataProvider,
    ExternalCallError,
    HttpDataProvider,
    ProviderRequest,
    StaticDataProvider,
)
from letter_logic.graph.renderer import Renderer, RenderOutput
from letter_logic.graph.repository import (
    ContentItem,
    ContentNotFound,
    ContentRepository,
    InMemoryContentRepository,
)
from letter_logic.graph.results import EvaluationResult, ReviewFlag, Violation

__all__ = [
    "BatchItem",
    "BatchRunner",
    "Cancelled",
    "CancellationToken",
    "ComplianceChecker",
    "ComplianceReport",
    "ComplianceRule",
    "ContentItem",
    "ContentNotFound",
    "ContentRepository",
    "DataProvider",
    "Edge",
    "ErrorHandler",
    "ErrorHandlingDecision",
    "EvaluationRequest",
    "EvaluationResult",
    "ExternalCallError",
    "Graph",
    "GraphCache",
    "GraphError",
    "GraphEvaluator",
    "GraphHookRegistry",
    "GraphLoader",
    "GraphSource",
    "HEALTHCARE_RULES",
    "HOOK_EVENTS",
    "HookInvocation",
    "HttpDataProvider",
    "InMemoryContentRepository",
    "InMemoryGraphSource",
    "LetterEngine",
    "LoadDiagnostic",
    "LoadResult",
    "Node",
    "ProviderRequest",
    "RenderOutput",
    "Renderer",
    "ReviewFlag",
    "StaticDataProvider",
    "VariableContext",
    "VariableDefinition",
    "Violation",
    "build_report",
    "load_graph",
    "load_graph_document",
    "render_diagnostics",
]
