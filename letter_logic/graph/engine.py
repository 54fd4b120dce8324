from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

from langchain_core.tools import BaseTool

from letter_logic.graph.cancellation import CancellationToken
from letter_logic.graph.compliance import ComplianceRule
from letter_logic.graph.evaluator import GraphEvaluator
from letter_logic.graph.hooks import GraphHookRegistry
from letter_logic.graph.loader import GraphLoader, load_graph_document
from letter_logic.graph.model import Graph
from letter_logic.graph.repository import ContentRepository
from letter_logic.graph.results import EvaluationResult
from letter_logic.settings import EngineSettings


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class EvaluationRequest:
    graph_id: str
    data_context: Mapping[str, Any] = field(default_factory=dict)
    channel: str | None = None
    language: str | None = None
    variation: str | None = None
    cancellation: CancellationToken | None = None
    as_of: date | None = None
    request_id: str | None = None


class GraphSource(Protocol):
    def get(self, graph_id: str) -> Mapping[str, Any]: ...


class InMemoryGraphSource:
    """Graph documents keyed by id; unknown ids raise ``KeyError``."""

    def __init__(self, documents: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._documents: dict[str, Mapping[str, Any]] = dict(documents or {})

    def put(self, graph_id: str, document: Mapping[str, Any]) -> None:
        self._documents[graph_id] = document

    def get(self, graph_id: str) -> Mapping[str, Any]:
        if graph_id not in self._documents:
            raise KeyError(f"Unknown graph '{graph_id}'")
        return self._documents[graph_id]


class GraphCache:
    """
    Loaded graph snapshots with a time-to-live.

    Snapshots are immutable, so one cached ``Graph`` is shared by every
    request until it expires and the source is read again. A TTL of zero
    disables caching.
    """

    def __init__(
        self,
        source: GraphSource,
        ttl_seconds: float = 300.0,
        *,
        loader: GraphLoader | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._ttl = max(0.0, float(ttl_seconds))
        self._loader = loader or GraphLoader()
        self._clock = clock
        self._entries: dict[str, tuple[float, Graph]] = {}
        self._lock = threading.Lock()

    def get(self, graph_id: str) -> Graph:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(graph_id)
            if entry is not None and now - entry[0] < self._ttl:
                return entry[1]

        graph = load_graph_document(self._with_id(graph_id, self._source.get(graph_id)), loader=self._loader)
        if self._ttl > 0:
            with self._lock:
                self._entries[graph_id] = (now, graph)
        LOGGER.debug("Loaded graph %s into cache (hash=%s)", graph_id, graph.snapshot_hash)
        return graph

    def invalidate(self, graph_id: str | None = None) -> None:
        with self._lock:
            if graph_id is None:
                self._entries.clear()
            else:
                self._entries.pop(graph_id, None)

    def _with_id(self, graph_id: str, document: Mapping[str, Any]) -> Mapping[str, Any]:
        if document.get("id") or document.get("graphId"):
            return document
        return {**document, "id": graph_id}


class LetterEngine:
    """Entry point for generation requests: graph lookup, evaluation and rendering."""

    def __init__(
        self,
        graph_source: GraphSource,
        content_repository: ContentRepository | None = None,
        providers: Mapping[str, BaseTool] | Iterable[BaseTool] | None = None,
        settings: EngineSettings | None = None,
        *,
        hook_registry: GraphHookRegistry | None = None,
        global_rules: Iterable[ComplianceRule] = (),
    ) -> None:
        self._settings = settings or EngineSettings()
        self._cache = GraphCache(graph_source, self._settings.graph_cache_ttl_seconds)
        self._evaluator = GraphEvaluator(
            content_repository=content_repository,
            providers=providers,
            settings=self._settings,
            hook_registry=hook_registry,
            global_rules=global_rules,
        )

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def cache(self) -> GraphCache:
        return self._cache

    @property
    def hooks(self) -> GraphHookRegistry:
        return self._evaluator.hooks

    async def aevaluate(self, request: EvaluationRequest) -> EvaluationResult:
        graph = self._cache.get(request.graph_id)
        LOGGER.debug("Evaluating graph %s for request %s", request.graph_id, request.request_id or "-")
        return await self._evaluator.aevaluate(
            graph,
            request.data_context,
            channel=request.channel,
            language=request.language,
            variation=request.variation,
            cancellation=request.cancellation,
            as_of=request.as_of,
        )

    def evaluate(self, request: EvaluationRequest) -> EvaluationResult:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            raise RuntimeError("LetterEngine.evaluate() cannot be called inside an active event loop. Use await aevaluate().")
        return asyncio.run(self.aevaluate(request))
