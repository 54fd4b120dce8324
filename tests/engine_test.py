from __future__ import annotations

import asyncio
import unittest
from typing import Any

from pydantic import Field

from letter_logic.graph import (
    BatchRunner,
    DataProvider,
    EvaluationRequest,
    GraphCache,
    InMemoryContentRepository,
    InMemoryGraphSource,
    LetterEngine,
    ProviderRequest,
)
from letter_logic.settings import EngineSettings


GREETING_GRAPH = {
    "nodes": [
        {"id": "start", "type": "start"},
        {"id": "greet", "type": "dynamic_text", "config": {"text": "Dear {{member.name}},"}},
        {"id": "footer", "type": "block", "config": {"blockId": "footer"}},
    ],
    "edges": [{"source": "start", "target": "greet"}, {"source": "greet", "target": "footer"}],
}

FETCHING_GRAPH = {
    "id": "fetching",
    "nodes": [
        {"id": "start", "type": "start"},
        {"id": "fetch", "type": "query", "config": {"provider": "gate", "namespace": "gate"}},
        {"id": "out", "type": "dynamic_text", "config": {"text": "{{member.name}}"}},
    ],
    "edges": [{"source": "start", "target": "fetch"}, {"source": "fetch", "target": "out"}],
}


class _CountingSource(InMemoryGraphSource):
    def __init__(self, documents: dict[str, Any]) -> None:
        super().__init__(documents)
        self.reads = 0

    def get(self, graph_id: str):
        self.reads += 1
        return super().get(graph_id)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _GateProvider(DataProvider):
    """Tracks how many fetches are in flight at once."""

    name: str = "gate"
    counters: dict[str, int] = Field(default_factory=lambda: {"active": 0, "peak": 0})

    async def afetch(self, request: ProviderRequest) -> object:
        self.counters["active"] += 1
        self.counters["peak"] = max(self.counters["peak"], self.counters["active"])
        await asyncio.sleep(0.01)
        self.counters["active"] -= 1
        return {"ok": True}


class GraphCacheTests(unittest.TestCase):
    def test_snapshots_are_shared_until_the_ttl_expires(self) -> None:
        source = _CountingSource({"greeting": GREETING_GRAPH})
        clock = _FakeClock()
        cache = GraphCache(source, ttl_seconds=60, clock=clock)

        first = cache.get("greeting")
        self.assertIs(cache.get("greeting"), first)
        self.assertEqual(source.reads, 1)
        self.assertEqual(first.graph_id, "greeting")

        clock.now += 61
        reloaded = cache.get("greeting")
        self.assertIsNot(reloaded, first)
        self.assertEqual(reloaded.snapshot_hash, first.snapshot_hash)
        self.assertEqual(source.reads, 2)

    def test_invalidate_and_zero_ttl(self) -> None:
        source = _CountingSource({"greeting": GREETING_GRAPH})
        cache = GraphCache(source, ttl_seconds=300)
        cache.get("greeting")
        cache.invalidate("greeting")
        cache.get("greeting")
        cache.invalidate()
        cache.get("greeting")
        self.assertEqual(source.reads, 3)

        uncached = GraphCache(source, ttl_seconds=0)
        uncached.get("greeting")
        uncached.get("greeting")
        self.assertEqual(source.reads, 5)

    def test_unknown_graph(self) -> None:
        cache = GraphCache(InMemoryGraphSource())
        with self.assertRaises(KeyError):
            cache.get("missing")


class LetterEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.source = InMemoryGraphSource({"greeting": GREETING_GRAPH})
        self.repository = InMemoryContentRepository(
            blocks=[
                {"id": "footer", "content": "Sincerely, Member Services"},
                {"id": "footer", "content": "Atentamente, Servicios al Miembro", "language": "es"},
            ]
        )
        self.engine = LetterEngine(
            self.source,
            self.repository,
            settings=EngineSettings(render_format="text"),
        )

    def test_evaluate_request(self) -> None:
        result = self.engine.evaluate(
            EvaluationRequest(graph_id="greeting", data_context={"member": {"name": "Ana"}}, language="es")
        )
        self.assertEqual(result.rendered_content, "Dear Ana,\nAtentamente, Servicios al Miembro")
        self.assertEqual(result.language, "es")
        self.assertEqual(result.snapshot_hash, self.engine.cache.get("greeting").snapshot_hash)

    def test_updated_source_is_seen_after_invalidate(self) -> None:
        self.engine.evaluate(EvaluationRequest(graph_id="greeting"))
        changed = {
            **GREETING_GRAPH,
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "greet", "type": "dynamic_text", "config": {"text": "Hello {{member.name}}"}},
                {"id": "footer", "type": "block", "config": {"blockId": "footer"}},
            ],
        }
        self.source.put("greeting", changed)
        self.engine.cache.invalidate("greeting")
        result = self.engine.evaluate(EvaluationRequest(graph_id="greeting", data_context={"member": {"name": "Ben"}}))
        self.assertTrue(result.rendered_content.startswith("Hello Ben"))

    def test_hooks_are_shared_with_the_evaluator(self) -> None:
        events: list[str] = []
        self.engine.hooks.register("after_run", lambda payload: events.append(payload["outcome"]))
        self.engine.evaluate(EvaluationRequest(graph_id="greeting", data_context={"member": {"name": "Ana"}}))
        self.assertEqual(events, ["clean"])


class BatchRunnerTests(unittest.TestCase):
    def test_failures_are_isolated_and_order_is_kept(self) -> None:
        source = InMemoryGraphSource(
            {
                "greeting": GREETING_GRAPH,
                "broken": {"nodes": [{"id": "start", "type": "start"}], "edges": [{"source": "start", "target": "nowhere"}]},
            }
        )
        engine = LetterEngine(source, settings=EngineSettings(render_format="text"))
        requests = [
            EvaluationRequest(graph_id="greeting", data_context={"member": {"name": "Ana"}}, request_id="1"),
            EvaluationRequest(graph_id="missing", request_id="2"),
            EvaluationRequest(graph_id="broken", request_id="3"),
            EvaluationRequest(graph_id="greeting", data_context={"member": {"name": "Ben"}}, request_id="4"),
        ]
        items = BatchRunner(engine).run(requests)

        self.assertEqual([item.request.request_id for item in items], ["1", "2", "3", "4"])
        self.assertEqual([item.ok for item in items], [True, False, False, True])
        self.assertTrue(items[0].result.rendered_content.startswith("Dear Ana,"))
        self.assertTrue(items[3].result.rendered_content.startswith("Dear Ben,"))
        self.assertTrue(items[1].error.startswith("KeyError"))
        self.assertIn("Unknown graph 'missing'", items[1].error)
        self.assertTrue(items[2].error.startswith("GraphError"))

    def test_concurrency_is_bounded(self) -> None:
        provider = _GateProvider()
        engine = LetterEngine(
            InMemoryGraphSource({"fetching": FETCHING_GRAPH}),
            providers=[provider],
            settings=EngineSettings(render_format="text"),
        )
        requests = [
            EvaluationRequest(graph_id="fetching", data_context={"member": {"name": f"M{index}"}})
            for index in range(6)
        ]
        items = BatchRunner(engine, max_workers=2).run(requests)

        self.assertTrue(all(item.ok for item in items))
        self.assertEqual([item.result.rendered_content for item in items], [f"M{index}" for index in range(6)])
        self.assertEqual(provider.counters["peak"], 2)
        self.assertEqual(provider.counters["active"], 0)


if __name__ == "__main__":
    unittest.main()
