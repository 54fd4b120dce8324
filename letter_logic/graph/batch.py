from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from letter_logic.graph.engine import EvaluationRequest, LetterEngine
from letter_logic.graph.results import EvaluationResult


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchItem:
    request: EvaluationRequest
    result: EvaluationResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None


class BatchRunner:
    """
    Runs independent generation requests concurrently.

    At most ``max_workers`` evaluations are in flight at once. A request that
    raises (unknown graph, invalid graph) is recorded on its own item; the
    rest of the batch is unaffected.
    """

    def __init__(self, engine: LetterEngine, max_workers: int | None = None) -> None:
        self._engine = engine
        self._max_workers = max(1, int(max_workers or engine.settings.batch_workers))

    async def arun(self, requests: Iterable[EvaluationRequest]) -> list[BatchItem]:
        semaphore = asyncio.Semaphore(self._max_workers)

        async def _one(request: EvaluationRequest) -> BatchItem:
            async with semaphore:
                try:
                    result = await self._engine.aevaluate(request)
                except Exception as exc:  # noqa: BLE001
                    LOGGER.warning(
                        "Batch request %s for graph %s failed: %s",
                        request.request_id or "-",
                        request.graph_id,
                        exc,
                    )
                    return BatchItem(request=request, error=f"{type(exc).__name__}: {exc}")
                return BatchItem(request=request, result=result)

        return list(await asyncio.gather(*(_one(request) for request in requests)))

    def run(self, requests: Iterable[EvaluationRequest]) -> list[BatchItem]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            raise RuntimeError("BatchRunner.run() cannot be called inside an active event loop. Use await arun().")
        return asyncio.run(self.arun(requests))
