"""
External data providers for query, API, push and FHIR nodes.

Providers are ``langchain_core`` tools so they share one invocation surface
(``ainvoke`` with a validated args schema) with any other tool an integrator
already has. The evaluator owns timeouts and retries; providers only fetch.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

import httpx
from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field


LOGGER = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class ExternalCallError(RuntimeError):
    """A provider call failed; ``transient`` errors are worth retrying."""

    def __init__(self, message: str, *, provider: str | None = None, transient: bool = True) -> None:
        super().__init__(message)
        self.provider = provider
        self.transient = transient


class ProviderRequest(BaseModel):
    node_id: str
    node_type: str
    params: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)


class DataProvider(BaseTool):
    """Base class: subclasses implement ``fetch`` and optionally ``afetch``."""

    name: str = "data_provider"
    description: str = "Fetches external data for a letter logic node"
    args_schema: type[BaseModel] = ProviderRequest

    def fetch(self, request: ProviderRequest) -> object:
        raise NotImplementedError

    async def afetch(self, request: ProviderRequest) -> object:
        return await asyncio.to_thread(self.fetch, request)

    def _run(
        self,
        node_id: str,
        node_type: str,
        params: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> object:
        return self.fetch(ProviderRequest(node_id=node_id, node_type=node_type, params=params or {}, context=context or {}))

    async def _arun(
        self,
        node_id: str,
        node_type: str,
        params: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> object:
        return await self.afetch(
            ProviderRequest(node_id=node_id, node_type=node_type, params=params or {}, context=context or {})
        )


class StaticDataProvider(DataProvider):
    """
    Serves canned responses keyed by node id, then node type, then ``"*"``.

    Used for tests, local previews and the CLI's ``--fixtures`` option.
    """

    name: str = "static"
    description: str = "Returns canned data for letter logic nodes"
    responses: dict[str, Any] = Field(default_factory=dict)

    def fetch(self, request: ProviderRequest) -> object:
        for key in (request.node_id, request.node_type, "*"):
            if key in self.responses:
                return copy.deepcopy(self.responses[key])
        raise ExternalCallError(
            f"No canned response for node '{request.node_id}'",
            provider=self.name,
            transient=False,
        )


class HttpDataProvider(DataProvider):
    """
    JSON-over-HTTP provider.

    ``params`` may carry ``method`` (GET or POST) and ``path``; the remaining
    params become the query string for GET or the JSON body for POST.
    """

    name: str = "http"
    description: str = "Fetches JSON data over HTTP"
    base_url: str
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = 5.0
    transport: Any = None

    def fetch(self, request: ProviderRequest) -> object:
        method, path, options = self._request_parts(request)
        try:
            with httpx.Client(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = client.request(method, path, **options)
                return self._decode(response)
        except httpx.HTTPError as exc:
            raise self._wrap(exc) from exc

    async def afetch(self, request: ProviderRequest) -> object:
        method, path, options = self._request_parts(request)
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, **options)
                return self._decode(response)
        except httpx.HTTPError as exc:
            raise self._wrap(exc) from exc

    def _request_parts(self, request: ProviderRequest) -> tuple[str, str, dict[str, Any]]:
        params = dict(request.params)
        method = str(params.pop("method", "GET")).upper()
        path = str(params.pop("path", "") or "")
        if method == "GET":
            return method, path, {"params": {key: str(value) for key, value in params.items()}}
        return method, path, {"json": params}

    def _decode(self, response: httpx.Response) -> object:
        if response.status_code >= 400:
            raise ExternalCallError(
                f"{self.name} returned HTTP {response.status_code} for {response.request.url}",
                provider=self.name,
                transient=response.status_code in TRANSIENT_STATUS_CODES,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalCallError(
                f"{self.name} returned a non-JSON body",
                provider=self.name,
                transient=False,
            ) from exc

    def _wrap(self, exc: httpx.HTTPError) -> ExternalCallError:
        LOGGER.debug("HTTP provider %s failed: %s", self.name, exc)
        return ExternalCallError(f"{self.name} request failed: {exc}", provider=self.name)
