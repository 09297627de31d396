from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Protocol, TypeVar

import httpx
import structlog

from enrich_core.circuit_breaker import CircuitBreaker
from enrich_core.errors import UpstreamError
from enrich_core.extraction import ParseResult
from enrich_core.logging import log_info
from enrich_core.segmenter import TextSegmenter

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "phi3:mini"
DEFAULT_OLLAMA_TIMEOUT_SECONDS = 5.0
DEFAULT_HEALTH_TIMEOUT_SECONDS = 2.0

ItemT = TypeVar("ItemT")

_logger = structlog.get_logger(__name__)


class TextGenerator(Protocol):
    """Single-prompt text completion provider."""

    @property
    def model(self) -> str:
        """Return the model identifier used for completions."""

    async def complete(
        self, prompt: str, *, stop_event: asyncio.Event | None = None
    ) -> str:
        """Return the provider's completion text for ``prompt``."""


class OllamaGenerator:
    """Ollama ``/api/generate`` client guarded by a circuit breaker."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        model: str = DEFAULT_OLLAMA_MODEL,
        timeout_seconds: float = DEFAULT_OLLAMA_TIMEOUT_SECONDS,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        """Create a generator bound to one Ollama endpoint.

        Args:
            client: Shared async HTTP client.
            base_url: Ollama API base URL.
            model: Model name sent with each request.
            timeout_seconds: Per-request HTTP timeout.
            breaker: Breaker guarding completions. Defaults to a new breaker
                owned by this generator.
        """
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._breaker = CircuitBreaker("ollama") if breaker is None else breaker

    @property
    def model(self) -> str:
        return self._model

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def complete(
        self, prompt: str, *, stop_event: asyncio.Event | None = None
    ) -> str:
        """Complete ``prompt`` through the breaker.

        Raises:
            CircuitOpenError: When the breaker rejects the call.
            CallCancelledError: When ``stop_event`` interrupts the call.
            UpstreamError: When Ollama fails or returns an unusable payload.
        """

        async def _generate() -> str:
            return await self._generate_once(prompt)

        return await self._breaker.execute(_generate, stop_event=stop_event)

    async def health(
        self,
        *,
        stop_event: asyncio.Event | None = None,
        timeout_seconds: float = DEFAULT_HEALTH_TIMEOUT_SECONDS,
    ) -> None:
        """Probe ``/api/tags`` without touching breaker counters."""
        await self._breaker.health_check(
            self._list_models,
            stop_event=stop_event,
            timeout=timeout_seconds,
        )

    async def _generate_once(self, prompt: str) -> str:
        body = {"model": self._model, "prompt": prompt, "stream": False}
        try:
            response = await self._client.post(
                f"{self._base_url}/api/generate",
                json=body,
                timeout=self._timeout_seconds,
            )
        except httpx.RequestError as exc:
            raise UpstreamError(f"failed to send request: {exc}") from exc

        self._raise_for_status(response)
        payload = self._parse_json_object(response)
        text = payload.get("response")
        if not isinstance(text, str):
            raise UpstreamError(
                "ollama response missing response field.",
                http_status=response.status_code,
                response_body=response.text,
            )
        return text

    async def _list_models(self) -> None:
        try:
            response = await self._client.get(
                f"{self._base_url}/api/tags",
                timeout=self._timeout_seconds,
            )
        except httpx.RequestError as exc:
            raise UpstreamError(f"failed to reach ollama: {exc}") from exc
        self._raise_for_status(response)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code != 200:
            raise UpstreamError(
                f"ollama returned status {response.status_code}",
                http_status=response.status_code,
                response_body=response.text,
            )

    @staticmethod
    def _parse_json_object(response: httpx.Response) -> dict[str, object]:
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise UpstreamError(
                "ollama response is not valid JSON.",
                http_status=response.status_code,
                response_body=response.text,
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamError(
                "ollama response is not a JSON object.",
                http_status=response.status_code,
                response_body=response.text,
            )
        return payload


async def extract_from_content(
    generator: TextGenerator,
    content: str,
    *,
    build_prompt: Callable[[str], str],
    parse: Callable[[str], ParseResult[ItemT]],
    segmenter: TextSegmenter | None = None,
    stop_event: asyncio.Event | None = None,
) -> ParseResult[ItemT]:
    """Run segment -> complete -> parse over ``content`` and merge the results.

    Chunks are processed in order. Valid items and skip entries are
    concatenated in chunk order. Any error aborts the whole call; there is no
    retry.
    """
    resolved_segmenter = TextSegmenter() if segmenter is None else segmenter
    chunks = resolved_segmenter.segment(content)
    log_info(
        _logger,
        "extraction.content_segmented",
        model=generator.model,
        chunks=len(chunks),
    )

    merged: ParseResult[ItemT] = ParseResult()
    for chunk in chunks:
        raw = await generator.complete(build_prompt(chunk), stop_event=stop_event)
        merged = merged + parse(raw)
    return merged
