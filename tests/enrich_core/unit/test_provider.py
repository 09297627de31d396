from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

import enrich_core.provider as provider_mod
from enrich_core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
)
from enrich_core.errors import CallCancelledError, MalformedResponseError, UpstreamError
from enrich_core.extraction import ParseResult, parse_entities
from enrich_core.provider import OllamaGenerator, extract_from_content
from enrich_core.segmenter import TextSegmenter
from tests.enrich_core.support.fakes import FakeGenerator, FakeLogger

pytestmark = pytest.mark.asyncio

_BASE_URL = "http://ollama.local:11434"
_GENERATE_URL = f"{_BASE_URL}/api/generate"
_TAGS_URL = f"{_BASE_URL}/api/tags"

_ALICE = "Alice works at Google using Python daily. "
_BOB = "Bob maintains the Postgres database here. "


def _build_generator(
    http_client: httpx.AsyncClient,
    *,
    breaker: CircuitBreaker | None = None,
) -> OllamaGenerator:
    return OllamaGenerator(
        client=http_client,
        base_url=f"{_BASE_URL}/",
        model="llama3",
        timeout_seconds=1.5,
        breaker=breaker,
    )


def _prompt(chunk: str) -> str:
    return f"Extract entities from: {chunk}"


async def test_complete_posts_generate_request(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        method="POST",
        url=_GENERATE_URL,
        json={"model": "llama3", "response": '{"entities": []}', "done": True},
    )

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        text = await generator.complete("hello")

    assert text == '{"entities": []}'
    request = httpx_mock.get_requests()[0]
    assert json.loads(request.content) == {
        "model": "llama3",
        "prompt": "hello",
        "stream": False,
    }
    assert generator.model == "llama3"
    assert generator.breaker.metrics().total_successes == 1


async def test_complete_raises_upstream_error_for_error_status(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_response(
        method="POST", url=_GENERATE_URL, status_code=503, text="loading model"
    )

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        with pytest.raises(UpstreamError) as exc_info:
            await generator.complete("hello")

    error = exc_info.value
    assert str(error) == "ollama returned status 503"
    assert error.http_status == 503
    assert error.response_body == "loading model"
    assert generator.breaker.metrics().consecutive_failures == 1


async def test_complete_wraps_transport_errors(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        with pytest.raises(UpstreamError, match="failed to send request"):
            await generator.complete("hello")

    assert generator.breaker.metrics().total_failures == 1


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("not json", "ollama response is not valid JSON."),
        ("[1, 2]", "ollama response is not a JSON object."),
        ('{"done": true}', "ollama response missing response field."),
    ],
)
async def test_complete_rejects_unusable_payloads(
    httpx_mock: HTTPXMock, content: str, message: str
) -> None:
    httpx_mock.add_response(method="POST", url=_GENERATE_URL, text=content)

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        with pytest.raises(UpstreamError) as exc_info:
            await generator.complete("hello")

    assert str(exc_info.value) == message
    assert exc_info.value.http_status == 200


async def test_complete_trips_breaker_after_repeated_failures(
    httpx_mock: HTTPXMock,
) -> None:
    for _ in range(3):
        httpx_mock.add_response(method="POST", url=_GENERATE_URL, status_code=500)

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        for _ in range(3):
            with pytest.raises(UpstreamError):
                await generator.complete("hello")
        with pytest.raises(CircuitOpenError) as exc_info:
            await generator.complete("hello")

    assert exc_info.value.breaker_name == "ollama"
    assert generator.breaker.state == CircuitState.OPEN
    assert len(httpx_mock.get_requests()) == 3


async def test_complete_uses_injected_breaker(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(method="POST", url=_GENERATE_URL, status_code=500)
    breaker = CircuitBreaker("shared", config=CircuitBreakerConfig(max_failures=1))

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client, breaker=breaker)
        with pytest.raises(UpstreamError):
            await generator.complete("hello")
        with pytest.raises(CircuitOpenError):
            await generator.complete("hello")

    assert generator.breaker is breaker


async def test_complete_honours_preset_stop_event() -> None:
    stop_event = asyncio.Event()
    stop_event.set()

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        with pytest.raises(CallCancelledError):
            await generator.complete("hello", stop_event=stop_event)


async def test_health_probes_tags_without_breaker_bookkeeping(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_response(method="GET", url=_TAGS_URL, json={"models": []})
    httpx_mock.add_response(method="GET", url=_TAGS_URL, status_code=500)

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        await generator.health()
        with pytest.raises(UpstreamError) as exc_info:
            await generator.health()

    assert exc_info.value.http_status == 500
    assert generator.breaker.metrics().total_requests == 0


async def test_health_wraps_transport_errors(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("down"), url=_TAGS_URL)

    async with httpx.AsyncClient() as http_client:
        generator = _build_generator(http_client)
        with pytest.raises(UpstreamError, match="failed to reach ollama"):
            await generator.health()


async def test_extract_from_content_merges_chunks_in_order(
    monkeypatch: pytest.MonkeyPatch, fake_logger: FakeLogger
) -> None:
    monkeypatch.setattr(provider_mod, "_logger", fake_logger)
    generator = FakeGenerator(
        [
            '{"entities":[{"name":"Alice","type":"person","confidence":0.9},'
            '{"name":"X","type":"bogus","confidence":0.9}]}',
            '```json\n{"entities":[{"name":"Postgres","type":"database",'
            '"confidence":0.8}]}\n```',
        ]
    )

    result = await extract_from_content(
        generator,
        _ALICE + _BOB,
        build_prompt=_prompt,
        parse=parse_entities,
        segmenter=TextSegmenter(max_tokens=15, overlap_tokens=0),
    )

    assert generator.prompts == [_prompt(_ALICE), _prompt(_BOB)]
    assert [entity.name for entity in result.valid] == ["Alice", "Postgres"]
    assert [skip.identifying_name for skip in result.skipped] == ["X"]
    assert fake_logger.calls == [
        (
            "info",
            "extraction.content_segmented",
            {"model": "fake-model", "chunks": 2},
        )
    ]


async def test_extract_from_content_returns_empty_result_for_blank_input() -> None:
    generator = FakeGenerator([])

    result = await extract_from_content(
        generator, "   ", build_prompt=_prompt, parse=parse_entities
    )

    assert result == ParseResult()
    assert generator.prompts == []


async def test_extract_from_content_propagates_parse_errors() -> None:
    generator = FakeGenerator(["sorry, I cannot help with that"])

    with pytest.raises(MalformedResponseError):
        await extract_from_content(
            generator, _ALICE, build_prompt=_prompt, parse=parse_entities
        )
