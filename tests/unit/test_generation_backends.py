from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from subdivision_planner.config import LLMConfig, OpenAIConfig
from subdivision_planner.errors import FatalCallFailure, TransientCallFailure
from subdivision_planner.generation.client import GenerationStream
from subdivision_planner.generation.factory import create_generation_client
from subdivision_planner.generation.ollama_backend import OllamaGenerationClient
from subdivision_planner.generation.openai_backend import OpenAIGenerationClient
from subdivision_planner.generation.prompts import PLAN_SCHEMA
from subdivision_planner.generation.stream import StreamAccumulator
from subdivision_planner.models import GenerationRequest


async def _drain(stream: GenerationStream) -> str:
    raw = await StreamAccumulator().consume(stream.chunks, usage=stream.usage)
    return raw.text


# --------------------------------------------------------------------------- #
# Ollama                                                                      #
# --------------------------------------------------------------------------- #


def test_ollama_streams_ndjson_and_reports_usage() -> None:
    seen: dict[str, Any] = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["payload"] = json.loads(request.content)
        lines = [
            {"response": '{"a":', "done": False},
            {"response": " 1}", "done": False},
            {"response": "", "done": True, "prompt_eval_count": 11, "eval_count": 7},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"
        return httpx.Response(200, text=body)

    client = OllamaGenerationClient(transport=httpx.MockTransport(_handler))

    async def _run():
        stream = await client.generate("prompt", PLAN_SCHEMA)
        return await _drain(stream), stream.usage

    text, usage = asyncio.run(_run())

    assert text == '{"a": 1}'
    assert usage.prompt_tokens == 11
    assert usage.completion_tokens == 7
    assert seen["url"] == "http://localhost:11434/api/generate"
    assert seen["payload"]["format"] == PLAN_SCHEMA
    assert seen["payload"]["stream"] is True


def test_ollama_blocking_request() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"response": "{}", "prompt_eval_count": 3, "eval_count": 2})

    client = OllamaGenerationClient(transport=httpx.MockTransport(_handler))

    stream = asyncio.run(client.generate("prompt", PLAN_SCHEMA, stream=False))

    assert stream.text == "{}"
    assert stream.usage.total_tokens == 5
    assert client.estimate_cost(
        GenerationRequest(land_width=10, land_length=10, land_area=100, amenity_percent=10)
    ) == 0.0


@pytest.mark.parametrize(
    ("status", "error_type"),
    [(503, TransientCallFailure), (429, TransientCallFailure), (404, FatalCallFailure)],
)
def test_ollama_http_errors_are_classified(status: int, error_type: type) -> None:
    client = OllamaGenerationClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(status, text="nope"))
    )

    async def _run() -> None:
        stream = await client.generate("prompt", PLAN_SCHEMA)
        await _drain(stream)

    with pytest.raises(error_type) as excinfo:
        asyncio.run(_run())
    assert excinfo.value.status_code == status


def test_ollama_connection_failure_is_transient() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = OllamaGenerationClient(transport=httpx.MockTransport(_handler))

    with pytest.raises(TransientCallFailure):
        asyncio.run(client.generate("prompt", PLAN_SCHEMA, stream=False))


# --------------------------------------------------------------------------- #
# OpenAI                                                                      #
# --------------------------------------------------------------------------- #


class _StubStream:
    def __init__(self, chunks: list[Any]) -> None:
        self._chunks = chunks

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk


def _chunk(content: str | None = None, usage: Any = None) -> SimpleNamespace:
    choices = [] if content is None else [SimpleNamespace(delta=SimpleNamespace(content=content))]
    return SimpleNamespace(choices=choices, usage=usage)


class _StubCompletions:
    def __init__(self, result: Any) -> None:
        self.result = result
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


def _openai_client(result: Any) -> tuple[OpenAIGenerationClient, _StubCompletions]:
    completions = _StubCompletions(result)
    sdk = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    client = OpenAIGenerationClient(OpenAIConfig(model="gpt-test"), sdk_client=sdk)  # type: ignore[arg-type]
    return client, completions


def test_openai_streams_deltas_and_final_usage() -> None:
    usage = SimpleNamespace(prompt_tokens=20, completion_tokens=5)
    client, completions = _openai_client(
        _StubStream([_chunk('{"a"'), _chunk(": 2}"), _chunk(usage=usage)])
    )

    async def _run():
        stream = await client.generate("prompt", PLAN_SCHEMA)
        return await _drain(stream), stream.usage

    text, final_usage = asyncio.run(_run())

    assert text == '{"a": 2}'
    assert final_usage.total_tokens == 25
    payload = completions.calls[0]
    assert payload["model"] == "gpt-test"
    assert payload["stream"] is True
    assert payload["stream_options"] == {"include_usage": True}
    assert payload["response_format"]["json_schema"]["schema"] == PLAN_SCHEMA


def test_openai_blocking_response() -> None:
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="{}"))],
        usage=SimpleNamespace(prompt_tokens=4, completion_tokens=1),
    )
    client, completions = _openai_client(response)

    stream = asyncio.run(client.generate("prompt", PLAN_SCHEMA, stream=False))

    assert stream.text == "{}"
    assert stream.usage.total_tokens == 5
    assert "stream" not in completions.calls[0]


def _status_error(status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request, headers={"retry-after": "3"})
    return openai.APIStatusError("failure", response=response, body=None)


def test_openai_status_errors_are_classified() -> None:
    client, _ = _openai_client(_status_error(503))
    with pytest.raises(TransientCallFailure) as excinfo:
        asyncio.run(client.generate("prompt", PLAN_SCHEMA))
    assert excinfo.value.retry_after == 3.0

    client, _ = _openai_client(_status_error(401))
    with pytest.raises(FatalCallFailure) as fatal:
        asyncio.run(client.generate("prompt", PLAN_SCHEMA))
    assert fatal.value.status_code == 401


def test_openai_timeout_is_transient_with_side_effect() -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    client, _ = _openai_client(openai.APITimeoutError(request=request))

    with pytest.raises(TransientCallFailure) as excinfo:
        asyncio.run(client.generate("prompt", PLAN_SCHEMA))

    assert excinfo.value.side_effect


def test_usage_cost_uses_per_million_prices() -> None:
    client, _ = _openai_client(None)

    cost = client.usage_cost(SimpleNamespace(prompt_tokens=1_000_000, completion_tokens=500_000))  # type: ignore[arg-type]

    assert cost == pytest.approx(2.0 + 6.0)


# --------------------------------------------------------------------------- #
# Factory                                                                     #
# --------------------------------------------------------------------------- #


def test_factory_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    assert isinstance(create_generation_client(LLMConfig(backend="ollama")), OllamaGenerationClient)
    assert isinstance(create_generation_client(LLMConfig(backend="openai")), OpenAIGenerationClient)
    with pytest.raises(ValueError, match="Unsupported LLM backend"):
        create_generation_client(LLMConfig(backend="carrier-pigeon"))


def test_openai_requires_key_for_remote_endpoints(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_BASE", raising=False)

    with pytest.raises(ValueError, match="API key required"):
        OpenAIGenerationClient(OpenAIConfig())
