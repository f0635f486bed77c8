"""Ollama backend streaming newline-delimited JSON over httpx."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Mapping

import httpx

from subdivision_planner.config import GenerationConfig, OllamaConfig
from subdivision_planner.errors import FatalCallFailure, GenerationError, TransientCallFailure
from subdivision_planner.generation.client import GenerationClient, GenerationStream
from subdivision_planner.models import TokenUsage

logger = logging.getLogger(__name__)


class OllamaGenerationClient(GenerationClient):
    """Local model served by Ollama's ``/api/generate`` endpoint."""

    input_cost_per_million = 0.0
    output_cost_per_million = 0.0

    def __init__(
        self,
        config: OllamaConfig | None = None,
        generation: GenerationConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = config or OllamaConfig()
        self._generation = generation or GenerationConfig()
        self.model = config.model
        self._endpoint = f"{config.base_url.rstrip('/')}/api/generate"
        self._timeout = config.client_timeout
        self._transport = transport

    def _session(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _payload(self, prompt: str, schema: Mapping[str, Any], stream: bool) -> dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": stream,
            "format": dict(schema),
            "keep_alive": -1,  # Keep model loaded between variants
            "options": {
                "temperature": self._generation.temperature,
                "num_predict": self._generation.max_output_tokens,
            },
        }

    async def generate(
        self,
        prompt: str,
        schema: Mapping[str, Any],
        *,
        stream: bool = True,
    ) -> GenerationStream:
        payload = self._payload(prompt, schema, stream)
        if stream:
            usage = TokenUsage()
            return GenerationStream(chunks=self._stream(payload, usage), usage=usage)
        logger.info("Starting Ollama request (%s); cold starts can take minutes", self.model)
        try:
            async with self._session() as session:
                response = await session.post(self._endpoint, json=payload)
                _raise_for_status(response.status_code, response.text)
                data = response.json()
        except httpx.HTTPError as exc:
            raise _translate_error(exc, side_effect=False) from exc
        return GenerationStream(text=data.get("response", ""), usage=_usage_from(data))

    async def _stream(self, payload: dict[str, Any], usage: TokenUsage) -> AsyncIterator[str]:
        received = False
        try:
            async with self._session() as session:
                async with session.stream("POST", self._endpoint, json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        _raise_for_status(response.status_code, body)
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        event = json.loads(line)
                        if event.get("error"):
                            raise TransientCallFailure(
                                f"Ollama stream error: {event['error']}",
                                side_effect=received,
                            )
                        text = event.get("response", "")
                        if text:
                            received = True
                            yield text
                        if event.get("done"):
                            final = _usage_from(event)
                            usage.prompt_tokens = final.prompt_tokens
                            usage.completion_tokens = final.completion_tokens
                            break
        except httpx.HTTPError as exc:
            raise _translate_error(exc, side_effect=received) from exc
        except json.JSONDecodeError as exc:
            raise TransientCallFailure(
                f"Unreadable Ollama stream event: {exc.msg}", side_effect=True
            ) from exc


def _usage_from(data: Mapping[str, Any]) -> TokenUsage:
    return TokenUsage(
        prompt_tokens=int(data.get("prompt_eval_count", 0) or 0),
        completion_tokens=int(data.get("eval_count", 0) or 0),
    )


def _raise_for_status(status: int, body: str) -> None:
    if status < 400:
        return
    logger.error("Ollama request failed with HTTP %d: %s", status, body[:200])
    if status in (408, 429) or status >= 500:
        raise TransientCallFailure(f"HTTP {status}: {body[:200]}", status_code=status)
    raise FatalCallFailure(f"HTTP {status}: {body[:200]}", status_code=status)


def _translate_error(exc: httpx.HTTPError, *, side_effect: bool) -> GenerationError:
    if isinstance(exc, httpx.TimeoutException):
        return TransientCallFailure(f"Ollama request timed out: {exc}", side_effect=True)
    return TransientCallFailure(f"HTTP error: {exc}", side_effect=side_effect)


__all__ = ["OllamaGenerationClient"]
