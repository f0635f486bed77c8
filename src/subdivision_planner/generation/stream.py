"""Assembly and decoding of streamed model output."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, AsyncIterable, Callable, Mapping

import jsonschema

from subdivision_planner.errors import MalformedResponse, TruncatedResponse
from subdivision_planner.generation.prompts import PLAN_SCHEMA
from subdivision_planner.models import GeneratedPlan, RawModelResponse, TokenUsage

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]

_DIAGNOSTIC_CHARS = 120


class _StructureScanner:
    """Tracks JSON nesting depth incrementally, ignoring braces inside strings."""

    __slots__ = ("depth", "in_string", "escaped", "opened", "closed_at_top")

    def __init__(self) -> None:
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self.opened = False
        self.closed_at_top = False

    def update(self, chunk: str) -> None:
        for char in chunk:
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif char == "\\":
                    self.escaped = True
                elif char == '"':
                    self.in_string = False
                continue
            if char == '"':
                self.in_string = True
            elif char in "{[":
                self.depth += 1
                self.opened = True
                self.closed_at_top = False
            elif char in "}]":
                self.depth -= 1
                if self.depth == 0:
                    self.closed_at_top = True

    @property
    def balanced(self) -> bool:
        return self.opened and self.depth == 0 and not self.in_string and self.closed_at_top


class StreamAccumulator:
    """Single-consumer assembler for one generation call.

    Chunks are applied strictly in arrival order. The optional progress
    callback receives ``(chunk, accumulated_so_far)`` after each chunk.
    """

    def __init__(
        self,
        on_progress: ProgressCallback | None = None,
        *,
        log_every: int = 5,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._on_progress = on_progress
        self._log_every = max(1, log_every)
        self._clock = clock
        self._buffer = ""
        self._chunks = 0
        self._scanner = _StructureScanner()
        self._started = clock()
        self._first_chunk_ms: float | None = None
        self._finished = False

    @property
    def text(self) -> str:
        return self._buffer

    @property
    def chunk_count(self) -> int:
        return self._chunks

    @property
    def looks_complete(self) -> bool:
        return self._scanner.balanced

    def feed(self, chunk: str) -> None:
        if self._finished:
            raise RuntimeError("Cannot feed a finished StreamAccumulator.")
        if not chunk:
            return
        if self._first_chunk_ms is None:
            self._first_chunk_ms = (self._clock() - self._started) * 1000.0
            logger.info("First chunk received after %.0f ms", self._first_chunk_ms)
        self._buffer += chunk
        self._chunks += 1
        self._scanner.update(chunk)
        if self._chunks % self._log_every == 0:
            logger.debug("Streaming progress: %d chunks, %d chars", self._chunks, len(self._buffer))
        if self._on_progress is not None:
            self._on_progress(chunk, self._buffer)

    async def consume(
        self,
        chunks: AsyncIterable[str],
        *,
        usage: TokenUsage | None = None,
    ) -> RawModelResponse:
        """Drain ``chunks`` in order and return the finished response."""

        async for chunk in chunks:
            self.feed(chunk)
        return self.finish(usage=usage)

    def finish(self, *, usage: TokenUsage | None = None) -> RawModelResponse:
        self._finished = True
        duration_ms = (self._clock() - self._started) * 1000.0
        logger.info(
            "Stream finished: %d chunks, %d chars in %.0f ms",
            self._chunks,
            len(self._buffer),
            duration_ms,
        )
        return RawModelResponse(
            text=self.text,
            usage=usage or TokenUsage(),
            duration_ms=duration_ms,
            chunk_count=self._chunks,
        )


def accumulate_text(
    text: str,
    *,
    usage: TokenUsage | None = None,
    on_progress: ProgressCallback | None = None,
) -> RawModelResponse:
    """Non-streaming mode: the whole response arrives as one chunk."""

    accumulator = StreamAccumulator(on_progress)
    accumulator.feed(text)
    return accumulator.finish(usage=usage)


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    body = stripped[3:]
    if body.lower().startswith("json"):
        body = body[4:]
    if body.rstrip().endswith("```"):
        body = body.rstrip()[:-3]
    return body.strip()


def _diagnostics(text: str) -> dict[str, Any]:
    return {
        "length": len(text),
        "prefix": text[:_DIAGNOSTIC_CHARS],
        "suffix": text[-_DIAGNOSTIC_CHARS:] if len(text) > _DIAGNOSTIC_CHARS else text,
    }


def _looks_complete(body: str) -> bool:
    if not body.endswith("}"):
        return False
    scanner = _StructureScanner()
    scanner.update(body)
    return scanner.balanced


def parse_document(raw: RawModelResponse) -> dict[str, Any]:
    """Decode the accumulated text into an untyped JSON object.

    Raises :class:`TruncatedResponse` when the document was never closed and
    :class:`MalformedResponse` when it is closed but does not decode.
    """

    body = _strip_code_fence(raw.text)
    if not _looks_complete(body):
        details = _diagnostics(raw.text)
        logger.error(
            "Response appears truncated (length=%d, ends=%r)",
            details["length"],
            details["suffix"],
        )
        raise TruncatedResponse("Model response was truncated", **details)
    try:
        document = json.loads(body)
    except json.JSONDecodeError as exc:
        details = _diagnostics(raw.text)
        logger.error("Failed to parse model response: %s (length=%d)", exc, details["length"])
        raise MalformedResponse(f"Invalid JSON: {exc.msg}", **details) from exc
    if not isinstance(document, dict):
        raise MalformedResponse("Top-level JSON value is not an object", **_diagnostics(raw.text))
    return document


def decode_plan(
    raw: RawModelResponse,
    schema: Mapping[str, Any] = PLAN_SCHEMA,
) -> GeneratedPlan:
    """Parse, schema-check and coerce the response into a :class:`GeneratedPlan`."""

    document = parse_document(raw)
    try:
        jsonschema.validate(instance=document, schema=schema)
    except jsonschema.ValidationError as exc:
        logger.warning("Schema validation failed: %s", exc.message)
        raise MalformedResponse(
            f"Plan does not match schema: {exc.message}", **_diagnostics(raw.text)
        ) from exc
    try:
        return GeneratedPlan.from_document(document)
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedResponse(
            f"Plan could not be decoded: {exc.__class__.__name__}: {exc}",
            **_diagnostics(raw.text),
        ) from exc


__all__ = [
    "ProgressCallback",
    "StreamAccumulator",
    "accumulate_text",
    "decode_plan",
    "parse_document",
]
