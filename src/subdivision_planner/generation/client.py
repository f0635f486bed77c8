"""Abstract boundary to external generation services."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping

from subdivision_planner.generation.prompts import estimate_cost
from subdivision_planner.models import GenerationRequest, TokenUsage


@dataclass(slots=True)
class GenerationStream:
    """Output of one call: either a chunk iterator or the full text.

    Streaming backends fill ``usage`` once the iterator is exhausted.
    """

    chunks: AsyncIterator[str] | None = None
    text: str | None = None
    usage: TokenUsage = field(default_factory=TokenUsage)

    def __post_init__(self) -> None:
        if (self.chunks is None) == (self.text is None):
            raise ValueError("GenerationStream needs exactly one of chunks or text.")

    @property
    def streaming(self) -> bool:
        return self.chunks is not None


class GenerationClient(abc.ABC):
    """Backend that turns a prompt plus output schema into model text."""

    model: str = "unknown"
    input_cost_per_million: float = 2.0
    output_cost_per_million: float = 12.0

    @abc.abstractmethod
    async def generate(
        self,
        prompt: str,
        schema: Mapping[str, Any],
        *,
        stream: bool = True,
    ) -> GenerationStream:
        """Start a call. Failures surface as :mod:`subdivision_planner.errors` types."""

    def estimate_cost(self, request: GenerationRequest) -> float:
        return estimate_cost(
            request,
            input_cost_per_million=self.input_cost_per_million,
            output_cost_per_million=self.output_cost_per_million,
        )

    def usage_cost(self, usage: TokenUsage) -> float:
        return (
            usage.prompt_tokens / 1_000_000 * self.input_cost_per_million
            + usage.completion_tokens / 1_000_000 * self.output_cost_per_million
        )


__all__ = ["GenerationClient", "GenerationStream"]
