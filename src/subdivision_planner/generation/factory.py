from __future__ import annotations

from subdivision_planner.config import GenerationConfig, LLMConfig
from subdivision_planner.generation.client import GenerationClient
from subdivision_planner.generation.ollama_backend import OllamaGenerationClient
from subdivision_planner.generation.openai_backend import OpenAIGenerationClient
from subdivision_planner.utils.env import load_repo_dotenv


def create_generation_client(
    config: LLMConfig,
    generation: GenerationConfig | None = None,
) -> GenerationClient:
    """Factory resolving the generation backend named in ``config``."""

    load_repo_dotenv()
    backend = config.backend.lower()
    if backend in ("openai", "vllm"):
        # vLLM serves an OpenAI-compatible API, so reuse the OpenAI backend.
        return OpenAIGenerationClient(config.openai, generation)
    if backend == "ollama":
        return OllamaGenerationClient(config.ollama, generation)
    raise ValueError(f"Unsupported LLM backend: {config.backend}. Supported: openai, vllm, ollama")
