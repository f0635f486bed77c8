"""Configuration schema for the subdivision planning pipeline."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml


@dataclass(slots=True)
class RateLimitConfig:
    """Request budget for one named service over a rolling window."""

    max_requests: int = 10
    window_seconds: float = 60.0
    daily_quota: int | None = None
    # Wait for a free slot instead of failing fast.
    block: bool = True


def _default_rate_limits() -> dict[str, RateLimitConfig]:
    return {
        "text": RateLimitConfig(max_requests=10, window_seconds=60.0),
        "image": RateLimitConfig(max_requests=5, window_seconds=60.0),
    }


@dataclass(slots=True)
class RetryConfig:
    """Scalar retry settings; turned into a RetryPolicy by the pipeline."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.25
    attempt_timeout: float | None = 120.0
    retry_on_side_effect: bool = True


@dataclass(slots=True)
class GenerationConfig:
    """Sampling configuration for plan generation."""

    temperature: float = 0.2
    max_output_tokens: int = 65_536
    stream: bool = True


@dataclass(slots=True)
class OpenAIConfig:
    """Configuration for the OpenAI-compatible backend."""

    api_key: str | None = None
    org_id: str | None = None
    api_base: str | None = None
    model: str = "gpt-4o-mini"
    client_timeout: float | None = None
    input_cost_per_million: float = 2.0
    output_cost_per_million: float = 12.0


@dataclass(slots=True)
class OllamaConfig:
    """Configuration for the Ollama backend."""

    model: str = "llama3.1:8b"
    base_url: str = "http://localhost:11434"
    client_timeout: float = 1800.0


@dataclass(slots=True)
class LLMConfig:
    backend: str = "openai"  # options: openai, ollama
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)


@dataclass(slots=True)
class ValidationRules:
    """Business rules applied to every generated plan."""

    min_unit_area: float = 90.0
    warning_unit_area: float = 95.0
    amenity_error_tolerance: float = 0.15
    amenity_warning_tolerance: float = 0.05
    max_road_fraction: float = 0.25
    min_utilization_percent: float = 70.0
    # Amenity kinds counted against the requested amenity percentage.
    amenity_kinds: tuple[str, ...] = ("social-club",)


@dataclass(slots=True)
class RankingWeights:
    viable_units: float = 0.4
    utilization: float = 0.3
    road: float = 0.2
    average_area: float = 0.001
    low_utilization_percent: float = 70.0
    high_road_percent: float = 20.0


@dataclass(slots=True)
class PlannerConfig:
    """Aggregated configuration for the planning pipeline."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limits: dict[str, RateLimitConfig] = field(default_factory=_default_rate_limits)
    validation: ValidationRules = field(default_factory=ValidationRules)
    ranking: RankingWeights = field(default_factory=RankingWeights)
    service_name: str = "text"
    fan_out: int = 3
    max_rejection_reason: int = 500
    default_locale: str = "Dominican Republic"


def load_planner_config(path: str | Path) -> PlannerConfig:
    """Read a YAML file and overlay its values onto the defaults."""

    with Path(path).open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config file {path} must contain a mapping at the top level.")
    return planner_config_from_dict(payload)


def planner_config_from_dict(payload: Mapping[str, Any]) -> PlannerConfig:
    config = PlannerConfig()
    rate_limits = payload.get("rate_limits")
    remainder = {key: value for key, value in payload.items() if key != "rate_limits"}
    _overlay(config, remainder, "planner")
    if rate_limits is not None:
        if not isinstance(rate_limits, Mapping):
            raise ValueError("rate_limits must be a mapping of service name to settings.")
        for service, settings in rate_limits.items():
            limit = config.rate_limits.get(service, RateLimitConfig())
            _overlay(limit, settings or {}, f"rate_limits.{service}")
            config.rate_limits[service] = limit
    return config


def _overlay(target: Any, values: Mapping[str, Any], path: str) -> None:
    known = {item.name: item for item in dataclasses.fields(target)}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"Unknown config key '{path}.{key}'.")
        current = getattr(target, key)
        if dataclasses.is_dataclass(current) and isinstance(value, Mapping):
            _overlay(current, value, f"{path}.{key}")
        elif isinstance(current, tuple) and isinstance(value, list):
            setattr(target, key, tuple(value))
        else:
            setattr(target, key, value)


__all__ = [
    "GenerationConfig",
    "LLMConfig",
    "OllamaConfig",
    "OpenAIConfig",
    "PlannerConfig",
    "RankingWeights",
    "RateLimitConfig",
    "RetryConfig",
    "ValidationRules",
    "load_planner_config",
    "planner_config_from_dict",
]
