from __future__ import annotations

from pathlib import Path

import pytest

from subdivision_planner.config import PlannerConfig, load_planner_config, planner_config_from_dict


def test_defaults_match_documented_budgets() -> None:
    config = PlannerConfig()

    assert config.rate_limits["text"].max_requests == 10
    assert config.rate_limits["image"].max_requests == 5
    assert config.retry.max_attempts == 3
    assert config.validation.min_unit_area == 90.0
    assert config.ranking.viable_units == 0.4
    assert config.max_rejection_reason == 500


def test_yaml_overlays_nested_values(tmp_path: Path) -> None:
    path = tmp_path / "planner.yaml"
    path.write_text(
        """
llm:
  backend: ollama
  ollama:
    model: qwen2.5:14b
retry:
  max_attempts: 4
rate_limits:
  text:
    max_requests: 3
  video:
    max_requests: 1
    window_seconds: 30
validation:
  amenity_kinds: [social-club, green-space]
fan_out: 2
""",
        encoding="utf-8",
    )

    config = load_planner_config(path)

    assert config.llm.backend == "ollama"
    assert config.llm.ollama.model == "qwen2.5:14b"
    assert config.llm.openai.model == PlannerConfig().llm.openai.model
    assert config.retry.max_attempts == 4
    assert config.retry.base_delay == 1.0
    assert config.rate_limits["text"].max_requests == 3
    assert config.rate_limits["text"].window_seconds == 60.0
    assert config.rate_limits["video"].window_seconds == 30
    assert config.rate_limits["image"].max_requests == 5
    assert config.validation.amenity_kinds == ("social-club", "green-space")
    assert config.fan_out == 2


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_planner_config(path) == PlannerConfig()


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ValueError, match="planner.retry.max_retries"):
        planner_config_from_dict({"retry": {"max_retries": 2}})
    with pytest.raises(ValueError, match="Unknown config key"):
        planner_config_from_dict({"colour": "blue"})


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_planner_config(path)
