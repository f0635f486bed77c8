from __future__ import annotations

import dataclasses
import math

import pytest

from subdivision_planner.config import ValidationRules
from subdivision_planner.generation.prompts import (
    STRATEGIES,
    STRATEGY_GUIDANCE,
    build_prompt,
    estimate_cost,
    estimate_token_count,
    resolve_strategy,
)
from subdivision_planner.models import GenerationRequest, RoadLayout


def _request(**overrides) -> GenerationRequest:
    values = {"land_width": 40.0, "land_length": 25.0, "land_area": 1000.0, "amenity_percent": 20.0}
    values.update(overrides)
    return GenerationRequest(**values)


def test_prompt_is_deterministic() -> None:
    assert build_prompt(_request(), "larger-units") == build_prompt(_request(), "larger-units")


def test_prompt_restates_requirements_for_every_strategy() -> None:
    for strategy in STRATEGIES:
        prompt = build_prompt(_request(), strategy)
        assert "at least 90 sqm" in prompt
        assert "20% of total land area (200 sqm, tolerance +/-15%)" in prompt
        assert "Road width: 6 meters" in prompt
        assert "must not exceed 20% of land" in prompt
        assert "Number lots sequentially starting at 1" in prompt


def test_strategy_only_changes_guidance() -> None:
    maximize = build_prompt(_request(), "maximize-units")
    larger = build_prompt(_request(), "larger-units")

    assert maximize != larger
    assert "MAXIMIZE NUMBER OF LOTS" in maximize
    assert "CREATE LARGER LOTS" in larger
    assert maximize.split("**OPTIMIZATION STRATEGY**")[0] == larger.split("**OPTIMIZATION STRATEGY**")[0]


def test_request_strategy_used_when_argument_missing() -> None:
    request = _request(strategy="varied-amenities")

    assert build_prompt(request) == build_prompt(_request(), "varied-amenities")


def test_unknown_strategy_falls_back_to_balanced() -> None:
    assert resolve_strategy("mystery") == "balanced"
    assert resolve_strategy(None) == "balanced"
    assert build_prompt(_request(), "mystery") == build_prompt(_request(), "balanced")


def test_custom_prompt_replaces_everything() -> None:
    request = _request(custom_prompt="Draw me a plan.")

    assert build_prompt(request, "maximize-units") == "Draw me a plan."


def test_locale_defaults_and_overrides() -> None:
    assert "subdivisions in Dominican Republic" in build_prompt(_request())
    assert "subdivisions in Costa Rica" in build_prompt(_request(locale="Costa Rica"))


def test_variant_guidance_is_included() -> None:
    request = _request(
        target_unit_count=8, road_layout=RoadLayout.LOOP, lot_aspect_ratio=0.85
    )

    prompt = build_prompt(request)

    assert "**VARIANT GUIDANCE**" in prompt
    assert "approximately 8 lots" in prompt
    assert "Preferred road layout: loop" in prompt
    assert "(width / length): 0.85" in prompt
    assert "**VARIANT GUIDANCE**" not in build_prompt(_request())


def test_rules_change_minimum_area_text() -> None:
    prompt = build_prompt(_request(), rules=ValidationRules(min_unit_area=100.0))

    assert "at least 100 sqm" in prompt


def test_every_strategy_has_guidance() -> None:
    assert set(STRATEGIES) == set(STRATEGY_GUIDANCE)
    assert len(STRATEGIES) == 5


def test_token_and_cost_estimates() -> None:
    request = _request()
    expected_tokens = math.ceil(len(build_prompt(request)) / 4) + 2000

    assert estimate_token_count(request) == expected_tokens
    expected_cost = expected_tokens * 0.7 / 1e6 * 2.0 + expected_tokens * 0.3 / 1e6 * 12.0
    assert estimate_cost(request) == pytest.approx(expected_cost)


def test_request_is_immutable_and_validated() -> None:
    request = _request()

    with pytest.raises(dataclasses.FrozenInstanceError):
        request.land_area = 5.0  # type: ignore[misc]
    with pytest.raises(ValueError):
        _request(amenity_percent=120.0)
    with pytest.raises(ValueError):
        _request(land_width=0.0)
