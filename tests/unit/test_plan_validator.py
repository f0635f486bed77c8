from __future__ import annotations

import pytest

from subdivision_planner.config import ValidationRules
from subdivision_planner.models import ValidationStatus
from subdivision_planner.planning.validator import validate_plan


def test_clean_plan_has_no_errors_or_warnings(make_plan) -> None:
    result = validate_plan(make_plan(), input_area=1000.0, input_amenity_percent=20.0)

    assert result.errors == []
    assert result.warnings == []
    assert result.is_valid
    assert result.status is ValidationStatus.VALID
    assert result.viable_units == 10


def test_undersized_unit_is_reported_by_number(make_plan) -> None:
    plan = make_plan([85.0] + [95.0] * 9)

    result = validate_plan(plan, 1000.0, 20.0)

    assert result.viable_units == 9
    assert result.invalid_units == [1]
    assert plan.metrics.viable_units == 9
    assert not result.is_valid
    assert any("below 90 sqm minimum: 1" in error for error in result.errors)


def test_units_at_or_above_minimum_produce_no_size_error(make_plan) -> None:
    result = validate_plan(make_plan([90.0, 91.5, 120.0]), 1000.0, 20.0)

    assert result.invalid_units == []
    assert not any("minimum" in error for error in result.errors)


def test_marginal_units_warn_without_blocking(make_plan) -> None:
    result = validate_plan(make_plan([92.0, 94.9, 100.0]), 1000.0, 20.0)

    assert result.is_valid
    assert result.status is ValidationStatus.WARNINGS
    assert any("2 units are close to minimum size" in warning for warning in result.warnings)


@pytest.mark.parametrize("amenity_area", [170.0, 230.0])
def test_amenity_within_fifteen_percent_is_not_an_error(make_plan, amenity_area: float) -> None:
    result = validate_plan(make_plan(amenity_area=amenity_area), 1000.0, 20.0)

    assert result.is_valid
    assert any("slightly different" in warning for warning in result.warnings)


def test_amenity_within_five_percent_passes_silently(make_plan) -> None:
    result = validate_plan(make_plan(amenity_area=205.0), 1000.0, 20.0)

    assert result.warnings == []


def test_amenity_deviation_beyond_tolerance_is_an_error(make_plan) -> None:
    result = validate_plan(make_plan(amenity_area=150.0), 1000.0, 20.0)

    assert not result.is_valid
    assert any("deviates significantly" in error for error in result.errors)


def test_only_configured_amenity_kinds_count(make_plan) -> None:
    parking = {"kind": "parking", "areaSqm": 500.0}
    plan = make_plan(amenity_area=200.0, extra_amenities=[parking])

    assert validate_plan(plan, 1000.0, 20.0).is_valid

    rules = ValidationRules(amenity_kinds=("social-club", "parking"))
    assert not validate_plan(plan, 1000.0, 20.0, rules).is_valid


def test_large_road_area_is_only_a_warning(make_plan) -> None:
    result = validate_plan(make_plan(road_area=300.0), 1000.0, 20.0)

    assert result.is_valid
    assert any("Road area" in warning for warning in result.warnings)


def test_low_utilization_warns(make_plan) -> None:
    result = validate_plan(make_plan(utilization=65.0), 1000.0, 20.0)

    assert result.is_valid
    assert any("Low land utilization" in warning for warning in result.warnings)


def test_miscounted_metrics_are_errors(make_plan) -> None:
    plan = make_plan([100.0] * 4, total_units=5, viable_units=3)

    result = validate_plan(plan, 1000.0, 20.0)

    assert len(result.errors) == 2
    assert "totalUnits (5)" in result.errors[0]
    assert "viableUnits (3)" in result.errors[1]


def test_all_rules_are_evaluated_together(make_plan) -> None:
    plan = make_plan(
        [80.0, 92.0, 100.0],
        amenity_area=100.0,
        road_area=400.0,
        utilization=50.0,
        viable_units=3,
    )

    result = validate_plan(plan, 1000.0, 20.0)

    # Undersized unit, amenity deviation and viable-count mismatch.
    assert len(result.errors) == 3
    # Marginal unit, road area and utilization.
    assert len(result.warnings) == 3
    assert result.is_valid == (len(result.errors) == 0)
