"""Business-rule validation for generated plans."""

from __future__ import annotations

import logging

from subdivision_planner.config import ValidationRules
from subdivision_planner.models import GeneratedPlan, ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_RULES = ValidationRules()


def validate_plan(
    plan: GeneratedPlan,
    input_area: float,
    input_amenity_percent: float,
    rules: ValidationRules = DEFAULT_RULES,
) -> ValidationResult:
    """Apply every rule and collect all errors and warnings.

    Rules are never short-circuited, so callers see every issue at once.
    Errors block approval; warnings never do.
    """

    result = ValidationResult()
    min_area = rules.min_unit_area

    # Rule 1: units below the legal minimum.
    invalid = [unit.number for unit in plan.units if unit.area < min_area]
    result.invalid_units = invalid
    result.viable_units = len(plan.units) - len(invalid)
    if invalid:
        numbers = ", ".join(str(number) for number in invalid)
        result.errors.append(
            f"{len(invalid)} units below {min_area:g} sqm minimum: {numbers}"
        )

    # Rule 2: units just above the minimum.
    marginal = [
        unit.number for unit in plan.units if min_area <= unit.area < rules.warning_unit_area
    ]
    if marginal:
        result.warnings.append(
            f"{len(marginal)} units are close to minimum size "
            f"({min_area:g}-{rules.warning_unit_area:g} sqm). Consider slightly larger units."
        )

    # Rule 3: amenity area against the requested share of the land.
    expected = input_area * input_amenity_percent / 100.0
    if expected > 0:
        actual = plan.amenity_area(rules.amenity_kinds)
        deviation = abs(actual - expected) / expected
        if deviation > rules.amenity_error_tolerance:
            result.errors.append(
                f"Amenity area ({actual:.0f} sqm) deviates significantly from requested "
                f"{input_amenity_percent:g}% ({expected:.0f} sqm)"
            )
        elif deviation > rules.amenity_warning_tolerance:
            result.warnings.append(
                f"Amenity area ({actual:.0f} sqm) is slightly different from requested "
                f"{input_amenity_percent:g}% ({expected:.0f} sqm)"
            )

    # Rule 4: road footprint is advisory only.
    road_limit = input_area * rules.max_road_fraction
    if plan.road_network.total_area > road_limit:
        result.warnings.append(
            f"Road area ({plan.road_network.total_area:.0f} sqm) exceeds "
            f"{rules.max_road_fraction * 100:g}% of land. Consider optimizing road layout."
        )

    # Rule 5: land utilization.
    utilization = plan.metrics.land_utilization_percent
    if utilization < rules.min_utilization_percent:
        result.warnings.append(
            f"Low land utilization ({utilization:.1f}%). "
            "Consider increasing unit count or adjusting layout."
        )

    # Rule 6: the model's own metrics must match its unit list.
    if plan.metrics.total_units != len(plan.units):
        result.errors.append(
            f"Metric inconsistency: totalUnits ({plan.metrics.total_units}) does not match "
            f"unit list length ({len(plan.units)})"
        )
    if plan.metrics.viable_units != result.viable_units:
        result.errors.append(
            f"Metric inconsistency: viableUnits ({plan.metrics.viable_units}) does not match "
            f"actual count ({result.viable_units})"
        )

    logger.debug(
        "Validated plan: %d errors, %d warnings", len(result.errors), len(result.warnings)
    )
    return result


__all__ = ["DEFAULT_RULES", "validate_plan"]
