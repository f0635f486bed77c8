"""Multi-criteria scoring and comparison of candidate plans."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from subdivision_planner.config import RankingWeights, ValidationRules
from subdivision_planner.models import (
    Candidate,
    ComparisonMetrics,
    GeneratedPlan,
    Ranking,
    ValidationStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = RankingWeights()


def estimate_revenue(
    plan: GeneratedPlan,
    price_per_area: float,
    *,
    min_unit_area: float = ValidationRules().min_unit_area,
) -> float:
    """Sellable area (viable units only) times the price per square metre."""

    sellable = sum(unit.area for unit in plan.units if unit.area >= min_unit_area)
    return sellable * price_per_area


def comparison_metrics(
    candidate: Candidate,
    input_area: float,
    price_per_area: float | None = None,
    *,
    amenity_kinds: Sequence[str] = ValidationRules().amenity_kinds,
    min_unit_area: float = ValidationRules().min_unit_area,
) -> ComparisonMetrics:
    """Snapshot used for scoring.

    Unit counts and the average area come from the unit list, not from the
    model's metrics block.
    """

    plan = _require_plan(candidate)
    if input_area <= 0:
        raise ValueError("input_area must be positive.")
    return ComparisonMetrics(
        unit_count=len(plan.units),
        viable_units=_viable_count(plan, min_unit_area),
        average_unit_area=_average_area(plan),
        land_utilization_percent=plan.metrics.land_utilization_percent,
        road_area_percent=plan.road_network.total_area / input_area * 100.0,
        amenity_area=plan.amenity_area(amenity_kinds),
        estimated_revenue=(
            estimate_revenue(plan, price_per_area, min_unit_area=min_unit_area)
            if price_per_area is not None
            else None
        ),
    )


def composite_score(metrics: ComparisonMetrics, weights: RankingWeights = DEFAULT_WEIGHTS) -> float:
    return (
        weights.viable_units * metrics.viable_units
        + weights.utilization * metrics.land_utilization_percent
        + weights.road * (100.0 - metrics.road_area_percent)
        + weights.average_area * metrics.average_unit_area
    )


# Each entry: attribute, True when higher is better, highlight text, concern text.
_RELATIVE_CRITERIA = (
    ("viable_units", True, "Maximizes unit count", "Lowest unit count of the alternatives"),
    (
        "land_utilization_percent",
        True,
        "Best land efficiency",
        "Lowest land efficiency of the alternatives",
    ),
    ("road_area_percent", False, "Smallest road footprint", "Largest road footprint"),
    ("average_unit_area", True, "Most generous unit sizes", "Smallest average unit size"),
)


def rank_candidates(
    candidates: Sequence[Candidate],
    input_area: float,
    price_per_area: float | None = None,
    *,
    weights: RankingWeights = DEFAULT_WEIGHTS,
    min_unit_area: float = ValidationRules().min_unit_area,
) -> list[Ranking]:
    """Score and order candidates, best first.

    Ties keep input order (``sorted`` is stable). Highlights and concerns are
    relative to the best and worst values across the whole set.
    """

    ids = [candidate.id for candidate in candidates]
    if len(set(ids)) != len(ids):
        raise ValueError("Candidate ids passed to rank_candidates must be unique.")
    if not candidates:
        return []

    metrics = [
        comparison_metrics(candidate, input_area, price_per_area, min_unit_area=min_unit_area)
        for candidate in candidates
    ]
    bounds = {
        attribute: (
            max(getattr(item, attribute) for item in metrics),
            min(getattr(item, attribute) for item in metrics),
        )
        for attribute, *_ in _RELATIVE_CRITERIA
    }

    rankings = []
    for candidate, item in zip(candidates, metrics):
        highlights: list[str] = []
        concerns: list[str] = []
        for attribute, higher_is_better, highlight, concern in _RELATIVE_CRITERIA:
            value = getattr(item, attribute)
            high, low = bounds[attribute]
            best, worst = (high, low) if higher_is_better else (low, high)
            if value == best:
                highlights.append(highlight)
            elif value == worst:
                concerns.append(concern)
        if item.land_utilization_percent < weights.low_utilization_percent:
            concerns.append("Low land utilization")
        if item.road_area_percent > weights.high_road_percent:
            concerns.append("High road area usage")
        if candidate.validation_status is ValidationStatus.WARNINGS:
            concerns.append("Has validation warnings")
        elif candidate.validation_status is ValidationStatus.INVALID:
            concerns.append("Has validation errors")
        rankings.append(
            Ranking(
                candidate_id=candidate.id,
                rank=0,
                score=composite_score(item, weights),
                metrics=item,
                highlights=highlights,
                concerns=concerns,
            )
        )

    ordered = sorted(rankings, key=lambda ranking: -ranking.score)
    for position, ranking in enumerate(ordered, start=1):
        ranking.rank = position
    logger.debug("Ranked %d candidates; best=%s", len(ordered), ordered[0].candidate_id)
    return ordered


@dataclass(slots=True)
class PlanComparison:
    """Pairwise differences, always expressed as ``b - a``."""

    candidate_a: str
    candidate_b: str
    unit_count_diff: int
    utilization_diff: float
    average_area_diff: float
    revenue_diff: float | None
    recommendation: str  # plan_a | plan_b | similar


def compare_plans(
    a: Candidate,
    b: Candidate,
    price_per_area: float | None = None,
    *,
    min_unit_area: float = ValidationRules().min_unit_area,
) -> PlanComparison:
    plan_a, plan_b = _require_plan(a), _require_plan(b)
    unit_diff = _viable_count(plan_b, min_unit_area) - _viable_count(plan_a, min_unit_area)
    utilization_diff = (
        plan_b.metrics.land_utilization_percent - plan_a.metrics.land_utilization_percent
    )
    revenue_diff = None
    if price_per_area is not None:
        revenue_diff = estimate_revenue(
            plan_b, price_per_area, min_unit_area=min_unit_area
        ) - estimate_revenue(plan_a, price_per_area, min_unit_area=min_unit_area)

    if abs(unit_diff) <= 1 and abs(utilization_diff) <= 2:
        recommendation = "similar"
    elif unit_diff > 0 or (unit_diff == 0 and utilization_diff > 0):
        recommendation = "plan_b"
    else:
        recommendation = "plan_a"

    return PlanComparison(
        candidate_a=a.id,
        candidate_b=b.id,
        unit_count_diff=unit_diff,
        utilization_diff=utilization_diff,
        average_area_diff=_average_area(plan_b) - _average_area(plan_a),
        revenue_diff=revenue_diff,
        recommendation=recommendation,
    )


def _require_plan(candidate: Candidate) -> GeneratedPlan:
    if candidate.plan is None:
        raise ValueError(f"Candidate {candidate.id} has no generated plan to compare.")
    return candidate.plan


def _viable_count(plan: GeneratedPlan, min_unit_area: float) -> int:
    return sum(1 for unit in plan.units if unit.area >= min_unit_area)


def _average_area(plan: GeneratedPlan) -> float:
    if not plan.units:
        return 0.0
    return sum(unit.area for unit in plan.units) / len(plan.units)


__all__ = [
    "PlanComparison",
    "comparison_metrics",
    "compare_plans",
    "composite_score",
    "estimate_revenue",
    "rank_candidates",
]
