"""Validation, variation, ranking and lifecycle of generated plans."""

from .lifecycle import PlanLifecycleManager
from .ranking import (
    PlanComparison,
    compare_plans,
    comparison_metrics,
    composite_score,
    estimate_revenue,
    rank_candidates,
)
from .store import CandidateStore, InMemoryCandidateStore
from .validator import DEFAULT_RULES, validate_plan
from .variants import (
    DEFAULT_ASPECT_RATIOS,
    DEFAULT_ROAD_LAYOUTS,
    DEFAULT_STRATEGIES,
    build_variations,
    variant_request,
)

__all__ = [
    "CandidateStore",
    "DEFAULT_ASPECT_RATIOS",
    "DEFAULT_ROAD_LAYOUTS",
    "DEFAULT_RULES",
    "DEFAULT_STRATEGIES",
    "InMemoryCandidateStore",
    "PlanComparison",
    "PlanLifecycleManager",
    "build_variations",
    "compare_plans",
    "comparison_metrics",
    "composite_score",
    "estimate_revenue",
    "rank_candidates",
    "validate_plan",
    "variant_request",
]
