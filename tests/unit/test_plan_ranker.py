from __future__ import annotations

import pytest

from subdivision_planner.models import (
    Candidate,
    GenerationRequest,
    GenerationStatus,
    ValidationStatus,
)
from subdivision_planner.planning.ranking import (
    compare_plans,
    comparison_metrics,
    estimate_revenue,
    rank_candidates,
)

_REQUEST = GenerationRequest(land_width=40.0, land_length=25.0, land_area=1000.0, amenity_percent=20.0)


def _candidate(candidate_id: str, plan, status: ValidationStatus = ValidationStatus.VALID) -> Candidate:
    return Candidate(
        id=candidate_id,
        project_id="project-1",
        request=_REQUEST,
        generation_status=GenerationStatus.COMPLETED,
        plan=plan,
        validation_status=status,
    )


@pytest.fixture
def trio(make_plan) -> list[Candidate]:
    return [
        _candidate("a", make_plan([100.0] * 10, utilization=80.0, road_area=150.0)),
        _candidate("b", make_plan([95.0] * 12, utilization=85.0, road_area=100.0)),
        _candidate(
            "c",
            make_plan([120.0] * 8, utilization=70.0, road_area=250.0),
            ValidationStatus.WARNINGS,
        ),
    ]


def test_rank_orders_by_composite_score(trio) -> None:
    rankings = rank_candidates(trio, 1000.0)

    assert [ranking.candidate_id for ranking in rankings] == ["b", "a", "c"]
    assert [ranking.rank for ranking in rankings] == [1, 2, 3]
    assert rankings[0].score == pytest.approx(0.4 * 12 + 0.3 * 85 + 0.2 * 90 + 0.001 * 95)
    assert rankings[1].score == pytest.approx(45.1)


def test_rank_is_a_permutation_without_gaps(trio) -> None:
    rankings = rank_candidates(trio, 1000.0)

    assert sorted(ranking.candidate_id for ranking in rankings) == ["a", "b", "c"]
    assert sorted(ranking.rank for ranking in rankings) == [1, 2, 3]


def test_ranking_is_idempotent(trio) -> None:
    first = rank_candidates(trio, 1000.0)
    second = rank_candidates(trio, 1000.0)

    assert [(item.candidate_id, item.score) for item in first] == [
        (item.candidate_id, item.score) for item in second
    ]


def test_ties_keep_input_order(make_plan) -> None:
    candidates = [_candidate(name, make_plan()) for name in ("z", "y", "x")]

    rankings = rank_candidates(candidates, 1000.0)

    assert [ranking.candidate_id for ranking in rankings] == ["z", "y", "x"]


def test_highlights_and_concerns_are_relative_to_the_set(trio) -> None:
    by_id = {ranking.candidate_id: ranking for ranking in rank_candidates(trio, 1000.0)}

    assert by_id["b"].highlights == [
        "Maximizes unit count",
        "Best land efficiency",
        "Smallest road footprint",
    ]
    assert by_id["b"].concerns == ["Smallest average unit size"]
    assert by_id["a"].highlights == []
    assert by_id["a"].concerns == []
    assert by_id["c"].highlights == ["Most generous unit sizes"]
    assert "Lowest unit count of the alternatives" in by_id["c"].concerns
    assert "High road area usage" in by_id["c"].concerns
    assert by_id["c"].concerns[-1] == "Has validation warnings"


def test_single_candidate_has_no_relative_concerns(make_plan) -> None:
    rankings = rank_candidates([_candidate("solo", make_plan(utilization=60.0))], 1000.0)

    assert rankings[0].rank == 1
    assert rankings[0].concerns == ["Low land utilization"]


def test_metrics_snapshot_and_revenue(make_plan) -> None:
    candidate = _candidate("a", make_plan([85.0, 100.0, 120.0], road_area=200.0))

    metrics = comparison_metrics(candidate, 1000.0, price_per_area=10.0)

    assert metrics.unit_count == 3
    assert metrics.viable_units == 2
    assert metrics.road_area_percent == pytest.approx(20.0)
    assert metrics.amenity_area == 200.0
    assert metrics.estimated_revenue == pytest.approx(2200.0)
    assert estimate_revenue(candidate.plan, 10.0) == pytest.approx(2200.0)


def test_compare_plans_recommendation(make_plan) -> None:
    a = _candidate("a", make_plan([100.0] * 10, utilization=80.0))
    b = _candidate("b", make_plan([100.0] * 12, utilization=85.0))
    close = _candidate("close", make_plan([100.0] * 11, utilization=81.5))

    better = compare_plans(a, b, price_per_area=50.0)
    assert better.recommendation == "plan_b"
    assert better.unit_count_diff == 2
    assert better.revenue_diff == pytest.approx(10_000.0)

    assert compare_plans(b, a).recommendation == "plan_a"
    assert compare_plans(a, close).recommendation == "similar"


def test_candidates_without_plans_are_rejected(make_plan) -> None:
    pending = Candidate(id="p", project_id="project-1", request=_REQUEST)

    with pytest.raises(ValueError):
        rank_candidates([pending], 1000.0)
    with pytest.raises(ValueError):
        rank_candidates([_candidate("a", make_plan()), _candidate("a", make_plan())], 1000.0)


def test_empty_set_ranks_to_empty_list() -> None:
    assert rank_candidates([], 1000.0) == []


def test_inflated_metrics_do_not_outrank_an_honest_plan(make_plan) -> None:
    inflated = _candidate(
        "inflated",
        make_plan([100.0] * 10, total_units=60, viable_units=60),
        ValidationStatus.INVALID,
    )
    honest = _candidate("honest", make_plan([100.0] * 11))

    rankings = rank_candidates([inflated, honest], 1000.0)

    assert [ranking.candidate_id for ranking in rankings] == ["honest", "inflated"]
    by_id = {ranking.candidate_id: ranking for ranking in rankings}
    assert by_id["inflated"].metrics.unit_count == 10
    assert by_id["inflated"].metrics.viable_units == 10
    assert "Maximizes unit count" in by_id["honest"].highlights
    assert "Maximizes unit count" not in by_id["inflated"].highlights
    assert compare_plans(honest, inflated).unit_count_diff == -1


def test_zero_price_still_yields_revenue_figures(make_plan) -> None:
    a = _candidate("a", make_plan([100.0] * 10))
    b = _candidate("b", make_plan([100.0] * 12))

    assert comparison_metrics(a, 1000.0, price_per_area=0.0).estimated_revenue == 0.0
    assert compare_plans(a, b, price_per_area=0.0).revenue_diff == 0.0
    assert compare_plans(a, b).revenue_diff is None
