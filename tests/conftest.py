"""Pytest fixtures and path configuration for subdivision planner tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from subdivision_planner.models import GeneratedPlan  # noqa: E402


def build_plan_document(
    unit_areas: Sequence[float] = (100.0,) * 10,
    *,
    road_area: float = 150.0,
    amenity_area: float = 200.0,
    utilization: float = 80.0,
    total_units: int | None = None,
    viable_units: int | None = None,
    layout: str = "grid",
    extra_amenities: Sequence[dict[str, Any]] = (),
) -> dict[str, Any]:
    """Plan document in the model's wire shape, self-consistent unless overridden."""

    units = [
        {
            "unitNumber": index,
            "widthMeters": 10.0,
            "lengthMeters": area / 10.0,
            "areaSqm": area,
            "position": {"x": 10.0 * (index - 1), "y": 0.0},
        }
        for index, area in enumerate(unit_areas, start=1)
    ]
    invalid = [unit["unitNumber"] for unit in units if unit["areaSqm"] < 90]
    return {
        "units": units,
        "roadNetwork": {"widthMeters": 6.0, "totalAreaSqm": road_area, "layout": layout},
        "amenityAreas": [
            {
                "kind": "social-club",
                "areaSqm": amenity_area,
                "position": {"x": 50.0, "y": 20.0},
                "description": "Clubhouse and pool",
            },
            *extra_amenities,
        ],
        "metrics": {
            "totalUnits": len(units) if total_units is None else total_units,
            "viableUnits": len(units) - len(invalid) if viable_units is None else viable_units,
            "invalidUnits": invalid,
            "averageUnitAreaSqm": sum(unit_areas) / len(unit_areas) if unit_areas else 0.0,
            "landUtilizationPercent": utilization,
        },
    }


@pytest.fixture
def plan_document() -> Callable[..., dict[str, Any]]:
    return build_plan_document


@pytest.fixture
def make_plan() -> Callable[..., GeneratedPlan]:
    def _make(*args: Any, **kwargs: Any) -> GeneratedPlan:
        return GeneratedPlan.from_document(build_plan_document(*args, **kwargs))

    return _make
