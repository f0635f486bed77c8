"""Data model shared by every stage of the planning pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Sequence


class RoadLayout(str, Enum):
    GRID = "grid"
    PERIMETER = "perimeter"
    CENTRAL_SPINE = "central-spine"
    LOOP = "loop"


class AmenityKind(str, Enum):
    SOCIAL_CLUB = "social-club"
    PARKING = "parking"
    GREEN_SPACE = "green-space"
    MAINTENANCE = "maintenance"


class GenerationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class ValidationStatus(str, Enum):
    VALID = "valid"
    WARNINGS = "warnings"
    INVALID = "invalid"


def utc_now() -> str:
    """ISO-8601 timestamp used for every stored time value."""

    return datetime.now(timezone.utc).isoformat()


# --------------------------------------------------------------------------- #
# Requests and raw responses                                                  #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Inputs for one plan generation. Immutable once issued."""

    land_width: float
    land_length: float
    land_area: float
    amenity_percent: float
    target_unit_count: int | None = None
    locale: str | None = None
    strategy: str | None = None
    custom_prompt: str | None = None
    # Variant guidance, filled in by the variant generator.
    road_layout: RoadLayout | None = None
    lot_aspect_ratio: float | None = None

    def __post_init__(self) -> None:
        for name in ("land_width", "land_length", "land_area"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive.")
        if not 0 <= self.amenity_percent <= 100:
            raise ValueError("amenity_percent must be between 0 and 100.")
        if self.target_unit_count is not None and self.target_unit_count <= 0:
            raise ValueError("target_unit_count must be positive when provided.")
        if self.lot_aspect_ratio is not None and self.lot_aspect_ratio <= 0:
            raise ValueError("lot_aspect_ratio must be positive when provided.")

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if self.road_layout is not None:
            payload["road_layout"] = self.road_layout.value
        return payload


@dataclass(slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(slots=True)
class RawModelResponse:
    """Accumulated model output. Discarded once the plan is decoded."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    duration_ms: float = 0.0
    chunk_count: int = 0


# --------------------------------------------------------------------------- #
# Generated plan                                                              #
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class Position:
    x: float
    y: float


@dataclass(slots=True)
class Unit:
    number: int
    width: float
    length: float
    area: float
    position: Position


@dataclass(slots=True)
class RoadNetwork:
    width: float
    total_area: float
    layout: RoadLayout


@dataclass(slots=True)
class AmenityArea:
    kind: AmenityKind
    area: float
    position: Position | None = None
    description: str = ""


@dataclass(slots=True)
class PlanMetrics:
    total_units: int
    viable_units: int
    average_unit_area: float
    land_utilization_percent: float
    invalid_units: list[int] = field(default_factory=list)


@dataclass(slots=True)
class GeneratedPlan:
    """Strictly typed plan decoded from the model's JSON document.

    The metrics are the model's own claims; the validator checks them against
    the unit list.
    """

    units: list[Unit]
    road_network: RoadNetwork
    amenities: list[AmenityArea]
    metrics: PlanMetrics

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "GeneratedPlan":
        """Coerce an untyped document into a plan.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` when the document
        does not have the expected shape.
        """

        units = [
            Unit(
                number=int(item["unitNumber"]),
                width=float(item["widthMeters"]),
                length=float(item["lengthMeters"]),
                area=float(item["areaSqm"]),
                position=_position(item["position"]),
            )
            for item in document["units"]
        ]
        road = document["roadNetwork"]
        road_network = RoadNetwork(
            width=float(road["widthMeters"]),
            total_area=float(road["totalAreaSqm"]),
            layout=RoadLayout(road["layout"]),
        )
        amenities = [
            AmenityArea(
                kind=AmenityKind(item["kind"]),
                area=float(item["areaSqm"]),
                position=_position(item["position"]) if item.get("position") else None,
                description=str(item.get("description", "")),
            )
            for item in document.get("amenityAreas", [])
        ]
        metrics = document["metrics"]
        plan_metrics = PlanMetrics(
            total_units=int(metrics["totalUnits"]),
            viable_units=int(metrics["viableUnits"]),
            average_unit_area=float(metrics["averageUnitAreaSqm"]),
            land_utilization_percent=float(metrics["landUtilizationPercent"]),
            invalid_units=[int(number) for number in metrics.get("invalidUnits", [])],
        )
        return cls(
            units=units,
            road_network=road_network,
            amenities=amenities,
            metrics=plan_metrics,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "units": [
                {
                    "unitNumber": unit.number,
                    "widthMeters": unit.width,
                    "lengthMeters": unit.length,
                    "areaSqm": unit.area,
                    "position": {"x": unit.position.x, "y": unit.position.y},
                }
                for unit in self.units
            ],
            "roadNetwork": {
                "widthMeters": self.road_network.width,
                "totalAreaSqm": self.road_network.total_area,
                "layout": self.road_network.layout.value,
            },
            "amenityAreas": [
                {
                    "kind": amenity.kind.value,
                    "areaSqm": amenity.area,
                    **(
                        {"position": {"x": amenity.position.x, "y": amenity.position.y}}
                        if amenity.position is not None
                        else {}
                    ),
                    "description": amenity.description,
                }
                for amenity in self.amenities
            ],
            "metrics": {
                "totalUnits": self.metrics.total_units,
                "viableUnits": self.metrics.viable_units,
                "invalidUnits": list(self.metrics.invalid_units),
                "averageUnitAreaSqm": self.metrics.average_unit_area,
                "landUtilizationPercent": self.metrics.land_utilization_percent,
            },
        }

    def amenity_area(self, kinds: Sequence[str] | None = None) -> float:
        wanted = None if kinds is None else {str(kind) for kind in kinds}
        return sum(
            amenity.area
            for amenity in self.amenities
            if wanted is None or amenity.kind.value in wanted
        )


def _position(value: Mapping[str, Any]) -> Position:
    return Position(x=float(value["x"]), y=float(value["y"]))


# --------------------------------------------------------------------------- #
# Validation, candidates and rankings                                         #
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    # Recomputed from the unit list, independent of the model's metrics.
    viable_units: int = 0
    invalid_units: list[int] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def status(self) -> ValidationStatus:
        if self.errors:
            return ValidationStatus.INVALID
        if self.warnings:
            return ValidationStatus.WARNINGS
        return ValidationStatus.VALID


@dataclass(slots=True)
class VariantParams:
    index: int
    lot_aspect_ratio: float
    road_layout: RoadLayout
    strategy: str
    target_unit_count: int | None = None


@dataclass(slots=True)
class AttemptRecord:
    attempt: int
    error_type: str
    message: str
    delay_seconds: float = 0.0


@dataclass(slots=True)
class Candidate:
    """One generated plan instance. Only the lifecycle manager mutates it."""

    id: str
    project_id: str
    request: GenerationRequest
    generation_status: GenerationStatus = GenerationStatus.PENDING
    created_at: str = field(default_factory=utc_now)
    variant_index: int | None = None
    strategy: str | None = None
    plan: GeneratedPlan | None = None
    validation_status: ValidationStatus | None = None
    validation_errors: list[str] = field(default_factory=list)
    validation_warnings: list[str] = field(default_factory=list)
    approved: bool = False
    approved_at: str | None = None
    rejection_reason: str | None = None
    is_active: bool = False
    is_archived: bool = False
    archived_at: str | None = None
    completed_at: str | None = None
    error_type: str | None = None
    error_message: str | None = None
    attempt_history: list[AttemptRecord] = field(default_factory=list)
    retry_count: int = 0
    possibly_duplicated: bool = False
    model: str | None = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    generation_time_ms: float | None = None
    estimated_cost_usd: float | None = None

    @property
    def state(self) -> str:
        """Single label summarising where the candidate is in its lifecycle."""

        if self.generation_status is not GenerationStatus.COMPLETED:
            return self.generation_status.value
        if self.is_active:
            return "active"
        if self.is_archived:
            return "archived"
        if self.approved:
            return "approved"
        return "completed"


@dataclass(slots=True)
class ComparisonMetrics:
    unit_count: int
    viable_units: int
    average_unit_area: float
    land_utilization_percent: float
    road_area_percent: float
    amenity_area: float
    estimated_revenue: float | None = None


@dataclass(slots=True)
class Ranking:
    """Derived ordering entry. Recomputed on demand, never stored."""

    candidate_id: str
    rank: int
    score: float
    metrics: ComparisonMetrics
    highlights: list[str] = field(default_factory=list)
    concerns: list[str] = field(default_factory=list)


__all__ = [
    "AmenityArea",
    "AmenityKind",
    "AttemptRecord",
    "Candidate",
    "ComparisonMetrics",
    "GeneratedPlan",
    "GenerationRequest",
    "GenerationStatus",
    "PlanMetrics",
    "Position",
    "Ranking",
    "RawModelResponse",
    "RoadLayout",
    "RoadNetwork",
    "TokenUsage",
    "Unit",
    "ValidationResult",
    "ValidationStatus",
    "VariantParams",
    "utc_now",
]
