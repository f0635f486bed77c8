"""Prompt construction and the plan document schema."""

from __future__ import annotations

from typing import Any, Dict

from subdivision_planner.config import ValidationRules
from subdivision_planner.models import GenerationRequest

# -------------------------------------------------------------------------
# 1. PLAN SCHEMA
# -------------------------------------------------------------------------
# Contract between the model and the plan decoder. The decoder validates
# against it before coercing the document into a GeneratedPlan.

_POSITION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
    "required": ["x", "y"],
}

PLAN_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "units": {
            "type": "array",
            "description": "Every lot in the subdivision, numbered left-to-right, top-to-bottom.",
            "items": {
                "type": "object",
                "properties": {
                    "unitNumber": {"type": "integer"},
                    "widthMeters": {"type": "number"},
                    "lengthMeters": {"type": "number"},
                    "areaSqm": {"type": "number"},
                    "position": _POSITION_SCHEMA,
                },
                "required": ["unitNumber", "widthMeters", "lengthMeters", "areaSqm", "position"],
            },
        },
        "roadNetwork": {
            "type": "object",
            "properties": {
                "widthMeters": {"type": "number"},
                "totalAreaSqm": {"type": "number"},
                "layout": {
                    "type": "string",
                    "enum": ["grid", "perimeter", "central-spine", "loop"],
                },
            },
            "required": ["widthMeters", "totalAreaSqm", "layout"],
        },
        "amenityAreas": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "kind": {
                        "type": "string",
                        "enum": ["social-club", "parking", "green-space", "maintenance"],
                    },
                    "areaSqm": {"type": "number"},
                    "position": _POSITION_SCHEMA,
                    "description": {"type": "string"},
                },
                "required": ["kind", "areaSqm"],
            },
        },
        "metrics": {
            "type": "object",
            "properties": {
                "totalUnits": {"type": "integer"},
                "viableUnits": {"type": "integer"},
                "invalidUnits": {
                    "type": "array",
                    "items": {"type": "integer"},
                    "description": "Unit numbers below the minimum area.",
                },
                "averageUnitAreaSqm": {"type": "number"},
                "landUtilizationPercent": {"type": "number"},
            },
            "required": [
                "totalUnits",
                "viableUnits",
                "averageUnitAreaSqm",
                "landUtilizationPercent",
            ],
        },
    },
    "required": ["units", "roadNetwork", "amenityAreas", "metrics"],
}


# -------------------------------------------------------------------------
# 2. STRATEGY GUIDANCE
# -------------------------------------------------------------------------
# Strategies only change the optimisation narrative. The requirements block
# and output rules are always restated in full.

DEFAULT_STRATEGY = "balanced"
DEFAULT_LOCALE = "Dominican Republic"
ROAD_WIDTH_METERS = 6
MAX_ROAD_PERCENT = 20

STRATEGY_GUIDANCE: Dict[str, str] = {
    "maximize-units": """**OPTIMIZATION STRATEGY**: MAXIMIZE NUMBER OF LOTS
- Prioritize creating the maximum number of lots possible
- Use smaller lot sizes (close to the {min_area} sqm minimum)
- Optimize road layout to minimize wasted space
- Target: Maximum lot count while meeting all requirements""",
    "larger-units": """**OPTIMIZATION STRATEGY**: CREATE LARGER LOTS
- Prioritize larger lot sizes (110-130 sqm)
- Sacrifice lot count for more spacious units
- Focus on quality over quantity
- Target: Fewer, more premium-sized lots""",
    "varied-amenities": """**OPTIMIZATION STRATEGY**: VARIED AMENITY ALLOCATION
- Create diverse amenity areas (parking, green spaces, maintenance)
- Distribute amenities throughout the subdivision
- Balance the social club with other community features
- Target: Well-distributed community amenities""",
    "different-layout": """**OPTIMIZATION STRATEGY**: ALTERNATIVE ROAD LAYOUT
- Experiment with different road configurations (grid vs loop vs spine)
- Consider cul-de-sacs or circular patterns
- Vary street orientations for visual interest
- Target: Unique, efficient road network""",
    "balanced": """**OPTIMIZATION STRATEGY**: BALANCED APPROACH
- Balance between lot count and lot size
- Standard road configuration (grid or perimeter)
- Practical, cost-effective design
- Target: Well-rounded, market-ready plan""",
}

STRATEGIES = tuple(STRATEGY_GUIDANCE)


# -------------------------------------------------------------------------
# 3. BASE PROMPT
# -------------------------------------------------------------------------

BASE_PROMPT = """You are an expert urban planner specializing in micro-villa subdivisions in {locale}.

**TASK**: Generate a detailed subdivision plan for a rectangular land parcel.

**LAND SPECIFICATIONS**:
- Dimensions: {width}m x {length}m
- Total Area: {area} sqm
- Location: {locale}

**REQUIREMENTS**:
1. **Lot Sizing**:
   - CRITICAL: Every lot MUST be at least {min_area} sqm (minimum legal requirement)
   - Optimal lot dimensions: 9m x 10m (90 sqm) to 10m x 12m (120 sqm)
   - Prefer rectangular lots with aspect ratio between 0.75 and 1.25

2. **Social Club Area**:
   - MUST occupy {amenity_percent}% of total land area ({amenity_area} sqm, tolerance +/-{tolerance}%)
   - Should be centrally located for equal access from all lots

3. **Road Configuration**:
   - Road width: {road_width} meters
   - Layout options: grid, perimeter, central-spine, or loop
   - Roads must provide vehicle access to ALL lots
   - Total road area must not exceed {max_road_percent}% of land

4. **Layout Optimization**:
   - Maximize number of viable lots (>= {min_area} sqm each)
   - Minimize wasted space (aim for 80-90% land utilization)
   - Number lots sequentially starting at 1, left-to-right, top-to-bottom
{variant_guidance}
{strategy_guidance}

**OUTPUT RULES**:
- Return every lot as one entry of "units" with unitNumber, widthMeters, lengthMeters, areaSqm and position {{x, y}}
- Describe roads in "roadNetwork" (widthMeters, totalAreaSqm, layout)
- List amenities in "amenityAreas" (kind: social-club | parking | green-space | maintenance, areaSqm, position, description)
- Count ANY lot below {min_area} sqm as invalid and list its number in "metrics.invalidUnits"
- "metrics.totalUnits" = number of entries in "units"
- "metrics.viableUnits" = lots that meet the {min_area} sqm minimum
- "metrics.landUtilizationPercent" = (total lot area + social club area) / land area x 100

**OUTPUT FORMAT**: Return ONLY a JSON object following the configured schema. No markdown.

Generate the plan now."""


def _fmt(value: float) -> str:
    return f"{value:g}"


def _variant_guidance(request: GenerationRequest) -> str:
    lines = []
    if request.target_unit_count is not None:
        lines.append(f"- Aim for approximately {request.target_unit_count} lots")
    if request.road_layout is not None:
        lines.append(f"- Preferred road layout: {request.road_layout.value}")
    if request.lot_aspect_ratio is not None:
        lines.append(f"- Preferred lot aspect ratio (width / length): {_fmt(request.lot_aspect_ratio)}")
    if not lines:
        return ""
    return "\n**VARIANT GUIDANCE**:\n" + "\n".join(lines) + "\n"


def resolve_strategy(strategy: str | None) -> str:
    """Map an optional tag onto a known strategy; unknown tags mean balanced."""

    if strategy in STRATEGY_GUIDANCE:
        return strategy  # type: ignore[return-value]
    return DEFAULT_STRATEGY


def build_prompt(
    request: GenerationRequest,
    strategy: str | None = None,
    *,
    rules: ValidationRules | None = None,
) -> str:
    """Return the exact instruction text for ``request``.

    Pure: identical inputs give byte-identical output. A custom prompt on the
    request replaces the generated text and the strategy is ignored.
    """

    if request.custom_prompt:
        return request.custom_prompt
    rules = rules or ValidationRules()
    chosen = resolve_strategy(strategy if strategy is not None else request.strategy)
    guidance = STRATEGY_GUIDANCE[chosen].format(min_area=_fmt(rules.min_unit_area))
    locale = request.locale or DEFAULT_LOCALE
    return BASE_PROMPT.format(
        locale=locale,
        width=_fmt(request.land_width),
        length=_fmt(request.land_length),
        area=_fmt(request.land_area),
        min_area=_fmt(rules.min_unit_area),
        amenity_percent=_fmt(request.amenity_percent),
        amenity_area=_fmt(round(request.land_area * request.amenity_percent / 100, 2)),
        tolerance=_fmt(rules.amenity_error_tolerance * 100),
        road_width=ROAD_WIDTH_METERS,
        max_road_percent=MAX_ROAD_PERCENT,
        variant_guidance=_variant_guidance(request),
        strategy_guidance=guidance,
    )


def estimate_token_count(request: GenerationRequest) -> int:
    """Rough token estimate: four characters per token plus the expected response."""

    prompt = build_prompt(request)
    return -(-len(prompt) // 4) + 2_000


def estimate_cost(
    request: GenerationRequest,
    *,
    input_cost_per_million: float = 2.0,
    output_cost_per_million: float = 12.0,
) -> float:
    """Estimated USD cost, assuming a 70/30 input/output token split."""

    tokens = estimate_token_count(request)
    input_tokens = tokens * 0.7
    output_tokens = tokens * 0.3
    return (
        input_tokens / 1_000_000 * input_cost_per_million
        + output_tokens / 1_000_000 * output_cost_per_million
    )


__all__ = [
    "BASE_PROMPT",
    "DEFAULT_STRATEGY",
    "PLAN_SCHEMA",
    "STRATEGIES",
    "STRATEGY_GUIDANCE",
    "build_prompt",
    "estimate_cost",
    "estimate_token_count",
    "resolve_strategy",
]
