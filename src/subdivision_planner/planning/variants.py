"""Parameter variations for multi-plan requests."""

from __future__ import annotations

import dataclasses
from typing import Sequence

from subdivision_planner.generation.prompts import STRATEGIES
from subdivision_planner.models import GenerationRequest, RoadLayout, VariantParams

DEFAULT_ASPECT_RATIOS: tuple[float, ...] = (0.85, 0.9, 1.0, 1.1, 1.15)
DEFAULT_ROAD_LAYOUTS: tuple[RoadLayout, ...] = (
    RoadLayout.GRID,
    RoadLayout.PERIMETER,
    RoadLayout.CENTRAL_SPINE,
    RoadLayout.LOOP,
)
# Strategy order used across a batch.
DEFAULT_STRATEGIES: tuple[str, ...] = (
    "maximize-units",
    "larger-units",
    "varied-amenities",
    "different-layout",
    "balanced",
)


def build_variations(
    request: GenerationRequest,
    count: int,
    *,
    aspect_ratios: Sequence[float] | None = None,
    road_layouts: Sequence[RoadLayout | str] | None = None,
    target_counts: Sequence[int | None] | None = None,
    strategies: Sequence[str] | None = None,
) -> list[VariantParams]:
    """Derive ``count`` variants; each axis cycles by index modulo its length.

    ``target_counts`` is an explicit per-variant override: entry ``i`` applies
    to variant ``i`` only, and variants without an entry keep the request's
    own target.
    """

    if count <= 0:
        raise ValueError("count must be positive.")
    ratios = tuple(aspect_ratios or DEFAULT_ASPECT_RATIOS)
    layouts = tuple(RoadLayout(layout) for layout in (road_layouts or DEFAULT_ROAD_LAYOUTS))
    tags = tuple(strategies or DEFAULT_STRATEGIES)
    unknown = [tag for tag in tags if tag not in STRATEGIES]
    if unknown:
        raise ValueError(f"Unknown strategies: {', '.join(unknown)}")
    overrides = tuple(target_counts or ())

    variants = []
    for index in range(count):
        target = overrides[index] if index < len(overrides) else None
        variants.append(
            VariantParams(
                index=index,
                lot_aspect_ratio=ratios[index % len(ratios)],
                road_layout=layouts[index % len(layouts)],
                strategy=tags[index % len(tags)],
                target_unit_count=target if target is not None else request.target_unit_count,
            )
        )
    return variants


def variant_request(request: GenerationRequest, variant: VariantParams) -> GenerationRequest:
    """Independent request carrying the variant's guidance."""

    return dataclasses.replace(
        request,
        strategy=variant.strategy,
        road_layout=variant.road_layout,
        lot_aspect_ratio=variant.lot_aspect_ratio,
        target_unit_count=variant.target_unit_count,
    )


__all__ = [
    "DEFAULT_ASPECT_RATIOS",
    "DEFAULT_ROAD_LAYOUTS",
    "DEFAULT_STRATEGIES",
    "build_variations",
    "variant_request",
]
