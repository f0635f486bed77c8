#!/usr/bin/env python3
"""Generate, validate and rank subdivision plan variants for one parcel."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if _SRC.exists():  # pragma: no cover - bootstrap import path
    sys.path.insert(0, str(_SRC))

from subdivision_planner.config import PlannerConfig, load_planner_config
from subdivision_planner.models import GenerationRequest
from subdivision_planner.pipeline import BatchResult, SubdivisionPlanner
from subdivision_planner.progress import CallbackProgressSink, ProgressEvent
from subdivision_planner.utils import configure_logging

logger = logging.getLogger("subdivision_planner.scripts.generate_plans")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, help="YAML planner configuration")
    parser.add_argument("--project", default="default", help="Project id owning the candidates")
    parser.add_argument("--width", type=float, required=True, help="Land width in meters")
    parser.add_argument("--length", type=float, required=True, help="Land length in meters")
    parser.add_argument(
        "--area", type=float, help="Land area in sqm (defaults to width x length)"
    )
    parser.add_argument("--amenity-percent", type=float, default=20.0)
    parser.add_argument("--target-units", type=int, help="Desired number of units")
    parser.add_argument("--locale", help="Locale context for the prompt")
    parser.add_argument("--count", type=int, default=3, help="Number of variants to generate")
    parser.add_argument("--fan-out", type=int, help="Maximum concurrent generation calls")
    parser.add_argument("--price-per-area", type=float, help="Sale price per sqm for revenue")
    parser.add_argument(
        "--activate-best",
        action="store_true",
        help="Activate the top-ranked candidate when it can be approved",
    )
    parser.add_argument("--output", type=Path, help="Write the JSON report here instead of stdout")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level",
    )
    return parser


def _print_event(event: ProgressEvent) -> None:
    label = f"variant {event.variant_index}" if event.variant_index is not None else "plan"
    logger.info("[%s] %s: %s", label, event.status.value, event.message)


def _report(
    batch: BatchResult,
    planner: SubdivisionPlanner,
    project_id: str,
    request: GenerationRequest,
) -> dict[str, Any]:
    cost = planner.session_cost(project_id)
    return {
        "request": request.to_dict(),
        "rankings": [asdict(ranking) for ranking in batch.rankings],
        "results": [
            {
                "variant_index": result.candidate.variant_index,
                "candidate_id": result.candidate.id,
                "strategy": result.candidate.strategy,
                "status": result.candidate.state,
                "validation_status": (
                    result.candidate.validation_status.value
                    if result.candidate.validation_status is not None
                    else None
                ),
                "errors": result.candidate.validation_errors,
                "warnings": result.candidate.validation_warnings,
                "attempts": result.attempts,
                "possibly_duplicated": result.possibly_duplicated,
                "failure": result.user_message,
                "plan": (
                    result.candidate.plan.to_document()
                    if result.candidate.plan is not None
                    else None
                ),
            }
            for result in batch.results
        ],
        "session_cost": asdict(cost),
        "rate_limit": planner.rate_limit_status(),
    }


async def _run(args: argparse.Namespace, config: PlannerConfig) -> dict[str, Any]:
    planner = SubdivisionPlanner.from_config(config, progress=CallbackProgressSink(_print_event))
    request = GenerationRequest(
        land_width=args.width,
        land_length=args.length,
        land_area=args.area or args.width * args.length,
        amenity_percent=args.amenity_percent,
        target_unit_count=args.target_units,
        locale=args.locale or config.default_locale,
    )
    logger.info(
        "Estimated cost per call: $%.4f", planner.estimate_cost(request)
    )
    batch = await planner.generate_batch(
        args.project,
        request,
        args.count,
        fan_out=args.fan_out,
        price_per_area=args.price_per_area,
    )
    if args.activate_best and batch.best is not None:
        best = planner.lifecycle.get(batch.best.candidate_id)
        if planner.lifecycle.can_approve(best):
            await planner.activate(best.id)
            logger.info("Activated candidate %s", best.id)
        else:
            logger.warning("Top candidate %s has validation errors; not activating", best.id)
    return _report(batch, planner, args.project, request)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, extra_loggers=("httpx", "openai"))

    config = load_planner_config(args.config) if args.config else PlannerConfig()
    report = asyncio.run(_run(args, config))
    payload = json.dumps(report, indent=2, default=str)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload, encoding="utf-8")
        logger.info("Wrote report to %s", args.output)
    else:
        print(payload)


if __name__ == "__main__":
    main()
