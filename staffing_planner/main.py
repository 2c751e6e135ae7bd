from __future__ import annotations

import argparse
import logging
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, NoReturn, Optional, Sequence

import pandas as pd

from . import engine
from .allocations import validate_capacity
from .availability import availability_table, team_capacity, weekly_availability, weekly_capacity
from .engine import NotFoundError
from .io_utils import (
    ensure_directory,
    load_allocations,
    load_config,
    load_recommendation_request,
    load_resources,
    load_skill_catalog,
    load_tiers,
    parse_date,
    write_csv,
    write_json,
)
from .models import (
    AllocationRecord,
    BlockRecommendation,
    PlanningConfig,
    Resource,
    SchedulingMode,
    Tier,
    Timeframe,
)
from .planning import PlanResult


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Block-based project planning and staffing batch tool (JSON/CSV in/out, no UI)."
    )
    parser.add_argument(
        "--project-dir",
        required=True,
        help="Project directory containing input/ and output/ subfolders",
    )
    parser.add_argument("--config", help="Path to configuration JSON file (overrides project-dir default)")
    parser.add_argument(
        "--outdir",
        default=None,
        help="Output directory for generated files (default: <project-dir>/output)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and print a summary without writing output files",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    plan = commands.add_parser("plan", help="Schedule a tier's blocks from a start date")
    plan.add_argument("--tier", required=True, help="Tier id from tiers.json")
    plan.add_argument("--project-type", required=True, help="Project type id the tier must belong to")
    plan.add_argument("--start", required=True, help="Target start date (ISO 8601)")
    plan.add_argument(
        "--mode",
        choices=[mode.value for mode in SchedulingMode],
        help="Scheduling mode (default: config default_mode)",
    )
    plan.add_argument(
        "--allow-invalid",
        action="store_true",
        help="Write the plan even when validation reports errors",
    )
    plan.add_argument(
        "--recommend",
        action="store_true",
        help="Also recommend resources for every planned block",
    )
    plan.add_argument(
        "--allocate",
        action="store_true",
        help="Book the top recommendation of each block into weekly allocations (implies --recommend)",
    )
    plan.add_argument("--project-id", help="Project id stamped on generated allocations")
    plan.add_argument(
        "--allow-overallocation",
        action="store_true",
        help="Let weekly bookings exceed capacity by the configured overallocation factor",
    )

    availability = commands.add_parser("availability", help="Capacity and utilization rollups")
    availability.add_argument("--start", required=True, help="Timeframe start date (ISO 8601)")
    availability.add_argument("--end", required=True, help="Timeframe end date (ISO 8601)")
    availability.add_argument("--team", help="Only include teams whose name contains this text")
    availability.add_argument("--resource", help="Also write the weekly breakdown for this resource id")

    recommend = commands.add_parser("recommend", help="Rank resources for block requirements")
    recommend.add_argument("--request", required=True, help="Recommendation request JSON file")
    return parser


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _fail(message: str, status: int = 2) -> NoReturn:
    print(message, file=sys.stderr)
    sys.exit(status)


class _Inputs:
    def __init__(self, args: argparse.Namespace) -> None:
        project_dir = Path(args.project_dir).resolve()
        if not project_dir.exists():
            raise ValueError(f"project directory not found: {project_dir}")
        self.input_dir = project_dir / "input"
        self.outdir = Path(args.outdir) if args.outdir else project_dir / "output"
        config_path = Path(args.config) if args.config else self.input_dir / "config.json"
        if args.config and not config_path.exists():
            raise ValueError(f"config file not found at {config_path}")
        self.config = load_config(config_path) if config_path.exists() else PlanningConfig()

    def _required(self, name: str) -> Path:
        path = self.input_dir / name
        if not path.exists():
            raise ValueError(f"{name} not found at {path}")
        return path

    def tiers(self) -> List[Tier]:
        return load_tiers(self._required("tiers.json"))

    def resources(self) -> List[Resource]:
        return load_resources(self._required("resources.json"))

    def allocations(self) -> List[AllocationRecord]:
        path = self.input_dir / "allocations.csv"
        return load_allocations(path) if path.exists() else []

    def skill_catalog(self) -> Dict[str, str]:
        path = self.input_dir / "skills.json"
        return load_skill_catalog(path) if path.exists() else {}


def _print_plan_summary(result: PlanResult) -> None:
    summary = result.summary
    print(
        f"Plan: {summary['totalBlocks']} blocks, {summary['totalDurationWeeks']} weeks "
        f"({summary['estimatedStartDate']} → {summary['estimatedEndDate']})"
    )
    for block in result.plan.project_blocks:
        weeks_label = "week" if block.planned_duration_weeks == 1 else "weeks"
        print(
            f"- {block.block_code} {block.block_name}: {block.planned_start.isoformat()} → "
            f"{block.planned_end.isoformat()} ({block.planned_duration_weeks} {weeks_label})"
        )
    for error in result.validation.errors:
        print(f"ERROR {error}")
    for warning in result.validation.warnings:
        print(f"WARNING {warning}")


def _print_recommendation_summary(block_recommendations: Sequence[BlockRecommendation]) -> None:
    for block in block_recommendations:
        if not block.recommendations:
            print(f"- {block.block_code}: no eligible resources")
            continue
        best = block.recommendations[0]
        team = block.recommended_team.team_name if block.recommended_team else "none"
        print(
            f"- {block.block_code}: {best.resource_name} "
            f"(score {best.overall_score}, confidence {best.confidence}); team {team}"
        )


def _recommendations_payload(
    block_recommendations: Sequence[BlockRecommendation],
    timeframe: Timeframe,
) -> Dict[str, object]:
    scored = {rec.resource_id for block in block_recommendations for rec in block.recommendations}
    return {
        "timeframe": timeframe.to_dict(),
        "blockRecommendations": [block.to_dict() for block in block_recommendations],
        "summary": {
            "totalBlocks": len(block_recommendations),
            "blocksWithoutCandidates": sum(1 for block in block_recommendations if not block.recommendations),
            "resourcesRecommended": len(scored),
        },
    }


def _proposed_hours(records: Sequence[AllocationRecord]) -> Dict[str, Dict[str, float]]:
    proposed: Dict[str, Dict[str, float]] = defaultdict(dict)
    for record in records:
        block = proposed[record.block_id]
        block[record.resource_id] = block.get(record.resource_id, 0.0) + record.allocated_hours
    return dict(proposed)


def _run_plan(args: argparse.Namespace, inputs: _Inputs) -> None:
    cfg = inputs.config
    start = parse_date(args.start, "--start")
    mode = SchedulingMode.parse(args.mode) if args.mode else cfg.default_mode
    result = engine.preview_project(inputs.tiers(), args.tier, args.project_type, start, mode)
    if not result.is_valid and not args.allow_invalid:
        for error in result.validation.errors:
            print(error, file=sys.stderr)
        sys.exit(1)

    block_recommendations: List[BlockRecommendation] = []
    timeframe = engine.plan_timeframe(result.plan)
    if args.recommend or args.allocate:
        resources = inputs.resources()
        existing = inputs.allocations()
        requirements = engine.requirements_from_plan(result.plan, inputs.skill_catalog())
        block_recommendations = engine.generate_recommendations(
            requirements, resources, existing, timeframe, config=cfg
        )

    if args.dry_run:
        _print_plan_summary(result)
        if block_recommendations:
            print("\nRecommendations:")
            _print_recommendation_summary(block_recommendations)
        return

    outdir = ensure_directory(inputs.outdir)
    plan_path = outdir / "project_plan.json"
    write_json(result.to_dict(), plan_path)
    print(f"Wrote {plan_path}")
    if block_recommendations:
        rec_path = outdir / "recommendations.json"
        write_json(_recommendations_payload(block_recommendations, timeframe), rec_path)
        print(f"Wrote {rec_path}")
    if args.allocate:
        bulk, summaries = engine.allocate_plan(
            result.plan,
            block_recommendations,
            resources,
            existing,
            cfg,
            project_id=args.project_id,
            allow_overallocation=args.allow_overallocation,
        )
        alloc_path = outdir / "allocations.csv"
        write_csv(
            pd.DataFrame(
                [
                    {
                        "resource_id": record.resource_id,
                        "block_id": record.block_id,
                        "week_start_date": record.week_start_date.isoformat(),
                        "allocated_hours": record.allocated_hours,
                        "project_id": record.project_id,
                    }
                    for record in bulk.created
                ],
                columns=["resource_id", "block_id", "week_start_date", "allocated_hours", "project_id"],
            ),
            alloc_path,
        )
        validation = validate_capacity(_proposed_hours(bulk.created), resources, existing, timeframe)
        validation_path = outdir / "capacity_validation.json"
        write_json(
            {
                "allocationSummaries": [summary.to_dict() for summary in summaries],
                "skipped": [record.to_dict() for record in bulk.skipped],
                "capacityValidation": validation.to_dict(),
            },
            validation_path,
        )
        print(f"Wrote {alloc_path}")
        print(f"Wrote {validation_path}")


def _run_availability(args: argparse.Namespace, inputs: _Inputs) -> None:
    start = parse_date(args.start, "--start")
    end = parse_date(args.end, "--end")
    if end < start:
        raise ValueError("--end must not be earlier than --start")
    timeframe = Timeframe(start, end)
    resources = inputs.resources()
    records = inputs.allocations()
    per_resource = availability_table(resources, records, timeframe)
    per_team = team_capacity(resources, records, timeframe, team=args.team)
    per_week = weekly_capacity(resources, records, timeframe)
    single: Optional[Resource] = None
    if args.resource:
        single = next((resource for resource in resources if resource.id == args.resource), None)
        if single is None:
            raise NotFoundError("resource", args.resource)

    if args.dry_run:
        print(f"Availability {start.isoformat()} → {end.isoformat()}")
        for row in per_team.itertuples(index=False):
            print(
                f"- {row.team}: {row.total_allocated:.1f}/{row.total_capacity:.1f} h "
                f"({row.utilization_pct:.2f}%)"
            )
        return

    outdir = ensure_directory(inputs.outdir)
    outputs = [
        (per_resource, outdir / "resource_availability.csv"),
        (per_team, outdir / "team_capacity.csv"),
        (per_week, outdir / "weekly_capacity.csv"),
    ]
    if single is not None:
        outputs.append((weekly_availability(single, records, timeframe), outdir / f"weekly_{single.id}.csv"))
    for frame, path in outputs:
        write_csv(frame, path)
        print(f"Wrote {path}")


def _run_recommend(args: argparse.Namespace, inputs: _Inputs) -> None:
    request_path = Path(args.request)
    if not request_path.exists():
        raise ValueError(f"request file not found at {request_path}")
    requirements, timeframe, preferences = load_recommendation_request(request_path)
    block_recommendations = engine.generate_recommendations(
        requirements,
        inputs.resources(),
        inputs.allocations(),
        timeframe,
        preferences,
        inputs.config,
    )
    if args.dry_run:
        _print_recommendation_summary(block_recommendations)
        return
    outdir = ensure_directory(inputs.outdir)
    path = outdir / "recommendations.json"
    write_json(_recommendations_payload(block_recommendations, timeframe), path)
    print(f"Wrote {path}")


_COMMANDS = {
    "plan": _run_plan,
    "availability": _run_availability,
    "recommend": _run_recommend,
}


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _build_parser().parse_args(argv)
    try:
        inputs = _Inputs(args)
    except ValueError as exc:
        _fail(str(exc))
    _configure_logging(inputs.config.logging_level)
    try:
        _COMMANDS[args.command](args, inputs)
    except (ValueError, NotFoundError) as exc:
        _fail(str(exc))


if __name__ == "__main__":
    main()
