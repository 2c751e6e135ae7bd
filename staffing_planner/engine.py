from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .allocations import (
    AllocationPlanSummary,
    BulkAllocationResult,
    bulk_create_allocations,
    distribute_block_hours,
)
from .availability import compute_availability_map
from .models import (
    AllocationRecord,
    BlockRecommendation,
    BlockRequirement,
    PlanningConfig,
    Preferences,
    ProjectPlan,
    RequiredSkill,
    Resource,
    SchedulingMode,
    Tier,
    Timeframe,
)
from .optimizer import optimize_global_allocation, recommend_team_composition
from .planning import PlanResult, plan_project
from .recommendations import RecommendationEngine

logger = logging.getLogger(__name__)

STANDARD_WEEKLY_HOURS = 40.0
DEFAULT_PRIORITY = 5


class NotFoundError(LookupError):
    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


def plan_timeframe(plan: ProjectPlan) -> Timeframe:
    """Inclusive timeframe covering every planned week."""
    if plan.project_end <= plan.project_start:
        return Timeframe(plan.project_start, plan.project_start)
    return Timeframe(plan.project_start, plan.project_end - timedelta(days=1))


def find_tier(tiers: Iterable[Tier], tier_id: str) -> Tier:
    for tier in tiers:
        if tier.id == tier_id:
            return tier
    raise NotFoundError("tier", tier_id)


def preview_project(
    tiers: Iterable[Tier],
    tier_id: str,
    project_type_id: str,
    target_start_date: date,
    mode: SchedulingMode | str = SchedulingMode.STRICT_START,
) -> PlanResult:
    tier = find_tier(tiers, tier_id)
    if tier.project_type_id != project_type_id:
        raise ValueError(f"tier '{tier_id}' does not belong to project type '{project_type_id}'")
    if not tier.blocks:
        raise ValueError(f"tier '{tier_id}' has no blocks configured")
    logger.info("Previewing tier %s (%d blocks) from %s", tier.code, len(tier.blocks), target_start_date)
    return plan_project(tier.blocks, target_start_date, mode)


def requirements_from_plan(
    plan: ProjectPlan,
    skill_catalog: Mapping[str, str],
    *,
    hours_per_week: float = STANDARD_WEEKLY_HOURS,
    priority: int = DEFAULT_PRIORITY,
) -> List[BlockRequirement]:
    """Derive one block requirement per planned block.

    ``skill_catalog`` maps skill ids to display names; ids missing from it are
    used as their own name. Effort is the block duration at ``hours_per_week``
    and complexity follows the number of required skills.
    """
    requirements: List[BlockRequirement] = []
    for block in plan.project_blocks:
        skills = tuple(
            RequiredSkill(skill_id=skill_id, skill_name=skill_catalog.get(skill_id, skill_id))
            for skill_id in block.required_skills_mix
        )
        requirements.append(
            BlockRequirement(
                block_id=block.block_id,
                block_name=block.block_name,
                block_code=block.block_code,
                duration=block.planned_duration_weeks,
                required_skills=skills,
                complexity=min(max(len(skills), 1), 10),
                priority=priority,
                estimated_effort=max(block.planned_duration_weeks, 0) * hours_per_week,
            )
        )
    return requirements


def generate_recommendations(
    requirements: Sequence[BlockRequirement],
    resources: Sequence[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
    preferences: Optional[Preferences] = None,
    config: Optional[PlanningConfig] = None,
) -> List[BlockRecommendation]:
    cfg = config or PlanningConfig()
    prefs = preferences or Preferences()
    availability = compute_availability_map(resources, allocation_records, timeframe)
    engine = RecommendationEngine(cfg)
    results: List[BlockRecommendation] = []
    for requirement in requirements:
        ranked = engine.recommend(requirement, resources, availability, prefs)
        results.append(
            BlockRecommendation(
                block_id=requirement.block_id,
                block_name=requirement.block_name,
                block_code=requirement.block_code,
                requirement=requirement,
                recommendations=ranked,
                recommended_team=recommend_team_composition(requirement, ranked),
            )
        )
    optimize_global_allocation(results, prefs, cfg)
    logger.info(
        "Generated recommendations for %d blocks from %d resources",
        len(results),
        len(resources),
    )
    return results


def allocate_plan(
    plan: ProjectPlan,
    block_recommendations: Sequence[BlockRecommendation],
    resources: Sequence[Resource],
    existing_records: Iterable[AllocationRecord],
    config: Optional[PlanningConfig] = None,
    *,
    project_id: Optional[str] = None,
    allow_overallocation: bool = False,
) -> Tuple[BulkAllocationResult, List[AllocationPlanSummary]]:
    """Book the top-ranked resource of every block for the block's effort.

    Blocks without recommendations are skipped. Hours booked for earlier
    blocks count against the weekly capacity of later ones.
    """
    cfg = config or PlanningConfig()
    existing = list(existing_records)
    by_resource = {resource.id: resource for resource in resources}
    by_block = {block.block_id: block for block in plan.project_blocks}
    booked = list(existing)
    proposed: List[AllocationRecord] = []
    summaries: List[AllocationPlanSummary] = []
    for block_rec in block_recommendations:
        block = by_block.get(block_rec.block_id)
        if block is None:
            raise NotFoundError("block", block_rec.block_id)
        if not block_rec.recommendations:
            logger.warning("Block %s has no candidates; nothing allocated", block_rec.block_code)
            continue
        top = block_rec.recommendations[0]
        resource = by_resource.get(top.resource_id)
        if resource is None:
            raise NotFoundError("resource", top.resource_id)
        records, summary = distribute_block_hours(
            block,
            resource,
            block_rec.requirement.estimated_effort,
            booked,
            curve=cfg.effort_curve,
            allow_overallocation=allow_overallocation,
            overallocation_factor=cfg.overallocation_factor,
            project_id=project_id,
        )
        for warning in summary.warnings:
            logger.warning("Block %s: %s", block.block_code, warning)
        booked.extend(records)
        proposed.extend(records)
        summaries.append(summary)
    return bulk_create_allocations(existing, proposed), summaries
