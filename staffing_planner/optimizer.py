from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from .models import (
    BlockRecommendation,
    BlockRequirement,
    PlanningConfig,
    Preferences,
    RecommendationScore,
    TeamComposition,
)

logger = logging.getLogger(__name__)

OVERALLOCATION_WARNING = "Resource appears over-allocated across multiple blocks"


def total_allocation_by_resource(block_recommendations: Sequence[BlockRecommendation]) -> Dict[str, int]:
    totals: Dict[str, int] = defaultdict(int)
    for block in block_recommendations:
        for rec in block.recommendations:
            totals[rec.resource_id] += rec.recommended_allocation_percent
    return dict(totals)


def optimize_global_allocation(
    block_recommendations: List[BlockRecommendation],
    preferences: Optional[Preferences] = None,
    config: Optional[PlanningConfig] = None,
) -> List[BlockRecommendation]:
    """Penalize resources recommended beyond the allocation limit across all blocks.

    Recommendation lists are adjusted in place and re-sorted by the adjusted
    overall score; the same list is returned for chaining.
    """
    cfg = config or PlanningConfig()
    totals = total_allocation_by_resource(block_recommendations)
    overcommitted = {
        resource_id for resource_id, total in totals.items() if total > cfg.allocation_limit_pct
    }
    for block in block_recommendations:
        for rec in block.recommendations:
            if rec.resource_id in overcommitted:
                rec.overall_score = max(rec.overall_score - cfg.overallocation_penalty, 0)
                rec.reasoning.append(OVERALLOCATION_WARNING)
        block.recommendations.sort(key=lambda rec: rec.overall_score, reverse=True)
    if overcommitted:
        logger.info(
            "Penalized %d over-committed resources: %s",
            len(overcommitted),
            ", ".join(sorted(overcommitted)),
        )
    return block_recommendations


def team_skill_coverage(requirement: BlockRequirement, members: Sequence[RecommendationScore]) -> float:
    if not requirement.required_skills:
        return 100.0
    required = {skill.skill_id for skill in requirement.required_skills}
    covered = set()
    for member in members:
        covered.update(required.intersection(member.skill_analysis.matching_skill_ids))
    return len(covered) / len(required) * 100


def recommend_team_composition(
    requirement: BlockRequirement,
    recommendations: Sequence[RecommendationScore],
) -> Optional[TeamComposition]:
    if not recommendations:
        return None
    teams: Dict[str, List[RecommendationScore]] = {}
    for rec in recommendations:
        teams.setdefault(rec.home_team, []).append(rec)
    compositions = [
        TeamComposition(
            team_name=team_name,
            members=tuple(members),
            avg_score=sum(member.overall_score for member in members) / len(members),
            avg_confidence=sum(member.confidence for member in members) / len(members),
            skill_coverage=team_skill_coverage(requirement, members),
        )
        for team_name, members in teams.items()
    ]
    # max() keeps the first team on ties, i.e. the one holding the best-ranked candidate.
    return max(compositions, key=lambda composition: composition.composition_score)
