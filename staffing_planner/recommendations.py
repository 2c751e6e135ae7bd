"""
Resource recommendation scoring.

Each candidate resource is scored against a block requirement on five
dimensions, then combined into a weighted overall score:

- Skill match (how many required skills the resource has, and how well)
- Capacity fit (whether the estimated effort fits the remaining hours)
- Experience (seniority and average skill level, when requested)
- Team synergy (home-team specialization keywords vs. required skills)
- Availability (current utilization and concurrent project load)

Reasoning strings are derived from the same bands used for scoring so they
can be reproduced from the numbers alone.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import (
    MAX_SKILL_LEVEL,
    BlockRequirement,
    CapacityAnalysis,
    PlanningConfig,
    Preferences,
    RecommendationScore,
    RequiredSkill,
    Resource,
    ResourceAvailability,
    RiskFactors,
    SkillAnalysis,
)

logger = logging.getLogger(__name__)

NEUTRAL_EXPERIENCE = 50
SENIOR_EMPLOYMENT_TYPES = {"senior", "lead"}
MID_EMPLOYMENT_TYPES = {"mid-level"}
SYNERGY_BASE = 50
SYNERGY_BONUS = 30
NO_CAPACITY_AVAILABILITY = 10
COMFORTABLE_PROJECTION_PCT = 80.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def calculate_skill_match(resource: Resource, required_skills: Sequence[RequiredSkill]) -> SkillAnalysis:
    matching: List[str] = []
    matching_ids: List[str] = []
    missing: List[str] = []
    breakdown: List[Tuple[str, int, bool]] = []
    total_level = 0
    required_ids = set()
    for skill in required_skills:
        required_ids.add(skill.skill_id)
        level = resource.skills.get(skill.skill_id)
        if level is None:
            missing.append(skill.skill_name)
            breakdown.append((skill.skill_name, 0, True))
            continue
        matching.append(skill.skill_name)
        matching_ids.append(skill.skill_id)
        total_level += level
        breakdown.append((skill.skill_name, level, True))
    for skill_id, level in sorted(resource.skills.items()):
        if skill_id not in required_ids:
            breakdown.append((skill_id, level, False))
    max_possible = MAX_SKILL_LEVEL * len(required_skills)
    score = clamp(total_level / max_possible * 100) if max_possible else 0.0
    coverage = len(matching) / len(required_skills) * 100 if required_skills else 100.0
    return SkillAnalysis(
        score=score,
        coverage=coverage,
        matching_skills=tuple(matching),
        missing_skills=tuple(missing),
        skill_breakdown=tuple(breakdown),
        matching_skill_ids=tuple(matching_ids),
    )


def calculate_capacity_fit(
    estimated_effort: float,
    availability: ResourceAvailability,
    max_utilization: float,
) -> CapacityAnalysis:
    can_fit = estimated_effort <= availability.available_hours
    current = availability.utilization_percentage
    if availability.total_capacity_hours > 0:
        projected = current + estimated_effort / availability.total_capacity_hours * 100
    else:
        projected = current
    if not can_fit:
        score = 10
    elif projected <= max_utilization * 0.7:
        score = 100
    elif projected <= max_utilization:
        score = 80
    elif projected <= max_utilization * 1.1:
        score = 60
    else:
        score = 30
    return CapacityAnalysis(
        score=score,
        can_fit=can_fit,
        available_hours=availability.available_hours,
        required_hours=estimated_effort,
        current_utilization=current,
        projected_utilization=projected,
    )


def calculate_experience_bonus(
    resource: Resource,
    requirement: BlockRequirement,
    prioritize_experience: bool,
) -> int:
    if not prioritize_experience:
        return NEUTRAL_EXPERIENCE
    average_level = resource.average_skill_level()
    score = min(average_level * 10, 50)
    employment = resource.employment_type.strip().lower()
    if employment in SENIOR_EMPLOYMENT_TYPES:
        score += 30
    elif employment in MID_EMPLOYMENT_TYPES:
        score += 15
    if requirement.complexity >= 8 and average_level >= 4:
        score += 20
    return min(round_half_up(score), 100)


def calculate_team_synergy(
    resource: Resource,
    requirement: BlockRequirement,
    team_specializations: Mapping[str, Sequence[str]],
) -> int:
    score = SYNERGY_BASE
    keywords = [keyword.lower() for keyword in team_specializations.get(resource.home_team, ())]
    skill_names = [skill.skill_name.lower() for skill in requirement.required_skills]
    if any(keyword in name for keyword in keywords for name in skill_names):
        score += SYNERGY_BONUS
    return min(score, 100)


def calculate_availability_score(availability: ResourceAvailability, requirement: BlockRequirement) -> int:
    if not availability.has_capacity:
        return NO_CAPACITY_AVAILABILITY
    score = 50
    utilization = availability.utilization_percentage
    if utilization <= 50:
        score += 30
    elif utilization <= 75:
        score += 20
    elif utilization <= 90:
        score += 10
    score -= availability.risk_factors.project_conflicts
    if requirement.priority >= 8:
        score += 10
    return int(clamp(round_half_up(score)))


def calculate_confidence(
    skill_analysis: SkillAnalysis,
    capacity_analysis: CapacityAnalysis,
    risk_factors: RiskFactors,
) -> int:
    confidence = 50
    if skill_analysis.coverage >= 100:
        confidence += 25
    elif skill_analysis.coverage >= 80:
        confidence += 15
    elif skill_analysis.coverage >= 60:
        confidence += 5
    else:
        confidence -= 10
    if capacity_analysis.can_fit and capacity_analysis.projected_utilization <= COMFORTABLE_PROJECTION_PCT:
        confidence += 20
    elif capacity_analysis.can_fit:
        confidence += 10
    else:
        confidence -= 15
    confidence -= risk_factors.total
    return int(clamp(confidence))


def recommended_allocation_percent(estimated_effort: float, available_hours: float) -> int:
    if available_hours <= 0:
        return 0
    return int(clamp(round_half_up(estimated_effort / available_hours * 100), 10, 100))


def build_reasoning(
    skill_analysis: SkillAnalysis,
    capacity_analysis: CapacityAnalysis,
    experience_bonus: int,
    risk_factors: RiskFactors,
    max_utilization: float,
) -> List[str]:
    reasons: List[str] = []
    coverage = skill_analysis.coverage
    if coverage >= 100:
        reasons.append("Perfect skill match - covers all required skills")
    elif coverage >= 80:
        reasons.append(f"Strong skill match - covers {round_half_up(coverage)}% of requirements")
    elif coverage >= 50:
        reasons.append(
            f"Partial skill match - may need support for {len(skill_analysis.missing_skills)} skills"
        )
    else:
        reasons.append("Limited skill match - significant training may be required")

    projected = capacity_analysis.projected_utilization
    if not capacity_analysis.can_fit:
        reasons.append("Insufficient capacity - would require overallocation")
    elif projected <= max_utilization * 0.7:
        reasons.append("Excellent capacity - comfortable workload")
    elif projected <= max_utilization:
        reasons.append("Good capacity - manageable workload")
    else:
        reasons.append("Tight capacity - near maximum utilization")

    if experience_bonus >= 80:
        reasons.append("Highly experienced resource - excellent for complex work")
    elif experience_bonus >= 60:
        reasons.append("Experienced resource - good for standard complexity")

    total_risk = risk_factors.total
    if total_risk > 15:
        reasons.append("High risk assignment - multiple project conflicts")
    elif total_risk > 5:
        reasons.append("Moderate risk - some scheduling conflicts possible")
    else:
        reasons.append("Low risk assignment - clean availability")
    return reasons


class RecommendationEngine:
    """Ranks candidate resources for block requirements."""

    def __init__(self, config: Optional[PlanningConfig] = None) -> None:
        self.config = config or PlanningConfig()

    def max_utilization(self, preferences: Preferences) -> float:
        if preferences.max_utilization is not None:
            return float(preferences.max_utilization)
        return self.config.max_utilization

    def eligible_candidates(
        self,
        candidates: Iterable[Resource],
        availability_by_resource: Mapping[str, ResourceAvailability],
        preferences: Preferences,
    ) -> List[Resource]:
        excluded = set(preferences.exclude_resources)
        preferred = set(preferences.preferred_teams)
        eligible: List[Resource] = []
        for resource in candidates:
            if not resource.active or resource.id in excluded:
                continue
            if resource.id not in availability_by_resource:
                continue
            if preferred and not preferences.allow_cross_team_assignment and resource.home_team not in preferred:
                continue
            eligible.append(resource)
        return eligible

    def score_candidate(
        self,
        requirement: BlockRequirement,
        resource: Resource,
        availability: ResourceAvailability,
        preferences: Preferences,
    ) -> RecommendationScore:
        max_utilization = self.max_utilization(preferences)
        skill_analysis = calculate_skill_match(resource, requirement.required_skills)
        capacity_analysis = calculate_capacity_fit(requirement.estimated_effort, availability, max_utilization)
        experience = calculate_experience_bonus(resource, requirement, preferences.prioritize_experience)
        synergy = calculate_team_synergy(resource, requirement, self.config.team_specializations)
        availability_score = calculate_availability_score(availability, requirement)
        weighted = (
            skill_analysis.score * self.config.weight("skill")
            + capacity_analysis.score * self.config.weight("capacity")
            + experience * self.config.weight("experience")
            + synergy * self.config.weight("synergy")
            + availability_score * self.config.weight("availability")
        )
        risk = availability.risk_factors
        return RecommendationScore(
            resource_id=resource.id,
            resource_name=resource.name,
            home_team=resource.home_team,
            skill_analysis=skill_analysis,
            capacity_analysis=capacity_analysis,
            experience_bonus=experience,
            team_synergy=synergy,
            availability_score=availability_score,
            overall_score=int(clamp(round_half_up(weighted))),
            confidence=calculate_confidence(skill_analysis, capacity_analysis, risk),
            recommended_allocation_percent=recommended_allocation_percent(
                requirement.estimated_effort, availability.available_hours
            ),
            risk_factors=risk,
            reasoning=build_reasoning(skill_analysis, capacity_analysis, experience, risk, max_utilization),
        )

    def recommend(
        self,
        requirement: BlockRequirement,
        candidates: Iterable[Resource],
        availability_by_resource: Mapping[str, ResourceAvailability],
        preferences: Optional[Preferences] = None,
    ) -> List[RecommendationScore]:
        prefs = preferences or Preferences()
        scores = [
            self.score_candidate(requirement, resource, availability_by_resource[resource.id], prefs)
            for resource in self.eligible_candidates(candidates, availability_by_resource, prefs)
        ]
        scores.sort(key=lambda score: score.rank_key, reverse=True)
        top = scores[: self.config.top_recommendations]
        logger.debug(
            "Block %s: scored %d candidates, kept %d",
            requirement.block_code,
            len(scores),
            len(top),
        )
        return top
