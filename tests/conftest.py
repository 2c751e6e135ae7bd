from datetime import date
from typing import Dict, Optional, Sequence

import pytest

from staffing_planner.models import (
    BlockRequirement,
    BlockTemplate,
    CapacityAnalysis,
    RecommendationScore,
    RequiredSkill,
    Resource,
    ResourceAvailability,
    RiskFactors,
    SkillAnalysis,
    Timeframe,
)

FOUR_WEEKS = Timeframe(date(2024, 1, 1), date(2024, 1, 28))


def _resource(
    resource_id: str = "r1",
    *,
    name: Optional[str] = None,
    skills: Optional[Dict[str, int]] = None,
    capacity: float = 40.0,
    team: str = "Backend",
    employment: str = "",
    active: bool = True,
) -> Resource:
    return Resource(
        id=resource_id,
        name=name or resource_id.upper(),
        skills=dict(skills or {}),
        capacity_hours_per_week=capacity,
        home_team=team,
        employment_type=employment,
        active=active,
    )


def _requirement(
    block_id: str = "b1",
    *,
    skills: Sequence[str] = (),
    effort: float = 40.0,
    complexity: int = 5,
    priority: int = 5,
    duration: int = 2,
) -> BlockRequirement:
    return BlockRequirement(
        block_id=block_id,
        block_name=f"Block {block_id}",
        block_code=block_id.upper(),
        duration=duration,
        required_skills=tuple(RequiredSkill(skill_id=skill, skill_name=skill.title()) for skill in skills),
        complexity=complexity,
        priority=priority,
        estimated_effort=effort,
    )


def _availability(
    resource: Resource,
    *,
    capacity: float = 160.0,
    allocated: float = 0.0,
    risk: RiskFactors = RiskFactors(),
    projects: int = 0,
) -> ResourceAvailability:
    return ResourceAvailability(
        resource=resource,
        total_capacity_hours=capacity,
        total_allocated_hours=allocated,
        available_hours=max(0.0, capacity - allocated),
        utilization_percentage=allocated / capacity * 100 if capacity else 0.0,
        is_overallocated=allocated > capacity,
        risk_factors=risk,
        concurrent_projects=projects,
    )


def _template(code: str, sequence_index: int, weeks: int, **kwargs) -> BlockTemplate:
    return BlockTemplate(
        id=kwargs.pop("id", code.lower()),
        code=code,
        name=kwargs.pop("name", f"{code} block"),
        sequence_index=sequence_index,
        duration_weeks=weeks,
        **kwargs,
    )


def _score(
    resource_id: str,
    *,
    overall: int,
    confidence: int = 50,
    allocation: int = 50,
    team: str = "Backend",
    matching: Sequence[str] = (),
) -> RecommendationScore:
    return RecommendationScore(
        resource_id=resource_id,
        resource_name=resource_id.upper(),
        home_team=team,
        skill_analysis=SkillAnalysis(
            score=0.0,
            coverage=0.0,
            matching_skills=tuple(skill.title() for skill in matching),
            missing_skills=(),
            matching_skill_ids=tuple(matching),
        ),
        capacity_analysis=CapacityAnalysis(
            score=100,
            can_fit=True,
            available_hours=160.0,
            required_hours=40.0,
            current_utilization=0.0,
            projected_utilization=25.0,
        ),
        experience_bonus=50,
        team_synergy=50,
        availability_score=80,
        overall_score=overall,
        confidence=confidence,
        recommended_allocation_percent=allocation,
        reasoning=["Low risk assignment - clean availability"],
    )


@pytest.fixture
def make_resource():
    return _resource


@pytest.fixture
def make_requirement():
    return _requirement


@pytest.fixture
def make_availability():
    return _availability


@pytest.fixture
def make_template():
    return _template


@pytest.fixture
def make_score():
    return _score


@pytest.fixture
def four_weeks() -> Timeframe:
    return FOUR_WEEKS
