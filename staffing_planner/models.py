from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


SkillId = str
BlockCode = str

MAX_SKILL_LEVEL = 5


def week_start(value: date) -> date:
    """Monday of the week containing ``value``."""
    return value - timedelta(days=value.weekday())


DEFAULT_SCORE_WEIGHTS: Dict[str, float] = {
    "skill": 0.35,
    "capacity": 0.25,
    "experience": 0.15,
    "synergy": 0.10,
    "availability": 0.15,
}

DEFAULT_TEAM_SPECIALIZATIONS: Dict[str, Tuple[str, ...]] = {
    "Backend": ("api", "database", "server"),
    "Frontend": ("ui", "react", "javascript"),
    "DevOps": ("aws", "docker", "kubernetes"),
    "QA": ("testing", "automation", "quality"),
    "Data": ("analytics", "python", "sql"),
}


class SchedulingMode(str, Enum):
    STRICT_START = "strict_start"
    PRIORITY_FIT = "priority_fit"

    @classmethod
    def parse(cls, value: object) -> "SchedulingMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(mode.value for mode in cls)
            raise ValueError(f"mode must be one of: {allowed} (got {value!r})") from exc


@dataclass(frozen=True)
class Deliverable:
    id: str
    code: str
    name: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
        }


@dataclass(frozen=True)
class BlockTemplate:
    """Reusable unit of work as configured on a tier."""

    id: str
    code: str
    name: str
    sequence_index: int
    duration_weeks: int
    required_skills_mix: Dict[SkillId, float] = field(default_factory=dict)
    dependencies: Tuple[BlockCode, ...] = ()
    deliverables: Tuple[Deliverable, ...] = ()


@dataclass(frozen=True)
class Tier:
    """Named, ordered set of block templates for one project type."""

    id: str
    code: str
    name: str
    project_type_id: str
    blocks: Tuple[BlockTemplate, ...] = ()
    description: Optional[str] = None


@dataclass(frozen=True)
class ProjectBlockPlan:
    block_id: str
    block_code: str
    block_name: str
    sequence_index: int
    planned_start: date
    planned_end: date
    planned_duration_weeks: int
    dependencies: Tuple[BlockCode, ...] = ()
    required_skills_mix: Dict[SkillId, float] = field(default_factory=dict)
    deliverables: Tuple[Deliverable, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "blockId": self.block_id,
            "blockCode": self.block_code,
            "blockName": self.block_name,
            "sequenceIndex": self.sequence_index,
            "plannedStart": self.planned_start.isoformat(),
            "plannedEnd": self.planned_end.isoformat(),
            "plannedDurationWeeks": self.planned_duration_weeks,
            "dependencies": list(self.dependencies),
            "requiredSkillsMix": dict(self.required_skills_mix),
            "deliverables": [item.to_dict() for item in self.deliverables],
        }


@dataclass(frozen=True)
class ProjectPlan:
    project_blocks: Tuple[ProjectBlockPlan, ...]
    project_start: date
    project_end: date
    total_duration_weeks: int
    total_blocks: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "projectBlocks": [block.to_dict() for block in self.project_blocks],
            "projectStart": self.project_start.isoformat(),
            "projectEnd": self.project_end.isoformat(),
            "totalDurationWeeks": self.total_duration_weeks,
            "totalBlocks": self.total_blocks,
        }


@dataclass(frozen=True)
class PlanValidation:
    is_valid: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class Resource:
    """Staff member snapshot with skill levels keyed by skill id."""

    id: str
    name: str
    skills: Dict[SkillId, int]
    capacity_hours_per_week: float
    home_team: str
    employment_type: str = ""
    active: bool = True

    def average_skill_level(self) -> float:
        if not self.skills:
            return 0.0
        return sum(self.skills.values()) / len(self.skills)


@dataclass(frozen=True)
class AllocationRecord:
    resource_id: str
    block_id: str
    week_start_date: date
    allocated_hours: float
    project_id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, date]:
        return (self.block_id, self.resource_id, week_start(self.week_start_date))

    def to_dict(self) -> Dict[str, object]:
        return {
            "projectId": self.project_id,
            "projectBlockId": self.block_id,
            "resourceId": self.resource_id,
            "weekStartDate": self.week_start_date.isoformat(),
            "allocatedHours": self.allocated_hours,
        }


@dataclass(frozen=True)
class Timeframe:
    start_date: date
    end_date: date

    def to_dict(self) -> Dict[str, str]:
        return {"startDate": self.start_date.isoformat(), "endDate": self.end_date.isoformat()}


@dataclass(frozen=True)
class RiskFactors:
    overallocation: int = 0
    high_utilization: int = 0
    project_conflicts: int = 0

    @property
    def total(self) -> int:
        return self.overallocation + self.high_utilization + self.project_conflicts

    def to_dict(self) -> Dict[str, int]:
        return {
            "overallocation": self.overallocation,
            "highUtilization": self.high_utilization,
            "projectConflicts": self.project_conflicts,
        }


@dataclass(frozen=True)
class ResourceAvailability:
    resource: Resource
    total_capacity_hours: float
    total_allocated_hours: float
    available_hours: float
    utilization_percentage: float
    is_overallocated: bool
    risk_factors: RiskFactors
    concurrent_projects: int = 0

    @property
    def has_capacity(self) -> bool:
        return self.available_hours > 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "resourceId": self.resource.id,
            "totalCapacityHours": self.total_capacity_hours,
            "totalAllocatedHours": self.total_allocated_hours,
            "availableHours": self.available_hours,
            "utilizationPercentage": self.utilization_percentage,
            "isOverallocated": self.is_overallocated,
            "hasCapacity": self.has_capacity,
            "riskFactors": self.risk_factors.to_dict(),
            "concurrentProjects": self.concurrent_projects,
        }


@dataclass(frozen=True)
class RequiredSkill:
    skill_id: SkillId
    skill_name: str
    category: str = ""
    minimum_level: int = 1
    importance: int = 5

    def to_dict(self) -> Dict[str, object]:
        return {
            "skillId": self.skill_id,
            "skillName": self.skill_name,
            "category": self.category,
            "minimumLevel": self.minimum_level,
            "importance": self.importance,
        }


@dataclass(frozen=True)
class BlockRequirement:
    block_id: str
    block_name: str
    block_code: str
    duration: int
    required_skills: Tuple[RequiredSkill, ...]
    complexity: int
    priority: int
    estimated_effort: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "blockId": self.block_id,
            "blockName": self.block_name,
            "blockCode": self.block_code,
            "duration": self.duration,
            "requiredSkills": [skill.to_dict() for skill in self.required_skills],
            "complexity": self.complexity,
            "priority": self.priority,
            "estimatedEffort": self.estimated_effort,
        }


@dataclass(frozen=True)
class Preferences:
    preferred_teams: Tuple[str, ...] = ()
    exclude_resources: Tuple[str, ...] = ()
    max_utilization: Optional[float] = None
    prioritize_experience: bool = False
    allow_cross_team_assignment: bool = False


@dataclass(frozen=True)
class SkillAnalysis:
    score: float
    coverage: float
    matching_skills: Tuple[str, ...]
    missing_skills: Tuple[str, ...]
    skill_breakdown: Tuple[Tuple[str, int, bool], ...] = ()
    matching_skill_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "score": self.score,
            "coverage": self.coverage,
            "matchingSkills": list(self.matching_skills),
            "missingSkills": list(self.missing_skills),
            "skillBreakdown": [
                {"skill": skill, "level": level, "required": required}
                for skill, level, required in self.skill_breakdown
            ],
        }


@dataclass(frozen=True)
class CapacityAnalysis:
    score: int
    can_fit: bool
    available_hours: float
    required_hours: float
    current_utilization: float
    projected_utilization: float

    @property
    def utilization_impact(self) -> float:
        return self.projected_utilization - self.current_utilization

    def to_dict(self) -> Dict[str, object]:
        return {
            "score": self.score,
            "canFit": self.can_fit,
            "availableHours": self.available_hours,
            "requiredHours": self.required_hours,
            "currentUtilization": self.current_utilization,
            "projectedUtilization": self.projected_utilization,
            "utilizationImpact": self.utilization_impact,
        }


@dataclass
class RecommendationScore:
    """Score card for one resource against one block; the optimizer mutates it."""

    resource_id: str
    resource_name: str
    home_team: str
    skill_analysis: SkillAnalysis
    capacity_analysis: CapacityAnalysis
    experience_bonus: int
    team_synergy: int
    availability_score: int
    overall_score: int
    confidence: int
    recommended_allocation_percent: int
    risk_factors: RiskFactors = field(default_factory=RiskFactors)
    reasoning: List[str] = field(default_factory=list)

    @property
    def capacity_fit(self) -> int:
        return self.capacity_analysis.score

    @property
    def rank_key(self) -> int:
        return self.overall_score + self.confidence

    def to_dict(self) -> Dict[str, object]:
        return {
            "resourceId": self.resource_id,
            "resourceName": self.resource_name,
            "homeTeam": self.home_team,
            "overallScore": self.overall_score,
            "confidence": self.confidence,
            "recommendedAllocationPercent": self.recommended_allocation_percent,
            "analysis": {
                "skillMatch": self.skill_analysis.to_dict(),
                "capacityFit": self.capacity_analysis.to_dict(),
                "experienceBonus": self.experience_bonus,
                "teamSynergy": self.team_synergy,
                "availability": self.availability_score,
                "riskFactors": self.risk_factors.to_dict(),
            },
            "reasoning": list(self.reasoning),
        }


@dataclass(frozen=True)
class TeamComposition:
    team_name: str
    members: Tuple[RecommendationScore, ...]
    avg_score: float
    avg_confidence: float
    skill_coverage: float

    @property
    def composition_score(self) -> float:
        return self.avg_score + self.avg_confidence + self.skill_coverage

    def to_dict(self) -> Dict[str, object]:
        return {
            "teamName": self.team_name,
            "members": [member.resource_id for member in self.members],
            "avgScore": round(self.avg_score, 2),
            "avgConfidence": round(self.avg_confidence, 2),
            "skillCoverage": round(self.skill_coverage, 2),
            "compositionScore": round(self.composition_score, 2),
        }


@dataclass
class BlockRecommendation:
    block_id: str
    block_name: str
    block_code: str
    requirement: BlockRequirement
    recommendations: List[RecommendationScore]
    recommended_team: Optional[TeamComposition] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "blockId": self.block_id,
            "blockName": self.block_name,
            "blockCode": self.block_code,
            "requirement": self.requirement.to_dict(),
            "recommendations": [rec.to_dict() for rec in self.recommendations],
            "recommendedTeam": self.recommended_team.to_dict() if self.recommended_team else None,
        }


@dataclass(frozen=True)
class PlanningConfig:
    max_utilization: float = 85.0
    top_recommendations: int = 10
    overallocation_penalty: int = 20
    allocation_limit_pct: float = 100.0
    score_weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_SCORE_WEIGHTS))
    team_specializations: Mapping[str, Sequence[str]] = field(
        default_factory=lambda: dict(DEFAULT_TEAM_SPECIALIZATIONS)
    )
    effort_curve: object = "uniform"
    overallocation_factor: float = 1.2
    default_mode: SchedulingMode = SchedulingMode.STRICT_START
    logging_level: str = "INFO"

    def weight(self, key: str) -> float:
        if key not in self.score_weights:
            raise KeyError(f"score weight '{key}' missing in configuration")
        return float(self.score_weights[key])

    def specializations_for(self, team: str) -> Tuple[str, ...]:
        return tuple(self.team_specializations.get(team, ()))
