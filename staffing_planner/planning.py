"""
Sequential block scheduling.

Turns the ordered block templates of a tier into a dated project plan, checks
the plan for structural problems and summarizes it for display. Blocks run
strictly one after another in ``sequence_index`` order; ``dependencies`` are
carried through untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Sequence

from dateutil.relativedelta import relativedelta

from .models import (
    BlockTemplate,
    PlanValidation,
    ProjectBlockPlan,
    ProjectPlan,
    SchedulingMode,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResult:
    plan: ProjectPlan
    validation: PlanValidation
    summary: Dict[str, object]
    mode: SchedulingMode

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    def to_dict(self) -> Dict[str, object]:
        return {
            "isValid": self.is_valid,
            "projectPlan": self.plan.to_dict(),
            "planningSummary": dict(self.summary),
            "validation": self.validation.to_dict(),
            "mode": self.mode.value,
        }


def add_weeks(value: date, weeks: int) -> date:
    return value + relativedelta(weeks=weeks)


def generate_plan(
    block_templates: Iterable[BlockTemplate],
    target_start_date: date,
    mode: SchedulingMode | str = SchedulingMode.STRICT_START,
) -> ProjectPlan:
    # priority_fit is accepted but schedules exactly like strict_start.
    scheduling_mode = SchedulingMode.parse(mode)
    ordered = sorted(block_templates, key=lambda template: template.sequence_index)
    blocks: List[ProjectBlockPlan] = []
    cursor = target_start_date
    for template in ordered:
        block_end = add_weeks(cursor, template.duration_weeks)
        blocks.append(
            ProjectBlockPlan(
                block_id=template.id,
                block_code=template.code,
                block_name=template.name,
                sequence_index=template.sequence_index,
                planned_start=cursor,
                planned_end=block_end,
                planned_duration_weeks=template.duration_weeks,
                dependencies=tuple(template.dependencies),
                required_skills_mix=dict(template.required_skills_mix),
                deliverables=tuple(template.deliverables),
            )
        )
        cursor = block_end
    total_weeks = sum(template.duration_weeks for template in ordered)
    project_end = blocks[-1].planned_end if blocks else target_start_date
    logger.debug(
        "Planned %d blocks (%s) from %s to %s",
        len(blocks),
        scheduling_mode.value,
        target_start_date.isoformat(),
        project_end.isoformat(),
    )
    return ProjectPlan(
        project_blocks=tuple(blocks),
        project_start=target_start_date,
        project_end=project_end,
        total_duration_weeks=total_weeks,
        total_blocks=len(blocks),
    )


def _sequence_gaps(indices: Sequence[int]) -> List[str]:
    ordered = sorted(indices)
    return [
        f"Sequence gap detected between index {previous} and {current}"
        for previous, current in zip(ordered, ordered[1:])
        if current != previous + 1
    ]


def validate_plan(plan: ProjectPlan) -> PlanValidation:
    errors: List[str] = []
    for block in plan.project_blocks:
        if block.planned_start >= block.planned_end:
            errors.append(f"Block {block.block_code}: Start date must be before end date")
        if block.planned_duration_weeks <= 0:
            errors.append(f"Block {block.block_code}: Duration must be positive")
    warnings = _sequence_gaps([block.sequence_index for block in plan.project_blocks])
    return PlanValidation(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


def format_display_date(value: date) -> str:
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def summarize_plan(plan: ProjectPlan) -> Dict[str, object]:
    return {
        "totalDurationWeeks": plan.total_duration_weeks,
        "totalBlocks": plan.total_blocks,
        "estimatedStartDate": format_display_date(plan.project_start),
        "estimatedEndDate": format_display_date(plan.project_end),
        "blocksWithDeliverables": sum(1 for block in plan.project_blocks if block.deliverables),
        "totalDeliverables": sum(len(block.deliverables) for block in plan.project_blocks),
    }


def plan_project(
    block_templates: Iterable[BlockTemplate],
    target_start_date: date,
    mode: SchedulingMode | str = SchedulingMode.STRICT_START,
) -> PlanResult:
    """Generate, validate and summarize a plan in one call.

    A plan that fails validation is still returned; callers decide whether to
    persist it by checking ``PlanResult.is_valid``.
    """
    scheduling_mode = SchedulingMode.parse(mode)
    plan = generate_plan(block_templates, target_start_date, scheduling_mode)
    validation = validate_plan(plan)
    if not validation.is_valid:
        logger.warning("Generated plan is invalid: %s", "; ".join(validation.errors))
    for warning in validation.warnings:
        logger.info("Plan warning: %s", warning)
    return PlanResult(
        plan=plan,
        validation=validation,
        summary=summarize_plan(plan),
        mode=scheduling_mode,
    )
