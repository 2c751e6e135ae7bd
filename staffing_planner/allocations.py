"""
Turning recommendations into weekly allocation records.

``distribute_block_hours`` spreads the hours one resource owes a block over the
block's weeks, ``bulk_create_allocations`` merges new records into an existing
set without duplicating natural keys, and ``validate_capacity`` checks a
proposed block -> resource -> hours table against what each resource can take
in a timeframe.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .availability import utilization_pct, week_buckets
from .curves import spread_hours
from .models import AllocationRecord, ProjectBlockPlan, Resource, Timeframe, week_start
from .recommendations import round_half_up

logger = logging.getLogger(__name__)

FULL_FULFILLMENT_PCT = 95.0
HIGH_UTILIZATION_PCT = 90.0
UNDERUTILIZED_PCT = 60.0


def _format_number(value: float) -> str:
    rounded = round(value, 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:g}"


@dataclass(frozen=True)
class AllocationPlanSummary:
    required_hours: float
    allocated_hours: float
    fulfillment_percentage: float
    overallocated_weeks: int
    warnings: Tuple[str, ...] = ()

    @property
    def can_fully_fulfill(self) -> bool:
        return self.fulfillment_percentage >= FULL_FULFILLMENT_PCT

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalRequiredHours": self.required_hours,
            "totalAllocatedHours": self.allocated_hours,
            "fulfillmentPercentage": self.fulfillment_percentage,
            "overAllocationCount": self.overallocated_weeks,
            "hasOverAllocations": self.overallocated_weeks > 0,
            "canFullyFulfill": self.can_fully_fulfill,
            "warnings": list(self.warnings),
        }


def block_weeks(block: ProjectBlockPlan) -> List[date]:
    """Monday of every planned week of the block."""
    weeks: List[date] = []
    current = block.planned_start
    while current < block.planned_end:
        weeks.append(week_start(current))
        current += timedelta(days=7)
    return weeks


def distribute_block_hours(
    block: ProjectBlockPlan,
    resource: Resource,
    required_hours: float,
    existing_records: Iterable[AllocationRecord] = (),
    *,
    curve: object = "uniform",
    allow_overallocation: bool = False,
    overallocation_factor: float = 1.2,
    project_id: Optional[str] = None,
) -> Tuple[List[AllocationRecord], AllocationPlanSummary]:
    """Spread ``required_hours`` for one resource across the block's weeks.

    Each week receives its share of the effort curve rounded up to whole
    hours, limited by what is left of the resource's weekly capacity after
    existing allocations in the same Monday-aligned week. With
    ``allow_overallocation`` the weekly ceiling is capacity times
    ``overallocation_factor``.
    """
    weeks = block_weeks(block)
    shares = spread_hours(required_hours, len(weeks), curve)
    booked: Dict[date, float] = defaultdict(float)
    for record in existing_records:
        if record.resource_id == resource.id:
            booked[week_start(record.week_start_date)] += record.allocated_hours

    capacity = resource.capacity_hours_per_week
    ceiling = capacity * overallocation_factor if allow_overallocation else capacity
    records: List[AllocationRecord] = []
    overallocated_weeks = 0
    for week, wanted in zip(weeks, shares):
        already = booked[week]
        hours = min(wanted, max(0.0, ceiling - already))
        if hours <= 0:
            continue
        records.append(
            AllocationRecord(
                resource_id=resource.id,
                block_id=block.block_id,
                week_start_date=week,
                allocated_hours=hours,
                project_id=project_id,
            )
        )
        if already + hours > capacity:
            overallocated_weeks += 1

    allocated = sum(record.allocated_hours for record in records)
    if required_hours > 0:
        fulfillment = round(allocated / required_hours * 100, 2)
    else:
        fulfillment = 0.0
    warnings: List[str] = []
    if overallocated_weeks:
        warnings.append(f"{overallocated_weeks} allocations would result in over-utilization")
    if required_hours > 0 and fulfillment < 100:
        warnings.append(f"Only {_format_number(fulfillment)}% of required hours can be allocated")
    summary = AllocationPlanSummary(
        required_hours=required_hours,
        allocated_hours=allocated,
        fulfillment_percentage=fulfillment,
        overallocated_weeks=overallocated_weeks,
        warnings=tuple(warnings),
    )
    logger.debug(
        "Block %s / %s: %.1f of %.1f hours over %d weeks",
        block.block_code,
        resource.id,
        allocated,
        required_hours,
        len(weeks),
    )
    return records, summary


@dataclass(frozen=True)
class BulkAllocationResult:
    created: Tuple[AllocationRecord, ...]
    skipped: Tuple[AllocationRecord, ...]


def bulk_create_allocations(
    existing: Iterable[AllocationRecord],
    new_records: Iterable[AllocationRecord],
) -> BulkAllocationResult:
    seen = {record.key for record in existing}
    created: List[AllocationRecord] = []
    skipped: List[AllocationRecord] = []
    for record in new_records:
        if record.key in seen:
            logger.debug(
                "Allocation for block %s, resource %s, week %s already exists; skipping",
                record.block_id,
                record.resource_id,
                record.week_start_date.isoformat(),
            )
            skipped.append(record)
            continue
        seen.add(record.key)
        created.append(record)
    logger.info("Created %d allocations, skipped %d existing", len(created), len(skipped))
    return BulkAllocationResult(created=tuple(created), skipped=tuple(skipped))


@dataclass(frozen=True)
class CapacityConflict:
    kind: str
    severity: str
    description: str
    period: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.kind,
            "severity": self.severity,
            "description": self.description,
            "period": self.period,
        }


@dataclass(frozen=True)
class ResourceCapacity:
    resource_id: str
    available_hours: float
    total_capacity: float
    utilization_percentage: float
    conflicts: Tuple[CapacityConflict, ...] = ()
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "resourceId": self.resource_id,
            "availableHours": self.available_hours,
            "totalCapacity": self.total_capacity,
            "utilizationPercentage": self.utilization_percentage,
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "recommendations": list(self.recommendations),
        }


@dataclass
class CapacityValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    resource_capacities: List[ResourceCapacity] = field(default_factory=list)
    overall_utilization: float = 0.0

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, object]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
            "resourceCapacities": [item.to_dict() for item in self.resource_capacities],
            "overallUtilization": self.overall_utilization,
        }


def timeframe_weeks(timeframe: Timeframe) -> int:
    return len(week_buckets(timeframe))


def _proposed_resource_ids(proposed: Mapping[str, Mapping[str, float]]) -> List[str]:
    ordered: Dict[str, None] = {}
    for block_hours in proposed.values():
        for resource_id, hours in block_hours.items():
            if hours > 0:
                ordered.setdefault(resource_id, None)
    return list(ordered)


def _check_resource(
    resource: Resource,
    new_hours: float,
    existing: Sequence[AllocationRecord],
    weeks: int,
    period: str,
    result: CapacityValidation,
) -> ResourceCapacity:
    max_capacity = weeks * resource.capacity_hours_per_week
    existing_hours = sum(record.allocated_hours for record in existing)
    total = new_hours + existing_hours
    utilization = utilization_pct(total, max_capacity)
    conflicts: List[CapacityConflict] = []
    advice: List[str] = []

    if utilization > 100:
        overage = total - max_capacity
        severity = "high" if overage > max_capacity * 0.2 else "medium"
        conflicts.append(
            CapacityConflict(
                "overallocation",
                severity,
                f"Overallocated by {round_half_up(overage)} hours "
                f"({round_half_up(utilization - 100)}% over capacity)",
                period,
            )
        )
        result.errors.append(f"{resource.name} is overallocated by {round_half_up(overage)} hours")
        advice.append(f"Reduce allocation by {round_half_up(overage)} hours or extend timeline")
    elif utilization > HIGH_UTILIZATION_PCT:
        conflicts.append(
            CapacityConflict(
                "overallocation", "low", f"High utilization ({round_half_up(utilization)}%)", period
            )
        )
        result.warnings.append(f"{resource.name} has high utilization ({round_half_up(utilization)}%)")
        advice.append("Consider adding buffer time or reducing allocation slightly")

    projects = sorted({record.project_id or record.block_id for record in existing})
    if projects:
        severity = "high" if len(projects) > 2 else "medium"
        conflicts.append(
            CapacityConflict(
                "project_overlap",
                severity,
                f"Concurrent assignments to {len(projects)} other project(s): {', '.join(projects)}",
                period,
            )
        )
        if len(projects) > 2:
            result.warnings.append(f"{resource.name} is assigned to {len(projects)} concurrent projects")
            advice.append("Consider reducing concurrent project assignments for better focus")

    if utilization < UNDERUTILIZED_PCT and new_hours > 0:
        advice.append(
            f"{resource.name} is underutilized ({round_half_up(utilization)}%) - consider increasing allocation"
        )

    return ResourceCapacity(
        resource_id=resource.id,
        available_hours=max(0.0, max_capacity - existing_hours),
        total_capacity=max_capacity,
        utilization_percentage=utilization,
        conflicts=tuple(conflicts),
        recommendations=tuple(advice),
    )


def validate_capacity(
    proposed: Mapping[str, Mapping[str, float]],
    resources: Iterable[Resource],
    existing_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> CapacityValidation:
    """Check proposed hours (block id -> resource id -> hours) against capacity."""
    result = CapacityValidation()
    resource_ids = _proposed_resource_ids(proposed)
    if not resource_ids:
        return result

    by_id = {resource.id: resource for resource in resources if resource.active}
    buckets = set(week_buckets(timeframe))
    in_window: Dict[str, List[AllocationRecord]] = defaultdict(list)
    for record in existing_records:
        if week_start(record.week_start_date) in buckets:
            in_window[record.resource_id].append(record)

    weeks = len(buckets)
    period = f"{timeframe.start_date.isoformat()} - {timeframe.end_date.isoformat()}"
    total_capacity = 0.0
    for resource_id in resource_ids:
        resource = by_id.get(resource_id)
        if resource is None:
            result.errors.append(f"Resource {resource_id} not found or inactive")
            continue
        new_hours = sum(block_hours.get(resource_id, 0) for block_hours in proposed.values())
        capacity = _check_resource(resource, new_hours, in_window[resource_id], weeks, period, result)
        total_capacity += capacity.total_capacity
        result.resource_capacities.append(capacity)

    required = sum(sum(block_hours.values()) for block_hours in proposed.values())
    result.overall_utilization = utilization_pct(required, total_capacity)
    if result.overall_utilization < 50:
        result.suggestions.append(
            "Project is under-utilizing team capacity. Consider adding more features or reducing team size."
        )
    elif result.overall_utilization > 90:
        result.suggestions.append(
            "Project is near capacity limits. Consider extending timeline or adding resources."
        )
    if not result.errors and not result.warnings:
        result.suggestions.append("Resource allocation looks optimal for the project timeline.")
    if not result.is_valid:
        logger.warning("Capacity validation failed: %s", "; ".join(result.errors))
    return result
