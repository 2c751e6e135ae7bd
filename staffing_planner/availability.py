"""
Capacity and utilization arithmetic over Monday-aligned week buckets.

Every function here is a pure calculation over snapshots the caller already
fetched: resources, their allocation records and a timeframe.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set

import pandas as pd

from .models import (
    AllocationRecord,
    Resource,
    ResourceAvailability,
    RiskFactors,
    Timeframe,
    week_start,
)

logger = logging.getLogger(__name__)

OVERALLOCATION_RISK = 10
HIGH_UTILIZATION_RISK = 5
HIGH_UTILIZATION_THRESHOLD = 90.0

WEEKLY_COLUMNS = [
    "week_start",
    "week_end",
    "capacity_hours",
    "allocated_hours",
    "available_hours",
    "utilization_pct",
    "is_overallocated",
]

TEAM_COLUMNS = [
    "team",
    "resource_count",
    "total_capacity",
    "total_allocated",
    "total_available",
    "utilization_pct",
]

WEEKLY_TEAM_COLUMNS = [
    "week_start",
    "week_end",
    "team",
    "resource_count",
    "capacity",
    "allocated",
    "available",
    "utilization_pct",
]


@dataclass(frozen=True)
class CapacitySummary:
    resource_count: int
    total_capacity_hours: float
    total_allocated_hours: float
    total_available_hours: float
    utilization_percentage: float
    available_resources: int
    overallocated_resources: int

    @property
    def is_overallocated(self) -> bool:
        return self.total_allocated_hours > self.total_capacity_hours

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalResources": self.resource_count,
            "totalCapacityHours": self.total_capacity_hours,
            "totalAllocatedHours": self.total_allocated_hours,
            "totalAvailableHours": self.total_available_hours,
            "utilizationPercentage": self.utilization_percentage,
            "availableResources": self.available_resources,
            "overallocatedResources": self.overallocated_resources,
            "isOverallocated": self.is_overallocated,
        }


def week_buckets(timeframe: Timeframe) -> List[date]:
    buckets: List[date] = []
    current = week_start(timeframe.start_date)
    while current <= timeframe.end_date:
        buckets.append(current)
        current += timedelta(days=7)
    return buckets


def utilization_pct(allocated: float, capacity: float) -> float:
    if capacity <= 0:
        return 0.0
    return allocated / capacity * 100


def conflict_score(project_count: int) -> int:
    if project_count <= 1:
        return 0
    if project_count <= 2:
        return 2
    if project_count <= 3:
        return 5
    return 10


def _records_in_buckets(
    resource_id: str,
    records: Iterable[AllocationRecord],
    buckets: Set[date],
) -> List[AllocationRecord]:
    return [
        record
        for record in records
        if record.resource_id == resource_id and week_start(record.week_start_date) in buckets
    ]


def _project_key(record: AllocationRecord) -> str:
    return record.project_id or record.block_id


def compute_availability(
    resource: Resource,
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> ResourceAvailability:
    buckets = week_buckets(timeframe)
    matched = _records_in_buckets(resource.id, allocation_records, set(buckets))
    capacity = resource.capacity_hours_per_week * len(buckets)
    allocated = sum(record.allocated_hours for record in matched)
    utilization = utilization_pct(allocated, capacity)
    overallocated = allocated > capacity
    projects = {_project_key(record) for record in matched}
    risk = RiskFactors(
        overallocation=OVERALLOCATION_RISK if overallocated else 0,
        high_utilization=HIGH_UTILIZATION_RISK if utilization > HIGH_UTILIZATION_THRESHOLD else 0,
        project_conflicts=conflict_score(len(projects)),
    )
    return ResourceAvailability(
        resource=resource,
        total_capacity_hours=capacity,
        total_allocated_hours=allocated,
        available_hours=max(0.0, capacity - allocated),
        utilization_percentage=utilization,
        is_overallocated=overallocated,
        risk_factors=risk,
        concurrent_projects=len(projects),
    )


def compute_availability_map(
    resources: Iterable[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> Dict[str, ResourceAvailability]:
    records = list(allocation_records)
    availability = {
        resource.id: compute_availability(resource, records, timeframe) for resource in resources
    }
    logger.debug("Computed availability for %d resources", len(availability))
    return availability


def weekly_availability(
    resource: Resource,
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> pd.DataFrame:
    """Per-week figures for one resource; records match on exact week start."""
    hours_by_week: Dict[date, float] = defaultdict(float)
    for record in allocation_records:
        if record.resource_id == resource.id:
            hours_by_week[record.week_start_date] += record.allocated_hours
    capacity = resource.capacity_hours_per_week
    rows = []
    for bucket in week_buckets(timeframe):
        allocated = hours_by_week.get(bucket, 0.0)
        rows.append(
            {
                "week_start": bucket,
                "week_end": bucket + timedelta(days=6),
                "capacity_hours": capacity,
                "allocated_hours": allocated,
                "available_hours": max(0.0, capacity - allocated),
                "utilization_pct": round(utilization_pct(allocated, capacity), 2),
                "is_overallocated": allocated > capacity,
            }
        )
    return pd.DataFrame(rows, columns=WEEKLY_COLUMNS)


def _active(resources: Iterable[Resource]) -> List[Resource]:
    return [resource for resource in resources if resource.active]


def aggregate_availability(
    resources: Iterable[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> CapacitySummary:
    members = _active(resources)
    availability = compute_availability_map(members, allocation_records, timeframe)
    capacity = sum(item.total_capacity_hours for item in availability.values())
    allocated = sum(item.total_allocated_hours for item in availability.values())
    return CapacitySummary(
        resource_count=len(members),
        total_capacity_hours=capacity,
        total_allocated_hours=allocated,
        total_available_hours=max(0.0, capacity - allocated),
        utilization_percentage=utilization_pct(allocated, capacity),
        available_resources=sum(1 for item in availability.values() if item.has_capacity),
        overallocated_resources=sum(1 for item in availability.values() if item.is_overallocated),
    )


def skill_capacity(
    resources: Iterable[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
    skill_id: str,
) -> CapacitySummary:
    skilled = [resource for resource in resources if skill_id in resource.skills]
    return aggregate_availability(skilled, allocation_records, timeframe)


def _availability_frame(
    resources: Sequence[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> pd.DataFrame:
    availability = compute_availability_map(resources, allocation_records, timeframe)
    return pd.DataFrame(
        [
            {
                "resource_id": resource.id,
                "team": resource.home_team,
                "capacity": availability[resource.id].total_capacity_hours,
                "allocated": availability[resource.id].total_allocated_hours,
            }
            for resource in resources
        ],
        columns=["resource_id", "team", "capacity", "allocated"],
    )


def team_capacity(
    resources: Iterable[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
    team: Optional[str] = None,
) -> pd.DataFrame:
    members = _active(resources)
    if team:
        members = [resource for resource in members if team.lower() in resource.home_team.lower()]
    frame = _availability_frame(members, allocation_records, timeframe)
    if frame.empty:
        return pd.DataFrame(columns=TEAM_COLUMNS)
    grouped = (
        frame.groupby("team", sort=True)
        .agg(
            resource_count=("resource_id", "count"),
            total_capacity=("capacity", "sum"),
            total_allocated=("allocated", "sum"),
        )
        .reset_index()
    )
    grouped["total_available"] = (grouped["total_capacity"] - grouped["total_allocated"]).clip(lower=0.0)
    grouped["utilization_pct"] = [
        round(utilization_pct(allocated, capacity), 2)
        for allocated, capacity in zip(grouped["total_allocated"], grouped["total_capacity"])
    ]
    return grouped[TEAM_COLUMNS]


def weekly_capacity(
    resources: Iterable[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> pd.DataFrame:
    """Capacity per week and team; records match on exact week start."""
    members = _active(resources)
    team_of = {resource.id: resource.home_team for resource in members}
    allocated: Dict[tuple, float] = defaultdict(float)
    for record in allocation_records:
        team = team_of.get(record.resource_id)
        if team is not None:
            allocated[(record.week_start_date, team)] += record.allocated_hours
    teams: Dict[str, List[Resource]] = defaultdict(list)
    for resource in members:
        teams[resource.home_team].append(resource)
    rows = []
    for bucket in week_buckets(timeframe):
        for team_name in sorted(teams):
            capacity = sum(resource.capacity_hours_per_week for resource in teams[team_name])
            hours = allocated.get((bucket, team_name), 0.0)
            rows.append(
                {
                    "week_start": bucket,
                    "week_end": bucket + timedelta(days=6),
                    "team": team_name,
                    "resource_count": len(teams[team_name]),
                    "capacity": capacity,
                    "allocated": hours,
                    "available": max(0.0, capacity - hours),
                    "utilization_pct": round(utilization_pct(hours, capacity), 2),
                }
            )
    return pd.DataFrame(rows, columns=WEEKLY_TEAM_COLUMNS)


AVAILABILITY_COLUMNS = [
    "resource_id",
    "name",
    "home_team",
    "active",
    "total_capacity_hours",
    "total_allocated_hours",
    "available_hours",
    "utilization_pct",
    "is_overallocated",
    "concurrent_projects",
    "risk_total",
]


def availability_table(
    resources: Iterable[Resource],
    allocation_records: Iterable[AllocationRecord],
    timeframe: Timeframe,
) -> pd.DataFrame:
    members = list(resources)
    availability = compute_availability_map(members, allocation_records, timeframe)
    rows = []
    for resource in members:
        item = availability[resource.id]
        rows.append(
            {
                "resource_id": resource.id,
                "name": resource.name,
                "home_team": resource.home_team,
                "active": resource.active,
                "total_capacity_hours": item.total_capacity_hours,
                "total_allocated_hours": item.total_allocated_hours,
                "available_hours": item.available_hours,
                "utilization_pct": round(item.utilization_percentage, 2),
                "is_overallocated": item.is_overallocated,
                "concurrent_projects": item.concurrent_projects,
                "risk_total": item.risk_factors.total,
            }
        )
    return pd.DataFrame(rows, columns=AVAILABILITY_COLUMNS)
