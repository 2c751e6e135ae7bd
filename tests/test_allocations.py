from datetime import date

import pytest

from staffing_planner.allocations import (
    block_weeks,
    bulk_create_allocations,
    distribute_block_hours,
    timeframe_weeks,
    validate_capacity,
)
from staffing_planner.models import AllocationRecord, ProjectBlockPlan, Timeframe


@pytest.fixture
def block() -> ProjectBlockPlan:
    return ProjectBlockPlan(
        block_id="b1",
        block_code="BUILD",
        block_name="Build",
        sequence_index=1,
        planned_start=date(2024, 1, 1),
        planned_end=date(2024, 1, 22),
        planned_duration_weeks=3,
    )


def _record(week, hours, *, resource_id="r1", block_id="other", project_id=None):
    return AllocationRecord(
        resource_id=resource_id,
        block_id=block_id,
        week_start_date=week,
        allocated_hours=hours,
        project_id=project_id,
    )


def test_block_weeks_step_from_planned_start(block):
    assert block_weeks(block) == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]


def test_uniform_distribution_rounds_each_week_up(block, make_resource):
    records, summary = distribute_block_hours(block, make_resource(), 100, project_id="p1")

    assert [record.allocated_hours for record in records] == [34.0, 34.0, 34.0]
    assert {record.project_id for record in records} == {"p1"}
    assert {record.block_id for record in records} == {"b1"}
    assert summary.allocated_hours == 102
    assert summary.fulfillment_percentage == 102.0
    assert summary.warnings == ()
    assert summary.can_fully_fulfill


def test_existing_bookings_cap_the_week(block, make_resource):
    existing = [_record(date(2024, 1, 8), 30), _record(date(2024, 1, 8), 99, resource_id="r2")]

    records, summary = distribute_block_hours(block, make_resource(), 100, existing)

    assert [record.allocated_hours for record in records] == [34.0, 10.0, 34.0]
    assert summary.fulfillment_percentage == 78.0
    assert summary.overallocated_weeks == 0
    assert summary.warnings == ("Only 78% of required hours can be allocated",)


def test_overallocation_allows_twenty_percent_extra(block, make_resource):
    existing = [_record(date(2024, 1, 8), 30)]

    records, summary = distribute_block_hours(block, make_resource(), 100, existing, allow_overallocation=True)

    assert [record.allocated_hours for record in records] == [34.0, 18.0, 34.0]
    assert summary.overallocated_weeks == 1
    assert summary.warnings == (
        "1 allocations would result in over-utilization",
        "Only 86% of required hours can be allocated",
    )


def test_fully_booked_weeks_get_no_record(block, make_resource):
    existing = [_record(date(2024, 1, 1), 40)]

    records, _ = distribute_block_hours(block, make_resource(), 60, existing)

    assert [record.week_start_date for record in records] == [date(2024, 1, 8), date(2024, 1, 15)]


def test_mid_week_block_books_monday_weeks(make_resource):
    block = ProjectBlockPlan(
        block_id="b3",
        block_code="FIX",
        block_name="Fix",
        sequence_index=3,
        planned_start=date(2024, 1, 3),
        planned_end=date(2024, 1, 17),
        planned_duration_weeks=2,
    )
    existing = [_record(date(2024, 1, 1), 30), _record(date(2024, 1, 10), 25)]

    records, summary = distribute_block_hours(block, make_resource(), 40, existing)

    assert block_weeks(block) == [date(2024, 1, 1), date(2024, 1, 8)]
    assert [(record.week_start_date, record.allocated_hours) for record in records] == [
        (date(2024, 1, 1), 10.0),
        (date(2024, 1, 8), 15.0),
    ]
    assert summary.warnings == ("Only 62.5% of required hours can be allocated",)


def test_weighted_curve_front_loads_hours(make_resource):
    two_weeks = ProjectBlockPlan(
        block_id="b2",
        block_code="QA",
        block_name="QA",
        sequence_index=2,
        planned_start=date(2024, 2, 5),
        planned_end=date(2024, 2, 19),
        planned_duration_weeks=2,
    )

    records, _ = distribute_block_hours(two_weeks, make_resource(), 40, curve=[3, 1])

    assert [record.allocated_hours for record in records] == [30.0, 10.0]


def test_zero_hours_creates_nothing(block, make_resource):
    records, summary = distribute_block_hours(block, make_resource(), 0)

    assert records == []
    assert summary.warnings == ()
    assert summary.fulfillment_percentage == 0


def test_bulk_create_skips_existing_and_repeated_keys():
    existing = [_record(date(2024, 1, 1), 10, block_id="b1")]
    new = [
        _record(date(2024, 1, 1), 20, block_id="b1"),
        _record(date(2024, 1, 8), 20, block_id="b1"),
        _record(date(2024, 1, 8), 25, block_id="b1"),
    ]

    result = bulk_create_allocations(existing, new)

    assert [record.week_start_date for record in result.created] == [date(2024, 1, 8)]
    assert result.created[0].allocated_hours == 20
    assert len(result.skipped) == 2


def test_bulk_create_keys_records_by_monday_week():
    existing = [_record(date(2024, 1, 10), 10, block_id="b1")]

    result = bulk_create_allocations(existing, [_record(date(2024, 1, 8), 10, block_id="b1")])

    assert result.created == ()
    assert len(result.skipped) == 1


def test_bulk_create_is_idempotent():
    new = [_record(date(2024, 1, 1), 10, block_id="b1"), _record(date(2024, 1, 8), 10, block_id="b1")]

    first = bulk_create_allocations([], new)
    second = bulk_create_allocations(first.created, new)

    assert len(first.created) == 2
    assert second.created == ()
    assert len(second.skipped) == 2


MONTH = Timeframe(date(2024, 1, 1), date(2024, 1, 28))


def test_timeframe_weeks_counts_monday_buckets():
    assert timeframe_weeks(MONTH) == 4
    assert timeframe_weeks(Timeframe(date(2024, 1, 1), date(2024, 1, 29))) == 5
    assert timeframe_weeks(Timeframe(date(2024, 1, 1), date(2024, 1, 1))) == 1
    assert timeframe_weeks(Timeframe(date(2024, 1, 3), date(2024, 1, 9))) == 2


def test_mid_week_timeframe_counts_bookings_of_its_first_week(make_resource):
    timeframe = Timeframe(date(2024, 1, 3), date(2024, 1, 16))
    existing = [_record(date(2024, 1, 1), 40)]

    result = validate_capacity({"b1": {"r1": 50}}, [make_resource(name="Alice")], existing, timeframe)

    assert result.errors == ["Alice is overallocated by 10 hours"]
    assert result.resource_capacities[0].total_capacity == 80


def test_overallocated_resource_is_an_error(make_resource):
    resource = make_resource(name="Alice")

    result = validate_capacity({"b1": {"r1": 100}, "b2": {"r1": 80}}, [resource], [], MONTH)

    assert not result.is_valid
    assert result.errors == ["Alice is overallocated by 20 hours"]
    capacity = result.resource_capacities[0]
    assert capacity.total_capacity == 160
    assert capacity.utilization_percentage == pytest.approx(112.5)
    assert capacity.conflicts[0].severity == "medium"
    assert capacity.conflicts[0].description == "Overallocated by 20 hours (13% over capacity)"
    assert capacity.recommendations == ("Reduce allocation by 20 hours or extend timeline",)
    assert result.overall_utilization == pytest.approx(112.5)
    assert result.suggestions == [
        "Project is near capacity limits. Consider extending timeline or adding resources."
    ]


def test_high_utilization_is_a_warning(make_resource):
    result = validate_capacity({"b1": {"r1": 150}}, [make_resource(name="Alice")], [], MONTH)

    assert result.is_valid
    assert result.warnings == ["Alice has high utilization (94%)"]


def test_unknown_or_inactive_resources_are_errors(make_resource):
    resources = [make_resource("r2", active=False)]

    result = validate_capacity({"b1": {"ghost": 10, "r2": 5, "idle": 0}}, resources, [], MONTH)

    assert result.errors == [
        "Resource ghost not found or inactive",
        "Resource r2 not found or inactive",
    ]
    assert result.overall_utilization == 0


def test_concurrent_projects_warning(make_resource):
    existing = [
        _record(date(2024, 1, 1), 5, project_id="p1"),
        _record(date(2024, 1, 8), 5, project_id="p2"),
        _record(date(2024, 1, 15), 5, project_id="p3"),
        _record(date(2024, 3, 4), 5, project_id="p4"),
    ]

    result = validate_capacity({"b1": {"r1": 40}}, [make_resource(name="Alice")], existing, MONTH)

    assert result.warnings == ["Alice is assigned to 3 concurrent projects"]
    capacity = result.resource_capacities[0]
    assert capacity.available_hours == 145
    assert capacity.conflicts[0].kind == "project_overlap"
    assert capacity.conflicts[0].severity == "high"
    assert "Alice is underutilized (34%) - consider increasing allocation" in capacity.recommendations


def test_balanced_allocation_looks_optimal(make_resource):
    result = validate_capacity({"b1": {"r1": 120}}, [make_resource(name="Alice")], [], MONTH)

    assert result.is_valid
    assert result.suggestions == ["Resource allocation looks optimal for the project timeline."]
    assert result.to_dict()["overallUtilization"] == 75


def test_empty_proposal_is_trivially_valid(make_resource):
    result = validate_capacity({"b1": {"r1": 0}}, [make_resource()], [], MONTH)

    assert result.is_valid
    assert result.resource_capacities == []
    assert result.suggestions == []
