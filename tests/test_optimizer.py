from staffing_planner.models import BlockRecommendation, BlockRequirement, PlanningConfig, RequiredSkill
from staffing_planner.optimizer import (
    OVERALLOCATION_WARNING,
    optimize_global_allocation,
    recommend_team_composition,
    total_allocation_by_resource,
)


def _block(block_id, requirement, scores):
    return BlockRecommendation(
        block_id=block_id,
        block_name=f"Block {block_id}",
        block_code=block_id.upper(),
        requirement=requirement,
        recommendations=list(scores),
    )


def test_resource_over_the_limit_is_penalized_in_every_block(make_requirement, make_score):
    blocks = [
        _block("b1", make_requirement("b1"), [make_score("r1", overall=77, allocation=70), make_score("r2", overall=65, allocation=50)]),
        _block("b2", make_requirement("b2"), [make_score("r1", overall=15, allocation=60), make_score("r2", overall=40, allocation=40)]),
    ]

    optimize_global_allocation(blocks)

    first = {score.resource_id: score for score in blocks[0].recommendations}
    second = {score.resource_id: score for score in blocks[1].recommendations}
    assert first["r1"].overall_score == 57
    assert second["r1"].overall_score == 0
    assert first["r1"].reasoning[-1] == OVERALLOCATION_WARNING
    assert second["r1"].reasoning[-1] == OVERALLOCATION_WARNING
    assert first["r2"].overall_score == 65
    assert OVERALLOCATION_WARNING not in first["r2"].reasoning


def test_lists_are_resorted_by_adjusted_score(make_requirement, make_score):
    blocks = [
        _block("b1", make_requirement("b1"), [make_score("r1", overall=77, allocation=70), make_score("r2", overall=65, allocation=50)]),
        _block("b2", make_requirement("b2"), [make_score("r1", overall=80, allocation=60)]),
    ]

    result = optimize_global_allocation(blocks)

    assert result is blocks
    assert [score.resource_id for score in blocks[0].recommendations] == ["r2", "r1"]


def test_exactly_one_hundred_percent_is_not_penalized(make_requirement, make_score):
    blocks = [
        _block("b1", make_requirement("b1"), [make_score("r1", overall=70, allocation=50)]),
        _block("b2", make_requirement("b2"), [make_score("r1", overall=70, allocation=50)]),
    ]

    optimize_global_allocation(blocks)

    assert [block.recommendations[0].overall_score for block in blocks] == [70, 70]


def test_penalty_and_limit_come_from_config(make_requirement, make_score):
    blocks = [_block("b1", make_requirement("b1"), [make_score("r1", overall=70, allocation=90)])]

    optimize_global_allocation(blocks, config=PlanningConfig(allocation_limit_pct=80, overallocation_penalty=5))

    assert blocks[0].recommendations[0].overall_score == 65


def test_total_allocation_sums_across_blocks(make_requirement, make_score):
    blocks = [
        _block("b1", make_requirement("b1"), [make_score("r1", overall=1, allocation=30)]),
        _block("b2", make_requirement("b2"), [make_score("r1", overall=1, allocation=45), make_score("r2", overall=1, allocation=10)]),
    ]

    assert total_allocation_by_resource(blocks) == {"r1": 75, "r2": 10}


def test_team_with_best_combined_score_wins(make_requirement, make_score):
    requirement = make_requirement(skills=["python", "sql"])
    recommendations = [
        make_score("r3", overall=90, confidence=95, team="Frontend", matching=["python"]),
        make_score("r1", overall=80, confidence=90, team="Backend", matching=["python"]),
        make_score("r2", overall=60, confidence=70, team="Backend", matching=["sql"]),
    ]

    team = recommend_team_composition(requirement, recommendations)

    assert team.team_name == "Backend"
    assert [member.resource_id for member in team.members] == ["r1", "r2"]
    assert team.avg_score == 70
    assert team.avg_confidence == 80
    assert team.skill_coverage == 100
    assert team.composition_score == 250


def test_team_coverage_is_full_when_nothing_is_required(make_requirement, make_score):
    team = recommend_team_composition(make_requirement(), [make_score("r1", overall=40, confidence=30)])

    assert team.skill_coverage == 100
    assert team.to_dict()["compositionScore"] == 170


def test_no_recommendations_means_no_team(make_requirement):
    assert recommend_team_composition(make_requirement(), []) is None


def test_team_coverage_counts_skill_ids_not_display_names(make_score):
    requirement = BlockRequirement(
        block_id="b1",
        block_name="Block b1",
        block_code="B1",
        duration=2,
        required_skills=(
            RequiredSkill(skill_id="py3", skill_name="Python"),
            RequiredSkill(skill_id="py2", skill_name="Python"),
        ),
        complexity=5,
        priority=5,
        estimated_effort=40.0,
    )

    team = recommend_team_composition(requirement, [make_score("r1", overall=50, matching=["py3"])])

    assert team.skill_coverage == 50
