from __future__ import annotations

import json
import math
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from dateutil import parser as dateparser

from .models import (
    DEFAULT_SCORE_WEIGHTS,
    DEFAULT_TEAM_SPECIALIZATIONS,
    MAX_SKILL_LEVEL,
    AllocationRecord,
    BlockRequirement,
    BlockTemplate,
    Deliverable,
    PlanningConfig,
    Preferences,
    RequiredSkill,
    Resource,
    SchedulingMode,
    Tier,
    Timeframe,
)

_ALLOCATION_REQUIRED_COLUMNS = {
    "resource_id",
    "block_id",
    "week_start_date",
    "allocated_hours",
}
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _require_columns(df: pd.DataFrame, required: Iterable[str], source: str) -> None:
    missing = [col for col in sorted(required) if col not in df.columns]
    if missing:
        raise ValueError(f"{source} missing required columns: {', '.join(missing)}")


def _read_json(path: str | Path) -> object:
    try:
        return json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"{Path(path).name} is not valid JSON") from exc


def _is_missing(value: object) -> bool:
    return value is None or (isinstance(value, float) and pd.isna(value))


def _require(entry: Mapping[str, object], key: str, source: str) -> object:
    value = entry.get(key)
    if _is_missing(value) or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"{source}: '{key}' is required")
    return value


def _parse_bool(value: object, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and not _is_missing(value):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "t", "1", "yes", "y"}:
            return True
        if lowered in {"false", "f", "0", "no", "n"}:
            return False
    raise ValueError(f"cannot interpret boolean value '{value}' in '{field_name}'")


def _parse_int(value: object, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(f"'{field_name}' must be an integer (got '{value}')") from exc
    raise ValueError(f"'{field_name}' must be an integer (got {value!r})")


def _parse_number(value: object, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be a number")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be a number (got {value!r})") from exc
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"'{field_name}' must be a finite number")
    return number


def parse_date(value: object, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return dateparser.isoparse(str(value)).date()
    except (ValueError, TypeError, OverflowError) as exc:
        raise ValueError(f"invalid date in '{field_name}': {value}") from exc


def _string_tuple(value: object, field_name: str) -> Tuple[str, ...]:
    if _is_missing(value):
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(";") if part.strip())
    if isinstance(value, Sequence):
        return tuple(str(item).strip() for item in value if str(item).strip())
    raise ValueError(f"expected array for '{field_name}'")


def _parse_skill_mix(value: object, field_name: str) -> Dict[str, float]:
    if _is_missing(value):
        return {}
    if isinstance(value, Mapping):
        return {str(skill): _parse_number(weight, f"{field_name}.{skill}") for skill, weight in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, str):
        # A bare list of skill ids carries no weights.
        return {str(skill).strip(): 1.0 for skill in value if str(skill).strip()}
    raise ValueError(f"'{field_name}' must be an object of skill -> weight")


def _parse_deliverable(entry: object, source: str) -> Deliverable:
    if not isinstance(entry, Mapping):
        raise ValueError(f"{source}: deliverables must be objects")
    code = str(_require(entry, "code", source))
    return Deliverable(
        id=str(entry.get("id") or code),
        code=code,
        name=str(entry.get("name") or code),
        description=entry.get("description"),
    )


def _parse_block_template(entry: object, tier_id: str) -> BlockTemplate:
    if not isinstance(entry, Mapping):
        raise ValueError(f"tier {tier_id}: blocks must be objects")
    code = str(_require(entry, "code", f"tier {tier_id} block"))
    source = f"tier {tier_id} block {code}"
    deliverables = entry.get("deliverables") or []
    if not isinstance(deliverables, list):
        raise ValueError(f"{source}: deliverables must be an array")
    return BlockTemplate(
        id=str(entry.get("id") or code),
        code=code,
        name=str(entry.get("name") or code),
        sequence_index=_parse_int(_require(entry, "sequence_index", source), f"{source}.sequence_index"),
        # Non-positive durations are kept so plan validation can report them.
        duration_weeks=_parse_int(_require(entry, "duration_weeks", source), f"{source}.duration_weeks"),
        required_skills_mix=_parse_skill_mix(entry.get("required_skills_mix"), f"{source}.required_skills_mix"),
        dependencies=_string_tuple(entry.get("dependencies"), f"{source}.dependencies"),
        deliverables=tuple(_parse_deliverable(item, source) for item in deliverables),
    )


def load_tiers(path: str | Path) -> List[Tier]:
    data = _read_json(path)
    if not isinstance(data, list):
        raise ValueError("tiers file must be a JSON array")
    tiers: List[Tier] = []
    seen = set()
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError("tier entries must be objects")
        tier_id = str(_require(entry, "id", "tier"))
        if tier_id in seen:
            raise ValueError(f"duplicate tier id '{tier_id}'")
        seen.add(tier_id)
        blocks = entry.get("blocks") or []
        if not isinstance(blocks, list):
            raise ValueError(f"tier {tier_id}: blocks must be an array")
        templates = tuple(_parse_block_template(block, tier_id) for block in blocks)
        indices = [template.sequence_index for template in templates]
        if len(indices) != len(set(indices)):
            raise ValueError(f"tier {tier_id}: sequence_index values must be unique")
        tiers.append(
            Tier(
                id=tier_id,
                code=str(entry.get("code") or tier_id),
                name=str(entry.get("name") or tier_id),
                project_type_id=str(_require(entry, "project_type_id", f"tier {tier_id}")),
                blocks=templates,
                description=entry.get("description"),
            )
        )
    return tiers


def _parse_skill_levels(value: object, name: str) -> Dict[str, int]:
    if _is_missing(value):
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"skills must be an object of skill -> level for {name}")
    levels: Dict[str, int] = {}
    for skill_id, level in value.items():
        parsed = _parse_int(level, f"{name}.skills.{skill_id}")
        if not 0 <= parsed <= MAX_SKILL_LEVEL:
            raise ValueError(f"skill level for '{skill_id}' must be in [0, {MAX_SKILL_LEVEL}] for {name}")
        levels[str(skill_id)] = parsed
    return levels


def load_resources(path: str | Path) -> List[Resource]:
    data = _read_json(path)
    if not isinstance(data, list):
        raise ValueError("resources file must be a JSON array")
    resources: List[Resource] = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError("resource entries must be objects")
        resource_id = str(_require(entry, "id", "resource"))
        name = str(entry.get("name") or resource_id)
        capacity = _parse_number(
            _require(entry, "capacity_hours_per_week", f"resource {resource_id}"),
            f"{resource_id}.capacity_hours_per_week",
        )
        if capacity <= 0:
            raise ValueError(f"capacity_hours_per_week must be positive for {resource_id}")
        resources.append(
            Resource(
                id=resource_id,
                name=name,
                skills=_parse_skill_levels(entry.get("skills"), resource_id),
                capacity_hours_per_week=capacity,
                home_team=str(entry.get("home_team") or ""),
                employment_type=str(entry.get("employment_type") or ""),
                active=_parse_bool(entry.get("active", True), f"{resource_id}.active"),
            )
        )
    if not resources:
        raise ValueError("resources file is empty")
    ids = [resource.id for resource in resources]
    if len(ids) != len(set(ids)):
        raise ValueError("resource ids must be unique")
    return resources


def load_allocations(path: str | Path) -> List[AllocationRecord]:
    df = pd.read_csv(path, dtype={"resource_id": str, "block_id": str, "project_id": str})
    if df.empty:
        return []
    _require_columns(df, _ALLOCATION_REQUIRED_COLUMNS, "allocations.csv")
    try:
        df["allocated_hours"] = pd.to_numeric(df["allocated_hours"])
    except ValueError as exc:
        raise ValueError("invalid numeric value in column 'allocated_hours'") from exc
    if (df["allocated_hours"] < 0).any():
        raise ValueError("column 'allocated_hours' contains negative values")
    if "project_id" not in df.columns:
        df["project_id"] = None
    records: List[AllocationRecord] = []
    for row in df.itertuples(index=False):
        records.append(
            AllocationRecord(
                resource_id=str(row.resource_id),
                block_id=str(row.block_id),
                week_start_date=parse_date(row.week_start_date, "week_start_date"),
                allocated_hours=float(row.allocated_hours),
                project_id=None if _is_missing(row.project_id) else str(row.project_id),
            )
        )
    seen = set()
    for record in records:
        if record.key in seen:
            block_id, resource_id, week = record.key
            raise ValueError(
                f"allocations.csv has more than one row for block '{block_id}', "
                f"resource '{resource_id}', week {week.isoformat()}"
            )
        seen.add(record.key)
    return records


def load_skill_catalog(path: str | Path) -> Dict[str, str]:
    data = _read_json(path)
    if not isinstance(data, list):
        raise ValueError("skills file must be a JSON array")
    catalog: Dict[str, str] = {}
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError("skill entries must be objects")
        skill_id = str(_require(entry, "id", "skill"))
        catalog[skill_id] = str(entry.get("name") or skill_id)
    return catalog


def _validate_weights(weights: object) -> Dict[str, float]:
    if not isinstance(weights, Mapping):
        raise ValueError("score_weights must be an object")
    missing = set(DEFAULT_SCORE_WEIGHTS) - set(weights)
    if missing:
        raise ValueError(f"score_weights missing keys: {', '.join(sorted(missing))}")
    parsed = {str(key): _parse_number(value, f"score_weights.{key}") for key, value in weights.items()}
    if any(value < 0 for value in parsed.values()):
        raise ValueError("score_weights values must be non-negative")
    total = sum(parsed[key] for key in DEFAULT_SCORE_WEIGHTS)
    if abs(total - 1.0) > 1e-6:
        raise ValueError(f"score_weights must sum to 1.0 (got {total:.4f})")
    return parsed


def _validate_specializations(value: object) -> Dict[str, Tuple[str, ...]]:
    if not isinstance(value, Mapping):
        raise ValueError("team_specializations must be an object of team -> keywords")
    return {
        str(team): _string_tuple(keywords, f"team_specializations.{team}")
        for team, keywords in value.items()
    }


def _validate_effort_curve(value: object) -> object:
    if isinstance(value, str):
        if value.lower() not in {"uniform", "flat"}:
            raise ValueError(f"unsupported effort_curve '{value}'")
        return value.lower()
    if isinstance(value, list) and value:
        weights = [_parse_number(item, "effort_curve") for item in value]
        if any(weight < 0 for weight in weights) or sum(weights) <= 0:
            raise ValueError("effort_curve weights must be non-negative and sum to a positive number")
        return tuple(weights)
    raise ValueError("effort_curve must be 'uniform' or a non-empty array of weights")


def load_config(path: str | Path) -> PlanningConfig:
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ValueError("config file must be a JSON object")
    return config_from_dict(data)


def config_from_dict(data: Mapping[str, object]) -> PlanningConfig:
    max_utilization = _parse_number(data.get("max_utilization", 85), "max_utilization")
    if not 0 < max_utilization <= 200:
        raise ValueError("max_utilization must be in (0, 200]")
    top_recommendations = _parse_int(data.get("top_recommendations", 10), "top_recommendations")
    if top_recommendations <= 0:
        raise ValueError("top_recommendations must be a positive integer")
    penalty = _parse_int(data.get("overallocation_penalty", 20), "overallocation_penalty")
    if penalty < 0:
        raise ValueError("overallocation_penalty must not be negative")
    limit = _parse_number(data.get("allocation_limit_pct", 100), "allocation_limit_pct")
    if limit <= 0:
        raise ValueError("allocation_limit_pct must be positive")
    factor = _parse_number(data.get("overallocation_factor", 1.2), "overallocation_factor")
    if factor < 1:
        raise ValueError("overallocation_factor must be at least 1")
    logging_level = str(data.get("logging_level", "INFO")).upper()
    if logging_level not in _VALID_LOG_LEVELS:
        raise ValueError(f"logging_level must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}")
    return PlanningConfig(
        max_utilization=max_utilization,
        top_recommendations=top_recommendations,
        overallocation_penalty=penalty,
        allocation_limit_pct=limit,
        score_weights=_validate_weights(data.get("score_weights", DEFAULT_SCORE_WEIGHTS)),
        team_specializations=_validate_specializations(
            data.get("team_specializations", DEFAULT_TEAM_SPECIALIZATIONS)
        ),
        effort_curve=_validate_effort_curve(data.get("effort_curve", "uniform")),
        overallocation_factor=factor,
        default_mode=SchedulingMode.parse(data.get("default_mode", SchedulingMode.STRICT_START.value)),
        logging_level=logging_level,
    )


def parse_timeframe(payload: object) -> Timeframe:
    if not isinstance(payload, Mapping):
        raise ValueError("timeframe must be an object with startDate and endDate")
    start = parse_date(_require(payload, "startDate", "timeframe"), "timeframe.startDate")
    end = parse_date(_require(payload, "endDate", "timeframe"), "timeframe.endDate")
    if end < start:
        raise ValueError("timeframe.endDate must not be earlier than timeframe.startDate")
    return Timeframe(start_date=start, end_date=end)


def _parse_required_skill(entry: object, source: str) -> RequiredSkill:
    if isinstance(entry, str):
        if not entry.strip():
            raise ValueError(f"{source}: skill names must not be blank")
        return RequiredSkill(skill_id=entry.strip(), skill_name=entry.strip())
    if not isinstance(entry, Mapping):
        raise ValueError(f"{source}: requiredSkills entries must be objects or strings")
    skill_id = str(_require(entry, "skillId", source))
    return RequiredSkill(
        skill_id=skill_id,
        skill_name=str(entry.get("skillName") or skill_id),
        category=str(entry.get("category") or ""),
        minimum_level=_parse_int(entry.get("minimumLevel", 1), f"{source}.minimumLevel"),
        importance=_parse_int(entry.get("importance", 5), f"{source}.importance"),
    )


def _bounded_int(value: object, field_name: str, low: int, high: int) -> int:
    parsed = _parse_int(value, field_name)
    if not low <= parsed <= high:
        raise ValueError(f"'{field_name}' must be in [{low}, {high}]")
    return parsed


def parse_block_requirement(entry: object, position: int) -> BlockRequirement:
    source = f"projectRequirements[{position}]"
    if not isinstance(entry, Mapping):
        raise ValueError(f"{source} must be an object")
    block_id = str(_require(entry, "blockId", source))
    skills = entry.get("requiredSkills") or []
    if not isinstance(skills, list):
        raise ValueError(f"{source}.requiredSkills must be an array")
    effort = _parse_number(
        entry.get("estimatedEffort", entry.get("requiredEffort")), f"{source}.estimatedEffort"
    )
    if effort < 0:
        raise ValueError(f"{source}.estimatedEffort must not be negative")
    return BlockRequirement(
        block_id=block_id,
        block_name=str(entry.get("blockName") or block_id),
        block_code=str(entry.get("blockCode") or block_id),
        duration=_parse_int(entry.get("duration", 0), f"{source}.duration"),
        required_skills=tuple(_parse_required_skill(skill, source) for skill in skills),
        complexity=_bounded_int(
            entry.get("complexity", entry.get("complexityScore", 5)), f"{source}.complexity", 1, 10
        ),
        priority=_bounded_int(entry.get("priority", 5), f"{source}.priority", 1, 10),
        estimated_effort=effort,
    )


def parse_preferences(payload: object) -> Preferences:
    if _is_missing(payload):
        return Preferences()
    if not isinstance(payload, Mapping):
        raise ValueError("preferences must be an object")
    max_utilization: Optional[float] = None
    if not _is_missing(payload.get("maxUtilization")):
        max_utilization = _parse_number(payload["maxUtilization"], "preferences.maxUtilization")
        if max_utilization <= 0:
            raise ValueError("preferences.maxUtilization must be positive")
    return Preferences(
        preferred_teams=_string_tuple(payload.get("preferredTeams"), "preferences.preferredTeams"),
        exclude_resources=_string_tuple(payload.get("excludeResources"), "preferences.excludeResources"),
        max_utilization=max_utilization,
        prioritize_experience=_parse_bool(
            payload.get("prioritizeExperience", False), "preferences.prioritizeExperience"
        ),
        allow_cross_team_assignment=_parse_bool(
            payload.get("allowCrossTeamAssignment", False), "preferences.allowCrossTeamAssignment"
        ),
    )


def parse_recommendation_request(
    payload: object,
) -> Tuple[List[BlockRequirement], Timeframe, Preferences]:
    if not isinstance(payload, Mapping):
        raise ValueError("recommendation request must be a JSON object")
    requirements = payload.get("projectRequirements")
    if not isinstance(requirements, list) or not requirements:
        raise ValueError("projectRequirements must be a non-empty array")
    return (
        [parse_block_requirement(entry, position) for position, entry in enumerate(requirements)],
        parse_timeframe(payload.get("timeframe")),
        parse_preferences(payload.get("preferences")),
    )


def load_recommendation_request(
    path: str | Path,
) -> Tuple[List[BlockRequirement], Timeframe, Preferences]:
    return parse_recommendation_request(_read_json(path))


def ensure_directory(path: str | Path) -> Path:
    target = Path(path)
    target.mkdir(parents=True, exist_ok=True)
    return target


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def write_json(data: object, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(json.dumps(data, indent=2) + "\n")
