"""Reshape upstream records into the field subsets the frontend asks for."""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

from .models import Pipeline, StageInfo
from .stages import UNKNOWN_STAGE

DEFAULT_DEAL_FIELDS = (
    "id",
    "title",
    "value",
    "currency",
    "status",
    "pipeline_id",
    "stage_id",
    "user_id",
    "add_time",
    "next_activity_date",
    "next_activity_time",
)


def _ref_id(value: Any) -> Any:
    """Pipedrive embeds related objects as {"id": ..., "name": ...} in list responses."""
    if isinstance(value, dict):
        return value.get("id", value.get("value"))
    return value


def pick_fields(record: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    return {name: record.get(name) for name in fields}


def normalize_deal(
    record: dict[str, Any],
    fields: Optional[Sequence[str]] = None,
    stage_map: Optional[dict[int, StageInfo]] = None,
) -> dict[str, Any]:
    """Reduce a deal to `fields` and, when a stage map is given, add stage/pipeline names."""
    out = pick_fields(record, fields or DEFAULT_DEAL_FIELDS)

    owner = record.get("user_id")
    if "user_id" in out and isinstance(owner, dict):
        out["user_id"] = _ref_id(owner)
        out["owner_name"] = owner.get("name")

    if stage_map is not None:
        info = stage_map.get(_ref_id(record.get("stage_id")))
        out["stage_name"] = info.name if info else UNKNOWN_STAGE
        out["pipeline_name"] = info.pipeline_name if info else None

    return out


def normalize_deals(
    records: Iterable[dict[str, Any]],
    fields: Optional[Sequence[str]] = None,
    stage_map: Optional[dict[int, StageInfo]] = None,
) -> list[dict[str, Any]]:
    return [normalize_deal(r, fields, stage_map) for r in records]


def normalize_pipeline(record: dict[str, Any]) -> dict[str, Any]:
    return Pipeline.model_validate(record).model_dump()
