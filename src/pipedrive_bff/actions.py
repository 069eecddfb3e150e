"""Action dispatcher: maps a frontend action name to Pipedrive calls.

Every handler validates its parameters before touching the API and returns
the response envelope `{"status": "success", "data": ...}`. Failures are
turned into `{"status": "error", "message": ...}` by `dispatch`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional

import httpx

from .core.clients.pipedrive import PipedriveClient, PipedriveError, call
from .core.models import COUNTED_STATUSES, DealStatus, PageFetchRequest
from .core.normalize import normalize_deal, normalize_deals, normalize_pipeline
from .core.pagination import PAGE_SIZE, count_by_status, fetch_all
from .core.scoring import rank_deals
from .core.stages import build_stage_map, fetch_stages

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 100
DEFAULT_SEARCH_LIMIT = 20

Payload = dict[str, Any]
Envelope = dict[str, Any]
Handler = Callable[[PipedriveClient, Payload], Awaitable[Envelope]]


class ActionError(Exception):
    """Request cannot be served; carries the HTTP status and extra envelope fields."""

    def __init__(self, message: str, status_code: int = 400, **extra: Any):
        super().__init__(message)
        self.status_code = status_code
        self.extra = extra


def success(data: Any = None, **extra: Any) -> Envelope:
    return {"status": "success", "data": data, **extra}


def error(message: str, **extra: Any) -> Envelope:
    return {"status": "error", "message": message, **extra}


# ─── Parameter validation ────────────────────────────────────────────────────


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ActionError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ActionError(f"{key} must be an integer") from None


def _require_int(payload: Payload, key: str) -> int:
    value = payload.get(key)
    if value is None or value == "":
        raise ActionError(f"{key} is required")
    return _to_int(key, value)


def _optional_int(payload: Payload, key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    return _to_int(key, value)


def _limit(payload: Payload, default: int, maximum: Optional[int] = None) -> int:
    limit = _optional_int(payload, "limit")
    if limit is None:
        return default
    if limit <= 0:
        raise ActionError("limit must be a positive integer")
    if maximum is not None:
        limit = min(limit, maximum)
    return limit


def _status(payload: Payload, default: DealStatus) -> str:
    value = payload.get("status") or default.value
    try:
        return DealStatus(value).value
    except ValueError:
        allowed = ", ".join(s.value for s in DealStatus)
        raise ActionError(f"status must be one of: {allowed}") from None


def _fields(payload: Payload) -> Optional[list[str]]:
    value = payload.get("fields")
    if value is None or value == "" or value == []:
        return None
    if isinstance(value, str):
        return [f.strip() for f in value.split(",") if f.strip()]
    if isinstance(value, list) and all(isinstance(f, str) for f in value):
        return value
    raise ActionError("fields must be a list of field names or a comma-separated string")


def _require_dict(payload: Payload, key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not value:
        raise ActionError(f"{key} is required")
    if not isinstance(value, dict):
        raise ActionError(f"{key} must be an object")
    return value


def _require_text(payload: Payload, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ActionError(f"{key} is required")
    return value.strip()


# ─── Pass-through actions ────────────────────────────────────────────────────


async def get_deals(client: PipedriveClient, payload: Payload) -> Envelope:
    page = PageFetchRequest(
        status=_status(payload, DealStatus.ALL_NOT_DELETED),
        pipeline_id=_optional_int(payload, "pipeline_id"),
        start=0,
        limit=_limit(payload, DEFAULT_PAGE_LIMIT, maximum=PAGE_SIZE),
    )
    fields = _fields(payload)

    stage_map = await build_stage_map(client)
    deals = await call(client, "GET", "/deals", query=page.query())
    return success(normalize_deals(deals or [], fields, stage_map))


async def get_deal(client: PipedriveClient, payload: Payload) -> Envelope:
    deal_id = _require_int(payload, "dealId")
    fields = _fields(payload)

    deal = await call(client, "GET", f"/deals/{deal_id}")
    if not deal:
        raise ActionError(f"Deal {deal_id} not found", status_code=500)
    stage_map = await build_stage_map(client)
    return success(normalize_deal(deal, fields or list(deal), stage_map))


async def create_deal(client: PipedriveClient, payload: Payload) -> Envelope:
    deal_data = _require_dict(payload, "dealData")
    if not deal_data.get("title"):
        raise ActionError("dealData.title is required")
    return success(await call(client, "POST", "/deals", body=deal_data))


async def update_deal(client: PipedriveClient, payload: Payload) -> Envelope:
    deal_id = _require_int(payload, "dealId")
    deal_data = _require_dict(payload, "dealData")
    return success(await call(client, "PUT", f"/deals/{deal_id}", body=deal_data))


async def move_deal(client: PipedriveClient, payload: Payload) -> Envelope:
    deal_id = _require_int(payload, "dealId")
    stage_id = _require_int(payload, "stageId")
    return success(await call(client, "PUT", f"/deals/{deal_id}", body={"stage_id": stage_id}))


async def search_deals(client: PipedriveClient, payload: Payload) -> Envelope:
    term = _require_text(payload, "term")
    limit = _limit(payload, DEFAULT_SEARCH_LIMIT, maximum=PAGE_SIZE)

    data = await call(client, "GET", "/deals/search", query={"term": term, "limit": limit})
    results = []
    for entry in (data or {}).get("items", []):
        item = dict(entry.get("item") or {})
        item["result_score"] = entry.get("result_score")
        results.append(item)
    return success(results)


async def get_pipelines(client: PipedriveClient, payload: Payload) -> Envelope:
    pipelines = await call(client, "GET", "/pipelines")
    return success([normalize_pipeline(p) for p in pipelines or []])


async def get_stages(client: PipedriveClient, payload: Payload) -> Envelope:
    stages = await fetch_stages(client, _optional_int(payload, "pipeline_id"))
    return success([s.model_dump() for s in stages])


async def get_activities(client: PipedriveClient, payload: Payload) -> Envelope:
    deal_id = _optional_int(payload, "dealId")
    limit = _limit(payload, DEFAULT_PAGE_LIMIT, maximum=PAGE_SIZE)
    path = f"/deals/{deal_id}/activities" if deal_id is not None else "/activities"
    activities = await call(client, "GET", path, query={"start": 0, "limit": limit})
    return success(activities or [])


async def add_activity(client: PipedriveClient, payload: Payload) -> Envelope:
    activity = dict(_require_dict(payload, "activityData"))
    deal_id = _optional_int(payload, "dealId")
    if deal_id is not None:
        activity["deal_id"] = deal_id
    return success(await call(client, "POST", "/activities", body=activity))


async def add_note(client: PipedriveClient, payload: Payload) -> Envelope:
    deal_id = _require_int(payload, "dealId")
    text = _require_text(payload, "noteText")
    return success(await call(client, "POST", "/notes", body={"deal_id": deal_id, "content": text}))


# ─── Aggregate actions ───────────────────────────────────────────────────────


async def _count_statuses(client: PipedriveClient, pipeline_id: Optional[int]) -> dict[str, int]:
    # one status at a time keeps the per-request concurrency at one batch
    counts = {}
    for status in COUNTED_STATUSES:
        counts[status.value] = await count_by_status(client, status.value, pipeline_id)
    counts["total"] = sum(counts.values())
    return counts


async def count_deals(client: PipedriveClient, payload: Payload) -> Envelope:
    pipeline_id = _optional_int(payload, "pipeline_id")
    if payload.get("status"):
        status = _status(payload, DealStatus.OPEN)
        return success({status: await count_by_status(client, status, pipeline_id)})
    return success(await _count_statuses(client, pipeline_id))


async def extract_full_deals(client: PipedriveClient, payload: Payload) -> Envelope:
    status = _status(payload, DealStatus.ALL_NOT_DELETED)
    pipeline_id = _optional_int(payload, "pipeline_id")
    limit = _limit(payload, client.settings.extract_limit)
    fields = _fields(payload)

    stage_map = await build_stage_map(client)
    deals = await fetch_all(client, status, pipeline_id, max_total=limit)
    data = normalize_deals(deals, fields, stage_map)
    return success(data, total=len(data))


async def score_deals(client: PipedriveClient, payload: Payload) -> Envelope:
    status = _status(payload, DealStatus.OPEN)
    pipeline_id = _optional_int(payload, "pipeline_id")
    limit = _limit(payload, client.settings.score_limit)
    fields = _fields(payload)

    stage_map = await build_stage_map(client)
    deals = await fetch_all(client, status, pipeline_id, max_total=limit)
    data = [
        {**normalize_deal(deal, fields, stage_map), "score": score}
        for deal, score in rank_deals(deals)
    ]
    return success(data, total=len(data))


async def analyze_pipeline(client: PipedriveClient, payload: Payload) -> Envelope:
    """Connection check plus a per-status deal census, optionally for one pipeline."""
    pipeline_id = _optional_int(payload, "pipeline_id")

    try:
        pipelines = await call(client, "GET", "/pipelines")
    except (PipedriveError, httpx.HTTPError) as exc:
        raise ActionError(
            f"Could not reach Pipedrive: {exc}", status_code=500, ok=False, conexion_ok=False
        ) from exc

    try:
        stages = await fetch_stages(client, pipeline_id)
    except (PipedriveError, httpx.HTTPError) as exc:
        logger.warning("Stage listing failed during pipeline analysis: %s", exc)
        stages = []

    stages_per_pipeline: dict[Optional[int], int] = defaultdict(int)
    for stage in stages:
        stages_per_pipeline[stage.pipeline_id] += 1

    summaries = []
    for record in pipelines or []:
        pipeline = normalize_pipeline(record)
        if pipeline_id is not None and pipeline["id"] != pipeline_id:
            continue
        pipeline["stages"] = stages_per_pipeline.get(pipeline["id"], 0)
        summaries.append(pipeline)

    counts = await _count_statuses(client, pipeline_id)
    closed = counts[DealStatus.WON.value] + counts[DealStatus.LOST.value]
    win_rate = round(counts[DealStatus.WON.value] / closed, 4) if closed else None

    return {
        "status": "success",
        "ok": True,
        "conexion_ok": True,
        "datos": {
            "pipelines": summaries,
            "stages": len(stages),
            "deals": counts,
            "win_rate": win_rate,
        },
    }


ACTIONS: dict[str, Handler] = {
    "getDeals": get_deals,
    "getDeal": get_deal,
    "createDeal": create_deal,
    "updateDeal": update_deal,
    "moveDeal": move_deal,
    "searchDeals": search_deals,
    "getPipelines": get_pipelines,
    "getStages": get_stages,
    "getActivities": get_activities,
    "addActivity": add_activity,
    "addNote": add_note,
    "countDeals": count_deals,
    "extractFullDeals": extract_full_deals,
    "scoreDeals": score_deals,
    "analyzePipeline": analyze_pipeline,
}


async def dispatch(action: Any, payload: Payload, client: PipedriveClient) -> tuple[int, Envelope]:
    """Run one action and return (HTTP status, envelope)."""
    if not action:
        return 400, error("action is required")
    handler = ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        return 400, error(f"Unknown action: {action}")

    logger.info("Dispatching action %s", action)
    try:
        return 200, await handler(client, payload)
    except ActionError as exc:
        return exc.status_code, error(str(exc), **exc.extra)
    except PipedriveError as exc:
        logger.warning("Action %s failed upstream: %s", action, exc)
        return 500, error(str(exc))
    except Exception as exc:
        logger.exception("Action %s failed", action)
        return 500, error(str(exc) or "Internal server error")
