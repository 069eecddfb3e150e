"""Stage lookup used to enrich deals with readable stage and pipeline names."""

from __future__ import annotations

import logging

from typing import Optional

from .clients.pipedrive import PipedriveClient, call
from .models import Stage, StageInfo

logger = logging.getLogger(__name__)

UNKNOWN_STAGE = "—"


async def fetch_stages(client: PipedriveClient, pipeline_id: Optional[int] = None) -> list[Stage]:
    rows = await call(client, "GET", "/stages", query={"pipeline_id": pipeline_id})
    return [Stage.model_validate(row) for row in rows or []]


async def build_stage_map(client: PipedriveClient) -> dict[int, StageInfo]:
    """Map stage id to its name and pipeline name.

    Enrichment is optional, so any failure yields an empty mapping.
    """
    try:
        stages = await fetch_stages(client)
    except Exception as exc:
        logger.warning("Stage lookup unavailable, continuing without it: %s", exc)
        return {}

    return {s.id: StageInfo(name=s.name, pipeline_name=s.pipeline_name) for s in stages}
