"""Pipedrive BFF server.

FastMCP server exposing the action dispatcher twice: as the frontend's
`POST /api/pipedrive` HTTP endpoint and as an MCP tool.
Run: pipedrive-bff
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.requests import Request
from starlette.responses import JSONResponse

from .actions import ACTIONS, dispatch, error
from .config import Settings
from .core.clients.pipedrive import PipedriveClient

logger = logging.getLogger(__name__)

ROUTE_PATH = "/api/pipedrive"
ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

WRITES_UPSTREAM = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=False, openWorldHint=True)

mcp = FastMCP(
    "Pipedrive BFF",
    instructions="Read, score and update Pipedrive deals for the sales frontend. Every call names an action and its parameters.",
)


def build_client() -> PipedriveClient:
    """Create a client for one request from the current environment."""
    return PipedriveClient(Settings.from_env())


async def run_action(action: Any, payload: dict) -> tuple[int, dict]:
    try:
        client = build_client()
    except ValueError as exc:
        logger.error("Pipedrive client misconfigured: %s", exc)
        return 500, error(str(exc))

    async with client:
        return await dispatch(action, payload, client)


# ─── HTTP entry point ────────────────────────────────────────────────────────


@mcp.custom_route(ROUTE_PATH, methods=ROUTE_METHODS)
async def pipedrive_endpoint(request: Request) -> JSONResponse:
    """Frontend entry point: JSON body with `action` plus action parameters."""
    if request.method != "POST":
        return JSONResponse(error("Method not allowed"), status_code=405)

    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(error("Request body must be valid JSON"), status_code=400)
    if not isinstance(body, dict):
        return JSONResponse(error("Request body must be a JSON object"), status_code=400)

    status_code, envelope = await run_action(body.get("action"), body)
    return JSONResponse(envelope, status_code=status_code)


# ─── MCP tool ────────────────────────────────────────────────────────────────


@mcp.tool(annotations=WRITES_UPSTREAM)
async def pipedrive_action(action: str, params: Optional[dict] = None) -> dict:
    """Run a Pipedrive BFF action.

    Args:
        action: One of getDeals, getDeal, createDeal, updateDeal, moveDeal, searchDeals,
                getPipelines, getStages, getActivities, addActivity, addNote, countDeals,
                extractFullDeals, scoreDeals, analyzePipeline.
        params: Action parameters, e.g. {"dealId": 42} or {"status": "open", "limit": 50}.
    """
    payload = dict(params or {})
    payload["action"] = action
    _, envelope = await run_action(action, payload)
    return envelope


def main():
    """Entry point for the CLI command."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    transport = os.environ.get("MCP_TRANSPORT", "streamable-http")
    logger.info("Starting Pipedrive BFF (%d actions, transport=%s)", len(ACTIONS), transport)
    mcp.run(transport=transport)


if __name__ == "__main__":
    main()
