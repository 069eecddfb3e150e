from __future__ import annotations

import json

import httpx
import pytest
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.testclient import TestClient

from pipedrive_bff import server
from pipedrive_bff.core.clients.pipedrive import PipedriveClient

from .stubs import PIPELINES


def _pipedrive_api(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/pipelines"):
        return httpx.Response(200, json={"success": True, "data": PIPELINES})
    if request.url.path.endswith("/notes"):
        return httpx.Response(201, json={"success": True, "data": {"id": 1, **json.loads(request.content)}})
    return httpx.Response(404, json={"success": False, "error": "Not found"})


@pytest.fixture
def upstream_calls(monkeypatch, settings):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _pipedrive_api(request)

    monkeypatch.setattr(server, "build_client", lambda: PipedriveClient(settings, transport=httpx.MockTransport(handler)))
    return calls


@pytest.fixture
def http():
    app = Starlette(routes=[Route(server.ROUTE_PATH, server.pipedrive_endpoint, methods=server.ROUTE_METHODS)])
    return TestClient(app)


@pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE", "OPTIONS"])
def test_only_post_is_allowed(http, upstream_calls, method):
    response = http.request(method, server.ROUTE_PATH)

    assert response.status_code == 405
    assert response.json() == {"status": "error", "message": "Method not allowed"}
    assert upstream_calls == []


def test_invalid_json_body(http, upstream_calls):
    response = http.post(server.ROUTE_PATH, content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["status"] == "error"


def test_non_object_body(http, upstream_calls):
    response = http.post(server.ROUTE_PATH, json=["getPipelines"])
    assert response.status_code == 400
    assert response.json()["message"] == "Request body must be a JSON object"


def test_unknown_action(http, upstream_calls):
    response = http.post(server.ROUTE_PATH, json={"action": "explode"})

    assert response.status_code == 400
    assert response.json() == {"status": "error", "message": "Unknown action: explode"}
    assert upstream_calls == []


def test_get_pipelines(http, upstream_calls):
    response = http.post(server.ROUTE_PATH, json={"action": "getPipelines"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert [p["id"] for p in body["data"]] == [1, 2]
    assert upstream_calls[0].url.params["api_token"] == "test-token"


def test_add_note(http, upstream_calls):
    response = http.post(server.ROUTE_PATH, json={"action": "addNote", "dealId": 9, "noteText": "Seguimiento"})

    assert response.status_code == 200
    assert response.json()["data"] == {"id": 1, "deal_id": 9, "content": "Seguimiento"}


def test_upstream_error_is_500(http, upstream_calls):
    response = http.post(server.ROUTE_PATH, json={"action": "getDeal", "dealId": 404})

    assert response.status_code == 500
    assert response.json() == {"status": "error", "message": "Not found"}


def test_missing_token_is_500(http, monkeypatch):
    monkeypatch.delenv("PIPEDRIVE_API_TOKEN", raising=False)

    response = http.post(server.ROUTE_PATH, json={"action": "getPipelines"})

    assert response.status_code == 500
    assert "PIPEDRIVE_API_TOKEN" in response.json()["message"]


@pytest.mark.asyncio
async def test_mcp_tool_runs_actions(upstream_calls):
    envelope = await server.pipedrive_action("getPipelines")
    assert envelope["status"] == "success"

    envelope = await server.pipedrive_action("getDeal", {})
    assert envelope == {"status": "error", "message": "dealId is required"}
