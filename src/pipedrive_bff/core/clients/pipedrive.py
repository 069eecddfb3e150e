"""Pipedrive CRM REST API client.

API docs: https://developers.pipedrive.com/docs/api/v1
Authentication: `api_token` query parameter on every request.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ...config import Settings
from ..models import CrmResponse

logger = logging.getLogger(__name__)


class PipedriveError(Exception):
    """Pipedrive reported an error for a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PipedriveClient:
    """Thin async wrapper around the Pipedrive v1 API.

    One instance serves one inbound request:

        async with PipedriveClient(settings) as client:
            response = await client.request("GET", "/deals", query={"status": "open"})

    `transport` lets tests plug in an `httpx.MockTransport`.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "PipedriveClient":
        self._http = httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> CrmResponse:
        """Issue one API call and fold the upstream answer into a CrmResponse.

        HTTP error statuses and `success: false` bodies come back as
        `status="error"`; transport failures and undecodable success bodies raise.
        """
        if self._http is None:
            raise RuntimeError("Client not initialized. Use async context manager.")

        params = {k: v for k, v in (query or {}).items() if v is not None}
        params["api_token"] = self.settings.api_token

        logger.debug("Pipedrive %s %s %s", method, path, {k: v for k, v in params.items() if k != "api_token"})
        response = await self._http.request(method, path, params=params, json=body)

        if response.status_code >= 400:
            try:
                payload = response.json() if response.content else {}
            except ValueError:
                payload = {}
            message = payload.get("error") or f"HTTP {response.status_code}"
            logger.warning("Pipedrive %s %s failed: %s", method, path, message)
            return CrmResponse(status="error", message=message, data=payload.get("data"))

        payload = response.json() if response.content else {}
        if not payload.get("success", True):
            return CrmResponse(
                status="error",
                message=payload.get("error") or "Unknown Pipedrive error",
                data=payload.get("data"),
            )

        return CrmResponse(
            status="success",
            data=payload.get("data"),
            additional_data=payload.get("additional_data"),
        )


async def call(
    client: PipedriveClient,
    method: str,
    path: str,
    *,
    query: Optional[dict[str, Any]] = None,
    body: Optional[dict[str, Any]] = None,
) -> Any:
    """Like `client.request`, but returns `data` and raises PipedriveError on failure."""
    response = await client.request(method, path, query=query, body=body)
    if not response.ok:
        raise PipedriveError(response.message or f"{method} {path} failed")
    return response.data
