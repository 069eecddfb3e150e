"""Offset pagination over the Pipedrive deals list.

Pages are requested in concurrent rounds. A page shorter than the page size
is the only end-of-data signal; the upstream `more_items_in_collection` flag
and any total counts are ignored. Once a round contains a short page, the
whole fetch ends there, even if a later page in that round returned items.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from typing import Any, AsyncIterator, Optional

from .clients.pipedrive import PipedriveClient, PipedriveError
from .models import PageFetchRequest

logger = logging.getLogger(__name__)

PAGE_SIZE = 500
BATCH_CONCURRENCY = 5


class FetchError(PipedriveError):
    """A page request failed and the multi-page operation was aborted."""


async def fetch_page(client: PipedriveClient, page: PageFetchRequest) -> list[dict[str, Any]]:
    response = await client.request("GET", "/deals", query=page.query())
    if not response.ok:
        raise FetchError(f"Deals page at offset {page.start} failed: {response.message}")
    return response.items()


async def _fetch_round(client: PipedriveClient, batch: list[PageFetchRequest]) -> list[list[dict[str, Any]]]:
    """Fetch a round of pages concurrently; on any failure the rest are cancelled first."""
    tasks = [asyncio.ensure_future(fetch_page(client, page)) for page in batch]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def iter_pages(
    client: PipedriveClient,
    status: str,
    pipeline_id: Optional[int] = None,
    max_total: Optional[int] = None,
    page_size: int = PAGE_SIZE,
    concurrency: int = BATCH_CONCURRENCY,
) -> AsyncIterator[list[dict[str, Any]]]:
    """Yield deal pages in offset order until a short page or `max_total` is covered."""
    start = 0
    requested = 0
    while max_total is None or requested < max_total:
        if max_total is None:
            pages = concurrency
        else:
            pages = min(concurrency, math.ceil((max_total - requested) / page_size))

        batch = [
            PageFetchRequest(status=status, pipeline_id=pipeline_id, start=start + i * page_size, limit=page_size)
            for i in range(pages)
        ]
        logger.debug("Fetching %d deal pages from offset %d (status=%s)", pages, start, status)
        results = await _fetch_round(client, batch)

        start += pages * page_size
        requested += pages * page_size

        for items in results:
            yield items
            if len(items) < page_size:
                return


async def fetch_all(
    client: PipedriveClient,
    status: str,
    pipeline_id: Optional[int] = None,
    max_total: Optional[int] = None,
    page_size: int = PAGE_SIZE,
    concurrency: int = BATCH_CONCURRENCY,
) -> list[dict[str, Any]]:
    """Fetch deals with the given status, at most `max_total` of them.

    Raises:
        FetchError: any page request failed; nothing is returned in that case.
    """
    if max_total is not None and max_total <= 0:
        return []

    deals: list[dict[str, Any]] = []
    pages = iter_pages(client, status, pipeline_id, max_total, page_size, concurrency)
    async with contextlib.aclosing(pages):
        async for items in pages:
            if max_total is not None:
                items = items[: max_total - len(deals)]
            deals.extend(items)
            if max_total is not None and len(deals) >= max_total:
                break

    logger.info("Fetched %d deals (status=%s, pipeline_id=%s)", len(deals), status, pipeline_id)
    return deals


async def count_by_status(
    client: PipedriveClient,
    status: str,
    pipeline_id: Optional[int] = None,
    page_size: int = PAGE_SIZE,
    concurrency: int = BATCH_CONCURRENCY,
) -> int:
    """Count deals with the given status without keeping the records."""
    total = 0
    async for items in iter_pages(client, status, pipeline_id, None, page_size, concurrency):
        total += len(items)
    return total
