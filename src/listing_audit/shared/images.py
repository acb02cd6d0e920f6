"""Image fetching for inline (base64) vision input."""

from __future__ import annotations

import asyncio
import base64
import logging

import httpx

logger = logging.getLogger(__name__)

_FETCH_TIMEOUT = 10  # seconds per image


async def fetch_image_as_data_url(http: httpx.AsyncClient, url: str) -> str:
    """Download ``url`` and return it as a ``data:<mime>;base64,...`` URL.

    Raises ``httpx.HTTPError`` on network failure or a non-2xx status.
    """
    resp = await http.get(url)
    resp.raise_for_status()
    mime = resp.headers.get("content-type", "image/jpeg").split(";")[0].strip() or "image/jpeg"
    encoded = base64.b64encode(resp.content).decode("ascii")
    return f"data:{mime};base64,{encoded}"


async def fetch_images(urls: list[str]) -> list[str]:
    """Fetch several images concurrently, skipping any that fail.

    Returns the data URLs that could be fetched, in input order.  An empty
    result means no image was usable; the caller decides what that means.
    """
    async with httpx.AsyncClient(follow_redirects=True, timeout=_FETCH_TIMEOUT) as http:
        async def _one(url: str) -> str | None:
            try:
                return await fetch_image_as_data_url(http, url)
            except httpx.HTTPError as exc:
                logger.warning("Failed to fetch image %s: %s", url, exc)
                return None

        results = await asyncio.gather(*(_one(u) for u in urls))
    return [r for r in results if r is not None]
