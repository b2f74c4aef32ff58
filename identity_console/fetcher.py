"""Cursor pagination over the relay's list endpoints."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import httpx

from identity_console.exceptions import FetchError

logger = logging.getLogger("console.fetcher")

PAGE_SIZE = 50
# Upstream sometimes hands back "" or a short placeholder on the last page
MIN_CURSOR_LENGTH = 3

ProgressCallback = Callable[[int], None]


def next_cursor(body: dict[str, Any]) -> Optional[str]:
    """Continuation token from ``listmeta.continue`` or ``metadata.continue``.

    Returns None when there is no usable token: absent, not a string, or
    2 characters or fewer.
    """
    token = None
    for key in ("listmeta", "metadata"):
        section = body.get(key)
        token = section.get("continue") if isinstance(section, dict) else None
        if token:
            break
    if isinstance(token, str) and len(token) >= MIN_CURSOR_LENGTH:
        return token
    return None


class PaginatedFetcher:
    """Retrieve a whole resource collection, page by page.

    A failure before any item has been retrieved is fatal (the resource is
    unreachable). A failure after that ends pagination and the items
    gathered so far are returned.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size

    async def _get_page(self, url: str, cursor: Optional[str]) -> dict[str, Any]:
        params = {"limit": str(self.page_size)}
        if cursor:
            params["continue"] = cursor
        resp = await self._client.get(
            url, params=params, headers={"Accept": "application/json"}
        )
        resp.raise_for_status()
        body = resp.json()
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        return body

    async def fetch_all(
        self,
        resource_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[dict[str, Any]]:
        url = f"{self.base_url}{resource_path}"
        items: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        pages = 0
        started = time.monotonic()

        while True:
            try:
                body = await self._get_page(url, cursor)
            except (httpx.HTTPError, ValueError) as exc:
                if not items:
                    status = (
                        exc.response.status_code
                        if isinstance(exc, httpx.HTTPStatusError)
                        else None
                    )
                    logger.error(
                        "Fetch failed for %s before any items: %s", resource_path, exc,
                        extra={"resource": resource_path},
                    )
                    raise FetchError(resource_path, str(exc), status_code=status) from exc
                logger.warning(
                    "Page %d failed for %s, keeping %d items: %s",
                    pages + 1, resource_path, len(items), exc,
                    extra={"resource": resource_path, "records": len(items)},
                )
                break

            pages += 1
            page_items = body.get("items") or []
            if page_items:
                items.extend(page_items)
                if on_progress is not None:
                    on_progress(len(items))

            cursor = next_cursor(body)
            if cursor is None:
                break

        logger.info(
            "Fetched %s (%d pages)", resource_path, pages,
            extra={
                "resource": resource_path,
                "records": len(items),
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return items
