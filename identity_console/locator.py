"""Relay discovery: race the candidate base URLs, first healthy one wins."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

import httpx

logger = logging.getLogger("console.locator")

DISCOVERY_TIMEOUT_SECONDS = 5.0


def dedupe_candidates(candidates: Iterable[str]) -> list[str]:
    """Drop repeated base URLs (ignoring a trailing slash), keeping first-seen order."""
    seen: set[str] = set()
    unique: list[str] = []
    for url in candidates:
        url = url.rstrip("/")
        if url and url not in seen:
            seen.add(url)
            unique.append(url)
    return unique


class BackendLocator:
    """Best-effort discovery of a reachable relay.

    Every candidate is health-checked concurrently. The first check to come back with
    a 2xx status resolves the race; when none does before the deadline the
    fallback (by default the first candidate) is returned instead of raising.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        candidates: Iterable[str],
        fallback: Optional[str] = None,
        timeout: float = DISCOVERY_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self.candidates = dedupe_candidates(candidates)
        if not self.candidates and not fallback:
            raise ValueError("BackendLocator needs at least one candidate")
        self.fallback = (fallback or self.candidates[0]).rstrip("/")
        self.timeout = timeout
        # Losing checks keep running after the race is decided; hold them here
        self._stragglers: set[asyncio.Task] = set()

    async def _check(self, base_url: str) -> str:
        resp = await self._client.get(f"{base_url}/", timeout=self.timeout)
        if not resp.is_success:
            raise httpx.HTTPStatusError(
                f"health check returned {resp.status_code}", request=resp.request, response=resp
            )
        return base_url

    def _discard(self, task: asyncio.Task) -> None:
        self._stragglers.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Late health check failed: %s", task.exception())

    async def resolve(self) -> str:
        """Return the first candidate that answers successfully, else the fallback."""
        if not self.candidates:
            return self.fallback

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        pending = {asyncio.ensure_future(self._check(url)) for url in self.candidates}

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task.exception() is None:
                        winner = task.result()
                        logger.info("Connected to relay", extra={"base_url": winner})
                        for loser in pending:
                            self._stragglers.add(loser)
                            loser.add_done_callback(self._discard)
                        pending = set()
                        return winner
                    logger.debug("Health check failed: %s", task.exception())
        finally:
            # Deadline reached: abort whatever is still in flight
            for task in pending:
                task.cancel()

        logger.warning(
            "Relay discovery failed, defaulting to %s", self.fallback,
            extra={"base_url": self.fallback},
        )
        return self.fallback
