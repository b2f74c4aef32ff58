"""Sync orchestration: fetch all three collections, join, persist, track freshness."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional, Sequence, TypeVar

import httpx

from identity_console.cache import UserCache
from identity_console.config import ConsoleConfig
from identity_console.exceptions import FetchError, SyncError
from identity_console.fetcher import PaginatedFetcher, ProgressCallback
from identity_console.joiner import join
from identity_console.locator import BackendLocator
from identity_console.models import ProcessedUser, RawRole, RawTeam, RawUser

logger = logging.getLogger("console.orchestrator")

T = TypeVar("T")

CONNECTION_ERROR_MESSAGE = "Connection Error: Unable to reach the Backend API."
SYNC_OK_MESSAGE = "Sync completed successfully."
SYNC_FAILED_MESSAGE = "Sync failed. Please check connection."
SILENT_UPDATE_MESSAGE = "Database updated successfully with new records."


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    JOINING = "joining"
    PERSISTING = "persisting"


class Freshness(str, Enum):
    UNKNOWN = "unknown"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class Notice:
    """Non-blocking message for the console (success / info / error)."""

    level: str
    message: str


@dataclass
class SyncOutcome:
    records: list[ProcessedUser] = field(default_factory=list)
    ok: bool = True
    notice: Optional[Notice] = None
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_items(items: Sequence[dict], parser: Callable[[dict], T], resource: str) -> list[T]:
    parsed: list[T] = []
    for item in items:
        try:
            parsed.append(parser(item))
        except (KeyError, TypeError, AttributeError) as exc:
            logger.warning(
                "Skipping malformed %s item: %r", resource, exc,
                extra={"resource": resource},
            )
    return parsed


def connectivity_message(exc: SyncError) -> str:
    if exc.is_transport:
        return CONNECTION_ERROR_MESSAGE
    return str(exc) or "Failed to fetch users."


class SyncOrchestrator:
    """Coordinates sync attempts against the relay and the local cache.

    The cache client is injected; the HTTP client is created here unless one
    is passed in. Concurrent ``force_sync`` calls share one in-flight attempt.
    """

    def __init__(
        self,
        config: ConsoleConfig,
        cache: UserCache,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self._cache = cache
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.backend.request_timeout)
        self._clock = clock
        self._locator = BackendLocator(
            self._client,
            config.backend.candidates,
            fallback=config.backend.fallback,
            timeout=config.backend.discovery_timeout,
        )
        self._records: list[ProcessedUser] = []
        self._state = SyncState.IDLE
        self._freshness = Freshness.UNKNOWN
        self._inflight: Optional[asyncio.Future] = None
        self._persistence: set[asyncio.Task] = set()
        self._background: Optional[asyncio.Task] = None

    @property
    def records(self) -> list[ProcessedUser]:
        """The record set currently shown to the user."""
        return list(self._records)

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def freshness(self) -> Freshness:
        return self._freshness

    @property
    def pending_refresh(self) -> Optional[asyncio.Task]:
        """Background refresh started by ``startup()``, if any."""
        return self._background

    async def aclose(self) -> None:
        await self.wait_for_persistence()
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Cache access (blocking SQLite calls run off the event loop)
    # ------------------------------------------------------------------

    async def _cache_call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def _best_effort(self, what: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        try:
            return await self._cache_call(fn, *args, **kwargs)
        except Exception as exc:
            logger.error("Cache %s failed: %s", what, exc)
            return None

    async def load_cached(self) -> list[ProcessedUser]:
        """Read the cached set and make it the visible one."""
        try:
            cached = await self._cache_call(self._cache.load_all)
        except Exception as exc:
            logger.error("Cache read failed: %s", exc)
            return []
        self._records = cached
        logger.info("Loaded cached users", extra={"records": len(cached)})
        return list(cached)

    async def last_sync_time(self) -> Optional[datetime]:
        return await self._best_effort("timestamp read", self._cache.get_last_sync_time)

    async def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        """True when there was never a successful sync or the last one is too old."""
        last = await self.last_sync_time()
        if last is None:
            return True
        now = now or self._clock()
        return now - last > timedelta(minutes=self.config.scheduler.stale_after_min)

    # ------------------------------------------------------------------
    # Sync attempt
    # ------------------------------------------------------------------

    async def force_sync(self, on_progress: Optional[ProgressCallback] = None) -> list[ProcessedUser]:
        """Run a full sync, or join the one already in flight."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._run_attempt(on_progress))
        else:
            logger.info("Sync already in progress, joining it")
        return await asyncio.shield(self._inflight)

    async def _fetch_collections(
        self, base_url: str, on_progress: Optional[ProgressCallback]
    ) -> tuple[list[dict], list[dict], list[dict]]:
        backend = self.config.backend
        fetcher = PaginatedFetcher(self._client, base_url, page_size=backend.page_size)
        results = await asyncio.gather(
            fetcher.fetch_all(backend.users_path, on_progress),
            fetcher.fetch_all(backend.roles_path),
            fetcher.fetch_all(backend.teams_path),
            return_exceptions=True,
        )
        # All three have settled; any first-page failure sinks the attempt
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            fetch_failures = [f for f in failures if isinstance(f, FetchError)]
            raise (fetch_failures or failures)[0]
        users, roles, teams = results
        return users, roles, teams

    async def _run_attempt(self, on_progress: Optional[ProgressCallback]) -> list[ProcessedUser]:
        run_id = await self._best_effort("run start", self._cache.record_run_start)
        self._state = SyncState.FETCHING
        try:
            base_url = await self._locator.resolve()
            users_raw, roles_raw, teams_raw = await self._fetch_collections(base_url, on_progress)
            self._state = SyncState.JOINING
            processed = join(
                _parse_items(users_raw, RawUser.from_api, "users"),
                _parse_items(roles_raw, RawRole.from_api, "roles"),
                _parse_items(teams_raw, RawTeam.from_api, "teams"),
            )
        except Exception as exc:
            self._state = SyncState.IDLE
            self._freshness = Freshness.STALE
            if isinstance(exc, FetchError):
                logger.error("Sync failed: %s", exc, extra={"run_id": run_id})
            else:
                logger.exception("Sync failed unexpectedly", extra={"run_id": run_id})
            if run_id:
                await self._best_effort(
                    "run end", self._cache.record_run_end,
                    run_id, "FAILED", error_message=f"{type(exc).__name__}: {exc}"[:1000],
                )
            raise SyncError(f"Sync failed: {exc}", exc) from exc
        synced_at = self._clock()
        self._records = processed
        self._freshness = Freshness.FRESH

        if processed:
            self._state = SyncState.PERSISTING
            task = asyncio.ensure_future(self._persist(processed, run_id, synced_at))
            self._persistence.add(task)
            task.add_done_callback(self._persistence.discard)
        elif run_id:
            await self._best_effort("run end", self._cache.record_run_end, run_id, "EMPTY")

        self._state = SyncState.IDLE
        logger.info("Sync complete", extra={"records": len(processed), "run_id": run_id})
        return list(processed)

    async def _persist(
        self,
        records: list[ProcessedUser],
        run_id: Optional[str],
        synced_at: datetime,
    ) -> None:
        try:
            written = await self._cache_call(self._cache.replace_all, records)
            if run_id:
                await self._cache_call(
                    self._cache.record_run_end, run_id, "SUCCESS",
                    records_upserted=written, finished_at=synced_at,
                )
            else:
                await self._cache_call(self._cache.set_last_sync_time, synced_at, written)
        except Exception as exc:
            logger.error("Persisting sync result failed: %s", exc, extra={"run_id": run_id})
            if run_id:
                await self._best_effort(
                    "run end", self._cache.record_run_end,
                    run_id, "PERSIST_FAILED", error_message=str(exc)[:1000],
                )

    async def wait_for_persistence(self) -> None:
        """Wait until every scheduled cache write has finished."""
        while self._persistence:
            await asyncio.gather(*list(self._persistence))

    # ------------------------------------------------------------------
    # Console-facing policy
    # ------------------------------------------------------------------

    async def sync(
        self, silent: bool = False, on_progress: Optional[ProgressCallback] = None
    ) -> SyncOutcome:
        """Sync on behalf of the user (explicit) or of a timer (silent).

        Silent syncs never surface failures; they report success only when the
        visible record count changed.
        """
        previous = len(self._records)
        try:
            records = await self.force_sync(on_progress)
        except SyncError as exc:
            if silent:
                logger.warning(
                    "Background sync failed, keeping %d records", previous,
                    extra={"silent": True},
                )
                return SyncOutcome(records=self.records, ok=False)
            if not self._records:
                return SyncOutcome(records=[], ok=False, error=connectivity_message(exc))
            return SyncOutcome(
                records=self.records, ok=False, notice=Notice("error", SYNC_FAILED_MESSAGE)
            )

        notice = None
        if silent:
            if len(records) != previous:
                notice = Notice("info", SILENT_UPDATE_MESSAGE)
        elif records:
            notice = Notice("success", SYNC_OK_MESSAGE)
        return SyncOutcome(records=records, ok=True, notice=notice)

    async def startup(self) -> SyncOutcome:
        """Show the cache right away; refresh in the background when it is stale.

        With an empty cache an explicit sync runs before returning.
        """
        cached = await self.load_cached()
        if not cached:
            return await self.sync(silent=False)

        if await self.needs_refresh():
            logger.info("Cache is stale, refreshing in background")
            self._background = asyncio.ensure_future(self.sync(silent=True))
        return SyncOutcome(records=cached, ok=True)
