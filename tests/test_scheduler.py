"""Tests for the periodic silent sync and the long-running console loop."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import respx
from httpx import Response

from identity_console.cache import UserCache
from identity_console.models import ProcessedUser
from identity_console.orchestrator import Notice, SyncOutcome
from identity_console.scheduler import (
    JOB_ID,
    _report_task,
    _silent_sync,
    build_scheduler,
    run_console_loop,
)

from tests.conftest import RELAY
from tests.helpers import page, user_item


class FakeOrchestrator:
    def __init__(self, outcome: SyncOutcome) -> None:
        self.outcome = outcome
        self.calls: list[dict] = []

    async def sync(self, **kwargs) -> SyncOutcome:
        self.calls.append(kwargs)
        return self.outcome


def test__build_scheduler__registers_interval_job(config) -> None:
    scheduler = build_scheduler(config, FakeOrchestrator(SyncOutcome()))

    [job] = scheduler.get_jobs()
    assert job.id == JOB_ID
    assert job.trigger.interval == timedelta(minutes=config.scheduler.sync_interval_min)
    assert job.max_instances == 1
    assert job.misfire_grace_time == config.scheduler.misfire_grace_time
    assert not scheduler.running


@pytest.mark.asyncio
async def test__silent_sync__runs_a_silent_sync() -> None:
    orchestrator = FakeOrchestrator(
        SyncOutcome(records=[], ok=True, notice=Notice("info", "updated"))
    )

    await _silent_sync(orchestrator)

    assert orchestrator.calls == [{"silent": True}]


@pytest.mark.asyncio
async def test__report_task__tolerates_failed_and_cancelled_tasks() -> None:
    async def crash() -> SyncOutcome:
        raise RuntimeError("boom")

    async def ok() -> SyncOutcome:
        return SyncOutcome()

    failed = asyncio.ensure_future(crash())
    done = asyncio.ensure_future(ok())
    cancelled = asyncio.ensure_future(asyncio.sleep(10))
    cancelled.cancel()
    await asyncio.gather(failed, done, cancelled, return_exceptions=True)

    for task in (failed, done, cancelled):
        _report_task(task)


@pytest.mark.asyncio
async def test__run_console_loop__syncs_empty_cache_then_stops(config) -> None:
    stop = asyncio.Event()
    stop.set()

    with respx.mock(base_url=RELAY, assert_all_called=False) as api:
        api.get("/").mock(return_value=Response(200, text="Spectro Proxy Active"))
        users = api.get("/spectro/users").mock(
            return_value=Response(200, json=page([user_item("u1"), user_item("u2")]))
        )
        api.get("/spectro/roles").mock(return_value=Response(200, json=page([])))
        api.get("/spectro/teams").mock(return_value=Response(200, json=page([])))

        await run_console_loop(config, stop)

    assert users.call_count == 1
    with UserCache(config.cache) as cache:
        assert sorted(u.id for u in cache.load_all()) == ["u1", "u2"]


@pytest.mark.asyncio
async def test__run_console_loop__fresh_cache_skips_network(config) -> None:
    with UserCache(config.cache) as cache:
        cache.replace_all([ProcessedUser("u1", "a@example.com", "A", "B", "A B", True)])
        cache.set_last_sync_time(datetime.now(timezone.utc))

    stop = asyncio.Event()
    stop.set()

    with respx.mock(base_url=RELAY, assert_all_called=False) as api:
        users = api.get("/spectro/users").mock(return_value=Response(200, json=page([])))

        await run_console_loop(config, stop)

    assert not users.called
