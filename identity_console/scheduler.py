"""APScheduler-based periodic refresh of the user cache."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from identity_console.cache import UserCache
from identity_console.config import ConsoleConfig
from identity_console.orchestrator import SyncOrchestrator, SyncOutcome

logger = logging.getLogger("console.scheduler")

JOB_ID = "silent_sync"


async def _silent_sync(orchestrator: SyncOrchestrator) -> None:
    """Timer-driven sync. Failures only show up in the log."""
    outcome = await orchestrator.sync(silent=True)
    if outcome.notice is not None:
        logger.info(outcome.notice.message, extra={"records": len(outcome.records), "silent": True})


def _on_job_error(event) -> None:
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(config: ConsoleConfig, orchestrator: SyncOrchestrator) -> AsyncIOScheduler:
    """Scheduler with the hourly silent sync job, not yet started."""
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    sched = config.scheduler

    scheduler.add_job(
        _silent_sync,
        "interval",
        minutes=sched.sync_interval_min,
        args=[orchestrator],
        id=JOB_ID,
        max_instances=1,
        misfire_grace_time=sched.misfire_grace_time,
    )
    return scheduler


def _report(outcome: SyncOutcome) -> None:
    if outcome.error:
        logger.error(outcome.error)
    elif outcome.notice is not None:
        logger.info(outcome.notice.message, extra={"records": len(outcome.records)})


def _report_task(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    if task.exception() is not None:
        logger.error("Background refresh crashed: %s", task.exception())
        return
    _report(task.result())


async def run_console_loop(config: ConsoleConfig, stop: Optional[asyncio.Event] = None) -> None:
    """Startup (cache first, freshness check), then refresh on the interval until stopped."""
    stop = stop or asyncio.Event()
    cache = UserCache(config.cache)
    orchestrator = SyncOrchestrator(config, cache)
    scheduler = build_scheduler(config, orchestrator)
    try:
        outcome = await orchestrator.startup()
        logger.info("Showing %d users", len(outcome.records), extra={"records": len(outcome.records)})
        _report(outcome)
        if orchestrator.pending_refresh is not None:
            orchestrator.pending_refresh.add_done_callback(_report_task)

        scheduler.start()
        logger.info("Started scheduler with jobs: %s", [j.id for j in scheduler.get_jobs()])
        await stop.wait()
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        await orchestrator.aclose()
        cache.close()
