# vigora/services/scheduler.py
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from fastapi import FastAPI

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from vigora.core.config import settings
from vigora.db.session import AsyncSessionLocal
from vigora.services.cleanup import run_housekeeping
from vigora.services.rate_limit import close_redis

scheduler: Optional[AsyncIOScheduler] = None

@asynccontextmanager
async def lifespan_scheduler(app: FastAPI) -> AsyncGenerator[None, None]:
    """FastAPI lifespan: start / stop APScheduler and release Redis."""
    global scheduler
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_cleanup_job,
        IntervalTrigger(minutes=settings.CLEANUP_INTERVAL_MINUTES),
        id="housekeeping",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("APScheduler started: housekeeping every {} minutes", settings.CLEANUP_INTERVAL_MINUTES)
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            logger.info("APScheduler shutdown")
        await close_redis()

async def run_cleanup_job() -> Optional[dict]:
    """Scheduled job: purge expired blacklist rows and stale QR tokens."""
    async with AsyncSessionLocal() as db:
        try:
            deleted = await run_housekeeping(db)
        except Exception:
            logger.exception("Housekeeping failed")
            await db.rollback()
            return None
    logger.bind(**deleted).info("Housekeeping done")
    return deleted
