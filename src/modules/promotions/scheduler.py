"""Daily check for academic years whose end-of-year date has passed."""

import logging
from datetime import date

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.config import settings
from src.modules.promotions.service import run_due_promotions

logger = logging.getLogger(__name__)

JOB_ID = "year_end_promotions"

_scheduler: AsyncIOScheduler | None = None


async def year_end_promotion_job() -> None:
    outcomes = await run_due_promotions(date.today())
    if outcomes:
        logger.info("Scheduled promotions finished: %s", outcomes)


def start_scheduler() -> AsyncIOScheduler:
    """Start the promotion scheduler (idempotent). Must run inside the event loop."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        year_end_promotion_job,
        CronTrigger(hour=settings.promotion_scheduler_hour, minute=0),
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    _scheduler = scheduler
    logger.info(
        "Promotion scheduler started (daily at %02d:00)", settings.promotion_scheduler_hour
    )
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Promotion scheduler stopped")
    _scheduler = None
