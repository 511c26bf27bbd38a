"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from price_intel.config import settings
from price_intel.worker.jobs import MarketDealsRefreshJob

logger = logging.getLogger(__name__)


def setup_scheduler(refresh_job: MarketDealsRefreshJob) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Args:
        refresh_job: Market deals cache refresh job

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    interval = max(1, int(settings.deals_refresh_interval_minutes))

    if settings.deals_refresh_enabled:
        scheduler.add_job(
            refresh_job.run,
            IntervalTrigger(minutes=interval),
            id=refresh_job.name,
            name="Refresh market deals cache",
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=300,
            replace_existing=True,
        )
        logger.info(f"Scheduler configured: market deals refresh every {interval} minutes")
    else:
        logger.info("Scheduler configured: market deals refresh disabled")

    return scheduler
