"""Main application entry point: runs the market deals refresh worker."""

import asyncio
import logging

from prometheus_client import start_http_server

from price_intel.cache import ResultCache
from price_intel.config import settings
from price_intel.db.session import AsyncSessionLocal, engine
from price_intel.logging_config import setup_logging
from price_intel.services.market_deals import MarketDealsService
from price_intel.store.observations import SqlObservationStore
from price_intel.worker.jobs import JobStatusRegistry, MarketDealsRefreshJob
from price_intel.worker.scheduler import setup_scheduler

setup_logging()
logger = logging.getLogger(__name__)


async def run() -> None:
    """Start the scheduler and block until cancelled."""
    logger.info("Starting price intelligence worker...")

    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info(f"Metrics exposed on port {settings.metrics_port}")

    store = SqlObservationStore(AsyncSessionLocal)
    cache = ResultCache()
    service = MarketDealsService(store, cache=cache)
    refresh_job = MarketDealsRefreshJob(service, JobStatusRegistry())

    scheduler = setup_scheduler(refresh_job)
    scheduler.start()
    logger.info("Scheduler started")

    try:
        # Warm the cache once instead of waiting a full interval
        try:
            await refresh_job.run()
        except Exception:
            logger.exception("Initial market deals refresh failed")

        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down...")
        scheduler.shutdown()
        await cache.close()
        await engine.dispose()
        logger.info("Shutdown complete")


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
