"""Background jobs and their last-run status."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from price_intel import metrics
from price_intel.errors import PriceIntelError
from price_intel.services.market_deals import MarketDealsService

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class JobStatus:
    """Last known state of a named job."""

    name: str
    state: JobState = JobState.IDLE
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_result: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
            "last_result": self.last_result,
        }


class JobStatusRegistry:
    """In-process registry of job statuses, keyed by job name."""

    def __init__(self):
        self._statuses: dict[str, JobStatus] = {}

    def get(self, name: str) -> JobStatus:
        if name not in self._statuses:
            self._statuses[name] = JobStatus(name=name)
        return self._statuses[name]

    def all(self) -> list[JobStatus]:
        return [self._statuses[name] for name in sorted(self._statuses)]

    def mark_running(self, name: str) -> JobStatus:
        status = self.get(name)
        status.state = JobState.RUNNING
        status.last_started_at = datetime.utcnow()
        status.last_error = None
        return status

    def mark_succeeded(self, name: str, result: Optional[dict] = None) -> JobStatus:
        status = self.get(name)
        status.state = JobState.SUCCEEDED
        status.last_finished_at = datetime.utcnow()
        status.last_result = result
        return status

    def mark_failed(self, name: str, error: str) -> JobStatus:
        status = self.get(name)
        status.state = JobState.FAILED
        status.last_finished_at = datetime.utcnow()
        status.last_error = error
        return status


class MarketDealsRefreshJob:
    """
    Recomputes the market deals snapshot and writes it to the result cache.

    Scheduled with max_instances=1, so runs never overlap.
    """

    name = "market_deals_refresh"

    def __init__(self, service: MarketDealsService, registry: JobStatusRegistry):
        self.service = service
        self.registry = registry

    async def run(self) -> dict:
        """
        Run one refresh.

        Returns:
            Dict with job statistics

        Raises:
            PriceIntelError: the refresh failed; status is recorded first
        """
        logger.info("Starting market deals refresh")
        self.registry.mark_running(self.name)
        start_time = datetime.utcnow()

        try:
            snapshot = await self.service.refresh_cache()
        except PriceIntelError as e:
            logger.error(f"Market deals refresh failed: {e}")
            self.registry.mark_failed(self.name, str(e))
            metrics.record_job_run(self.name, success=False)
            raise

        stats = {
            "deals": len(snapshot.ranked.deals),
            "hero_product_id": snapshot.ranked.hero.product_id if snapshot.ranked.hero else None,
            "duration_seconds": (datetime.utcnow() - start_time).total_seconds(),
        }
        self.registry.mark_succeeded(self.name, stats)
        metrics.record_job_run(self.name, success=True)
        logger.info(f"Market deals refresh completed: {stats}")
        return stats
