"""Windowed price aggregation per canonical product.

Turns visible observations into typed per-product aggregates:
current best offer (7 days), daily-best series and its median (30 days),
day-level stock state (30 days) and the lowest price (90 days).
"""

import asyncio
import logging
import statistics
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from price_intel.config import settings
from price_intel.errors import UpstreamUnavailableError
from price_intel.store.observations import CurrentOffer, ObservationRow, ObservationStore

logger = logging.getLogger(__name__)


def utc_day(ts: datetime) -> date:
    """UTC calendar day of a timestamp. Naive timestamps are taken as UTC."""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.date()


def utc_midnight(day: date, like: datetime) -> datetime:
    """Start of `day` in UTC, naive or aware to match `like` for comparisons."""
    start = datetime.combine(day, time.min)
    if like.tzinfo is not None:
        start = start.replace(tzinfo=timezone.utc)
    return start


@dataclass(frozen=True)
class WindowConfig:
    """Window lengths in days."""

    current_days: int = 7
    median_days: int = 30
    lowest_days: int = 90
    max_products: int = 500

    @classmethod
    def from_settings(cls) -> "WindowConfig":
        return cls(
            current_days=settings.current_window_days,
            median_days=settings.median_window_days,
            lowest_days=settings.lowest_window_days,
            max_products=settings.max_products_to_evaluate,
        )

    def starts(self, now: datetime) -> tuple[datetime, datetime, datetime]:
        """(current, median, lowest) window start timestamps."""
        return (
            now - timedelta(days=self.current_days),
            now - timedelta(days=self.median_days),
            now - timedelta(days=self.lowest_days),
        )


@dataclass(frozen=True)
class DailyBest:
    """Best visible in-stock price for one product on one UTC day."""

    day: date
    price: Optional[Decimal]  # None when every observation that day was out of stock
    had_stock: bool


@dataclass
class ProductAggregate:
    """Typed per-product statistics for the deal pipeline."""

    offer: CurrentOffer
    daily_bests: list[DailyBest] = field(default_factory=list)
    median_price: Optional[Decimal] = None
    lowest_price_90d: Optional[Decimal] = None

    @property
    def product_id(self) -> str:
        return self.offer.product_id

    @property
    def current_price(self) -> Decimal:
        return self.offer.price

    @property
    def daily_point_count(self) -> int:
        """Distinct days with an in-stock daily best."""
        return sum(1 for d in self.daily_bests if d.price is not None)

    @property
    def stock_by_day(self) -> dict[date, bool]:
        """Day -> had_stock, only for days that had at least one observation."""
        return {d.day: d.had_stock for d in self.daily_bests}


def build_daily_bests(rows: Iterable[ObservationRow]) -> list[DailyBest]:
    """
    Bucket one product's observations by UTC day.

    Days without any observation get no entry.

    Args:
        rows: Visible observations for a single product

    Returns:
        DailyBest entries sorted by day
    """
    best: dict[date, Optional[Decimal]] = {}
    for row in rows:
        day = utc_day(row.observed_at)
        current = best.get(day)
        if row.in_stock and (current is None or row.price < current):
            best[day] = row.price
        elif day not in best:
            best[day] = None

    return [
        DailyBest(day=day, price=price, had_stock=price is not None)
        for day, price in sorted(best.items())
    ]


def median_daily_best(daily_bests: Iterable[DailyBest]) -> Optional[Decimal]:
    """Median of the in-stock daily bests (mean of the two middle values for even counts)."""
    prices = [d.price for d in daily_bests if d.price is not None]
    if not prices:
        return None
    return statistics.median(prices)


def build_aggregates(
    offers: Iterable[CurrentOffer],
    observations: Iterable[ObservationRow],
    lowest_prices: Mapping[str, Decimal],
) -> list[ProductAggregate]:
    """
    Combine store results into one aggregate per offered product.

    Args:
        offers: Current best offer per candidate product
        observations: Visible observations in the median window
        lowest_prices: Minimum visible price per product in the lowest window

    Returns:
        Aggregates in offer order
    """
    by_product: dict[str, list[ObservationRow]] = {}
    for row in observations:
        by_product.setdefault(row.product_id, []).append(row)

    aggregates = []
    for offer in offers:
        daily = build_daily_bests(by_product.get(offer.product_id, []))
        aggregates.append(
            ProductAggregate(
                offer=offer,
                daily_bests=daily,
                median_price=median_daily_best(daily),
                lowest_price_90d=lowest_prices.get(offer.product_id),
            )
        )
    return aggregates


class WindowedAggregator:
    """Reads the windows from the store and builds product aggregates."""

    def __init__(
        self,
        store: ObservationStore,
        config: Optional[WindowConfig] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.config = config or WindowConfig.from_settings()
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.query_timeout_seconds
        )

    async def aggregate(self, now: datetime) -> list[ProductAggregate]:
        """
        Collect aggregates for up to `max_products` candidates.

        Raises:
            UpstreamUnavailableError: store failure or timeout. Partial
                results are never returned.
        """
        try:
            return await asyncio.wait_for(self._collect(now), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error(f"Aggregation timed out after {self.timeout_seconds}s")
            raise UpstreamUnavailableError(
                "aggregate", f"timed out after {self.timeout_seconds}s"
            ) from e

    async def _collect(self, now: datetime) -> list[ProductAggregate]:
        current_start, median_start, lowest_start = self.config.starts(now)

        offers = await self.store.fetch_current_offers(current_start, self.config.max_products)
        if not offers:
            return []

        if len(offers) >= self.config.max_products:
            logger.warning(
                f"Candidate cap reached ({self.config.max_products} products); "
                "remaining products were not evaluated"
            )

        product_ids = [o.product_id for o in offers]
        observations, lowest = await asyncio.gather(
            self.store.fetch_observations(product_ids, median_start),
            self.store.fetch_lowest_prices(product_ids, lowest_start),
        )

        aggregates = build_aggregates(offers, observations, lowest)
        logger.debug(
            f"Aggregated {len(aggregates)} products from {len(observations)} observations"
        )
        return aggregates
