"""Out-of-stock streak detection over day-level stock state.

Runs are computed only over days that had at least one visible
observation. A day with no observation breaks a run: it is neither in
stock nor out of stock, so it is never counted as part of an outage.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional

from price_intel.config import settings
from price_intel.detect.aggregator import ProductAggregate, utc_midnight

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StockGapConfig:
    """Outage length and restock recency thresholds."""

    min_outage_days: int = 7
    restock_window_days: int = 7

    @classmethod
    def from_settings(cls) -> "StockGapConfig":
        return cls(
            min_outage_days=settings.min_oos_streak_days,
            restock_window_days=settings.restock_window_days,
        )


@dataclass(frozen=True)
class StockRun:
    """Maximal run of consecutive observed days with the same stock state."""

    start: date
    end: date
    in_stock: bool

    @property
    def length(self) -> int:
        return (self.end - self.start).days + 1


def encode_runs(stock_by_day: Mapping[date, bool]) -> list[StockRun]:
    """
    Run-length encode a day -> had_stock mapping.

    Two days belong to the same run only if they are consecutive calendar
    days with the same value.
    """
    runs: list[StockRun] = []
    for day in sorted(stock_by_day):
        had_stock = stock_by_day[day]
        last = runs[-1] if runs else None
        if last and last.in_stock == had_stock and last.end + ONE_DAY == day:
            runs[-1] = StockRun(start=last.start, end=day, in_stock=had_stock)
        else:
            runs.append(StockRun(start=day, end=day, in_stock=had_stock))
    return runs


def find_outages(stock_by_day: Mapping[date, bool], min_days: int) -> list[StockRun]:
    """Out-of-stock runs at least `min_days` long."""
    return [
        run for run in encode_runs(stock_by_day)
        if not run.in_stock and run.length >= min_days
    ]


def restock_after(
    outage: StockRun,
    stock_by_day: Mapping[date, bool],
    now: datetime,
    window_days: int,
) -> Optional[date]:
    """
    First in-stock day after an outage that falls inside the restock window.

    A day is inside the window when its UTC midnight is at or after
    `now - window_days`.
    """
    window_start = now - timedelta(days=window_days)
    for day in sorted(stock_by_day):
        if day <= outage.end or not stock_by_day[day]:
            continue
        if utc_midnight(day, now) >= window_start:
            return day
    return None


def is_recently_restocked(
    stock_by_day: Mapping[date, bool],
    now: datetime,
    config: Optional[StockGapConfig] = None,
) -> bool:
    """
    Check for a long outage followed by a recent restock.

    An outage that is still ongoing never qualifies: this detects the
    transition back into stock, not the current state.
    """
    config = config or StockGapConfig()
    for outage in find_outages(stock_by_day, config.min_outage_days):
        if restock_after(outage, stock_by_day, now, config.restock_window_days) is not None:
            return True
    return False


def find_restocked_products(
    aggregates: Iterable[ProductAggregate],
    now: datetime,
    config: Optional[StockGapConfig] = None,
) -> set[str]:
    """Product ids whose stock history shows a qualifying restock."""
    config = config or StockGapConfig()
    restocked = {
        agg.product_id
        for agg in aggregates
        if is_recently_restocked(agg.stock_by_day, now, config)
    }
    if restocked:
        logger.debug(f"{len(restocked)} products restocked after a {config.min_outage_days}+ day outage")
    return restocked
