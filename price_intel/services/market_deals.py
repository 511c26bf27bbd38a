"""Market deals: aggregate -> detect gaps -> classify -> rank -> split."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Union

from price_intel import metrics
from price_intel.cache import ResultCache
from price_intel.calibers import Caliber
from price_intel.config import settings
from price_intel.detect.aggregator import WindowConfig, WindowedAggregator
from price_intel.detect.eligibility import EligibilityConfig, MarketDeal, evaluate_deals
from price_intel.detect.personalization import split_for_viewer
from price_intel.detect.ranking import RankedDeals, rank_deals
from price_intel.detect.stock_gaps import StockGapConfig, find_restocked_products
from price_intel.errors import PriceIntelError
from price_intel.store.observations import ObservationStore

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "market_deals"


@dataclass
class MarketSnapshot:
    """Viewer-independent ranked deals as of one point in time."""

    ranked: RankedDeals
    as_of: datetime

    def to_dict(self) -> dict:
        return {
            "deals": [d.to_dict() for d in self.ranked.deals],
            "hero": self.ranked.hero.to_dict() if self.ranked.hero else None,
            "as_of": self.as_of.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MarketSnapshot":
        hero = data.get("hero")
        return cls(
            ranked=RankedDeals(
                deals=[MarketDeal.from_dict(d) for d in data.get("deals", [])],
                hero=MarketDeal.from_dict(hero) if hero else None,
            ),
            as_of=datetime.fromisoformat(data["as_of"]),
        )


@dataclass
class MarketDealsResult:
    hero_deal: Optional[MarketDeal]
    personalized_deals: list[MarketDeal] = field(default_factory=list)
    other_deals: list[MarketDeal] = field(default_factory=list)
    as_of: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "hero_deal": self.hero_deal.to_dict() if self.hero_deal else None,
            "personalized_deals": [d.to_dict() for d in self.personalized_deals],
            "other_deals": [d.to_dict() for d in self.other_deals],
            "as_of": self.as_of.isoformat() if self.as_of else None,
        }


class MarketDealsService:
    """
    Computes market-wide deals and buckets them per viewer.

    The ranked snapshot (and its hero) is computed without any viewer
    input and may be served from the result cache. Viewer calibers are
    applied afterwards and only filter.
    """

    def __init__(
        self,
        store: ObservationStore,
        cache: Optional[ResultCache] = None,
        window_config: Optional[WindowConfig] = None,
        eligibility_config: Optional[EligibilityConfig] = None,
        gap_config: Optional[StockGapConfig] = None,
        max_deals: Optional[int] = None,
        personalized_cap: Optional[int] = None,
        other_cap: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.window_config = window_config or WindowConfig.from_settings()
        self.eligibility_config = eligibility_config or EligibilityConfig.from_settings()
        self.gap_config = gap_config or StockGapConfig.from_settings()
        self.aggregator = WindowedAggregator(store, self.window_config, timeout_seconds)
        self.cache = cache
        self.max_deals = max_deals if max_deals is not None else settings.max_deals_returned
        self.personalized_cap = (
            personalized_cap if personalized_cap is not None else settings.personalized_deals_cap
        )
        self.other_cap = other_cap if other_cap is not None else settings.other_deals_cap

    def _cache_params(self) -> dict:
        return {
            "windows": [
                self.window_config.current_days,
                self.window_config.median_days,
                self.window_config.lowest_days,
            ],
            "max_products": self.window_config.max_products,
            "drop_percent": self.eligibility_config.price_drop_threshold_percent,
            "min_points": self.eligibility_config.min_daily_points,
            "gap": [self.gap_config.min_outage_days, self.gap_config.restock_window_days],
            "max_deals": self.max_deals,
        }

    async def compute_snapshot(self, now: Optional[datetime] = None) -> MarketSnapshot:
        """
        Run the full pipeline against the store, bypassing the cache.

        Raises:
            UpstreamUnavailableError: store failure or timeout
        """
        now = now or datetime.utcnow()
        try:
            aggregates = await self.aggregator.aggregate(now)
            restocked = find_restocked_products(aggregates, now, self.gap_config)
            deals = evaluate_deals(aggregates, restocked, self.eligibility_config)
            ranked = rank_deals(deals, limit=self.max_deals)
        except PriceIntelError:
            metrics.record_market_deals_run(success=False)
            raise

        metrics.record_market_deals_run(success=True)
        logger.info(
            f"Market deals computed: {len(deals)} eligible from {len(aggregates)} candidates, "
            f"hero={ranked.hero.product_id if ranked.hero else None}"
        )
        return MarketSnapshot(ranked=ranked, as_of=now)

    async def refresh_cache(self, now: Optional[datetime] = None) -> MarketSnapshot:
        """Recompute the snapshot and store it in the result cache."""
        snapshot = await self.compute_snapshot(now)
        if self.cache:
            await self.cache.set(CACHE_NAMESPACE, self._cache_params(), snapshot.to_dict())
        return snapshot

    async def get_snapshot(self) -> MarketSnapshot:
        """Cached snapshot if fresh, otherwise a recomputed one."""
        if self.cache:
            cached = await self.cache.get(CACHE_NAMESPACE, self._cache_params())
            if cached is not None:
                return MarketSnapshot.from_dict(cached)
        return await self.refresh_cache()

    async def get_market_deals(
        self,
        viewer_calibers: Iterable[Union[Caliber, str]] = (),
        now: Optional[datetime] = None,
    ) -> MarketDealsResult:
        """
        Market deals for a viewer.

        Args:
            viewer_calibers: Viewer's calibers, may be empty
            now: Evaluation time. When given, the cache is bypassed so the
                result is computed for exactly that instant.

        Returns:
            MarketDealsResult with the deterministic hero and the two buckets
        """
        snapshot = await self.compute_snapshot(now) if now else await self.get_snapshot()
        split = split_for_viewer(
            snapshot.ranked,
            viewer_calibers,
            personalized_cap=self.personalized_cap,
            other_cap=self.other_cap,
        )
        return MarketDealsResult(
            hero_deal=split.hero,
            personalized_deals=split.personalized_deals,
            other_deals=split.other_deals,
            as_of=snapshot.as_of,
        )
