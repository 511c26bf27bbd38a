"""Shared fixtures: SQLite-backed ledger, fake store, aggregate builders."""

import asyncio
import itertools
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from price_intel.db.models import (
    AffiliateFeedRun,
    Base,
    LinkStatus,
    ListingStatus,
    MerchantRetailer,
    MerchantStatus,
    Price,
    Product,
    ProductLink,
    Retailer,
    SourceProduct,
    VisibilityStatus,
)
from price_intel.detect.aggregator import DailyBest, ProductAggregate
from price_intel.store.observations import (
    CaliberObservation,
    CurrentOffer,
    ObservationRow,
    ObservationStore,
)

NOW = datetime(2026, 3, 10, 12, 0, 0)


def day(n: int) -> date:
    """Calendar day `n` of a window ending on NOW's date (day 0 = NOW's date)."""
    return NOW.date() - timedelta(days=n)


def make_offer(
    product_id: str = "p1",
    price: str = "10.00",
    caliber: Optional[str] = "9mm",
    round_count: Optional[int] = 50,
    observed_at: datetime = NOW,
    retailer_id: str = "r1",
) -> CurrentOffer:
    return CurrentOffer(
        product_id=product_id,
        product_name=f"Product {product_id}",
        caliber=caliber,
        round_count=round_count,
        price=Decimal(price),
        retailer_id=retailer_id,
        retailer_name=f"Retailer {retailer_id}",
        url=f"https://example.com/{product_id}",
        observed_at=observed_at,
    )


def make_aggregate(
    product_id: str = "p1",
    current: str = "10.00",
    daily_prices: Sequence[str] = (),
    median: Optional[str] = None,
    lowest: Optional[str] = None,
    caliber: Optional[str] = "9mm",
    round_count: Optional[int] = 50,
    observed_at: datetime = NOW,
) -> ProductAggregate:
    """Aggregate with one in-stock daily best per entry of `daily_prices`."""
    daily = [
        DailyBest(day=day(len(daily_prices) - i), price=Decimal(p), had_stock=True)
        for i, p in enumerate(daily_prices)
    ]
    return ProductAggregate(
        offer=make_offer(product_id, current, caliber, round_count, observed_at),
        daily_bests=daily,
        median_price=Decimal(median) if median is not None else None,
        lowest_price_90d=Decimal(lowest) if lowest is not None else None,
    )


class FakeObservationStore(ObservationStore):
    """In-memory store double that records the calls it receives."""

    def __init__(
        self,
        offers: Sequence[CurrentOffer] = (),
        observations: Sequence[ObservationRow] = (),
        lowest: Optional[dict] = None,
        caliber_rows: Sequence[CaliberObservation] = (),
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.offers = list(offers)
        self.observations = list(observations)
        self.lowest = dict(lowest or {})
        self.caliber_rows = list(caliber_rows)
        self.delay = delay
        self.error = error
        self.calls: list[tuple] = []

    async def _maybe_fail(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

    async def fetch_current_offers(self, since, limit):
        self.calls.append(("current_offers", since, limit))
        await self._maybe_fail()
        return [o for o in self.offers if o.observed_at >= since][:limit]

    async def fetch_observations(self, product_ids, since):
        self.calls.append(("observations", tuple(product_ids), since))
        await self._maybe_fail()
        return [
            r for r in self.observations
            if r.product_id in product_ids and r.observed_at >= since
        ]

    async def fetch_lowest_prices(self, product_ids, since):
        self.calls.append(("lowest_prices", tuple(product_ids), since))
        await self._maybe_fail()
        return {pid: p for pid, p in self.lowest.items() if pid in product_ids}

    async def fetch_caliber_observations(self, caliber_spellings, since, brand=None, grain=None):
        self.calls.append(("caliber_observations", tuple(caliber_spellings), since, brand, grain))
        await self._maybe_fail()
        return [r for r in self.caliber_rows if r.observed_at >= since]


class LedgerBuilder:
    """Writes retailers, products, listings and prices into the test database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._pending: list = []
        self._ids = itertools.count(1)

    def retailer(
        self,
        retailer_id: str,
        visibility: VisibilityStatus = VisibilityStatus.ELIGIBLE,
        name: Optional[str] = None,
    ) -> str:
        self._pending.append(
            Retailer(id=retailer_id, name=name or f"Retailer {retailer_id}", visibility_status=visibility.value)
        )
        return retailer_id

    def merchant(
        self,
        retailer_id: str,
        status: MerchantStatus = MerchantStatus.ACTIVE,
        listing_status: ListingStatus = ListingStatus.LISTED,
    ) -> None:
        self._pending.append(
            MerchantRetailer(
                id=next(self._ids),
                merchant_id=f"m-{retailer_id}",
                retailer_id=retailer_id,
                status=status.value,
                listing_status=listing_status.value,
            )
        )

    def product(
        self,
        product_id: str,
        caliber: Optional[str] = "9mm",
        round_count: Optional[int] = 50,
        brand: Optional[str] = None,
        grain: Optional[int] = None,
    ) -> str:
        self._pending.append(
            Product(
                id=product_id,
                name=f"Product {product_id}",
                caliber=caliber,
                brand=brand,
                grain_weight=grain,
                round_count=round_count,
            )
        )
        return product_id

    def listing(
        self,
        product_id: str,
        retailer_id: str,
        status: LinkStatus = LinkStatus.MATCHED,
    ) -> str:
        source_id = f"sp-{next(self._ids)}"
        self._pending.append(SourceProduct(id=source_id, retailer_id=retailer_id, title=product_id))
        self._pending.append(
            ProductLink(
                id=next(self._ids),
                product_id=product_id,
                source_product_id=source_id,
                status=status.value,
            )
        )
        return source_id

    def feed_run(self, run_id: str, ignored: bool = False) -> str:
        self._pending.append(
            AffiliateFeedRun(id=run_id, started_at=NOW, ignored_at=NOW if ignored else None)
        )
        return run_id

    def price(
        self,
        source_id: str,
        retailer_id: str,
        price: str,
        observed_at: datetime,
        in_stock: bool = True,
        run_id: Optional[str] = None,
    ) -> None:
        self._pending.append(
            Price(
                id=next(self._ids),
                source_product_id=source_id,
                retailer_id=retailer_id,
                price=Decimal(price),
                in_stock=in_stock,
                url=f"https://example.com/{source_id}",
                affiliate_feed_run_id=run_id,
                observed_at=observed_at,
            )
        )

    async def commit(self) -> None:
        async with self.session_factory() as db:
            db.add_all(self._pending)
            await db.commit()
        self._pending = []


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest_asyncio.fixture
async def db_session_factory(tmp_path):
    """Session factory over a fresh SQLite database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def ledger(db_session_factory) -> LedgerBuilder:
    return LedgerBuilder(db_session_factory)
