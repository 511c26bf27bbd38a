"""Read access to the price observation ledger.

The store resolves canonical products to their linked source listings
(links in MATCHED or CREATED state) and applies the visibility policy to
every query. It never writes.
"""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from price_intel import metrics
from price_intel.db.models import RESOLVED_LINK_STATUSES, Price, Product, ProductLink, Retailer
from price_intel.errors import UpstreamUnavailableError
from price_intel.store.visibility import VisibilityPolicy, visibility_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObservationRow:
    """One visible price/stock observation, keyed by canonical product."""

    product_id: str
    retailer_id: str
    price: Decimal
    in_stock: bool
    observed_at: datetime


@dataclass(frozen=True)
class CurrentOffer:
    """Cheapest visible in-stock offer for a product in the current window."""

    product_id: str
    product_name: str
    caliber: Optional[str]        # Free text as stored, not yet normalized
    round_count: Optional[int]
    price: Decimal
    retailer_id: str
    retailer_name: str
    url: Optional[str]
    observed_at: datetime


@dataclass(frozen=True)
class CaliberObservation:
    """Visible in-stock observation for the price check sample."""

    product_id: str
    price: Decimal
    round_count: Optional[int]
    observed_at: datetime


class ObservationStore(ABC):
    """Read contract for the observation ledger."""

    @abstractmethod
    async def fetch_current_offers(
        self, since: datetime, limit: int
    ) -> list[CurrentOffer]:
        """Best in-stock offer per product observed at or after `since`, at most `limit` products."""

    @abstractmethod
    async def fetch_observations(
        self, product_ids: Sequence[str], since: datetime
    ) -> list[ObservationRow]:
        """All visible observations (in and out of stock) for the products since `since`."""

    @abstractmethod
    async def fetch_lowest_prices(
        self, product_ids: Sequence[str], since: datetime
    ) -> dict[str, Decimal]:
        """Minimum visible price per product since `since`."""

    @abstractmethod
    async def fetch_caliber_observations(
        self,
        caliber_spellings: Sequence[str],
        since: datetime,
        brand: Optional[str] = None,
        grain: Optional[int] = None,
    ) -> list[CaliberObservation]:
        """Visible in-stock observations for products whose caliber matches one of the spellings."""


class SqlObservationStore(ObservationStore):
    """
    Observation store backed by the SQLAlchemy models.

    Each query opens its own session from the factory, so independent
    queries of one request can run concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: Optional[VisibilityPolicy] = None,
    ):
        self.session_factory = session_factory
        self.policy = policy or visibility_policy

    @asynccontextmanager
    async def _session(self, query: str) -> AsyncIterator[AsyncSession]:
        """Session scoped to one query, with timing and error translation."""
        started = time.perf_counter()
        try:
            async with self.session_factory() as db:
                yield db
        except (SQLAlchemyError, OSError) as e:
            metrics.record_store_error(query, type(e).__name__)
            logger.error(f"Observation store query '{query}' failed: {e}", exc_info=True)
            raise UpstreamUnavailableError(query, str(e)) from e
        finally:
            metrics.record_store_query(query, started)

    def _linked_prices(self, *columns):
        """Select from Price joined to resolved product links, visibility applied."""
        stmt = (
            select(*columns)
            .select_from(Price)
            .join(ProductLink, ProductLink.source_product_id == Price.source_product_id)
            .where(ProductLink.status.in_(RESOLVED_LINK_STATUSES))
        )
        return self.policy.apply(stmt)

    async def fetch_current_offers(
        self, since: datetime, limit: int
    ) -> list[CurrentOffer]:
        ranked = (
            self._linked_prices(
                ProductLink.product_id.label("product_id"),
                Price.price.label("price"),
                Price.retailer_id.label("retailer_id"),
                Retailer.name.label("retailer_name"),
                Price.url.label("url"),
                Price.observed_at.label("observed_at"),
                func.row_number()
                .over(
                    partition_by=ProductLink.product_id,
                    order_by=(
                        Price.price.asc(),
                        Price.observed_at.asc(),
                        Price.retailer_id.asc(),
                    ),
                )
                .label("rn"),
            )
            .where(Price.in_stock.is_(True), Price.observed_at >= since)
            .subquery()
        )

        stmt = (
            select(
                ranked.c.product_id,
                ranked.c.price,
                ranked.c.retailer_id,
                ranked.c.retailer_name,
                ranked.c.url,
                ranked.c.observed_at,
                Product.name,
                Product.caliber,
                Product.round_count,
            )
            .join(Product, Product.id == ranked.c.product_id)
            .where(ranked.c.rn == 1)
            .order_by(ranked.c.product_id.asc())
            .limit(limit)
        )

        async with self._session("current_offers") as db:
            result = await db.execute(stmt)
            rows = result.all()

        return [
            CurrentOffer(
                product_id=row.product_id,
                product_name=row.name,
                caliber=row.caliber,
                round_count=row.round_count,
                price=row.price,
                retailer_id=row.retailer_id,
                retailer_name=row.retailer_name,
                url=row.url,
                observed_at=row.observed_at,
            )
            for row in rows
        ]

    async def fetch_observations(
        self, product_ids: Sequence[str], since: datetime
    ) -> list[ObservationRow]:
        if not product_ids:
            return []

        stmt = (
            self._linked_prices(
                ProductLink.product_id,
                Price.retailer_id,
                Price.price,
                Price.in_stock,
                Price.observed_at,
            )
            .where(
                ProductLink.product_id.in_(list(product_ids)),
                Price.observed_at >= since,
            )
            .order_by(ProductLink.product_id.asc(), Price.observed_at.asc())
        )

        async with self._session("observations") as db:
            result = await db.execute(stmt)
            rows = result.all()

        return [
            ObservationRow(
                product_id=row.product_id,
                retailer_id=row.retailer_id,
                price=row.price,
                in_stock=bool(row.in_stock),
                observed_at=row.observed_at,
            )
            for row in rows
        ]

    async def fetch_lowest_prices(
        self, product_ids: Sequence[str], since: datetime
    ) -> dict[str, Decimal]:
        if not product_ids:
            return {}

        stmt = (
            self._linked_prices(
                ProductLink.product_id,
                func.min(Price.price).label("lowest_price"),
            )
            .where(
                ProductLink.product_id.in_(list(product_ids)),
                Price.observed_at >= since,
            )
            .group_by(ProductLink.product_id)
        )

        async with self._session("lowest_prices") as db:
            result = await db.execute(stmt)
            rows = result.all()

        return {row.product_id: row.lowest_price for row in rows}

    async def fetch_caliber_observations(
        self,
        caliber_spellings: Sequence[str],
        since: datetime,
        brand: Optional[str] = None,
        grain: Optional[int] = None,
    ) -> list[CaliberObservation]:
        if not caliber_spellings:
            return []

        stmt = (
            self._linked_prices(
                ProductLink.product_id,
                Price.price,
                Product.round_count,
                Price.observed_at,
            )
            .join(Product, Product.id == ProductLink.product_id)
            .where(
                Price.in_stock.is_(True),
                Price.observed_at >= since,
                func.lower(Product.caliber).in_([s.lower() for s in caliber_spellings]),
            )
        )

        if brand:
            stmt = stmt.where(func.lower(Product.brand).like(f"%{brand.lower()}%"))
        if grain:
            stmt = stmt.where(Product.grain_weight == grain)

        async with self._session("caliber_observations") as db:
            result = await db.execute(stmt)
            rows = result.all()

        return [
            CaliberObservation(
                product_id=row.product_id,
                price=row.price,
                round_count=row.round_count,
                observed_at=row.observed_at,
            )
            for row in rows
        ]
