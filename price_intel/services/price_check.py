"""Price check: is this price per round lower, typical or higher than usual?"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

from price_intel import metrics
from price_intel.calibers import CANONICAL_CALIBERS, Caliber, caliber_aliases, normalize_caliber
from price_intel.config import settings
from price_intel.detect.price_check import (
    PriceCheckConfig,
    PriceCheckResult,
    PriceClassification,
    classify_price,
    daily_price_points,
)
from price_intel.errors import InvalidCaliberError, InvalidInputError, UpstreamUnavailableError
from price_intel.store.observations import ObservationStore

logger = logging.getLogger(__name__)


class PriceCheckRequest(BaseModel):
    """Validated price check input (caliber is validated separately, first)."""

    price_per_round: Decimal = Field(gt=0, le=settings.price_check_max_price_per_round)
    brand: Optional[str] = Field(default=None, max_length=100)
    grain: Optional[int] = Field(default=None, ge=1, le=1000)


@dataclass
class PriceCheckEvent:
    """Analytics event for a price check. Carries no user identity."""

    caliber: Caliber
    entered_price: Decimal
    classification: PriceClassification
    timestamp: datetime


def emit_price_check_event(event: PriceCheckEvent) -> None:
    """
    Log a price check event.

    The entered price is never logged; only caliber-level fields are.
    """
    logger.info(
        "Price check event",
        extra={
            "event": "price_check",
            "caliber": event.caliber.value,
            "classification": event.classification.value,
            "event_time": event.timestamp.isoformat(),
        },
    )
    metrics.record_price_check(event.caliber.value, event.classification.value)


class PriceCheckService:
    """Classifies a price per round against the caliber's trailing window."""

    def __init__(
        self,
        store: ObservationStore,
        config: Optional[PriceCheckConfig] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.store = store
        self.config = config or PriceCheckConfig.from_settings()
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.query_timeout_seconds
        )

    async def check_price(
        self,
        caliber: Union[Caliber, str],
        price_per_round: Union[Decimal, float, str],
        brand: Optional[str] = None,
        grain: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> PriceCheckResult:
        """
        Check a price per round against recent market data.

        Args:
            caliber: Canonical caliber (aliases are accepted)
            price_per_round: Entered price per round, e.g. 0.30 for $0.30/rd
            brand: Optional case-insensitive brand filter
            grain: Optional grain weight filter
            now: Evaluation time (defaults to current UTC time)

        Returns:
            PriceCheckResult

        Raises:
            InvalidCaliberError: caliber is not canonical (before any query)
            InvalidInputError: price, brand or grain out of range
            UpstreamUnavailableError: store failure or timeout
        """
        canonical = caliber if isinstance(caliber, Caliber) else normalize_caliber(caliber)
        if canonical is None:
            raise InvalidCaliberError(str(caliber), CANONICAL_CALIBERS)

        try:
            request = PriceCheckRequest(price_per_round=price_per_round, brand=brand, grain=grain)
        except ValidationError as e:
            raise InvalidInputError(str(e)) from e

        now = now or datetime.utcnow()
        since = now - timedelta(days=self.config.window_days)

        try:
            rows = await asyncio.wait_for(
                self.store.fetch_caliber_observations(
                    caliber_aliases(canonical),
                    since,
                    brand=request.brand,
                    grain=request.grain,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Price check query timed out after {self.timeout_seconds}s")
            raise UpstreamUnavailableError(
                "price_check", f"timed out after {self.timeout_seconds}s"
            ) from e

        points = daily_price_points(rows)
        result = classify_price(canonical, request.price_per_round, points, self.config)

        emit_price_check_event(
            PriceCheckEvent(
                caliber=canonical,
                entered_price=request.price_per_round,
                classification=result.classification,
                timestamp=now,
            )
        )
        return result
