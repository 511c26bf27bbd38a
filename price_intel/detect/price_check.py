"""Classify an entered price per round against recent market prices.

The sample is one point per (product, UTC day): the lowest visible
in-stock price per round that day. Percentiles use plain indexing into
the ascending sample, p25 = prices[floor(n * 0.25)] and
p75 = prices[floor(n * 0.75)], with no interpolation.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional

from price_intel.calibers import Caliber, caliber_label
from price_intel.config import settings
from price_intel.detect.aggregator import utc_day
from price_intel.store.observations import CaliberObservation

FOUR_PLACES = Decimal("0.0001")


class PriceClassification(str, Enum):
    """Where an entered price sits in the recent distribution."""

    LOWER = "LOWER"
    TYPICAL = "TYPICAL"
    HIGHER = "HIGHER"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


@dataclass(frozen=True)
class PriceCheckConfig:
    window_days: int = 30
    min_points: int = 5

    @classmethod
    def from_settings(cls) -> "PriceCheckConfig":
        return cls(
            window_days=settings.price_check_window_days,
            min_points=settings.price_check_min_points,
        )


@dataclass(frozen=True)
class PricePoint:
    """Daily best price per round for one product."""

    product_id: str
    day: date
    price_per_round: Decimal


@dataclass
class PriceContext:
    """Descriptive statistics of the sample. Stats are None with no data."""

    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    median_price: Optional[Decimal] = None
    price_point_count: int = 0
    days_with_data: int = 0


@dataclass
class PriceCheckResult:
    classification: PriceClassification
    entered_price_per_round: Decimal
    caliber: Caliber
    context: PriceContext = field(default_factory=PriceContext)
    freshness_indicator: str = ""
    message: str = ""

    @property
    def has_verdict(self) -> bool:
        return self.classification != PriceClassification.INSUFFICIENT_DATA

    def to_dict(self) -> dict:
        """Convert result to a JSON-safe dictionary."""

        def _num(value: Optional[Decimal]) -> Optional[float]:
            return float(value) if value is not None else None

        return {
            "classification": self.classification.value,
            "entered_price_per_round": float(self.entered_price_per_round),
            "caliber": self.caliber.value,
            "context": {
                "min_price": _num(self.context.min_price),
                "max_price": _num(self.context.max_price),
                "median_price": _num(self.context.median_price),
                "price_point_count": self.context.price_point_count,
                "days_with_data": self.context.days_with_data,
            },
            "freshness_indicator": self.freshness_indicator,
            "message": self.message,
        }


def daily_price_points(rows: Iterable[CaliberObservation]) -> list[PricePoint]:
    """
    Reduce observations to one price-per-round point per product and day.

    Observations without a positive round count cannot be expressed per
    round and are left out of the sample.
    """
    best: dict[tuple[str, date], Decimal] = {}
    for row in rows:
        if not row.round_count or row.round_count <= 0:
            continue
        key = (row.product_id, utc_day(row.observed_at))
        per_round = row.price / Decimal(row.round_count)
        if key not in best or per_round < best[key]:
            best[key] = per_round

    return [
        PricePoint(product_id=product_id, day=day, price_per_round=value)
        for (product_id, day), value in best.items()
    ]


def percentile_index(count: int, fraction: float) -> int:
    """Index into an ascending sample of `count` items: floor(count * fraction)."""
    return math.floor(count * fraction)


def _round4(value: Decimal) -> Decimal:
    return value.quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def _format_price(value: Decimal) -> str:
    return f"{value:.2f}"


def classify_price(
    caliber: Caliber,
    entered_price_per_round: Decimal,
    points: list[PricePoint],
    config: Optional[PriceCheckConfig] = None,
) -> PriceCheckResult:
    """
    Classify an entered price per round.

    Args:
        caliber: Canonical caliber of the sample
        entered_price_per_round: Price the user is looking at
        points: Daily price points for the caliber slice
        config: Sample floor

    Returns:
        PriceCheckResult. Below the sample floor the classification is
        INSUFFICIENT_DATA, with whatever context is computable.
    """
    config = config or PriceCheckConfig()
    entered = Decimal(str(entered_price_per_round))

    if not points:
        return PriceCheckResult(
            classification=PriceClassification.INSUFFICIENT_DATA,
            entered_price_per_round=entered,
            caliber=caliber,
            context=PriceContext(),
            freshness_indicator="",
            message=f"No recent data for {caliber_label(caliber)}.",
        )

    prices = sorted(p.price_per_round for p in points)
    count = len(prices)
    days_with_data = len({p.day for p in points})

    min_price = prices[0]
    max_price = prices[-1]
    context = PriceContext(
        min_price=_round4(min_price),
        max_price=_round4(max_price),
        median_price=_round4(prices[count // 2]),
        price_point_count=count,
        days_with_data=days_with_data,
    )
    freshness = f"Based on prices from the last {days_with_data} days"

    if count < config.min_points:
        return PriceCheckResult(
            classification=PriceClassification.INSUFFICIENT_DATA,
            entered_price_per_round=entered,
            caliber=caliber,
            context=context,
            freshness_indicator=freshness,
            message=(
                f"Limited data. Recent range: "
                f"${_format_price(min_price)}–${_format_price(max_price)}/rd."
            ),
        )

    p25 = prices[percentile_index(count, 0.25)]
    p75 = prices[percentile_index(count, 0.75)]

    if entered <= p25:
        classification = PriceClassification.LOWER
        message = "Lower than usual"
    elif entered >= p75:
        classification = PriceClassification.HIGHER
        message = "Higher than usual"
    else:
        classification = PriceClassification.TYPICAL
        message = "Typical range"

    return PriceCheckResult(
        classification=classification,
        entered_price_per_round=entered,
        caliber=caliber,
        context=context,
        freshness_indicator=freshness,
        message=message,
    )
