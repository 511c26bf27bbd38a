"""Market deal eligibility rules.

Rules are evaluated in priority order and the first match wins, so a
product carries at most one reason:

1. PRICE_DROP     current <= 30-day median * (1 - threshold), needs enough daily points
2. LOWEST_90D     current <= lowest visible price in 90 days
3. BACK_IN_STOCK  restocked after a long outage

Products whose caliber does not normalize are dropped before any rule runs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Optional

from price_intel import metrics
from price_intel.calibers import Caliber, normalize_caliber
from price_intel.config import settings
from price_intel.detect.aggregator import ProductAggregate

logger = logging.getLogger(__name__)


class DealReason(str, Enum):
    """Why a product is listed as a market deal."""

    PRICE_DROP = "PRICE_DROP"
    LOWEST_90D = "LOWEST_90D"
    BACK_IN_STOCK = "BACK_IN_STOCK"


@dataclass(frozen=True)
class EligibilityConfig:
    """Thresholds for the eligibility rules."""

    price_drop_threshold_percent: int = 15
    min_daily_points: int = 5

    @classmethod
    def from_settings(cls) -> "EligibilityConfig":
        return cls(
            price_drop_threshold_percent=settings.price_drop_threshold_percent,
            min_daily_points=settings.min_daily_points_for_median,
        )

    @property
    def drop_multiplier(self) -> Decimal:
        """Fraction of the median the current price must be at or under."""
        return Decimal(1) - Decimal(self.price_drop_threshold_percent) / Decimal(100)


# (aggregate, restocked, config) -> eligible
RulePredicate = Callable[[ProductAggregate, bool, EligibilityConfig], bool]


@dataclass(frozen=True)
class EligibilityRule:
    """One eligibility rule. The context line states the rule, never a score."""

    reason: DealReason
    applies: RulePredicate
    context_template: str

    def context_line(self, config: EligibilityConfig) -> str:
        return self.context_template.format(threshold=config.price_drop_threshold_percent)


def _is_price_drop(agg: ProductAggregate, restocked: bool, config: EligibilityConfig) -> bool:
    if agg.median_price is None or agg.daily_point_count < config.min_daily_points:
        return False
    return agg.current_price <= agg.median_price * config.drop_multiplier


def _is_lowest_90d(agg: ProductAggregate, restocked: bool, config: EligibilityConfig) -> bool:
    if agg.lowest_price_90d is None:
        return False
    return agg.current_price <= agg.lowest_price_90d


def _is_back_in_stock(agg: ProductAggregate, restocked: bool, config: EligibilityConfig) -> bool:
    return restocked


# Priority order matters: first match wins
ELIGIBILITY_RULES: tuple[EligibilityRule, ...] = (
    EligibilityRule(DealReason.PRICE_DROP, _is_price_drop, "{threshold}%+ below 30-day median"),
    EligibilityRule(DealReason.LOWEST_90D, _is_lowest_90d, "Lowest price in 90 days"),
    EligibilityRule(DealReason.BACK_IN_STOCK, _is_back_in_stock, "Back in stock"),
)


@dataclass(frozen=True)
class MarketDeal:
    """A notable, reproducible price event for one product."""

    product_id: str
    product_name: str
    caliber: Caliber
    price: Decimal
    price_per_round: Optional[Decimal]  # None when the round count is unknown
    retailer_id: str
    retailer_name: str
    url: Optional[str]
    context_line: str
    detected_at: datetime
    reason: DealReason

    def to_dict(self) -> dict:
        """Convert deal to a JSON-safe dictionary."""
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "caliber": self.caliber.value,
            "price": str(self.price),
            "price_per_round": str(self.price_per_round) if self.price_per_round is not None else None,
            "retailer_id": self.retailer_id,
            "retailer_name": self.retailer_name,
            "url": self.url,
            "context_line": self.context_line,
            "detected_at": self.detected_at.isoformat(),
            "reason": self.reason.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MarketDeal":
        """Create deal from dictionary."""
        price_per_round = data.get("price_per_round")
        return cls(
            product_id=data["product_id"],
            product_name=data["product_name"],
            caliber=Caliber(data["caliber"]),
            price=Decimal(data["price"]),
            price_per_round=Decimal(price_per_round) if price_per_round is not None else None,
            retailer_id=data["retailer_id"],
            retailer_name=data["retailer_name"],
            url=data.get("url"),
            context_line=data["context_line"],
            detected_at=datetime.fromisoformat(data["detected_at"]),
            reason=DealReason(data["reason"]),
        )


def classify(
    agg: ProductAggregate,
    restocked: bool,
    config: Optional[EligibilityConfig] = None,
) -> Optional[tuple[DealReason, str]]:
    """
    Apply the rules in priority order.

    Args:
        agg: Product aggregate
        restocked: Whether the stock gap detector reported a qualifying restock
        config: Rule thresholds

    Returns:
        (reason, context line) for the first matching rule, or None
    """
    config = config or EligibilityConfig()
    for rule in ELIGIBILITY_RULES:
        if rule.applies(agg, restocked, config):
            return rule.reason, rule.context_line(config)
    return None


def price_per_round(price: Decimal, round_count: Optional[int]) -> Optional[Decimal]:
    """Price divided by round count, or None if the count is unknown."""
    if not round_count or round_count <= 0:
        return None
    return price / Decimal(round_count)


def evaluate_deals(
    aggregates: Iterable[ProductAggregate],
    restocked_ids: set[str],
    config: Optional[EligibilityConfig] = None,
) -> list[MarketDeal]:
    """
    Turn aggregates into eligible market deals.

    Products with an unmapped caliber are excluded regardless of their
    price movement.

    Args:
        aggregates: Per-product aggregates
        restocked_ids: Product ids the stock gap detector flagged
        config: Rule thresholds

    Returns:
        Eligible deals, unordered
    """
    config = config or EligibilityConfig()
    deals: list[MarketDeal] = []
    unmapped = 0
    ineligible = 0

    for agg in aggregates:
        caliber = normalize_caliber(agg.offer.caliber)
        if caliber is None:
            unmapped += 1
            continue

        match = classify(agg, agg.product_id in restocked_ids, config)
        if match is None:
            ineligible += 1
            continue

        reason, context_line = match
        offer = agg.offer
        deals.append(
            MarketDeal(
                product_id=offer.product_id,
                product_name=offer.product_name,
                caliber=caliber,
                price=offer.price,
                price_per_round=price_per_round(offer.price, offer.round_count),
                retailer_id=offer.retailer_id,
                retailer_name=offer.retailer_name,
                url=offer.url,
                context_line=context_line,
                detected_at=offer.observed_at,
                reason=reason,
            )
        )
        metrics.record_deal_emitted(reason.value)

    metrics.record_deal_excluded("unmapped_caliber", unmapped)
    metrics.record_deal_excluded("ineligible", ineligible)
    logger.info(
        f"Evaluated candidates: {len(deals)} deals, "
        f"{unmapped} unmapped calibers excluded, {ineligible} not eligible"
    )
    return deals
