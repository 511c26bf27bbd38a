"""Deterministic deal ordering and hero selection.

Order, best first:
1. PRICE_DROP before any other reason (the other reasons tie)
2. earlier detected_at
3. product_id ascending

Ranking depends only on the eligible set. Viewer or session state is
never consulted, so the same set always yields the same hero.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from price_intel.detect.eligibility import DealReason, MarketDeal


def deal_sort_key(deal: MarketDeal) -> tuple:
    """Total-order key for a deal."""
    reason_rank = 0 if deal.reason == DealReason.PRICE_DROP else 1
    return (reason_rank, deal.detected_at, deal.product_id)


@dataclass(frozen=True)
class RankedDeals:
    """Sorted deals plus the hero chosen from the full eligible set."""

    deals: list[MarketDeal] = field(default_factory=list)
    hero: Optional[MarketDeal] = None


def rank_deals(deals: Iterable[MarketDeal], limit: Optional[int] = None) -> RankedDeals:
    """
    Sort eligible deals and pick the hero.

    Args:
        deals: Eligible deals in any order
        limit: Optional result-size cap. The hero is picked before truncation.

    Returns:
        RankedDeals with the (possibly truncated) sorted list and the hero
    """
    ordered = sorted(deals, key=deal_sort_key)
    hero = ordered[0] if ordered else None
    if limit is not None:
        ordered = ordered[:limit]
    return RankedDeals(deals=ordered, hero=hero)
