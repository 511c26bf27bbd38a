"""Tests for deal ranking, hero selection and viewer personalization."""

import itertools
import random
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW
from price_intel.calibers import Caliber
from price_intel.detect.eligibility import DealReason, MarketDeal
from price_intel.detect.personalization import split_for_viewer, viewer_caliber_set
from price_intel.detect.ranking import rank_deals


def _deal(
    product_id: str,
    reason: DealReason,
    minutes_ago: int = 0,
    caliber: Caliber = Caliber.NINE_MM,
) -> MarketDeal:
    return MarketDeal(
        product_id=product_id,
        product_name=f"Product {product_id}",
        caliber=caliber,
        price=Decimal("10.00"),
        price_per_round=Decimal("0.2"),
        retailer_id="r1",
        retailer_name="Retailer r1",
        url=None,
        context_line="",
        detected_at=NOW - timedelta(minutes=minutes_ago),
        reason=reason,
    )


DEALS = [
    _deal("a", DealReason.LOWEST_90D, minutes_ago=90, caliber=Caliber.NINE_MM),
    _deal("b", DealReason.PRICE_DROP, minutes_ago=10, caliber=Caliber.REM_223_556),
    _deal("c", DealReason.PRICE_DROP, minutes_ago=30, caliber=Caliber.GAUGE_12),
    _deal("d", DealReason.BACK_IN_STOCK, minutes_ago=120, caliber=Caliber.NINE_MM),
    _deal("e", DealReason.PRICE_DROP, minutes_ago=30, caliber=Caliber.NINE_MM),
]


def test_rank_order():
    ranked = rank_deals(DEALS)

    # PRICE_DROP first, then detected_at ascending, then product_id
    assert [d.product_id for d in ranked.deals] == ["c", "e", "b", "d", "a"]
    assert ranked.hero.product_id == "c"


def test_non_price_drop_reasons_tie_on_reason():
    deals = [
        _deal("x", DealReason.LOWEST_90D, minutes_ago=5),
        _deal("y", DealReason.BACK_IN_STOCK, minutes_ago=50),
    ]

    assert [d.product_id for d in rank_deals(deals).deals] == ["y", "x"]


def test_hero_is_stable_under_every_permutation():
    expected = rank_deals(DEALS)

    for perm in itertools.permutations(DEALS):
        ranked = rank_deals(list(perm))
        assert ranked.hero == expected.hero
        assert ranked.deals == expected.deals


def test_hero_picked_before_truncation():
    ranked = rank_deals(DEALS, limit=2)

    assert len(ranked.deals) == 2
    assert ranked.hero.product_id == "c"


def test_empty_set_has_no_hero():
    ranked = rank_deals([])

    assert ranked.deals == []
    assert ranked.hero is None


@pytest.mark.parametrize(
    "viewer",
    [
        [],
        [Caliber.GAUGE_12],
        [Caliber.NINE_MM],
        [".223/5.56", "9mm"],
        ["not a caliber"],
        [c.value for c in Caliber],
    ],
)
def test_personalization_never_changes_hero(viewer):
    ranked = rank_deals(DEALS)

    split = split_for_viewer(ranked, viewer)

    assert split.hero == ranked.hero


def test_split_keeps_rank_order_in_each_bucket():
    ranked = rank_deals(DEALS)

    split = split_for_viewer(ranked, ["9mm Luger"])

    assert [d.product_id for d in split.personalized_deals] == ["e", "d", "a"]
    assert [d.product_id for d in split.other_deals] == ["c", "b"]


def test_split_caps_both_buckets():
    many = [
        _deal(f"p{i:02d}", DealReason.PRICE_DROP, minutes_ago=i, caliber=random.choice(list(Caliber)))
        for i in range(30)
    ]
    ranked = rank_deals(many)

    split = split_for_viewer(ranked, [], personalized_cap=5, other_cap=5)

    assert split.personalized_deals == []
    assert len(split.other_deals) == 5
    assert split.other_deals == ranked.deals[:5]


def test_viewer_caliber_set_ignores_unmapped():
    assert viewer_caliber_set(["9mm", "bogus", Caliber.GAUGE_20]) == {
        Caliber.NINE_MM,
        Caliber.GAUGE_20,
    }
