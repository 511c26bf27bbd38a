"""Integration tests for the SQL observation store against SQLite."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import NOW
from price_intel.db.models import LinkStatus, ListingStatus, MerchantStatus, VisibilityStatus
from price_intel.errors import UpstreamUnavailableError
from price_intel.store.observations import SqlObservationStore

WEEK_AGO = NOW - timedelta(days=7)


@pytest.mark.asyncio
async def test_current_offer_is_cheapest_visible_in_stock(ledger, db_session_factory):
    ledger.retailer("r1")
    ledger.retailer("r2")
    ledger.product("p1")
    s1 = ledger.listing("p1", "r1")
    s2 = ledger.listing("p1", "r2")
    ledger.price(s1, "r1", "12.00", NOW - timedelta(days=1))
    ledger.price(s2, "r2", "11.00", NOW - timedelta(days=2))
    ledger.price(s2, "r2", "9.00", NOW - timedelta(days=3), in_stock=False)
    ledger.price(s1, "r1", "8.00", NOW - timedelta(days=10))  # outside window
    await ledger.commit()

    store = SqlObservationStore(db_session_factory)
    offers = await store.fetch_current_offers(WEEK_AGO, limit=10)

    assert len(offers) == 1
    offer = offers[0]
    assert offer.product_id == "p1"
    assert offer.price == Decimal("11.00")
    assert offer.retailer_id == "r2"
    assert offer.retailer_name == "Retailer r2"
    assert offer.caliber == "9mm"
    assert offer.round_count == 50


@pytest.mark.asyncio
async def test_current_offer_tie_breaks_on_time_then_retailer(ledger, db_session_factory):
    ledger.retailer("r1")
    ledger.retailer("r2")
    ledger.product("p1")
    s1 = ledger.listing("p1", "r1")
    s2 = ledger.listing("p1", "r2")
    ledger.price(s2, "r2", "10.00", NOW - timedelta(days=2))
    ledger.price(s1, "r1", "10.00", NOW - timedelta(days=2))
    ledger.price(s1, "r1", "10.00", NOW - timedelta(days=1))
    await ledger.commit()

    offers = await SqlObservationStore(db_session_factory).fetch_current_offers(WEEK_AGO, 10)

    assert offers[0].retailer_id == "r1"
    assert offers[0].observed_at == NOW - timedelta(days=2)


@pytest.mark.asyncio
async def test_candidate_limit_is_ordered_by_product(ledger, db_session_factory):
    ledger.retailer("r1")
    for pid in ("c", "a", "b"):
        ledger.product(pid)
        ledger.price(ledger.listing(pid, "r1"), "r1", "10.00", NOW - timedelta(days=1))
    await ledger.commit()

    offers = await SqlObservationStore(db_session_factory).fetch_current_offers(WEEK_AGO, 2)

    assert [o.product_id for o in offers] == ["a", "b"]


@pytest.mark.asyncio
async def test_visibility_policy_excludes_hidden_observations(ledger, db_session_factory):
    ledger.retailer("ok")
    ledger.retailer("ineligible", visibility=VisibilityStatus.INELIGIBLE)
    ledger.retailer("unlisted")
    ledger.merchant("unlisted", listing_status=ListingStatus.UNLISTED)
    ledger.retailer("suspended_merchant")
    ledger.merchant("suspended_merchant", status=MerchantStatus.SUSPENDED, listing_status=ListingStatus.UNLISTED)
    ledger.retailer("listed")
    ledger.merchant("listed")
    ledger.feed_run("good")
    ledger.feed_run("bad", ignored=True)
    ledger.product("p1")

    seen = NOW - timedelta(days=1)
    ledger.price(ledger.listing("p1", "ok"), "ok", "10.00", seen, run_id="good")
    ledger.price(ledger.listing("p1", "ineligible"), "ineligible", "1.00", seen)
    ledger.price(ledger.listing("p1", "unlisted"), "unlisted", "2.00", seen)
    ledger.price(ledger.listing("p1", "suspended_merchant"), "suspended_merchant", "9.00", seen)
    ledger.price(ledger.listing("p1", "listed"), "listed", "9.50", seen)
    s_ok = ledger.listing("p1", "ok")
    ledger.price(s_ok, "ok", "3.00", seen, run_id="bad")
    await ledger.commit()

    store = SqlObservationStore(db_session_factory)

    offers = await store.fetch_current_offers(WEEK_AGO, 10)
    assert offers[0].price == Decimal("9.00")
    assert offers[0].retailer_id == "suspended_merchant"

    rows = await store.fetch_observations(["p1"], WEEK_AGO)
    assert sorted(r.price for r in rows) == [Decimal("9.00"), Decimal("9.50"), Decimal("10.00")]

    lowest = await store.fetch_lowest_prices(["p1"], WEEK_AGO)
    assert lowest == {"p1": Decimal("9.00")}


@pytest.mark.asyncio
async def test_unresolved_links_are_ignored(ledger, db_session_factory):
    ledger.retailer("r1")
    ledger.product("p1")
    seen = NOW - timedelta(days=1)
    ledger.price(ledger.listing("p1", "r1", status=LinkStatus.CREATED), "r1", "10.00", seen)
    ledger.price(ledger.listing("p1", "r1", status=LinkStatus.NEEDS_REVIEW), "r1", "1.00", seen)
    ledger.price(ledger.listing("p1", "r1", status=LinkStatus.UNMATCHED), "r1", "2.00", seen)
    await ledger.commit()

    store = SqlObservationStore(db_session_factory)

    assert (await store.fetch_lowest_prices(["p1"], WEEK_AGO)) == {"p1": Decimal("10.00")}


@pytest.mark.asyncio
async def test_observations_include_out_of_stock(ledger, db_session_factory):
    ledger.retailer("r1")
    ledger.product("p1")
    ledger.product("p2")
    s1 = ledger.listing("p1", "r1")
    s2 = ledger.listing("p2", "r1")
    ledger.price(s1, "r1", "10.00", NOW - timedelta(days=2), in_stock=False)
    ledger.price(s1, "r1", "11.00", NOW - timedelta(days=1))
    ledger.price(s2, "r1", "12.00", NOW - timedelta(days=1))
    ledger.price(s1, "r1", "5.00", NOW - timedelta(days=40))
    await ledger.commit()

    rows = await SqlObservationStore(db_session_factory).fetch_observations(
        ["p1"], NOW - timedelta(days=30)
    )

    assert [(r.price, r.in_stock) for r in rows] == [
        (Decimal("10.00"), False),
        (Decimal("11.00"), True),
    ]


@pytest.mark.asyncio
async def test_lowest_price_counts_out_of_stock_observations(ledger, db_session_factory):
    ledger.retailer("r1")
    ledger.product("p1")
    s1 = ledger.listing("p1", "r1")
    ledger.price(s1, "r1", "7.00", NOW - timedelta(days=60), in_stock=False)
    ledger.price(s1, "r1", "9.00", NOW - timedelta(days=1))
    ledger.price(s1, "r1", "6.00", NOW - timedelta(days=120))
    await ledger.commit()

    lowest = await SqlObservationStore(db_session_factory).fetch_lowest_prices(
        ["p1"], NOW - timedelta(days=90)
    )

    assert lowest == {"p1": Decimal("7.00")}


@pytest.mark.asyncio
async def test_caliber_observations_filters(ledger, db_session_factory):
    ledger.retailer("r1")
    ledger.product("fed", caliber="9MM Luger", brand="Federal", grain=115)
    ledger.product("win", caliber="9mm", brand="Winchester", grain=124)
    ledger.product("rifle", caliber="5.56 NATO", brand="Federal", grain=55)
    seen = NOW - timedelta(days=1)
    for pid in ("fed", "win", "rifle"):
        ledger.price(ledger.listing(pid, "r1"), "r1", "15.00", seen)
    ledger.price(ledger.listing("fed", "r1"), "r1", "5.00", seen, in_stock=False)
    await ledger.commit()

    store = SqlObservationStore(db_session_factory)
    spellings = ["9mm", "9mm luger"]
    since = NOW - timedelta(days=30)

    rows = await store.fetch_caliber_observations(spellings, since)
    assert sorted(r.product_id for r in rows) == ["fed", "win"]

    rows = await store.fetch_caliber_observations(spellings, since, brand="federal")
    assert [r.product_id for r in rows] == ["fed"]
    assert rows[0].round_count == 50

    rows = await store.fetch_caliber_observations(spellings, since, grain=124)
    assert [r.product_id for r in rows] == ["win"]


@pytest.mark.asyncio
async def test_empty_product_ids_skip_queries(db_session_factory):
    store = SqlObservationStore(db_session_factory)

    assert await store.fetch_observations([], NOW) == []
    assert await store.fetch_lowest_prices([], NOW) == {}
    assert await store.fetch_caliber_observations([], NOW) == []


@pytest.mark.asyncio
async def test_database_error_becomes_upstream_unavailable():
    session = MagicMock()
    session.__aenter__.side_effect = OperationalError("SELECT 1", {}, Exception("db down"))
    factory = MagicMock(return_value=session)

    store = SqlObservationStore(factory)

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await store.fetch_current_offers(WEEK_AGO, 10)

    assert exc_info.value.operation == "current_offers"
