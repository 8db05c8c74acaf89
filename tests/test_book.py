from decimal import Decimal

import pytest

from bethub.book import (
    InvalidBookLevel,
    book_to_payload,
    market_price,
    parse_level,
    parse_order_book,
)
from bethub.types import OrderBookLevel


def test_parse_level_accepts_strings_and_numbers() -> None:
    assert parse_level({"price": "0.55", "size": "120.5"}) == OrderBookLevel(
        price=Decimal("0.55"), size=Decimal("120.5")
    )
    assert parse_level({"price": 0.25, "size": 10}) == OrderBookLevel(
        price=Decimal("0.25"), size=Decimal("10")
    )


@pytest.mark.parametrize(
    "raw",
    [
        {"size": "10"},
        {"price": "0.5"},
        {"price": "abc", "size": "10"},
        {"price": "0.5", "size": "ten"},
        {"price": "NaN", "size": "10"},
        {"price": "0.5", "size": "Infinity"},
        {"price": "0", "size": "10"},
        {"price": "1", "size": "10"},
        {"price": "1.2", "size": "10"},
        {"price": "0.5", "size": "-1"},
        {"price": True, "size": "10"},
        ["0.5", "10"],
        "0.5",
    ],
)
def test_parse_level_rejects_malformed_levels(raw: object) -> None:
    with pytest.raises(InvalidBookLevel):
        parse_level(raw)


def test_parse_order_book_keeps_given_order_by_default() -> None:
    book = parse_order_book(
        {
            "market": "0xcond",
            "asset_id": "123",
            "timestamp": "1700000000000",
            "hash": "0xhash",
            "bids": [{"price": "0.40", "size": "5"}, {"price": "0.45", "size": "5"}],
            "asks": [{"price": "0.60", "size": "5"}, {"price": "0.55", "size": "5"}],
        }
    )
    assert [lvl.price for lvl in book.bids] == [Decimal("0.40"), Decimal("0.45")]
    assert [lvl.price for lvl in book.asks] == [Decimal("0.60"), Decimal("0.55")]
    assert book.market == "0xcond"
    assert book.asset_id == "123"
    assert book.timestamp == "1700000000000"
    assert book.hash == "0xhash"


def test_parse_order_book_sorts_best_first_when_asked() -> None:
    book = parse_order_book(
        {
            "bids": [
                {"price": "0.01", "size": "5"},
                {"price": "0.45", "size": "5"},
                {"price": "0.30", "size": "5"},
            ],
            "asks": [
                {"price": "0.99", "size": "5"},
                {"price": "0.55", "size": "5"},
                {"price": "0.70", "size": "5"},
            ],
        },
        sort_levels=True,
    )
    assert [str(lvl.price) for lvl in book.bids] == ["0.45", "0.30", "0.01"]
    assert [str(lvl.price) for lvl in book.asks] == ["0.55", "0.70", "0.99"]


def test_parse_order_book_missing_sides_are_empty() -> None:
    book = parse_order_book({"assetId": "42"})
    assert book.bids == ()
    assert book.asks == ()
    assert book.asset_id == "42"
    assert book.hash is None


def test_parse_order_book_rejects_non_list_side() -> None:
    with pytest.raises(InvalidBookLevel):
        parse_order_book({"bids": "0.5x10"})


def test_market_price() -> None:
    book = parse_order_book(
        {"bids": [{"price": "0.40", "size": "1"}], "asks": [{"price": "0.60", "size": "1"}]}
    )
    mp = market_price(book)
    assert mp.best_bid == Decimal("0.40")
    assert mp.best_ask == Decimal("0.60")
    assert mp.mid_price == Decimal("0.5")
    assert mp.spread == Decimal("0.2")


def test_market_price_of_empty_book_uses_bounds() -> None:
    mp = market_price(parse_order_book({}))
    assert mp.best_bid == 0
    assert mp.best_ask == 1
    assert mp.mid_price == Decimal("0.5")
    assert mp.spread == 1
    assert mp.to_payload() == {"bestBid": 0.0, "bestAsk": 1.0, "midPrice": 0.5, "spread": 1.0}


def test_book_to_payload_renders_decimal_strings() -> None:
    book = parse_order_book({"asks": [{"price": "0.55", "size": "10"}], "market": "m"})
    payload = book_to_payload(book)
    assert payload["asks"] == [{"price": "0.55", "size": "10"}]
    assert payload["bids"] == []
    assert payload["market"] == "m"
