from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from bethub.types import MarketPrice, OrderBook, OrderBookLevel

_ZERO = Decimal("0")
_ONE = Decimal("1")
_TWO = Decimal("2")


class InvalidBookLevel(ValueError):
    pass


def _to_decimal(value: Any, *, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidBookLevel(f"level {field} is missing or not numeric: {value!r}")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise InvalidBookLevel(f"level {field} is not numeric: {value!r}") from e
    if not result.is_finite():
        raise InvalidBookLevel(f"level {field} is not finite: {value!r}")
    return result


def parse_level(raw: Any) -> OrderBookLevel:
    if isinstance(raw, OrderBookLevel):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidBookLevel(f"level must be a mapping with price and size, got {raw!r}")
    price = _to_decimal(raw.get("price"), field="price")
    size = _to_decimal(raw.get("size"), field="size")
    if not (_ZERO < price < _ONE):
        raise InvalidBookLevel(f"level price must be within (0, 1): {price}")
    if size < 0:
        raise InvalidBookLevel(f"level size must be >= 0: {size}")
    return OrderBookLevel(price=price, size=size)


def _parse_side(raw: Any, *, name: str) -> list[OrderBookLevel]:
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        raise InvalidBookLevel(f"{name} must be a list of levels")
    return [parse_level(level) for level in raw]


def parse_order_book(raw: Mapping[str, Any], *, sort_levels: bool = False) -> OrderBook:
    """
    Build a canonical `OrderBook` from an exchange payload.

    With `sort_levels`, bids are reordered high-to-low and asks low-to-high.
    The CLOB `/book` endpoint returns both sides worst-first, so the HTTP
    client normalizes here; the estimator never re-sorts.
    """
    bids = _parse_side(raw.get("bids"), name="bids")
    asks = _parse_side(raw.get("asks"), name="asks")
    if sort_levels:
        bids.sort(key=lambda level: level.price, reverse=True)
        asks.sort(key=lambda level: level.price)
    asset_id = raw.get("asset_id", raw.get("assetId", ""))
    book_hash = raw.get("hash")
    return OrderBook(
        bids=tuple(bids),
        asks=tuple(asks),
        market=str(raw.get("market") or ""),
        asset_id=str(asset_id or ""),
        timestamp=str(raw.get("timestamp") or ""),
        hash=str(book_hash) if book_hash is not None else None,
    )


def market_price(book: OrderBook) -> MarketPrice:
    best_bid = book.bids[0].price if book.bids else _ZERO
    best_ask = book.asks[0].price if book.asks else _ONE
    return MarketPrice(
        best_bid=best_bid,
        best_ask=best_ask,
        mid_price=(best_bid + best_ask) / _TWO,
        spread=best_ask - best_bid,
    )


def book_to_payload(book: OrderBook) -> dict[str, Any]:
    return {
        "market": book.market,
        "asset_id": book.asset_id,
        "timestamp": book.timestamp,
        "hash": book.hash,
        "bids": [{"price": str(lvl.price), "size": str(lvl.size)} for lvl in book.bids],
        "asks": [{"price": str(lvl.price), "size": str(lvl.size)} for lvl in book.asks],
    }
