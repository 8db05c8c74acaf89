from __future__ import annotations

from decimal import Decimal

from bethub.book import InvalidBookLevel
from bethub.types import OrderBook, Side, TradeEstimate

# The walk stops once the unfilled remainder is at or below this amount
# (USD for BUY, shares for SELL).
REMAINING_EPSILON = Decimal("0.001")

_ZERO = Decimal("0")


def estimate_trade(
    book: OrderBook,
    side: Side,
    amount: Decimal,
    limit_price: Decimal | None = None,
) -> TradeEstimate:
    """
    Estimate the fill of a market order by walking one side of the book.

    `amount` is USD to spend for BUY and shares to sell for SELL. Levels are
    consumed in the order given. With `limit_price`, the walk stops at the
    first level priced worse than the limit. A book too thin for `amount`
    is not an error: the estimate only covers what was fillable, so callers
    compare `cost` (BUY) or `shares` (SELL) against the requested amount.
    """
    if side not in ("BUY", "SELL"):
        raise ValueError(f"side must be BUY or SELL, got {side!r}")

    levels = book.levels_for(side)
    if amount <= 0 or not levels:
        return TradeEstimate.zero(side)

    remaining = amount
    total_quote = _ZERO
    total_shares = _ZERO

    for level in levels:
        price = level.price
        if price <= 0:
            raise InvalidBookLevel(f"level price must be > 0: {price}")
        if limit_price is not None:
            if side == "BUY" and price > limit_price:
                break
            if side == "SELL" and price < limit_price:
                break

        if side == "BUY":
            shares = min(remaining / price, level.size)
            cost = shares * price
            total_quote += cost
            total_shares += shares
            remaining -= cost
        else:
            shares = min(remaining, level.size)
            total_quote += shares * price
            total_shares += shares
            remaining -= shares

        if remaining <= REMAINING_EPSILON:
            break

    if total_shares <= 0:
        return TradeEstimate.zero(side)

    avg_price = total_quote / total_shares
    best_quote = levels[0].price
    slippage = abs(avg_price - best_quote) / best_quote if best_quote > 0 else _ZERO

    if side == "BUY":
        # Each winning share redeems for 1 USD at resolution.
        potential_return = total_shares
        potential_profit = total_shares - total_quote
    else:
        potential_return = total_quote
        potential_profit = _ZERO

    return TradeEstimate(
        side=side,
        cost=total_quote,
        shares=total_shares,
        avg_price=avg_price,
        slippage=slippage,
        potential_return=potential_return,
        potential_profit=potential_profit,
    )


def estimate_buy(
    book: OrderBook,
    usd_amount: Decimal,
    max_price: Decimal | None = None,
) -> TradeEstimate:
    return estimate_trade(book, "BUY", usd_amount, max_price)


def estimate_sell(
    book: OrderBook,
    shares: Decimal,
    min_price: Decimal | None = None,
) -> TradeEstimate:
    return estimate_trade(book, "SELL", shares, min_price)
