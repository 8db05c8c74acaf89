from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

Side = Literal["BUY", "SELL"]
OrderType = Literal["GTC", "GTD", "FOK", "FAK"]

_ZERO = Decimal("0")


@dataclass(frozen=True)
class OrderBookLevel:
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class OrderBook:
    # Each side is trusted to be best-first: bids high-to-low, asks low-to-high.
    bids: tuple[OrderBookLevel, ...] = ()
    asks: tuple[OrderBookLevel, ...] = ()
    market: str = ""
    asset_id: str = ""
    timestamp: str = ""
    hash: str | None = None

    def levels_for(self, side: Side) -> tuple[OrderBookLevel, ...]:
        """Levels a market order on `side` would consume."""
        return self.asks if side == "BUY" else self.bids


@dataclass(frozen=True)
class TradeEstimate:
    side: Side
    # Quote currency: USD spent (BUY) or USD received (SELL).
    cost: Decimal
    # Share units: shares bought (BUY) or shares sold (SELL).
    shares: Decimal
    avg_price: Decimal
    slippage: Decimal
    potential_return: Decimal
    potential_profit: Decimal

    @classmethod
    def zero(cls, side: Side) -> TradeEstimate:
        return cls(
            side=side,
            cost=_ZERO,
            shares=_ZERO,
            avg_price=_ZERO,
            slippage=_ZERO,
            potential_return=_ZERO,
            potential_profit=_ZERO,
        )

    def to_payload(self) -> dict[str, object]:
        return {
            "side": self.side,
            "cost": float(self.cost),
            "shares": float(self.shares),
            "avgPrice": float(self.avg_price),
            "slippage": float(self.slippage),
            "potentialReturn": float(self.potential_return),
            "potentialProfit": float(self.potential_profit),
        }


@dataclass(frozen=True)
class MarketPrice:
    best_bid: Decimal
    best_ask: Decimal
    mid_price: Decimal
    spread: Decimal

    def to_payload(self) -> dict[str, float]:
        return {
            "bestBid": float(self.best_bid),
            "bestAsk": float(self.best_ask),
            "midPrice": float(self.mid_price),
            "spread": float(self.spread),
        }


@dataclass(frozen=True)
class PricePoint:
    t: int
    p: Decimal
