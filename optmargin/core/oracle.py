"""
Price oracle boundary.

The functional core only consumes prices. This module holds:
- the `PriceOracle` protocol the orchestrator calls,
- a small freshness kernel (`is_fresh`),
- `StaticPriceOracle`, an in-memory implementation that the imperative shell
  (or tests) feeds with spot and expiry prices.

Prices are quote-asset per base-asset, scaled by `UNIT` (1e6). Assets are u8
asset tags as used in product ids.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Protocol, Tuple

from .margin.errors import PriceNotAvailable, StalePrice
from .position_key import UNIT


class PriceOracle(Protocol):
    def get_spot_price(self, base: int, quote: int, now: int) -> int: ...

    def get_price_at_expiry(self, base: int, quote: int, expiry: int) -> int: ...


@dataclass(frozen=True)
class PriceQuote:
    """A price observation."""

    price: int
    timestamp: int

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"price must be positive: {self.price}")
        if self.timestamp < 0:
            raise ValueError(f"timestamp must be non-negative: {self.timestamp}")


def is_fresh(quote: PriceQuote, current_timestamp: int, max_staleness_seconds: int) -> bool:
    """Return True if the quote is within the max staleness window."""
    if current_timestamp < 0:
        raise ValueError(f"current_timestamp must be non-negative: {current_timestamp}")
    if quote.timestamp > current_timestamp:
        return False
    return (current_timestamp - quote.timestamp) <= max_staleness_seconds


@dataclass
class StaticPriceOracle:
    """
    In-memory oracle: latest spot quote per pair plus finalized expiry prices.

    Same-asset pairs always price at `UNIT`.
    """

    max_staleness_seconds: int = 3600
    _spot: Dict[Tuple[int, int], PriceQuote] = field(default_factory=dict)
    _expiry: Dict[Tuple[int, int, int], int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_staleness_seconds <= 0:
            raise ValueError(
                f"max_staleness_seconds must be positive: {self.max_staleness_seconds}"
            )

    def set_spot_price(self, base: int, quote: int, price: int, timestamp: int) -> None:
        self._spot[(base, quote)] = PriceQuote(price=price, timestamp=timestamp)

    def set_expiry_price(self, base: int, quote: int, expiry: int, price: int) -> None:
        if price <= 0:
            raise ValueError(f"price must be positive: {price}")
        key = (base, quote, expiry)
        if key in self._expiry:
            raise ValueError(f"expiry price already finalized for {key}")
        self._expiry[key] = price

    def get_spot_price(self, base: int, quote: int, now: int) -> int:
        if base == quote:
            return UNIT
        quote_obs = self._spot.get((base, quote))
        if quote_obs is None:
            raise PriceNotAvailable(f"no spot price for {base}/{quote}")
        if not is_fresh(quote_obs, now, self.max_staleness_seconds):
            raise StalePrice(f"spot price for {base}/{quote} is stale (ts={quote_obs.timestamp}, now={now})")
        return quote_obs.price

    def get_price_at_expiry(self, base: int, quote: int, expiry: int) -> int:
        if base == quote:
            return UNIT
        price = self._expiry.get((base, quote, expiry))
        if price is None:
            raise PriceNotAvailable(f"no expiry price for {base}/{quote} at {expiry}")
        return price
