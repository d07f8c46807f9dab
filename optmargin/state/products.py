"""
Asset and product registry.

Assets are identified by a non-zero u8 tag. A product is an
(underlying, strike, collateral) asset triple; its id packs the three tags and
the collateral decimals (see `optmargin.core.position_key.encode_product`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from ..core.margin.errors import UnknownProduct
from ..core.position_key import decode_product, encode_product


@dataclass(frozen=True)
class AssetInfo:
    tag: int
    symbol: str
    decimals: int

    def __post_init__(self) -> None:
        if not 0 < self.tag <= 0xFF:
            raise ValueError(f"asset tag must be in 1..255: {self.tag}")
        if not self.symbol:
            raise ValueError("asset symbol must be non-empty")
        if not 0 <= self.decimals <= 0xFF:
            raise ValueError(f"asset decimals out of range: {self.decimals}")


@dataclass(frozen=True)
class ProductInfo:
    product_id: int
    underlying: AssetInfo
    strike: AssetInfo
    collateral: AssetInfo

    @property
    def collateral_decimals(self) -> int:
        return self.collateral.decimals


@dataclass
class ProductRegistry:
    """Mutable registry: asset tags and registered product ids."""

    _assets: Dict[int, AssetInfo] = field(default_factory=dict)
    _products: Dict[int, ProductInfo] = field(default_factory=dict)

    def register_asset(self, tag: int, symbol: str, decimals: int) -> AssetInfo:
        if tag in self._assets:
            raise ValueError(f"asset tag already registered: {tag}")
        info = AssetInfo(tag=tag, symbol=symbol, decimals=decimals)
        self._assets[tag] = info
        return info

    def asset(self, tag: int) -> AssetInfo:
        info = self._assets.get(tag)
        if info is None:
            raise UnknownProduct(f"unknown asset tag: {tag}")
        return info

    def register_product(self, underlying: int, strike: int, collateral: int) -> int:
        u, s, c = self.asset(underlying), self.asset(strike), self.asset(collateral)
        if underlying == strike:
            raise ValueError("underlying and strike assets must differ")
        product_id = encode_product(u.tag, s.tag, c.tag, c.decimals)
        self._products[product_id] = ProductInfo(product_id=product_id, underlying=u, strike=s, collateral=c)
        return product_id

    def resolve(self, product_id: int) -> ProductInfo:
        info = self._products.get(product_id)
        if info is None:
            fields = decode_product(product_id)
            raise UnknownProduct(
                f"unknown product {product_id:#x} "
                f"(underlying={fields.underlying} strike={fields.strike} collateral={fields.collateral})"
            )
        return info

    def product_ids(self) -> list[int]:
        return sorted(self._products)

    def find_product(self, underlying: int, strike: int, collateral: int) -> int:
        """Product id for an asset triple. Raises UnknownProduct if not registered."""
        for product_id, info in self._products.items():
            if (info.underlying.tag, info.strike.tag, info.collateral.tag) == (underlying, strike, collateral):
                return product_id
        raise UnknownProduct(f"no product for assets {underlying}/{strike}/{collateral}")
