"""
Per-product margin configuration store.

Administrator-set `ProductMarginParams` keyed by product id. The store is
passed explicitly into the risk model; there is no global lookup. Updates take
effect for subsequent health checks only.

`load_product_configs(path)` builds a product registry and a config store from a
YAML document:

    owner: admin
    assets:
      - {tag: 1, symbol: WETH, decimals: 18}
      - {tag: 2, symbol: USDC, decimals: 6}
    products:
      - underlying: 1
        strike: 2
        collateral: 2
        discount_period_upper: 15552000
        discount_period_lower: 86400
        discount_ratio_upper: 6400
        discount_ratio_lower: 800
        shock_ratio: 1000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import yaml
from loguru import logger

from ..state.products import ProductRegistry
from .margin.errors import InvalidMarginParams, NoAccess, UnknownProduct
from .margin.math import BPS, sqrt_scaled
from .margin.types import ProductMarginParams

MAX_DISCOUNT_PERIOD: int = 10 * 365 * 86400


def make_margin_params(
    period_upper: int,
    period_lower: int,
    ratio_upper: int,
    ratio_lower: int,
    shock_ratio: int,
) -> ProductMarginParams:
    """Validate raw bounds and precompute the period square roots."""
    for name, v in (
        ("discount_period_upper", period_upper),
        ("discount_period_lower", period_lower),
        ("discount_ratio_upper", ratio_upper),
        ("discount_ratio_lower", ratio_lower),
        ("shock_ratio", shock_ratio),
    ):
        if not isinstance(v, int) or isinstance(v, bool) or v < 0:
            raise InvalidMarginParams(f"{name} must be a non-negative int")
    if not period_lower < period_upper <= MAX_DISCOUNT_PERIOD:
        raise InvalidMarginParams("discount periods must satisfy lower < upper <= 10y")
    if not ratio_lower <= ratio_upper <= BPS:
        raise InvalidMarginParams("discount ratios must satisfy lower <= upper <= 10000")
    if shock_ratio > BPS:
        raise InvalidMarginParams("shock_ratio must be <= 10000")

    return ProductMarginParams(
        discount_period_upper=period_upper,
        discount_period_lower=period_lower,
        discount_ratio_upper=ratio_upper,
        discount_ratio_lower=ratio_lower,
        shock_ratio=shock_ratio,
        sqrt_period_upper=sqrt_scaled(period_upper),
        sqrt_period_lower=sqrt_scaled(period_lower),
    )


@dataclass
class ProductConfigStore:
    """Mutable store: product_id -> ProductMarginParams. Writes restricted to `owner`."""

    owner: str
    _params: Dict[int, ProductMarginParams] = field(default_factory=dict)

    def set_product_margin_config(
        self,
        caller: str,
        product_id: int,
        period_bounds: Tuple[int, int],
        ratio_bounds: Tuple[int, int],
        shock_ratio: int,
    ) -> ProductMarginParams:
        """Set params for a product. Bounds are given as `(upper, lower)`."""
        if caller != self.owner:
            raise NoAccess(f"{caller!r} is not the configuration owner")
        period_upper, period_lower = period_bounds
        ratio_upper, ratio_lower = ratio_bounds
        params = make_margin_params(period_upper, period_lower, ratio_upper, ratio_lower, shock_ratio)
        self._params[product_id] = params
        logger.info(
            f"margin config set: product={product_id:#x} periods=({period_upper},{period_lower}) "
            f"ratios=({ratio_upper},{ratio_lower}) shock={shock_ratio}"
        )
        return params

    def get(self, product_id: int) -> ProductMarginParams:
        params = self._params.get(product_id)
        if params is None:
            raise UnknownProduct(f"no margin config for product {product_id:#x}")
        return params

    def has(self, product_id: int) -> bool:
        return product_id in self._params


def _require_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an int")
    return int(value)


def build_from_mapping(doc: Mapping[str, Any]) -> Tuple[ProductRegistry, ProductConfigStore]:
    if not isinstance(doc, Mapping):
        raise TypeError("margin config must be a mapping")
    owner = doc.get("owner")
    if not isinstance(owner, str) or not owner:
        raise ValueError("owner must be a non-empty string")

    registry = ProductRegistry()
    for i, a in enumerate(doc.get("assets") or []):
        registry.register_asset(
            _require_int(a.get("tag"), name=f"assets[{i}].tag"),
            str(a.get("symbol", "")),
            _require_int(a.get("decimals"), name=f"assets[{i}].decimals"),
        )

    store = ProductConfigStore(owner=owner)
    for i, p in enumerate(doc.get("products") or []):
        if not isinstance(p, Mapping):
            raise ValueError(f"products[{i}] must be a mapping")
        product_id = registry.register_product(
            _require_int(p.get("underlying"), name=f"products[{i}].underlying"),
            _require_int(p.get("strike"), name=f"products[{i}].strike"),
            _require_int(p.get("collateral"), name=f"products[{i}].collateral"),
        )
        store.set_product_margin_config(
            owner,
            product_id,
            (
                _require_int(p.get("discount_period_upper"), name=f"products[{i}].discount_period_upper"),
                _require_int(p.get("discount_period_lower"), name=f"products[{i}].discount_period_lower"),
            ),
            (
                _require_int(p.get("discount_ratio_upper"), name=f"products[{i}].discount_ratio_upper"),
                _require_int(p.get("discount_ratio_lower"), name=f"products[{i}].discount_ratio_lower"),
            ),
            _require_int(p.get("shock_ratio"), name=f"products[{i}].shock_ratio"),
        )
    return registry, store


def load_product_configs(path: Path | str) -> Tuple[ProductRegistry, ProductConfigStore]:
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return build_from_mapping(obj)
