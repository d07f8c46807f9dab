"""Tests for optmargin/state/products.py — asset and product registry."""

from __future__ import annotations

import pytest

from optmargin.core.margin.errors import UnknownProduct
from optmargin.core.position_key import encode_product
from optmargin.state.products import AssetInfo, ProductRegistry


def _registry() -> ProductRegistry:
    r = ProductRegistry()
    r.register_asset(1, "WETH", 18)
    r.register_asset(2, "USDC", 6)
    return r


def test_register_product_packs_collateral_decimals() -> None:
    r = _registry()
    pid = r.register_product(1, 2, 1)
    assert pid == encode_product(1, 2, 1, 18)
    info = r.resolve(pid)
    assert info.collateral_decimals == 18
    assert info.underlying.symbol == "WETH"
    assert r.find_product(1, 2, 1) == pid


def test_unknown_asset() -> None:
    with pytest.raises(UnknownProduct):
        _registry().register_product(1, 3, 1)


def test_unknown_product() -> None:
    with pytest.raises(UnknownProduct):
        _registry().resolve(encode_product(1, 2, 2, 6))
    with pytest.raises(UnknownProduct):
        _registry().find_product(1, 2, 2)


def test_underlying_equals_strike_rejected() -> None:
    with pytest.raises(ValueError):
        _registry().register_product(2, 2, 2)


def test_duplicate_asset() -> None:
    r = _registry()
    with pytest.raises(ValueError):
        r.register_asset(1, "WBTC", 8)


def test_asset_validation() -> None:
    with pytest.raises(ValueError):
        AssetInfo(tag=0, symbol="X", decimals=6)
    with pytest.raises(ValueError):
        AssetInfo(tag=1, symbol="", decimals=6)
