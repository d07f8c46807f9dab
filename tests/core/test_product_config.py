"""Tests for optmargin/core/product_config.py — margin params store and YAML loading."""

import pytest

from optmargin.core.margin.errors import InvalidMarginParams, NoAccess, UnknownProduct
from optmargin.core.margin.math import sqrt_scaled
from optmargin.core.position_key import encode_product
from optmargin.core.product_config import (
    ProductConfigStore,
    build_from_mapping,
    load_product_configs,
    make_margin_params,
)

DAY = 86_400
PRODUCT = encode_product(1, 2, 2, 6)

YAML_DOC = """
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


class TestMakeMarginParams:
    def test_precomputes_roots(self):
        p = make_margin_params(30 * DAY, DAY, 5000, 1000, 2000)
        assert p.sqrt_period_upper == sqrt_scaled(30 * DAY)
        assert p.sqrt_period_lower == sqrt_scaled(DAY)

    @pytest.mark.parametrize(
        "args",
        [
            (DAY, DAY, 5000, 1000, 2000),          # lower == upper
            (30 * DAY, DAY, 1000, 5000, 2000),     # ratio lower > upper
            (30 * DAY, DAY, 10_001, 1000, 2000),   # ratio above 100%
            (30 * DAY, DAY, 5000, 1000, 10_001),   # shock above 100%
            (11 * 365 * DAY, DAY, 5000, 1000, 0),  # period above 10y
            (30 * DAY, -1, 5000, 1000, 0),         # negative
        ],
    )
    def test_invalid(self, args):
        with pytest.raises(InvalidMarginParams):
            make_margin_params(*args)


class TestProductConfigStore:
    def test_owner_sets(self):
        store = ProductConfigStore(owner="admin")
        params = store.set_product_margin_config("admin", PRODUCT, (30 * DAY, DAY), (5000, 1000), 2000)
        assert store.get(PRODUCT) == params
        assert store.has(PRODUCT)

    def test_non_owner_rejected(self):
        store = ProductConfigStore(owner="admin")
        with pytest.raises(NoAccess):
            store.set_product_margin_config("mallory", PRODUCT, (30 * DAY, DAY), (5000, 1000), 2000)
        assert not store.has(PRODUCT)

    def test_unknown(self):
        with pytest.raises(UnknownProduct):
            ProductConfigStore(owner="admin").get(PRODUCT)

    def test_update_replaces(self):
        store = ProductConfigStore(owner="admin")
        store.set_product_margin_config("admin", PRODUCT, (30 * DAY, DAY), (5000, 1000), 2000)
        store.set_product_margin_config("admin", PRODUCT, (30 * DAY, DAY), (5000, 1000), 3000)
        assert store.get(PRODUCT).shock_ratio == 3000


class TestLoading:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "margin.yaml"
        path.write_text(YAML_DOC, encoding="utf-8")
        registry, store = load_product_configs(path)
        assert registry.product_ids() == [PRODUCT]
        assert store.owner == "admin"
        assert store.get(PRODUCT).discount_ratio_upper == 6400

    def test_missing_owner(self):
        with pytest.raises(ValueError):
            build_from_mapping({"assets": [], "products": []})

    def test_bad_field_type(self):
        doc = {
            "owner": "admin",
            "assets": [{"tag": 1, "symbol": "WETH", "decimals": 18}, {"tag": 2, "symbol": "USDC", "decimals": 6}],
            "products": [{"underlying": 1, "strike": 2, "collateral": 2, "discount_period_upper": "soon"}],
        }
        with pytest.raises(ValueError):
            build_from_mapping(doc)

    def test_not_a_mapping(self):
        with pytest.raises(TypeError):
            build_from_mapping(["owner"])
