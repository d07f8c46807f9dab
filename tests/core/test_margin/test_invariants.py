"""Tests for optmargin/core/margin/invariants.py — account invariant checkers."""

from dataclasses import replace

from optmargin.core.margin.invariants import INVARIANT_REGISTRY, check_all
from optmargin.core.margin.ledger import MAX_SHORT_AMOUNT
from optmargin.core.margin.state import empty_account
from optmargin.core.margin.types import Account
from optmargin.core.position_key import UNIT, PositionKind, encode, encode_product

PRODUCT = encode_product(1, 2, 2, 6)
EXPIRY = 1_767_225_600
CALL = encode(PositionKind.CALL, PRODUCT, EXPIRY, 4000 * UNIT)
PUT = encode(PositionKind.PUT, PRODUCT, EXPIRY, 3000 * UNIT)


class TestAllInvariantsOnEmptyAccount:
    def test_empty_account_passes_all(self):
        assert check_all(empty_account()) == []

    def test_registry_has_8_invariants(self):
        assert len(INVARIANT_REGISTRY) == 8


class TestCollateralIdIffAmount:
    def test_pass(self):
        assert "inv_collateral_id_iff_amount" not in check_all(Account(collateral_amount=1, collateral_id=2))

    def test_fail_amount_without_id(self):
        assert "inv_collateral_id_iff_amount" in check_all(Account(collateral_amount=1))

    def test_fail_id_without_amount(self):
        assert "inv_collateral_id_iff_amount" in check_all(Account(collateral_id=2))


class TestKeyIffAmount:
    def test_call_fail(self):
        assert "inv_call_key_iff_amount" in check_all(Account(short_call_key=CALL))

    def test_put_fail(self):
        assert "inv_put_key_iff_amount" in check_all(Account(short_put_amount=1))


class TestSides:
    def test_put_on_call_side(self):
        a = Account(short_call_key=PUT, short_call_amount=1)
        assert "inv_call_key_on_call_side" in check_all(a)

    def test_call_on_put_side(self):
        a = Account(short_put_key=CALL, short_put_amount=1)
        assert "inv_put_key_on_put_side" in check_all(a)

    def test_undecodable_key(self):
        a = Account(short_call_key=12345, short_call_amount=1)
        assert "inv_call_key_on_call_side" in check_all(a)

    def test_series_must_match(self):
        other_put = encode(PositionKind.PUT, PRODUCT, EXPIRY + 1, 3000 * UNIT)
        a = Account(short_call_key=CALL, short_call_amount=1, short_put_key=other_put, short_put_amount=1)
        assert "inv_sides_share_series" in check_all(a)

    def test_straddle_passes(self):
        a = Account(short_call_key=CALL, short_call_amount=1, short_put_key=PUT, short_put_amount=1)
        assert check_all(a) == []


class TestCollateralMatchesProduct:
    def test_fail(self):
        a = Account(collateral_amount=1, collateral_id=1, short_call_key=CALL, short_call_amount=1)
        assert "inv_collateral_matches_product" in check_all(a)


class TestAmountsInRange:
    def test_fail(self):
        a = replace(Account(short_call_key=CALL), short_call_amount=MAX_SHORT_AMOUNT + 1)
        assert "inv_amounts_in_range" in check_all(a)
