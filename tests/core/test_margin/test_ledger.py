"""Tests for optmargin/core/margin/ledger.py — pure account operations."""

from __future__ import annotations

import importlib.util

import pytest

from optmargin.core.margin import ledger
from optmargin.core.margin.errors import (
    CannotMergeSpread,
    CanOnlySplitSpread,
    InsufficientCollateral,
    InsufficientShortAmount,
    InvalidTokenId,
    MergeAmountMismatch,
    MergeExpiryMismatch,
    MergeProductMismatch,
    MergeTypeMismatch,
    MergeWithSameStrike,
    WrongCollateralId,
    WrongRepayAmounts,
)
from optmargin.core.margin.invariants import check_all
from optmargin.core.margin.types import Account
from optmargin.core.position_key import UNIT, PositionKind, decode, encode, encode_product

USDC = 2
PRODUCT = encode_product(1, 2, USDC, 6)
OTHER_PRODUCT = encode_product(3, 2, USDC, 6)
EXPIRY = 1_767_225_600

CALL_4000 = encode(PositionKind.CALL, PRODUCT, EXPIRY, 4000 * UNIT)
CALL_4500 = encode(PositionKind.CALL, PRODUCT, EXPIRY, 4500 * UNIT)
PUT_3000 = encode(PositionKind.PUT, PRODUCT, EXPIRY, 3000 * UNIT)
PUT_2500 = encode(PositionKind.PUT, PRODUCT, EXPIRY, 2500 * UNIT)


def _funded(amount: int = 10_000 * UNIT) -> Account:
    return ledger.add_collateral(Account(), amount, USDC)


# ---------------------------------------------------------------------------
# Collateral
# ---------------------------------------------------------------------------

class TestCollateral:
    def test_add_sets_id(self):
        a = _funded(100)
        assert (a.collateral_amount, a.collateral_id) == (100, USDC)

    def test_add_wrong_id(self):
        with pytest.raises(WrongCollateralId):
            ledger.add_collateral(_funded(), 1, 7)

    def test_add_wrong_id_bound_by_short(self):
        a = ledger.mint_option(Account(), CALL_4000, UNIT)
        assert a.collateral_id == 0
        with pytest.raises(WrongCollateralId):
            ledger.add_collateral(a, 1, 7)

    def test_remove_resets_id_at_zero(self):
        a = ledger.remove_collateral(_funded(100), 100, USDC)
        assert a == Account()

    def test_remove_too_much(self):
        with pytest.raises(InsufficientCollateral):
            ledger.remove_collateral(_funded(100), 101, USDC)

    def test_remove_wrong_id(self):
        with pytest.raises(WrongCollateralId):
            ledger.remove_collateral(_funded(100), 1, 7)


# ---------------------------------------------------------------------------
# Mint / burn
# ---------------------------------------------------------------------------

class TestMintBurn:
    def test_mint_call_and_put(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        a = ledger.mint_option(a, PUT_3000, 2 * UNIT)
        assert (a.short_call_key, a.short_call_amount) == (CALL_4000, UNIT)
        assert (a.short_put_key, a.short_put_amount) == (PUT_3000, 2 * UNIT)
        assert check_all(a) == []

    def test_mint_same_key_accumulates(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        a = ledger.mint_option(a, CALL_4000, UNIT)
        assert a.short_call_amount == 2 * UNIT

    def test_second_different_call_key_rejected(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(InvalidTokenId):
            ledger.mint_option(a, CALL_4500, UNIT)

    def test_put_must_share_series(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        other_expiry = encode(PositionKind.PUT, PRODUCT, EXPIRY + 1, 3000 * UNIT)
        with pytest.raises(InvalidTokenId):
            ledger.mint_option(a, other_expiry, UNIT)

    def test_collateral_mismatch(self):
        weth_product = encode(PositionKind.CALL, encode_product(1, 2, 1, 18), EXPIRY, 4000 * UNIT)
        with pytest.raises(WrongCollateralId):
            ledger.mint_option(_funded(), weth_product, UNIT)

    def test_zero_strike_rejected(self):
        with pytest.raises(InvalidTokenId):
            ledger.mint_option(_funded(), encode(PositionKind.CALL, PRODUCT, EXPIRY, 0), UNIT)

    def test_vanilla_with_second_strike_rejected(self):
        with pytest.raises(InvalidTokenId):
            ledger.mint_option(_funded(), encode(PositionKind.CALL, PRODUCT, EXPIRY, 4000 * UNIT, 1), UNIT)

    def test_debit_spread_mintable(self):
        spread = encode(PositionKind.CALL_SPREAD, PRODUCT, EXPIRY, 4000 * UNIT, 4500 * UNIT)
        a = ledger.mint_option(_funded(), spread, UNIT)
        assert a.short_call_key == spread

    def test_credit_spread_not_mintable(self):
        spread = encode(PositionKind.CALL_SPREAD, PRODUCT, EXPIRY, 4000 * UNIT, 3500 * UNIT)
        with pytest.raises(InvalidTokenId):
            ledger.mint_option(_funded(), spread, UNIT)

    def test_garbage_key(self):
        with pytest.raises(InvalidTokenId):
            ledger.mint_option(_funded(), 12345, UNIT)

    def test_burn(self):
        a = ledger.mint_option(_funded(), CALL_4000, 2 * UNIT)
        a = ledger.burn_option(a, CALL_4000, UNIT)
        assert a.short_call_amount == UNIT
        a = ledger.burn_option(a, CALL_4000, UNIT)
        assert (a.short_call_key, a.short_call_amount) == (0, 0)

    def test_burn_too_much(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(InsufficientShortAmount):
            ledger.burn_option(a, CALL_4000, UNIT + 1)

    def test_burn_wrong_key(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(InvalidTokenId):
            ledger.burn_option(a, CALL_4500, UNIT)


# ---------------------------------------------------------------------------
# Merge / split
# ---------------------------------------------------------------------------

class TestMergeSplit:
    def test_merge_call(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        merged, burn = ledger.merge(a, CALL_4500, UNIT)
        assert burn == UNIT
        pk = decode(merged.short_call_key)
        assert pk.kind is PositionKind.CALL_SPREAD
        assert (pk.long_strike, pk.short_strike) == (4000 * UNIT, 4500 * UNIT)
        detail = ledger.get_account_detail(merged)
        assert (detail.short_call_strike, detail.long_call_strike) == (4000 * UNIT, 4500 * UNIT)

    def test_merge_put(self):
        a = ledger.mint_option(_funded(), PUT_3000, UNIT)
        merged, _ = ledger.merge(a, PUT_2500, UNIT)
        assert decode(merged.short_put_key).kind is PositionKind.PUT_SPREAD

    def test_split_is_inverse_of_merge(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        merged, _ = ledger.merge(a, CALL_4500, UNIT)
        back, released, amount = ledger.split(merged, PositionKind.CALL_SPREAD)
        assert back == a
        assert (released, amount) == (CALL_4500, UNIT)

    def test_merge_put_into_call_only_account(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(MergeTypeMismatch):
            ledger.merge(a, PUT_3000, UNIT)

    def test_merge_spread_rejected(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        spread = encode(PositionKind.CALL_SPREAD, PRODUCT, EXPIRY, 4000 * UNIT, 4500 * UNIT)
        with pytest.raises(CannotMergeSpread):
            ledger.merge(a, spread, UNIT)

    def test_merge_into_spread_rejected(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        merged, _ = ledger.merge(a, CALL_4500, UNIT)
        with pytest.raises(MergeTypeMismatch):
            ledger.merge(merged, encode(PositionKind.CALL, PRODUCT, EXPIRY, 5000 * UNIT), UNIT)

    def test_merge_product_mismatch(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(MergeProductMismatch):
            ledger.merge(a, encode(PositionKind.CALL, OTHER_PRODUCT, EXPIRY, 4500 * UNIT), UNIT)

    def test_merge_expiry_mismatch(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(MergeExpiryMismatch):
            ledger.merge(a, encode(PositionKind.CALL, PRODUCT, EXPIRY + 1, 4500 * UNIT), UNIT)

    def test_merge_amount_mismatch(self):
        a = ledger.mint_option(_funded(), CALL_4000, 2 * UNIT)
        with pytest.raises(MergeAmountMismatch):
            ledger.merge(a, CALL_4500, UNIT)

    def test_merge_same_strike(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(MergeWithSameStrike):
            ledger.merge(a, CALL_4000, UNIT)

    def test_split_vanilla_kind_rejected(self):
        with pytest.raises(CanOnlySplitSpread):
            ledger.split(_funded(), PositionKind.CALL)

    def test_split_without_spread(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        with pytest.raises(MergeTypeMismatch):
            ledger.split(a, PositionKind.CALL_SPREAD)


# ---------------------------------------------------------------------------
# Settlement / liquidation
# ---------------------------------------------------------------------------

class TestSettleLiquidate:
    def test_settle_clears_shorts(self):
        a = ledger.mint_option(_funded(1000 * UNIT), CALL_4000, UNIT)
        a = ledger.mint_option(a, PUT_3000, UNIT)
        s = ledger.settle_at_expiry(a, 300 * UNIT, 0)
        assert s == Account(collateral_amount=700 * UNIT, collateral_id=USDC)

    def test_settle_credit(self):
        a = ledger.mint_option(Account(), CALL_4000, UNIT)
        s = ledger.settle_at_expiry(a, -50 * UNIT, 0)
        assert s == Account(collateral_amount=50 * UNIT, collateral_id=USDC)

    def test_settle_to_zero(self):
        a = ledger.mint_option(_funded(100), CALL_4000, UNIT)
        assert ledger.settle_at_expiry(a, 100, 0) == Account()

    def test_settle_underflow(self):
        a = ledger.mint_option(_funded(100), CALL_4000, UNIT)
        with pytest.raises(InsufficientCollateral):
            ledger.settle_at_expiry(a, 101, 0)

    def test_liquidate_proportional(self):
        a = ledger.mint_option(_funded(1000), CALL_4000, 4 * UNIT)
        a = ledger.mint_option(a, PUT_3000, 2 * UNIT)
        new, released = ledger.liquidate(a, 2 * UNIT, UNIT)
        assert released == 500
        assert (new.short_call_amount, new.short_put_amount, new.collateral_amount) == (2 * UNIT, UNIT, 500)

    def test_liquidate_unequal_fraction(self):
        a = ledger.mint_option(_funded(1000), CALL_4000, 4 * UNIT)
        a = ledger.mint_option(a, PUT_3000, 2 * UNIT)
        with pytest.raises(WrongRepayAmounts):
            ledger.liquidate(a, 2 * UNIT, 2 * UNIT)

    def test_liquidate_all(self):
        a = ledger.mint_option(_funded(1000), CALL_4000, UNIT)
        new, released = ledger.liquidate(a, UNIT, 0)
        assert (new, released) == (Account(), 1000)

    def test_liquidate_missing_side(self):
        a = ledger.mint_option(_funded(1000), CALL_4000, UNIT)
        with pytest.raises(WrongRepayAmounts):
            ledger.liquidate(a, UNIT, 1)

    def test_remove_all(self):
        a = ledger.mint_option(_funded(), CALL_4000, UNIT)
        assert ledger.remove_all(a) == Account()


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

if importlib.util.find_spec("hypothesis") is not None:
    import hypothesis.strategies as st
    from hypothesis import given

    _strike = st.integers(min_value=1, max_value=1_000_000).map(lambda x: x * UNIT)

    @given(short=_strike, second=_strike, amount=st.integers(min_value=1, max_value=10**12),
           kind=st.sampled_from([PositionKind.CALL, PositionKind.PUT]))
    def test_merge_split_inverse(short, second, amount, kind):
        if short == second:
            return
        key = encode(kind, PRODUCT, EXPIRY, short)
        a = ledger.mint_option(_funded(), key, amount)
        merged, burn = ledger.merge(a, encode(kind, PRODUCT, EXPIRY, second), amount)
        assert burn == amount
        assert check_all(merged) == []
        back, released, minted = ledger.split(merged, kind.to_spread())
        assert back == a
        assert decode(released).long_strike == second
        assert minted == amount

    @given(amount=st.integers(min_value=1, max_value=10**18), extra=st.integers(min_value=1, max_value=10**18))
    def test_add_remove_round_trip(amount, extra):
        a = _funded(amount)
        assert ledger.remove_collateral(ledger.add_collateral(a, extra, USDC), extra, USDC) == a
