"""Pure arithmetic for the margin engine (risk-shock collateral model).

Every function is stateless and operates on plain Python ints.

Rounding is explicit and one-directional:
- collateral requirements always round *up* (`mul_div_up`),
- settlement payouts always round *down* (`mul_div_down`).

No helper wraps or clamps silently: a negative operand or divisor raises
`MarginOverflowError`.
"""

from __future__ import annotations

from math import isqrt

from ..position_key import UNIT, UNIT_DECIMALS, PositionKey, PositionKind, decode_product
from .errors import MarginOverflowError, PriceNotAvailable
from .types import MarginAccountDetail, ProductMarginParams

BPS: int = 10_000
SQRT_SCALE: int = 1_000_000  # square roots carry 6 decimals


# -- Fixed-point helpers -----------------------------------------------------

def _require_non_negative(*values: int) -> None:
    for v in values:
        if v < 0:
            raise MarginOverflowError(f"negative operand: {v}")


def mul_div_down(a: int, b: int, d: int) -> int:
    """``floor(a * b / d)`` for non-negative operands."""
    _require_non_negative(a, b)
    if d <= 0:
        raise MarginOverflowError(f"non-positive divisor: {d}")
    return (a * b) // d


def mul_div_up(a: int, b: int, d: int) -> int:
    """``ceil(a * b / d)`` for non-negative operands."""
    _require_non_negative(a, b)
    if d <= 0:
        raise MarginOverflowError(f"non-positive divisor: {d}")
    return -((-(a * b)) // d)


def convert_decimals(amount: int, from_decimals: int, to_decimals: int, *, round_up: bool) -> int:
    _require_non_negative(amount)
    if from_decimals == to_decimals:
        return amount
    if to_decimals > from_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    scale = 10 ** (from_decimals - to_decimals)
    if round_up:
        return -((-amount) // scale)
    return amount // scale


def sqrt_scaled(x: int, *, round_up: bool = False) -> int:
    """``sqrt(x) * SQRT_SCALE`` as an integer."""
    _require_non_negative(x)
    n = x * SQRT_SCALE * SQRT_SCALE
    r = isqrt(n)
    if round_up and r * r < n:
        r += 1
    return r


# -- Time decay --------------------------------------------------------------

def get_time_decay(expiry: int, now: int, params: ProductMarginParams) -> int:
    """Time decay factor in bps.

    Linear in ``sqrt(time_to_expiry)`` between the period bounds, clamped to
    ``[discount_ratio_lower, discount_ratio_upper]``; 0 once expired.
    """
    if now >= expiry:
        return 0
    t = expiry - now
    if t >= params.discount_period_upper:
        return params.discount_ratio_upper
    if t <= params.discount_period_lower:
        return params.discount_ratio_lower

    span = params.sqrt_period_upper - params.sqrt_period_lower
    if span <= 0:
        return params.discount_ratio_upper
    sqrt_t = sqrt_scaled(t, round_up=True)
    ratio_span = params.discount_ratio_upper - params.discount_ratio_lower
    offset = max(sqrt_t - params.sqrt_period_lower, 0)
    ratio = params.discount_ratio_lower + mul_div_up(offset, ratio_span, span)
    return min(max(ratio, params.discount_ratio_lower), params.discount_ratio_upper)


# -- Shock prices ------------------------------------------------------------

def shock_price_up(spot: int, shock_ratio: int) -> int:
    return mul_div_up(spot, BPS + shock_ratio, BPS)


def shock_price_down(spot: int, shock_ratio: int) -> int:
    if shock_ratio > BPS:
        raise MarginOverflowError(f"shock ratio above 100%: {shock_ratio}")
    return mul_div_down(spot, BPS - shock_ratio, BPS)


# -- Naked short requirements (strike-asset UNIT) ----------------------------

def naked_call_requirement(amount: int, strike: int, spot: int, shock_ratio: int, time_decay: int) -> int:
    """``min(strike, shock) * decay + max(shock - strike, 0)``, times amount."""
    shock = shock_price_up(spot, shock_ratio)
    time_value = mul_div_up(min(strike, shock), time_decay, BPS)
    intrinsic = max(shock - strike, 0)
    return mul_div_up(time_value + intrinsic, amount, UNIT)


def naked_put_requirement(amount: int, strike: int, spot: int, shock_ratio: int, time_decay: int) -> int:
    """``min(strike, shock) * decay + max(strike - shock, 0)``, times amount."""
    shock = shock_price_down(spot, shock_ratio)
    time_value = mul_div_up(min(strike, shock), time_decay, BPS)
    intrinsic = max(strike - shock, 0)
    return mul_div_up(time_value + intrinsic, amount, UNIT)


# -- Spreads -----------------------------------------------------------------

def min_collateral_for_call_spread(
    amount: int,
    short_strike: int,
    long_strike: int,
    spot: int,
    shock_ratio: int,
    time_decay: int,
) -> int:
    """Short call at `short_strike`, optionally hedged by a long call.

    The long leg caps the loss only when it sits strictly above the short
    strike; otherwise the naked requirement applies.
    """
    naked = naked_call_requirement(amount, short_strike, spot, shock_ratio, time_decay)
    if long_strike == 0 or long_strike <= short_strike:
        return naked
    max_loss = mul_div_up(long_strike - short_strike, amount, UNIT)
    return min(max_loss, naked)


def min_collateral_for_put_spread(
    amount: int,
    short_strike: int,
    long_strike: int,
    spot: int,
    shock_ratio: int,
    time_decay: int,
) -> int:
    """Mirror of `min_collateral_for_call_spread`: the long put must sit strictly below."""
    naked = naked_put_requirement(amount, short_strike, spot, shock_ratio, time_decay)
    if long_strike == 0 or long_strike >= short_strike:
        return naked
    max_loss = mul_div_up(short_strike - long_strike, amount, UNIT)
    return min(max_loss, naked)


def min_collateral_for_double_short(
    detail: MarginAccountDetail,
    spot: int,
    params: ProductMarginParams,
    time_decay: int,
) -> int:
    call_req = min_collateral_for_call_spread(
        detail.call_amount, detail.short_call_strike, detail.long_call_strike,
        spot, params.shock_ratio, time_decay,
    )
    put_req = min_collateral_for_put_spread(
        detail.put_amount, detail.short_put_strike, detail.long_put_strike,
        spot, params.shock_ratio, time_decay,
    )
    if detail.short_put_strike < detail.short_call_strike:
        # At most one side can finish in the money.
        return max(call_req, put_req)
    # Crossed strikes: both sides may pay out. The sum over-approximates the
    # true max loss; it is not capped.
    return call_req + put_req


def get_min_collateral_in_strike(
    detail: MarginAccountDetail,
    spot: int,
    params: ProductMarginParams,
    now: int,
) -> int:
    """Minimum collateral value in strike-asset UNIT."""
    if detail.call_amount == 0 and detail.put_amount == 0:
        return 0
    time_decay = get_time_decay(detail.expiry, now, params)
    if detail.call_amount == 0:
        return min_collateral_for_put_spread(
            detail.put_amount, detail.short_put_strike, detail.long_put_strike,
            spot, params.shock_ratio, time_decay,
        )
    if detail.put_amount == 0:
        return min_collateral_for_call_spread(
            detail.call_amount, detail.short_call_strike, detail.long_call_strike,
            spot, params.shock_ratio, time_decay,
        )
    return min_collateral_for_double_short(detail, spot, params, time_decay)


def strike_value_to_collateral(value: int, product_id: int, collateral_price: int, *, round_up: bool) -> int:
    """Convert a strike-asset UNIT value into collateral-asset units.

    `collateral_price` is the collateral asset priced in the strike asset
    (UNIT-scaled); ignored when the collateral is the strike asset.
    """
    product = decode_product(product_id)
    if product.collateral != product.strike:
        if collateral_price <= 0:
            raise PriceNotAvailable(f"no collateral price for product {product_id:#x}")
        div = mul_div_up if round_up else mul_div_down
        value = div(value, UNIT, collateral_price)
    return convert_decimals(value, UNIT_DECIMALS, product.collateral_decimals, round_up=round_up)


def get_min_collateral(
    detail: MarginAccountDetail,
    spot: int,
    collateral_price: int,
    params: ProductMarginParams,
    *,
    now: int,
) -> int:
    """Minimum collateral in the collateral asset's decimals (rounded up)."""
    value = get_min_collateral_in_strike(detail, spot, params, now)
    if value == 0:
        return 0
    return strike_value_to_collateral(value, detail.product_id, collateral_price, round_up=True)



# -- Settlement --------------------------------------------------------------

def get_cash_value(kind: PositionKind, expiry_price: int, long_strike: int, short_strike: int) -> int:
    """Holder's payoff per option unit in strike-asset UNIT.

    Spreads pay ``payoff(long_strike) - payoff(short_strike)``. This is only
    negative for credit-shaped spreads, which exist as merged account keys but
    are never minted.
    """
    if kind is PositionKind.CALL:
        return max(expiry_price - long_strike, 0)
    if kind is PositionKind.PUT:
        return max(long_strike - expiry_price, 0)
    if kind is PositionKind.CALL_SPREAD:
        return max(expiry_price - long_strike, 0) - max(expiry_price - short_strike, 0)
    if kind is PositionKind.PUT_SPREAD:
        return max(long_strike - expiry_price, 0) - max(short_strike - expiry_price, 0)
    raise ValueError(f"unknown kind: {kind!r}")


def get_net_payout(key: PositionKey, amount: int, expiry_price: int, collateral_price: int) -> int:
    """Signed payout in collateral units owed by the writer of `amount` units.

    The magnitude is rounded down in both directions.
    """
    cash = get_cash_value(key.kind, expiry_price, key.long_strike, key.short_strike)
    value = mul_div_down(abs(cash), amount, UNIT)
    if value == 0:
        return 0
    out = strike_value_to_collateral(value, key.product_id, collateral_price, round_up=False)
    return out if cash > 0 else -out


def get_payout(key: PositionKey, amount: int, expiry_price: int, collateral_price: int) -> int:
    """Payout in collateral units for the holder of `amount` units (rounded down)."""
    return max(get_net_payout(key, amount, expiry_price, collateral_price), 0)
