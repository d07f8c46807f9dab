"""Account ledger for the margin engine.

One pure function per account operation. Each takes the current `Account`
and returns the updated `Account` (plus any side outputs), or raises a
`MarginError`. Accounts are frozen, so a raised error never leaves a partial
update behind.

Structural rules enforced here:
- the call side holds a `CALL` or `CALL_SPREAD` key, the put side a `PUT` or
  `PUT_SPREAD` key, at most one distinct key per side;
- both sides share product and expiry;
- `collateral_id == 0` iff `collateral_amount == 0`. Before any deposit the
  collateral asset is bound by the product of the short keys instead.
"""

from __future__ import annotations

from dataclasses import replace

from ..position_key import (
    PositionKey,
    PositionKind,
    collateral_of,
    decode,
    encode,
    to_spread,
    to_vanilla,
)
from .errors import (
    CannotMergeSpread,
    CanOnlySplitSpread,
    InsufficientCollateral,
    InsufficientShortAmount,
    InvalidTokenId,
    MarginOverflowError,
    MergeAmountMismatch,
    MergeExpiryMismatch,
    MergeProductMismatch,
    MergeTypeMismatch,
    MergeWithSameStrike,
    WrongCollateralId,
    WrongRepayAmounts,
)
from .types import Account, MarginAccountDetail

MAX_COLLATERAL_AMOUNT: int = (1 << 80) - 1
MAX_SHORT_AMOUNT: int = (1 << 64) - 1


def _require_positive(amount: int, *, name: str = "amount") -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise MarginOverflowError(f"{name} must be a positive int")


def decode_or_reject(key: int) -> PositionKey:
    try:
        return decode(key)
    except (TypeError, ValueError) as exc:
        raise InvalidTokenId(str(exc)) from exc


def _side_key(account: Account, call_side: bool) -> int:
    return account.short_call_key if call_side else account.short_put_key


def _side_amount(account: Account, call_side: bool) -> int:
    return account.short_call_amount if call_side else account.short_put_amount


def _with_side(account: Account, call_side: bool, key: int, amount: int) -> Account:
    if amount == 0:
        key = 0
    if call_side:
        return replace(account, short_call_key=key, short_call_amount=amount)
    return replace(account, short_put_key=key, short_put_amount=amount)


def bound_collateral_id(account: Account) -> int:
    """Collateral asset the account is committed to (0 if none yet)."""
    if account.collateral_id != 0:
        return account.collateral_id
    for key in (account.short_call_key, account.short_put_key):
        if key != 0:
            return collateral_of(decode(key).product_id)
    return 0


# -- Collateral --------------------------------------------------------------

def add_collateral(account: Account, amount: int, collateral_id: int) -> Account:
    _require_positive(amount)
    if collateral_id <= 0:
        raise WrongCollateralId("collateral_id must be set")
    bound = bound_collateral_id(account)
    if bound != 0 and bound != collateral_id:
        raise WrongCollateralId(f"account collateral is {bound}, got {collateral_id}")

    new_amount = account.collateral_amount + amount
    if new_amount > MAX_COLLATERAL_AMOUNT:
        raise MarginOverflowError("collateral amount overflow")
    return replace(account, collateral_amount=new_amount, collateral_id=collateral_id)


def remove_collateral(account: Account, amount: int, collateral_id: int) -> Account:
    _require_positive(amount)
    if account.collateral_id != collateral_id:
        raise WrongCollateralId(f"account collateral is {account.collateral_id}, got {collateral_id}")
    if amount > account.collateral_amount:
        raise InsufficientCollateral(f"remove {amount} > held {account.collateral_amount}")

    new_amount = account.collateral_amount - amount
    return replace(
        account,
        collateral_amount=new_amount,
        collateral_id=account.collateral_id if new_amount > 0 else 0,
    )


# -- Shorts ------------------------------------------------------------------

def _validate_mint_shape(pk: PositionKey) -> None:
    if pk.long_strike == 0:
        raise InvalidTokenId("strike must be non-zero")
    if not pk.kind.is_spread:
        if pk.short_strike != 0:
            raise InvalidTokenId("vanilla key must not carry a second strike")
        return
    # Only debit-shaped spreads can be minted directly.
    if pk.kind is PositionKind.CALL_SPREAD and pk.short_strike <= pk.long_strike:
        raise InvalidTokenId("call spread short strike must be above long strike")
    if pk.kind is PositionKind.PUT_SPREAD and not 0 < pk.short_strike < pk.long_strike:
        raise InvalidTokenId("put spread short strike must be below long strike")


def mint_option(account: Account, key: int, amount: int) -> Account:
    _require_positive(amount)
    pk = decode_or_reject(key)
    _validate_mint_shape(pk)

    bound = bound_collateral_id(account)
    if bound != 0 and bound != collateral_of(pk.product_id):
        raise WrongCollateralId(f"account collateral is {bound}, key settles in {collateral_of(pk.product_id)}")

    call_side = pk.kind.is_call_side
    other_key = _side_key(account, not call_side)
    if other_key != 0:
        other = decode(other_key)
        if other.product_id != pk.product_id or other.expiry != pk.expiry:
            raise InvalidTokenId("call and put sides must share product and expiry")

    current = _side_key(account, call_side)
    if current != 0 and current != key:
        raise InvalidTokenId("account already holds a different key on this side")

    new_amount = _side_amount(account, call_side) + amount
    if new_amount > MAX_SHORT_AMOUNT:
        raise MarginOverflowError("short amount overflow")
    return _with_side(account, call_side, key, new_amount)


def burn_option(account: Account, key: int, amount: int) -> Account:
    _require_positive(amount)
    pk = decode_or_reject(key)
    call_side = pk.kind.is_call_side
    if _side_key(account, call_side) != key:
        raise InvalidTokenId("key does not match the account's short")

    held = _side_amount(account, call_side)
    if amount > held:
        raise InsufficientShortAmount(f"burn {amount} > short {held}")
    return _with_side(account, call_side, key, held - amount)


# -- Merge / split -----------------------------------------------------------

def merge(account: Account, key: int, amount: int) -> tuple[Account, int]:
    """Merge an incoming vanilla long leg into the account's same-kind short.

    The account's key becomes the spread carrying the incoming strike as its
    second leg. Returns the new account and the amount of `key` to burn from
    the caller.
    """
    incoming = decode_or_reject(key)
    if incoming.kind.is_spread:
        raise CannotMergeSpread("incoming key must be a vanilla call or put")

    call_side = incoming.kind.is_call_side
    existing_key = _side_key(account, call_side)
    if existing_key == 0:
        raise MergeTypeMismatch(f"no short {incoming.kind.name} to merge into")
    existing = decode(existing_key)

    if existing.kind != incoming.kind:
        raise MergeTypeMismatch(f"cannot merge {incoming.kind.name} into {existing.kind.name}")
    if existing.product_id != incoming.product_id:
        raise MergeProductMismatch()
    if existing.expiry != incoming.expiry:
        raise MergeExpiryMismatch()
    short_amount = _side_amount(account, call_side)
    if amount != short_amount:
        raise MergeAmountMismatch(f"merge amount {amount} != short amount {short_amount}")
    if existing.long_strike == incoming.long_strike:
        raise MergeWithSameStrike()

    new_key = to_spread(existing_key, incoming.long_strike)
    return _with_side(account, call_side, new_key, short_amount), amount


def split(account: Account, kind: PositionKind) -> tuple[Account, int, int]:
    """Split the account's spread back into its short vanilla leg.

    Returns the new account, the vanilla key for the former long leg and the
    amount to mint to the caller.
    """
    if not kind.is_spread:
        raise CanOnlySplitSpread()

    call_side = kind.is_call_side
    spread_key = _side_key(account, call_side)
    if spread_key == 0 or decode(spread_key).kind != kind:
        raise MergeTypeMismatch(f"account does not hold a {kind.name}")

    spread = decode(spread_key)
    amount = _side_amount(account, call_side)
    released = encode(kind.to_vanilla(), spread.product_id, spread.expiry, spread.short_strike, 0)
    return _with_side(account, call_side, to_vanilla(spread_key), amount), released, amount


# -- Settlement / liquidation ------------------------------------------------

def settle_at_expiry(account: Account, call_payout: int, put_payout: int) -> Account:
    """Clear both sides and apply the signed payouts to collateral.

    A positive payout is owed by the account. A negative payout is a credit
    (merged credit-shaped spreads). Collateral never goes below zero; that is
    a hard failure.
    """
    new_amount = account.collateral_amount - call_payout - put_payout
    if new_amount < 0:
        raise InsufficientCollateral(f"payout {call_payout + put_payout} > held {account.collateral_amount}")
    if new_amount > MAX_COLLATERAL_AMOUNT:
        raise MarginOverflowError("collateral amount overflow")
    collateral_id = bound_collateral_id(account) if new_amount > 0 else 0
    return Account(collateral_amount=new_amount, collateral_id=collateral_id)


def liquidate(account: Account, call_amount: int, put_amount: int) -> tuple[Account, int]:
    """Repay a portion of the shorts and release the same portion of collateral.

    When both sides are short, the repaid fraction must be identical on each
    side. Returns the new account and the collateral released (rounded down).
    """
    if call_amount < 0 or put_amount < 0 or call_amount + put_amount == 0:
        raise WrongRepayAmounts("repay amounts must be non-negative and not both zero")
    if call_amount > account.short_call_amount or put_amount > account.short_put_amount:
        raise WrongRepayAmounts("repay exceeds short amount")

    if account.short_call_amount > 0 and account.short_put_amount > 0:
        if call_amount * account.short_put_amount != put_amount * account.short_call_amount:
            raise WrongRepayAmounts("call and put must be repaid in the same proportion")
        numerator, denominator = call_amount, account.short_call_amount
    elif account.short_call_amount > 0:
        if put_amount != 0:
            raise WrongRepayAmounts("account has no short put")
        numerator, denominator = call_amount, account.short_call_amount
    else:
        if call_amount != 0:
            raise WrongRepayAmounts("account has no short call")
        numerator, denominator = put_amount, account.short_put_amount

    released = (account.collateral_amount * numerator) // denominator
    new_account = _with_side(account, True, account.short_call_key, account.short_call_amount - call_amount)
    new_account = _with_side(new_account, False, account.short_put_key, account.short_put_amount - put_amount)
    remaining = account.collateral_amount - released
    return replace(
        new_account,
        collateral_amount=remaining,
        collateral_id=account.collateral_id if remaining > 0 else 0,
    ), released


def remove_all(account: Account) -> Account:
    """The empty account (used when a whole account is transferred out)."""
    return Account()


# -- Detail ------------------------------------------------------------------

def get_account_detail(account: Account) -> MarginAccountDetail:
    """Account-side view for the risk model (short leg = key's long strike)."""
    product_id = 0
    expiry = 0
    short_call = long_call = short_put = long_put = 0

    if account.short_call_key != 0:
        pk = decode(account.short_call_key)
        product_id, expiry = pk.product_id, pk.expiry
        short_call, long_call = pk.long_strike, pk.short_strike
    if account.short_put_key != 0:
        pk = decode(account.short_put_key)
        product_id, expiry = pk.product_id, pk.expiry
        short_put, long_put = pk.long_strike, pk.short_strike

    return MarginAccountDetail(
        put_amount=account.short_put_amount,
        call_amount=account.short_call_amount,
        long_put_strike=long_put,
        short_put_strike=short_put,
        long_call_strike=long_call,
        short_call_strike=short_call,
        expiry=expiry,
        collateral_amount=account.collateral_amount,
        product_id=product_id,
    )
