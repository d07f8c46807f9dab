"""Invariant checkers for margin accounts.

Each function returns True when the invariant holds, and `check_all()` returns
the list of violated invariant IDs (empty = all pass).

These are per-account structural invariants. Solvency (collateral against the
risk model) is the orchestrator's post-batch health check, not an invariant:
accounts may be transiently unhealthy inside a batch.
"""

from __future__ import annotations

from typing import Callable

from ..position_key import collateral_of, decode
from .ledger import MAX_COLLATERAL_AMOUNT, MAX_SHORT_AMOUNT
from .types import Account


def _kind_or_none(key: int):
    try:
        return decode(key).kind
    except (TypeError, ValueError):
        return None


def inv_collateral_id_iff_amount(a: Account) -> bool:
    return (a.collateral_id == 0) == (a.collateral_amount == 0)


def inv_call_key_iff_amount(a: Account) -> bool:
    return (a.short_call_key == 0) == (a.short_call_amount == 0)


def inv_put_key_iff_amount(a: Account) -> bool:
    return (a.short_put_key == 0) == (a.short_put_amount == 0)


def inv_call_key_on_call_side(a: Account) -> bool:
    if a.short_call_key == 0:
        return True
    kind = _kind_or_none(a.short_call_key)
    return kind is not None and kind.is_call_side


def inv_put_key_on_put_side(a: Account) -> bool:
    if a.short_put_key == 0:
        return True
    kind = _kind_or_none(a.short_put_key)
    return kind is not None and not kind.is_call_side


def inv_sides_share_series(a: Account) -> bool:
    if a.short_call_key == 0 or a.short_put_key == 0:
        return True
    if _kind_or_none(a.short_call_key) is None or _kind_or_none(a.short_put_key) is None:
        return False
    c, p = decode(a.short_call_key), decode(a.short_put_key)
    return c.product_id == p.product_id and c.expiry == p.expiry


def inv_collateral_matches_product(a: Account) -> bool:
    if a.collateral_id == 0:
        return True
    for key in (a.short_call_key, a.short_put_key):
        if key == 0:
            continue
        if _kind_or_none(key) is None:
            return False
        if collateral_of(decode(key).product_id) != a.collateral_id:
            return False
    return True


def inv_amounts_in_range(a: Account) -> bool:
    return (
        0 <= a.collateral_amount <= MAX_COLLATERAL_AMOUNT
        and 0 <= a.short_call_amount <= MAX_SHORT_AMOUNT
        and 0 <= a.short_put_amount <= MAX_SHORT_AMOUNT
    )


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[Account], bool]] = {
    "inv_collateral_id_iff_amount": inv_collateral_id_iff_amount,
    "inv_call_key_iff_amount": inv_call_key_iff_amount,
    "inv_put_key_iff_amount": inv_put_key_iff_amount,
    "inv_call_key_on_call_side": inv_call_key_on_call_side,
    "inv_put_key_on_put_side": inv_put_key_on_put_side,
    "inv_sides_share_series": inv_sides_share_series,
    "inv_collateral_matches_product": inv_collateral_matches_product,
    "inv_amounts_in_range": inv_amounts_in_range,
}


def check_all(account: Account) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(account)
    ]
