"""Dispatch-table kernel for single margin-account actions.

``step(account, params)`` is the single entry point. It:

1. Validates parameter domains.
2. Dispatches to the ledger operation for the action.
3. Checks all invariants on the post-state.
4. Returns a ``StepResult`` (accepted or rejected with reason).

Rejection reasons are ``param_domain:<field>``, ``invariant:<ids>`` or the
``code`` of the ledger error that refused the action.
"""

from __future__ import annotations

from typing import Callable

from . import ledger
from .errors import MarginError, MarginInvariantError, MarginOverflowError
from .invariants import check_all
from .types import Account, Action, ActionParams, Effect, Event, StepResult

ApplyFn = Callable[[Account, ActionParams], tuple[Account, Effect]]


def _apply_add_collateral(account: Account, params: ActionParams) -> tuple[Account, Effect]:
    new = ledger.add_collateral(account, params.amount, params.collateral_id)
    return new, Effect(event=Event.COLLATERAL_ADDED, collateral_after=new.collateral_amount)


def _apply_remove_collateral(account: Account, params: ActionParams) -> tuple[Account, Effect]:
    new = ledger.remove_collateral(account, params.amount, params.collateral_id)
    return new, Effect(event=Event.COLLATERAL_REMOVED, collateral_after=new.collateral_amount)


def _apply_mint_short(account: Account, params: ActionParams) -> tuple[Account, Effect]:
    new = ledger.mint_option(account, params.key, params.amount)
    return new, Effect(
        event=Event.SHORT_MINTED,
        collateral_after=new.collateral_amount,
        mint_key=params.key,
        mint_amount=params.amount,
    )


def _apply_burn_short(account: Account, params: ActionParams) -> tuple[Account, Effect]:
    new = ledger.burn_option(account, params.key, params.amount)
    return new, Effect(
        event=Event.SHORT_BURNED,
        collateral_after=new.collateral_amount,
        burn_key=params.key,
        burn_amount=params.amount,
    )


def _apply_merge(account: Account, params: ActionParams) -> tuple[Account, Effect]:
    new, burn_amount = ledger.merge(account, params.key, params.amount)
    return new, Effect(
        event=Event.MERGED,
        collateral_after=new.collateral_amount,
        burn_key=params.key,
        burn_amount=burn_amount,
    )


def _apply_split(account: Account, params: ActionParams) -> tuple[Account, Effect]:
    if params.kind is None:
        raise MarginOverflowError("param_domain:kind")
    new, mint_key, mint_amount = ledger.split(account, params.kind)
    return new, Effect(
        event=Event.SPLIT,
        collateral_after=new.collateral_amount,
        mint_key=mint_key,
        mint_amount=mint_amount,
    )


def _apply_settle(account: Account, params: ActionParams) -> tuple[Account, Effect]:
    new = ledger.settle_at_expiry(account, params.call_payout, params.put_payout)
    return new, Effect(event=Event.SETTLED, collateral_after=new.collateral_amount)


_DISPATCH: dict[Action, ApplyFn] = {
    Action.ADD_COLLATERAL: _apply_add_collateral,
    Action.REMOVE_COLLATERAL: _apply_remove_collateral,
    Action.MINT_SHORT: _apply_mint_short,
    Action.BURN_SHORT: _apply_burn_short,
    Action.MERGE: _apply_merge,
    Action.SPLIT: _apply_split,
    Action.SETTLE: _apply_settle,
}

# -- Parameter domain bounds -------------------------------------------------

MAX_PARAM_AMOUNT: int = ledger.MAX_COLLATERAL_AMOUNT
MAX_ASSET_ID: int = 255

# Per-action bounds: list of (field_name, min_val, max_val).
_PARAM_BOUNDS: dict[Action, list[tuple[str, int, int]]] = {
    Action.ADD_COLLATERAL: [
        ("amount", 1, MAX_PARAM_AMOUNT),
        ("collateral_id", 1, MAX_ASSET_ID),
    ],
    Action.REMOVE_COLLATERAL: [
        ("amount", 1, MAX_PARAM_AMOUNT),
        ("collateral_id", 1, MAX_ASSET_ID),
    ],
    Action.MINT_SHORT: [
        ("amount", 1, ledger.MAX_SHORT_AMOUNT),
    ],
    Action.BURN_SHORT: [
        ("amount", 1, ledger.MAX_SHORT_AMOUNT),
    ],
    Action.MERGE: [
        ("amount", 1, ledger.MAX_SHORT_AMOUNT),
    ],
    Action.SPLIT: [],
    Action.SETTLE: [
        ("call_payout", -MAX_PARAM_AMOUNT, MAX_PARAM_AMOUNT),
        ("put_payout", -MAX_PARAM_AMOUNT, MAX_PARAM_AMOUNT),
    ],
}


def _validate_params(params: ActionParams) -> str | None:
    """Check parameter domain bounds. Returns rejection reason or None."""
    if params.action is Action.SPLIT and params.kind is None:
        return "param_domain:kind"
    for field, lo, hi in _PARAM_BOUNDS.get(params.action, []):
        val = getattr(params, field)
        if not isinstance(val, int) or isinstance(val, bool) or val < lo or val > hi:
            return f"param_domain:{field}"
    return None


def step(account: Account, params: ActionParams) -> StepResult:
    """Execute one action against the given account.

    Returns ``StepResult`` with ``accepted=True`` on success,
    or ``accepted=False`` with a ``rejection`` reason string.
    """
    apply_fn = _DISPATCH.get(params.action)
    if apply_fn is None:
        return StepResult(accepted=False, rejection=f"unknown_action:{params.action}")

    domain_err = _validate_params(params)
    if domain_err is not None:
        return StepResult(accepted=False, rejection=domain_err)

    try:
        new_account, effect = apply_fn(account, params)
    except MarginError as exc:
        return StepResult(accepted=False, rejection=exc.code)

    violations = check_all(new_account)
    if violations:
        return StepResult(
            accepted=False,
            rejection=f"invariant:{','.join(violations)}",
        )

    return StepResult(accepted=True, state=new_account, effect=effect)


def step_or_raise(account: Account, params: ActionParams) -> StepResult:
    """Like ``step()`` but raises the typed error instead of rejecting.

    Raises:
        MarginOverflowError: Parameter outside its domain.
        MarginInvariantError: Post-state violates one or more invariants.
        MarginError: The ledger error that refused the action.
    """
    domain_err = _validate_params(params)
    if domain_err is not None:
        raise MarginOverflowError(domain_err)
    apply_fn = _DISPATCH[params.action]

    new_account, effect = apply_fn(account, params)
    violations = check_all(new_account)
    if violations:
        raise MarginInvariantError(violations)
    return StepResult(accepted=True, state=new_account, effect=effect)
