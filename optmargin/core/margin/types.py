"""Data types for the margin engine.

All types are frozen dataclasses (immutable).

Units/conventions:
- strikes and prices are strike-asset per underlying, scaled by `UNIT` (1e6).
- short amounts are option units scaled by `UNIT`.
- `collateral_amount` is in the collateral asset's own decimals.
- `*_bps` / `*_ratio` values are basis points (1/10_000).
- keys are encoded position keys (`0` = unset).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique

from ..position_key import PositionKind


@unique
class Action(Enum):
    """One member per batch action selector."""
    ADD_COLLATERAL = "AddCollateral"
    REMOVE_COLLATERAL = "RemoveCollateral"
    MINT_SHORT = "MintShort"
    BURN_SHORT = "BurnShort"
    MERGE = "Merge"
    SPLIT = "Split"
    SETTLE = "Settle"


@unique
class Event(Enum):
    COLLATERAL_ADDED = "CollateralAdded"
    COLLATERAL_REMOVED = "CollateralRemoved"
    SHORT_MINTED = "ShortMinted"
    SHORT_BURNED = "ShortBurned"
    MERGED = "Merged"
    SPLIT = "Split"
    SETTLED = "Settled"


@dataclass(frozen=True)
class Account:
    """Persisted per-account margin state. `Account()` is the empty account."""

    collateral_amount: int = 0
    collateral_id: int = 0
    short_call_key: int = 0
    short_call_amount: int = 0
    short_put_key: int = 0
    short_put_amount: int = 0

    @property
    def is_empty(self) -> bool:
        return self == Account()

    @property
    def has_short(self) -> bool:
        return self.short_call_amount > 0 or self.short_put_amount > 0


@dataclass(frozen=True)
class ProductMarginParams:
    """Per-product risk parameters.

    `sqrt_period_*` are the precomputed `SQRT_SCALE`-scaled square roots of the
    period bounds (see `math.sqrt_scaled`).
    """

    discount_period_upper: int
    discount_period_lower: int
    discount_ratio_upper: int
    discount_ratio_lower: int
    shock_ratio: int
    sqrt_period_upper: int
    sqrt_period_lower: int


@dataclass(frozen=True)
class MarginAccountDetail:
    """Account-side decoded view used by the risk model.

    For a short `CALL_SPREAD` key `(L, S)` the account is short the L call and
    long the S call, so `short_call_strike = L` and `long_call_strike = S`.
    """

    put_amount: int = 0
    call_amount: int = 0
    long_put_strike: int = 0
    short_put_strike: int = 0
    long_call_strike: int = 0
    short_call_strike: int = 0
    expiry: int = 0
    collateral_amount: int = 0
    product_id: int = 0


@dataclass(frozen=True)
class ActionParams:
    """Parameters for one kernel action. Unused fields default to 0/None."""

    action: Action
    amount: int = 0              # add/remove collateral, mint/burn/merge
    collateral_id: int = 0       # add/remove collateral, mint
    key: int = 0                 # mint/burn/merge
    kind: PositionKind | None = None  # split
    call_payout: int = 0         # settle
    put_payout: int = 0          # settle


@dataclass(frozen=True)
class Effect:
    """Observable outputs of an accepted action.

    `burn_*` is what the caller must give up (merge), `mint_*` what the caller
    receives (split).
    """

    event: Event
    collateral_after: int = 0
    burn_key: int = 0
    burn_amount: int = 0
    mint_key: int = 0
    mint_amount: int = 0


@dataclass(frozen=True)
class StepResult:
    accepted: bool
    state: Account | None = None
    effect: Effect | None = None
    rejection: str | None = None
