"""`margin`: pure-Python margin kernel for collateralized option writing.

- deterministic, integer-only transitions,
- immutable accounts (frozen dataclasses),
- fail-closed ledger operations and invariant checks,
- a risk-shock collateral model that always rounds requirements up.

Public API:
- `empty_account() -> Account`
- `step(account, params) -> StepResult`
- `step_or_raise(account, params) -> StepResult` (raises on rejection)
- `get_min_collateral(detail, spot, collateral_price, params, now=...) -> int`
"""

from .engine import step, step_or_raise
from .errors import (
    AccountIsHealthy,
    AccountNotEmpty,
    AccountUnderwater,
    CannotMergeSpread,
    CanOnlySplitSpread,
    InsufficientCollateral,
    InsufficientShortAmount,
    InvalidMarginParams,
    InvalidSignature,
    InvalidTokenId,
    MarginError,
    MarginInvariantError,
    MarginOverflowError,
    MergeAmountMismatch,
    MergeExpiryMismatch,
    MergeProductMismatch,
    MergeTypeMismatch,
    MergeWithSameStrike,
    NoAccess,
    NotExpired,
    PriceNotAvailable,
    ReentrantCall,
    StalePrice,
    UnknownProduct,
    WrongCollateralId,
    WrongRepayAmounts,
)
from .ledger import get_account_detail
from .math import get_min_collateral, get_payout, get_time_decay
from .state import account_from_dict, account_to_dict, empty_account
from .types import (
    Account,
    Action,
    ActionParams,
    Effect,
    Event,
    MarginAccountDetail,
    ProductMarginParams,
    StepResult,
)

__all__ = [
    "step",
    "step_or_raise",
    "empty_account",
    "account_to_dict",
    "account_from_dict",
    "get_account_detail",
    "get_min_collateral",
    "get_payout",
    "get_time_decay",
    "Account",
    "Action",
    "ActionParams",
    "Effect",
    "Event",
    "MarginAccountDetail",
    "ProductMarginParams",
    "StepResult",
    "MarginError",
    "MarginInvariantError",
    "MarginOverflowError",
    "InvalidTokenId",
    "WrongCollateralId",
    "InsufficientCollateral",
    "InsufficientShortAmount",
    "CannotMergeSpread",
    "MergeTypeMismatch",
    "MergeProductMismatch",
    "MergeExpiryMismatch",
    "MergeAmountMismatch",
    "MergeWithSameStrike",
    "CanOnlySplitSpread",
    "AccountUnderwater",
    "AccountIsHealthy",
    "AccountNotEmpty",
    "WrongRepayAmounts",
    "NoAccess",
    "ReentrantCall",
    "InvalidSignature",
    "NotExpired",
    "PriceNotAvailable",
    "StalePrice",
    "InvalidMarginParams",
    "UnknownProduct",
]
