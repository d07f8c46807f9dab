"""Exception types for the margin engine.

Ledger operations raise these directly. The kernel ``step()`` in ``engine.py``
turns them into ``StepResult.rejection`` codes; ``step_or_raise()`` and the
orchestrator propagate them unchanged.
"""

from __future__ import annotations


class MarginError(Exception):
    """Base class. ``code`` is the stable rejection identifier."""

    code: str = "margin_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


# -- Encoding ----------------------------------------------------------------

class InvalidTokenId(MarginError):
    code = "InvalidTokenId"


# -- Account state -----------------------------------------------------------

class WrongCollateralId(MarginError):
    code = "WrongCollateralId"


class InsufficientCollateral(MarginError):
    code = "InsufficientCollateral"


class InsufficientShortAmount(MarginError):
    code = "InsufficientShortAmount"


# -- Merge / split -----------------------------------------------------------

class CannotMergeSpread(MarginError):
    code = "CannotMergeSpread"


class MergeTypeMismatch(MarginError):
    code = "MergeTypeMismatch"


class MergeProductMismatch(MarginError):
    code = "MergeProductMismatch"


class MergeExpiryMismatch(MarginError):
    code = "MergeExpiryMismatch"


class MergeAmountMismatch(MarginError):
    code = "MergeAmountMismatch"


class MergeWithSameStrike(MarginError):
    code = "MergeWithSameStrike"


class CanOnlySplitSpread(MarginError):
    code = "CanOnlySplitSpread"


# -- Health ------------------------------------------------------------------

class AccountUnderwater(MarginError):
    code = "AccountUnderwater"


class AccountIsHealthy(MarginError):
    code = "AccountIsHealthy"


class AccountNotEmpty(MarginError):
    code = "AccountNotEmpty"


class WrongRepayAmounts(MarginError):
    code = "WrongRepayAmounts"


# -- Access ------------------------------------------------------------------

class NoAccess(MarginError):
    code = "NoAccess"


class ReentrantCall(MarginError):
    code = "ReentrantCall"


class InvalidSignature(MarginError):
    code = "InvalidSignature"


# -- Settlement / prices -----------------------------------------------------

class NotExpired(MarginError):
    code = "NotExpired"


class PriceNotAvailable(MarginError):
    code = "PriceNotAvailable"


class StalePrice(MarginError):
    code = "StalePrice"


# -- Configuration -----------------------------------------------------------

class InvalidMarginParams(MarginError):
    code = "InvalidMarginParams"


class UnknownProduct(MarginError):
    code = "UnknownProduct"


# -- Kernel ------------------------------------------------------------------

class MarginInvariantError(MarginError):
    """Raised when a post-state violates one or more account invariants."""

    code = "invariant"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


class MarginOverflowError(MarginError):
    """Raised when a parameter or intermediate value leaves its integer domain."""

    code = "param_domain"
