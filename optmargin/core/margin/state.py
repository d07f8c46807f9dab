"""Account construction and serialization.

Round-trip property (tested): `account_from_dict(account_to_dict(a)) == a`.
"""

from __future__ import annotations

from typing import Any, Mapping

from .types import Account

# Auto-derived from Account field definitions (single source of truth).
ACCOUNT_FIELD_NAMES: tuple[str, ...] = tuple(Account.__dataclass_fields__)


def empty_account() -> Account:
    return Account()


def account_to_dict(account: Account) -> dict[str, int]:
    return {name: getattr(account, name) for name in ACCOUNT_FIELD_NAMES}


def account_from_dict(d: Mapping[str, Any]) -> Account:
    """Deserialize a dict to an Account. Raises KeyError on missing fields."""
    kwargs: dict[str, int] = {}
    for name in ACCOUNT_FIELD_NAMES:
        val = d[name]
        if not isinstance(val, int) or isinstance(val, bool):
            raise TypeError(f"account field {name!r} must be int, got {type(val).__name__}")
        if val < 0:
            raise ValueError(f"account field {name!r} must be non-negative")
        kwargs[name] = int(val)
    return Account(**kwargs)
