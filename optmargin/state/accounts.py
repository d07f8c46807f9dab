"""
Persisted margin accounts and their access relation.

`AccountTable` maps an opaque account id to its committed `Account`. Missing
accounts read as the empty account, so accounts are created implicitly on
first write. `AccessTable` stores the explicit owner / delegate relation that
the orchestrator checks before mutating an account.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping

from ..core.margin.errors import NoAccess
from ..core.margin.state import account_to_dict
from ..core.margin.types import Account

AccountId = str
Holder = str


@dataclass
class AccountTable:
    """Mutable mapping: account_id -> Account. Empty accounts are not stored."""

    _accounts: Dict[AccountId, Account] = field(default_factory=dict)

    def get(self, account_id: AccountId) -> Account:
        return self._accounts.get(account_id, Account())

    def put(self, account_id: AccountId, account: Account) -> None:
        if account.is_empty:
            self._accounts.pop(account_id, None)
        else:
            self._accounts[account_id] = account

    def get_all(self) -> Mapping[AccountId, Account]:
        # Shallow copy to avoid accidental mutation during iteration.
        return dict(self._accounts)

    def to_json_dict(self) -> dict[str, dict[str, int]]:
        return {aid: account_to_dict(self._accounts[aid]) for aid in sorted(self._accounts)}


@dataclass
class AccountAccess:
    owner: Holder
    # operator -> remaining batch executions
    operators: Dict[Holder, int] = field(default_factory=dict)


@dataclass
class AccessTable:
    """
    Owner and delegate relation per account.

    The first caller to open an account becomes its owner. Delegates carry a
    remaining execution count; each batch they execute consumes one.
    """

    _access: Dict[AccountId, AccountAccess] = field(default_factory=dict)

    def owner_of(self, account_id: AccountId) -> Holder | None:
        entry = self._access.get(account_id)
        return None if entry is None else entry.owner

    def open(self, account_id: AccountId, owner: Holder) -> None:
        if account_id in self._access:
            raise NoAccess(f"account {account_id!r} already has an owner")
        self._access[account_id] = AccountAccess(owner=owner)

    def allowed_executions(self, account_id: AccountId, operator: Holder) -> int:
        entry = self._access.get(account_id)
        if entry is None:
            return 0
        return entry.operators.get(operator, 0)

    def set_access(self, account_id: AccountId, caller: Holder, operator: Holder, executions: int) -> None:
        """Grant `operator` `executions` batches on the account (0 revokes). Owner only."""
        if not isinstance(executions, int) or isinstance(executions, bool) or executions < 0:
            raise ValueError("executions must be a non-negative int")
        entry = self._access.get(account_id)
        if entry is None or entry.owner != caller:
            raise NoAccess(f"{caller!r} does not own account {account_id!r}")
        if executions == 0:
            entry.operators.pop(operator, None)
        else:
            entry.operators[operator] = executions

    def can_execute(self, account_id: AccountId, caller: Holder) -> bool:
        """Capability predicate: owner (or anyone, for an unowned account) or a live delegate."""
        entry = self._access.get(account_id)
        if entry is None:
            return True
        if entry.owner == caller:
            return True
        return entry.operators.get(caller, 0) > 0

    def consume(self, account_id: AccountId, caller: Holder) -> None:
        """Record one executed batch. Opens unowned accounts for `caller`."""
        entry = self._access.get(account_id)
        if entry is None:
            self.open(account_id, caller)
            return
        if entry.owner == caller:
            return
        left = entry.operators.get(caller, 0)
        if left <= 0:
            raise NoAccess(f"{caller!r} has no executions left on {account_id!r}")
        if left == 1:
            entry.operators.pop(caller)
        else:
            entry.operators[caller] = left - 1
