"""
Custody balances for collateral assets and option tokens.

Implements BalanceTable[Holder, AssetKey] -> Amount. The same table type is
used twice by the orchestrator: once keyed by collateral asset tag, once keyed
by option position key.
"""

from typing import Dict, Tuple


# Type aliases
Holder = str  # owner / operator / engine identifier
AssetKey = int  # collateral asset tag or encoded position key
Amount = int  # Non-negative integer (arbitrary precision)

# Custody account of the margin engine itself
ENGINE_HOLDER = "engine"


class BalanceTable:
    """
    Balance table mapping (holder, asset) -> amount.

    Zero balances are not stored. Callers that need deterministic ordering
    sort keys explicitly (see `sorted_items`).
    """

    def __init__(self):
        self._balances: Dict[Tuple[Holder, AssetKey], Amount] = {}

    def get(self, holder: Holder, asset: AssetKey) -> Amount:
        """Get balance for (holder, asset). Returns 0 if not found."""
        return self._balances.get((holder, asset), 0)

    def set(self, holder: Holder, asset: AssetKey, amount: Amount) -> None:
        """
        Set balance for (holder, asset).

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop((holder, asset), None)
        else:
            self._balances[(holder, asset)] = amount

    def add(self, holder: Holder, asset: AssetKey, delta: Amount) -> None:
        """
        Add delta to balance (delta may be negative).

        Raises:
            ValueError: If resulting balance would be negative
        """
        current = self.get(holder, asset)
        new_balance = current + delta
        if new_balance < 0:
            raise ValueError(
                f"Insufficient balance: {current} + {delta} = {new_balance} < 0"
            )
        self.set(holder, asset, new_balance)

    def subtract(self, holder: Holder, asset: AssetKey, delta: Amount) -> None:
        if delta < 0:
            raise ValueError(f"Delta must be non-negative: {delta}")
        self.add(holder, asset, -delta)

    def transfer(self, src: Holder, dst: Holder, asset: AssetKey, amount: Amount) -> None:
        """Move `amount` from `src` to `dst`. Checks the source before touching either side."""
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative: {amount}")
        if self.get(src, asset) < amount:
            raise ValueError(f"Insufficient balance for transfer: {src} has {self.get(src, asset)} < {amount}")
        self.subtract(src, asset, amount)
        self.add(dst, asset, amount)

    def snapshot(self) -> Dict[Tuple[Holder, AssetKey], Amount]:
        return dict(self._balances)

    def restore(self, snapshot: Dict[Tuple[Holder, AssetKey], Amount]) -> None:
        self._balances = dict(snapshot)

    def sorted_items(self) -> list[Tuple[Tuple[Holder, AssetKey], Amount]]:
        return sorted(self._balances.items())
