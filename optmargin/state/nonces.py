"""
Nonce table for signed batch replay protection.

We track, per signer pubkey, the last accepted batch nonce. Policy: strict
sequential nonces (next accepted nonce is last + 1).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping

from .canonical import canonical_hex_fixed_allow_0x

PUBKEY_BYTES = 48
MAX_NONCE = 0xFFFFFFFF


@dataclass
class NonceTable:
    """Mutable mapping: signer_pubkey -> last_used_nonce."""

    _last: Dict[str, int] = field(default_factory=dict)

    def get_last(self, pubkey: str) -> int:
        pk = canonical_hex_fixed_allow_0x(pubkey, nbytes=PUBKEY_BYTES, name="pubkey")
        return self._last.get(pk, 0)

    def expected_next(self, pubkey: str) -> int:
        return self.get_last(pubkey) + 1

    def set_last(self, pubkey: str, last_nonce: int) -> None:
        if not isinstance(last_nonce, int) or isinstance(last_nonce, bool) or last_nonce < 0:
            raise TypeError("last_nonce must be a non-negative int")
        if last_nonce > MAX_NONCE:
            raise TypeError("last_nonce must fit in u32")
        pk = canonical_hex_fixed_allow_0x(pubkey, nbytes=PUBKEY_BYTES, name="pubkey")
        self._last[pk] = int(last_nonce)

    def get_all(self) -> Mapping[str, int]:
        return dict(self._last)
