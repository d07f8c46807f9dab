"""
Deterministic canonical encoding primitives.

Used for signing batch envelopes and for digesting committed engine state.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Iterable, Mapping, Tuple


CANONICAL_ENCODING_VERSION = 1

_HEX_CHARS_RE = re.compile(r"^[0-9a-fA-F]+$")


def _reject_floats(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError("floats are not allowed in canonical encoding")
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError("dict keys must be str for canonical encoding")
            _reject_floats(v)
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _reject_floats(item)


def canonical_json_bytes(value: Any) -> bytes:
    """
    Canonical JSON encoding for hashing/signing.

    Rules:
    - UTF-8, sort_keys=True, no whitespace
    - allow_nan=False
    - floats rejected (position keys and amounts are ints)
    """
    _reject_floats(value)
    text = json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return text.encode("utf-8")


def sha256_hex(data: bytes) -> str:
    return "0x" + hashlib.sha256(data).hexdigest()


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """
    Create a domain separation prefix.

    ASCII-only and NUL-terminated so concatenation is unambiguous.
    """
    if not isinstance(label, str) or not label:
        raise TypeError("label must be a non-empty str")
    if "\x00" in label:
        raise ValueError("label must not contain NUL")
    try:
        label_bytes = label.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ValueError("label must be ASCII") from exc
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return b"optmargin:" + label_bytes + b":v" + str(version).encode("ascii") + b"\x00"


def hex_to_bytes_fixed(hex_str: str, *, nbytes: int, name: str) -> bytes:
    """Decode a hex string (optional 0x prefix) of exactly `nbytes` bytes."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str")
    s = hex_str.strip()
    if s.lower().startswith("0x"):
        s = s[2:]
    if len(s) != 2 * nbytes:
        raise ValueError(f"{name} must be {nbytes} bytes (hex length {2 * nbytes})")
    if not _HEX_CHARS_RE.fullmatch(s):
        raise ValueError(f"{name} must be valid hex")
    return bytes.fromhex(s)


def canonical_hex_fixed_allow_0x(hex_str: str, *, nbytes: int, name: str) -> str:
    """Canonicalize a fixed-size hex string (lowercase, 0x-prefixed)."""
    return "0x" + hex_to_bytes_fixed(hex_str, nbytes=nbytes, name=name).hex()


def state_digest(
    accounts_json: Mapping[str, Mapping[str, int]],
    *,
    collateral: Iterable[Tuple[Tuple[str, int], int]],
    options: Iterable[Tuple[Tuple[str, int], int]],
) -> str:
    """Digest of committed accounts plus both custody tables.

    Balance rows are `((holder, asset), amount)` as returned by
    `BalanceTable.sorted_items()`; they are re-sorted here.
    """
    payload = {
        "version": CANONICAL_ENCODING_VERSION,
        "accounts": {aid: dict(fields) for aid, fields in accounts_json.items()},
        "collateral": sorted([h, a, amt] for (h, a), amt in collateral),
        "options": sorted([h, a, amt] for (h, a), amt in options),
    }
    return sha256_hex(domain_sep_bytes("state") + canonical_json_bytes(payload))
