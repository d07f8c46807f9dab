"""
Position key codec (deterministic, integer-only).

A position key packs one option series into a single non-negative integer:

    layout_version (8) | kind (8) | product_id (32) | expiry (64) | long_strike (64) | short_strike (64)

from the most significant bit down (240 bits total, fits one 256-bit word).
Strikes are fixed-point with `UNIT_DECIMALS` decimals. `expiry` is unix seconds.

The fields describe the token holder's view: the holder of a `CALL_SPREAD`
key `(long_strike=L, short_strike=S)` is long the L call and short the S call.
The account that minted the key carries the opposite legs.

Product ids pack four u8 fields:

    underlying (8) | strike (8) | collateral (8) | collateral_decimals (8)

Round-trip property (tested): `decode(encode(...))` returns the encoded fields.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum, unique


UNIT_DECIMALS: int = 6
UNIT: int = 10**UNIT_DECIMALS

KEY_LAYOUT_VERSION: int = 1

_U8_MAX = (1 << 8) - 1
_U32_MAX = (1 << 32) - 1
_U64_MAX = (1 << 64) - 1

_SHORT_STRIKE_SHIFT = 0
_LONG_STRIKE_SHIFT = 64
_EXPIRY_SHIFT = 128
_PRODUCT_SHIFT = 192
_KIND_SHIFT = 224
_VERSION_SHIFT = 232

KEY_BITS: int = 240


@unique
class PositionKind(IntEnum):
    """Option series kind. Zero is reserved for "no key"."""

    CALL = 1
    PUT = 2
    CALL_SPREAD = 3
    PUT_SPREAD = 4

    @property
    def is_spread(self) -> bool:
        return self in (PositionKind.CALL_SPREAD, PositionKind.PUT_SPREAD)

    @property
    def is_call_side(self) -> bool:
        return self in (PositionKind.CALL, PositionKind.CALL_SPREAD)

    def to_spread(self) -> "PositionKind":
        if self is PositionKind.CALL:
            return PositionKind.CALL_SPREAD
        if self is PositionKind.PUT:
            return PositionKind.PUT_SPREAD
        raise ValueError(f"{self.name} is already a spread kind")

    def to_vanilla(self) -> "PositionKind":
        if self is PositionKind.CALL_SPREAD:
            return PositionKind.CALL
        if self is PositionKind.PUT_SPREAD:
            return PositionKind.PUT
        raise ValueError(f"{self.name} is already a vanilla kind")


@dataclass(frozen=True)
class PositionKey:
    """Decoded view of a position key."""

    kind: PositionKind
    product_id: int
    expiry: int
    long_strike: int
    short_strike: int = 0

    def encode(self) -> int:
        return encode(self.kind, self.product_id, self.expiry, self.long_strike, self.short_strike)

    def is_compatible(self, other: "PositionKey") -> bool:
        """True when both keys agree on kind, product and expiry."""
        return (
            self.kind == other.kind
            and self.product_id == other.product_id
            and self.expiry == other.expiry
        )


@dataclass(frozen=True)
class ProductFields:
    underlying: int
    strike: int
    collateral: int
    collateral_decimals: int


def _require_uint(value: int, *, bits_max: int, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0 or value > bits_max:
        raise ValueError(f"{name} out of range: {value}")
    return int(value)


# -- Product ids --------------------------------------------------------------

def encode_product(underlying: int, strike: int, collateral: int, collateral_decimals: int) -> int:
    """Pack the asset tags and collateral decimals into a 32-bit product id."""
    u = _require_uint(underlying, bits_max=_U8_MAX, name="underlying")
    s = _require_uint(strike, bits_max=_U8_MAX, name="strike")
    c = _require_uint(collateral, bits_max=_U8_MAX, name="collateral")
    d = _require_uint(collateral_decimals, bits_max=_U8_MAX, name="collateral_decimals")
    return (u << 24) | (s << 16) | (c << 8) | d


def decode_product(product_id: int) -> ProductFields:
    pid = _require_uint(product_id, bits_max=_U32_MAX, name="product_id")
    return ProductFields(
        underlying=(pid >> 24) & _U8_MAX,
        strike=(pid >> 16) & _U8_MAX,
        collateral=(pid >> 8) & _U8_MAX,
        collateral_decimals=pid & _U8_MAX,
    )


def collateral_of(product_id: int) -> int:
    """Collateral asset tag implied by a product id."""
    return decode_product(product_id).collateral


# -- Position keys ------------------------------------------------------------

def encode(
    kind: PositionKind | int,
    product_id: int,
    expiry: int,
    long_strike: int,
    short_strike: int = 0,
) -> int:
    """Pack position fields into a key. Raises ValueError on out-of-range fields."""
    try:
        k = PositionKind(kind)
    except ValueError as exc:
        raise ValueError(f"unknown position kind: {kind!r}") from exc
    pid = _require_uint(product_id, bits_max=_U32_MAX, name="product_id")
    exp = _require_uint(expiry, bits_max=_U64_MAX, name="expiry")
    lo = _require_uint(long_strike, bits_max=_U64_MAX, name="long_strike")
    sh = _require_uint(short_strike, bits_max=_U64_MAX, name="short_strike")
    return (
        (KEY_LAYOUT_VERSION << _VERSION_SHIFT)
        | (int(k) << _KIND_SHIFT)
        | (pid << _PRODUCT_SHIFT)
        | (exp << _EXPIRY_SHIFT)
        | (lo << _LONG_STRIKE_SHIFT)
        | (sh << _SHORT_STRIKE_SHIFT)
    )


def _check_version(key: int) -> None:
    if not isinstance(key, int) or isinstance(key, bool):
        raise TypeError("key must be an int")
    if key < 0 or key >> KEY_BITS:
        raise ValueError(f"key out of range: {key:#x}")
    version = (key >> _VERSION_SHIFT) & _U8_MAX
    if version != KEY_LAYOUT_VERSION:
        raise ValueError(f"unsupported key layout version: {version}")


def decode(key: int) -> PositionKey:
    _check_version(key)
    return PositionKey(
        kind=PositionKind((key >> _KIND_SHIFT) & _U8_MAX),
        product_id=(key >> _PRODUCT_SHIFT) & _U32_MAX,
        expiry=(key >> _EXPIRY_SHIFT) & _U64_MAX,
        long_strike=(key >> _LONG_STRIKE_SHIFT) & _U64_MAX,
        short_strike=(key >> _SHORT_STRIKE_SHIFT) & _U64_MAX,
    )


def decode_kind(key: int) -> PositionKind:
    """Cheap partial decode: the kind only."""
    _check_version(key)
    return PositionKind((key >> _KIND_SHIFT) & _U8_MAX)


def to_spread(key: int, second_strike: int) -> int:
    """Turn a vanilla key into the spread key carrying `second_strike`."""
    pk = decode(key)
    return replace(pk, kind=pk.kind.to_spread(), short_strike=second_strike).encode()


def to_vanilla(key: int) -> int:
    """Drop the second strike of a spread key."""
    pk = decode(key)
    return replace(pk, kind=pk.kind.to_vanilla(), short_strike=0).encode()
