"""
Core margin algorithms: position key codec, risk model, account ledger
"""

from .oracle import PriceOracle, PriceQuote, StaticPriceOracle, is_fresh
from .position_key import (
    UNIT,
    UNIT_DECIMALS,
    PositionKey,
    PositionKind,
    decode,
    decode_kind,
    decode_product,
    encode,
    encode_product,
)

__all__ = [
    "PriceOracle",
    "PriceQuote",
    "StaticPriceOracle",
    "is_fresh",
    "UNIT",
    "UNIT_DECIMALS",
    "PositionKey",
    "PositionKind",
    "decode",
    "decode_kind",
    "decode_product",
    "encode",
    "encode_product",
]
