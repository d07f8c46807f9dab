#!/usr/bin/env python3
"""
Quote the minimum collateral for a short position.

Reads assets/products/margin params from a YAML config (see
`optmargin.core.product_config`) and prints a JSON quote:

    python tools/margin_quote.py --config tools/margin.example.yaml --product 1:2:2 \
        --call 4000 --amount 1 --spot 3500 --expiry 1767225600 --now 1764547200

`--call SHORT[:LONG]` / `--put SHORT[:LONG]` take account-side strikes; the
optional LONG strike makes the side a spread. Prices and strikes are decimal
strike-asset values; amounts are option units.
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from optmargin.core.margin.errors import MarginError
from optmargin.core.margin.math import get_min_collateral, get_min_collateral_in_strike, get_time_decay
from optmargin.core.margin.types import MarginAccountDetail
from optmargin.core.position_key import UNIT
from optmargin.core.product_config import load_product_configs


class QuoteError(Exception):
    pass


def _to_units(text: str, *, name: str) -> int:
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise QuoteError(f"{name} must be a decimal number: {text!r}") from exc
    if value < 0:
        raise QuoteError(f"{name} must be non-negative")
    scaled = value * UNIT
    if scaled != scaled.to_integral_value():
        raise QuoteError(f"{name} has more than 6 decimals: {text!r}")
    return int(scaled)


def _parse_side(text: str | None, *, name: str) -> tuple[int, int]:
    if text is None:
        return 0, 0
    short, _, long = text.partition(":")
    return _to_units(short, name=name), (_to_units(long, name=name) if long else 0)


def _parse_product(text: str) -> tuple[int, int, int]:
    parts = text.split(":")
    if len(parts) != 3:
        raise QuoteError("--product must be UNDERLYING:STRIKE:COLLATERAL asset tags")
    try:
        u, s, c = (int(p) for p in parts)
    except ValueError as exc:
        raise QuoteError("--product tags must be ints") from exc
    return u, s, c


def quote(args: argparse.Namespace) -> dict:
    registry, store = load_product_configs(args.config)
    underlying, strike, collateral = _parse_product(args.product)
    product_id = registry.find_product(underlying, strike, collateral)
    params = store.get(product_id)

    short_call, long_call = _parse_side(args.call, name="--call")
    short_put, long_put = _parse_side(args.put, name="--put")
    amount = _to_units(args.amount, name="--amount")
    detail = MarginAccountDetail(
        call_amount=amount if short_call else 0,
        put_amount=amount if short_put else 0,
        short_call_strike=short_call,
        long_call_strike=long_call,
        short_put_strike=short_put,
        long_put_strike=long_put,
        expiry=args.expiry,
        product_id=product_id,
    )
    spot = _to_units(args.spot, name="--spot")
    collateral_price = _to_units(args.collateral_price, name="--collateral-price")
    return {
        "product_id": hex(product_id),
        "time_decay_bps": get_time_decay(args.expiry, args.now, params),
        "min_collateral_in_strike": get_min_collateral_in_strike(detail, spot, params, args.now),
        "min_collateral": get_min_collateral(detail, spot, collateral_price, params, now=args.now),
    }


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Quote minimum collateral for a short option position.")
    p.add_argument("--config", required=True, type=Path, help="Path to margin YAML config")
    p.add_argument("--product", required=True, help="UNDERLYING:STRIKE:COLLATERAL asset tags")
    p.add_argument("--call", help="Short call strike, optionally SHORT:LONG for a spread")
    p.add_argument("--put", help="Short put strike, optionally SHORT:LONG for a spread")
    p.add_argument("--amount", default="1", help="Option units (default: 1)")
    p.add_argument("--spot", required=True, help="Underlying spot price in the strike asset")
    p.add_argument("--collateral-price", default="0", help="Collateral price in the strike asset (if different)")
    p.add_argument("--expiry", required=True, type=int, help="Expiry (unix seconds)")
    p.add_argument("--now", required=True, type=int, help="Current time (unix seconds)")
    args = p.parse_args(argv)

    if args.call is None and args.put is None:
        p.error("at least one of --call/--put is required")

    try:
        out = quote(args)
    except (OSError, ValueError, QuoteError, MarginError) as exc:
        print(f"margin_quote error: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(out, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
