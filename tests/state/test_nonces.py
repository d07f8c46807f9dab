"""Tests for optmargin/state/nonces.py and optmargin/state/canonical.py."""

from __future__ import annotations

import pytest

from optmargin.state.canonical import (
    canonical_json_bytes,
    domain_sep_bytes,
    hex_to_bytes_fixed,
    state_digest,
)
from optmargin.state.nonces import NonceTable

PK = "0x" + "ab" * 48


def test_nonce_sequence_and_canonical_keys() -> None:
    t = NonceTable()
    assert t.expected_next(PK) == 1
    t.set_last(PK.upper().replace("0X", "0x"), 1)
    assert t.get_last(PK) == 1
    assert t.expected_next(PK[2:]) == 2
    assert t.get_all() == {PK: 1}


def test_nonce_bounds() -> None:
    t = NonceTable()
    with pytest.raises(TypeError):
        t.set_last(PK, -1)
    with pytest.raises(TypeError):
        t.set_last(PK, 1 << 32)
    with pytest.raises(ValueError):
        t.get_last("0x1234")


def test_canonical_json_sorted_and_compact() -> None:
    assert canonical_json_bytes({"b": 1, "a": [2, 3]}) == b'{"a":[2,3],"b":1}'
    with pytest.raises(TypeError):
        canonical_json_bytes({"a": 1.5})


def test_domain_sep() -> None:
    assert domain_sep_bytes("batch_sig:test") == b"optmargin:batch_sig:test:v1\x00"
    with pytest.raises(ValueError):
        domain_sep_bytes("bad\x00label")


def test_hex_fixed() -> None:
    assert hex_to_bytes_fixed("0x0102", nbytes=2, name="x") == b"\x01\x02"
    with pytest.raises(ValueError):
        hex_to_bytes_fixed("0x01", nbytes=2, name="x")


def test_state_digest_is_order_independent() -> None:
    a = {"x": {"collateral_amount": 1}, "y": {"collateral_amount": 2}}
    b = {"y": {"collateral_amount": 2}, "x": {"collateral_amount": 1}}
    rows = [(("alice", 2), 5), (("engine", 2), 7)]
    d = state_digest(a, collateral=rows, options=[])
    assert d == state_digest(b, collateral=list(reversed(rows)), options=[])
    assert d.startswith("0x")


def test_state_digest_covers_custody() -> None:
    accounts = {"x": {"collateral_amount": 1}}
    before = state_digest(accounts, collateral=[(("alice", 2), 5)], options=[])
    after = state_digest(accounts, collateral=[(("bob", 2), 5)], options=[])
    assert before != after
    assert before != state_digest(accounts, collateral=[(("alice", 2), 5)], options=[(("alice", 9), 1)])
