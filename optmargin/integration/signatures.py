"""
Signed batch envelopes (BLS12-381, min-pubkey-size scheme).

A signed batch binds an account id, a list of actions, the signer pubkey and a
strictly sequential nonce. The signed message is

    sha256(domain_sep("batch_sig:<chain_id>") || canonical_json(signing_dict))

where actions are rendered in their canonical JSON form so that equivalent
encodings (int vs hex keys, kind names vs numbers) sign identically.

Verification is fail-closed: the nonce is consumed only after the signature
checks out.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Dict, List

from py_ecc.bls import G2Basic

from ..core.margin.errors import InvalidSignature
from ..state.canonical import (
    canonical_hex_fixed_allow_0x,
    canonical_json_bytes,
    domain_sep_bytes,
    hex_to_bytes_fixed,
)
from ..state.nonces import MAX_NONCE, PUBKEY_BYTES, NonceTable
from .operations import ActionArgs, action_to_json, parse_actions

SIGNATURE_BYTES = 96
SIGNED_BATCH_VERSION = 1


@dataclass(frozen=True)
class SignedBatch:
    account_id: str
    signer_pubkey: str
    nonce: int
    actions: List[ActionArgs]
    signature: str


def batch_signing_dict(
    *,
    account_id: str,
    actions: Sequence[ActionArgs],
    signer_pubkey: str,
    nonce: int,
) -> Dict[str, Any]:
    return {
        "version": SIGNED_BATCH_VERSION,
        "account_id": account_id,
        "signer_pubkey": canonical_hex_fixed_allow_0x(signer_pubkey, nbytes=PUBKEY_BYTES, name="signer_pubkey"),
        "nonce": int(nonce),
        "actions": [action_to_json(a) for a in actions],
    }


def batch_message_hash(chain_id: str, signing_dict: Mapping[str, Any]) -> bytes:
    msg = domain_sep_bytes(f"batch_sig:{chain_id}", version=1) + canonical_json_bytes(dict(signing_dict))
    return hashlib.sha256(msg).digest()


def sign_batch(
    secret_key: int,
    *,
    chain_id: str,
    account_id: str,
    actions: Sequence[ActionArgs],
    nonce: int,
) -> SignedBatch:
    """Sign a batch with a BLS secret key (see `G2Basic.KeyGen`)."""
    pubkey = "0x" + bytes(G2Basic.SkToPk(secret_key)).hex()
    signing = batch_signing_dict(account_id=account_id, actions=actions, signer_pubkey=pubkey, nonce=nonce)
    sig = G2Basic.Sign(secret_key, batch_message_hash(chain_id, signing))
    return SignedBatch(
        account_id=account_id,
        signer_pubkey=pubkey,
        nonce=nonce,
        actions=list(actions),
        signature="0x" + bytes(sig).hex(),
    )


def parse_signed_batch(data: Any, *, max_actions: int = 64) -> SignedBatch:
    """Decode `{account_id, signer_pubkey, nonce, actions, signature}`."""
    if not isinstance(data, Mapping):
        raise ValueError("signed batch must be an object")
    extra = set(data) - {"account_id", "signer_pubkey", "nonce", "actions", "signature"}
    if extra:
        raise ValueError(f"signed batch: unknown fields {sorted(extra)}")
    account_id = data.get("account_id")
    if not isinstance(account_id, str) or not account_id:
        raise ValueError("account_id must be a non-empty string")
    nonce = data.get("nonce")
    if not isinstance(nonce, int) or isinstance(nonce, bool) or not 0 < nonce <= MAX_NONCE:
        raise ValueError("nonce must be an int in 1..2^32-1")
    signer_pubkey = data.get("signer_pubkey")
    signature = data.get("signature")
    if not isinstance(signer_pubkey, str) or not isinstance(signature, str):
        raise ValueError("signer_pubkey and signature must be hex strings")
    return SignedBatch(
        account_id=account_id,
        signer_pubkey=signer_pubkey,
        nonce=nonce,
        actions=parse_actions(data.get("actions"), max_actions=max_actions),
        signature=signature,
    )


def verify_signed_batch(batch: SignedBatch, *, chain_id: str, nonces: NonceTable) -> str:
    """Verify `batch` and consume its nonce. Returns the canonical signer pubkey.

    Raises:
        InvalidSignature: malformed key/signature, wrong nonce, or failed check.
    """
    try:
        signer = canonical_hex_fixed_allow_0x(batch.signer_pubkey, nbytes=PUBKEY_BYTES, name="signer_pubkey")
        pubkey_bytes = hex_to_bytes_fixed(batch.signer_pubkey, nbytes=PUBKEY_BYTES, name="signer_pubkey")
        sig_bytes = hex_to_bytes_fixed(batch.signature, nbytes=SIGNATURE_BYTES, name="signature")
    except (TypeError, ValueError) as exc:
        raise InvalidSignature(str(exc)) from exc

    # Nonce policy first (cheap); consumed only after the signature verifies.
    expected = nonces.expected_next(signer)
    if batch.nonce != expected:
        raise InvalidSignature(f"nonce invalid: got {batch.nonce}, expected {expected}")

    signing = batch_signing_dict(
        account_id=batch.account_id,
        actions=batch.actions,
        signer_pubkey=signer,
        nonce=batch.nonce,
    )
    try:
        ok = bool(G2Basic.Verify(pubkey_bytes, batch_message_hash(chain_id, signing), sig_bytes))
    except (ValueError, AssertionError) as exc:
        raise InvalidSignature(f"signature verification error: {exc}") from exc
    if not ok:
        raise InvalidSignature("invalid signature")

    nonces.set_last(signer, batch.nonce)
    return signer
