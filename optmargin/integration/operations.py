"""
Batch action envelopes.

A batch is a list of `ActionArgs(action, payload)`. The selector is parsed up
front; each payload is decoded only by the handler of its action (see the
`decode_*` functions), so a malformed payload fails exactly when its action
runs. Unknown selectors and unknown payload fields are rejected.

JSON form of one entry:

    {"action": "MintShort", "token_id": "0x01...", "amount": 1000000, "recipient": "alice"}

Position keys may be given as ints or 0x-prefixed hex strings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..core.margin.types import Action
from ..core.position_key import PositionKind


def _require_str(value: Any, *, name: str, max_len: int = 256) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    if not value:
        raise ValueError(f"{name} must be non-empty")
    if len(value) > max_len:
        raise ValueError(f"{name} too large")
    return value


def _require_int(value: Any, *, name: str, positive: bool = False) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an int")
    if positive and value <= 0:
        raise ValueError(f"{name} must be positive")
    return int(value)


def _require_key(value: Any, *, name: str) -> int:
    if isinstance(value, str):
        s = value.strip()
        if not s.lower().startswith("0x"):
            raise ValueError(f"{name} hex string must be 0x-prefixed")
        try:
            return int(s, 16)
        except ValueError as exc:
            raise ValueError(f"{name} must be valid hex") from exc
    return _require_int(value, name=name, positive=True)


def _require_kind(value: Any, *, name: str) -> PositionKind:
    if isinstance(value, str):
        try:
            return PositionKind[value.upper()]
        except KeyError as exc:
            raise ValueError(f"{name} unknown kind {value!r}") from exc
    try:
        return PositionKind(_require_int(value, name=name))
    except ValueError as exc:
        raise ValueError(f"{name} unknown kind {value!r}") from exc


def _check_fields(payload: Mapping[str, Any], allowed: set[str], *, action: Action) -> None:
    extra = set(payload) - allowed
    if extra:
        raise ValueError(f"{action.value}: unknown fields {sorted(extra)}")


@dataclass(frozen=True)
class ActionArgs:
    action: Action
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AddCollateralArgs:
    from_: str
    collateral_id: int
    amount: int


@dataclass(frozen=True)
class RemoveCollateralArgs:
    collateral_id: int
    amount: int
    recipient: str


@dataclass(frozen=True)
class MintShortArgs:
    token_id: int
    amount: int
    recipient: str


@dataclass(frozen=True)
class BurnShortArgs:
    token_id: int
    amount: int
    from_: str


@dataclass(frozen=True)
class MergeArgs:
    token_id: int
    amount: int
    from_: str


@dataclass(frozen=True)
class SplitArgs:
    kind: PositionKind
    recipient: str


def decode_add_collateral(payload: Mapping[str, Any]) -> AddCollateralArgs:
    _check_fields(payload, {"from", "collateral_id", "amount"}, action=Action.ADD_COLLATERAL)
    return AddCollateralArgs(
        from_=_require_str(payload.get("from"), name="from"),
        collateral_id=_require_int(payload.get("collateral_id"), name="collateral_id", positive=True),
        amount=_require_int(payload.get("amount"), name="amount", positive=True),
    )


def decode_remove_collateral(payload: Mapping[str, Any]) -> RemoveCollateralArgs:
    _check_fields(payload, {"collateral_id", "amount", "recipient"}, action=Action.REMOVE_COLLATERAL)
    return RemoveCollateralArgs(
        collateral_id=_require_int(payload.get("collateral_id"), name="collateral_id", positive=True),
        amount=_require_int(payload.get("amount"), name="amount", positive=True),
        recipient=_require_str(payload.get("recipient"), name="recipient"),
    )


def decode_mint_short(payload: Mapping[str, Any]) -> MintShortArgs:
    _check_fields(payload, {"token_id", "amount", "recipient"}, action=Action.MINT_SHORT)
    return MintShortArgs(
        token_id=_require_key(payload.get("token_id"), name="token_id"),
        amount=_require_int(payload.get("amount"), name="amount", positive=True),
        recipient=_require_str(payload.get("recipient"), name="recipient"),
    )


def decode_burn_short(payload: Mapping[str, Any]) -> BurnShortArgs:
    _check_fields(payload, {"token_id", "amount", "from"}, action=Action.BURN_SHORT)
    return BurnShortArgs(
        token_id=_require_key(payload.get("token_id"), name="token_id"),
        amount=_require_int(payload.get("amount"), name="amount", positive=True),
        from_=_require_str(payload.get("from"), name="from"),
    )


def decode_merge(payload: Mapping[str, Any]) -> MergeArgs:
    _check_fields(payload, {"token_id", "amount", "from"}, action=Action.MERGE)
    return MergeArgs(
        token_id=_require_key(payload.get("token_id"), name="token_id"),
        amount=_require_int(payload.get("amount"), name="amount", positive=True),
        from_=_require_str(payload.get("from"), name="from"),
    )


def decode_split(payload: Mapping[str, Any]) -> SplitArgs:
    _check_fields(payload, {"kind", "recipient"}, action=Action.SPLIT)
    return SplitArgs(
        kind=_require_kind(payload.get("kind"), name="kind"),
        recipient=_require_str(payload.get("recipient"), name="recipient"),
    )


def decode_settle(payload: Mapping[str, Any]) -> None:
    _check_fields(payload, set(), action=Action.SETTLE)


def parse_action(entry: Any) -> ActionArgs:
    if not isinstance(entry, Mapping):
        raise ValueError(f"action entry must be an object, got {type(entry).__name__}")
    selector = _require_str(entry.get("action"), name="action")
    try:
        action = Action(selector)
    except ValueError as exc:
        raise ValueError(f"unknown action {selector!r}") from exc
    payload: Dict[str, Any] = {k: v for k, v in entry.items() if k != "action"}
    for k in payload:
        if not isinstance(k, str):
            raise ValueError("action payload keys must be strings")
    return ActionArgs(action=action, payload=payload)


def parse_actions(data: Any, *, max_actions: int = 64) -> List[ActionArgs]:
    """Parse a JSON-like list of action entries."""
    if not isinstance(data, list):
        raise ValueError(f"actions must be a list, got {type(data).__name__}")
    if len(data) > max_actions:
        raise ValueError(f"too many actions: {len(data)} > {max_actions}")
    out: List[ActionArgs] = []
    for i, entry in enumerate(data):
        try:
            out.append(parse_action(entry))
        except ValueError as e:
            raise ValueError(f"Failed to parse action {i}: {e}") from e
    return out


def action_to_json(args: ActionArgs) -> Dict[str, Any]:
    """Canonical JSON form of a parsed action (keys as hex, kinds by name)."""
    out: Dict[str, Any] = {"action": args.action.value}
    for k, v in args.payload.items():
        if k == "token_id":
            out[k] = hex(_require_key(v, name=k))
        elif k == "kind":
            out[k] = _require_kind(v, name=k).name
        else:
            out[k] = v
    return out
