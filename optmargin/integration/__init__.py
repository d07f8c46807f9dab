"""
Margin engine integration layer
"""

from .margin_engine import EngineConfig, MarginEngine
from .operations import (
    ActionArgs,
    action_to_json,
    parse_action,
    parse_actions,
)
from .signatures import (
    SignedBatch,
    parse_signed_batch,
    sign_batch,
    verify_signed_batch,
)

__all__ = [
    "EngineConfig",
    "MarginEngine",
    "ActionArgs",
    "action_to_json",
    "parse_action",
    "parse_actions",
    "SignedBatch",
    "parse_signed_batch",
    "sign_batch",
    "verify_signed_batch",
]
