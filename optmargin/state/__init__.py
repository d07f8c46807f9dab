"""
State tables for the margin engine
"""

from .accounts import AccessTable, AccountTable
from .balances import ENGINE_HOLDER, BalanceTable
from .nonces import NonceTable
from .products import AssetInfo, ProductInfo, ProductRegistry

__all__ = [
    "AccessTable",
    "AccountTable",
    "BalanceTable",
    "ENGINE_HOLDER",
    "NonceTable",
    "AssetInfo",
    "ProductInfo",
    "ProductRegistry",
]
