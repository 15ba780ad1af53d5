"""NEAR settlement mechanisms.

Sub-packages:
    escrow:  two-leg USDT escrow release
    funding: implicit-account funding relay
"""

from veridoc.mechanisms.near.constants import (
    CHAIN_TYPE_NEAR,
    NEAR_MAINNET,
    NEAR_TESTNET,
    USDT_DECIMALS,
)
from veridoc.mechanisms.near.utils import (
    is_implicit_account_id,
    is_near_network,
    is_valid_account_id,
    normalize_account_id,
)

__all__ = [
    "CHAIN_TYPE_NEAR",
    "NEAR_MAINNET",
    "NEAR_TESTNET",
    "USDT_DECIMALS",
    "is_implicit_account_id",
    "is_near_network",
    "is_valid_account_id",
    "normalize_account_id",
]
