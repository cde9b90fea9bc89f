"""
Type definitions for Solana State
"""

from .common import Network, DEFAULT_RPC_URLS, explorer_url
from .transaction import (
    TrackedTransaction,
    TransactionStatus,
    TransactionType,
    TERMINAL_STATUSES,
)
from .state import AccountInfo, CachedAccountState, CachedPrice, CachedSimulation

__all__ = [
    "Network",
    "DEFAULT_RPC_URLS",
    "explorer_url",
    "TrackedTransaction",
    "TransactionStatus",
    "TransactionType",
    "TERMINAL_STATUSES",
    "AccountInfo",
    "CachedAccountState",
    "CachedPrice",
    "CachedSimulation",
]
