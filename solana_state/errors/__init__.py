"""
Error definitions for Solana State
"""

from .exceptions import (
    ErrorCode,
    SolanaStateError,
    RpcError,
    TransactionError,
    PriceError,
    StorageError,
    ConfigurationError,
)

__all__ = [
    "ErrorCode",
    "SolanaStateError",
    "RpcError",
    "TransactionError",
    "PriceError",
    "StorageError",
    "ConfigurationError",
]
