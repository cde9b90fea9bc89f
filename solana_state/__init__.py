"""
Solana State - client-side transaction tracking and on-chain state caches

Provides:
- TransactionLedger: tracks submitted transactions to finality, failure or timeout
- StateCache: account state with push subscriptions and slot-monotonic updates
- PriceCache: token prices with periodic refresh
- SimulationCache: memoized simulateTransaction results

Every cache key is namespaced by network ("<network>:<...>") and switching
network tears down the old namespace before the new one is used.
"""

from .client import StateClient
from .types import (
    Network,
    TrackedTransaction,
    TransactionStatus,
    TransactionType,
    AccountInfo,
    CachedAccountState,
    CachedPrice,
    CachedSimulation,
    explorer_url,
)
from .errors import (
    ErrorCode,
    SolanaStateError,
    RpcError,
    TransactionError,
    PriceError,
    StorageError,
    ConfigurationError,
)
from .cache import TtlCache
from .infra import RpcClient, RpcClientConfig, MemoryStorage, JsonFileStorage
from .modules import (
    TransactionLedger,
    StateCache,
    PriceCache,
    JupiterPriceSource,
    SimulationCache,
    canonicalize_transaction,
    hash_transaction,
)
from .config import setup_logging, enable_file_logging

__all__ = [
    # Client
    "StateClient",
    # Modules
    "TransactionLedger",
    "StateCache",
    "PriceCache",
    "JupiterPriceSource",
    "SimulationCache",
    "canonicalize_transaction",
    "hash_transaction",
    # Infrastructure
    "TtlCache",
    "RpcClient",
    "RpcClientConfig",
    "MemoryStorage",
    "JsonFileStorage",
    # Types
    "Network",
    "TrackedTransaction",
    "TransactionStatus",
    "TransactionType",
    "AccountInfo",
    "CachedAccountState",
    "CachedPrice",
    "CachedSimulation",
    "explorer_url",
    # Errors
    "ErrorCode",
    "SolanaStateError",
    "RpcError",
    "TransactionError",
    "PriceError",
    "StorageError",
    "ConfigurationError",
    # Logging
    "setup_logging",
    "enable_file_logging",
]

__version__ = "0.1.0"
