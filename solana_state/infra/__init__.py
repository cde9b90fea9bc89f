"""
Infrastructure layer for Solana State

Provides:
- RpcClient: async JSON-RPC wrapper with retry logic and account subscriptions
- KeyValueStorage: durable storage for the transaction ledger
- ListenerRegistry / PeriodicTask: observer and timer plumbing
"""

from .rpc import RpcClient, RpcClientConfig, RpcConnection, MAX_MULTIPLE_ACCOUNTS
from .storage import KeyValueStorage, MemoryStorage, JsonFileStorage
from .tasks import ListenerRegistry, PeriodicTask

__all__ = [
    "RpcClient",
    "RpcClientConfig",
    "RpcConnection",
    "MAX_MULTIPLE_ACCOUNTS",
    "KeyValueStorage",
    "MemoryStorage",
    "JsonFileStorage",
    "ListenerRegistry",
    "PeriodicTask",
]
