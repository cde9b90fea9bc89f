"""
Functional modules for StateClient

Provides:
- TransactionLedger: submitted transaction tracking with adaptive polling
- StateCache: account state with push subscriptions and bulk refresh
- PriceCache: token prices with periodic pull refresh
- SimulationCache: memoized transaction simulation
"""

from .ledger import TransactionLedger, polling_interval
from .state import StateCache
from .prices import PriceCache, PriceSource, JupiterPriceSource
from .simulation import SimulationCache, canonicalize_transaction, hash_transaction

__all__ = [
    "TransactionLedger",
    "polling_interval",
    "StateCache",
    "PriceCache",
    "PriceSource",
    "JupiterPriceSource",
    "SimulationCache",
    "canonicalize_transaction",
    "hash_transaction",
]
