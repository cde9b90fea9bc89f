"""
StateClient - Unified entry point for client-side Solana state

Wires one RPC connection, one durable store and the four modules
(ledger, states, prices, simulations) together and owns their lifecycle
and network switching.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Union, TYPE_CHECKING

from .config import config as global_config
from .infra import (
    RpcClient,
    RpcClientConfig,
    RpcConnection,
    KeyValueStorage,
    MemoryStorage,
    JsonFileStorage,
)
from .infra.tasks import SleepFunc
from .types import Network

if TYPE_CHECKING:
    from .modules.ledger import TransactionLedger
    from .modules.state import StateCache
    from .modules.prices import PriceCache, PriceSource
    from .modules.simulation import SimulationCache

logger = logging.getLogger(__name__)


class StateClient:
    """
    Unified client-side state client

    Provides access through functional modules:
    - ledger: Submitted transaction tracking
    - states: Account state cache with live updates
    - prices: Token price cache
    - simulations: Memoized transaction simulation

    Usage:
        async with StateClient(network="devnet", storage_path="~/.solana-state.json") as client:
            tx = client.ledger.track(signature, "swap", {"pair": "SOL/USDC"}, wallet)
            pool = await client.states.get_state(PROGRAM_ID, POOL_ID, parse_pool)
            price = await client.prices.get_token_price(SOL_MINT)

            # Tear down devnet state and continue on mainnet
            await client.switch_network("mainnet-beta")
    """

    def __init__(
        self,
        rpc_url: Union[str, List[str], None] = None,
        network: Union[str, Network, None] = None,
        rpc: Optional[RpcConnection] = None,
        rpc_config: Optional[RpcClientConfig] = None,
        storage: Optional[KeyValueStorage] = None,
        storage_path: Optional[str] = None,
        price_source: Optional["PriceSource"] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """
        Initialize StateClient

        Args:
            rpc_url: RPC endpoint URL or list of URLs for fallback
                (default: SOLANA_RPC_URL, then the cluster's public endpoint)
            network: Active network (default: SOLANA_NETWORK)
            rpc: Pre-built RPC connection (takes precedence over rpc_url)
            rpc_config: Optional RPC configuration
            storage: Durable storage for the ledger
            storage_path: JSON file for the ledger (default: LEDGER_STORAGE_PATH)
            price_source: Price source (default: Jupiter price API)
            clock: Time source shared by every module
            sleep: Sleep coroutine shared by every timer
        """
        self._network = Network.resolve(network)
        self._rpc_config = rpc_config
        self._owns_rpc = rpc is None
        self._rpc = rpc if rpc is not None else self._build_rpc(rpc_url, self._network)

        if storage is None:
            path = storage_path if storage_path is not None else global_config.ledger.storage_path
            storage = JsonFileStorage(path) if path else MemoryStorage()
        self._storage = storage
        self._price_source = price_source
        self._clock = clock
        self._sleep = sleep
        self._started = False

        # Lazy-loaded modules
        self._ledger: Optional["TransactionLedger"] = None
        self._states: Optional["StateCache"] = None
        self._prices: Optional["PriceCache"] = None
        self._simulations: Optional["SimulationCache"] = None

    def _build_rpc(self, rpc_url: Union[str, List[str], None], network: Network) -> RpcClient:
        url = rpc_url or global_config.rpc.url or network.default_rpc_url
        return RpcClient(url, config=self._rpc_config)

    @property
    def network(self) -> Network:
        return self._network

    @property
    def rpc(self) -> RpcConnection:
        """Access to RPC connection"""
        return self._rpc

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    @property
    def ledger(self) -> "TransactionLedger":
        """
        Transaction ledger

        Provides:
        - track(signature, type, metadata, wallet_address): Start tracking
        - update_status(id_or_signature, status, **extra): Manual transition
        - get_by_*(...): Filtered copies of tracked transactions
        """
        if self._ledger is None:
            from .modules.ledger import TransactionLedger
            self._ledger = TransactionLedger(
                self._rpc,
                network=self._network,
                storage=self._storage,
                clock=self._clock,
                sleep=self._sleep,
            )
            if self._started:
                self._ledger.start()
        return self._ledger

    @property
    def states(self) -> "StateCache":
        """
        Account state cache

        Provides:
        - get_state(program_id, account_id, parser): Cached read
        - get_states(program_id, account_ids, parser): Batched read
        - clear_states(): Drop the active network's entries
        """
        if self._states is None:
            from .modules.state import StateCache
            self._states = StateCache(self._rpc, network=self._network, clock=self._clock, sleep=self._sleep)
            if self._started:
                self._states.start()
        return self._states

    @property
    def prices(self) -> "PriceCache":
        """
        Token price cache

        Provides:
        - get_token_price(mint): Cached price
        - get_token_prices(mints): Batched prices
        - clear_prices(): Drop the active network's prices
        """
        if self._prices is None:
            from .modules.prices import PriceCache
            self._prices = PriceCache(
                network=self._network,
                source=self._price_source,
                clock=self._clock,
                sleep=self._sleep,
            )
            if self._started:
                self._prices.start()
        return self._prices

    @property
    def simulations(self) -> "SimulationCache":
        """
        Simulation cache

        Provides:
        - simulate_transaction(transaction, signers, fee_payer): Memoized dry run
        - clear_simulations(): Drop the active network's results
        """
        if self._simulations is None:
            from .modules.simulation import SimulationCache
            self._simulations = SimulationCache(self._rpc, network=self._network, clock=self._clock)
        return self._simulations

    def explorer_url(self, signature: str) -> str:
        """Explorer link for a signature on the active network"""
        return self.ledger.explorer_url(signature)

    def start(self) -> None:
        """Rehydrate the ledger and start background refreshing (needs a running loop)"""
        self._started = True
        self.ledger.start()
        if self._states is not None:
            self._states.start()
        if self._prices is not None:
            self._prices.start()

    async def switch_network(
        self,
        network: Union[str, Network],
        rpc_url: Union[str, List[str], None] = None,
        rpc: Optional[RpcConnection] = None,
    ) -> None:
        """
        Move every module to another network

        The old namespace of every cache is torn down before the new
        connection is handed out. An RPC client built by this StateClient
        is closed once nothing references it.

        Args:
            network: Target network
            rpc_url: Endpoint for the new network (default: its public endpoint)
            rpc: Pre-built connection for the new network
        """
        network = Network.resolve(network)
        old_rpc, owned = self._rpc, self._owns_rpc
        if rpc is not None:
            new_rpc, self._owns_rpc = rpc, False
        elif self._owns_rpc or rpc_url:
            new_rpc, self._owns_rpc = self._build_rpc(rpc_url or network.default_rpc_url, network), True
        else:
            new_rpc = old_rpc
        logger.info(f"Switching network {self._network.value} -> {network.value}")

        if self._states is not None:
            self._states.set_connection(new_rpc, network)
        if self._prices is not None:
            self._prices.set_network(network)
        if self._simulations is not None:
            self._simulations.set_connection(new_rpc, network)
        if self._ledger is not None:
            self._ledger.set_network(network, new_rpc)

        self._network = network
        self._rpc = new_rpc
        if owned and new_rpc is not old_rpc:
            await old_rpc.close()

    async def close(self) -> None:
        """Stop every module and release connections"""
        if self._ledger is not None:
            await self._ledger.close()
        if self._states is not None:
            await self._states.close()
        if self._prices is not None:
            await self._prices.close()
        if self._owns_rpc:
            await self._rpc.close()
        self._started = False

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        endpoint = getattr(self._rpc, "endpoint", type(self._rpc).__name__)
        return f"StateClient(network={self._network.value}, endpoint={endpoint})"
