"""
Account State Cache

Caches decoded account data under "<network>:<program_id>:<account_id>".
A miss fetches the account once, stores it and opens a push subscription
so later reads see live updates. Updates are applied only when their slot
is newer than the cached one, and a periodic bulk refresh covers gaps in
the subscription stream.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Union

from ..cache import TtlCache
from ..config import config as global_config
from ..infra.rpc import MAX_MULTIPLE_ACCOUNTS, RpcConnection
from ..infra.tasks import ListenerRegistry, PeriodicTask, SleepFunc
from ..types import AccountInfo, CachedAccountState, Network

logger = logging.getLogger(__name__)

AccountParser = Callable[[bytes], Any]
StateListener = Callable[[Dict[str, CachedAccountState]], None]

_PARSE_FAILED = object()


class StateCache:
    """
    Network-namespaced cache of on-chain account state

    Usage:
        states = StateCache(rpc, network="devnet")
        states.start()

        pool = await states.get_state(PROGRAM_ID, POOL_ID, parse_pool)
        pools = await states.get_states(PROGRAM_ID, [POOL_A, POOL_B], parse_pool)

        # Point at another cluster: subscriptions and devnet entries are dropped
        states.set_connection(mainnet_rpc, "mainnet-beta")
        await states.close()
    """

    def __init__(
        self,
        rpc: RpcConnection,
        network: Union[str, Network, None] = None,
        ttl_seconds: Optional[float] = None,
        refresh_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        commitment: Optional[str] = None,
        subscribe: bool = True,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """
        Initialize state cache

        Args:
            rpc: RPC connection for reads and subscriptions
            network: Active network (defaults to config.network.network)
            ttl_seconds: Entry TTL (default: config.cache.state_ttl_seconds)
            refresh_seconds: Bulk refresh interval, 0 disables it
            max_entries: Size bound of the underlying cache
            commitment: Commitment level for reads and subscriptions
            subscribe: Open push subscriptions after a miss
            clock: Time source returning epoch seconds
            sleep: Coroutine used by the refresh timer
        """
        cache_config = global_config.cache
        self._rpc = rpc
        self._network = Network.resolve(network)
        self._commitment = commitment
        self._subscribe_enabled = subscribe
        self._clock = clock or time.time
        self._cache = TtlCache(
            default_ttl=ttl_seconds if ttl_seconds is not None else cache_config.state_ttl_seconds,
            max_size=max_entries if max_entries is not None else cache_config.max_entries,
            clock=self._clock,
            name="state",
        )
        refresh = refresh_seconds if refresh_seconds is not None else cache_config.state_refresh_seconds
        self._refresh_task = (
            PeriodicTask("state-refresh", refresh, self.refresh, sleep=sleep) if refresh > 0 else None
        )

        self._parsers: Dict[str, Optional[AccountParser]] = {}
        self._subscriptions: Dict[str, int] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        # Bumped on every connection change, stale fetch results are discarded
        self._generation = 0
        self._listeners: ListenerRegistry[Dict[str, CachedAccountState]] = ListenerRegistry("state")

    @property
    def network(self) -> Network:
        return self._network

    @property
    def rpc(self) -> RpcConnection:
        return self._rpc

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def is_subscribed(self, program_id: str, account_id: str) -> bool:
        return self._key(program_id, account_id) in self._subscriptions

    def _key(self, program_id: str, account_id: str) -> str:
        return self._network.key(program_id, account_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background bulk refresh"""
        if self._refresh_task is not None:
            self._refresh_task.start()

    async def close(self) -> None:
        """Stop refreshing, drop every subscription and cancel in-flight fetches"""
        if self._refresh_task is not None:
            await self._refresh_task.aclose()
        self._unsubscribe_all()
        inflight = list(self._inflight.values())
        self._inflight.clear()
        for future in inflight:
            future.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def set_connection(self, rpc: RpcConnection, network: Union[str, Network, None] = None) -> None:
        """
        Switch RPC connection and/or network

        The old namespace is fully torn down (refresh stopped, every
        subscription removed, entries cleared, in-flight results orphaned)
        before the new connection is installed and refreshing resumes.
        """
        network = Network.resolve(network, self._network)
        refreshing = self._refresh_task is not None and self._refresh_task.running
        if self._refresh_task is not None:
            self._refresh_task.stop()

        removed_subs = self._unsubscribe_all()
        old_prefix = self._network.prefix
        removed = self._cache.delete_prefix(old_prefix)
        self._drop_parsers(old_prefix)
        self._generation += 1
        self._inflight.clear()

        logger.info(
            f"State cache switching {self._network.value} -> {network.value}: "
            f"removed {removed_subs} subscriptions, {removed} entries"
        )
        self._rpc = rpc
        self._network = network
        if refreshing:
            self._refresh_task.start()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_cached(self, program_id: str, account_id: str) -> Optional[CachedAccountState]:
        """Cached entry without touching the network"""
        state = self._cache.get(self._key(program_id, account_id))
        return copy.copy(state) if state is not None else None

    async def get_state(
        self,
        program_id: str,
        account_id: str,
        parser: Optional[AccountParser] = None,
    ) -> Any:
        """
        Get account state, fetching it on a miss

        Concurrent misses for the same key share one fetch.

        Args:
            program_id: Owning program (base58)
            account_id: Account address (base58)
            parser: Decoder applied to the raw account bytes

        Returns:
            Parsed data, or None if the account does not exist or the
            parser failed

        Raises:
            RpcError: If the fetch itself fails
        """
        key = self._key(program_id, account_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached.data

        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(
                self._fetch_one(program_id, account_id, parser, self._generation)
            )
            self._track_inflight(key, future)
        return await asyncio.shield(future)

    async def get_states(
        self,
        program_id: str,
        account_ids: List[str],
        parser: Optional[AccountParser] = None,
    ) -> Dict[str, Any]:
        """
        Get several accounts of one program

        Misses are fetched with getMultipleAccounts, at most
        MAX_MULTIPLE_ACCOUNTS keys per request.

        Returns:
            {account_id: parsed data} for every account that exists and parsed
        """
        results: Dict[str, Any] = {}
        pending: Dict[str, asyncio.Future] = {}
        to_fetch: List[str] = []

        for account_id in dict.fromkeys(account_ids):
            key = self._key(program_id, account_id)
            cached = self._cache.get(key)
            if cached is not None:
                results[account_id] = cached.data
            elif key in self._inflight:
                pending[account_id] = self._inflight[key]
            else:
                to_fetch.append(account_id)

        if to_fetch:
            loop = asyncio.get_running_loop()
            futures = {}
            for account_id in to_fetch:
                future = loop.create_future()
                self._track_inflight(self._key(program_id, account_id), future)
                futures[account_id] = future
            pending.update(futures)
            try:
                await self._fetch_many(program_id, to_fetch, parser, futures, self._generation)
            except BaseException as e:
                for future in futures.values():
                    if future.done():
                        continue
                    if isinstance(e, asyncio.CancelledError):
                        future.cancel()
                    else:
                        future.set_exception(e)
                raise

        for account_id, future in pending.items():
            value = await asyncio.shield(future)
            if value is not None:
                results[account_id] = value
        return results

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_update(self, program_id: str, account_id: str, data: Any, slot: int) -> bool:
        """
        Apply an account update if its slot is newer than the cached one

        Returns:
            True if the entry was written (listeners are notified)
        """
        key = self._key(program_id, account_id)
        current = self._cache.get(key)
        if current is not None and slot <= current.slot:
            logger.debug(f"Ignoring stale update for {key}: slot {slot} <= {current.slot}")
            return False

        state = CachedAccountState(
            program_id=program_id,
            account_id=account_id,
            data=data,
            last_updated=self._clock(),
            slot=slot,
        )
        self._cache.set(key, state)
        if len(self._listeners):
            self._listeners.notify({account_id: copy.copy(state)})
        return True

    def clear_states(self) -> int:
        """
        Drop every entry and subscription of the active network

        Returns:
            Number of entries removed
        """
        prefix = self._network.prefix
        for key in [k for k in self._subscriptions if k.startswith(prefix)]:
            self._unsubscribe(key)
        self._drop_parsers(prefix)
        removed = self._cache.delete_prefix(prefix)
        logger.debug(f"Cleared {removed} cached states for {self._network.value}")
        return removed

    async def refresh(self) -> int:
        """
        Re-fetch every cached account of the active network

        Returns:
            Number of entries updated
        """
        prefix = self._network.prefix
        generation = self._generation
        states = [self._cache.get(key) for key in self._cache.keys(prefix)]
        states = [s for s in states if s is not None]
        if not states:
            return 0

        updated = 0
        for start in range(0, len(states), MAX_MULTIPLE_ACCOUNTS):
            batch = states[start:start + MAX_MULTIPLE_ACCOUNTS]
            infos = await self._rpc.get_multiple_accounts_info(
                [s.account_id for s in batch], self._commitment
            )
            if generation != self._generation:
                logger.debug("Discarding state refresh started before a connection change")
                return updated

            for state, info in zip(batch, infos):
                if info is None:
                    continue
                key = self._key(state.program_id, state.account_id)
                data = self._parse(key, info, self._parsers.get(key))
                if data is _PARSE_FAILED:
                    continue
                if self.apply_update(state.program_id, state.account_id, data, info.slot):
                    updated += 1
                else:
                    current = self._cache.get(key)
                    if current is not None and current.slot == info.slot:
                        # Same snapshot, just extend its lifetime
                        self._cache.set(key, current)

        logger.debug(f"Refreshed {len(states)} account states ({updated} updated)")
        return updated

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_update_listener(self, listener: StateListener) -> None:
        self._listeners.add(listener)

    def remove_update_listener(self, listener: StateListener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _track_inflight(self, key: str, future: asyncio.Future) -> None:
        self._inflight[key] = future

        def _done(f: asyncio.Future):
            if self._inflight.get(key) is f:
                del self._inflight[key]
            if not f.cancelled():
                # Mark retrieved, waiters re-raise through shield()
                f.exception()

        future.add_done_callback(_done)

    async def _fetch_one(
        self,
        program_id: str,
        account_id: str,
        parser: Optional[AccountParser],
        generation: int,
    ) -> Any:
        info = await self._rpc.get_account_info(account_id, self._commitment)
        if generation != self._generation:
            logger.debug(f"Discarding {account_id} fetched before a connection change")
            return None
        if info is None:
            return None
        return self._ingest(program_id, account_id, info, parser)

    async def _fetch_many(
        self,
        program_id: str,
        account_ids: List[str],
        parser: Optional[AccountParser],
        futures: Dict[str, asyncio.Future],
        generation: int,
    ) -> None:
        for start in range(0, len(account_ids), MAX_MULTIPLE_ACCOUNTS):
            batch = account_ids[start:start + MAX_MULTIPLE_ACCOUNTS]
            infos = await self._rpc.get_multiple_accounts_info(batch, self._commitment)
            stale = generation != self._generation
            for account_id, info in zip(batch, infos):
                value = None
                if not stale and info is not None:
                    value = self._ingest(program_id, account_id, info, parser)
                if not futures[account_id].done():
                    futures[account_id].set_result(value)
        for future in futures.values():
            if not future.done():
                future.set_result(None)

    def _ingest(
        self,
        program_id: str,
        account_id: str,
        info: AccountInfo,
        parser: Optional[AccountParser],
    ) -> Any:
        """Parse, store and subscribe to a freshly fetched account"""
        key = self._key(program_id, account_id)
        data = self._parse(key, info, parser)
        if data is _PARSE_FAILED:
            return None
        self._parsers[key] = parser
        self.apply_update(program_id, account_id, data, info.slot)
        self._subscribe(key, program_id, account_id, info)
        current = self._cache.get(key)
        return current.data if current is not None else data

    def _parse(self, key: str, info: AccountInfo, parser: Optional[AccountParser]) -> Any:
        if parser is None:
            return info.data
        try:
            return parser(info.data)
        except Exception as e:
            logger.warning(f"Failed to parse account {key}: {e}")
            return _PARSE_FAILED

    def _subscribe(self, key: str, program_id: str, account_id: str, info: AccountInfo) -> None:
        if not self._subscribe_enabled or key in self._subscriptions:
            return
        generation = self._generation

        def on_change(changed: AccountInfo, slot: int):
            if generation != self._generation:
                return
            data = self._parse(key, changed, self._parsers.get(key))
            if data is not _PARSE_FAILED:
                self.apply_update(program_id, account_id, data, slot)

        try:
            self._subscriptions[key] = self._rpc.on_account_change(
                account_id, on_change, self._commitment, initial=info
            )
        except Exception as e:
            logger.warning(f"Failed to subscribe to {key}, relying on bulk refresh: {e}")

    def _unsubscribe(self, key: str) -> None:
        subscription_id = self._subscriptions.pop(key, None)
        if subscription_id is None:
            return
        try:
            self._rpc.remove_account_change_listener(subscription_id)
        except Exception as e:
            logger.warning(f"Failed to remove subscription {subscription_id} for {key}: {e}")

    def _unsubscribe_all(self) -> int:
        keys = list(self._subscriptions)
        for key in keys:
            self._unsubscribe(key)
        return len(keys)

    def _drop_parsers(self, prefix: str) -> None:
        for key in [k for k in self._parsers if k.startswith(prefix)]:
            del self._parsers[key]

    def __repr__(self) -> str:
        return (
            f"StateCache(network={self._network.value}, entries={len(self._cache)}, "
            f"subscriptions={len(self._subscriptions)})"
        )
