"""
Token Price Cache

Pull-only cache of token prices keyed by "<network>:<mint>". Misses are
filled from a PriceSource on demand; every cached mint of the active
network is re-fetched by a periodic refresh.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Union

import httpx

from ..cache import TtlCache
from ..config import config as global_config
from ..errors import PriceError
from ..infra.tasks import ListenerRegistry, PeriodicTask, SleepFunc
from ..types import CachedPrice, Network

logger = logging.getLogger(__name__)

PriceListener = Callable[[Dict[str, CachedPrice]], None]

# Jupiter accepts at most 100 ids per price request
MAX_IDS_PER_REQUEST = 100


class PriceSource(Protocol):
    """Anything that can price a batch of mints"""

    async def fetch_prices(self, mints: List[str]) -> Dict[str, CachedPrice]:
        """Return prices for the mints it knows, omitting the rest"""
        ...


class JupiterPriceSource:
    """
    Jupiter price API client

    Usage:
        source = JupiterPriceSource()
        prices = await source.fetch_prices([SOL_MINT, USDC_MINT])
        await source.close()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize Jupiter price client

        Args:
            url: Price API URL (default from config)
            timeout: Request timeout in seconds (default from config)
            clock: Time source used to stamp last_updated
        """
        self._url = url if url is not None else global_config.price_api.url
        self._timeout = timeout if timeout is not None else global_config.price_api.timeout
        self._clock = clock or time.time
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def fetch_prices(self, mints: List[str]) -> Dict[str, CachedPrice]:
        """
        Fetch USD prices

        Raises:
            PriceError: If the request fails or the response is malformed
        """
        client = self._get_client()
        prices: Dict[str, CachedPrice] = {}
        for start in range(0, len(mints), MAX_IDS_PER_REQUEST):
            batch = mints[start:start + MAX_IDS_PER_REQUEST]
            try:
                response = await client.get(self._url, params={"ids": ",".join(batch)})
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise PriceError.request_failed(self._url, e) from e

            data = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(data, dict):
                raise PriceError(f"Unexpected price response: {payload!r}", url=self._url)

            now = self._clock()
            for mint in batch:
                entry = data.get(mint)
                if not entry or entry.get("price") is None:
                    continue
                try:
                    prices[mint] = CachedPrice(price=float(entry["price"]), last_updated=now)
                except (TypeError, ValueError):
                    logger.warning(f"Ignoring unparseable price for {mint}: {entry.get('price')!r}")
        return prices

    async def close(self):
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None


class PriceCache:
    """
    Network-namespaced token price cache

    Usage:
        prices = PriceCache(network="mainnet-beta")
        prices.start()
        sol = await prices.get_token_price(SOL_MINT)
        await prices.close()
    """

    def __init__(
        self,
        network: Union[str, Network, None] = None,
        source: Optional[PriceSource] = None,
        ttl_seconds: Optional[float] = None,
        refresh_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """
        Initialize price cache

        Args:
            network: Active network (defaults to config.network.network)
            source: Price source (JupiterPriceSource if not provided)
            ttl_seconds: Entry TTL (default: config.cache.price_ttl_seconds)
            refresh_seconds: Refresh interval, 0 disables it
            max_entries: Size bound of the underlying cache
            clock: Time source returning epoch seconds
            sleep: Coroutine used by the refresh timer
        """
        cache_config = global_config.cache
        self._network = Network.resolve(network)
        self._clock = clock or time.time
        self._owns_source = source is None
        self._source = source if source is not None else JupiterPriceSource(clock=self._clock)
        self._cache = TtlCache(
            default_ttl=ttl_seconds if ttl_seconds is not None else cache_config.price_ttl_seconds,
            max_size=max_entries if max_entries is not None else cache_config.max_entries,
            clock=self._clock,
            name="price",
        )
        refresh = refresh_seconds if refresh_seconds is not None else cache_config.price_refresh_seconds
        self._refresh_task = (
            PeriodicTask("price-refresh", refresh, self.refresh, sleep=sleep) if refresh > 0 else None
        )
        self._inflight: Dict[str, asyncio.Task] = {}
        self._generation = 0
        self._listeners: ListenerRegistry[Dict[str, CachedPrice]] = ListenerRegistry("price")

    @property
    def network(self) -> Network:
        return self._network

    def _key(self, mint: str) -> str:
        return self._network.key(mint)

    def start(self) -> None:
        """Start the periodic refresh"""
        if self._refresh_task is not None:
            self._refresh_task.start()

    async def close(self) -> None:
        """Stop refreshing, cancel in-flight fetches and close an owned source"""
        if self._refresh_task is not None:
            await self._refresh_task.aclose()
        inflight = list(self._inflight.values())
        self._inflight.clear()
        for task in inflight:
            task.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)
        if self._owns_source:
            await self._source.close()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def set_network(self, network: Union[str, Network]) -> None:
        """Clear the old namespace and switch to another network"""
        network = Network.resolve(network)
        if network == self._network:
            return
        refreshing = self._refresh_task is not None and self._refresh_task.running
        if self._refresh_task is not None:
            self._refresh_task.stop()
        removed = self.clear_prices()
        self._generation += 1
        self._inflight.clear()
        logger.info(f"Price cache switching {self._network.value} -> {network.value}, dropped {removed} prices")
        self._network = network
        if refreshing:
            self._refresh_task.start()

    async def get_token_price(self, mint: str) -> Optional[CachedPrice]:
        """
        Get a token price, fetching it on a miss

        Returns:
            Price, or None if the source has none or the fetch failed
        """
        mint = str(mint)
        key = self._key(mint)
        cached = self._cache.get(key)
        if cached is not None:
            return copy.copy(cached)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_one(mint, self._generation))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._inflight.pop(key, None) if self._inflight.get(key) is t else None)
        price = await asyncio.shield(task)
        return copy.copy(price) if price is not None else None

    async def get_token_prices(self, mints: List[str]) -> Dict[str, CachedPrice]:
        """
        Get several token prices, fetching all misses in one request

        Returns:
            {mint: price} for every mint that could be priced
        """
        result: Dict[str, CachedPrice] = {}
        missing: List[str] = []
        for mint in dict.fromkeys(str(m) for m in mints):
            cached = self._cache.get(self._key(mint))
            if cached is not None:
                result[mint] = copy.copy(cached)
            else:
                missing.append(mint)

        if missing:
            generation = self._generation
            try:
                fetched = await self._source.fetch_prices(missing)
            except Exception as e:
                logger.warning(f"Error fetching prices for {len(missing)} tokens: {e}")
                return result
            if generation != self._generation:
                return result
            for mint, price in fetched.items():
                self._cache.set(self._key(mint), price)
                result[mint] = copy.copy(price)
        return result

    def clear_prices(self) -> int:
        """Drop every price of the active network, returns the count removed"""
        return self._cache.delete_prefix(self._network.prefix)

    async def refresh(self) -> Dict[str, CachedPrice]:
        """
        Re-fetch every cached mint of the active network

        Returns:
            The refreshed prices (also delivered to listeners)
        """
        prefix = self._network.prefix
        generation = self._generation
        mints = [key[len(prefix):] for key in self._cache.keys(prefix)]
        if not mints:
            return {}

        prices = await self._source.fetch_prices(mints)
        if generation != self._generation:
            logger.debug("Discarding price refresh started before a network change")
            return {}
        for mint, price in prices.items():
            self._cache.set(self._key(mint), price)
        logger.debug(f"Refreshed {len(prices)}/{len(mints)} token prices on {self._network.value}")

        if prices and len(self._listeners):
            self._listeners.notify({mint: copy.copy(p) for mint, p in prices.items()})
        return prices

    def add_update_listener(self, listener: PriceListener) -> None:
        self._listeners.add(listener)

    def remove_update_listener(self, listener: PriceListener) -> None:
        self._listeners.remove(listener)

    async def _fetch_one(self, mint: str, generation: int) -> Optional[CachedPrice]:
        try:
            prices = await self._source.fetch_prices([mint])
        except Exception as e:
            logger.warning(f"Error fetching price for token {mint}: {e}")
            return None
        if generation != self._generation:
            logger.debug(f"Discarding price for {mint} fetched before a network change")
            return None
        price = prices.get(mint)
        if price is None:
            return None
        self._cache.set(self._key(mint), price)
        return price

    def __repr__(self) -> str:
        return f"PriceCache(network={self._network.value}, entries={len(self._cache)})"
