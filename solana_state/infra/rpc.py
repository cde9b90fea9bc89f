"""
Async RPC Client for Solana

Provides unified JSON-RPC interface with:
- Multiple endpoint fallback
- Retry logic
- Rate limit handling
- Request timeout management
- Account change subscriptions backed by the HTTP endpoint
"""

from __future__ import annotations

import asyncio
import base64
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import httpx

from ..errors import RpcError, ConfigurationError
from ..config import config as global_config
from ..types import AccountInfo

logger = logging.getLogger(__name__)

# getMultipleAccounts accepts at most 100 keys per request
MAX_MULTIPLE_ACCOUNTS = 100

AccountChangeCallback = Callable[[AccountInfo, int], None]


class RpcConnection(Protocol):
    """
    The RPC capability the ledger and caches depend on

    All reads are assumed idempotent. Any object with these coroutines
    (for example a websocket-backed client) can stand in for RpcClient.
    """

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        ...

    async def get_transaction(self, signature: str, commitment: Optional[str] = None) -> Optional[Dict[str, Any]]:
        ...

    async def get_account_info(self, address: str, commitment: Optional[str] = None) -> Optional[AccountInfo]:
        ...

    async def get_multiple_accounts_info(
        self, addresses: List[str], commitment: Optional[str] = None
    ) -> List[Optional[AccountInfo]]:
        ...

    async def simulate_transaction(self, transaction: bytes, commitment: Optional[str] = None) -> Dict[str, Any]:
        ...

    async def get_latest_blockhash(self, commitment: Optional[str] = None) -> Dict[str, Any]:
        ...

    def on_account_change(
        self,
        address: str,
        callback: AccountChangeCallback,
        commitment: Optional[str] = None,
        initial: Optional[AccountInfo] = None,
    ) -> int:
        ...

    def remove_account_change_listener(self, subscription_id: int) -> None:
        ...


@dataclass
class _AccountWatch:
    address: str
    callback: AccountChangeCallback
    commitment: str
    last_seen: Optional[tuple] = None


def _snapshot(info: AccountInfo) -> tuple:
    return (info.data, info.lamports, info.owner)


@dataclass
class RpcClientConfig:
    """
    RPC client runtime configuration

    Allows per-client overrides while pulling defaults from the global
    config (solana_state.config.RpcConfig).

    Usage:
        # Use all defaults from environment
        client = RpcClient(endpoint)

        # Override specific settings
        config = RpcClientConfig(timeout_seconds=60, max_retries=5)
        client = RpcClient(endpoint, config=config)
    """
    timeout_seconds: float = None
    max_retries: int = None
    retry_delay_seconds: float = None
    commitment: str = None
    subscription_poll_seconds: float = None

    def __post_init__(self):
        """Apply defaults from global config for any unset values"""
        if self.timeout_seconds is None:
            self.timeout_seconds = global_config.rpc.timeout_seconds
        if self.max_retries is None:
            self.max_retries = global_config.rpc.max_retries
        if self.retry_delay_seconds is None:
            self.retry_delay_seconds = global_config.rpc.retry_delay_seconds
        if self.commitment is None:
            self.commitment = global_config.rpc.commitment
        if self.subscription_poll_seconds is None:
            self.subscription_poll_seconds = global_config.rpc.subscription_poll_seconds


class RpcClient:
    """
    Unified async Solana RPC client

    Supports:
    - Multiple RPC endpoints with automatic fallback
    - Retry logic for transient failures
    - Rate limit handling with backoff
    - Account change subscriptions (polled over HTTP)

    Usage:
        async with RpcClient("https://api.devnet.solana.com") as rpc:
            status = await rpc.get_signature_status(signature)
            info = await rpc.get_account_info("AccountAddress...")
    """

    def __init__(
        self,
        endpoint: Union[str, List[str]],
        config: Optional[RpcClientConfig] = None,
    ):
        """
        Initialize RPC client

        Args:
            endpoint: RPC endpoint URL or list of URLs (for fallback)
            config: RPC configuration options
        """
        self._endpoints = [endpoint] if isinstance(endpoint, str) else list(endpoint)
        if not self._endpoints or not all(self._endpoints):
            raise ConfigurationError.missing("RPC endpoint")

        self._config = config or RpcClientConfig()
        self._current_endpoint_idx = 0
        self._client: Optional[httpx.AsyncClient] = None
        self._request_ids = itertools.count(1)
        self._subscription_ids = itertools.count(1)
        self._subscriptions: Dict[int, _AccountWatch] = {}
        self._watcher: Optional[asyncio.Task] = None

    @property
    def endpoint(self) -> str:
        """Current active endpoint"""
        return self._endpoints[self._current_endpoint_idx]

    @property
    def commitment(self) -> str:
        """Default commitment level"""
        return self._config.commitment

    @property
    def subscription_count(self) -> int:
        """Number of live account subscriptions"""
        return len(self._subscriptions)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout_seconds,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    def _rotate_endpoint(self):
        """Rotate to next endpoint on failure"""
        if len(self._endpoints) > 1:
            self._current_endpoint_idx = (self._current_endpoint_idx + 1) % len(self._endpoints)
            logger.info(f"Rotating to RPC endpoint: {self.endpoint}")

    async def call(
        self,
        method: str,
        params: List[Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Make JSON-RPC call

        Args:
            method: RPC method name
            params: RPC parameters
            timeout: Optional timeout override

        Returns:
            RPC result

        Raises:
            RpcError: On RPC failure
        """
        client = self._get_client()
        body = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        timeout_val = timeout or self._config.timeout_seconds

        last_error: Optional[Exception] = None
        endpoints_tried = 0
        max_endpoints = len(self._endpoints)

        while endpoints_tried < max_endpoints:
            for attempt in range(self._config.max_retries):
                try:
                    response = await client.post(
                        self.endpoint,
                        json=body,
                        timeout=timeout_val,
                    )

                    if response.status_code == 429:
                        logger.warning(f"Rate limited by {self.endpoint}")
                        last_error = RpcError.rate_limited(self.endpoint)
                        await asyncio.sleep(self._config.retry_delay_seconds * (attempt + 1))
                        continue

                    response.raise_for_status()
                    result = response.json()

                    if "error" in result:
                        error = result["error"]
                        error_msg = error.get("message", str(error))
                        rpc_error = RpcError(
                            f"RPC error: {error_msg}",
                            endpoint=self.endpoint,
                        )
                        # Preserve RPC error code in details for debugging
                        rpc_error.details["rpc_error_code"] = error.get("code")
                        rpc_error.details["rpc_error_data"] = error.get("data")
                        raise rpc_error

                    return result.get("result")

                except httpx.TimeoutException:
                    last_error = RpcError.timeout(self.endpoint, timeout_val)
                    logger.warning(f"RPC timeout (attempt {attempt + 1}): {self.endpoint}")

                except httpx.HTTPStatusError as e:
                    if e.response.status_code == 429:
                        last_error = RpcError.rate_limited(self.endpoint)
                    else:
                        last_error = RpcError(
                            f"HTTP error {e.response.status_code}",
                            endpoint=self.endpoint,
                        )
                    logger.warning(f"RPC HTTP error (attempt {attempt + 1}): {e}")

                except httpx.RequestError as e:
                    last_error = RpcError.connection_failed(self.endpoint, e)
                    logger.warning(f"RPC connection error (attempt {attempt + 1}): {e}")

                except RpcError:
                    raise

                except ValueError as e:
                    last_error = RpcError.invalid_response(self.endpoint, str(e))
                    logger.warning(f"RPC invalid response (attempt {attempt + 1}): {e}")

                if attempt < self._config.max_retries - 1:
                    await asyncio.sleep(self._config.retry_delay_seconds * (attempt + 1))

            # All retries failed, try next endpoint
            self._rotate_endpoint()
            endpoints_tried += 1

        raise last_error or RpcError("All RPC endpoints failed")

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        """
        Get the status of one signature

        Returns:
            Status dict (slot, confirmations, err, confirmationStatus)
            or None if the signature is unknown to the cluster
        """
        result = await self.call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or []
        return values[0] if values else None

    async def get_transaction(
        self,
        signature: str,
        commitment: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Get full transaction detail

        Returns:
            Transaction dict (slot, blockTime, meta, transaction) or None
        """
        params = [
            signature,
            {
                "encoding": "json",
                "commitment": commitment or self.commitment,
                "maxSupportedTransactionVersion": 0,
            },
        ]
        return await self.call("getTransaction", params)

    async def get_account_info(
        self,
        address: str,
        commitment: Optional[str] = None,
    ) -> Optional[AccountInfo]:
        """
        Get account information

        Args:
            address: Account address (base58)
            commitment: Commitment level

        Returns:
            AccountInfo stamped with the response slot, or None if not found
        """
        params = [
            address,
            {
                "encoding": "base64",
                "commitment": commitment or self.commitment,
            },
        ]
        result = await self.call("getAccountInfo", params)
        if not result or not result.get("value"):
            return None
        slot = (result.get("context") or {}).get("slot", 0)
        return AccountInfo.from_rpc(result["value"], slot)

    async def get_multiple_accounts_info(
        self,
        addresses: List[str],
        commitment: Optional[str] = None,
    ) -> List[Optional[AccountInfo]]:
        """
        Get multiple account information, batched by MAX_MULTIPLE_ACCOUNTS

        Returns:
            List aligned with addresses (None for accounts not found)
        """
        infos: List[Optional[AccountInfo]] = []
        for start in range(0, len(addresses), MAX_MULTIPLE_ACCOUNTS):
            batch = addresses[start:start + MAX_MULTIPLE_ACCOUNTS]
            params = [
                batch,
                {
                    "encoding": "base64",
                    "commitment": commitment or self.commitment,
                },
            ]
            result = await self.call("getMultipleAccounts", params) or {}
            slot = (result.get("context") or {}).get("slot", 0)
            values = result.get("value") or []
            if len(values) != len(batch):
                raise RpcError.invalid_response(
                    self.endpoint, f"expected {len(batch)} accounts, got {len(values)}"
                )
            infos.extend(AccountInfo.from_rpc(v, slot) if v else None for v in values)
        return infos

    async def get_latest_blockhash(
        self,
        commitment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Get latest blockhash

        Returns:
            Dict with blockhash and lastValidBlockHeight
        """
        params = [{"commitment": commitment or self.commitment}]
        result = await self.call("getLatestBlockhash", params)
        return (result or {}).get("value", {})

    async def simulate_transaction(
        self,
        transaction: bytes,
        commitment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Simulate transaction execution

        Args:
            transaction: Transaction bytes (can be unsigned)
            commitment: Commitment level

        Returns:
            Simulation result ({"context": ..., "value": {err, logs, ...}})
        """
        tx_data = base64.b64encode(transaction).decode("ascii")

        params = [
            tx_data,
            {
                "commitment": commitment or self.commitment,
                "encoding": "base64",
                "sigVerify": False,
                "replaceRecentBlockhash": True,
            },
        ]
        return await self.call("simulateTransaction", params)

    def on_account_change(
        self,
        address: str,
        callback: AccountChangeCallback,
        commitment: Optional[str] = None,
        initial: Optional[AccountInfo] = None,
    ) -> int:
        """
        Subscribe to account changes

        One shared watcher polls every subscribed account with
        getMultipleAccounts each subscription_poll_seconds, and a callback
        fires whenever its account content (data, lamports, owner) differs
        from the last snapshot seen. The first snapshot is initial when
        given, otherwise the first poll, and never fires. Must be called
        from a running event loop.

        Returns:
            Subscription id for remove_account_change_listener
        """
        subscription_id = next(self._subscription_ids)
        self._subscriptions[subscription_id] = _AccountWatch(
            address=address,
            callback=callback,
            commitment=commitment or self.commitment,
            last_seen=_snapshot(initial) if initial is not None else None,
        )
        if self._watcher is None or self._watcher.done():
            self._watcher = asyncio.create_task(self._watch_accounts(), name="account-watch")
        logger.debug(f"Subscribed to account {address} (id={subscription_id})")
        return subscription_id

    def remove_account_change_listener(self, subscription_id: int) -> None:
        """Cancel an account subscription (no-op for unknown ids)"""
        if self._subscriptions.pop(subscription_id, None) is None:
            return
        logger.debug(f"Unsubscribed account listener {subscription_id}")
        if not self._subscriptions and self._watcher is not None:
            self._watcher.cancel()
            self._watcher = None

    async def _watch_accounts(self):
        while self._subscriptions:
            await asyncio.sleep(self._config.subscription_poll_seconds)
            by_commitment: Dict[str, List[str]] = {}
            for watch in self._subscriptions.values():
                addresses = by_commitment.setdefault(watch.commitment, [])
                if watch.address not in addresses:
                    addresses.append(watch.address)

            for commitment, addresses in by_commitment.items():
                try:
                    infos = await self.get_multiple_accounts_info(addresses, commitment)
                except RpcError as e:
                    logger.debug(f"Account watch for {len(addresses)} accounts failed, retrying next tick: {e}")
                    continue
                self._deliver(commitment, dict(zip(addresses, infos)))

    def _deliver(self, commitment: str, infos: Dict[str, Optional[AccountInfo]]):
        for subscription_id, watch in list(self._subscriptions.items()):
            if watch.commitment != commitment or subscription_id not in self._subscriptions:
                continue
            info = infos.get(watch.address)
            if info is None:
                continue
            snapshot = _snapshot(info)
            if snapshot == watch.last_seen:
                continue
            first = watch.last_seen is None
            watch.last_seen = snapshot
            if first:
                continue
            try:
                watch.callback(info, info.slot)
            except Exception:
                logger.exception(f"Account change callback failed for {watch.address}")

    async def close(self):
        """Cancel subscriptions and close HTTP client"""
        self._subscriptions.clear()
        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        return f"RpcClient(endpoint={self.endpoint}, commitment={self.commitment})"
