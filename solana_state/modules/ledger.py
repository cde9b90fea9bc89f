"""
Transaction Ledger

Records submitted transactions and follows each one through

    SENT -> CONFIRMING -> CONFIRMED -> FINALIZED
    SENT | CONFIRMING -> FAILED
    SENT -> TIMEOUT

with one cancellable polling task per pending transaction. The record set
is persisted on every mutation and rehydrated by start().
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import config as global_config
from ..errors import TransactionError
from ..infra.rpc import RpcConnection
from ..infra.storage import KeyValueStorage, MemoryStorage
from ..infra.tasks import ListenerRegistry, SleepFunc
from ..types import (
    Network,
    TrackedTransaction,
    TransactionStatus,
    TransactionType,
    explorer_url,
)
from ..types.transaction import UPDATABLE_FIELDS

logger = logging.getLogger(__name__)

TransactionListener = Callable[[TrackedTransaction], None]

# (max age in seconds, poll interval in seconds), checked in order
POLL_SCHEDULE = (
    (30.0, 2.0),
    (120.0, 5.0),
    (600.0, 15.0),
)
POLL_INTERVAL_MAX = 30.0


def polling_interval(age_seconds: float) -> float:
    """Poll cadence for a transaction of the given age"""
    for max_age, interval in POLL_SCHEDULE:
        if age_seconds < max_age:
            return interval
    return POLL_INTERVAL_MAX


def _stringify_error(err: Any) -> str:
    if isinstance(err, str):
        return err
    return json.dumps(err, separators=(",", ":"), default=str)


class TransactionLedger:
    """
    Tracks submitted transactions until they are final, failed or timed out

    Usage:
        ledger = TransactionLedger(rpc, network="devnet", storage=JsonFileStorage(path))
        ledger.start()                       # rehydrate + resume polling
        ledger.add_update_listener(print)

        tx = ledger.track(signature, TransactionType.SWAP, {"pair": "SOL/USDC"}, wallet)
        ...
        await ledger.close()
    """

    def __init__(
        self,
        rpc: RpcConnection,
        network: Union[str, Network, None] = None,
        storage: Optional[KeyValueStorage] = None,
        storage_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        finality_confirmations: Optional[int] = None,
        explorer_base_url: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """
        Initialize the ledger

        Args:
            rpc: RPC connection used for status polling
            network: Active network (defaults to config.network.network)
            storage: Durable storage (in-memory if not provided)
            storage_key: Storage key of the persisted record set
            timeout_seconds: Deadline for a signature that is never seen
            finality_confirmations: Confirmation count treated as final
            explorer_base_url: Block explorer base URL
            clock: Time source returning epoch seconds
            sleep: Coroutine used to wait between poll ticks
        """
        self._rpc = rpc
        self._network = Network.resolve(network)
        self._storage = storage if storage is not None else MemoryStorage()
        self._storage_key = storage_key or global_config.ledger.storage_key
        self._timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else global_config.ledger.timeout_seconds
        )
        self._finality = (
            finality_confirmations if finality_confirmations is not None
            else global_config.ledger.finality_confirmations
        )
        self._explorer_base_url = explorer_base_url
        self._clock = clock or time.time
        self._sleep = sleep or asyncio.sleep

        self._transactions: Dict[str, TrackedTransaction] = {}
        self._pollers: Dict[str, asyncio.Task] = {}
        self._listeners: ListenerRegistry[TrackedTransaction] = ListenerRegistry("transaction")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def network(self) -> Network:
        return self._network

    @property
    def rpc(self) -> RpcConnection:
        return self._rpc

    @property
    def active_poll_count(self) -> int:
        """Number of live polling tasks"""
        return sum(1 for task in self._pollers.values() if not task.done())

    def is_polling(self, id_or_signature: str) -> bool:
        tx = self._find(id_or_signature)
        if tx is None:
            return False
        task = self._pollers.get(tx.id)
        return task is not None and not task.done()

    def start(self) -> None:
        """
        Rehydrate persisted transactions and resume polling

        Polling resumes for every non-terminal record on the active network.
        Records tracked before start() keep precedence over persisted ones
        with the same id.
        """
        loaded = self._load()
        merged = {tx.id: tx for tx in loaded}
        merged.update(self._transactions)
        self._transactions = merged
        logger.info(
            f"Ledger started on {self._network.value}: {len(loaded)} persisted transactions, "
            f"{sum(1 for tx in merged.values() if not tx.is_terminal)} pending"
        )
        self._resume_polling()

    async def close(self) -> None:
        """Cancel every polling task and wait for them to unwind"""
        tasks = list(self._pollers.values())
        self._pollers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def set_network(self, network: Union[str, Network], rpc: Optional[RpcConnection] = None) -> None:
        """
        Switch the active network (and optionally the RPC connection)

        Polling tasks of the old network are cancelled before any task is
        started against the new connection. Pending records of the new
        network resume polling.
        """
        network = Network.resolve(network)
        if network == self._network and rpc is None:
            return
        self._cancel_all_polling()
        logger.info(f"Ledger switching network {self._network.value} -> {network.value}")
        self._network = network
        if rpc is not None:
            self._rpc = rpc
        self._resume_polling()

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track(
        self,
        signature: str,
        type: Union[TransactionType, str] = TransactionType.OTHER,
        metadata: Optional[Dict[str, Any]] = None,
        wallet_address: Optional[str] = None,
        amount: Optional[float] = None,
        token: Optional[str] = None,
    ) -> TrackedTransaction:
        """
        Start tracking a submitted transaction

        Args:
            signature: Transaction signature returned by sendTransaction
            type: Operation kind
            metadata: Free-form caller data
            wallet_address: Submitting wallet
            amount: Amount moved (UI units)
            token: Token symbol or mint

        Returns:
            Copy of the new record (status SENT), or of the existing record
            when the signature is already tracked on the active network

        Raises:
            TransactionError: If the signature is empty
        """
        if not isinstance(signature, str) or not signature.strip():
            raise TransactionError.invalid_signature(signature)
        signature = signature.strip()

        existing = next(
            (t for t in self._transactions.values() if t.signature == signature and t.network == self._network),
            None,
        )
        if existing is not None:
            logger.debug(f"Transaction {signature} already tracked as {existing.id}")
            return copy.deepcopy(existing)

        tx = TrackedTransaction(
            id=self._generate_id(),
            signature=signature,
            submitted_at=self._clock(),
            status=TransactionStatus.SENT,
            type=TransactionType.parse(type),
            network=self._network,
            wallet_address=wallet_address,
            amount=amount,
            token=token,
            explorer_url=self.explorer_url(signature),
            metadata=dict(metadata or {}),
        )
        self._transactions[tx.id] = tx
        logger.info(f"Tracking {tx.type.value} transaction {signature} as {tx.id} on {tx.network.value}")

        self._persist()
        self._start_polling(tx)
        self._notify(tx)
        return copy.deepcopy(tx)

    def update_status(
        self,
        id_or_signature: str,
        status: Union[TransactionStatus, str],
        **extra: Any,
    ) -> bool:
        """
        Update a transaction's status

        Looks the record up by id, then by signature. Terminal records are
        immutable and are left untouched.

        Args:
            id_or_signature: Record id or signature
            status: New status
            **extra: Fields to merge (fee, block_height, confirmations,
                error_message, amount, token, metadata)

        Returns:
            True if the record was updated
        """
        unknown = set(extra) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        tx = self._find(id_or_signature)
        if tx is None:
            return False
        if tx.is_terminal:
            logger.debug(f"Ignoring {status} for terminal transaction {tx.id} ({tx.status.value})")
            return False

        tx.status = TransactionStatus.parse(status)
        for name, value in extra.items():
            setattr(tx, name, value)

        self._persist()
        self._notify(tx)

        if tx.is_terminal:
            logger.info(f"Transaction {tx.signature} reached {tx.status.value}")
            self._stop_polling(tx.id)
        return True

    def clear_transactions(self) -> None:
        """Stop all polling and forget every transaction"""
        self._cancel_all_polling()
        self._transactions.clear()
        self._persist()

    # ------------------------------------------------------------------
    # Read accessors (defensive copies)
    # ------------------------------------------------------------------

    def get_transactions(self) -> List[TrackedTransaction]:
        return [copy.deepcopy(tx) for tx in self._transactions.values()]

    def get_by_id(self, tx_id: str) -> Optional[TrackedTransaction]:
        tx = self._transactions.get(tx_id)
        return copy.deepcopy(tx) if tx else None

    def get_by_signature(self, signature: str) -> Optional[TrackedTransaction]:
        tx = self._find_by_signature(signature)
        return copy.deepcopy(tx) if tx else None

    def get_by_type(self, type: Union[TransactionType, str]) -> List[TrackedTransaction]:
        wanted = TransactionType.parse(type)
        return self._select(lambda tx: tx.type == wanted)

    def get_by_status(self, status: Union[TransactionStatus, str]) -> List[TrackedTransaction]:
        wanted = TransactionStatus.parse(status)
        return self._select(lambda tx: tx.status == wanted)

    def get_by_wallet(self, wallet_address: str) -> List[TrackedTransaction]:
        return self._select(lambda tx: tx.wallet_address == wallet_address)

    def get_by_network(self, network: Union[str, Network]) -> List[TrackedTransaction]:
        wanted = Network.resolve(network)
        return self._select(lambda tx: tx.network == wanted)

    def explorer_url(self, signature: str, network: Union[str, Network, None] = None) -> str:
        """Explorer link for a signature (active network by default)"""
        return explorer_url(signature, Network.resolve(network, self._network), self._explorer_base_url)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_update_listener(self, listener: TransactionListener) -> None:
        self._listeners.add(listener)

    def remove_update_listener(self, listener: TransactionListener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def polling_interval(self, tx: TrackedTransaction) -> float:
        return polling_interval(tx.age(self._clock()))

    async def poll_once(self, id_or_signature: str) -> Optional[TrackedTransaction]:
        """
        Run one polling tick for a transaction

        Returns:
            Copy of the record after the tick, or None if unknown
        """
        tx = self._find(id_or_signature)
        if tx is None:
            return None
        await self._tick(tx.id)
        return self.get_by_id(tx.id)

    def _start_polling(self, tx: TrackedTransaction) -> None:
        if tx.is_terminal or tx.network != self._network:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, polling for {tx.id} deferred until start()")
            return
        self._stop_polling(tx.id)
        self._pollers[tx.id] = asyncio.create_task(
            self._poll_loop(tx.id), name=f"tx-poll-{tx.id}"
        )

    def _stop_polling(self, tx_id: str) -> None:
        task = self._pollers.pop(tx_id, None)
        if task is None:
            return
        # A loop that finishes itself just unregisters; it returns on its own
        if task is not _current_task():
            task.cancel()

    def _cancel_all_polling(self) -> None:
        for tx_id in list(self._pollers):
            self._stop_polling(tx_id)

    def _resume_polling(self) -> None:
        for tx in list(self._transactions.values()):
            if not tx.is_terminal and tx.network == self._network and tx.id not in self._pollers:
                self._start_polling(tx)

    async def _poll_loop(self, tx_id: str):
        try:
            while True:
                tx = self._transactions.get(tx_id)
                if tx is None or tx.is_terminal:
                    return
                await self._sleep(self.polling_interval(tx))
                if await self._tick(tx_id):
                    return
        finally:
            if self._pollers.get(tx_id) is _current_task():
                del self._pollers[tx_id]

    async def _tick(self, tx_id: str) -> bool:
        """One status check, returns True once the transaction is terminal"""
        tx = self._transactions.get(tx_id)
        if tx is None or tx.is_terminal:
            return True
        if tx.network != self._network:
            logger.debug(f"Skipping poll for {tx_id}: belongs to {tx.network.value}")
            return False

        try:
            status = await self._rpc.get_signature_status(tx.signature)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error polling status of {tx.signature}, retrying next tick: {e}")
            return False

        if status is None:
            elapsed = tx.age(self._clock())
            if elapsed > self._timeout_seconds:
                logger.warning(f"Transaction {tx.signature} not found after {elapsed:.0f}s, timing out")
                self.update_status(tx_id, TransactionStatus.TIMEOUT)
                return True
            return False

        if status.get("err"):
            self.update_status(
                tx_id,
                TransactionStatus.FAILED,
                error_message=_stringify_error(status["err"]),
                confirmations=status.get("confirmations") or 0,
            )
            return True

        confirmations = status.get("confirmations")
        if confirmations is None:
            # Rooted signatures report confirmations=null
            confirmations = self._finality if status.get("confirmationStatus") == "finalized" else 0

        if confirmations >= self._finality:
            extra = await self._fetch_final_detail(tx.signature)
            self.update_status(tx_id, TransactionStatus.FINALIZED, confirmations=confirmations, **extra)
            return True

        new_status = TransactionStatus.CONFIRMING if confirmations == 0 else TransactionStatus.CONFIRMED
        current = self._transactions.get(tx_id)
        if current is not None and (current.status != new_status or current.confirmations != confirmations):
            self.update_status(tx_id, new_status, confirmations=confirmations)
        return False

    async def _fetch_final_detail(self, signature: str) -> Dict[str, Any]:
        """Block height and fee of a finalized transaction (empty on failure)"""
        try:
            detail = await self._rpc.get_transaction(signature)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error fetching transaction details for {signature}: {e}")
            return {}
        if not detail:
            return {}
        extra: Dict[str, Any] = {}
        if detail.get("slot") is not None:
            extra["block_height"] = detail["slot"]
        fee = (detail.get("meta") or {}).get("fee")
        if fee is not None:
            extra["fee"] = fee
        return extra

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _generate_id(self) -> str:
        tx_id = uuid.uuid4().hex
        while tx_id in self._transactions:
            tx_id = uuid.uuid4().hex
        return tx_id

    def _find(self, id_or_signature: str) -> Optional[TrackedTransaction]:
        return self._transactions.get(id_or_signature) or self._find_by_signature(id_or_signature)

    def _find_by_signature(self, signature: str) -> Optional[TrackedTransaction]:
        for tx in self._transactions.values():
            if tx.signature == signature:
                return tx
        return None

    def _select(self, predicate: Callable[[TrackedTransaction], bool]) -> List[TrackedTransaction]:
        return [copy.deepcopy(tx) for tx in self._transactions.values() if predicate(tx)]

    def _notify(self, tx: TrackedTransaction) -> None:
        if len(self._listeners):
            self._listeners.notify(copy.deepcopy(tx))

    def _persist(self) -> None:
        try:
            payload = json.dumps([tx.to_dict() for tx in self._transactions.values()])
            self._storage.set_item(self._storage_key, payload)
        except Exception as e:
            logger.warning(f"Failed to persist transactions: {e}")

    def _load(self) -> List[TrackedTransaction]:
        try:
            raw = self._storage.get_item(self._storage_key)
        except Exception as e:
            logger.warning(f"Failed to load transactions from storage: {e}")
            return []
        if not raw:
            return []
        try:
            records = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Persisted transactions are not valid JSON, ignoring: {e}")
            return []
        if not isinstance(records, list):
            logger.warning("Persisted transactions are not a JSON array, ignoring")
            return []

        loaded = []
        for record in records:
            try:
                loaded.append(TrackedTransaction.from_dict(record))
            except Exception as e:
                logger.warning(f"Skipping unreadable persisted transaction: {e}")
        return loaded

    def __repr__(self) -> str:
        return (
            f"TransactionLedger(network={self._network.value}, "
            f"transactions={len(self._transactions)}, polling={self.active_poll_count})"
        )


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
