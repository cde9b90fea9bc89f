"""
Transaction Simulation Cache

Memoizes simulateTransaction results under "<network>:<content hash>".
The hash covers the instructions (program, accounts with their signer and
writable flags, data). The recent blockhash and the fee payer/signers are
left out by default so a resubmission with a fresh blockhash still hits.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from ..cache import TtlCache
from ..config import config as global_config
from ..errors import ConfigurationError, TransactionError
from ..infra.rpc import RpcConnection
from ..types import CachedSimulation, Network

logger = logging.getLogger(__name__)

SimulationInput = Union[Sequence[Instruction], Transaction, VersionedTransaction]
PubkeyLike = Union[Pubkey, str]


def _instruction_entry(program_id: Any, keys: List[Dict[str, Any]], data: bytes) -> Dict[str, Any]:
    return {
        "programId": str(program_id),
        "keys": keys,
        "data": base64.b64encode(bytes(data)).decode("ascii"),
    }


def _message_entries(message: Union[Message, MessageV0]) -> List[Dict[str, Any]]:
    """Expand compiled instructions back to (pubkey, is_signer, is_writable)"""
    header = message.header
    static_keys = [str(k) for k in message.account_keys]
    num_signers = header.num_required_signatures
    num_writable_signed = num_signers - header.num_readonly_signed_accounts
    num_writable_unsigned = len(static_keys) - header.num_readonly_unsigned_accounts

    metas = []
    for index, pubkey in enumerate(static_keys):
        if index < num_signers:
            metas.append({"pubkey": pubkey, "isSigner": True, "isWritable": index < num_writable_signed})
        else:
            metas.append({"pubkey": pubkey, "isSigner": False, "isWritable": index < num_writable_unsigned})

    # v0 messages load further accounts from lookup tables: writable ones first, then readonly
    lookups = list(getattr(message, "address_table_lookups", None) or [])
    for lookup in lookups:
        for idx in bytes(lookup.writable_indexes):
            metas.append({"pubkey": f"{lookup.account_key}#{idx}", "isSigner": False, "isWritable": True})
    for lookup in lookups:
        for idx in bytes(lookup.readonly_indexes):
            metas.append({"pubkey": f"{lookup.account_key}#{idx}", "isSigner": False, "isWritable": False})

    entries = []
    for ix in message.instructions:
        program_id = metas[ix.program_id_index]["pubkey"]
        keys = [dict(metas[i]) for i in bytes(ix.accounts)]
        entries.append(_instruction_entry(program_id, keys, ix.data))
    return entries


def canonicalize_transaction(
    transaction: SimulationInput,
    signers: Optional[Sequence[PubkeyLike]] = None,
    fee_payer: Optional[PubkeyLike] = None,
    include_recent_blockhash: bool = False,
    include_fee_payer_and_signers: bool = False,
) -> str:
    """
    Deterministic JSON encoding of a transaction's content

    Args:
        transaction: Instruction list, legacy Transaction or VersionedTransaction
        signers: Extra signers (used as fee payer fallback)
        fee_payer: Fee payer override
        include_recent_blockhash: Include the message blockhash
        include_fee_payer_and_signers: Include fee payer and signer list

    Returns:
        Sorted-key JSON string

    Raises:
        TransactionError: For unsupported input types
    """
    blockhash = None
    if isinstance(transaction, (Transaction, VersionedTransaction)):
        message = transaction.message
        entries = _message_entries(message)
        message_payer = str(message.account_keys[0]) if len(message.account_keys) else None
        payer = str(fee_payer) if fee_payer is not None else message_payer
        blockhash = str(message.recent_blockhash)
    elif isinstance(transaction, (list, tuple)) and all(isinstance(ix, Instruction) for ix in transaction):
        entries = [
            _instruction_entry(
                ix.program_id,
                [
                    {"pubkey": str(meta.pubkey), "isSigner": meta.is_signer, "isWritable": meta.is_writable}
                    for meta in ix.accounts
                ],
                ix.data,
            )
            for ix in transaction
        ]
        payer = str(fee_payer) if fee_payer is not None else (str(signers[0]) if signers else None)
    else:
        raise TransactionError.unsupported(type(transaction).__name__)

    canonical: Dict[str, Any] = {"instructions": entries}
    if include_fee_payer_and_signers:
        canonical["feePayer"] = payer
        canonical["signers"] = [str(s) for s in signers or []]
    if include_recent_blockhash and blockhash is not None:
        canonical["recentBlockhash"] = blockhash
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"))


def hash_transaction(transaction: SimulationInput, **options: Any) -> str:
    """SHA-256 hex digest of canonicalize_transaction()"""
    return hashlib.sha256(canonicalize_transaction(transaction, **options).encode("utf-8")).hexdigest()


class SimulationCache:
    """
    Memoized transaction simulation

    Successful results live for simulation_ttl_seconds, failed simulations
    for the shorter simulation_failure_ttl_seconds.

    Usage:
        simulations = SimulationCache(rpc, network="devnet")
        result = await simulations.simulate_transaction([ix1, ix2], fee_payer=wallet)
        if not result.success:
            print(result.error, result.logs)
    """

    def __init__(
        self,
        rpc: RpcConnection,
        network: Union[str, Network, None] = None,
        ttl_seconds: Optional[float] = None,
        failure_ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        include_recent_blockhash: bool = False,
        include_fee_payer_and_signers: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        cache_config = global_config.cache
        self._rpc = rpc
        self._network = Network.resolve(network)
        self._clock = clock or time.time
        self._failure_ttl = (
            failure_ttl_seconds if failure_ttl_seconds is not None
            else cache_config.simulation_failure_ttl_seconds
        )
        self._cache = TtlCache(
            default_ttl=ttl_seconds if ttl_seconds is not None else cache_config.simulation_ttl_seconds,
            max_size=max_entries if max_entries is not None else cache_config.max_entries,
            clock=self._clock,
            name="simulation",
        )
        self._hash_options = {
            "include_recent_blockhash": include_recent_blockhash,
            "include_fee_payer_and_signers": include_fee_payer_and_signers,
        }
        self._generation = 0

    @property
    def network(self) -> Network:
        return self._network

    def cache_key(
        self,
        transaction: SimulationInput,
        signers: Optional[Sequence[PubkeyLike]] = None,
        fee_payer: Optional[PubkeyLike] = None,
    ) -> str:
        digest = hash_transaction(transaction, signers=signers, fee_payer=fee_payer, **self._hash_options)
        return self._network.key(digest)

    async def simulate_transaction(
        self,
        transaction: SimulationInput,
        signers: Optional[Sequence[PubkeyLike]] = None,
        fee_payer: Optional[PubkeyLike] = None,
    ) -> CachedSimulation:
        """
        Simulate a transaction, returning a cached result when one is live

        Args:
            transaction: Instruction list, legacy Transaction or VersionedTransaction
            signers: Signers of an instruction list (first one pays fees by default)
            fee_payer: Fee payer of an instruction list

        Returns:
            Simulation result (success=False when the program failed)

        Raises:
            TransactionError: For unsupported input types
            ConfigurationError: If an instruction list has no fee payer
            RpcError: If the simulate call itself fails (nothing is cached)
        """
        key = self.cache_key(transaction, signers, fee_payer)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Simulation cache hit {key}")
            return _copy_simulation(cached)

        generation = self._generation
        raw = await self._serialize(transaction, signers, fee_payer)
        response = await self._rpc.simulate_transaction(raw)
        result = self._to_result(response)

        if generation == self._generation:
            ttl = None if result.success else self._failure_ttl
            self._cache.set(key, result, ttl=ttl)
        if not result.success:
            logger.info(f"Simulation failed: {result.error}")
        return _copy_simulation(result)

    def clear_simulations(self) -> int:
        """Drop every result of the active network, returns the count removed"""
        return self._cache.delete_prefix(self._network.prefix)

    def set_connection(self, rpc: RpcConnection, network: Union[str, Network, None] = None) -> None:
        """Switch RPC connection and/or network, clearing the old namespace"""
        network = Network.resolve(network, self._network)
        removed = self.clear_simulations()
        self._generation += 1
        logger.info(f"Simulation cache switching {self._network.value} -> {network.value}, dropped {removed} results")
        self._rpc = rpc
        self._network = network

    async def _serialize(
        self,
        transaction: SimulationInput,
        signers: Optional[Sequence[PubkeyLike]],
        fee_payer: Optional[PubkeyLike],
    ) -> bytes:
        if isinstance(transaction, (Transaction, VersionedTransaction)):
            return bytes(transaction)

        instructions = list(transaction)
        payer = fee_payer if fee_payer is not None else (signers[0] if signers else None)
        if payer is None:
            payer = next((m.pubkey for ix in instructions for m in ix.accounts if m.is_signer), None)
        if payer is None:
            raise ConfigurationError.missing("fee payer")
        payer_pubkey = payer if isinstance(payer, Pubkey) else Pubkey.from_string(str(payer))

        latest = await self._rpc.get_latest_blockhash()
        blockhash = (latest or {}).get("blockhash")
        if not blockhash:
            raise TransactionError.simulation_failed("Failed to get recent blockhash")

        message = MessageV0.try_compile(
            payer_pubkey,
            instructions,
            [],
            Hash.from_string(blockhash),
        )
        # Unsigned: simulation runs with sigVerify disabled
        null_signatures = [Signature.default()] * message.header.num_required_signatures
        return bytes(VersionedTransaction.populate(message, null_signatures))

    def _to_result(self, response: Optional[Dict[str, Any]]) -> CachedSimulation:
        value = (response or {}).get("value") or {}
        err = value.get("err")
        return CachedSimulation(
            success=err is None,
            logs=list(value.get("logs") or []),
            units_consumed=value.get("unitsConsumed"),
            error=json.dumps(err, separators=(",", ":")) if err is not None else None,
            return_data=value.get("returnData"),
            accounts=value.get("accounts"),
            last_updated=self._clock(),
        )

    def __repr__(self) -> str:
        return f"SimulationCache(network={self._network.value}, entries={len(self._cache)})"


def _copy_simulation(result: CachedSimulation) -> CachedSimulation:
    return CachedSimulation(
        success=result.success,
        logs=list(result.logs),
        units_consumed=result.units_consumed,
        error=result.error,
        return_data=result.return_data,
        accounts=list(result.accounts) if result.accounts is not None else None,
        last_updated=result.last_updated,
    )
