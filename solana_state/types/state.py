"""
Cached on-chain state type definitions
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AccountInfo:
    """
    Decoded account as returned by getAccountInfo / getMultipleAccounts

    Attributes:
        data: Raw account data
        owner: Owning program (base58)
        lamports: Account balance in lamports
        executable: Whether the account holds a program
        rent_epoch: Rent epoch
        slot: Context slot the snapshot was read at
    """
    data: bytes
    owner: str
    lamports: int
    slot: int
    executable: bool = False
    rent_epoch: Optional[int] = None

    @classmethod
    def from_rpc(cls, value: Dict[str, Any], slot: int) -> "AccountInfo":
        """
        Build from an RPC account value (base64 encoding)

        Args:
            value: RPC "value" object
            slot: Context slot of the response
        """
        raw = value.get("data")
        if isinstance(raw, list) and raw:
            data = base64.b64decode(raw[0]) if raw[0] else b""
        elif isinstance(raw, str):
            data = base64.b64decode(raw)
        else:
            data = b""
        return cls(
            data=data,
            owner=value.get("owner", ""),
            lamports=int(value.get("lamports", 0)),
            slot=int(slot or 0),
            executable=bool(value.get("executable", False)),
            rent_epoch=value.get("rentEpoch"),
        )


@dataclass
class CachedAccountState:
    """
    Account state cached under (network, program_id, account_id)

    Attributes:
        program_id: Owning program (base58)
        account_id: Account address (base58)
        data: Parsed account data (raw bytes when no parser is given)
        last_updated: Epoch seconds of the last applied update
        slot: Slot of the last applied update, never decreases
    """
    program_id: str
    account_id: str
    data: Any
    last_updated: float
    slot: int


@dataclass
class CachedPrice:
    """
    Token price snapshot

    Attributes:
        price: USD price
        price_change_24h: 24h change in percent
        volume_24h: 24h volume in USD
        market_cap: Market capitalisation in USD
        last_updated: Epoch seconds the price was fetched at
    """
    price: float
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    market_cap: float = 0.0
    last_updated: float = 0.0


@dataclass
class CachedSimulation:
    """
    Memoized dry-run result

    Attributes:
        success: True if the simulation returned no error
        logs: Program logs
        units_consumed: Compute units consumed
        error: Stringified simulation error
        return_data: Program return data
        accounts: Post-simulation account states, if requested
        last_updated: Epoch seconds the simulation ran at
    """
    success: bool
    logs: List[str] = field(default_factory=list)
    units_consumed: Optional[int] = None
    error: Optional[str] = None
    return_data: Optional[Any] = None
    accounts: Optional[List[Any]] = None
    last_updated: float = 0.0
