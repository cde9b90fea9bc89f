"""
Tracked transaction type definitions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .common import Network


class TransactionStatus(Enum):
    """
    Transaction lifecycle status

    CREATED -> SIGNED -> SENT -> CONFIRMING -> CONFIRMED -> FINALIZED
    SENT | CONFIRMING -> FAILED
    SENT -> TIMEOUT
    """
    CREATED = "created"
    SIGNED = "signed"
    SENT = "sent"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        """No further updates are expected once a transaction reaches this status"""
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: Any) -> "TransactionStatus":
        """Parse a persisted status value, falling back to UNKNOWN"""
        if isinstance(value, TransactionStatus):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


TERMINAL_STATUSES = frozenset({
    TransactionStatus.FINALIZED,
    TransactionStatus.FAILED,
    TransactionStatus.TIMEOUT,
})


class TransactionType(Enum):
    """Kind of operation a tracked transaction performs"""
    SWAP = "swap"
    STAKE = "stake"
    UNSTAKE = "unstake"
    CLAIM_REWARDS = "claim_rewards"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    CLAIM_FEES = "claim_fees"
    TRANSFER = "transfer"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "TransactionType":
        if isinstance(value, TransactionType):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.OTHER


# Python attribute -> persisted (camelCase) key
_WIRE_KEYS = {
    "id": "id",
    "signature": "signature",
    "submitted_at": "submittedAt",
    "status": "status",
    "type": "type",
    "network": "network",
    "wallet_address": "walletAddress",
    "amount": "amount",
    "token": "token",
    "fee": "fee",
    "block_height": "blockHeight",
    "confirmations": "confirmations",
    "error_message": "errorMessage",
    "explorer_url": "explorerUrl",
    "metadata": "metadata",
}

# Fields update_status() may merge into a record
UPDATABLE_FIELDS = frozenset({
    "amount",
    "token",
    "fee",
    "block_height",
    "confirmations",
    "error_message",
    "metadata",
})


@dataclass
class TrackedTransaction:
    """
    A submitted transaction followed by the ledger

    Attributes:
        id: Locally generated id, unique per session
        signature: Ledger-assigned signature (base58)
        submitted_at: Submission time (epoch seconds)
        status: Current lifecycle status
        type: Operation kind
        network: Cluster the transaction was sent to
        wallet_address: Submitting wallet (optional)
        amount: Amount moved, UI units (optional)
        token: Token symbol or mint (optional)
        fee: Fee in lamports, filled in on finality
        block_height: Slot the transaction landed in, filled in on finality
        confirmations: Last observed confirmation count
        error_message: Stringified ledger error for FAILED transactions
        explorer_url: Block explorer link
        metadata: Free-form caller data
    """
    id: str
    signature: str
    submitted_at: float
    status: TransactionStatus
    type: TransactionType
    network: Network
    wallet_address: Optional[str] = None
    amount: Optional[float] = None
    token: Optional[str] = None
    fee: Optional[int] = None
    block_height: Optional[int] = None
    confirmations: Optional[int] = None
    error_message: Optional[str] = None
    explorer_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def age(self, now: float) -> float:
        """Seconds elapsed since submission"""
        return now - self.submitted_at

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted JSON shape"""
        data: Dict[str, Any] = {}
        for attr, wire_key in _WIRE_KEYS.items():
            value = getattr(self, attr)
            if isinstance(value, Enum):
                value = value.value
            if value is None:
                continue
            data[wire_key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedTransaction":
        """Rebuild a record from its persisted JSON shape"""
        values = {attr: data.get(wire_key) for attr, wire_key in _WIRE_KEYS.items()}
        if not values["id"] or not values["signature"]:
            raise ValueError(f"Persisted transaction is missing id/signature: {data!r}")
        values["status"] = TransactionStatus.parse(values["status"])
        values["type"] = TransactionType.parse(values["type"])
        values["network"] = Network.resolve(values["network"])
        values["submitted_at"] = float(values["submitted_at"] or 0.0)
        values["metadata"] = dict(values["metadata"] or {})
        return cls(**values)

    def __str__(self) -> str:
        return f"TrackedTransaction({self.id}, {self.signature[:16]}..., {self.status.value})"
