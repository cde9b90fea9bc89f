"""
Shared fakes and fixtures for unit tests.

Provides:
    FakeClock: controllable epoch clock whose sleep() advances time
    FakeRpc: scripted RpcConnection recording every call
    FakePriceSource: scripted PriceSource
    drain(): let background tasks run for a number of loop iterations
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from solana_state.types import AccountInfo, CachedPrice  # noqa: E402


class FakeClock:
    """Epoch clock under test control"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        """Advance time by seconds and yield once to the loop"""
        self.now += seconds
        await asyncio.sleep(0)


async def drain(iterations: int = 50):
    """Yield to the event loop repeatedly so pending tasks make progress"""
    for _ in range(iterations):
        await asyncio.sleep(0)


def account(data: bytes, slot: int, owner: str = "Prog1111", lamports: int = 1_000_000) -> AccountInfo:
    return AccountInfo(data=data, owner=owner, lamports=lamports, slot=slot)


class FakeRpc:
    """
    Scripted RPC connection

    statuses: signature -> list of getSignatureStatuses values; the head is
        consumed on every call and the last value repeats. An Exception
        instance in the list is raised instead of returned.
    accounts: address -> AccountInfo (missing address -> None)
    gate: when set, account reads wait on this event first
    """

    def __init__(self, name: str = "rpc"):
        self.name = name
        self.statuses: Dict[str, List[Any]] = {}
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.accounts: Dict[str, AccountInfo] = {}
        self.simulation_responses: List[Any] = []
        self.blockhash = "11111111111111111111111111111111"
        self.gate: Optional[asyncio.Event] = None

        self.status_calls: List[str] = []
        self.transaction_calls: List[str] = []
        self.account_calls: List[str] = []
        self.multiple_calls: List[List[str]] = []
        self.simulated: List[bytes] = []
        self.blockhash_calls = 0

        self.subscriptions: Dict[int, tuple] = {}
        self.removed: List[int] = []
        self.initial_snapshots: Dict[int, Optional[AccountInfo]] = {}
        self._next_sub = 1

    def script_status(self, signature: str, *values: Any):
        self.statuses[signature] = list(values)

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        self.status_calls.append(signature)
        script = self.statuses.get(signature)
        if not script:
            return None
        value = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(value, Exception):
            raise value
        return value

    async def get_transaction(self, signature: str, commitment: Optional[str] = None):
        self.transaction_calls.append(signature)
        return self.transactions.get(signature)

    async def get_account_info(self, address: str, commitment: Optional[str] = None):
        self.account_calls.append(address)
        if self.gate is not None:
            await self.gate.wait()
        return self.accounts.get(address)

    async def get_multiple_accounts_info(self, addresses: List[str], commitment: Optional[str] = None):
        self.multiple_calls.append(list(addresses))
        if self.gate is not None:
            await self.gate.wait()
        return [self.accounts.get(a) for a in addresses]

    async def simulate_transaction(self, transaction: bytes, commitment: Optional[str] = None):
        self.simulated.append(transaction)
        response = self.simulation_responses.pop(0) if len(self.simulation_responses) > 1 else (
            self.simulation_responses[0] if self.simulation_responses else
            {"context": {"slot": 1}, "value": {"err": None, "logs": [], "unitsConsumed": 0}}
        )
        if isinstance(response, Exception):
            raise response
        return response

    async def get_latest_blockhash(self, commitment: Optional[str] = None):
        self.blockhash_calls += 1
        return {"blockhash": self.blockhash, "lastValidBlockHeight": 1000}

    def on_account_change(self, address: str, callback, commitment: Optional[str] = None, initial=None) -> int:
        sub_id = self._next_sub
        self._next_sub += 1
        self.subscriptions[sub_id] = (address, callback)
        self.initial_snapshots[sub_id] = initial
        return sub_id

    def remove_account_change_listener(self, subscription_id: int) -> None:
        self.removed.append(subscription_id)
        self.subscriptions.pop(subscription_id, None)

    def emit(self, address: str, info: AccountInfo):
        """Deliver an account change to every subscriber of address"""
        for sub_address, callback in list(self.subscriptions.values()):
            if sub_address == address:
                callback(info, info.slot)


class FakePriceSource:
    """Price source answering from a fixed table"""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices = dict(prices or {})
        self.calls: List[List[str]] = []
        self.error: Optional[Exception] = None

    async def fetch_prices(self, mints: List[str]) -> Dict[str, CachedPrice]:
        self.calls.append(list(mints))
        if self.error is not None:
            raise self.error
        return {m: CachedPrice(price=self.prices[m]) for m in mints if m in self.prices}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def price_source():
    return FakePriceSource({"MINT1": 1.25, "MINT2": 42.0})
