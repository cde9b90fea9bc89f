"""
Test Types Module

Tests for solana_state.types package.
"""

import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))


def test_network():
    """Test Network enum parsing"""
    from solana_state.types import Network
    from solana_state.errors import ConfigurationError

    print("Testing Network...")

    assert Network.from_string("mainnet-beta") == Network.MAINNET
    assert Network.from_string(" Mainnet ") == Network.MAINNET
    assert Network.from_string("dev") == Network.DEVNET
    assert Network.from_string("localhost") == Network.LOCALNET

    assert Network.resolve(Network.TESTNET) == Network.TESTNET
    assert Network.resolve("devnet") == Network.DEVNET
    assert Network.resolve(None, default=Network.MAINNET) == Network.MAINNET

    try:
        Network.from_string("moonnet")
        assert False, "Should reject unknown network"
    except ConfigurationError:
        pass

    print("  Network: PASSED")


def test_network_keys():
    """Test namespaced cache keys"""
    from solana_state.types import Network

    print("Testing Network keys...")

    assert Network.DEVNET.key("MINT") == "devnet:MINT"
    assert Network.MAINNET.key("prog", "acct") == "mainnet-beta:prog:acct"
    assert Network.MAINNET.prefix == "mainnet-beta:"
    assert Network.DEVNET.key("x").startswith(Network.DEVNET.prefix)
    assert Network.LOCALNET.default_rpc_url == "http://127.0.0.1:8899"

    print("  Network keys: PASSED")


def test_explorer_url():
    """Test explorer URL per cluster"""
    from solana_state.types import Network, explorer_url

    print("Testing explorer_url...")

    base = "https://explorer.solana.com"
    assert explorer_url("SIG", Network.MAINNET, base) == "https://explorer.solana.com/tx/SIG"
    assert explorer_url("SIG", Network.DEVNET, base) == "https://explorer.solana.com/tx/SIG?cluster=devnet"
    assert explorer_url("SIG", Network.TESTNET, base + "/") == "https://explorer.solana.com/tx/SIG?cluster=testnet"
    assert explorer_url("SIG", Network.LOCALNET, base) == "https://explorer.solana.com/tx/SIG?cluster=custom"

    print("  explorer_url: PASSED")


def test_transaction_status():
    """Test TransactionStatus parsing and terminal flags"""
    from solana_state.types import TransactionStatus, TERMINAL_STATUSES

    print("Testing TransactionStatus...")

    assert TransactionStatus.parse("FINALIZED") == TransactionStatus.FINALIZED
    assert TransactionStatus.parse(TransactionStatus.SENT) == TransactionStatus.SENT
    assert TransactionStatus.parse("exploded") == TransactionStatus.UNKNOWN

    assert TERMINAL_STATUSES == {
        TransactionStatus.FINALIZED,
        TransactionStatus.FAILED,
        TransactionStatus.TIMEOUT,
    }
    assert not TransactionStatus.CONFIRMED.is_terminal
    assert TransactionStatus.TIMEOUT.is_terminal

    print("  TransactionStatus: PASSED")


def test_transaction_type():
    """Test TransactionType parsing"""
    from solana_state.types import TransactionType

    print("Testing TransactionType...")

    assert TransactionType.parse("swap") == TransactionType.SWAP
    assert TransactionType.parse("ADD_LIQUIDITY") == TransactionType.ADD_LIQUIDITY
    assert TransactionType.parse("mint_nft") == TransactionType.OTHER

    print("  TransactionType: PASSED")


def test_tracked_transaction_round_trip():
    """Test TrackedTransaction persisted shape"""
    from solana_state.types import (
        Network,
        TrackedTransaction,
        TransactionStatus,
        TransactionType,
    )

    print("Testing TrackedTransaction...")

    tx = TrackedTransaction(
        id="abc",
        signature="5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW",
        submitted_at=1_700_000_000.0,
        status=TransactionStatus.CONFIRMED,
        type=TransactionType.SWAP,
        network=Network.DEVNET,
        amount=1.5,
        metadata={"pool": "P1"},
    )

    data = tx.to_dict()
    assert data["submittedAt"] == 1_700_000_000.0
    assert data["status"] == "confirmed"
    assert data["type"] == "swap"
    assert data["network"] == "devnet"
    assert "fee" not in data, "None fields are omitted"

    restored = TrackedTransaction.from_dict(data)
    assert restored == tx
    assert restored.age(1_700_000_030.0) == 30.0
    assert str(restored).startswith("TrackedTransaction(abc, 5VERv8NMvzbJMEkV")

    try:
        TrackedTransaction.from_dict({"signature": "x"})
        assert False, "Should reject record without id"
    except ValueError:
        pass

    print("  TrackedTransaction: PASSED")


def test_account_info_from_rpc():
    """Test AccountInfo decoding"""
    from solana_state.types import AccountInfo

    print("Testing AccountInfo...")

    value = {
        "data": ["AQID", "base64"],
        "owner": "Prog1111",
        "lamports": 5000,
        "executable": False,
        "rentEpoch": 10,
    }
    info = AccountInfo.from_rpc(value, 99)
    assert info.data == b"\x01\x02\x03"
    assert info.slot == 99
    assert info.lamports == 5000
    assert info.rent_epoch == 10

    empty = AccountInfo.from_rpc({"data": ["", "base64"], "owner": "Prog1111"}, 1)
    assert empty.data == b""
    assert empty.lamports == 0

    print("  AccountInfo: PASSED")


def test_cached_price_defaults():
    """Test CachedPrice defaults"""
    from solana_state.types import CachedPrice, CachedSimulation

    print("Testing cached value types...")

    price = CachedPrice(price=1.0)
    assert price.price_change_24h == 0.0
    assert price.market_cap == 0.0

    simulation = CachedSimulation(success=True)
    assert simulation.logs == []
    assert simulation.error is None

    print("  cached value types: PASSED")


def main():
    """Run all type tests"""
    print("=" * 60)
    print("Solana State Types Tests")
    print("=" * 60)

    tests = [
        test_network,
        test_network_keys,
        test_explorer_url,
        test_transaction_status,
        test_transaction_type,
        test_tracked_transaction_round_trip,
        test_account_info_from_rpc,
        test_cached_price_defaults,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"  FAILED: {e}")
            failed += 1

    print("=" * 60)
    print(f"Results: {passed} passed, {failed} failed")
    print("=" * 60)

    return failed == 0


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
