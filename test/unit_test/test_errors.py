"""
Test Errors Module

Tests for solana_state.errors package.
"""

import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))


def test_error_code():
    """Test ErrorCode enum"""
    from solana_state.errors import ErrorCode

    print("Testing ErrorCode...")

    assert ErrorCode.RPC_CONNECTION_FAILED.value == "1001"
    assert ErrorCode.TX_SIMULATION_FAILED.value == "2001"
    assert ErrorCode.PRICE_FETCH_FAILED.value == "3001"
    assert ErrorCode.STORAGE_READ_FAILED.value == "4001"
    assert ErrorCode.CONFIG_MISSING.value == "9002"

    print("  ErrorCode: PASSED")


def test_base_error():
    """Test SolanaStateError base class"""
    from solana_state.errors import SolanaStateError, ErrorCode

    print("Testing SolanaStateError...")

    error = SolanaStateError(
        message="Test error",
        code=ErrorCode.RPC_CONNECTION_FAILED,
        recoverable=True,
    )

    # __str__ returns "[code] message" format
    assert "[1001] Test error" == str(error)
    assert error.code == ErrorCode.RPC_CONNECTION_FAILED
    assert error.recoverable == True
    assert error.should_retry == True
    assert error.details == {}

    print("  SolanaStateError: PASSED")


def test_rpc_error():
    """Test RpcError exception"""
    from solana_state.errors import RpcError, ErrorCode, SolanaStateError

    print("Testing RpcError...")

    error1 = RpcError.connection_failed("https://rpc.example.com", ConnectionError("refused"))
    assert error1.code == ErrorCode.RPC_CONNECTION_FAILED
    assert error1.recoverable == True
    assert error1.endpoint == "https://rpc.example.com"
    assert isinstance(error1.original_error, ConnectionError)
    assert isinstance(error1, SolanaStateError)

    error2 = RpcError.timeout("https://rpc.example.com", 30.0)
    assert error2.code == ErrorCode.RPC_TIMEOUT
    assert "30.0s" in str(error2)

    error3 = RpcError.rate_limited("https://rpc.example.com")
    assert error3.code == ErrorCode.RPC_RATE_LIMITED
    assert error3.details == {"endpoint": "https://rpc.example.com"}

    error4 = RpcError.invalid_response("https://rpc.example.com", "bad json")
    assert error4.code == ErrorCode.RPC_INVALID_RESPONSE

    print("  RpcError: PASSED")


def test_transaction_error():
    """Test TransactionError exception"""
    from solana_state.errors import TransactionError, ErrorCode

    print("Testing TransactionError...")

    error1 = TransactionError.invalid_signature("")
    assert error1.code == ErrorCode.TX_INVALID_SIGNATURE
    assert error1.recoverable == False

    error2 = TransactionError.simulation_failed("no blockhash", logs=["log1"])
    assert error2.code == ErrorCode.TX_SIMULATION_FAILED
    assert error2.logs == ["log1"]
    assert error2.details["logs"] == ["log1"]

    error3 = TransactionError.unsupported("str")
    assert error3.code == ErrorCode.TX_UNSUPPORTED
    assert "str" in str(error3)

    print("  TransactionError: PASSED")


def test_price_error():
    """Test PriceError exception"""
    from solana_state.errors import PriceError, ErrorCode

    print("Testing PriceError...")

    error = PriceError.request_failed("https://price.example.com", TimeoutError("slow"))
    assert error.code == ErrorCode.PRICE_FETCH_FAILED
    assert error.recoverable == True
    assert error.url == "https://price.example.com"
    assert isinstance(error.original_error, TimeoutError)

    print("  PriceError: PASSED")


def test_storage_error():
    """Test StorageError exception"""
    from solana_state.errors import StorageError, ErrorCode

    print("Testing StorageError...")

    error1 = StorageError.read_failed("ledger.json", ValueError("bad json"))
    assert error1.code == ErrorCode.STORAGE_READ_FAILED
    assert error1.key == "ledger.json"

    error2 = StorageError.write_failed("transactions", OSError("disk full"))
    assert error2.code == ErrorCode.STORAGE_WRITE_FAILED
    assert error2.recoverable == True

    print("  StorageError: PASSED")


def test_configuration_error():
    """Test ConfigurationError exception"""
    from solana_state.errors import ConfigurationError, ErrorCode

    print("Testing ConfigurationError...")

    error1 = ConfigurationError.missing("RPC endpoint")
    assert error1.code == ErrorCode.CONFIG_MISSING
    assert error1.recoverable == False
    assert "RPC endpoint" in str(error1)

    error2 = ConfigurationError.invalid("network", "Unknown network: moon")
    assert error2.code == ErrorCode.CONFIG_INVALID

    print("  ConfigurationError: PASSED")


def main():
    """Run all error tests"""
    print("=" * 60)
    print("Solana State Errors Tests")
    print("=" * 60)

    tests = [
        test_error_code,
        test_base_error,
        test_rpc_error,
        test_transaction_error,
        test_price_error,
        test_storage_error,
        test_configuration_error,
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
