"""
Exception definitions for Solana State
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """
    Unified error codes

    1xxx - RPC errors
    2xxx - Transaction errors
    3xxx - Price source errors
    4xxx - Storage errors
    9xxx - Configuration errors
    """
    # RPC errors (recoverable)
    RPC_CONNECTION_FAILED = "1001"
    RPC_TIMEOUT = "1002"
    RPC_RATE_LIMITED = "1003"
    RPC_INVALID_RESPONSE = "1004"

    # Transaction errors
    TX_SIMULATION_FAILED = "2001"
    TX_INVALID_SIGNATURE = "2002"
    TX_UNSUPPORTED = "2003"

    # Price source errors
    PRICE_FETCH_FAILED = "3001"

    # Storage errors
    STORAGE_READ_FAILED = "4001"
    STORAGE_WRITE_FAILED = "4002"

    # Configuration errors
    CONFIG_INVALID = "9001"
    CONFIG_MISSING = "9002"


class SolanaStateError(Exception):
    """
    Base exception for all solana_state errors

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        recoverable: Whether the error might succeed on retry
        original_error: The underlying exception if any
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        recoverable: bool = False,
        original_error: Optional[Exception] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.original_error = original_error
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"

    @property
    def should_retry(self) -> bool:
        """Indicate if the operation should be retried"""
        return self.recoverable


class RpcError(SolanaStateError):
    """
    RPC-related errors - transient, retried by background loops

    Raised when:
    - Connection to RPC endpoint fails
    - Request times out
    - Rate limit is hit
    - Invalid response received
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RPC_CONNECTION_FAILED,
        original_error: Optional[Exception] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(
            message,
            code,
            recoverable=True,
            original_error=original_error,
            details={"endpoint": endpoint} if endpoint else None,
        )
        self.endpoint = endpoint

    @classmethod
    def connection_failed(cls, endpoint: str, error: Exception = None) -> "RpcError":
        return cls(
            f"Failed to connect to RPC endpoint: {endpoint}",
            ErrorCode.RPC_CONNECTION_FAILED,
            original_error=error,
            endpoint=endpoint,
        )

    @classmethod
    def timeout(cls, endpoint: str, timeout_seconds: float) -> "RpcError":
        return cls(
            f"RPC request timed out after {timeout_seconds}s",
            ErrorCode.RPC_TIMEOUT,
            endpoint=endpoint,
        )

    @classmethod
    def rate_limited(cls, endpoint: str) -> "RpcError":
        return cls(
            "RPC rate limit exceeded",
            ErrorCode.RPC_RATE_LIMITED,
            endpoint=endpoint,
        )

    @classmethod
    def invalid_response(cls, endpoint: str, reason: str) -> "RpcError":
        return cls(
            f"Invalid RPC response: {reason}",
            ErrorCode.RPC_INVALID_RESPONSE,
            endpoint=endpoint,
        )


class TransactionError(SolanaStateError):
    """
    Transaction tracking and simulation errors

    Raised when:
    - A malformed signature is handed to the ledger
    - A transaction cannot be prepared for simulation
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.TX_SIMULATION_FAILED,
        signature: Optional[str] = None,
        logs: Optional[list] = None,
        recoverable: bool = False,
    ):
        super().__init__(
            message,
            code,
            recoverable=recoverable,
            details={"signature": signature, "logs": logs},
        )
        self.signature = signature
        self.logs = logs or []

    @classmethod
    def invalid_signature(cls, signature: Optional[str]) -> "TransactionError":
        return cls(
            f"Invalid transaction signature: {signature!r}",
            ErrorCode.TX_INVALID_SIGNATURE,
            signature=signature,
        )

    @classmethod
    def simulation_failed(cls, error: str, logs: list = None) -> "TransactionError":
        return cls(
            f"Transaction simulation failed: {error}",
            ErrorCode.TX_SIMULATION_FAILED,
            logs=logs,
        )

    @classmethod
    def unsupported(cls, kind: str) -> "TransactionError":
        return cls(
            f"Unsupported transaction type: {kind}",
            ErrorCode.TX_UNSUPPORTED,
        )


class PriceError(SolanaStateError):
    """
    Price API errors - recoverable

    Raised when the price source cannot be reached or answers garbage.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        url: Optional[str] = None,
    ):
        super().__init__(
            message,
            ErrorCode.PRICE_FETCH_FAILED,
            recoverable=True,
            original_error=original_error,
            details={"url": url} if url else None,
        )
        self.url = url

    @classmethod
    def request_failed(cls, url: str, error: Exception) -> "PriceError":
        return cls(f"Price request failed: {error}", original_error=error, url=url)


class StorageError(SolanaStateError):
    """
    Durable storage errors - never fatal to in-memory state

    Raised when:
    - Persisted data cannot be read or decoded
    - Data cannot be written
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
        original_error: Optional[Exception] = None,
        key: Optional[str] = None,
    ):
        super().__init__(
            message,
            code,
            recoverable=True,
            original_error=original_error,
            details={"key": key} if key else None,
        )
        self.key = key

    @classmethod
    def read_failed(cls, key: str, error: Exception) -> "StorageError":
        return cls(
            f"Failed to read '{key}' from storage: {error}",
            ErrorCode.STORAGE_READ_FAILED,
            original_error=error,
            key=key,
        )

    @classmethod
    def write_failed(cls, key: str, error: Exception) -> "StorageError":
        return cls(
            f"Failed to write '{key}' to storage: {error}",
            ErrorCode.STORAGE_WRITE_FAILED,
            original_error=error,
            key=key,
        )


class ConfigurationError(SolanaStateError):
    """
    Configuration-related errors

    Raised when:
    - Required configuration is missing
    - Configuration values are invalid
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
    ):
        super().__init__(message, code, recoverable=False)

    @classmethod
    def missing(cls, param: str) -> "ConfigurationError":
        return cls(f"Missing required configuration: {param}", ErrorCode.CONFIG_MISSING)

    @classmethod
    def invalid(cls, param: str, reason: str) -> "ConfigurationError":
        return cls(f"Invalid configuration '{param}': {reason}", ErrorCode.CONFIG_INVALID)
