"""
Configuration management for Solana State

Loads settings from environment variables and .env file.
Includes logging configuration with file output.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from dotenv import load_dotenv


def _load_env_file():
    """Load .env file from project root"""
    current = Path(__file__).parent.parent  # solana_state package parent
    env_file = current / ".env"

    if env_file.exists():
        load_dotenv(env_file)


# Load .env on module import
_load_env_file()


def _get_env(key: str, default: Optional[str] = "") -> Optional[str]:
    """Get environment variable with default"""
    value = os.getenv(key)
    if value is None:
        return default
    return value


def _get_env_float(key: str, default: float) -> float:
    """Get environment variable as float"""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logging.getLogger(__name__).warning(
            f"Invalid float value for {key}='{value}', using default={default}"
        )
        return default


def _get_env_int(key: str, default: int) -> int:
    """Get environment variable as int"""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logging.getLogger(__name__).warning(
            f"Invalid int value for {key}='{value}', using default={default}"
        )
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get environment variable as bool"""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


@dataclass
class RpcConfig:
    """RPC client configuration"""
    url: str = field(default_factory=lambda: _get_env("SOLANA_RPC_URL", ""))
    timeout_seconds: float = field(default_factory=lambda: _get_env_float("RPC_TIMEOUT_SECONDS", 30.0))
    max_retries: int = field(default_factory=lambda: _get_env_int("RPC_MAX_RETRIES", 3))
    retry_delay_seconds: float = field(default_factory=lambda: _get_env_float("RPC_RETRY_DELAY_SECONDS", 1.0))
    commitment: str = field(default_factory=lambda: _get_env("RPC_COMMITMENT", "confirmed"))
    # Poll cadence of HTTP-backed account subscriptions
    subscription_poll_seconds: float = field(
        default_factory=lambda: _get_env_float("RPC_SUBSCRIPTION_POLL_SECONDS", 5.0)
    )


@dataclass
class NetworkConfig:
    """Active cluster and explorer settings"""
    network: str = field(default_factory=lambda: _get_env("SOLANA_NETWORK", "devnet"))
    explorer_base_url: str = field(
        default_factory=lambda: _get_env("EXPLORER_BASE_URL", "https://explorer.solana.com")
    )


@dataclass
class LedgerConfig:
    """Transaction ledger configuration"""
    storage_key: str = field(default_factory=lambda: _get_env("LEDGER_STORAGE_KEY", "solana-state-transactions"))
    # Empty path keeps the ledger in memory only
    storage_path: str = field(default_factory=lambda: _get_env("LEDGER_STORAGE_PATH", ""))
    # Signature never seen after this long -> TIMEOUT (5 minutes)
    timeout_seconds: float = field(default_factory=lambda: _get_env_float("LEDGER_TIMEOUT_SECONDS", 300.0))
    finality_confirmations: int = field(default_factory=lambda: _get_env_int("LEDGER_FINALITY_CONFIRMATIONS", 32))


@dataclass
class CacheConfig:
    """TTL and refresh settings for the on-chain state caches"""
    max_entries: int = field(default_factory=lambda: _get_env_int("CACHE_MAX_ENTRIES", 1000))
    price_ttl_seconds: float = field(default_factory=lambda: _get_env_float("CACHE_PRICE_TTL_SECONDS", 60.0))
    price_refresh_seconds: float = field(default_factory=lambda: _get_env_float("CACHE_PRICE_REFRESH_SECONDS", 60.0))
    state_ttl_seconds: float = field(default_factory=lambda: _get_env_float("CACHE_STATE_TTL_SECONDS", 120.0))
    state_refresh_seconds: float = field(default_factory=lambda: _get_env_float("CACHE_STATE_REFRESH_SECONDS", 60.0))
    simulation_ttl_seconds: float = field(
        default_factory=lambda: _get_env_float("CACHE_SIMULATION_TTL_SECONDS", 300.0)
    )
    # Failed simulations expire sooner so a corrected retry is not blocked for long
    simulation_failure_ttl_seconds: float = field(
        default_factory=lambda: _get_env_float("CACHE_SIMULATION_FAILURE_TTL_SECONDS", 60.0)
    )


@dataclass
class PriceApiConfig:
    """Price API configuration (Jupiter price endpoint by default)"""
    url: str = field(default_factory=lambda: _get_env("JUPITER_PRICE_URL", "https://lite-api.jup.ag/price/v2"))
    timeout: float = field(default_factory=lambda: _get_env_float("JUPITER_TIMEOUT", 15.0))


def _get_default_log_path() -> str:
    """Get default log file path under solana_state/log/ with UTC timestamp"""
    from datetime import datetime, timezone
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_dir = Path(__file__).parent / "log"
    return str(log_dir / f"solana_state_{timestamp}.log")


@dataclass
class LoggingConfig:
    """
    Logging configuration with optional file output.

    Environment variables:
        LOG_FILE: Path to log file (empty disables file logging)
        LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL (default: INFO)
        LOG_FORMAT: Custom log format string
        LOG_CONSOLE: Enable console output (default: true)
        LOG_MAX_BYTES: Max log file size before rotation (default: 10MB)
        LOG_BACKUP_COUNT: Number of backup files to keep (default: 5)

    Example .env:
        LOG_LEVEL=DEBUG
        LOG_CONSOLE=true
    """
    log_file: str = field(default_factory=lambda: _get_env("LOG_FILE", ""))

    log_level: str = field(default_factory=lambda: _get_env("LOG_LEVEL", "INFO"))

    log_format: str = field(default_factory=lambda: _get_env(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))

    console_output: bool = field(default_factory=lambda: _get_env_bool("LOG_CONSOLE", True))

    max_bytes: int = field(default_factory=lambda: _get_env_int("LOG_MAX_BYTES", 10 * 1024 * 1024))  # 10MB
    backup_count: int = field(default_factory=lambda: _get_env_int("LOG_BACKUP_COUNT", 5))

    @property
    def level(self) -> int:
        """Get numeric log level"""
        return getattr(logging, self.log_level.upper(), logging.INFO)


@dataclass
class Config:
    """
    Main configuration container

    Loads all settings from environment variables and .env file.

    Usage:
        from solana_state.config import config

        print(config.rpc.url)
        print(config.cache.price_ttl_seconds)
    """
    rpc: RpcConfig = field(default_factory=RpcConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    price_api: PriceApiConfig = field(default_factory=PriceApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Global config instance
config = Config()


def setup_logging(
    log_config: Optional[LoggingConfig] = None,
    logger_name: str = "solana_state",
) -> logging.Logger:
    """
    Set up logging based on configuration.

    Creates handlers for file and/or console output with optional rotation.
    The log file directory is created automatically if it doesn't exist.

    Args:
        log_config: Logging configuration (uses global config if None)
        logger_name: Name of the logger to configure (default: solana_state)

    Returns:
        Configured logger instance

    Example:
        from solana_state.config import LoggingConfig, setup_logging
        logger = setup_logging(LoggingConfig(log_file="state.log", log_level="DEBUG"))
    """
    if log_config is None:
        log_config = config.logging

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_config.level)

    # Close and remove existing handlers to avoid duplicates on reload
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter(log_config.log_format)

    handlers: List[logging.Handler] = []

    if log_config.log_file:
        from logging.handlers import RotatingFileHandler

        log_path = Path(log_config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_config.log_file,
            maxBytes=log_config.max_bytes,
            backupCount=log_config.backup_count,
            encoding='utf-8',
        )
        file_handler.setLevel(log_config.level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if log_config.console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_config.level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    for handler in handlers:
        logger.addHandler(handler)

    # Child loggers inherit handlers from parent, only the level is set here
    for name in [
        f"{logger_name}.infra",
        f"{logger_name}.cache",
        f"{logger_name}.modules",
    ]:
        logging.getLogger(name).setLevel(log_config.level)

    if log_config.log_file:
        logger.info(f"Logging initialized: file={log_config.log_file}, level={log_config.log_level}")

    return logger


def enable_file_logging(
    log_file: Optional[str] = None,
    level: str = "INFO",
    console: bool = True,
) -> logging.Logger:
    """
    Quick setup for file logging.

    Args:
        log_file: Path to log file (defaults to solana_state/log/solana_state_<ts>.log)
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        console: Also output to console

    Returns:
        Configured logger
    """
    if log_file is None:
        log_file = config.logging.log_file or _get_default_log_path()

    log_config = LoggingConfig(
        log_file=log_file,
        log_level=level,
        console_output=console,
    )
    return setup_logging(log_config)
