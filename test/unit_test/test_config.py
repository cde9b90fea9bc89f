"""
Test Configuration

Tests for environment-driven settings in solana_state.config.
"""

import logging

from solana_state.config import (
    CacheConfig,
    Config,
    LedgerConfig,
    LoggingConfig,
    NetworkConfig,
    RpcConfig,
    setup_logging,
)
from solana_state.infra import RpcClientConfig


def test_defaults(monkeypatch):
    for key in ("RPC_TIMEOUT_SECONDS", "LEDGER_TIMEOUT_SECONDS", "CACHE_PRICE_TTL_SECONDS", "SOLANA_NETWORK"):
        monkeypatch.delenv(key, raising=False)

    assert RpcConfig().timeout_seconds == 30.0
    assert LedgerConfig().timeout_seconds == 300.0
    assert LedgerConfig().finality_confirmations == 32
    assert CacheConfig().price_ttl_seconds == 60.0
    assert CacheConfig().simulation_failure_ttl_seconds == 60.0
    assert NetworkConfig().network == "devnet"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RPC_MAX_RETRIES", "7")
    monkeypatch.setenv("CACHE_STATE_TTL_SECONDS", "15.5")
    monkeypatch.setenv("SOLANA_NETWORK", "mainnet-beta")
    monkeypatch.setenv("LOG_CONSOLE", "no")

    config = Config()
    assert config.rpc.max_retries == 7
    assert config.cache.state_ttl_seconds == 15.5
    assert config.network.network == "mainnet-beta"
    assert config.logging.console_output is False


def test_invalid_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("CACHE_PRICE_TTL_SECONDS", "soon")
    monkeypatch.setenv("LEDGER_FINALITY_CONFIRMATIONS", "many")

    assert CacheConfig().price_ttl_seconds == 60.0
    assert LedgerConfig().finality_confirmations == 32


def test_rpc_client_config_pulls_global_defaults():
    from solana_state.config import config

    client_config = RpcClientConfig(max_retries=9)
    assert client_config.max_retries == 9
    assert client_config.timeout_seconds == config.rpc.timeout_seconds
    assert client_config.subscription_poll_seconds == config.rpc.subscription_poll_seconds


def test_setup_logging_file(tmp_path):
    log_file = tmp_path / "logs" / "state.log"
    logger = setup_logging(
        LoggingConfig(log_file=str(log_file), log_level="DEBUG", console_output=False),
        logger_name="solana_state_test",
    )
    try:
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")

        # Re-running replaces handlers instead of stacking them
        setup_logging(LoggingConfig(log_file="", console_output=True), logger_name="solana_state_test")
        assert len(logger.handlers) == 1
    finally:
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)


def test_modules_share_the_import_time_config():
    from solana_state import config as config_module
    from solana_state.infra import rpc

    assert rpc.global_config is config_module.config
