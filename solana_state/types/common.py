"""
Common type definitions
"""

from enum import Enum
from typing import Optional, Union


class Network(Enum):
    """Supported Solana clusters"""
    MAINNET = "mainnet-beta"
    DEVNET = "devnet"
    TESTNET = "testnet"
    LOCALNET = "localnet"

    @classmethod
    def from_string(cls, value: str) -> "Network":
        """Convert string to Network enum (case-insensitive)"""
        value_lower = value.strip().lower()
        if value_lower in ("mainnet-beta", "mainnet", "main"):
            return cls.MAINNET
        elif value_lower in ("devnet", "dev"):
            return cls.DEVNET
        elif value_lower in ("testnet", "test"):
            return cls.TESTNET
        elif value_lower in ("localnet", "localhost", "local"):
            return cls.LOCALNET
        else:
            from ..errors import ConfigurationError
            raise ConfigurationError.invalid(
                "network", f"Unknown network: {value}. Supported: mainnet-beta, devnet, testnet, localnet"
            )

    @classmethod
    def resolve(cls, network: Union[str, "Network", None], default: Optional["Network"] = None) -> "Network":
        """Resolve a network parameter to Network enum"""
        if network is None:
            if default is not None:
                return default
            from ..config import config
            return cls.from_string(config.network.network)
        if isinstance(network, Network):
            return network
        return cls.from_string(network)

    @property
    def default_rpc_url(self) -> str:
        """Public RPC endpoint for this cluster"""
        return DEFAULT_RPC_URLS[self]

    def key(self, *parts: str) -> str:
        """Build a namespaced cache key: "<network>:<part>:<part>..." """
        return ":".join((self.value,) + tuple(str(p) for p in parts))

    @property
    def prefix(self) -> str:
        """Namespace prefix shared by every cache key of this network"""
        return f"{self.value}:"


DEFAULT_RPC_URLS = {
    Network.MAINNET: "https://api.mainnet-beta.solana.com",
    Network.DEVNET: "https://api.devnet.solana.com",
    Network.TESTNET: "https://api.testnet.solana.com",
    Network.LOCALNET: "http://127.0.0.1:8899",
}


def explorer_url(signature: str, network: Network, base_url: Optional[str] = None) -> str:
    """
    Build the block explorer URL for a transaction

    Args:
        signature: Transaction signature (base58)
        network: Cluster the transaction was sent to
        base_url: Explorer base URL (defaults to config.network.explorer_base_url)

    Returns:
        Deterministic explorer URL for the signature on that cluster
    """
    if base_url is None:
        from ..config import config
        base_url = config.network.explorer_base_url
    url = f"{base_url.rstrip('/')}/tx/{signature}"
    if network == Network.MAINNET:
        return url
    if network == Network.LOCALNET:
        return f"{url}?cluster=custom"
    return f"{url}?cluster={network.value}"
